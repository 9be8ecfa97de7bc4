import aiomysql
import logging
import warnings
from typing import List, Dict, Any, Optional
from querylens.database.base import DatabaseAdapter, StatementText
from querylens.core.config import DatabaseConfig

# Suppress aiomysql warnings (like "Field ... won't be calculated")
warnings.filterwarnings("ignore", category=Warning, module="aiomysql")

logger = logging.getLogger(__name__)

HISTORY_TABLES = ("events_statements_history", "events_statements_history_long")


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


class MySQLAdapter(DatabaseAdapter):
    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.pool = None

    @property
    def hostname_with_port(self) -> str:
        return f"{self.config.host}:{self.config.port}"

    async def connect(self):
        if not self.pool:
            try:
                self.pool = await aiomysql.create_pool(
                    host=self.config.host,
                    port=self.config.port,
                    user=self.config.user,
                    password=self.config.password,
                    db=self.config.database,
                    maxsize=self.config.pool_size,
                    autocommit=True,
                    cursorclass=aiomysql.DictCursor
                )
                logger.info(f"Connected to MySQL database at {self.config.host}:{self.config.port}")
            except Exception as e:
                logger.error(f"Failed to connect to MySQL: {e}")
                raise

    async def close(self):
        if self.pool:
            self.pool.close()
            await self.pool.wait_closed()
            self.pool = None
            logger.info("Closed MySQL connection pool")

    async def execute_query(
        self,
        sql: str,
        params: tuple = None,
        schema: Optional[str] = None,
        max_rows: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        if not self.pool:
            await self.connect()

        async with self.pool.acquire() as conn:
            if schema:
                await conn.select_db(schema)
            try:
                async with conn.cursor() as cur:
                    await cur.execute(sql, params)
                    if max_rows is not None:
                        return list(await cur.fetchmany(max_rows))
                    return list(await cur.fetchall())
            finally:
                # Pooled connections go back in the configured default schema
                if schema and schema != self.config.database:
                    await conn.select_db(self.config.database)

    async def list_tables(self, schema: str) -> List[str]:
        rows = await self.execute_query(
            "SELECT TABLE_NAME AS table_name FROM information_schema.tables "
            "WHERE table_schema = %s AND table_type = 'BASE TABLE'",
            (schema,),
        )
        return [row["table_name"] for row in rows]

    async def get_table_ddl(self, schema: str, table_name: str) -> str:
        rows = await self.execute_query(
            f"SHOW CREATE TABLE {quote_identifier(schema)}.{quote_identifier(table_name)}"
        )
        return rows[0].get("Create Table", "") if rows else ""

    async def explain_sql(self, sql: str, schema: str) -> str:
        rows = await self.execute_query(f"EXPLAIN FORMAT=JSON {sql}", schema=schema)
        return rows[0].get("EXPLAIN") if rows else ""

    async def get_query_text(self, digest: str, schema: str) -> Optional[str]:
        for table in HISTORY_TABLES:
            rows = await self.execute_query(
                f"SELECT SQL_TEXT AS sql_text FROM performance_schema.{table} "
                "WHERE DIGEST = %s AND CURRENT_SCHEMA = %s AND SQL_TEXT IS NOT NULL LIMIT 1",
                (digest, schema),
            )
            if rows and rows[0]["sql_text"]:
                return rows[0]["sql_text"]

        return None

    async def get_query_texts(self, digests: List[str]) -> List[StatementText]:
        if not digests:
            return []

        placeholders = ", ".join(["%s"] * len(digests))
        texts = []
        for table in HISTORY_TABLES:
            rows = await self.execute_query(
                f"SELECT SQL_TEXT AS sql_text, DIGEST AS digest, CURRENT_SCHEMA AS current_schema "
                f"FROM performance_schema.{table} WHERE DIGEST IN ({placeholders}) AND SQL_TEXT IS NOT NULL",
                tuple(digests),
            )
            texts.extend(StatementText(**row) for row in rows)

        return texts

    async def get_version(self) -> str:
        res = await self.execute_query("SELECT VERSION()")
        return list(res[0].values())[0] if res else "Unknown"
