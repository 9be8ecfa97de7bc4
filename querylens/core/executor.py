import logging
from collections import OrderedDict
from typing import Tuple

from querylens.core.config import SandboxConfig
from querylens.core.errors import ToolExecutionError
from querylens.database.base import DatabaseAdapter
from querylens.utils.formatting import render_markdown_table
from querylens.utils.security import SecurityGuard

logger = logging.getLogger(__name__)


class SandboxedQueryExecutor:
    """
    The only path by which model-written SQL reaches the analyzed database.
    Every failure comes back as text so the model can adjust its query.
    """

    def __init__(self, db: DatabaseAdapter, config: SandboxConfig):
        self.db = db
        self.config = config
        self.security = SecurityGuard(config)
        # least recently used entries are evicted beyond config.cache_size
        self._cache: "OrderedDict[Tuple[str, str], str]" = OrderedDict()

    async def execute_query(self, schema: str, sql: str, use_cache: bool = False, row_limit: int = 250) -> str:
        key = (schema, sql)
        if use_cache and key in self._cache:
            logger.debug(f"Serving cached result for query in {schema}")
            self._cache.move_to_end(key)
            return self._cache[key]

        try:
            rendered = await self._run(schema, sql, row_limit)
        except ToolExecutionError as e:
            logger.info(f"Rejected model query: {e}")
            return f"Error: {e}"
        except Exception as e:
            logger.info(f"Model query failed in {schema}: {e}")
            return f"Error executing query: {e}"

        if use_cache:
            self._cache[key] = rendered
            self._cache.move_to_end(key)
            while len(self._cache) > self.config.cache_size:
                self._cache.popitem(last=False)
        return rendered

    async def _run(self, schema: str, sql: str, row_limit: int) -> str:
        is_safe, err = self.security.validate_sql(sql)
        if not is_safe:
            raise ToolExecutionError(err)

        rows = await self.db.execute_query(sql.strip().rstrip(";"), schema=schema, max_rows=row_limit + 1)
        truncated = len(rows) > row_limit
        rendered = render_markdown_table(rows[:row_limit])
        if truncated:
            rendered += f"\n\nResult truncated to the first {row_limit} rows."
        return rendered
