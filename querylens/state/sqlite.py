import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

from querylens.core.conversation import Conversation
from querylens.core.errors import PersistenceError
from querylens.state.base import GroupRecord, QueryRecord, RunRecord, StateStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS run (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    input TEXT,
    hostname TEXT NOT NULL,
    output TEXT NOT NULL,
    use_real_query INTEGER NOT NULL DEFAULT 0,
    use_database_access INTEGER NOT NULL DEFAULT 0,
    llm_conversation TEXT,
    llm_conversation_markdown TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS query_group (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id INTEGER NOT NULL REFERENCES run(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    description TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS query (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id INTEGER NOT NULL REFERENCES run(id) ON DELETE CASCADE,
    group_id INTEGER NOT NULL REFERENCES query_group(id) ON DELETE CASCADE,
    digest TEXT NOT NULL,
    normalized_query TEXT NOT NULL,
    real_query TEXT,
    schema_name TEXT NOT NULL,
    impact_description TEXT NOT NULL,
    llm_conversation TEXT,
    llm_conversation_markdown TEXT
);

CREATE INDEX IF NOT EXISTS idx_query_run ON query(run_id);
"""


class SQLiteStateStore(StateStore):
    def __init__(self, path: str):
        if path != ":memory:" and os.path.dirname(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)

        # autocommit mode; transactions are opened explicitly
        self.conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.executescript(SCHEMA)
        self._depth = 0
        logger.info(f"Opened state store at {path}")

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def transaction(self):
        outermost = self._depth == 0
        if outermost:
            self.conn.execute("BEGIN")
        self._depth += 1
        try:
            yield
        except sqlite3.Error as e:
            self._depth -= 1
            if outermost:
                self.conn.execute("ROLLBACK")
            raise PersistenceError(f"State store write failed: {e}") from e
        except BaseException:
            self._depth -= 1
            if outermost:
                self.conn.execute("ROLLBACK")
            raise
        else:
            self._depth -= 1
            if outermost:
                self.conn.execute("COMMIT")

    def create_run(self, input, hostname, output, use_real_query, use_database_access, conversation, conversation_markdown) -> int:
        with self.transaction():
            cur = self.conn.execute(
                "INSERT INTO run (input, hostname, output, use_real_query, use_database_access, "
                "llm_conversation, llm_conversation_markdown, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    input,
                    hostname,
                    output,
                    int(use_real_query),
                    int(use_database_access),
                    conversation.model_dump_json(),
                    conversation_markdown,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            return cur.lastrowid

    def create_group(self, run_id: int, name: str, description: str) -> int:
        with self.transaction():
            cur = self.conn.execute(
                "INSERT INTO query_group (run_id, name, description) VALUES (?, ?, ?)",
                (run_id, name, description),
            )
            return cur.lastrowid

    def create_query(self, run_id, group_id, digest, normalized_query, real_query, schema, impact_description) -> int:
        with self.transaction():
            cur = self.conn.execute(
                "INSERT INTO query (run_id, group_id, digest, normalized_query, real_query, schema_name, impact_description) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (run_id, group_id, digest, normalized_query, real_query, schema, impact_description),
            )
            return cur.lastrowid

    def set_real_query(self, query_id: int, sql: str) -> None:
        with self.transaction():
            self.conn.execute("UPDATE query SET real_query = ? WHERE id = ?", (sql, query_id))

    def update_conversation(self, query_id: int, conversation: Conversation, conversation_markdown: str) -> None:
        with self.transaction():
            cur = self.conn.execute(
                "UPDATE query SET llm_conversation = ?, llm_conversation_markdown = ? WHERE id = ?",
                (conversation.model_dump_json(), conversation_markdown, query_id),
            )
            if cur.rowcount != 1:
                raise PersistenceError(f"Query {query_id} does not exist")

    def get_run(self, run_id: int) -> Optional[RunRecord]:
        row = self.conn.execute("SELECT * FROM run WHERE id = ?", (run_id,)).fetchone()
        if row is None:
            return None
        return RunRecord(
            id=row["id"],
            input=row["input"],
            hostname=row["hostname"],
            output=row["output"],
            use_real_query=bool(row["use_real_query"]),
            use_database_access=bool(row["use_database_access"]),
            conversation=self._conversation(row["llm_conversation"]),
            conversation_markdown=row["llm_conversation_markdown"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def get_groups(self, run_id: int) -> List[GroupRecord]:
        rows = self.conn.execute("SELECT * FROM query_group WHERE run_id = ? ORDER BY id", (run_id,)).fetchall()
        return [GroupRecord(**dict(row)) for row in rows]

    def get_queries(self, run_id: int) -> List[QueryRecord]:
        rows = self.conn.execute("SELECT * FROM query WHERE run_id = ? ORDER BY id", (run_id,)).fetchall()
        return [self._query(row) for row in rows]

    def get_query(self, query_id: int) -> Optional[QueryRecord]:
        row = self.conn.execute("SELECT * FROM query WHERE id = ?", (query_id,)).fetchone()
        return self._query(row) if row is not None else None

    def get_queries_without_real_query(self, run_id: int) -> List[QueryRecord]:
        rows = self.conn.execute(
            "SELECT * FROM query WHERE run_id = ? AND (real_query IS NULL OR real_query = '') ORDER BY id",
            (run_id,),
        ).fetchall()
        return [self._query(row) for row in rows]

    def get_queries_count(self, run_id: int) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM query WHERE run_id = ?", (run_id,)).fetchone()[0]

    @staticmethod
    def _conversation(raw: Optional[str]) -> Optional[Conversation]:
        return Conversation.model_validate_json(raw) if raw else None

    def _query(self, row: sqlite3.Row) -> QueryRecord:
        return QueryRecord(
            id=row["id"],
            run_id=row["run_id"],
            group_id=row["group_id"],
            digest=row["digest"],
            normalized_query=row["normalized_query"],
            real_query=row["real_query"],
            schema_name=row["schema_name"],
            impact_description=row["impact_description"],
            conversation=self._conversation(row["llm_conversation"]),
            conversation_markdown=row["llm_conversation_markdown"],
        )
