import pytest
from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock
from querylens.core.config import SandboxConfig, AnalysisConfig
from querylens.core.executor import SandboxedQueryExecutor
from querylens.core.llm import LLMService
from querylens.core.models import CandidateQuery
from querylens.database.base import DatabaseAdapter, StatementText
from querylens.state.sqlite import SQLiteStateStore

ORDERS_DDL = "CREATE TABLE `orders` (\n  `id` int NOT NULL AUTO_INCREMENT,\n  `status` varchar(20),\n  PRIMARY KEY (`id`)\n)"
ORDER_ITEMS_DDL = "CREATE TABLE `order_items` (\n  `id` int NOT NULL AUTO_INCREMENT,\n  `order_id` int NOT NULL,\n  PRIMARY KEY (`id`)\n)"


class MockDatabaseAdapter(DatabaseAdapter):
    def __init__(self):
        self.tables: Dict[str, Dict[str, str]] = {
            "shop": {"orders": ORDERS_DDL, "order_items": ORDER_ITEMS_DDL, "users": "CREATE TABLE `users` (`id` int)"},
        }
        self.query_texts: Dict[Tuple[str, str], str] = {}
        self.rows: List[dict] = [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]
        self.explain_result: Optional[str] = '{"query_block": {"select_id": 1}}'
        self.executed: List[Tuple[str, Optional[str], Optional[int]]] = []

    async def connect(self):
        pass

    async def close(self):
        pass

    async def execute_query(self, sql, params=None, schema=None, max_rows=None):
        self.executed.append((sql, schema, max_rows))
        rows = list(self.rows)
        return rows[:max_rows] if max_rows is not None else rows

    async def list_tables(self, schema):
        return list(self.tables.get(schema, {}))

    async def get_table_ddl(self, schema, table_name):
        return self.tables[schema][table_name]

    async def explain_sql(self, sql, schema):
        if self.explain_result is None:
            raise RuntimeError("You have an error in your SQL syntax near '?'")
        return self.explain_result

    async def get_query_text(self, digest, schema):
        return self.query_texts.get((digest, schema))

    async def get_query_texts(self, digests):
        return [
            StatementText(sql_text=sql, digest=digest, current_schema=schema)
            for (digest, schema), sql in self.query_texts.items()
            if digest in digests
        ]

    async def get_version(self):
        return "MockDB 8.0"

    @property
    def hostname_with_port(self):
        return "mockdb:3306"


def make_response(content=None, tool_calls=None):
    """Chat completion shaped object; tool_calls is a list of (id, name, arguments_json)."""
    calls = [
        SimpleNamespace(id=call_id, type="function", function=SimpleNamespace(name=name, arguments=arguments))
        for call_id, name, arguments in tool_calls or []
    ]
    message = SimpleNamespace(content=content, tool_calls=calls or None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def response_factory():
    return make_response


@pytest.fixture
def mock_db_adapter():
    return MockDatabaseAdapter()


@pytest.fixture
def sandbox_config():
    return SandboxConfig(cache_results=False)


@pytest.fixture
def executor(mock_db_adapter, sandbox_config):
    return SandboxedQueryExecutor(mock_db_adapter, sandbox_config)


@pytest.fixture
def state_store():
    store = SQLiteStateStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def analysis_config():
    return AnalysisConfig(max_concurrency=2)


@pytest.fixture
def mock_llm():
    llm = MagicMock(spec=LLMService)
    llm.chat = AsyncMock()
    return llm


@pytest.fixture
def candidate():
    return CandidateQuery(
        schema="shop",
        digest="3f1a9c",
        normalized_query="SELECT * FROM Orders o JOIN `order_items` oi ON oi.order_id = o.id WHERE o.status = ?",
        impact_description="Full scan of orders on every call",
    )
