from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator

from querylens.core.analyzer import QueryAnalyzer
from querylens.core.config import Settings
from querylens.core.engine import ConversationEngine
from querylens.core.executor import SandboxedQueryExecutor
from querylens.core.grounding import SchemaGrounder
from querylens.core.llm import LLMService
from querylens.core.runs import RunReader, RunService
from querylens.core.selector import CandidateSelector
from querylens.core.tools import PerformanceSchemaQueryTool
from querylens.database.mysql import MySQLAdapter
from querylens.state.sqlite import SQLiteStateStore


@asynccontextmanager
async def open_run_service(settings: Settings) -> AsyncIterator[RunService]:
    """Wire a RunService from settings; the database pool and state store live for the block."""
    if not settings.analyzed_database:
        raise ValueError("analyzed_database is not configured")

    db = MySQLAdapter(settings.analyzed_database)
    await db.connect()
    store = SQLiteStateStore(settings.state.path)
    try:
        engine = ConversationEngine(LLMService(settings.llm))
        executor = SandboxedQueryExecutor(db, settings.sandbox)
        selector = CandidateSelector(
            engine,
            PerformanceSchemaQueryTool(executor, settings.sandbox.cache_results),
            settings.selection,
        )
        analyzer = QueryAnalyzer(
            engine,
            db,
            store,
            executor,
            grounder=SchemaGrounder(db),
            config=settings.analysis,
            sandbox_config=settings.sandbox,
        )
        yield RunService(selector, analyzer, db, store, settings.analysis)
    finally:
        store.close()
        await db.close()


@contextmanager
def open_run_reader(settings: Settings) -> Iterator[RunReader]:
    """Store-only access for views of stored runs and analyses."""
    store = SQLiteStateStore(settings.state.path)
    try:
        yield RunReader(store)
    finally:
        store.close()
