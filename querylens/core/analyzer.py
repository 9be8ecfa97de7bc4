import asyncio
import logging
from typing import Optional

from querylens.core.config import AnalysisConfig, SandboxConfig
from querylens.core.conversation import Conversation, Message
from querylens.core.engine import ConversationEngine
from querylens.core.errors import PersistenceError
from querylens.core.executor import SandboxedQueryExecutor
from querylens.core.grounding import SchemaGrounder
from querylens.core.models import AnalysisOutcome, CandidateQuery, ModelParams
from querylens.core.tools import DatabaseQueryTool, ToolRegistry
from querylens.database.base import DatabaseAdapter
from querylens.prompts.analysis import build_analysis_prompt
from querylens.state.base import StateStore
from querylens.utils.formatting import conversation_to_markdown

logger = logging.getLogger(__name__)


class QueryAnalyzer:
    """
    Deep-dive on a single candidate query: gathers plan and table DDL, runs the
    conversation and stores the result against the query record.
    """

    def __init__(
        self,
        engine: ConversationEngine,
        db: DatabaseAdapter,
        store: StateStore,
        executor: SandboxedQueryExecutor,
        grounder: Optional[SchemaGrounder] = None,
        config: Optional[AnalysisConfig] = None,
        sandbox_config: Optional[SandboxConfig] = None,
    ):
        self.engine = engine
        self.db = db
        self.store = store
        self.executor = executor
        self.grounder = grounder or SchemaGrounder(db)
        self.config = config or AnalysisConfig()
        self.sandbox_config = sandbox_config or SandboxConfig()

    def analyze_query(
        self,
        query_id: int,
        raw_sql: Optional[str],
        candidate: CandidateQuery,
        use_real_query: bool,
        use_database_access: bool,
    ) -> "asyncio.Task[AnalysisOutcome]":
        """Schedule the analysis; the returned task can be awaited or cancelled."""
        return asyncio.create_task(
            self._analyze(query_id, raw_sql, candidate, use_real_query, use_database_access),
            name=f"analyze-query-{query_id}",
        )

    def continue_conversation(
        self,
        conversation: Conversation,
        prompt: str,
        use_database_access: bool,
        schema: Optional[str] = None,
    ) -> "asyncio.Task[Conversation]":
        if use_database_access and not schema:
            raise ValueError("schema is required when database access is enabled")

        new_conversation = conversation.with_message(Message.user(prompt))
        return asyncio.create_task(self._send(new_conversation, use_database_access, schema))

    async def build_prompt(
        self,
        query_id: int,
        raw_sql: Optional[str],
        candidate: CandidateQuery,
        use_real_query: bool,
        use_database_access: bool,
    ) -> str:
        schema = candidate.schema_name

        if not raw_sql:
            raw_sql = await self._resolve_real_query(query_id, candidate)

        if raw_sql and use_real_query:
            prompt_sql = raw_sql
        else:
            prompt_sql = candidate.normalized_query

        explain = None
        # normalized text is model-written; only guarded SQL is explained
        is_safe, err = self.executor.security.validate_sql(prompt_sql)
        if not is_safe:
            logger.warning(f"Not explaining query {query_id}: {err}")
        else:
            try:
                explain = await self.db.explain_sql(prompt_sql.strip().rstrip(";"), schema)
            except Exception as e:
                # normalized statements with placeholders cannot be explained
                logger.info(f"No plan for query {query_id}: {e}")

        tables = await self.grounder.ground(prompt_sql, schema)

        return build_analysis_prompt(
            sql=prompt_sql,
            schema=schema,
            digest=candidate.digest,
            tables=tables,
            explain=explain,
            use_database_access=use_database_access,
        )

    async def _analyze(self, query_id, raw_sql, candidate, use_real_query, use_database_access) -> AnalysisOutcome:
        logger.info(f"Analyzing query {query_id} ({candidate.schema_name}, {candidate.digest})")
        prompt = await self.build_prompt(query_id, raw_sql, candidate, use_real_query, use_database_access)

        conversation = await self._send(Conversation.from_prompt(prompt), use_database_access, candidate.schema_name)
        markdown = conversation_to_markdown(conversation)

        try:
            self.store.update_conversation(query_id, conversation, markdown)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to store analysis of query {query_id}: {e}") from e

        logger.info(f"Analysis of query {query_id} stored ({len(conversation)} messages)")
        return AnalysisOutcome(query_id=query_id, conversation=conversation, conversation_markdown=markdown)

    async def _resolve_real_query(self, query_id: int, candidate: CandidateQuery) -> Optional[str]:
        try:
            raw_sql = await self.db.get_query_text(candidate.digest, candidate.schema_name)
        except Exception as e:
            logger.warning(f"Real query lookup failed for {candidate.digest}: {e}")
            return None

        if raw_sql:
            try:
                self.store.set_real_query(query_id, raw_sql)
            except PersistenceError as e:
                logger.warning(f"Could not store real query of {query_id}: {e}")
        return raw_sql

    async def _send(self, conversation: Conversation, use_database_access: bool, schema: Optional[str]) -> Conversation:
        tools = ToolRegistry()
        if use_database_access:
            tools.register(DatabaseQueryTool(self.executor, schema, self.sandbox_config.cache_results))

        params = ModelParams(
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        return await self.engine.run_async(conversation, tools, params)
