import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from querylens.core.analyzer import QueryAnalyzer
from querylens.core.config import AnalysisConfig
from querylens.core.errors import FailureKind, NotFoundError, QueryLensError
from querylens.core.models import AnalysisOutcome, CandidateQuery
from querylens.core.selector import CandidateSelector
from querylens.database.base import DatabaseAdapter
from querylens.state.base import GroupRecord, QueryRecord, RunRecord, StateStore
from querylens.utils.formatting import conversation_to_markdown

logger = logging.getLogger(__name__)

INVALID_SCHEMAS = {"", "NULL", "unknown"}


@dataclass
class AnalysisFailure:
    kind: FailureKind
    message: str


@dataclass
class AnalysisReport:
    outcomes: Dict[int, AnalysisOutcome] = field(default_factory=dict)
    failures: Dict[int, AnalysisFailure] = field(default_factory=dict)


class RunReader:
    """Read access to stored runs and analyses; needs neither the analyzed server nor a model."""

    def __init__(self, store: StateStore):
        self.store = store

    def get_run(self, run_id: int) -> RunRecord:
        run = self.store.get_run(run_id)
        if run is None:
            raise NotFoundError(f"Run {run_id} not found")
        return run

    def get_query(self, query_id: int) -> QueryRecord:
        query = self.store.get_query(query_id)
        if query is None:
            raise NotFoundError(f"Query {query_id} not found")
        return query

    def get_groups(self, run_id: int) -> List[GroupRecord]:
        return self.store.get_groups(run_id)

    def get_queries(self, run_id: int) -> List[QueryRecord]:
        return self.store.get_queries(run_id)


class RunService(RunReader):
    """Ties selection, analysis and the state store together for one analyzed server."""

    def __init__(
        self,
        selector: CandidateSelector,
        analyzer: QueryAnalyzer,
        db: DatabaseAdapter,
        store: StateStore,
        config: Optional[AnalysisConfig] = None,
    ):
        super().__init__(store)
        self.selector = selector
        self.analyzer = analyzer
        self.db = db
        self.config = config or AnalysisConfig()

    async def new_run(self, input: Optional[str], use_real_query: bool = False, use_database_access: bool = False) -> int:
        """
        Select candidates and record them. Nothing is written when selection
        fails; the write transaction never spans a model or database round-trip.
        """
        result = await self.selector.select_candidates(input)

        prepared: List[Tuple[str, str, List[Tuple[CandidateQuery, Optional[str]]]]] = []
        for group in result.groups:
            queries = []
            for query in group.queries:
                if (query.schema_name or "").strip() in INVALID_SCHEMAS:
                    logger.info(f"Skipping candidate {query.digest} without schema")
                    continue
                queries.append((query, await self._lookup_real_query(query)))
            prepared.append((group.name, group.description, queries))

        with self.store.transaction():
            run_id = self.store.create_run(
                input=input,
                hostname=self.db.hostname_with_port,
                output=result.description,
                use_real_query=use_real_query,
                use_database_access=use_database_access,
                conversation=result.conversation,
                conversation_markdown=result.formatted_conversation,
            )
            for name, description, queries in prepared:
                group_id = self.store.create_group(run_id, name, description)
                for query, real_query in queries:
                    self.store.create_query(
                        run_id=run_id,
                        group_id=group_id,
                        digest=query.digest,
                        normalized_query=query.normalized_query,
                        real_query=real_query,
                        schema=query.schema_name,
                        impact_description=query.impact_description,
                    )

        logger.info(f"Created run {run_id} with {len(prepared)} group(s)")
        return run_id

    async def fetch_missing_queries(self, run_id: int) -> Tuple[int, int]:
        """Look up real SQL for queries that have none yet. Returns (total, still missing)."""
        self.get_run(run_id)
        total = self.store.get_queries_count(run_id)

        missing: Dict[int, QueryRecord] = {q.id: q for q in self.store.get_queries_without_real_query(run_id)}
        if not missing:
            return total, 0

        digests = sorted({q.digest for q in missing.values()})
        for statement in await self.db.get_query_texts(digests):
            for query_id, query in list(missing.items()):
                if query.digest == statement.digest and query.schema_name == statement.current_schema:
                    self.store.set_real_query(query_id, statement.sql_text)
                    del missing[query_id]

        return total, len(missing)

    async def analyze(self, query_id: int) -> AnalysisOutcome:
        query = self.get_query(query_id)
        run = self.get_run(query.run_id)
        candidate = CandidateQuery(
            schema=query.schema_name,
            digest=query.digest,
            normalized_query=query.normalized_query,
            impact_description=query.impact_description,
        )
        task = self.analyzer.analyze_query(
            query.id, query.real_query, candidate, run.use_real_query, run.use_database_access
        )
        return await task

    async def analyze_run(self, run_id: int, only_pending: bool = True) -> AnalysisReport:
        """Analyze queries of a run concurrently; a failure only affects its own query."""
        self.get_run(run_id)
        queries = self.store.get_queries(run_id)
        if only_pending:
            queries = [q for q in queries if not q.is_analyzed]

        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def bounded(query_id: int) -> AnalysisOutcome:
            async with semaphore:
                return await self.analyze(query_id)

        results = await asyncio.gather(*(bounded(q.id) for q in queries), return_exceptions=True)

        report = AnalysisReport()
        for query, result in zip(queries, results):
            if isinstance(result, AnalysisOutcome):
                report.outcomes[query.id] = result
            elif isinstance(result, QueryLensError):
                logger.warning(f"Analysis of query {query.id} failed ({result.kind.value}): {result}")
                report.failures[query.id] = AnalysisFailure(kind=result.kind, message=str(result))
            elif isinstance(result, Exception):
                logger.error(f"Analysis of query {query.id} failed: {result}")
                report.failures[query.id] = AnalysisFailure(kind=FailureKind.TRANSPORT, message=str(result))
            else:
                raise result
        return report

    async def continue_analysis(self, query_id: int, prompt: str) -> AnalysisOutcome:
        query = self.get_query(query_id)
        if query.conversation is None:
            raise NotFoundError(f"Query {query_id} has not been analyzed yet")
        run = self.get_run(query.run_id)

        conversation = await self.analyzer.continue_conversation(
            query.conversation, prompt, run.use_database_access, query.schema_name
        )
        markdown = conversation_to_markdown(conversation)
        self.store.update_conversation(query_id, conversation, markdown)
        return AnalysisOutcome(query_id=query_id, conversation=conversation, conversation_markdown=markdown)

    async def _lookup_real_query(self, query: CandidateQuery) -> Optional[str]:
        try:
            return await self.db.get_query_text(query.digest, query.schema_name)
        except Exception as e:
            logger.warning(f"Real query lookup failed for {query.digest}: {e}")
            return None
