import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from querylens.core.conversation import ToolCall, ToolResult
from querylens.core.errors import ToolInputError
from querylens.core.executor import SandboxedQueryExecutor
from querylens.core.models import CandidateQuery, CandidateQueryGroup

logger = logging.getLogger(__name__)

MODEL_ROW_LIMIT = 250


class ToolDefinition(ABC):
    """A capability offered to the model: name, description, input schema and handler."""

    name: str
    description: str
    input_model: Type[BaseModel]

    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema()

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema(),
            },
        }

    def parse_input(self, call: ToolCall) -> BaseModel:
        arguments = call.parse_arguments()
        try:
            return self.input_model.model_validate(arguments)
        except ValidationError as e:
            raise ToolInputError(f"Invalid input for tool '{self.name}': {e}") from e

    @abstractmethod
    async def handle(self, payload: BaseModel) -> str:
        """Execute the tool and return the content sent back to the model."""
        pass


class ToolRegistry:
    def __init__(self, tools: Optional[Iterable[ToolDefinition]] = None):
        self._tools: Dict[str, ToolDefinition] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def definitions(self) -> List[Dict[str, Any]]:
        return [tool.to_openai() for tool in self._tools.values()]

    async def dispatch(self, call: ToolCall) -> ToolResult:
        """Run one tool call. Never raises: every failure becomes error content for the model."""
        tool = self._tools.get(call.name)
        if tool is None:
            available = ", ".join(self._tools) or "none"
            logger.warning(f"Model called unknown tool {call.name}")
            return ToolResult(
                tool_call_id=call.id,
                name=call.name,
                content=f"Error: Tool {call.name} not found. Available tools: {available}",
                is_error=True,
            )

        try:
            payload = tool.parse_input(call)
        except ToolInputError as e:
            logger.info(f"Rejected input for tool {call.name}: {e}")
            return ToolResult(tool_call_id=call.id, name=call.name, content=f"Error: {e}", is_error=True)

        logger.info(f"Agent calling tool: {call.name}")
        try:
            content = await tool.handle(payload)
        except Exception as e:
            logger.exception(f"Tool {call.name} failed")
            return ToolResult(
                tool_call_id=call.id,
                name=call.name,
                content=f"Error executing {call.name}: {e}",
                is_error=True,
            )

        return ToolResult(tool_call_id=call.id, name=call.name, content=content)


class QueryInput(BaseModel):
    query: str = Field(description="SQL query to run")


class PerformanceSchemaQueryTool(ToolDefinition):
    name = "performance_schema_query"
    description = (
        "Run SQL query against performance_schema.events_statements_summary_by_digest "
        f"and return results as markdown table. Only first {MODEL_ROW_LIMIT} rows are returned."
    )
    input_model = QueryInput

    def __init__(self, executor: SandboxedQueryExecutor, cache_results: bool = False):
        self.executor = executor
        self.cache_results = cache_results

    async def handle(self, payload: QueryInput) -> str:
        return await self.executor.execute_query(
            "performance_schema", payload.query, self.cache_results, MODEL_ROW_LIMIT
        )


class DatabaseQueryTool(ToolDefinition):
    """Read access to the analyzed schema for exploratory queries during analysis."""

    name = "database_query"
    input_model = QueryInput

    def __init__(self, executor: SandboxedQueryExecutor, schema: str, cache_results: bool = False):
        self.executor = executor
        self.schema = schema
        self.cache_results = cache_results
        self.description = (
            f"Run read-only SQL query in database `{schema}` and return results as markdown table. "
            f"Only first {MODEL_ROW_LIMIT} rows are returned."
        )

    async def handle(self, payload: QueryInput) -> str:
        return await self.executor.execute_query(self.schema, payload.query, self.cache_results, MODEL_ROW_LIMIT)


class SelectedQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    digest: str = Field(description="The DIGEST from events_statements_summary_by_digest")
    query_sample: str = Field(description="The DIGEST_TEXT or QUERY_SAMPLE_TEXT of the query")
    schema_name: str = Field(alias="schema", description="The database schema (SCHEMA_NAME) the query operates on")
    reason: str = Field(
        description=(
            "Explanation of why this query is worth optimizing - formulate it in a way that it will be "
            "obvious if mentioned numbers are about a single query or total for all queries in the group"
        )
    )


class SubmitSelectionInput(BaseModel):
    group_name: str = Field(description="Group name")
    group_description: str = Field(description="Description of performance impact type of the group")
    queries: List[SelectedQuery] = Field(
        min_length=1,
        max_length=20,
        description="Array of queries to optimize (min 1, max 20)",
    )


class SelectionAccumulator:
    """Submissions of one selection session, in the order the model made them."""

    def __init__(self):
        self.submissions: List[SubmitSelectionInput] = []

    def add(self, submission: SubmitSelectionInput) -> None:
        self.submissions.append(submission)

    def groups(self) -> List[CandidateQueryGroup]:
        return [
            CandidateQueryGroup(
                name=submission.group_name,
                description=submission.group_description,
                queries=[
                    CandidateQuery(
                        schema=query.schema_name,
                        digest=query.digest,
                        normalized_query=query.query_sample,
                        impact_description=query.reason,
                    )
                    for query in submission.queries
                ],
            )
            for submission in self.submissions
        ]


class SubmitSelectionTool(ToolDefinition):
    name = "submit_selection"
    description = "Submit your selection of up to 20 most expensive queries for one group"
    input_model = SubmitSelectionInput

    def __init__(self, accumulator: SelectionAccumulator):
        self.accumulator = accumulator

    async def handle(self, payload: SubmitSelectionInput) -> str:
        self.accumulator.add(payload)
        logger.info(f"Selection submitted: {payload.group_name} ({len(payload.queries)} queries)")
        return "Selection submitted"
