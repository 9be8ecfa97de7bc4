from enum import Enum


class FailureKind(str, Enum):
    RESOLUTION_MISS = "resolution_miss"
    VALIDATION = "validation"
    TOOL = "tool"
    TRANSPORT = "transport"
    PERSISTENCE = "persistence"


class QueryLensError(Exception):
    """Base exception for QueryLens."""
    kind: FailureKind = FailureKind.TOOL


class ConversationError(QueryLensError):
    """A message would break the tool call / tool result pairing."""
    kind = FailureKind.VALIDATION


class ToolInputError(QueryLensError):
    """Tool input is not valid JSON or does not match the input schema."""
    kind = FailureKind.VALIDATION


class ToolExecutionError(QueryLensError):
    """A tool handler failed."""
    kind = FailureKind.TOOL


class TransportError(QueryLensError):
    """The model could not be reached or returned an unusable response."""
    kind = FailureKind.TRANSPORT


class PersistenceError(QueryLensError):
    """A finished conversation could not be stored."""
    kind = FailureKind.PERSISTENCE


class NotFoundError(QueryLensError):
    """Run or query record does not exist."""
    kind = FailureKind.RESOLUTION_MISS
