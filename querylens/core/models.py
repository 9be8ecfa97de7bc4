from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from querylens.core.conversation import Conversation


class ModelParams(BaseModel):
    """Per-request model settings. `model` overrides the provider's default model."""
    model: Optional[str] = None
    temperature: float = 1.0
    max_tokens: int = 32_767


class CandidateQuery(BaseModel):
    """One statistics-derived query: a digest plus the schema it ran against."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    schema_name: str = Field(alias="schema")
    digest: str
    normalized_query: str
    impact_description: str


class CandidateQueryGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    queries: List[CandidateQuery] = Field(default_factory=list)


class CandidateResult(BaseModel):
    description: str
    groups: List[CandidateQueryGroup] = Field(default_factory=list)
    conversation: Conversation
    formatted_conversation: str


class AnalysisOutcome(BaseModel):
    query_id: int
    conversation: Conversation
    conversation_markdown: str
