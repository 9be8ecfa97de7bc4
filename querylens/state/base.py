from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from querylens.core.conversation import Conversation


class RunRecord(BaseModel):
    id: int
    input: Optional[str] = None
    hostname: str
    output: str
    use_real_query: bool
    use_database_access: bool
    conversation: Optional[Conversation] = None
    conversation_markdown: Optional[str] = None
    created_at: datetime


class GroupRecord(BaseModel):
    id: int
    run_id: int
    name: str
    description: str


class QueryRecord(BaseModel):
    id: int
    run_id: int
    group_id: int
    digest: str
    normalized_query: str
    real_query: Optional[str] = None
    schema_name: str
    impact_description: str
    conversation: Optional[Conversation] = None
    conversation_markdown: Optional[str] = None

    @property
    def is_analyzed(self) -> bool:
        return self.conversation is not None


class StateStore(ABC):
    """Bookkeeping of runs, their query groups and per-query analyses."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Group writes; commits on success, rolls back on error. Nestable."""
        pass

    @abstractmethod
    def create_run(
        self,
        input: Optional[str],
        hostname: str,
        output: str,
        use_real_query: bool,
        use_database_access: bool,
        conversation: Conversation,
        conversation_markdown: str,
    ) -> int:
        pass

    @abstractmethod
    def create_group(self, run_id: int, name: str, description: str) -> int:
        pass

    @abstractmethod
    def create_query(
        self,
        run_id: int,
        group_id: int,
        digest: str,
        normalized_query: str,
        real_query: Optional[str],
        schema: str,
        impact_description: str,
    ) -> int:
        pass

    @abstractmethod
    def set_real_query(self, query_id: int, sql: str) -> None:
        pass

    @abstractmethod
    def update_conversation(self, query_id: int, conversation: Conversation, conversation_markdown: str) -> None:
        """Store the analysis of a query, replacing any earlier one. Atomic."""
        pass

    @abstractmethod
    def get_run(self, run_id: int) -> Optional[RunRecord]:
        pass

    @abstractmethod
    def get_groups(self, run_id: int) -> List[GroupRecord]:
        pass

    @abstractmethod
    def get_queries(self, run_id: int) -> List[QueryRecord]:
        pass

    @abstractmethod
    def get_query(self, query_id: int) -> Optional[QueryRecord]:
        pass

    @abstractmethod
    def get_queries_without_real_query(self, run_id: int) -> List[QueryRecord]:
        pass

    @abstractmethod
    def get_queries_count(self, run_id: int) -> int:
        pass
