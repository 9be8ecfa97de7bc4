from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from pydantic import BaseModel


class StatementText(BaseModel):
    """A captured statement from the statement history tables."""
    sql_text: str
    digest: str
    current_schema: Optional[str] = None


class DatabaseAdapter(ABC):
    """Abstract base class for the analyzed database."""

    @abstractmethod
    async def connect(self):
        """Establish connection to the database."""
        pass

    @abstractmethod
    async def close(self):
        """Close the database connection."""
        pass

    @abstractmethod
    async def execute_query(
        self,
        sql: str,
        params: tuple = None,
        schema: Optional[str] = None,
        max_rows: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Execute a read query, optionally in another schema and capped at max_rows."""
        pass

    @abstractmethod
    async def list_tables(self, schema: str) -> List[str]:
        """Names of the base tables in a schema."""
        pass

    @abstractmethod
    async def get_table_ddl(self, schema: str, table_name: str) -> str:
        """CREATE statement of a table."""
        pass

    @abstractmethod
    async def explain_sql(self, sql: str, schema: str) -> str:
        """JSON execution plan of the SQL. Raises when the SQL cannot be explained."""
        pass

    @abstractmethod
    async def get_query_text(self, digest: str, schema: str) -> Optional[str]:
        """Real SQL text for a digest, or None when the history no longer has it."""
        pass

    @abstractmethod
    async def get_query_texts(self, digests: List[str]) -> List[StatementText]:
        """Batch variant of get_query_text across all schemas."""
        pass

    @abstractmethod
    async def get_version(self) -> str:
        """Get database version."""
        pass

    @property
    def hostname_with_port(self) -> str:
        return "unknown"
