from pydantic import BaseModel
from typing import Optional, Dict, List
from datetime import datetime

class NewRunRequest(BaseModel):
    input: Optional[str] = None
    use_real_query: bool = False
    use_database_access: bool = False

class NewRunResponse(BaseModel):
    run_id: int
    url: str

class GroupView(BaseModel):
    id: int
    name: str
    description: str

class QueryView(BaseModel):
    id: int
    group_id: int
    digest: str
    schema_name: str
    normalized_query: str
    real_query: Optional[str] = None
    impact_description: str
    analyzed: bool

class RunDetailResponse(BaseModel):
    id: int
    input: Optional[str] = None
    hostname: str
    summary: str
    use_real_query: bool
    use_database_access: bool
    created_at: datetime
    groups: List[GroupView]
    queries: List[QueryView]
    missing_sql_count: int

class FetchQueriesResponse(BaseModel):
    total_queries_count: int
    missing_queries_count: int

class AnalysisResponse(BaseModel):
    query_id: int
    conversation_markdown: str
    answer: Optional[str] = None

class FailureView(BaseModel):
    kind: str
    message: str

class RunAnalysisResponse(BaseModel):
    analyzed: List[int]
    failures: Dict[int, FailureView]

class ContinueRequest(BaseModel):
    prompt: str

class HealthResponse(BaseModel):
    status: str
    components: Dict[str, str]
