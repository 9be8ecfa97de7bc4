from fastapi import APIRouter
from querylens.api.models import (
    FailureView,
    FetchQueriesResponse,
    GroupView,
    NewRunRequest,
    NewRunResponse,
    QueryView,
    RunAnalysisResponse,
    RunDetailResponse,
)
from querylens.api.routes.errors import translate_errors
from querylens.core.config import settings
from querylens.core.services import open_run_reader, open_run_service

router = APIRouter()

@router.post("/runs", response_model=NewRunResponse)
async def new_run(request: NewRunRequest):
    with translate_errors():
        async with open_run_service(settings) as service:
            run_id = await service.new_run(
                request.input,
                use_real_query=request.use_real_query,
                use_database_access=request.use_database_access,
            )

    return NewRunResponse(run_id=run_id, url=f"/api/v1/runs/{run_id}")

@router.get("/runs/{run_id}", response_model=RunDetailResponse)
async def run_detail(run_id: int):
    with translate_errors():
        with open_run_reader(settings) as reader:
            run = reader.get_run(run_id)
            groups = reader.get_groups(run_id)
            queries = reader.get_queries(run_id)

    return RunDetailResponse(
        id=run.id,
        input=run.input,
        hostname=run.hostname,
        summary=run.output,
        use_real_query=run.use_real_query,
        use_database_access=run.use_database_access,
        created_at=run.created_at,
        groups=[GroupView(id=g.id, name=g.name, description=g.description) for g in groups],
        queries=[
            QueryView(
                id=q.id,
                group_id=q.group_id,
                digest=q.digest,
                schema_name=q.schema_name,
                normalized_query=q.normalized_query,
                real_query=q.real_query,
                impact_description=q.impact_description,
                analyzed=q.is_analyzed,
            )
            for q in queries
        ],
        missing_sql_count=sum(1 for q in queries if not q.real_query),
    )

@router.post("/runs/{run_id}/fetch-queries", response_model=FetchQueriesResponse)
async def fetch_queries(run_id: int):
    with translate_errors():
        async with open_run_service(settings) as service:
            total, missing = await service.fetch_missing_queries(run_id)

    return FetchQueriesResponse(total_queries_count=total, missing_queries_count=missing)

@router.post("/runs/{run_id}/analyze", response_model=RunAnalysisResponse)
async def analyze_run(run_id: int, only_pending: bool = True):
    with translate_errors():
        async with open_run_service(settings) as service:
            report = await service.analyze_run(run_id, only_pending=only_pending)

    return RunAnalysisResponse(
        analyzed=sorted(report.outcomes),
        failures={
            query_id: FailureView(kind=failure.kind.value, message=failure.message)
            for query_id, failure in report.failures.items()
        },
    )
