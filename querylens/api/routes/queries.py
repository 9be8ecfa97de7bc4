from fastapi import APIRouter
from querylens.api.models import AnalysisResponse, ContinueRequest
from querylens.api.routes.errors import translate_errors
from querylens.core.config import settings
from querylens.core.errors import NotFoundError
from querylens.core.services import open_run_reader, open_run_service

router = APIRouter()

@router.get("/queries/{query_id}", response_model=AnalysisResponse)
async def query_detail(query_id: int):
    with translate_errors():
        with open_run_reader(settings) as reader:
            query = reader.get_query(query_id)
            if query.conversation is None:
                raise NotFoundError(f"Query {query_id} has not been analyzed yet")

    return AnalysisResponse(
        query_id=query.id,
        conversation_markdown=query.conversation_markdown or "",
        answer=query.conversation.last_text,
    )

@router.post("/queries/{query_id}/analyze", response_model=AnalysisResponse)
async def analyze_query(query_id: int):
    with translate_errors():
        async with open_run_service(settings) as service:
            outcome = await service.analyze(query_id)

    return AnalysisResponse(
        query_id=outcome.query_id,
        conversation_markdown=outcome.conversation_markdown,
        answer=outcome.conversation.last_text,
    )

@router.post("/queries/{query_id}/continue", response_model=AnalysisResponse)
async def continue_query(query_id: int, request: ContinueRequest):
    with translate_errors():
        async with open_run_service(settings) as service:
            outcome = await service.continue_analysis(query_id, request.prompt)

    return AnalysisResponse(
        query_id=outcome.query_id,
        conversation_markdown=outcome.conversation_markdown,
        answer=outcome.conversation.last_text,
    )
