from fastapi import APIRouter
from querylens.api.models import HealthResponse
from querylens.core.config import settings
from querylens.database.mysql import MySQLAdapter
from querylens.core.llm import LLMService

router = APIRouter()

@router.get("/health", response_model=HealthResponse)
async def check_health():
    components = {}

    # Check DB
    try:
        if settings.analyzed_database:
            db = MySQLAdapter(settings.analyzed_database)
            await db.connect()
            ver = await db.get_version()
            await db.close()
            components["database"] = f"ok (MySQL {ver})"
        else:
            components["database"] = "not_configured"
    except Exception as e:
        components["database"] = f"failed ({e})"

    # Check LLM
    try:
        LLMService(settings.llm)
        components["llm"] = "ok (initialized)"
    except Exception as e:
        components["llm"] = f"failed ({e})"

    return HealthResponse(
        status="healthy" if "failed" not in str(components.values()) else "degraded",
        components=components
    )
