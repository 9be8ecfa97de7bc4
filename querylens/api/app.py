from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from querylens.api.routes import runs, queries, health

app = FastAPI(
    title="QueryLens API",
    description="LLM assisted selection and analysis of expensive MySQL queries",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(runs.router, prefix="/api/v1", tags=["runs"])
app.include_router(queries.router, prefix="/api/v1", tags=["queries"])
app.include_router(health.router, tags=["health"])
