"""FastAPI main application"""
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.config import settings
from app.deps import Dependencies
from app.routers import optimizer
from app.smart_logger import SmartLogger
from app.sanity_checks.runner import run_startup_sanity_checks_or_raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    print("Starting SQL Query Optimizer API...")
    deps = await Dependencies.create(settings)
    try:
        if settings.startup_sanity_checks_enabled:
            # Fail-fast sanity checks (external dependencies)
            await run_startup_sanity_checks_or_raise(deps)
    except Exception:
        await deps.close()
        raise

    app.state.deps = deps
    app.state.pipeline = deps.pipeline

    print(f"Target database: mysql://{settings.mysql_host}:{settings.mysql_port}/{settings.mysql_database}")
    print(f"Result cache: {settings.cache_backend}")
    llm_url_suffix = (
        f" (base_url={settings.llm_provider_url})"
        if (settings.llm_provider in {"openai", "openai_compatible"} and settings.llm_provider_url)
        else ""
    )
    print(f"Using LLM: {settings.llm_provider}:{settings.llm_model}{llm_url_suffix}")
    SmartLogger.log(
        "INFO",
        "Starting SQL Query Optimizer API...",
        category="main.lifespan.start",
    )

    yield

    # Shutdown
    print("Shutting down...")
    app.state.pipeline = None
    await deps.close()
    SmartLogger.log("INFO", "main.lifespan.stopped", category="main.lifespan.stop")


app = FastAPI(
    title="SQL Query Optimizer API",
    description="""
    AI-assisted optimization of read-only MySQL queries.

    ## Features
    - Safety gate (read-only statements only, fail-closed)
    - EXPLAIN plan, table schema and index collection with caching
    - Rewritten query with reasoning and optional index recommendations

    ## Workflow
    1. Optimize a query: `POST /api/optimize`
    2. Check dependencies: `GET /api/health`
    3. Refresh table metadata: `DELETE /api/cache/tables/{table_name}`
    """,
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origin.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(optimizer.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "SQL Query Optimizer API",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "optimize": "POST /api/optimize",
            "health": "GET /api/health",
            "invalidate_table_cache": "DELETE /api/cache/tables/{table_name}",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True
    )
