"""
Query optimizer router
- POST /api/optimize: safety gate, metadata, EXPLAIN, AI advice
- GET /api/health: MySQL / cache / LLM reachability
- DELETE /api/cache/tables/{table_name}: drop cached table metadata
"""
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.errors import ExecutionError, NotFoundError, OptimizerError, ParseError, SecurityError
from app.core.pipeline import OrchestrationPipeline
from app.deps import get_pipeline
from app.smart_logger import SmartLogger


router = APIRouter(prefix="/api", tags=["Query Optimizer"])

MAX_QUERY_CHARS = 10000

# Status code per propagated error kind
ERROR_STATUS = {
    SecurityError: 403,
    ParseError: 400,
    NotFoundError: 404,
    ExecutionError: 422,
}


class OptimizeRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    query: str = Field(..., min_length=1, max_length=MAX_QUERY_CHARS, description="SQL statement to optimize")
    include_index_recommendations: bool = Field(
        default=False,
        description="Allow the model to propose new indexes",
    )


def _error_detail(message: str, error_type: str) -> Dict[str, Any]:
    return {"success": False, "error": message, "type": error_type}


@router.post("/optimize")
async def optimize_query(
    request: OptimizeRequest,
    pipeline: OrchestrationPipeline = Depends(get_pipeline),
) -> Dict[str, Any]:
    """
    Analyze a SQL statement and return an optimized rewrite.

    - Rejects anything that is not a read-only statement
    - Returns the EXPLAIN plan, table schemas and indexes used for the advice
    """
    start_time = time.perf_counter()
    SmartLogger.log(
        "INFO",
        "optimizer.request",
        category="optimizer.request",
        params={
            "query": request.query,
            "include_index_recommendations": request.include_index_recommendations,
        },
    )

    try:
        result = await pipeline.optimize(request.query, request.include_index_recommendations)
    except OptimizerError as exc:
        status_code = ERROR_STATUS.get(type(exc), 500)
        error_type = exc.error_type if status_code != 500 else "INTERNAL_ERROR"
        SmartLogger.log(
            "WARNING" if status_code < 500 else "ERROR",
            "optimizer.request.failed",
            category="optimizer.request",
            params={"status_code": status_code, "type": error_type, "error": exc.message},
        )
        raise HTTPException(status_code=status_code, detail=_error_detail(exc.message, error_type))
    except Exception as exc:
        SmartLogger.log(
            "ERROR",
            "optimizer.request.unexpected_error",
            category="optimizer.request",
            params={"exception": repr(exc)},
        )
        raise HTTPException(status_code=500, detail=_error_detail("Internal server error", "INTERNAL_ERROR"))

    SmartLogger.log(
        "INFO",
        "optimizer.request.done",
        category="optimizer.request",
        params={
            "tables": [schema.table_name for schema in result.tables],
            "cache_hit": result.cache_hit,
            "elapsed_ms": round((time.perf_counter() - start_time) * 1000, 2),
        },
    )
    return {"success": True, "data": result.to_response()}


@router.get("/health")
async def health(pipeline: OrchestrationPipeline = Depends(get_pipeline)) -> JSONResponse:
    status = await pipeline.health_check()
    body = {
        "success": status.healthy,
        "data": {
            "status": "healthy" if status.healthy else "unhealthy",
            "services": {
                "mysql": "up" if status.database_reachable else "down",
                "redis": "up" if status.cache_reachable else "down",
                "llm": "up" if status.model_reachable else "down",
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }
    if not status.healthy:
        SmartLogger.log("WARNING", "optimizer.health.unhealthy", category="optimizer.health", params=body["data"])
    return JSONResponse(status_code=200 if status.healthy else 503, content=body)


@router.delete("/cache/tables/{table_name}")
async def invalidate_table_cache(
    table_name: str,
    pipeline: OrchestrationPipeline = Depends(get_pipeline),
) -> Dict[str, Any]:
    """Drop cached schema and index metadata of one table."""
    await pipeline.invalidate_table(table_name)
    return {"success": True, "data": {"table": table_name, "invalidated": True}}
