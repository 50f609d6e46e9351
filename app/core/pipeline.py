"""
Request orchestration for query optimization.

RECEIVED -> SAFETY_CHECKED -> TABLES_RESOLVED -> METADATA_RESOLVED
         -> PLAN_OBTAINED -> ADVISED -> COMPLETE

Terminal states: REJECTED (unsafe verdict), FAILED (no tables, missing table,
database error). The state only lives for one call; transitions are logged.
"""
import asyncio
import time
import uuid
from enum import Enum
from typing import Any, Awaitable, Dict, Optional

from app.core.errors import OptimizerError, ParseError, SecurityError
from app.core.interfaces import TextClassifier, TextExtractor
from app.core.llm_client import LanguageModelClient
from app.core.metadata_store import MetadataStore
from app.core.models import HealthStatus, OptimizationResult
from app.core.optimization_advisor import OptimizationAdvisor
from app.core.result_cache import ResultCache
from app.core.schema_cache import SchemaCacheGateway
from app.smart_logger import SmartLogger


class PipelineStage(str, Enum):
    RECEIVED = "RECEIVED"
    SAFETY_CHECKED = "SAFETY_CHECKED"
    TABLES_RESOLVED = "TABLES_RESOLVED"
    METADATA_RESOLVED = "METADATA_RESOLVED"
    PLAN_OBTAINED = "PLAN_OBTAINED"
    ADVISED = "ADVISED"
    COMPLETE = "COMPLETE"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


def _log_stage(request_id: str, stage: PipelineStage, started: float, params: Optional[Dict[str, Any]] = None) -> None:
    SmartLogger.log(
        "DEBUG",
        "optimizer.pipeline.stage",
        category="optimizer.pipeline",
        params={
            "request_id": request_id,
            "stage": stage.value,
            "elapsed_ms": round((time.perf_counter() - started) * 1000, 1),
            **(params or {}),
        },
    )


async def _probe(name: str, check: Awaitable[bool]) -> bool:
    try:
        return bool(await check)
    except Exception as exc:
        SmartLogger.log(
            "WARNING",
            "optimizer.health.probe_failed",
            category="optimizer.health",
            params={"probe": name, "exception": repr(exc)},
        )
        return False


class OrchestrationPipeline:
    """
    Args:
        classifier: safety gate for the user statement
        extractor: referenced-table extraction
        schema_cache: read-through schema/index lookups
        metadata_store: store used for EXPLAIN (normally the guarded store)
        advisor: optimization advice
        cache / llm: probed by ``health_check``
    """

    def __init__(
        self,
        *,
        classifier: TextClassifier,
        extractor: TextExtractor,
        schema_cache: SchemaCacheGateway,
        metadata_store: MetadataStore,
        advisor: OptimizationAdvisor,
        cache: ResultCache,
        llm: LanguageModelClient,
    ):
        self.classifier = classifier
        self.extractor = extractor
        self.schema_cache = schema_cache
        self.metadata_store = metadata_store
        self.advisor = advisor
        self.cache = cache
        self.llm = llm

    async def optimize(self, statement: str, include_index_recommendations: bool = False) -> OptimizationResult:
        request_id = uuid.uuid4().hex[:12]
        started = time.perf_counter()
        stage = PipelineStage.RECEIVED
        _log_stage(request_id, stage, started, {"statement": statement})

        verdict = await self.classifier.classify(statement)
        stage = PipelineStage.SAFETY_CHECKED
        _log_stage(request_id, stage, started, {"is_safe": verdict.is_safe, "query_type": verdict.query_type.value})
        if not verdict.is_safe:
            _log_stage(request_id, PipelineStage.REJECTED, started, {"reason": verdict.reason})
            raise SecurityError(f"Query rejected for security reasons: {verdict.reason}")

        try:
            tables = await self.extractor.extract(statement)
            stage = PipelineStage.TABLES_RESOLVED
            _log_stage(request_id, stage, started, {"tables": tables})
            if not tables:
                raise ParseError("No tables found in query")

            resolved = await self.schema_cache.resolve_tables(tables)
            stage = PipelineStage.METADATA_RESOLVED
            _log_stage(request_id, stage, started, {"cache_hit": resolved.all_hit, "indexes": len(resolved.indexes)})

            explain_rows = await self.metadata_store.explain(statement)
            stage = PipelineStage.PLAN_OBTAINED
            _log_stage(request_id, stage, started, {"explain_rows": len(explain_rows)})
        except OptimizerError as exc:
            _log_stage(
                request_id,
                PipelineStage.FAILED,
                started,
                {"after": stage.value, "error_type": exc.error_type, "error": exc.message},
            )
            raise

        advice = await self.advisor.advise(
            statement,
            explain_rows,
            resolved.schemas,
            resolved.indexes,
            include_index_recommendations,
        )
        _log_stage(request_id, PipelineStage.ADVISED, started)

        result = OptimizationResult(
            original_query=statement,
            optimized_query=advice.optimized_query,
            explain_plan=explain_rows,
            tables=resolved.schemas,
            indexes=resolved.indexes,
            reasoning=advice.reasoning,
            key_issues=advice.key_issues,
            estimated_improvement=advice.estimated_improvement,
            index_recommendations=advice.index_recommendations if include_index_recommendations else None,
            cache_hit=resolved.all_hit,
        )
        _log_stage(request_id, PipelineStage.COMPLETE, started)
        return result

    async def health_check(self) -> HealthStatus:
        database, cache, model = await asyncio.gather(
            _probe("mysql", self.metadata_store.ping()),
            _probe("cache", self.cache.ping()),
            _probe("llm", self.llm.ping()),
        )
        return HealthStatus(database_reachable=database, cache_reachable=cache, model_reachable=model)

    async def invalidate_table(self, table_name: str) -> None:
        await self.schema_cache.invalidate(table_name)
