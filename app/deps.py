"""Dependency construction for FastAPI.

Clients (MySQL pool, result cache, chat model) are built once by the
application lifespan, kept on ``app.state`` and handed to routes through
``get_pipeline``. Nothing here is created at import time.
"""
from dataclasses import dataclass

import aiomysql
from fastapi import HTTPException, Request

from app.config import Settings
from app.core.llm_client import ChatModelClient, LanguageModelClient
from app.core.llm_factory import create_llm
from app.core.metadata_store import GuardedMetadataStore, MetadataStore, MySQLMetadataStore
from app.core.optimization_advisor import OptimizationAdvisor
from app.core.pipeline import OrchestrationPipeline
from app.core.result_cache import ResultCache, create_result_cache
from app.core.safety_classifier import SafetyClassifier
from app.core.schema_cache import SchemaCacheGateway
from app.core.table_extractor import TableNameExtractor
from app.smart_logger import SmartLogger


def build_pipeline(
    *,
    settings: Settings,
    store: MetadataStore,
    cache: ResultCache,
    llm: LanguageModelClient,
) -> OrchestrationPipeline:
    """Wire the pipeline components; every database call goes through the safety gate."""
    classifier = SafetyClassifier(llm, cache, ttl_seconds=settings.cache_ttl_seconds)
    guarded_store = GuardedMetadataStore(store, classifier)
    return OrchestrationPipeline(
        classifier=classifier,
        extractor=TableNameExtractor(llm),
        schema_cache=SchemaCacheGateway(
            guarded_store,
            cache,
            db_name=settings.mysql_database,
            ttl_seconds=settings.cache_ttl_seconds,
        ),
        metadata_store=guarded_store,
        advisor=OptimizationAdvisor(llm),
        cache=cache,
        llm=llm,
    )


@dataclass
class Dependencies:
    settings: Settings
    mysql_pool: aiomysql.Pool
    cache: ResultCache
    llm: LanguageModelClient
    pipeline: OrchestrationPipeline

    @classmethod
    async def create(cls, settings: Settings) -> "Dependencies":
        pool = await aiomysql.create_pool(
            host=settings.mysql_host,
            port=int(settings.mysql_port),
            user=settings.mysql_user,
            password=settings.mysql_password,
            db=settings.mysql_database,
            minsize=int(settings.mysql_pool_min_size),
            maxsize=max(1, int(settings.mysql_pool_max_size)),
            connect_timeout=int(settings.mysql_connect_timeout_seconds),
            autocommit=True,
        )
        cache = create_result_cache(settings)
        llm = ChatModelClient(
            create_llm(settings, purpose="query_optimizer"),
            timeout_seconds=settings.llm_timeout_seconds,
        )
        pipeline = build_pipeline(
            settings=settings,
            store=MySQLMetadataStore(pool),
            cache=cache,
            llm=llm,
        )
        SmartLogger.log(
            "INFO",
            "deps.created",
            category="deps",
            params={
                "mysql": f"{settings.mysql_host}:{settings.mysql_port}/{settings.mysql_database}",
                "cache_backend": settings.cache_backend,
                "llm": f"{settings.llm_provider}:{settings.llm_model}",
            },
        )
        return cls(settings=settings, mysql_pool=pool, cache=cache, llm=llm, pipeline=pipeline)

    async def close(self) -> None:
        self.mysql_pool.close()
        await self.mysql_pool.wait_closed()
        await self.cache.close()
        SmartLogger.log("INFO", "deps.closed", category="deps")


def get_pipeline(request: Request) -> OrchestrationPipeline:
    """FastAPI dependency for the optimization pipeline"""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=503,
            detail={"success": False, "error": "Service is starting up", "type": "SERVICE_UNAVAILABLE"},
        )
    return pipeline
