"""MetroCircuit FastAPI application entry point.

Wires together all providers, services and routes via dependency injection.
Loads configuration from ``.env`` (``Settings``) and ``config/config.yaml``
(algorithm tunables) and configures structured logging.

``build_pipeline`` exposes the same wiring to the CLI.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from metrocircuit import __version__
from metrocircuit.api.dispatcher import ActionDispatcher
from metrocircuit.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from metrocircuit.api.routes import router as api_router
from metrocircuit.config.loader import load_config
from metrocircuit.config.settings import Settings
from metrocircuit.interfaces.embedding_provider import IEmbeddingProvider
from metrocircuit.interfaces.llm_provider import ILLMProvider
from metrocircuit.interfaces.row_store import IRowStore
from metrocircuit.pipeline.ingestion_pipeline import IngestionStateMachine
from metrocircuit.providers.embedding import GeminiEmbeddingProvider, OpenAIEmbeddingProvider
from metrocircuit.providers.extraction import (
    FormatConverter,
    LLMVisionExtractor,
    PdfTextExtractor,
    TesseractExtractor,
)
from metrocircuit.providers.llm import ChainedLLMProvider, GeminiLLMProvider, OpenAILLMProvider
from metrocircuit.providers.source import LocalFolderSource
from metrocircuit.providers.store import MemoryRowStore, SQLiteRowStore
from metrocircuit.services.embedding_client import EmbeddingClient
from metrocircuit.services.query import (
    AnswerDrafter,
    QueryService,
    RerankerAgent,
    RouterAgent,
    VerificationAgent,
)
from metrocircuit.services.repository import CorpusRepository
from metrocircuit.services.scorer import Scorer, ScoringWeights
from metrocircuit.services.segmenter import Segmenter
from metrocircuit.services.sync_service import SyncService
from metrocircuit.services.tag_extractor import TagExtractor
from metrocircuit.services.text_extraction_service import TextExtractionService
from metrocircuit.utils.errors import ConfigurationError
from metrocircuit.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings, http_client: httpx.AsyncClient) -> ILLMProvider | None:
    """Build the text-generation provider from the configured API keys.

    Priority order: Gemini -> OpenAI.  With both keys configured they are
    chained so an outage of one falls through to the other.  Returns ``None``
    when no key is set; every LLM consumer then uses its local fallback.
    """
    providers: list[ILLMProvider] = []
    if app_settings.gemini_api_key:
        providers.append(GeminiLLMProvider(settings=app_settings, http_client=http_client))
    if app_settings.openai_api_key:
        providers.append(OpenAILLMProvider(settings=app_settings))
    if not providers:
        return None
    if len(providers) == 1:
        return providers[0]
    return ChainedLLMProvider(providers)


def _build_embedding_providers(
    app_settings: Settings, http_client: httpx.AsyncClient
) -> list[IEmbeddingProvider]:
    """Embedding providers in priority order: Gemini -> OpenAI."""
    providers: list[IEmbeddingProvider] = []
    if app_settings.gemini_api_key:
        providers.append(GeminiEmbeddingProvider(settings=app_settings, http_client=http_client))
    if app_settings.openai_api_key:
        providers.append(OpenAIEmbeddingProvider(settings=app_settings))
    return providers


def _build_row_store(app_settings: Settings) -> IRowStore:
    backend = app_settings.row_store_backend.lower()
    if backend == "sqlite":
        return SQLiteRowStore(app_settings.sqlite_db_path)
    if backend == "memory":
        return MemoryRowStore()
    raise ConfigurationError(f"Unknown ROW_STORE_BACKEND '{app_settings.row_store_backend}'")


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings, app_config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    app_config = app_config if app_config is not None else load_config(app_settings.config_path, app_settings)

    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=app_settings.llm_timeout_seconds)
    row_store = _build_row_store(app_settings)
    repository = CorpusRepository(row_store)
    source = LocalFolderSource(app_settings.source_folder, max_bytes=app_settings.max_source_bytes)

    # -- LLM and embeddings --
    primary_llm = _build_llm_provider(app_settings, http_client)
    embedding_providers = _build_embedding_providers(app_settings, http_client)
    embedding_client = EmbeddingClient(embedding_providers, max_chars=app_settings.embedding_max_chars)

    # -- Text extraction chain (priority order) --
    strategies = [PdfTextExtractor(max_bytes=app_settings.max_source_bytes)]
    if primary_llm is not None:
        strategies.append(
            LLMVisionExtractor(
                primary_llm,
                max_pages=app_settings.vision_max_pages,
                dpi=app_settings.render_dpi,
            )
        )
    strategies.append(TesseractExtractor(max_pages=app_settings.ocr_max_pages, dpi=app_settings.render_dpi))
    strategies.append(FormatConverter())
    text_extraction = TextExtractionService(strategies, min_chars=app_settings.min_extracted_chars)

    # -- Ingestion --
    segmenter = Segmenter(
        target_chars=app_settings.segment_target_chars,
        overlap_chars=app_settings.segment_overlap_chars,
        hard_split_overlap_chars=app_settings.hard_split_overlap_chars,
        page_window_chars=app_settings.page_window_chars,
    )
    tag_extractor = TagExtractor(llm=primary_llm)
    pipeline = IngestionStateMachine(
        repository=repository,
        source=source,
        text_extraction=text_extraction,
        segmenter=segmenter,
        tag_extractor=tag_extractor,
        embedding_client=embedding_client,
        page_group_max_bytes=app_settings.page_group_max_bytes,
        rate_limit_every=app_settings.rate_limit_every,
        rate_limit_pause_seconds=app_settings.rate_limit_pause_seconds,
        embed_on_ingest=app_settings.embed_on_ingest,
    )

    # -- Query --
    query_service = QueryService(
        repository=repository,
        scorer=Scorer(ScoringWeights.from_config(app_config.get("scoring"))),
        embedding_client=embedding_client,
        router=RouterAgent(primary_llm, app_config.get("router")),
        reranker=RerankerAgent(
            primary_llm,
            preview_chars=int(app_config.get("rerank", {}).get("preview_chars", 400)),
        ),
        drafter=AnswerDrafter(primary_llm, attempts=app_settings.draft_attempts),
        verifier=VerificationAgent(primary_llm),
        candidate_pool=app_settings.query_candidate_pool,
        max_match_count=app_settings.query_max_match_count,
        answer_log_max_chars=app_settings.answer_log_max_chars,
    )
    sync_service = SyncService(repository, source)

    provider_registry: dict[str, Any] = {
        "llm": primary_llm.get_provider_name() if primary_llm else None,
        "llm_available": primary_llm is not None and primary_llm.is_available(),
        "vision": primary_llm is not None and primary_llm.supports_vision(),
        "embedding": [p.get_provider_name() for p in embedding_providers],
        "embedding_available": embedding_client.is_configured,
        "row_store": row_store.get_provider_name(),
        "source": source.get_provider_name(),
        "extraction": [s.get_name() for s in strategies if s.is_available()],
    }

    dispatcher = ActionDispatcher(
        pipeline=pipeline,
        query_service=query_service,
        sync_service=sync_service,
        budget_seconds=app_settings.batch_time_budget_seconds,
        provider_registry=provider_registry,
        default_match_count=app_settings.query_default_match_count,
    )

    return {
        "http_client": http_client,
        "row_store": row_store,
        "repository": repository,
        "primary_llm": primary_llm,
        "embedding_client": embedding_client,
        "pipeline": pipeline,
        "query_service": query_service,
        "sync_service": sync_service,
        "dispatcher": dispatcher,
        "provider_registry": provider_registry,
        "config": app_config,
    }


def build_pipeline(custom_settings: Settings | None = None) -> dict[str, Any]:
    """Build the component graph outside the web server (CLI, scripts)."""
    return _build_all(custom_settings or settings)


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    components: dict[str, Any] | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    *components* replaces the wiring done by :func:`_build_all`; it must
    provide at least ``dispatcher`` and ``row_store``.
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        built = components if components is not None else _build_all(app_settings)
        for key, value in built.items():
            setattr(application.state, key, value)

        await built["row_store"].initialize()
        _logger.info(
            "app_startup",
            version=__version__,
            environment=app_settings.app_env,
            providers=built.get("provider_registry", {}),
        )

        yield

        http_client: httpx.AsyncClient | None = built.get("http_client")
        if http_client is not None:
            await http_client.aclose()
        _logger.info("app_shutdown", message="HTTP client closed")

    application = FastAPI(
        title="MetroCircuit API",
        version=__version__,
        description=(
            "Ingest long metro electrical drawings and schedules in resumable, "
            "time-bounded batches and answer questions about them with hybrid "
            "retrieval, LLM re-ranking and verified answers."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "metrocircuit.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
