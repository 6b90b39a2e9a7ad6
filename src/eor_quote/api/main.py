"""FastAPI application for the EOR quote engine."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from eor_quote.clients.currency_client import HttpCurrencyNormalizer, StaticRateCurrencyNormalizer
from eor_quote.clients.openai_client import OpenAIClient
from eor_quote.pipeline.acid_test import AcidTestCalculator
from eor_quote.pipeline.pipeline import QuotePipeline
from eor_quote.pipeline.session import EnhancementSessionStore
from eor_quote.reference.store import JsonDirectoryReferenceStore

from .config import get_settings
from .routes.acid_test import router as acid_test_router
from .routes.enhancement import router as enhancement_router
from .routes.health import router as health_router
from .routes.reconciliation import router as reconciliation_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared clients at startup, clean up at shutdown."""
    settings = get_settings()

    logger.info(
        "lifespan.startup",
        legal_data_dir=settings.LEGAL_DATA_DIR,
        model_enabled=bool(settings.OPENAI_API_KEY),
        currency_api=bool(settings.CURRENCY_API_URL),
    )

    openai: OpenAIClient | None = None
    if settings.OPENAI_API_KEY:
        openai = OpenAIClient(
            api_key=settings.OPENAI_API_KEY,
            chat_model=settings.OPENAI_CHAT_MODEL,
            base_url=settings.OPENAI_BASE_URL or None,
        )

    if settings.CURRENCY_API_URL:
        currency = HttpCurrencyNormalizer(base_url=settings.CURRENCY_API_URL)
    else:
        logger.warning("lifespan.currency_api_missing")
        currency = StaticRateCurrencyNormalizer({})

    reference_store = JsonDirectoryReferenceStore(settings.LEGAL_DATA_DIR)
    sessions = EnhancementSessionStore(ttl_seconds=settings.ENHANCEMENT_CACHE_TTL_SECONDS)

    # Store on app.state for request handlers
    app.state.openai = openai
    app.state.currency = currency
    app.state.reference_store = reference_store
    app.state.pipeline = QuotePipeline(reference_store, openai, currency, session_store=sessions)
    app.state.acid_test = AcidTestCalculator(
        openai,
        currency,
        reference_currency=settings.REFERENCE_CURRENCY,
        min_profit_threshold=settings.MIN_PROFIT_THRESHOLD,
    )

    logger.info("lifespan.ready")
    yield

    # Shutdown
    logger.info("lifespan.shutdown")
    await app.state.pipeline.close()


app = FastAPI(
    title="eor-quote-engine",
    description="Legal-profile gap analysis, provider reconciliation and acid-test profitability for EOR quotes",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(enhancement_router)
app.include_router(reconciliation_router)
app.include_router(acid_test_router)
