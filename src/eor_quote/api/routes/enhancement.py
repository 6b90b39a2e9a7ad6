"""POST /enhancement/quote and /enhancement/batch: provider gap analysis."""

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from eor_quote.errors import (
    EorQuoteError,
    ReferenceDataMissingError,
    RequestSupersededError,
    ValidationError,
)
from eor_quote.logging import logging_context
from eor_quote.models.benefits import ProviderQuote
from eor_quote.models.legal import EmploymentParameters
from eor_quote.models.request import QuoteRequest

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/enhancement")


class EnhancementQuoteRequest(BaseModel):
    params: EmploymentParameters
    quote: ProviderQuote
    local_office_costs: dict[str, float] = Field(default_factory=dict)
    session_id: str | None = None


def error_response(e: EorQuoteError) -> JSONResponse:
    """Map a pipeline error to an HTTP response that keeps provider and stage."""
    if isinstance(e, ValidationError):
        status = 422
    elif isinstance(e, ReferenceDataMissingError):
        status = 404
    elif isinstance(e, RequestSupersededError):
        status = 409
    else:
        status = 502
    return JSONResponse(
        status_code=status,
        content={
            "error": e.message,
            "error_type": type(e).__name__,
            "provider": e.provider,
            "stage": e.stage,
        },
    )


@router.post("/quote")
async def enhance_quote(body: EnhancementQuoteRequest, request: Request):
    """Enhance one provider quote against the country's legal profile."""
    pipeline = request.app.state.pipeline
    log = logger.bind(provider=body.quote.provider, country_code=body.params.country_code)
    log.info("enhancement.received")

    try:
        with logging_context(session_id=body.session_id, provider=body.quote.provider):
            profile = await pipeline.build_legal_profile(body.params)
            benefit_map, enhancement = await pipeline.enhance_provider(
                profile, body.quote, body.local_office_costs, body.session_id,
            )
    except EorQuoteError as e:
        e.context.setdefault("provider", body.quote.provider)
        log.warning("enhancement.failed", error=e.message, error_type=type(e).__name__, stage=e.stage)
        return error_response(e)

    log.info("enhancement.complete", final_monthly_total=enhancement.totals.final_monthly_total)
    return {
        "provider": body.quote.provider,
        "enhancement": enhancement.to_dict(),
        "benefit_map": benefit_map.model_dump(mode="json"),
        "legal_profile": profile.model_dump(mode="json"),
    }


@router.post("/batch")
async def enhance_batch(body: QuoteRequest, request: Request):
    """Enhance every provider concurrently, reconcile, and run the acid test when a bill rate is given."""
    try:
        result = await request.app.state.pipeline.run(body)
    except EorQuoteError as e:
        logger.warning("enhancement.batch_rejected", error=e.message, error_type=type(e).__name__)
        return error_response(e)
    logger.info(
        "enhancement.batch_complete",
        trace_id=result.trace_id,
        succeeded=result.provider_results.success_count,
        failed=result.provider_results.failure_count,
    )
    return result.to_dict()
