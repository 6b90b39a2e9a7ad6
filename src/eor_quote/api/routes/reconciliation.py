"""POST /reconciliation: rank normalized provider totals."""

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from eor_quote.models.reconciliation import ReconciliationCandidate, ReconciliationSettings
from eor_quote.pipeline.reconciliation import ReconciliationEngine

logger = structlog.get_logger(__name__)

router = APIRouter()


class ReconciliationRequest(BaseModel):
    settings: ReconciliationSettings = Field(default_factory=ReconciliationSettings)
    providers: list[ReconciliationCandidate]


@router.post("/reconciliation")
async def reconcile(body: ReconciliationRequest, request: Request):
    """Variance analysis and winner selection over already-normalized totals."""
    engine = ReconciliationEngine(request.app.state.openai)
    result = await engine.reconcile(body.providers, body.settings)
    logger.info("reconciliation.request_complete", providers=len(body.providers), winner=result.winner)
    return result.to_dict()
