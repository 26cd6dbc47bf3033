from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, require_backoffice
from app.db.session import get_db
from app.integrations.ledger_client import LedgerClientProtocol, get_ledger_client
from app.observability import log_event
from app.schemas.distribution import (
    DistributionResultItem,
    DistributionRunRequest,
    DistributionRunResponse,
)
from app.services.distribution_service import run_distribution_batch

router = APIRouter(prefix="/api/v1/distribution", tags=["distribution"])


@router.post(
    "/run",
    response_model=DistributionRunResponse,
    summary="Run one distribution batch",
    responses={
        409: {"description": "Another distribution batch is running"},
        500: {"description": "Distribution is not configured"},
    },
)
def run_distribution_endpoint(
    request: DistributionRunRequest = Body(default_factory=DistributionRunRequest),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_backoffice),
    ledger: LedgerClientProtocol = Depends(get_ledger_client),
) -> DistributionRunResponse:
    log_event("distribution_run_requested", detail=f"user={auth.user_id}")
    report = run_distribution_batch(db, ledger, batch_size=request.batch_size)
    return DistributionRunResponse(
        processed=report.processed,
        total=report.total,
        results=[
            DistributionResultItem(
                order_id=outcome.order_id,
                success=outcome.success,
                tx_hash=outcome.tx_hash,
                error=outcome.error,
            )
            for outcome in report.results
        ],
    )
