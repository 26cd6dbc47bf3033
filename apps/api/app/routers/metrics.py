from fastapi import APIRouter, Depends

from app.auth.dependencies import AuthContext, require_backoffice
from app.config import settings
from app.observability import metrics_store
from app.schemas.metrics import MetricsResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="Observability metrics", response_model=MetricsResponse)
def metrics_endpoint(
    _auth: AuthContext = Depends(require_backoffice),
) -> MetricsResponse:
    """Counters and timings for the recorder and the distribution batch. OPS/ADMIN only."""
    snapshot = metrics_store.snapshot()

    return MetricsResponse(
        service=settings.app_name,
        uptime_s=snapshot.uptime_s,
        counters=snapshot.counters or {},
        timings=snapshot.timings or {},
    )
