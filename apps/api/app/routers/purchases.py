from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.auth.dependencies import rate_limit_purchase_recording
from app.db.session import get_db
from app.observability import observe_timing
from app.schemas.order import OrderResponse, PurchaseRequest, PurchaseResponse
from app.services.purchase_service import record_purchase

router = APIRouter(prefix="/api/v1/purchases", tags=["purchases"])


@router.post(
    "",
    response_model=PurchaseResponse,
    summary="Record a confirmed on-chain purchase",
    responses={
        400: {"description": "Missing or invalid fields"},
        409: {"description": "Transaction already processed"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Order store unavailable"},
    },
)
def record_purchase_endpoint(
    payload: PurchaseRequest,
    db: Session = Depends(get_db),
    _limit: None = Depends(rate_limit_purchase_recording),
) -> PurchaseResponse:
    with observe_timing("purchase_record_seconds"):
        order = record_purchase(
            db,
            wallet_address=payload.wallet_address,
            token_amount=payload.token_amount,
            payment_amount=payload.payment_amount,
            transaction_hash=payload.transaction_hash,
            order_type=payload.order_type,
        )
    return PurchaseResponse(
        order=OrderResponse.model_validate(order),
        message="Purchase recorded. Tokens will be distributed shortly.",
    )
