from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.order import OrderResponse, WalletOrdersResponse
from app.services.orders_service import list_wallet_orders

router = APIRouter(prefix="/api/v1/wallets", tags=["wallets"])


@router.get(
    "/{wallet_address}/orders",
    response_model=WalletOrdersResponse,
    summary="List a wallet's orders, newest first",
)
def list_wallet_orders_endpoint(
    wallet_address: str,
    db: Session = Depends(get_db),
) -> WalletOrdersResponse:
    address = wallet_address.strip().lower()
    return WalletOrdersResponse(
        wallet_address=address,
        items=[OrderResponse.model_validate(order) for order in list_wallet_orders(db, address)],
    )
