import uuid

from pydantic import BaseModel, ConfigDict, Field


class DistributionRunRequest(BaseModel):
    batch_size: int | None = Field(default=None, ge=1, le=100)


class DistributionResultItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: uuid.UUID = Field(serialization_alias="orderId")
    success: bool
    tx_hash: str | None = Field(default=None, serialization_alias="txHash")
    error: str | None = None


class DistributionRunResponse(BaseModel):
    success: bool = True
    processed: int
    total: int
    results: list[DistributionResultItem]
