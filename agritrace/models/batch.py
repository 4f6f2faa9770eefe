from typing import List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import field_validator
from sqlmodel import SQLModel, Field

from agritrace.core.clock import as_utc
from agritrace.db.schema import BatchStatus
from agritrace.models.user import FarmerSummary
from agritrace.models.transaction import TransactionRead


class BatchBase(SQLModel):
    crop_variety: str = Field(min_length=1, max_length=120)
    quantity: float = Field(gt=0)
    unit: str = Field(min_length=1, max_length=20)
    quality_grade: str = Field(min_length=1, max_length=60)
    harvest_date: datetime
    expected_price: float = Field(ge=0)
    farm_location: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("harvest_date")
    @classmethod
    def harvest_date_as_utc(cls, value: datetime) -> datetime:
        # Naive input is read as UTC
        return as_utc(value)


class BatchCreate(BatchBase):
    pass


class BatchRead(BatchBase):
    id: UUID
    batch_id: str
    farmer_id: UUID
    shelf_location: Optional[str] = None
    status: BatchStatus
    current_owner_id: UUID
    pending_owner_id: Optional[UUID] = None
    farmer_price: Optional[float] = None
    distributor_price: Optional[float] = None
    retail_price: Optional[float] = None
    qr_code: str
    created_at: datetime
    updated_at: datetime


class BatchTransfer(SQLModel):
    to_user_id: UUID = Field(description="Recipient; must be a distributor or a retailer.")
    price: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class BatchAcceptFromFarmer(SQLModel):
    """Payload a distributor submits after scanning a farmer's batch."""
    price: Optional[float] = Field(default=None, ge=0)
    transport_mode: Optional[str] = None
    storage_info: Optional[str] = None
    destination: Optional[str] = None
    notes: Optional[str] = None


class RetailerAccept(SQLModel):
    notes: Optional[str] = None


class BatchStatusUpdate(SQLModel):
    status: BatchStatus
    retail_price: Optional[float] = Field(default=None, ge=0)
    shelf_location: Optional[str] = None
    notes: Optional[str] = None


class BatchDetailsRead(BatchRead):
    """
    The public trace view.
    Includes the farmer and the full ledger history, oldest first.
    """
    farmer: Optional[FarmerSummary] = None
    transactions: List[TransactionRead] = []


class LastTransfer(SQLModel):
    timestamp: datetime
    from_user_name: Optional[str] = None


class PendingBatchRead(BatchRead):
    last_transfer: Optional[LastTransfer] = None
