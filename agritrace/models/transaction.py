"""
Read models for ledger entries.

Each transaction type carries its own structured payload under ``details`` so
consumers never parse the free-text ``notes``.
"""
from typing import Optional, Union, Literal
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field
from typing_extensions import Annotated

from agritrace.db.schema import BatchStatus, TransactionType
from agritrace.models.user import ParticipantSummary


class CreationDetails(BaseModel):
    transaction_type: Literal["creation"] = "creation"


class TransferDetails(BaseModel):
    transaction_type: Literal["transfer"] = "transfer"
    transport_mode: Optional[str] = None
    storage_info: Optional[str] = None
    destination: Optional[str] = None


class StatusUpdateDetails(BaseModel):
    transaction_type: Literal["status_update"] = "status_update"
    shelf_location: Optional[str] = None


class ListingCreatedDetails(BaseModel):
    transaction_type: Literal["listing_created"] = "listing_created"
    listing_id: Optional[UUID] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None


class BidPlacedDetails(BaseModel):
    transaction_type: Literal["bid_placed"] = "bid_placed"
    listing_id: Optional[UUID] = None
    bid_id: Optional[UUID] = None
    comments: Optional[str] = None


class OrderCreatedDetails(BaseModel):
    transaction_type: Literal["order_created"] = "order_created"
    listing_id: Optional[UUID] = None
    bid_id: Optional[UUID] = None
    distributor_id: Optional[UUID] = None


TransactionDetails = Annotated[
    Union[
        CreationDetails,
        TransferDetails,
        StatusUpdateDetails,
        ListingCreatedDetails,
        BidPlacedDetails,
        OrderCreatedDetails,
    ],
    Field(discriminator="transaction_type"),
]


class TransactionRead(BaseModel):
    id: UUID
    batch_id: str
    from_user_id: UUID
    to_user_id: UUID
    transaction_type: TransactionType
    previous_status: Optional[BatchStatus] = None
    new_status: BatchStatus
    price: Optional[float] = None
    notes: Optional[str] = None
    timestamp: datetime
    details: TransactionDetails

    # Enriched participants
    from_user: Optional[ParticipantSummary] = None
    to_user: Optional[ParticipantSummary] = None
