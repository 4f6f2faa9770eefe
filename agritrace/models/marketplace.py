from typing import List, Optional
from datetime import datetime
from uuid import UUID
from sqlmodel import SQLModel, Field

from agritrace.db.schema import ListingStatus, BidStatus
from agritrace.models.user import FarmerSummary, DistributorSummary
from agritrace.models.batch import BatchRead


class ListingBase(SQLModel):
    quantity: float = Field(gt=0)
    unit: str = Field(min_length=1, max_length=20)
    expected_price: float = Field(ge=0, description="Asking price per unit.")
    negotiation_allowed: Optional[bool] = None
    special_terms: Optional[str] = None
    description: Optional[str] = None
    images: List[str] = []


class ListingCreate(ListingBase):
    batch_id: str = Field(description="Public batch identifier, e.g. 'BATCH_...'.")


class ListingRead(ListingBase):
    id: UUID
    batch_id: str
    farmer_id: UUID
    status: ListingStatus
    accepted_bid_id: Optional[UUID] = None
    accepted_at: Optional[datetime] = None
    final_price: Optional[float] = None
    location: Optional[str] = None
    crop_variety: str
    created_at: datetime


class ListingWithFarmerRead(ListingRead):
    farmer: Optional[FarmerSummary] = None


class BidBase(SQLModel):
    price_per_unit: float = Field(gt=0)
    min_quantity: Optional[float] = Field(default=None, ge=0)
    max_quantity: Optional[float] = Field(default=None, ge=0)
    pickup_proposal: Optional[str] = None
    payment_terms: Optional[str] = None
    comments: Optional[str] = None


class BidCreate(BidBase):
    pass


class BidRead(BidBase):
    id: UUID
    listing_id: UUID
    distributor_id: UUID
    status: BidStatus
    timestamp: datetime


class BidWithDistributorRead(BidRead):
    distributor: Optional[DistributorSummary] = None


class MyListingRead(ListingRead):
    accepted_bid: Optional[BidWithDistributorRead] = None


class MyBidRead(BidRead):
    listing: Optional[ListingWithFarmerRead] = None


class ListingDetailsRead(SQLModel):
    """
    Everything the bidding screen needs in one payload.
    Bids are sorted newest first.
    """
    listing: ListingRead
    batch: Optional[BatchRead] = None
    farmer: Optional[FarmerSummary] = None
    bids: List[BidWithDistributorRead] = []


class BidAcceptanceRead(SQLModel):
    listing: ListingRead
    accepted_bid: BidRead
    rejected_bid_ids: List[UUID] = []
