from typing import Optional, List
from datetime import datetime
import uuid
from sqlalchemy import DateTime, Index, text
from sqlmodel import SQLModel, Field, Relationship, JSON
from enum import Enum

from agritrace.core.clock import utcnow


# Every timestamp is stored as aware UTC
UTC_DATETIME = DateTime(timezone=True)


class UserRole(str, Enum):
    UNASSIGNED = "unassigned"  # New account, treated as a farmer for batch creation
    FARMER = "farmer"
    DISTRIBUTOR = "distributor"
    RETAILER = "retailer"
    GOVERNMENT = "government"  # Read-only oversight of every batch
    ADMIN = "admin"


class BatchStatus(str, Enum):
    CREATED = "created"
    IN_TRANSIT_TO_DISTRIBUTOR = "in_transit_to_distributor"
    WITH_DISTRIBUTOR = "with_distributor"
    IN_TRANSIT_TO_RETAILER = "in_transit_to_retailer"  # Awaiting retailer acceptance
    WITH_RETAILER = "with_retailer"
    SOLD = "sold"


class TransactionType(str, Enum):
    CREATION = "creation"
    TRANSFER = "transfer"
    STATUS_UPDATE = "status_update"
    LISTING_CREATED = "listing_created"
    BID_PLACED = "bid_placed"
    ORDER_CREATED = "order_created"


class ListingStatus(str, Enum):
    OPEN = "open"            # Accepting bids
    LOCKED_IN = "locked_in"  # A bid was accepted
    SOLD = "sold"


class BidStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TimestampMixin(SQLModel):
    """
    Standard audit timestamps for database records.
    """
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_type=UTC_DATETIME,
        index=True,
        description="UTC timestamp when this record was first persisted. Example: '2025-03-01 14:30:00'"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_type=UTC_DATETIME,
        sa_column_kwargs={"onupdate": utcnow},
        description="UTC timestamp when this record was last modified. Updates automatically."
    )


class User(TimestampMixin, SQLModel, table=True):
    """
    A stakeholder in the supply chain.
    The role decides which operations the user may perform. A missing role is
    stored as UNASSIGNED and is never changed by this service once set.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the user."
    )
    email: str = Field(
        unique=True,
        index=True,
        description="Contact and login email. Example: 'farmer@example.com'"
    )
    name: Optional[str] = Field(
        default=None,
        description="Display name. Example: 'John Smith'"
    )
    role: UserRole = Field(
        default=UserRole.UNASSIGNED,
        index=True,
        description="Supply chain role. Example: 'distributor'"
    )
    phone: Optional[str] = Field(default=None)
    location: Optional[str] = Field(
        default=None,
        description="Free text location. Example: 'California, USA'"
    )
    farm_name: Optional[str] = Field(
        default=None,
        description="Farm name for farmers. Example: 'Green Valley Farm'"
    )
    license_number: Optional[str] = Field(
        default=None,
        description="Trade license for distributors and retailers. Example: 'DIST-2024-001'"
    )
    verified: bool = Field(default=False)

    @property
    def display_name(self) -> Optional[str]:
        return self.name or self.email


class Batch(TimestampMixin, SQLModel, table=True):
    """
    A tracked quantity of one harvest moving farmer -> distributor -> retailer.
    Batches are never deleted; every mutation is paired with a Transaction row.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="Internal identifier."
    )
    batch_id: str = Field(
        unique=True,
        index=True,
        description="Public human-readable identifier encoded in the QR code. Example: 'BATCH_LXQ3K2AB_4F9Z0KQ1M'"
    )
    farmer_id: uuid.UUID = Field(
        foreign_key="user.id",
        index=True,
        description="The farmer who created the batch."
    )

    # Crop details
    crop_variety: str = Field(index=True, description="Example: 'Organic Tomatoes'")
    quantity: float
    unit: str = Field(description="Example: 'kg'")
    quality_grade: str = Field(description="Example: 'Grade A'")
    harvest_date: datetime = Field(sa_type=UTC_DATETIME)
    expected_price: float
    farm_location: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    shelf_location: Optional[str] = Field(
        default=None,
        description="Where the retailer stores the batch. Example: 'Aisle 4'"
    )

    # Custody
    status: BatchStatus = Field(default=BatchStatus.CREATED, index=True)
    current_owner_id: uuid.UUID = Field(
        foreign_key="user.id",
        index=True,
        description="The user who may act on the batch now."
    )
    pending_owner_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="user.id",
        index=True,
        description="Designated retailer who has not yet accepted the batch."
    )

    # Price recorded at each handoff
    farmer_price: Optional[float] = Field(default=None)
    distributor_price: Optional[float] = Field(default=None)
    retail_price: Optional[float] = Field(default=None)

    qr_code: str = Field(
        description="Trace URL encoded in the QR label. Example: 'http://localhost:5173/trace/BATCH_...'"
    )

    farmer: User = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Batch.farmer_id]"}
    )


class Transaction(SQLModel, table=True):
    """
    Immutable ledger entry for one state-changing event on a batch.
    Rows are only ever inserted, in the same database transaction as the
    mutation they describe.
    """
    __tablename__ = "batch_transaction"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    batch_id: str = Field(
        foreign_key="batch.batch_id",
        index=True,
        description="Public batch identifier."
    )
    from_user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    to_user_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    transaction_type: TransactionType = Field(index=True)
    previous_status: Optional[BatchStatus] = Field(default=None)
    new_status: BatchStatus
    price: Optional[float] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    timestamp: datetime = Field(default_factory=utcnow, sa_type=UTC_DATETIME, index=True)

    # Logistics (transfer)
    transport_mode: Optional[str] = Field(default=None, description="Example: 'refrigerated truck'")
    storage_info: Optional[str] = Field(default=None)
    destination: Optional[str] = Field(default=None)
    # Retail shelving (status_update)
    shelf_location: Optional[str] = Field(default=None)

    # Marketplace references (listing_created, bid_placed, order_created)
    listing_id: Optional[uuid.UUID] = Field(default=None, foreign_key="listing.id")
    bid_id: Optional[uuid.UUID] = Field(default=None, foreign_key="bid.id")

    from_user: User = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Transaction.from_user_id]"}
    )
    to_user: User = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Transaction.to_user_id]"}
    )


class Listing(TimestampMixin, SQLModel, table=True):
    """
    A farmer's marketplace offer for a batch, open to distributor bids.
    At most one OPEN listing may exist per batch.
    """
    __table_args__ = (
        Index(
            "uq_listing_open_batch",
            "batch_id",
            unique=True,
            sqlite_where=text("status = 'OPEN'"),
            postgresql_where=text("status = 'OPEN'"),
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    batch_id: str = Field(foreign_key="batch.batch_id", index=True)
    farmer_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    quantity: float
    unit: str
    expected_price: float = Field(description="Asking price per unit.")
    negotiation_allowed: Optional[bool] = Field(default=None)
    special_terms: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    images: List[str] = Field(default_factory=list, sa_type=JSON)

    status: ListingStatus = Field(default=ListingStatus.OPEN, index=True)
    # No FK: bid already references listing.
    accepted_bid_id: Optional[uuid.UUID] = Field(default=None)
    accepted_at: Optional[datetime] = Field(default=None, sa_type=UTC_DATETIME)
    final_price: Optional[float] = Field(default=None)

    # Denormalized for browsing
    location: Optional[str] = Field(default=None)
    crop_variety: str = Field(index=True)

    farmer: User = Relationship()
    bids: List["Bid"] = Relationship(back_populates="listing")


class Bid(SQLModel, table=True):
    """
    A distributor's offer against an open listing.
    Status changes only through bid acceptance; at most one bid per listing
    is ever ACCEPTED.
    """
    __table_args__ = (
        Index(
            "uq_bid_accepted_listing",
            "listing_id",
            unique=True,
            sqlite_where=text("status = 'ACCEPTED'"),
            postgresql_where=text("status = 'ACCEPTED'"),
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    listing_id: uuid.UUID = Field(foreign_key="listing.id", index=True)
    distributor_id: uuid.UUID = Field(foreign_key="user.id", index=True)
    price_per_unit: float
    min_quantity: Optional[float] = Field(default=None)
    max_quantity: Optional[float] = Field(default=None)
    pickup_proposal: Optional[str] = Field(default=None)
    payment_terms: Optional[str] = Field(default=None)
    comments: Optional[str] = Field(default=None)
    status: BidStatus = Field(default=BidStatus.PENDING, index=True)
    timestamp: datetime = Field(default_factory=utcnow, sa_type=UTC_DATETIME, index=True)

    listing: Listing = Relationship(back_populates="bids")
    distributor: User = Relationship()
