import uuid
from typing import List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from agritrace.core.audit import _record_transaction
from agritrace.core.clock import Clock, system_clock
from agritrace.core.exceptions import Forbidden, NotFound, Conflict, InvalidArgument
from agritrace.db.core import atomic
from agritrace.db.schema import (
    User, UserRole, Batch, Listing, ListingStatus, Bid, BidStatus, TransactionType
)
from agritrace.models.batch import BatchRead
from agritrace.models.marketplace import (
    ListingCreate, ListingRead, ListingWithFarmerRead, MyListingRead,
    BidCreate, BidRead, BidWithDistributorRead, MyBidRead,
    ListingDetailsRead, BidAcceptanceRead
)
from agritrace.models.user import FarmerSummary, DistributorSummary


def _fmt(value: float) -> str:
    """Renders 500.0 as '500' and 1234.5678 as '1234.5678' in ledger notes."""
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def _farmer_summary(farmer: Optional[User]) -> Optional[FarmerSummary]:
    if not farmer:
        return None
    return FarmerSummary(
        name=farmer.name,
        farm_name=farmer.farm_name,
        location=farmer.location
    )


def _distributor_summary(distributor: Optional[User]) -> Optional[DistributorSummary]:
    if not distributor:
        return None
    return DistributorSummary(
        name=distributor.name,
        email=distributor.email,
        role=distributor.role
    )


class MarketplaceService:
    def __init__(self, session: Session, clock: Clock = system_clock):
        self.session = session
        self.clock = clock

    def _get_batch(self, batch_id: str) -> Batch:
        batch = self.session.exec(
            select(Batch).where(Batch.batch_id == batch_id)
        ).first()
        if not batch:
            raise NotFound("Batch not found")
        return batch

    def _get_listing(self, listing_id: uuid.UUID, lock: bool = False) -> Listing:
        statement = select(Listing).where(Listing.id == listing_id)
        if lock:
            # Two accepts on one listing must not both see it OPEN
            statement = statement.with_for_update()

        listing = self.session.exec(statement).first()
        if not listing:
            raise NotFound("Listing not found")
        return listing

    # ==========================================================================
    # FARMER ACTIONS
    # ==========================================================================

    def create_listing(self, user: User, data: ListingCreate) -> Listing:
        """
        Opens a batch for bidding. A batch has at most one open listing.
        The ledger entry keeps the batch status unchanged.
        """
        if user.role not in (UserRole.FARMER, UserRole.UNASSIGNED):
            logger.warning(f"Refused {user.role.value} {user.id}: only farmers can create listings")
            raise Forbidden("Only farmers can create listings")

        batch = self._get_batch(data.batch_id)

        if batch.farmer_id != user.id and batch.current_owner_id != user.id:
            logger.warning(
                f"User {user.id} tried to list batch {batch.batch_id} they do not own")
            raise Forbidden("You can only list your own batches")

        existing = self.session.exec(
            select(Listing.id).where(
                Listing.batch_id == batch.batch_id,
                Listing.status == ListingStatus.OPEN
            )
        ).first()
        if existing:
            raise Conflict("This batch already has an open listing")

        now = self.clock.now()
        listing = Listing(
            **data.model_dump(),
            farmer_id=user.id,
            status=ListingStatus.OPEN,
            location=user.location,
            crop_variety=batch.crop_variety,
            created_at=now,
            updated_at=now,
        )

        try:
            with atomic(self.session, "Listing creation"):
                self.session.add(listing)
                self.session.flush()
                _record_transaction(
                    self.session,
                    batch_id=batch.batch_id,
                    from_user_id=user.id,
                    to_user_id=user.id,
                    transaction_type=TransactionType.LISTING_CREATED,
                    previous_status=batch.status,
                    new_status=batch.status,
                    price=data.expected_price,
                    notes=(
                        f"Listed in marketplace: {_fmt(data.quantity)} {data.unit} "
                        f"at {_fmt(data.expected_price)} per unit"
                    ),
                    timestamp=now,
                    listing_id=listing.id,
                )
        except IntegrityError:
            # Lost a race against another listing for the same batch
            raise Conflict("This batch already has an open listing")

        self.session.refresh(listing)
        logger.info(f"Listing {listing.id} opened for batch {batch.batch_id}")
        return listing

    def accept_bid(self, user: User, listing_id: uuid.UUID, bid_id: uuid.UUID) -> BidAcceptanceRead:
        """
        Locks in one bid: the listing closes at the bid's price, the bid is
        accepted and every other pending bid on the listing is rejected.
        All writes commit together with the order ledger entry.
        """
        listing = self._get_listing(listing_id, lock=True)

        if listing.farmer_id != user.id:
            logger.warning(
                f"User {user.id} tried to accept a bid on listing {listing.id} they do not own")
            raise Forbidden("You can only accept bids on your own listings")

        if listing.status != ListingStatus.OPEN:
            raise Conflict("This listing is no longer accepting bids")

        chosen = self.session.get(Bid, bid_id)
        if not chosen or chosen.listing_id != listing.id:
            raise InvalidArgument("Invalid bid")

        batch = self._get_batch(listing.batch_id)
        distributor = self.session.get(User, chosen.distributor_id)

        competing = self.session.exec(
            select(Bid)
            .where(Bid.listing_id == listing.id, Bid.id != chosen.id)
            .with_for_update()
        ).all()

        now = self.clock.now()
        listing.status = ListingStatus.LOCKED_IN
        listing.accepted_bid_id = chosen.id
        listing.accepted_at = now
        listing.final_price = chosen.price_per_unit

        chosen.status = BidStatus.ACCEPTED

        rejected_ids = []
        for bid in competing:
            if bid.status == BidStatus.PENDING:
                bid.status = BidStatus.REJECTED
                self.session.add(bid)
                rejected_ids.append(bid.id)

        distributor_name = distributor.name if distributor and distributor.name else "distributor"
        notes = f"Order confirmed: {_fmt(chosen.price_per_unit)} per unit to {distributor_name}"
        if chosen.comments:
            notes += f" - {chosen.comments}"

        try:
            with atomic(self.session, "Bid acceptance"):
                self.session.add(listing)
                self.session.add(chosen)
                _record_transaction(
                    self.session,
                    batch_id=batch.batch_id,
                    from_user_id=user.id,
                    to_user_id=chosen.distributor_id,
                    transaction_type=TransactionType.ORDER_CREATED,
                    previous_status=batch.status,
                    new_status=batch.status,
                    price=chosen.price_per_unit,
                    notes=notes,
                    timestamp=now,
                    listing_id=listing.id,
                    bid_id=chosen.id,
                )
        except IntegrityError:
            raise Conflict("This listing is no longer accepting bids")

        self.session.refresh(listing)
        self.session.refresh(chosen)
        logger.info(
            f"Listing {listing.id} locked in at {chosen.price_per_unit} with bid {chosen.id}; "
            f"{len(rejected_ids)} competing bid(s) rejected")

        return BidAcceptanceRead(
            listing=ListingRead.model_validate(listing),
            accepted_bid=BidRead.model_validate(chosen),
            rejected_bid_ids=rejected_ids,
        )

    def get_my_listings(self, user: User) -> List[MyListingRead]:
        listings = self.session.exec(
            select(Listing)
            .where(Listing.farmer_id == user.id)
            .order_by(Listing.created_at.desc())
        ).all()

        results = []
        for listing in listings:
            accepted_bid = None
            if listing.accepted_bid_id:
                bid = self.session.get(Bid, listing.accepted_bid_id)
                if bid:
                    accepted_bid = BidWithDistributorRead(
                        **bid.model_dump(),
                        distributor=_distributor_summary(
                            self.session.get(User, bid.distributor_id))
                    )
            results.append(MyListingRead(
                **listing.model_dump(), accepted_bid=accepted_bid))

        return results

    # ==========================================================================
    # DISTRIBUTOR ACTIONS
    # ==========================================================================

    def place_bid(self, user: User, listing_id: uuid.UUID, data: BidCreate) -> Bid:
        if user.role != UserRole.DISTRIBUTOR:
            logger.warning(f"Refused {user.role.value} {user.id}: only distributors can place bids")
            raise Forbidden("Only distributors can place bids")

        if (
            data.min_quantity is not None
            and data.max_quantity is not None
            and data.min_quantity > data.max_quantity
        ):
            raise InvalidArgument("Minimum quantity cannot exceed maximum quantity")

        # Shares the lock taken by accept_bid, so no bid lands on a closing listing
        listing = self._get_listing(listing_id, lock=True)
        if listing.status != ListingStatus.OPEN:
            raise Conflict("This listing is no longer accepting bids")

        batch = self._get_batch(listing.batch_id)

        now = self.clock.now()
        bid = Bid(
            **data.model_dump(),
            listing_id=listing.id,
            distributor_id=user.id,
            status=BidStatus.PENDING,
            timestamp=now,
        )

        notes = f"Bid placed: {_fmt(data.price_per_unit)} per unit"
        if data.comments:
            notes += f" - {data.comments}"

        with atomic(self.session, "Bid placement"):
            self.session.add(bid)
            self.session.flush()
            _record_transaction(
                self.session,
                batch_id=batch.batch_id,
                from_user_id=user.id,
                to_user_id=listing.farmer_id,
                transaction_type=TransactionType.BID_PLACED,
                previous_status=batch.status,
                new_status=batch.status,
                price=data.price_per_unit,
                notes=notes,
                timestamp=now,
                listing_id=listing.id,
                bid_id=bid.id,
            )

        self.session.refresh(bid)
        logger.info(
            f"Bid {bid.id} at {bid.price_per_unit} placed on listing {listing.id} by {user.id}")
        return bid

    def get_my_bids(self, user: User) -> List[MyBidRead]:
        bids = self.session.exec(
            select(Bid)
            .where(Bid.distributor_id == user.id)
            .order_by(Bid.timestamp.desc())
        ).all()

        results = []
        for bid in bids:
            listing_dto = None
            listing = self.session.get(Listing, bid.listing_id)
            if listing:
                farmer = self.session.get(User, listing.farmer_id)
                listing_dto = ListingWithFarmerRead(
                    **listing.model_dump(),
                    farmer=FarmerSummary(
                        name=farmer.name, farm_name=farmer.farm_name
                    ) if farmer else None
                )
            results.append(MyBidRead(**bid.model_dump(), listing=listing_dto))

        return results

    # ==========================================================================
    # BROWSING
    # ==========================================================================

    def list_open_listings(self, crop_variety: Optional[str] = None) -> List[ListingWithFarmerRead]:
        query = (
            select(Listing)
            .where(Listing.status == ListingStatus.OPEN)
            .order_by(Listing.created_at.desc())
        )
        if crop_variety:
            query = query.where(Listing.crop_variety == crop_variety)

        listings = self.session.exec(query).all()

        return [
            ListingWithFarmerRead(
                **listing.model_dump(),
                farmer=_farmer_summary(
                    self.session.get(User, listing.farmer_id))
            ) for listing in listings
        ]

    def get_listing_details(self, listing_id: uuid.UUID) -> Optional[ListingDetailsRead]:
        listing = self.session.get(Listing, listing_id)
        if not listing:
            return None

        batch = self.session.exec(
            select(Batch).where(Batch.batch_id == listing.batch_id)
        ).first()

        bids = self.session.exec(
            select(Bid)
            .where(Bid.listing_id == listing.id)
            .order_by(Bid.timestamp.desc())
        ).all()

        return ListingDetailsRead(
            listing=ListingRead.model_validate(listing),
            batch=BatchRead.model_validate(batch) if batch else None,
            farmer=_farmer_summary(self.session.get(User, listing.farmer_id)),
            bids=[
                BidWithDistributorRead(
                    **bid.model_dump(),
                    distributor=_distributor_summary(
                        self.session.get(User, bid.distributor_id))
                ) for bid in bids
            ],
        )
