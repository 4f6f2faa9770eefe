import secrets
import string
from datetime import datetime
from typing import Dict, List, Optional
import uuid

from loguru import logger
from sqlmodel import Session, select

from agritrace.core.audit import _record_transaction
from agritrace.core.clock import Clock, as_utc, system_clock
from agritrace.core.config import settings
from agritrace.core.exceptions import (
    Forbidden, NotFound, InvalidRecipient, InvalidState, InternalError
)
from agritrace.db.core import atomic
from agritrace.db.schema import (
    User, UserRole, Batch, BatchStatus, Transaction, TransactionType, Listing, Bid
)
from agritrace.models.batch import (
    BatchCreate, BatchTransfer, BatchAcceptFromFarmer, RetailerAccept,
    BatchStatusUpdate, BatchDetailsRead, PendingBatchRead, LastTransfer
)
from agritrace.models.transaction import (
    TransactionRead, CreationDetails, TransferDetails, StatusUpdateDetails,
    ListingCreatedDetails, BidPlacedDetails, OrderCreatedDetails
)
from agritrace.models.user import FarmerSummary, ParticipantSummary


BASE36_ALPHABET = string.digits + string.ascii_lowercase
BATCH_ID_RANDOM_LENGTH = 9
BATCH_ID_MAX_ATTEMPTS = 10


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_batch_id(now: datetime) -> str:
    """
    BATCH_<base36 epoch millis>_<9 random base36 chars>, uppercased.
    Example: 'BATCH_M7Q2ZK1A_0X4KD9PQA'
    """
    millis = int(as_utc(now).timestamp() * 1000)
    suffix = "".join(
        secrets.choice(BASE36_ALPHABET) for _ in range(BATCH_ID_RANDOM_LENGTH)
    )
    return f"BATCH_{_to_base36(millis)}_{suffix}".upper()


def trace_url(batch_id: str) -> str:
    """The URL encoded in a batch's QR label."""
    return f"{settings.site_url.rstrip('/')}/trace/{batch_id}"


def transaction_details(tx: Transaction, listing: Optional[Listing] = None, bid: Optional[Bid] = None):
    """
    Maps a ledger row onto the structured payload for its type.
    Marketplace entries are filled in from the listing and bid they reference.
    """
    if tx.transaction_type == TransactionType.CREATION:
        return CreationDetails()
    if tx.transaction_type == TransactionType.TRANSFER:
        return TransferDetails(
            transport_mode=tx.transport_mode,
            storage_info=tx.storage_info,
            destination=tx.destination,
        )
    if tx.transaction_type == TransactionType.STATUS_UPDATE:
        return StatusUpdateDetails(shelf_location=tx.shelf_location)
    if tx.transaction_type == TransactionType.LISTING_CREATED:
        return ListingCreatedDetails(
            listing_id=tx.listing_id,
            quantity=listing.quantity if listing else None,
            unit=listing.unit if listing else None,
        )
    if tx.transaction_type == TransactionType.BID_PLACED:
        return BidPlacedDetails(
            listing_id=tx.listing_id,
            bid_id=tx.bid_id,
            comments=bid.comments if bid else None,
        )
    return OrderCreatedDetails(
        listing_id=tx.listing_id,
        bid_id=tx.bid_id,
        distributor_id=tx.to_user_id,
    )


class BatchService:
    def __init__(self, session: Session, clock: Clock = system_clock):
        self.session = session
        self.clock = clock

    def _get_batch(self, batch_id: str, lock: bool = False) -> Batch:
        statement = select(Batch).where(Batch.batch_id == batch_id)
        if lock:
            # Serializes concurrent custody changes on the same batch
            statement = statement.with_for_update()

        batch = self.session.exec(statement).first()
        if not batch:
            raise NotFound("Batch not found")
        return batch

    def _ensure_batch_id_unique(self) -> str:
        """
        Generates batch identifiers until one is unused in the store.
        """
        for _ in range(BATCH_ID_MAX_ATTEMPTS):
            candidate = generate_batch_id(self.clock.now())
            existing = self.session.exec(
                select(Batch.id).where(Batch.batch_id == candidate)
            ).first()
            if not existing:
                return candidate

        raise InternalError("Could not generate a unique batch identifier")

    def _require_owner(self, user: User, batch: Batch):
        if batch.current_owner_id != user.id:
            logger.warning(
                f"User {user.id} tried to act on batch {batch.batch_id} owned by {batch.current_owner_id}")
            raise Forbidden("You don't own this batch")

    # ==========================================================================
    # MUTATIONS
    # ==========================================================================

    def create_batch(self, user: User, data: BatchCreate) -> Batch:
        """
        Registers a new harvest batch owned by the calling farmer.
        Accounts without a role are treated as farmers here.
        """
        if user.role not in (UserRole.FARMER, UserRole.UNASSIGNED):
            logger.warning(f"Refused {user.role.value} {user.id}: only farmers can create batches")
            raise Forbidden("Only farmers can create batches")

        now = self.clock.now()
        batch_id = self._ensure_batch_id_unique()

        batch = Batch(
            **data.model_dump(),
            batch_id=batch_id,
            farmer_id=user.id,
            status=BatchStatus.CREATED,
            current_owner_id=user.id,
            qr_code=trace_url(batch_id),
            created_at=now,
            updated_at=now,
        )

        with atomic(self.session, "Batch creation"):
            self.session.add(batch)
            self.session.flush()
            _record_transaction(
                self.session,
                batch_id=batch_id,
                from_user_id=user.id,
                to_user_id=user.id,
                transaction_type=TransactionType.CREATION,
                new_status=BatchStatus.CREATED,
                timestamp=now,
            )

        self.session.refresh(batch)
        logger.info(f"Batch {batch_id} created by {user.id}")
        return batch

    def transfer_batch(self, user: User, batch_id: str, data: BatchTransfer) -> Batch:
        """
        Hands a batch to the next stakeholder.

        Distributors take ownership immediately. Retailers are only recorded
        as the pending owner; custody stays with the sender until the retailer
        accepts.
        """
        batch = self._get_batch(batch_id, lock=True)
        self._require_owner(user, batch)

        recipient = self.session.get(User, data.to_user_id)
        if not recipient:
            raise NotFound("Recipient not found")

        previous_status = batch.status
        if recipient.role == UserRole.DISTRIBUTOR:
            batch.status = BatchStatus.WITH_DISTRIBUTOR
            batch.current_owner_id = recipient.id
            batch.pending_owner_id = None
            if data.price is not None:
                batch.farmer_price = data.price
        elif recipient.role == UserRole.RETAILER:
            batch.status = BatchStatus.IN_TRANSIT_TO_RETAILER
            batch.pending_owner_id = recipient.id
            if data.price is not None:
                batch.distributor_price = data.price
        else:
            raise InvalidRecipient()

        now = self.clock.now()
        with atomic(self.session, "Batch transfer"):
            self.session.add(batch)
            _record_transaction(
                self.session,
                batch_id=batch.batch_id,
                from_user_id=user.id,
                to_user_id=recipient.id,
                transaction_type=TransactionType.TRANSFER,
                previous_status=previous_status,
                new_status=batch.status,
                price=data.price,
                notes=data.notes,
                timestamp=now,
            )

        self.session.refresh(batch)
        logger.info(
            f"Batch {batch.batch_id} transferred {user.id} -> {recipient.id} ({batch.status.value})")
        return batch

    def accept_batch_from_farmer(self, user: User, batch_id: str, data: BatchAcceptFromFarmer) -> Batch:
        """
        A distributor collects a batch directly from its farmer, typically
        after scanning the QR label. Logistics details go on the ledger entry.
        """
        if user.role != UserRole.DISTRIBUTOR:
            logger.warning(f"Refused {user.role.value} {user.id}: only distributors can accept batches")
            raise Forbidden("Only distributors can accept batches")

        batch = self._get_batch(batch_id, lock=True)

        current_owner = self.session.get(User, batch.current_owner_id)
        if not current_owner:
            raise NotFound("Current owner not found")
        if current_owner.role != UserRole.FARMER:
            raise InvalidState("Batch can only be accepted from a farmer")

        previous_status = batch.status
        batch.status = BatchStatus.WITH_DISTRIBUTOR
        batch.current_owner_id = user.id
        batch.pending_owner_id = None
        if data.price is not None:
            batch.farmer_price = data.price

        now = self.clock.now()
        with atomic(self.session, "Batch collection"):
            self.session.add(batch)
            _record_transaction(
                self.session,
                batch_id=batch.batch_id,
                from_user_id=current_owner.id,
                to_user_id=user.id,
                transaction_type=TransactionType.TRANSFER,
                previous_status=previous_status,
                new_status=BatchStatus.WITH_DISTRIBUTOR,
                price=data.price,
                notes=data.notes,
                timestamp=now,
                transport_mode=data.transport_mode,
                storage_info=data.storage_info,
                destination=data.destination,
            )

        self.session.refresh(batch)
        logger.info(
            f"Batch {batch.batch_id} collected by distributor {user.id} from farmer {current_owner.id}")
        return batch

    def retailer_accept_batch(self, user: User, batch_id: str, data: RetailerAccept) -> Batch:
        """
        Completes a retailer handoff. Repeating the call as the owning
        retailer succeeds again without changing custody.
        """
        if user.role != UserRole.RETAILER:
            logger.warning(f"Refused {user.role.value} {user.id}: only retailers can accept batches")
            raise Forbidden("Only retailers can accept batches")

        batch = self._get_batch(batch_id, lock=True)

        is_intended = batch.pending_owner_id == user.id
        already_owner = batch.current_owner_id == user.id
        if not is_intended and not already_owner:
            logger.warning(
                f"Retailer {user.id} tried to accept batch {batch.batch_id} not assigned to them")
            raise Forbidden("This batch is not assigned to you")

        previous_status = batch.status
        batch.status = BatchStatus.WITH_RETAILER
        batch.current_owner_id = user.id
        batch.pending_owner_id = None

        now = self.clock.now()
        with atomic(self.session, "Retailer acceptance"):
            self.session.add(batch)
            _record_transaction(
                self.session,
                batch_id=batch.batch_id,
                from_user_id=user.id,
                to_user_id=user.id,
                transaction_type=TransactionType.STATUS_UPDATE,
                previous_status=previous_status,
                new_status=BatchStatus.WITH_RETAILER,
                notes=data.notes,
                timestamp=now,
            )

        self.session.refresh(batch)
        logger.info(f"Batch {batch.batch_id} accepted by retailer {user.id}")
        return batch

    def update_batch_status(self, user: User, batch_id: str, data: BatchStatusUpdate) -> Batch:
        """
        Owner-only status edit. Any status is accepted; the ledger keeps the
        previous value so corrections remain auditable.
        """
        batch = self._get_batch(batch_id, lock=True)
        self._require_owner(user, batch)

        previous_status = batch.status
        batch.status = data.status
        if data.retail_price is not None:
            batch.retail_price = data.retail_price
        if data.shelf_location:
            batch.shelf_location = data.shelf_location
        if data.notes:
            batch.notes = data.notes

        now = self.clock.now()
        with atomic(self.session, "Batch status update"):
            self.session.add(batch)
            _record_transaction(
                self.session,
                batch_id=batch.batch_id,
                from_user_id=user.id,
                to_user_id=user.id,
                transaction_type=TransactionType.STATUS_UPDATE,
                previous_status=previous_status,
                new_status=data.status,
                price=data.retail_price,
                notes=data.notes,
                timestamp=now,
                shelf_location=data.shelf_location,
            )

        self.session.refresh(batch)
        logger.info(
            f"Batch {batch.batch_id} status {previous_status.value} -> {batch.status.value}")
        return batch

    # ==========================================================================
    # QUERIES
    # ==========================================================================

    def get_batch_by_id(self, batch_id: Optional[str]) -> Optional[BatchDetailsRead]:
        """
        Public trace lookup. Returns None rather than raising when the id is
        missing or unknown.
        """
        if not batch_id:
            return None

        batch = self.session.exec(
            select(Batch).where(Batch.batch_id == batch_id)
        ).first()
        if not batch:
            return None

        farmer = self.session.get(User, batch.farmer_id)

        transactions = self.session.exec(
            select(Transaction)
            .where(Transaction.batch_id == batch_id)
            .order_by(Transaction.timestamp)
        ).all()

        participants: Dict[uuid.UUID, Optional[User]] = {}

        def participant(user_id: uuid.UUID) -> Optional[ParticipantSummary]:
            if user_id not in participants:
                participants[user_id] = self.session.get(User, user_id)
            found = participants[user_id]
            if not found:
                return None
            return ParticipantSummary(name=found.name, role=found.role)

        history = [
            TransactionRead(
                **tx.model_dump(),
                details=transaction_details(
                    tx,
                    listing=self.session.get(Listing, tx.listing_id) if tx.listing_id else None,
                    bid=self.session.get(Bid, tx.bid_id) if tx.bid_id else None,
                ),
                from_user=participant(tx.from_user_id),
                to_user=participant(tx.to_user_id),
            ) for tx in transactions
        ]

        return BatchDetailsRead(
            **batch.model_dump(),
            farmer=FarmerSummary(
                name=farmer.name,
                farm_name=farmer.farm_name,
                location=farmer.location
            ) if farmer else None,
            transactions=history,
        )

    def get_user_batches(self, user: User) -> List[Batch]:
        """
        Government users see every batch; everyone else sees what they hold.
        """
        query = select(Batch).order_by(Batch.created_at.desc())
        if user.role != UserRole.GOVERNMENT:
            query = query.where(Batch.current_owner_id == user.id)
        return self.session.exec(query).all()

    def get_pending_batches_for_retailer(self, user: User) -> List[PendingBatchRead]:
        """
        Batches waiting for this retailer's acceptance, each with the most
        recent incoming transfer.
        """
        if user.role != UserRole.RETAILER:
            return []

        pending = self.session.exec(
            select(Batch)
            .where(Batch.pending_owner_id == user.id)
            .order_by(Batch.created_at.desc())
        ).all()

        results = []
        for batch in pending:
            latest = self.session.exec(
                select(Transaction)
                .where(
                    Transaction.batch_id == batch.batch_id,
                    Transaction.to_user_id == user.id,
                    Transaction.transaction_type == TransactionType.TRANSFER
                )
                .order_by(Transaction.timestamp.desc())
            ).first()

            last_transfer = None
            if latest:
                sender = self.session.get(User, latest.from_user_id)
                last_transfer = LastTransfer(
                    timestamp=latest.timestamp,
                    from_user_name=sender.display_name if sender else None
                )

            results.append(PendingBatchRead(
                **batch.model_dump(), last_transfer=last_transfer))

        return results
