import uuid
from datetime import datetime
from typing import Optional
from sqlmodel import Session

from agritrace.db.schema import Transaction, TransactionType, BatchStatus


def _record_transaction(
    session: Session,
    *,
    batch_id: str,
    from_user_id: uuid.UUID,
    to_user_id: uuid.UUID,
    transaction_type: TransactionType,
    new_status: BatchStatus,
    timestamp: datetime,
    previous_status: Optional[BatchStatus] = None,
    price: Optional[float] = None,
    notes: Optional[str] = None,
    transport_mode: Optional[str] = None,
    storage_info: Optional[str] = None,
    destination: Optional[str] = None,
    shelf_location: Optional[str] = None,
    listing_id: Optional[uuid.UUID] = None,
    bid_id: Optional[uuid.UUID] = None,
) -> Transaction:
    """
    Stages a ledger entry on the caller's session.
    Never commits: the entry lands or rolls back together with the mutation
    it describes.
    """
    entry = Transaction(
        batch_id=batch_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        transaction_type=transaction_type,
        previous_status=previous_status,
        new_status=new_status,
        price=price,
        notes=notes,
        timestamp=timestamp,
        transport_mode=transport_mode,
        storage_info=storage_info,
        destination=destination,
        shelf_location=shelf_location,
        listing_id=listing_id,
        bid_id=bid_id,
    )
    session.add(entry)
    return entry
