import uuid

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from agritrace.core.exceptions import Forbidden, NotFound, Conflict, InvalidArgument
from agritrace.db.schema import (
    Batch, BatchStatus, Bid, BidStatus, Listing, ListingStatus,
    Transaction, TransactionType, UserRole
)
from agritrace.models.batch import BatchTransfer
from agritrace.models.marketplace import ListingCreate, BidCreate


def listing_payload(batch_id, **overrides):
    data = {
        "batch_id": batch_id,
        "quantity": 500,
        "unit": "kg",
        "expected_price": 3.50,
        "negotiation_allowed": True,
        "description": "Vine ripened",
    }
    data.update(overrides)
    return ListingCreate(**data)


def entries_of_type(session, batch_id, transaction_type):
    return session.exec(
        select(Transaction).where(
            Transaction.batch_id == batch_id,
            Transaction.transaction_type == transaction_type,
        )
    ).all()


@pytest.fixture
def listing(marketplace_service, batch, farmer):
    return marketplace_service.create_listing(farmer, listing_payload(batch.batch_id))


# ==============================================================================
# LISTINGS
# ==============================================================================


def test_create_listing_denormalizes_batch_and_farmer(session, listing, batch, farmer):
    assert listing.status == ListingStatus.OPEN
    assert listing.farmer_id == farmer.id
    assert listing.crop_variety == "Organic Tomatoes"
    assert listing.location == "California, USA"
    assert listing.expected_price == 3.50

    entries = entries_of_type(session, batch.batch_id, TransactionType.LISTING_CREATED)
    assert len(entries) == 1
    assert entries[0].previous_status == BatchStatus.CREATED
    assert entries[0].new_status == BatchStatus.CREATED
    assert entries[0].listing_id == listing.id
    assert entries[0].notes == "Listed in marketplace: 500 kg at 3.5 per unit"


def test_ledger_notes_keep_full_precision(session, marketplace_service, batch, farmer, distributor):
    listing = marketplace_service.create_listing(
        farmer, listing_payload(batch.batch_id, quantity=1234567, expected_price=1234.5678))
    marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=1234.5678))

    created = entries_of_type(session, batch.batch_id, TransactionType.LISTING_CREATED)
    assert created[0].notes == "Listed in marketplace: 1234567 kg at 1234.5678 per unit"

    placed = entries_of_type(session, batch.batch_id, TransactionType.BID_PLACED)
    assert placed[0].notes == "Bid placed: 1234.5678 per unit"


def test_listing_keeps_batch_status(session, listing, batch):
    stored = session.exec(select(Batch).where(Batch.batch_id == batch.batch_id)).one()
    assert stored.status == BatchStatus.CREATED


def test_second_open_listing_conflicts(session, marketplace_service, listing, batch, farmer):
    with pytest.raises(Conflict):
        marketplace_service.create_listing(farmer, listing_payload(batch.batch_id))

    open_listings = session.exec(
        select(Listing).where(
            Listing.batch_id == batch.batch_id,
            Listing.status == ListingStatus.OPEN,
        )
    ).all()
    assert len(open_listings) == 1


def test_open_listing_index_rejects_direct_duplicate(session, listing, batch, farmer):
    session.add(Listing(
        batch_id=batch.batch_id,
        farmer_id=farmer.id,
        quantity=1,
        unit="kg",
        expected_price=1.0,
        crop_variety=batch.crop_variety,
        status=ListingStatus.OPEN,
    ))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_relist_after_lock_in(marketplace_service, listing, batch, farmer, distributor):
    bid = marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=4.0))
    marketplace_service.accept_bid(farmer, listing.id, bid.id)

    relisted = marketplace_service.create_listing(farmer, listing_payload(batch.batch_id, quantity=100))
    assert relisted.status == ListingStatus.OPEN


def test_distributor_cannot_create_listing(marketplace_service, batch, distributor):
    with pytest.raises(Forbidden):
        marketplace_service.create_listing(distributor, listing_payload(batch.batch_id))


def test_farmer_cannot_list_foreign_batch(marketplace_service, batch, make_user):
    other_farmer = make_user(UserRole.FARMER)
    with pytest.raises(Forbidden):
        marketplace_service.create_listing(other_farmer, listing_payload(batch.batch_id))


def test_original_farmer_may_list_after_handoff(batch_service, marketplace_service, batch, farmer, distributor):
    batch_service.transfer_batch(farmer, batch.batch_id, BatchTransfer(to_user_id=distributor.id))

    created = marketplace_service.create_listing(farmer, listing_payload(batch.batch_id))
    assert created.status == ListingStatus.OPEN


def test_listing_unknown_batch(marketplace_service, farmer):
    with pytest.raises(NotFound):
        marketplace_service.create_listing(farmer, listing_payload("BATCH_MISSING"))


def test_list_open_listings_filters_and_sorts(
    marketplace_service, batch_service, farmer, distributor, batch_payload
):
    tomatoes = batch_service.create_batch(farmer, batch_payload())
    lettuce = batch_service.create_batch(farmer, batch_payload(crop_variety="Fresh Lettuce"))
    rice = batch_service.create_batch(farmer, batch_payload(crop_variety="Rice"))

    first = marketplace_service.create_listing(farmer, listing_payload(tomatoes.batch_id))
    second = marketplace_service.create_listing(farmer, listing_payload(lettuce.batch_id))
    closed = marketplace_service.create_listing(farmer, listing_payload(rice.batch_id))
    bid = marketplace_service.place_bid(distributor, closed.id, BidCreate(price_per_unit=1.0))
    marketplace_service.accept_bid(farmer, closed.id, bid.id)

    everything = marketplace_service.list_open_listings()
    assert [item.id for item in everything] == [second.id, first.id]
    assert everything[0].farmer.name == "John Smith"
    assert everything[0].farmer.farm_name == "Green Valley Farm"

    only_lettuce = marketplace_service.list_open_listings("Fresh Lettuce")
    assert [item.id for item in only_lettuce] == [second.id]


# ==============================================================================
# BIDS
# ==============================================================================


def test_place_bid_records_entry(session, marketplace_service, listing, batch, farmer, distributor):
    bid = marketplace_service.place_bid(
        distributor, listing.id,
        BidCreate(price_per_unit=4.0, comments="Can pick up Friday"))

    assert bid.status == BidStatus.PENDING
    assert bid.distributor_id == distributor.id

    entries = entries_of_type(session, batch.batch_id, TransactionType.BID_PLACED)
    assert len(entries) == 1
    assert entries[0].from_user_id == distributor.id
    assert entries[0].to_user_id == farmer.id
    assert entries[0].new_status == BatchStatus.CREATED
    assert entries[0].price == 4.0
    assert entries[0].notes == "Bid placed: 4 per unit - Can pick up Friday"


@pytest.mark.parametrize("role", [UserRole.FARMER, UserRole.RETAILER, UserRole.UNASSIGNED])
def test_only_distributors_bid(marketplace_service, listing, make_user, role):
    with pytest.raises(Forbidden):
        marketplace_service.place_bid(make_user(role), listing.id, BidCreate(price_per_unit=4.0))


def test_bid_quantity_range_must_be_ordered(marketplace_service, listing, distributor):
    with pytest.raises(InvalidArgument):
        marketplace_service.place_bid(
            distributor, listing.id,
            BidCreate(price_per_unit=4.0, min_quantity=300, max_quantity=100))


def test_bid_on_unknown_listing(marketplace_service, distributor):
    with pytest.raises(NotFound):
        marketplace_service.place_bid(distributor, uuid.uuid4(), BidCreate(price_per_unit=4.0))


def test_no_bids_after_lock_in(marketplace_service, listing, farmer, distributor, distributor2):
    bid = marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=4.0))
    marketplace_service.accept_bid(farmer, listing.id, bid.id)

    with pytest.raises(Conflict):
        marketplace_service.place_bid(distributor2, listing.id, BidCreate(price_per_unit=5.0))


def test_get_my_bids_newest_first(marketplace_service, listing, distributor):
    first = marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=3.9))
    second = marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=4.1))

    mine = marketplace_service.get_my_bids(distributor)

    assert [bid.id for bid in mine] == [second.id, first.id]
    assert mine[0].listing.id == listing.id
    assert mine[0].listing.farmer.name == "John Smith"


# ==============================================================================
# ACCEPTANCE
# ==============================================================================


def test_accept_bid_locks_listing_and_rejects_competitors(
    session, marketplace_service, listing, batch, farmer, distributor, distributor2
):
    winning = marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=4.00))
    losing = marketplace_service.place_bid(distributor2, listing.id, BidCreate(price_per_unit=3.80))

    result = marketplace_service.accept_bid(farmer, listing.id, winning.id)

    assert result.listing.status == ListingStatus.LOCKED_IN
    assert result.listing.final_price == 4.00
    assert result.listing.accepted_bid_id == winning.id
    assert result.listing.accepted_at is not None
    assert result.accepted_bid.status == BidStatus.ACCEPTED
    assert result.rejected_bid_ids == [losing.id]

    session.refresh(losing)
    assert losing.status == BidStatus.REJECTED

    orders = entries_of_type(session, batch.batch_id, TransactionType.ORDER_CREATED)
    assert len(orders) == 1
    assert orders[0].price == 4.00
    assert orders[0].from_user_id == farmer.id
    assert orders[0].to_user_id == distributor.id
    assert orders[0].bid_id == winning.id
    assert orders[0].new_status == BatchStatus.CREATED
    assert orders[0].notes == "Order confirmed: 4 per unit to Sarah Johnson"


def test_lower_bid_may_be_accepted(marketplace_service, listing, farmer, distributor, distributor2):
    marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=4.00))
    cheaper = marketplace_service.place_bid(distributor2, listing.id, BidCreate(price_per_unit=3.00))

    result = marketplace_service.accept_bid(farmer, listing.id, cheaper.id)

    assert result.listing.final_price == 3.00


def test_only_one_bid_ever_accepted(session, marketplace_service, listing, farmer, distributor, distributor2):
    first = marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=4.00))
    second = marketplace_service.place_bid(distributor2, listing.id, BidCreate(price_per_unit=3.80))
    marketplace_service.accept_bid(farmer, listing.id, first.id)

    with pytest.raises(Conflict):
        marketplace_service.accept_bid(farmer, listing.id, second.id)

    accepted = session.exec(
        select(Bid).where(Bid.listing_id == listing.id, Bid.status == BidStatus.ACCEPTED)
    ).all()
    assert [bid.id for bid in accepted] == [first.id]


def test_only_listing_farmer_accepts(marketplace_service, listing, distributor, make_user):
    bid = marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=4.0))

    with pytest.raises(Forbidden):
        marketplace_service.accept_bid(make_user(UserRole.FARMER), listing.id, bid.id)


def test_accept_bid_from_other_listing(
    marketplace_service, batch_service, listing, farmer, distributor, batch_payload
):
    other_batch = batch_service.create_batch(farmer, batch_payload(crop_variety="Rice"))
    other_listing = marketplace_service.create_listing(farmer, listing_payload(other_batch.batch_id))
    stray = marketplace_service.place_bid(distributor, other_listing.id, BidCreate(price_per_unit=2.0))

    with pytest.raises(InvalidArgument):
        marketplace_service.accept_bid(farmer, listing.id, stray.id)
    with pytest.raises(InvalidArgument):
        marketplace_service.accept_bid(farmer, listing.id, uuid.uuid4())


def test_my_listings_include_accepted_bid(marketplace_service, listing, farmer, distributor):
    bid = marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=4.0))
    marketplace_service.accept_bid(farmer, listing.id, bid.id)

    mine = marketplace_service.get_my_listings(farmer)

    assert len(mine) == 1
    assert mine[0].status == ListingStatus.LOCKED_IN
    assert mine[0].accepted_bid.id == bid.id
    assert mine[0].accepted_bid.distributor.email == distributor.email


def test_listing_details(marketplace_service, listing, batch, distributor, distributor2):
    first = marketplace_service.place_bid(distributor, listing.id, BidCreate(price_per_unit=4.0))
    second = marketplace_service.place_bid(distributor2, listing.id, BidCreate(price_per_unit=3.8))

    details = marketplace_service.get_listing_details(listing.id)

    assert details.listing.id == listing.id
    assert details.batch.batch_id == batch.batch_id
    assert details.farmer.name == "John Smith"
    assert [bid.id for bid in details.bids] == [second.id, first.id]
    assert details.bids[0].distributor.name == "Dave Miller"


def test_listing_details_unknown(marketplace_service):
    assert marketplace_service.get_listing_details(uuid.uuid4()) is None
