from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from agritrace.core.dependencies import (
    get_current_user, get_marketplace_service, get_price_insight_service
)
from agritrace.services.marketplace import MarketplaceService
from agritrace.services.price_insight import PriceInsightService
from agritrace.db.schema import User
from agritrace.models.marketplace import (
    ListingCreate, ListingRead, ListingWithFarmerRead, MyListingRead,
    ListingDetailsRead, BidCreate, BidRead, MyBidRead, BidAcceptanceRead
)
from agritrace.models.price_insight import PriceInsightRead

router = APIRouter()

# ==============================================================================
# LISTINGS
# ==============================================================================


@router.post(
    "/listings",
    response_model=ListingRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create Listing",
    description="Opens one of the caller's batches for distributor bids. One open listing per batch."
)
def create_listing(
    payload: ListingCreate,
    current_user: User = Depends(get_current_user),
    service: MarketplaceService = Depends(get_marketplace_service)
):
    return service.create_listing(user=current_user, data=payload)


@router.get(
    "/listings",
    response_model=List[ListingWithFarmerRead],
    summary="Browse Open Listings",
    description="Open listings, newest first, optionally for one crop variety."
)
def list_open_listings(
    crop_variety: Optional[str] = Query(default=None, description="Example: 'Organic Tomatoes'"),
    service: MarketplaceService = Depends(get_marketplace_service)
):
    return service.list_open_listings(crop_variety)


@router.get(
    "/listings/mine",
    response_model=List[MyListingRead],
    summary="My Listings",
    description="The caller's listings in every status, with the accepted bid when there is one."
)
def get_my_listings(
    current_user: User = Depends(get_current_user),
    service: MarketplaceService = Depends(get_marketplace_service)
):
    return service.get_my_listings(user=current_user)


@router.get(
    "/listings/{listing_id}",
    response_model=Optional[ListingDetailsRead],
    summary="Listing Details",
    description="Listing, batch, farmer and all bids. Returns null when the listing is unknown."
)
def get_listing_details(
    listing_id: UUID,
    service: MarketplaceService = Depends(get_marketplace_service)
):
    return service.get_listing_details(listing_id)


# ==============================================================================
# BIDS
# ==============================================================================


@router.post(
    "/listings/{listing_id}/bids",
    response_model=BidRead,
    status_code=status.HTTP_201_CREATED,
    summary="Place Bid",
    description="Distributors only. The listing must still be open."
)
def place_bid(
    listing_id: UUID,
    payload: BidCreate,
    current_user: User = Depends(get_current_user),
    service: MarketplaceService = Depends(get_marketplace_service)
):
    return service.place_bid(user=current_user, listing_id=listing_id, data=payload)


@router.post(
    "/listings/{listing_id}/bids/{bid_id}/accept",
    response_model=BidAcceptanceRead,
    summary="Accept Bid",
    description="The listing's farmer locks in one bid; all other pending bids are rejected."
)
def accept_bid(
    listing_id: UUID,
    bid_id: UUID,
    current_user: User = Depends(get_current_user),
    service: MarketplaceService = Depends(get_marketplace_service)
):
    return service.accept_bid(user=current_user, listing_id=listing_id, bid_id=bid_id)


@router.get(
    "/bids/mine",
    response_model=List[MyBidRead],
    summary="My Bids",
    description="The caller's bids, newest first, with the listing and its farmer."
)
def get_my_bids(
    current_user: User = Depends(get_current_user),
    service: MarketplaceService = Depends(get_marketplace_service)
):
    return service.get_my_bids(user=current_user)


# ==============================================================================
# PRICE INSIGHTS
# ==============================================================================


@router.get(
    "/insights",
    response_model=PriceInsightRead,
    summary="Price Insights",
    description="Average, weekly range and recent deals for accepted listings of a crop variety."
)
def get_price_insights_for_crop(
    crop_variety: Optional[str] = Query(default=None),
    service: PriceInsightService = Depends(get_price_insight_service)
):
    return service.get_price_insights_for_crop(crop_variety)
