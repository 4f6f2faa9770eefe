from datetime import timedelta
from typing import Optional

from sqlmodel import Session, select

from agritrace.core.clock import Clock, as_utc, system_clock
from agritrace.db.schema import User, Listing, ListingStatus, Bid
from agritrace.models.price_insight import PriceInsightRead, RecentDealRead


WEEK_WINDOW = timedelta(milliseconds=604_800_000)
RECENT_DEALS_LIMIT = 5
ACCEPTED_LISTING_STATUSES = (ListingStatus.LOCKED_IN, ListingStatus.SOLD)


class PriceInsightService:
    def __init__(self, session: Session, clock: Clock = system_clock):
        self.session = session
        self.clock = clock

    def _display_name(self, user_id) -> Optional[str]:
        user = self.session.get(User, user_id)
        return user.display_name if user else None

    def get_price_insights_for_crop(self, crop_variety: Optional[str]) -> PriceInsightRead:
        """
        Summarizes the prices farmers accepted for a crop variety.
        Without a crop variety the empty summary is returned.
        """
        if not crop_variety:
            return PriceInsightRead()

        listings = self.session.exec(
            select(Listing).where(Listing.crop_variety == crop_variety)
        ).all()

        accepted = [
            listing for listing in listings
            if listing.status in ACCEPTED_LISTING_STATUSES
            and isinstance(listing.final_price, (int, float))
        ]

        week_ago = as_utc(self.clock.now()) - WEEK_WINDOW
        this_week = [
            listing for listing in accepted
            if listing.accepted_at is not None and as_utc(listing.accepted_at) >= week_ago
        ]

        prices = [listing.final_price for listing in accepted]
        week_prices = [listing.final_price for listing in this_week]

        recent = sorted(
            accepted,
            key=lambda listing: as_utc(listing.accepted_at or listing.created_at),
            reverse=True,
        )[:RECENT_DEALS_LIMIT]

        recent_deals = []
        for listing in recent:
            distributor_name = None
            if listing.accepted_bid_id:
                bid = self.session.get(Bid, listing.accepted_bid_id)
                if bid:
                    distributor_name = self._display_name(bid.distributor_id)

            recent_deals.append(RecentDealRead(
                listing_id=listing.id,
                crop_variety=listing.crop_variety,
                final_price=listing.final_price,
                accepted_at=listing.accepted_at,
                farmer_name=self._display_name(listing.farmer_id),
                distributor_name=distributor_name,
                quantity=listing.quantity,
                unit=listing.unit,
            ))

        return PriceInsightRead(
            crop_variety=crop_variety,
            average_accepted_price=sum(prices) / len(prices) if prices else None,
            min_accepted_price_this_week=min(week_prices) if week_prices else None,
            max_accepted_price_this_week=max(week_prices) if week_prices else None,
            recent_accepted=recent_deals,
            total_deals=len(accepted),
            deals_this_week=len(this_week),
        )
