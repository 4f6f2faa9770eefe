from typing import List, Optional
from datetime import datetime
from uuid import UUID
from sqlmodel import SQLModel


class RecentDealRead(SQLModel):
    listing_id: UUID
    crop_variety: str
    final_price: Optional[float] = None
    accepted_at: Optional[datetime] = None
    farmer_name: Optional[str] = None
    distributor_name: Optional[str] = None
    quantity: float
    unit: str


class PriceInsightRead(SQLModel):
    """
    Price summary over accepted listings of one crop variety.
    Weekly figures cover the trailing seven days from the time of the call.
    """
    crop_variety: str = ""
    average_accepted_price: Optional[float] = None
    min_accepted_price_this_week: Optional[float] = None
    max_accepted_price_this_week: Optional[float] = None
    recent_accepted: List[RecentDealRead] = []
    total_deals: int = 0
    deals_this_week: int = 0
