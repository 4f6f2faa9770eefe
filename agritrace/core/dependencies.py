from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from agritrace.core.clock import Clock, system_clock
from agritrace.core.exceptions import Unauthenticated, UserNotFound
from agritrace.db.core import get_session
from agritrace.db.schema import User
from agritrace.services.user import UserService
from agritrace.services.batch import BatchService
from agritrace.services.marketplace import MarketplaceService
from agritrace.services.price_insight import PriceInsightService

# auto_error off so a missing header maps to our own Unauthenticated
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="users/signup", auto_error=False)


def get_clock() -> Clock:
    return system_clock


def get_user_service(
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock)
) -> UserService:
    """Creates a UserService instance using the active DB session."""
    return UserService(session, clock)


def get_batch_service(
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock)
) -> BatchService:
    return BatchService(session=session, clock=clock)


def get_marketplace_service(
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock)
) -> MarketplaceService:
    return MarketplaceService(session=session, clock=clock)


def get_price_insight_service(
    session: Session = Depends(get_session),
    clock: Clock = Depends(get_clock)
) -> PriceInsightService:
    return PriceInsightService(session=session, clock=clock)


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    service: UserService = Depends(get_user_service)
) -> User:
    """
    Resolves the bearer token to a stored user.
    This is the gatekeeper for every caller-scoped route.
    """
    if not token:
        raise Unauthenticated("Not authenticated")

    token_data = service.verify_access_token(token)
    if not token_data:
        raise Unauthenticated()

    user = service.get_user_by_id(token_data.user_id)
    if user is None:
        raise UserNotFound()

    return user
