from typing import List
from fastapi import APIRouter, Depends, Query, status
from loguru import logger

from agritrace.core.dependencies import get_user_service, get_current_user
from agritrace.services.user import UserService
from agritrace.db.schema import User, UserRole
from agritrace.models.user import UserCreate, UserRead, UserRegistered


router = APIRouter()


@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    response_model=UserRegistered,
    summary="Register a stakeholder",
    description=(
        "Creates a user record with an optional supply chain role and returns "
        "an access token for it. Accounts without a role act as farmers when "
        "creating batches."
    )
)
def signup(
    user_in: UserCreate,
    service: UserService = Depends(get_user_service)
):
    user = service.create_user(user_in)
    logger.info(f"Issued token for new user {user.id}")
    return UserRegistered(
        user=UserRead.model_validate(user),
        access_token=service.generate_access_token(user)
    )


@router.get(
    "/me",
    response_model=UserRead,
    status_code=status.HTTP_200_OK,
    summary="Get current user",
    description="Resolves the bearer token to the caller's user record."
)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.get(
    "/",
    response_model=List[UserRead],
    status_code=status.HTTP_200_OK,
    summary="List users by role",
    description="Used to pick the recipient of a batch transfer."
)
def get_users_by_role(
    role: UserRole = Query(..., description="Role to filter on, e.g. 'retailer'"),
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    return service.get_users_by_role(role)
