from uuid import UUID
from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field
from pydantic import EmailStr, StringConstraints
from typing_extensions import Annotated
from agritrace.db.schema import UserRole
from agritrace.models.auth import TokenAccess


class UserCreate(SQLModel):
    """
    DTO for registering a stakeholder.
    Role may be left out; the account then acts as a farmer for batch creation.
    """
    email: Annotated[EmailStr, StringConstraints(to_lower=True)] = Field(
        description="Unique email address.",
        max_length=255
    )
    name: str = Field(
        min_length=1,
        max_length=120,
        description="Display name."
    )
    role: UserRole = Field(
        default=UserRole.UNASSIGNED,
        description="One of 'farmer', 'distributor', 'retailer', 'government', 'admin'."
    )
    phone: Optional[str] = Field(default=None, max_length=40)
    location: Optional[str] = Field(default=None, max_length=200)
    farm_name: Optional[str] = Field(default=None, max_length=200)
    license_number: Optional[str] = Field(default=None, max_length=100)


class UserRead(SQLModel):
    id: UUID
    email: str
    name: Optional[str] = None
    role: UserRole
    phone: Optional[str] = None
    location: Optional[str] = None
    farm_name: Optional[str] = None
    license_number: Optional[str] = None
    verified: bool
    created_at: datetime


class UserRegistered(TokenAccess):
    """Signup response: the stored user plus a bearer token for it."""
    user: UserRead


class FarmerSummary(SQLModel):
    name: Optional[str] = None
    farm_name: Optional[str] = None
    location: Optional[str] = None


class ParticipantSummary(SQLModel):
    name: Optional[str] = None
    role: UserRole


class DistributorSummary(SQLModel):
    name: Optional[str] = None
    email: str
    role: UserRole
