from uuid import UUID
from sqlmodel import SQLModel


class TokenAccess(SQLModel):
    access_token: str
    token_type: str = "bearer"


class TokenData(SQLModel):
    user_id: UUID
