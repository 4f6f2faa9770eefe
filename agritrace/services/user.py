from typing import List, Optional
import uuid
from datetime import timedelta

import jwt
from loguru import logger
from sqlmodel import Session, select

from agritrace.core.clock import Clock, system_clock, utcnow
from agritrace.core.config import settings
from agritrace.core.exceptions import Conflict
from agritrace.db.schema import User, UserRole
from agritrace.models.auth import TokenData
from agritrace.models.user import UserCreate


class UserService:
    ALGORITHM = "HS256"

    def __init__(self, session: Session, clock: Clock = system_clock):
        self.session = session
        self.clock = clock

    def _create_jwt(self, subject: str, expires_delta: timedelta, type: str) -> str:
        """Helper to sign JWTs with specific types."""
        to_encode = {
            "sub": str(subject),
            "exp": utcnow() + expires_delta,
            "type": type
        }
        return jwt.encode(to_encode, settings.secret_key, algorithm=self.ALGORITHM)

    def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        statement = select(User).where(User.email == email)
        return self.session.exec(statement).first()

    def get_users_by_role(self, role: UserRole) -> List[User]:
        """Recipient picker for transfers."""
        statement = (
            select(User)
            .where(User.role == role)
            .order_by(User.name)
        )
        return self.session.exec(statement).all()

    def create_user(self, user_in: UserCreate) -> User:
        if self.get_user_by_email(user_in.email):
            raise Conflict("A user with this email already exists.")

        now = self.clock.now()
        user = User(**user_in.model_dump(), created_at=now, updated_at=now)

        try:
            self.session.add(user)
            self.session.commit()
            self.session.refresh(user)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Registration failed: {str(e)}")
            raise e

        logger.info(f"Registered {user.role.value} {user.email} ({user.id})")
        return user

    def generate_access_token(self, user: User) -> str:
        return self._create_jwt(
            subject=user.id,
            expires_delta=timedelta(
                minutes=settings.access_token_expire_minutes),
            type="access"
        )

    def verify_access_token(self, token: str) -> Optional[TokenData]:
        try:
            payload = jwt.decode(token, settings.secret_key,
                                 algorithms=[self.ALGORITHM])
            user_id = payload.get("sub")
            token_type = payload.get("type")

            if not user_id or token_type != "access":
                return None

            return TokenData(user_id=uuid.UUID(user_id))
        except (jwt.PyJWTError, ValueError):
            return None
