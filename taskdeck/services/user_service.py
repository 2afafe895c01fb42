"""
User service for TaskDeck.

Keeps the ownership records that lists and tasks hang off. Credentials and
token handling belong to the authentication collaborator; this service only
confirms that an authenticated subject maps to a known account.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskdeck.database import UserORM
from taskdeck.logging_config import get_logger
from taskdeck.models import User
from taskdeck.services.converters import user_from_orm
from taskdeck.services.errors import NotFoundError, UnauthorizedError

logger = get_logger(__name__)


class UserService:
    """Service layer for account records."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the user service.

        Args:
            session: Active database session for operations
        """
        self.session = session

    async def create_user(
        self,
        email: str,
        name: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> User:
        """
        Create a new account record.

        Args:
            email: Unique email address
            name: Optional display name
            user_id: Optional UUID (auto-generated if not provided)

        Returns:
            Created User model

        Raises:
            ValueError: If the email is already registered
        """
        email = email.strip().lower()
        existing = await self.session.execute(select(UserORM).where(UserORM.email == email))
        if existing.scalar_one_or_none() is not None:
            logger.warning(f"User creation failed - email already registered: '{email}'")
            raise ValueError(f"User with email '{email}' already exists")

        user = User(id=user_id or uuid4(), email=email, name=name, created_at=datetime.utcnow())
        self.session.add(UserORM(
            id=str(user.id),
            email=user.email,
            name=user.name,
            created_at=user.created_at,
        ))
        await self.session.flush()

        logger.info(f"Created user: id={user.id}")
        return user

    async def get_user(self, user_id: UUID) -> User:
        """
        Retrieve an account by ID.

        Raises:
            NotFoundError: If the user does not exist
        """
        result = await self.session.execute(select(UserORM).where(UserORM.id == str(user_id)))
        user_orm = result.scalar_one_or_none()
        if user_orm is None:
            raise NotFoundError(f"User with id {user_id} not found")
        return user_from_orm(user_orm)

    async def resolve_subject(self, subject: Optional[str]) -> UUID:
        """
        Map a verified token subject to a user ID.

        Args:
            subject: The ``sub`` claim produced by the authentication layer

        Returns:
            The user's UUID

        Raises:
            UnauthorizedError: If the subject is missing, malformed or unknown
        """
        if not subject:
            raise UnauthorizedError("Missing credentials")
        try:
            user_id = UUID(subject)
        except ValueError:
            raise UnauthorizedError("Malformed token subject")

        try:
            user = await self.get_user(user_id)
        except NotFoundError:
            logger.warning(f"Token subject does not match any user: {subject}")
            raise UnauthorizedError("Unknown user")
        return user.id
