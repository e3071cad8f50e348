"""Repository for User CRUD operations.

Provides database access for the users table. Emails are always normalized
(trimmed, lowercased) before they reach a query.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from guestgate.models.user import User

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'email', 'created_at', or 'updated_at'.
# - email: identity; changing it requires a dedicated re-verification flow
_UPDATABLE_FIELDS: frozenset[str] = frozenset({"full_name", "locale"})


def normalize_email(email: str) -> str:
    """Canonical form used for storage, lookup, and rate-limit keys."""
    return email.strip().lower()


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == normalize_email(email))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        full_name: str | None = None,
        locale: str = "en",
    ) -> User:
        """Create a new user.

        Args:
            db: Async database session.
            email: Email address (normalized before storage).
            full_name: Optional display name.
            locale: Preferred language code.

        Returns:
            Created User.
        """
        user = User(email=normalize_email(email), full_name=full_name, locale=locale)
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **fields: str | None,
    ) -> User | None:
        """Update allowed profile fields.

        Args:
            db: Async database session.
            user_id: User to update.
            **fields: Field values; keys must be in _UPDATABLE_FIELDS.

        Returns:
            Updated User, or None if the user does not exist.

        Raises:
            ValueError: If a non-updatable field is passed.
        """
        disallowed = set(fields) - _UPDATABLE_FIELDS
        if disallowed:
            msg = f"Cannot update fields: {', '.join(sorted(disallowed))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None
        for name, value in fields.items():
            setattr(user, name, value)
        await db.flush()
        await db.refresh(user)
        return user
