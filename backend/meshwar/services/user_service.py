"""
User service handling account CRUD.

Credentials are stored locally as bcrypt hashes so admins can sign in to
this API; the identity provider that the mobile app uses is not involved.
"""

from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import Database
from meshwar.db.transaction import run_transaction
from meshwar.models.booking import Booking
from meshwar.models.user import User, UserRole
from meshwar.schemas.user import UserCreate, UserUpdate
from meshwar.services.booking_service import release_booking
from meshwar.core.security import hash_password
from meshwar.core.exceptions import ConflictError, NotFoundError
from meshwar.core.logging import get_logger

logger = get_logger(__name__)


async def list_users(db: AsyncSession, role: Optional[UserRole] = None) -> list[User]:
    query = select(User).order_by(User.created_at.desc())
    if role is not None:
        query = query.where(User.role == role.value)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    """
    Create a user with a hashed password.
    Raises 409 if the email is already registered.
    """
    if await get_user_by_email(db, data.email):
        logger.warning("user_create_failed", reason="email_exists", email=data.email)
        raise ConflictError("Email already registered")

    user = User(
        email=data.email,
        display_name=data.display_name,
        role=data.role.value,
        dob=data.dob,
        profile_image=data.profile_image,
        hashed_password=hash_password(data.password),
    )
    db.add(user)
    await db.commit()

    logger.info("user_created", user_id=user.id, email=user.email, role=user.role)
    return user


async def update_user(db: AsyncSession, user_id: str, data: UserUpdate) -> User:
    user = await get_user(db, user_id)
    changes = data.model_dump(exclude_unset=True)

    password = changes.pop("password", None)
    if password:
        user.hashed_password = hash_password(password)
    if "role" in changes and changes["role"] is not None:
        changes["role"] = changes["role"].value

    for field, value in changes.items():
        setattr(user, field, value)
    await db.commit()

    logger.info("user_updated", user_id=user_id, fields=sorted(changes), password_changed=bool(password))
    return user


async def ensure_bootstrap_admin(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """Create the first admin account when no admin exists yet."""
    existing_admin = await db.execute(
        select(User.id).where(User.role == UserRole.ADMIN.value).limit(1)
    )
    if existing_admin.scalar_one_or_none():
        return None

    user = await get_user_by_email(db, email)
    if user:
        user.role = UserRole.ADMIN.value
        user.hashed_password = hash_password(password)
    else:
        user = User(
            email=email,
            display_name="Administrator",
            role=UserRole.ADMIN.value,
            hashed_password=hash_password(password),
        )
        db.add(user)
    await db.commit()

    logger.info("bootstrap_admin_ready", user_id=user.id, email=email)
    return user


async def delete_user(database: Database, user_id: str) -> int:
    """
    Delete a user together with their bookings, releasing each booking's
    place on its activity in the same transaction. Returns the number of
    bookings removed.
    """

    async def remove(session: AsyncSession) -> int:
        user = await session.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        result = await session.execute(select(Booking).where(Booking.user_id == user_id))
        bookings = list(result.scalars().all())
        for booking in bookings:
            await release_booking(session, booking)
        await session.delete(user)
        return len(bookings)

    removed = await run_transaction(database, remove, name="delete_user")
    logger.info("user_deleted", user_id=user_id, bookings_removed=removed)
    return removed
