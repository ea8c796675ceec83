"""
Authentication service: admin sign-in.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.models.user import UserRole
from meshwar.schemas.user import UserLogin
from meshwar.services.user_service import get_user_by_email
from meshwar.core.security import verify_password, create_access_token
from meshwar.core.exceptions import ForbiddenError, UnauthorizedError
from meshwar.core.logging import get_logger

logger = get_logger(__name__)


async def authenticate_admin(db: AsyncSession, login_data: UserLogin) -> str:
    """
    Authenticate an admin and return a JWT access token.
    Raises 401 for bad credentials and 403 for non-admin accounts.
    """
    user = await get_user_by_email(db, login_data.email)

    if not user or not user.hashed_password or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise UnauthorizedError("Invalid email or password")

    if user.role != UserRole.ADMIN.value:
        logger.warning("login_rejected", user_id=user.id, reason="not_admin")
        raise ForbiddenError("Only administrators can sign in to the dashboard")

    token = create_access_token(data={"sub": user.id, "role": user.role})
    logger.info("user_logged_in", user_id=user.id)
    return token
