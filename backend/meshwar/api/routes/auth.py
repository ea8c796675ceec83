"""
Authentication endpoints: admin login and current account.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import get_db
from meshwar.models.user import User
from meshwar.schemas.user import UserResponse, UserLogin, Token
from meshwar.services.auth_service import authenticate_admin
from meshwar.core.security import require_admin

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=Token)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Authenticate an administrator and receive a JWT access token."""
    token = await authenticate_admin(db, login_data)
    return Token(access_token=token)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(require_admin)):
    """Return the signed-in administrator."""
    return user
