# deps.py
# Dependency injections for routes, authentication, and role checks.

import logging
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

import auth_utils
import crud
from config import settings
from database import SessionLocal
from models import User
from payment_utils import PaymentGateway

log = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


# -----------------------
#  DATABASE DEPENDENCY
# -----------------------
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session

SessionDep = Annotated[AsyncSession, Depends(get_db)]


# ------------------------------------------------
#  BEARER TOKEN HANDLING
# ------------------------------------------------
async def _resolve_user(db: AsyncSession, token: Optional[str]) -> Optional[User]:
    if token is None:
        return None

    email = auth_utils.decode_access_token(token)
    if email is None:
        log.warning("Authentication failed: Invalid or expired token.")
        return None

    user = await crud.get_user_by_email(db, email=email)
    if user is None:
        log.warning(f"Authentication failed: User {email} not found.")
        return None
    if not user.is_active:
        log.warning(f"Authentication failed: User {email} is inactive.")
        return None
    return user


async def get_current_user(
    db: SessionDep,
    bearer_token: Annotated[Optional[str], Depends(oauth2_scheme)] = None,
) -> User:
    """Resolve the caller from the Authorization header; 401 when missing or invalid."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if bearer_token is None:
        log.warning("Authentication failed: No token provided.")
        raise credentials_exception

    user = await _resolve_user(db, bearer_token)
    if user is None:
        raise credentials_exception
    return user

CurrentUserDep = Annotated[User, Depends(get_current_user)]


async def get_optional_user(
    db: SessionDep,
    bearer_token: Annotated[Optional[str], Depends(oauth2_scheme)] = None,
) -> Optional[User]:
    """Like get_current_user, but anonymous callers resolve to None."""
    return await _resolve_user(db, bearer_token)

OptionalUserDep = Annotated[Optional[User], Depends(get_optional_user)]


# -----------------------
#  ROLE CHECKS
# -----------------------
def is_admin(user: User) -> bool:
    return user.role == "admin" or user.email == settings.ADMIN_EMAIL


def require_roles(*roles: str):
    """Dependency factory: caller must hold one of ``roles`` (admins always pass)."""

    async def checker(current_user: CurrentUserDep) -> User:
        if is_admin(current_user) or current_user.role in roles:
            return current_user
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires role: {', '.join(roles) or 'admin'}"
        )

    return checker


async def get_current_admin_user(current_user: CurrentUserDep) -> User:
    if not is_admin(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not an admin user"
        )
    return current_user

CurrentAdminUserDep = Annotated[User, Depends(get_current_admin_user)]
StaffUserDep = Annotated[User, Depends(require_roles("staff"))]
PartnerUserDep = Annotated[User, Depends(require_roles("partner"))]


# -----------------------
#  COLLABORATORS
# -----------------------
def get_payment_gateway() -> PaymentGateway:
    return PaymentGateway.from_settings(settings)

PaymentGatewayDep = Annotated[PaymentGateway, Depends(get_payment_gateway)]
