from datetime import timedelta
from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

import auth_utils
import crud
from config import settings
from deps import SessionDep, CurrentUserDep
from schemas import Token, UserCreate, User

auth_router = APIRouter(prefix="/auth", tags=["auth"])
log = logging.getLogger(__name__)

# Roles that need an admin to approve the account before privileged actions
ROLES_REQUIRING_APPROVAL = ("partner", "volunteer", "fundraiser")


def _issue_token(user) -> Token:
    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = auth_utils.create_access_token(
        data={"sub": user.email}, expires_delta=access_token_expires
    )
    return Token(
        access_token=access_token,
        token_type="bearer",
        user_id=user.id,
        email=user.email,
        role=user.role,
    )


@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(user: UserCreate, db_session: SessionDep):
    """Self-service sign-up. Donors are approved immediately; other roles wait for an admin."""
    if await crud.get_user_by_email(db_session, email=user.email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    new_user = await crud.create_user(
        db_session,
        user,
        is_approved=user.role not in ROLES_REQUIRING_APPROVAL,
    )
    log.info(f"User {new_user.id} registered as {new_user.role} (approved={new_user.is_approved})")

    message = "Registration successful"
    if not new_user.is_approved:
        message = "Registration successful. Your account is pending admin approval."
    return {
        "success": True,
        "message": message,
        "data": {
            "user": User.model_validate(new_user),
            "token": _issue_token(new_user),
        },
    }


@auth_router.post("/token", response_model=Token)
async def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    db_session: SessionDep
):
    user = await crud.get_user_by_email(db_session, email=form_data.username)

    if not user or not auth_utils.verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated"
        )

    # The configured admin email always carries admin rights
    if user.email == settings.ADMIN_EMAIL and (user.role != "admin" or not user.is_approved):
        user.role = "admin"
        user.is_approved = True
        await db_session.commit()
        await db_session.refresh(user)

    return _issue_token(user)


@auth_router.get("/me")
async def get_current_user_info(current_user: CurrentUserDep):
    """Get current authenticated user info including approval and KYC state."""
    return {"success": True, "data": User.model_validate(current_user)}
