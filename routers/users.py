from typing import Annotated, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

import crud
from audit_service import AuditService
from deps import CurrentAdminUserDep, SessionDep, require_roles
from models import User as UserModel
from schemas import User as PydanticUser

users_router = APIRouter(prefix="/users", tags=["users"])
log = logging.getLogger(__name__)

ReviewerDep = Annotated[UserModel, Depends(require_roles("staff"))]


@users_router.get("")
async def list_users(
    db_session: SessionDep,
    reviewer: ReviewerDep,
    role: Optional[str] = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
):
    users = await crud.get_users(db_session, skip=skip, limit=limit, role=role)
    return {"success": True, "count": len(users), "data": [PydanticUser.model_validate(u) for u in users]}


@users_router.get("/pending/approval")
async def list_pending_users(db_session: SessionDep, reviewer: ReviewerDep):
    """Accounts waiting for an admin decision (admins excluded)."""
    users = await crud.get_pending_users(db_session)
    return {"success": True, "count": len(users), "data": [PydanticUser.model_validate(u) for u in users]}


@users_router.put("/{user_id}/approve")
async def approve_user(user_id: int, db_session: SessionDep, reviewer: ReviewerDep):
    reviewer_id = reviewer.id
    user = await crud.get_user(db_session, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    user.is_approved = True
    await db_session.commit()
    await db_session.refresh(user)

    log.info(f"User {user_id} approved by {reviewer_id}")
    await AuditService.log_action("approve", "user", user_id, user_id=reviewer_id, new_value={"is_approved": True})
    return {"success": True, "message": "User approved successfully", "data": PydanticUser.model_validate(user)}


@users_router.delete("/{user_id}/reject")
async def reject_user(user_id: int, db_session: SessionDep, admin: CurrentAdminUserDep):
    """Reject a pending account by removing it."""
    admin_id = admin.id
    user = await crud.get_user(db_session, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.role == "admin":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admin accounts cannot be rejected")

    await db_session.delete(user)
    await db_session.commit()

    log.info(f"User {user_id} rejected and removed by {admin_id}")
    await AuditService.log_action("reject", "user", user_id, user_id=admin_id)
    return {"success": True, "message": "User rejected and removed"}
