"""
FastAPI dependencies for the calling user and error translation.

Authentication happens upstream in the identity provider; requests
reach this service with the caller's organization and user ids in the
X-Organization-Id and X-User-Id headers.
"""

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from commtrack.db import get_db
from commtrack.models import User, UserRole
from commtrack.services.errors import (
    CommissionAccessError,
    CommissionConfigurationError,
    CommissionError,
    CommissionStateError,
    EntityNotFoundError,
    NoApplicablePlanError,
    NoApplicableRuleError,
    RuleValidationError,
)


async def get_current_user(
    organization_id: int = Header(..., alias="X-Organization-Id"),
    user_id: int = Header(..., alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get the calling user.

    Raises 401 if the user is unknown in the organization, 403 if the
    account is disabled.
    """
    user = await db.get(User, user_id)

    if not user or user.organization_id != organization_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user for this organization",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    return user


async def require_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """Require an organization admin (plan and rule management)."""
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


async def require_manager(
    current_user: User = Depends(get_current_user),
) -> User:
    """Require a manager or admin (approvals, adjustments, recalculation)."""
    if current_user.role not in (UserRole.ADMIN, UserRole.MANAGER):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Manager access required",
        )
    return current_user


def http_error(error: CommissionError) -> HTTPException:
    """Map a commission error onto the HTTP response for it."""
    if isinstance(error, RuleValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": "Invalid commission rule",
                "errors": [e.model_dump() for e in error.errors],
            },
        )
    if isinstance(error, CommissionConfigurationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(error))
    if isinstance(error, EntityNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, CommissionAccessError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
    if isinstance(error, (CommissionStateError, NoApplicablePlanError, NoApplicableRuleError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
