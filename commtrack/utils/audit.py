"""
Audit logging utilities.

Changes to commission configuration and payouts are logged for review.
"""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from commtrack.models.audit import AuditAction, AuditLog


async def log_action(
    db: AsyncSession,
    organization_id: int,
    action: AuditAction,
    user_id: Optional[int] = None,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    description: Optional[str] = None,
    action_metadata: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Log an auditable action.

    Args:
        db: Database session
        organization_id: Organization the change belongs to
        action: Type of action being performed
        user_id: ID of the user performing the action (None for system jobs)
        target_type: Type of entity affected (e.g., "rule", "commission")
        target_id: ID of the affected entity
        description: Human-readable summary
        action_metadata: Additional context about the action

    Returns:
        Created AuditLog entry
    """
    log_entry = AuditLog(
        organization_id=organization_id,
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        description=description,
        action_metadata=action_metadata,
    )
    db.add(log_entry)
    # Note: commit should happen in the calling context
    return log_entry
