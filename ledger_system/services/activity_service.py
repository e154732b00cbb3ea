# ledger_system/services/activity_service.py
"""
Activity feed service.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.activity import Activity
from models.user import User
from ledger_system.config.constants import ActivityType, ActivityStatus

logger = logging.getLogger(__name__)


class ActivityService:
    """Service for the audit activity feed."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def recordActivity(
            session: Session,
            user: User,
            activityType: ActivityType,
            details: Optional[Dict[str, Any]] = None,
            status: ActivityStatus = ActivityStatus.COMPLETED
    ) -> Activity:
        """
        Add an activity inside the caller's transaction.

        Nothing is committed here; the row lands together with the
        change it describes.
        """
        activity = Activity(
            userID=user.userID,
            userDisplayName=user.name,
            type=activityType.value,
            details=details or {},
            status=status.value
        )
        session.add(activity)
        return activity

    async def getUserActivities(self, userId: int, limit: int = 20) -> List[Dict]:
        """Latest activities of a user, newest first."""
        try:
            activities = self.session.query(Activity).filter(
                Activity.userID == userId
            ).order_by(
                Activity.createdAt.desc(),
                Activity.activityID.desc()
            ).limit(limit).all()
        except SQLAlchemyError as e:
            logger.error(f"Error loading activities for user {userId}: {e}", exc_info=True)
            return []

        return [
            {
                "id": a.activityID,
                "userId": a.userID,
                "userDisplayName": a.userDisplayName,
                "type": a.type,
                "details": a.details or {},
                "status": a.status,
                "createdAt": a.createdAt
            }
            for a in activities
        ]
