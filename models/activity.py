"""
Activity model - audit feed of user-visible events.
"""
from sqlalchemy import Column, Integer, String, JSON, ForeignKey

from models.base import Base, AuditMixin


class Activity(Base, AuditMixin):
    __tablename__ = 'activities'

    activityID = Column(Integer, primary_key=True, autoincrement=True)

    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    userDisplayName = Column(String, nullable=True)

    type = Column(String, nullable=False)
    details = Column(JSON, nullable=True)
    # Structure (all keys optional):
    # {"amount": "100.00", "reason": "...", "adminId": 2, "adminName": "...",
    #  "previousBalance": "0.00", "newBalance": "100.00"}
    status = Column(String, nullable=False, default="completed")  # completed, pending, failed

    def __repr__(self):
        return f"<Activity(activityID={self.activityID}, type={self.type}, user={self.userID})>"
