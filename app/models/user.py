"""
User directory models used to expand role tokens into addresses.

profiles.id is the user id; user_roles holds one row per (user, role).
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Index
from app.database import Base


class Profile(Base):
    """User profile with contact email and optional instructor linkage."""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), index=True)
    instructor_id = Column(String(36), ForeignKey("instructors.id"))

    def __repr__(self):
        return f"<Profile(id={self.id}, email={self.email})>"


class UserRole(Base):
    """Role membership: admin, director, manager, instructor, ..."""
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False)
    role = Column(String(50), nullable=False)

    __table_args__ = (
        Index("ix_user_roles_role", "role"),
        Index("ix_user_roles_user", "user_id"),
    )

    def __repr__(self):
        return f"<UserRole(user={self.user_id}, role={self.role})>"
