import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class User(Base):
    """Account of any role. school_id stays null until the user is admitted to a school."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    name = Column(String(255), nullable=False)
    # admin | employee | student | parent
    role = Column(String(20), nullable=False)
    # Key of a SubRole in the same school (employees only)
    sub_role = Column(String(100), nullable=True)
    student_id = Column(String(50), nullable=True)
    employee_id = Column(String(50), nullable=True)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="SET NULL"), nullable=True, index=True)
    # Denormalized current placement (students): class name and section name
    grade = Column(String(50), nullable=True)
    class_section = Column(String(50), nullable=True)
    verified = Column(Boolean, nullable=False, default=False)
    profile_completion = Column(Integer, nullable=False, default=20)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class RefreshToken(Base):
    """Stored refresh tokens for users. Rotated on every refresh."""

    __tablename__ = "refresh_tokens"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(512), nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
