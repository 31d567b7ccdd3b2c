"""Staff attendance: one session per school day, one entry per employee in it."""

import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class StaffAttendanceSession(Base):
    __tablename__ = "staff_attendance_sessions"
    __table_args__ = (UniqueConstraint("school_id", "date", name="uq_staff_attendance_school_date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="draft")
    marked_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class StaffAttendanceEntry(Base):
    __tablename__ = "staff_attendance_entries"
    __table_args__ = (UniqueConstraint("session_id", "staff_id", name="uq_staff_attendance_entry_session_staff"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(
        UUID(as_uuid=True), ForeignKey("staff_attendance_sessions.id", ondelete="CASCADE"), nullable=False
    )
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # present | absent | late | excused
    note = Column(Text, nullable=True)
    marked_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    marked_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
