"""
Class attendance: one session per (school, year, term, class, section, subject, date),
entries keyed by (session, student), and an append-only audit trail of session actions.
"""

import uuid
from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


def session_scope_key(section_id: Optional[PyUUID], subject_id: Optional[PyUUID]) -> str:
    """Non-null encoding of the optional section/subject part of the session tuple.

    Unique constraints treat NULLs as distinct, so the nullable columns alone cannot
    stop two "no section" sessions for the same day. The key makes them collide.
    """
    return f"{section_id or '-'}:{subject_id or '-'}"


class AttendanceSession(Base):
    __tablename__ = "attendance_sessions"
    __table_args__ = (
        UniqueConstraint(
            "school_id",
            "academic_year_id",
            "term_id",
            "class_id",
            "scope_key",
            "date",
            name="uq_attendance_session_tuple",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    academic_year_id = Column(UUID(as_uuid=True), ForeignKey("academic_years.id"), nullable=False)
    term_id = Column(UUID(as_uuid=True), ForeignKey("academic_terms.id"), nullable=False)
    class_id = Column(UUID(as_uuid=True), ForeignKey("school_classes.id"), nullable=False)
    section_id = Column(UUID(as_uuid=True), ForeignKey("class_sections.id"), nullable=True)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("subjects.id"), nullable=True)
    scope_key = Column(String(80), nullable=False)
    date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="draft")  # draft | submitted | locked
    marked_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    submitted_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    locked_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    locked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class AttendanceEntry(Base):
    __tablename__ = "attendance_entries"
    __table_args__ = (
        UniqueConstraint("session_id", "student_id", name="uq_attendance_entry_session_student"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(UUID(as_uuid=True), ForeignKey("attendance_sessions.id", ondelete="CASCADE"), nullable=False)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # present | absent | late | excused
    note = Column(Text, nullable=True)
    marked_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    marked_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class AttendanceAuditLog(Base):
    """Append-only. Rows are never updated or deleted by the application."""

    __tablename__ = "attendance_audit_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(UUID(as_uuid=True), ForeignKey("attendance_sessions.id", ondelete="CASCADE"), nullable=False)
    action = Column(String(50), nullable=False)  # session_created | entries_upserted | session_submitted | session_locked
    actor_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    meta = Column(JSON, nullable=True)
    at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
