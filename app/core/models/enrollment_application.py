"""
Self-service intake: applications from students, parents (on behalf of a child) and employees.
Type-specific fields live in `details`, always written from a validated variant schema.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class EnrollmentApplication(Base):
    __tablename__ = "enrollment_applications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(String(30), nullable=False)  # student_self | parent_student | employee
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    applicant_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="submitted")
    academic_year_id = Column(UUID(as_uuid=True), ForeignKey("academic_years.id", ondelete="SET NULL"), nullable=True)
    class_id = Column(UUID(as_uuid=True), ForeignKey("school_classes.id", ondelete="SET NULL"), nullable=True)
    section_id = Column(UUID(as_uuid=True), ForeignKey("class_sections.id", ondelete="SET NULL"), nullable=True)
    pending_student_profile_id = Column(
        UUID(as_uuid=True),
        ForeignKey("pending_student_profiles.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Parent applications for a child that already has an account
    child_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    desired_sub_role_id = Column(UUID(as_uuid=True), ForeignKey("sub_roles.id", ondelete="SET NULL"), nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    review_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    reviewed_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class PendingStudentProfile(Base):
    """A child registered by a parent before it has an account. student_user_id is set once materialized."""

    __tablename__ = "pending_student_profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    date_of_birth = Column(Date, nullable=False)
    previous_school = Column(String(255), nullable=True)
    previous_class = Column(String(100), nullable=True)
    medical_info = Column(Text, nullable=True)
    documents = Column(JSON, nullable=False, default=list)
    student_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class ParentChild(Base):
    __tablename__ = "parent_children"
    __table_args__ = (
        UniqueConstraint("parent_id", "child_id", name="uq_parent_child"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    child_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
