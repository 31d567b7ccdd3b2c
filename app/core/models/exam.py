import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class Exam(Base):
    """Exam per term. Once published its marks are read-only."""

    __tablename__ = "exams"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    academic_year_id = Column(UUID(as_uuid=True), ForeignKey("academic_years.id"), nullable=False)
    term_id = Column(UUID(as_uuid=True), ForeignKey("academic_terms.id"), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default="exam")  # exam | quiz | test
    status = Column(String(20), nullable=False, default="draft")  # draft | published
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class ExamMark(Base):
    __tablename__ = "exam_marks"
    __table_args__ = (
        UniqueConstraint("exam_id", "student_id", "subject_id", name="uq_exam_mark_student_subject"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exam_id = Column(UUID(as_uuid=True), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("subjects.id"), nullable=False)
    marks_obtained = Column(Float, nullable=True)  # null until graded
    total_marks = Column(Float, nullable=False)
    remarks = Column(String(500), nullable=True)
    graded_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
