import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class School(Base):
    """
    Tenant. Every school-scoped row carries school_id pointing here.

    The application flags gate self-service intake: an application of a given type
    is accepted only while enrollment_open and the matching *_applications_enabled are set.
    """

    __tablename__ = "schools"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    logo_url = Column(String(512), nullable=True)
    address = Column(String(512), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    enrollment_open = Column(Boolean, nullable=False, default=False)
    student_applications_enabled = Column(Boolean, nullable=False, default=True)
    parent_applications_enabled = Column(Boolean, nullable=False, default=True)
    staff_applications_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
