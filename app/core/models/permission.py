import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.db.session import Base


class PermissionCatalog(Base):
    """Process-wide list of grantable permission keys."""

    __tablename__ = "permission_catalog"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    key = Column(String(100), nullable=False, unique=True)
    label = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)


class SubRole(Base):
    """School-defined specialization of the employee role, e.g. teacher or accountant."""

    __tablename__ = "sub_roles"
    __table_args__ = (
        # Key is what users.sub_role stores; unique within a school
        UniqueConstraint("school_id", "key", name="uq_sub_role_school_key"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    key = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    is_system = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class SubRolePermissionGrant(Base):
    __tablename__ = "sub_role_permission_grants"
    __table_args__ = (
        UniqueConstraint("sub_role_id", "permission_key", name="uq_grant_sub_role_permission"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    sub_role_id = Column(UUID(as_uuid=True), ForeignKey("sub_roles.id", ondelete="CASCADE"), nullable=False)
    permission_key = Column(String(100), ForeignKey("permission_catalog.key"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
