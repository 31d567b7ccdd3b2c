"""
Idempotent seeding of the permission catalog and per-school default sub-roles.

Both use INSERT ... ON CONFLICT DO NOTHING on the unique key, so concurrent first use
from several processes cannot create duplicates and existing rows are never overwritten.
"""
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Tuple
from uuid import UUID

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import PermissionCatalog, SubRole, SubRolePermissionGrant

logger = logging.getLogger(__name__)


# (key, label, description)
PERMISSION_SEED: List[Tuple[str, str, str]] = [
    ("view_dashboard", "View Dashboard", "Access to dashboard"),
    ("manage_users", "Manage Users", "Full user management access"),
    ("create_users", "Create Users", "Create new users"),
    ("edit_users", "Edit Users", "Edit user information"),
    ("delete_users", "Delete Users", "Delete users"),
    ("view_grades", "View Grades", "View student grades"),
    ("edit_grades", "Edit Grades", "Enter and modify grades"),
    ("view_attendance", "View Attendance", "View attendance records"),
    ("mark_attendance", "Mark Attendance", "Mark student attendance"),
    ("view_schedule", "View Schedule", "View class schedules"),
    ("edit_schedule", "Edit Schedule", "Modify class schedules"),
    ("view_assignments", "View Assignments", "View assignments"),
    ("create_assignments", "Create Assignments", "Create new assignments"),
    ("grade_assignments", "Grade Assignments", "Grade student assignments"),
    ("submit_assignments", "Submit Assignments", "Submit assignments"),
    ("view_payments", "View Payments", "View payment records"),
    ("create_invoices", "Create Invoices", "Create invoices"),
    ("process_payments", "Process Payments", "Process payment transactions"),
    ("view_reports", "View Reports", "View reports"),
    ("generate_reports", "Generate Reports", "Generate new reports"),
    ("manage_school_settings", "Manage School Settings", "Manage school-wide settings"),
    ("view_social_feed", "View Social Feed", "View social media feed"),
    ("post_social", "Post on Social", "Create social media posts"),
    ("moderate_posts", "Moderate Posts", "Moderate social media posts"),
    ("send_announcements", "Send Announcements", "Send school announcements"),
    ("view_announcements", "View Announcements", "View announcements"),
    ("manage_classes", "Manage Classes", "Manage class assignments"),
    ("view_student_profiles", "View Student Profiles", "View student profiles"),
    ("edit_student_profiles", "Edit Student Profiles", "Edit student profiles"),
    ("view_parent_info", "View Parent Info", "View parent information"),
    ("manage_sub_roles", "Manage Sub-Roles", "Create and manage employee sub-roles"),
    ("view_analytics", "View Analytics", "View analytics and insights"),
    ("manage_resources", "Manage Resources", "Manage educational resources"),
    ("upload_resources", "Upload Resources", "Upload educational resources"),
]

PERMISSION_KEYS = frozenset(key for key, _, _ in PERMISSION_SEED)

# (key, name)
DEFAULT_SUB_ROLES: List[Tuple[str, str]] = [
    ("teacher", "Teacher"),
    ("principal", "Principal"),
    ("accountant", "Accountant"),
    ("bursar", "Bursar"),
    ("secretary", "Secretary"),
    ("librarian", "Librarian"),
    ("counselor", "Counselor"),
    ("sports_coach", "Sports Coach"),
]

_BASIC = ["view_dashboard", "view_social_feed", "view_announcements"]

# Granted only when the sub-role row is first created; admins may edit them afterwards.
STARTER_GRANTS: Dict[str, List[str]] = {
    "teacher": _BASIC + [
        "view_attendance",
        "mark_attendance",
        "view_assignments",
        "create_assignments",
        "grade_assignments",
        "view_grades",
        "edit_grades",
        "view_schedule",
        "view_student_profiles",
    ],
    "principal": _BASIC + [
        "manage_users",
        "view_attendance",
        "view_grades",
        "view_reports",
        "view_analytics",
        "view_student_profiles",
        "send_announcements",
    ],
    "accountant": _BASIC + ["view_payments", "create_invoices", "process_payments", "view_reports"],
    "bursar": _BASIC + ["view_payments", "process_payments"],
    "secretary": _BASIC + ["view_student_profiles", "view_parent_info", "send_announcements"],
    "librarian": _BASIC + ["manage_resources", "upload_resources"],
    "counselor": _BASIC + ["view_student_profiles", "view_grades", "view_attendance"],
    "sports_coach": _BASIC + ["view_schedule"],
}


def _insert_for(db: AsyncSession, model):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise RuntimeError(f"Unsupported database dialect for seeding: {dialect}")


async def seed_permission_catalog(db: AsyncSession) -> int:
    """Insert catalog keys that are missing. Returns the number inserted. Caller must commit."""
    rows = [
        {"id": uuid.uuid4(), "key": key, "label": label, "description": description}
        for key, label, description in PERMISSION_SEED
    ]
    stmt = (
        _insert_for(db, PermissionCatalog)
        .values(rows)
        .on_conflict_do_nothing(index_elements=["key"])
        .returning(PermissionCatalog.key)
    )
    result = await db.execute(stmt)
    inserted = result.scalars().all()
    if inserted:
        logger.info("Seeded %d permission catalog entries", len(inserted))
    return len(inserted)


async def seed_default_sub_roles(db: AsyncSession, school_id: UUID) -> List[str]:
    """Insert the default sub-roles a school lacks and give the new ones their starter grants.

    Returns the keys actually inserted. Sub-roles that already existed keep their grants untouched,
    so grants an admin removed are never brought back. Caller must commit.
    """
    await seed_permission_catalog(db)

    now = datetime.utcnow()
    rows = [
        {"id": uuid.uuid4(), "school_id": school_id, "key": key, "name": name, "is_system": True, "created_at": now}
        for key, name in DEFAULT_SUB_ROLES
    ]
    stmt = (
        _insert_for(db, SubRole)
        .values(rows)
        .on_conflict_do_nothing(index_elements=["school_id", "key"])
        .returning(SubRole.id, SubRole.key)
    )
    result = await db.execute(stmt)
    inserted = result.all()
    if not inserted:
        return []

    grant_rows = [
        {
            "id": uuid.uuid4(),
            "school_id": school_id,
            "sub_role_id": sub_role_id,
            "permission_key": permission_key,
            "created_at": now,
        }
        for sub_role_id, key in inserted
        for permission_key in STARTER_GRANTS.get(key, [])
    ]
    if grant_rows:
        grant_stmt = (
            _insert_for(db, SubRolePermissionGrant)
            .values(grant_rows)
            .on_conflict_do_nothing(index_elements=["sub_role_id", "permission_key"])
        )
        await db.execute(grant_stmt)

    keys = [key for _, key in inserted]
    logger.info("Seeded default sub-roles for school %s: %s", school_id, ", ".join(keys))
    return keys
