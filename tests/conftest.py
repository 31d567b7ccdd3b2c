import os

# Settings are read at import time; configure them before the app is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

from datetime import date, datetime  # noqa: E402
from typing import AsyncGenerator, Dict, Iterable, Optional  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.auth.models import User  # noqa: E402
from app.auth.security import create_access_token, hash_password  # noqa: E402
from app.core.models import (  # noqa: E402
    AcademicYear,
    ClassSection,
    ParentChild,
    School,
    SchoolClass,
    StudentEnrollment,
    Subject,
    SubRole,
    SubRolePermissionGrant,
    Term,
)
from app.db.seed_permissions import seed_permission_catalog  # noqa: E402
from app.db.session import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "StrongPass123"
_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory schema per test; every session shares the single StaticPool connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield factory
    app.dependency_overrides.clear()
    await engine.dispose()


@pytest.fixture()
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging data and checking results. Call expunge_all() before re-reading rows the app changed."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
async def client(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(subject={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


class Factory:
    """Builds committed rows for a test."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._seq = 0

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        await self.db.refresh(obj)
        return obj

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def school(self, name: Optional[str] = None, **flags) -> School:
        return await self._save(School(name=name or f"School {self._next()}", **flags))

    async def user(
        self,
        school: Optional[School],
        role: str,
        name: Optional[str] = None,
        **fields,
    ) -> User:
        n = self._next()
        return await self._save(
            User(
                email=fields.pop("email", f"{role}{n}@example.com"),
                password_hash=_PASSWORD_HASH,
                name=name or f"{role.title()} {n}",
                role=role,
                school_id=school.id if school else None,
                **fields,
            )
        )

    async def admin(self, school: School) -> User:
        return await self.user(school, "admin")

    async def employee(self, school: Optional[School], sub_role: Optional[str] = None) -> User:
        return await self.user(school, "employee", sub_role=sub_role)

    async def student(self, school: Optional[School], name: Optional[str] = None, **fields) -> User:
        return await self.user(school, "student", name=name, **fields)

    async def parent(self, school: Optional[School], children: Iterable[User] = ()) -> User:
        parent = await self.user(school, "parent")
        for child in children:
            self.db.add(ParentChild(parent_id=parent.id, child_id=child.id))
        await self.db.commit()
        return parent

    async def sub_role(self, school: School, key: str, grants: Iterable[str] = ()) -> SubRole:
        await seed_permission_catalog(self.db)
        role = await self._save(SubRole(school_id=school.id, key=key, name=key.title()))
        for permission_key in grants:
            self.db.add(SubRolePermissionGrant(school_id=school.id, sub_role_id=role.id, permission_key=permission_key))
        await self.db.commit()
        return role

    async def academic_year(self, school: School, name: str = "2025", active: bool = True, **fields) -> AcademicYear:
        return await self._save(
            AcademicYear(
                school_id=school.id,
                name=name,
                start_date=fields.pop("start_date", date(2025, 1, 1)),
                end_date=fields.pop("end_date", date(2025, 12, 31)),
                is_active=active,
                **fields,
            )
        )

    async def term(self, year: AcademicYear, name: str = "Term 1") -> Term:
        return await self._save(
            Term(
                school_id=year.school_id,
                academic_year_id=year.id,
                name=name,
                start_date=year.start_date,
                end_date=year.end_date,
            )
        )

    async def school_class(self, school: School, name: str, grade_level: Optional[int] = None) -> SchoolClass:
        return await self._save(SchoolClass(school_id=school.id, name=name, grade_level=grade_level))

    async def section(self, school_class: SchoolClass, name: str = "Section 1") -> ClassSection:
        return await self._save(ClassSection(school_id=school_class.school_id, class_id=school_class.id, name=name))

    async def subject(self, school: School, name: str = "Mathematics", code: Optional[str] = None) -> Subject:
        return await self._save(Subject(school_id=school.id, name=name, code=code or f"SUB{self._next()}"))

    async def enroll(
        self,
        student: User,
        year: AcademicYear,
        school_class: SchoolClass,
        section: Optional[ClassSection] = None,
        status: str = "active",
    ) -> StudentEnrollment:
        student.grade = school_class.name
        student.class_section = section.name if section else None
        return await self._save(
            StudentEnrollment(
                school_id=year.school_id,
                student_id=student.id,
                academic_year_id=year.id,
                class_id=school_class.id,
                section_id=section.id if section else None,
                status=status,
                created_at=datetime.utcnow(),
            )
        )


@pytest.fixture()
def factory(db_session: AsyncSession) -> Factory:
    return Factory(db_session)


class Campus:
    """One school with an admin, an active year and term, Grade 1 / Section 1 and a subject."""

    school: School
    admin: User
    year: AcademicYear
    term: Term
    grade1: SchoolClass
    section1: ClassSection
    subject: Subject

    @property
    def admin_headers(self) -> Dict[str, str]:
        return auth_headers(self.admin)


@pytest.fixture()
async def campus(factory: Factory) -> Campus:
    c = Campus()
    c.school = await factory.school("Greenfield Academy", enrollment_open=True)
    c.admin = await factory.admin(c.school)
    c.year = await factory.academic_year(c.school, "2025")
    c.term = await factory.term(c.year)
    c.grade1 = await factory.school_class(c.school, "Grade 1", grade_level=1)
    c.section1 = await factory.section(c.grade1, "Section 1")
    c.subject = await factory.subject(c.school, "Mathematics", "MATH")
    return c


@pytest.fixture()
def auth():
    """auth(user) -> bearer headers for that user."""
    return auth_headers
