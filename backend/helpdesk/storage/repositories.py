"""Repositories for tickets, problem solutions and users."""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from helpdesk.auth.identity import ROLE_USER
from helpdesk.storage.models import (
    ProblemSolutionModel,
    TicketModel,
    UserModel,
    gen_uuid,
    utcnow,
)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


# ---------- Tickets ----------
def _scoped(q: Select, email: Optional[str]) -> Select:
    """Restrict a ticket query to one submitter. email=None means every ticket."""
    if email is not None:
        q = q.where(TicketModel.email == email)
    return q


async def ticket_create(
    session: AsyncSession,
    *,
    email: str,
    subject: str,
    message: str = "",
    user_name: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    status: Optional[str] = None,
    source: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> TicketModel:
    t = TicketModel(
        email=email,
        subject=subject,
        message=message,
        user_name=user_name,
        category=category,
        priority=priority,
        status=status,
        source=source,
        created_at=created_at or utcnow(),
    )
    session.add(t)
    await session.flush()
    return t


async def ticket_list(session: AsyncSession, email: Optional[str] = None) -> list[TicketModel]:
    q = _scoped(select(TicketModel), email).order_by(TicketModel.created_at.desc())
    r = await session.execute(q)
    return list(r.scalars().all())


async def ticket_count(session: AsyncSession, email: Optional[str] = None) -> int:
    q = _scoped(select(func.count()).select_from(TicketModel), email)
    r = await session.execute(q)
    return r.scalar_one()


async def ticket_group_count(
    session: AsyncSession,
    column: InstrumentedAttribute,
    email: Optional[str] = None,
) -> list[tuple[Any, int]]:
    """(value, count) per distinct value of a ticket column, NULL included."""
    q = _scoped(select(column, func.count()).group_by(column), email)
    r = await session.execute(q)
    return [(key, count) for key, count in r.all()]


async def ticket_subject_counts(session: AsyncSession, limit: int) -> list[tuple[Optional[str], int]]:
    """Most common subjects over all tickets, count descending."""
    occurrences = func.count().label("occurrences")
    q = (
        select(TicketModel.subject, occurrences)
        .group_by(TicketModel.subject)
        .order_by(occurrences.desc(), TicketModel.subject)
        .limit(limit)
    )
    r = await session.execute(q)
    return [(subject, count) for subject, count in r.all()]


# ---------- Problem solutions ----------
async def problem_solution_get(session: AsyncSession, subject: str) -> Optional[ProblemSolutionModel]:
    r = await session.execute(
        select(ProblemSolutionModel)
        .where(ProblemSolutionModel.subject == subject)
        .execution_options(populate_existing=True)
    )
    return r.scalar_one_or_none()


async def problem_solutions_for_subjects(
    session: AsyncSession,
    subjects: list[str],
) -> list[ProblemSolutionModel]:
    if not subjects:
        return []
    r = await session.execute(
        select(ProblemSolutionModel).where(ProblemSolutionModel.subject.in_(subjects))
    )
    return list(r.scalars().all())


async def problem_solution_upsert(
    session: AsyncSession,
    subject: str,
    solution: str,
) -> ProblemSolutionModel:
    """Create or overwrite the solution for subject in one statement; refreshes updated_at."""
    dialect = session.bind.dialect.name
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Upsert not supported for dialect {dialect!r}")
    now = utcnow()
    stmt = insert(ProblemSolutionModel).values(
        id=gen_uuid(),
        subject=subject,
        solution=solution,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["subject"],
        set_={"solution": solution, "updated_at": now},
    )
    await session.execute(stmt)
    await session.flush()
    return await problem_solution_get(session, subject)


# ---------- Users ----------
async def user_get(session: AsyncSession, id: str) -> Optional[UserModel]:
    r = await session.execute(select(UserModel).where(UserModel.id == id))
    return r.scalar_one_or_none()


async def user_get_by_email(session: AsyncSession, email: str) -> Optional[UserModel]:
    r = await session.execute(select(UserModel).where(UserModel.email == email))
    return r.scalar_one_or_none()


async def user_create(
    session: AsyncSession,
    *,
    name: str,
    email: str,
    password_hash: str,
    role: str = ROLE_USER,
) -> UserModel:
    u = UserModel(name=name, email=email, password_hash=password_hash, role=role)
    session.add(u)
    await session.flush()
    return u
