"""Ticket aggregation: role-scoped listing and analytics, frequent problems, solution upsert.

Admins see every ticket; other callers see only the tickets they submitted.
The frequent-problems report is always computed over all tickets.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from helpdesk.auth.identity import Identity
from helpdesk.errors import PermissionDenied, ValidationError
from helpdesk.schemas.ticket import (
    FrequentProblemOut,
    PriorityCount,
    SourceCount,
    StatusCount,
    TicketAnalyticsOut,
)
from helpdesk.storage.db import Database
from helpdesk.storage.models import ProblemSolutionModel, TicketModel, is_unset
from helpdesk.storage.repositories import (
    problem_solution_upsert,
    problem_solutions_for_subjects,
    ticket_count,
    ticket_group_count,
    ticket_list,
    ticket_subject_counts,
)

logger = logging.getLogger(__name__)

FREQUENT_PROBLEMS_LIMIT = 20


def scope_email(identity: Identity) -> Optional[str]:
    """Submitter email to filter by, or None for an unscoped (admin) view."""
    return None if identity.is_admin else identity.email


async def list_tickets(session: AsyncSession, identity: Identity) -> list[TicketModel]:
    """Tickets visible to the caller, newest first."""
    return await ticket_list(session, email=scope_email(identity))


async def group_counts(
    database: Database,
    column: InstrumentedAttribute,
    email: Optional[str],
    exclude: Callable[[Any], bool] = is_unset,
) -> list[tuple[Any, int]]:
    """Grouped counts over one ticket field, dropping groups whose key matches exclude."""
    async with database.session() as session:
        rows = await ticket_group_count(session, column, email=email)
    return [(key, count) for key, count in rows if not exclude(key)]


async def _total(database: Database, email: Optional[str]) -> int:
    async with database.session() as session:
        return await ticket_count(session, email=email)


async def ticket_analytics(database: Database, identity: Identity) -> TicketAnalyticsOut:
    """
    Totals and per-source/status/priority breakdowns for the caller's scope.
    The four queries run concurrently on separate sessions. A failure cancels the rest and fails the whole report.
    """
    email = scope_email(identity)
    tasks = [
        asyncio.ensure_future(group_counts(database, TicketModel.source, email)),
        asyncio.ensure_future(group_counts(database, TicketModel.status, email)),
        asyncio.ensure_future(group_counts(database, TicketModel.priority, email)),
        asyncio.ensure_future(_total(database, email)),
    ]
    try:
        by_source, by_status, by_priority, total = await asyncio.gather(*tasks)
    except BaseException:
        # no query may outlive a failed report
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return TicketAnalyticsOut(
        totalTickets=total,
        bySource=[SourceCount(source=k, count=c) for k, c in by_source],
        byStatus=[StatusCount(status=k, count=c) for k, c in by_status],
        byPriority=[PriorityCount(priority=k, count=c) for k, c in by_priority],
    )


async def frequent_problems(
    session: AsyncSession,
    limit: int = FREQUENT_PROBLEMS_LIMIT,
) -> list[FrequentProblemOut]:
    """Most common subjects across all tickets with their documented solution ("" if none)."""
    ranked = await ticket_subject_counts(session, limit)
    ranked = [(subject, count) for subject, count in ranked if subject and subject.strip()]
    solutions = await problem_solutions_for_subjects(session, [subject for subject, _ in ranked])
    by_subject = {s.subject: s.solution or "" for s in solutions}
    return [
        FrequentProblemOut(subject=subject, count=count, solution=by_subject.get(subject, ""))
        for subject, count in ranked
    ]


async def update_solution(
    session: AsyncSession,
    identity: Identity,
    subject: Optional[str],
    solution: Optional[str],
) -> ProblemSolutionModel:
    """Admin-only create-or-update of the solution for a subject."""
    if not identity.is_admin:
        raise PermissionDenied("Only admins can update solutions")
    subject = (subject or "").strip()
    if not subject:
        raise ValidationError("Subject is required")
    problem = await problem_solution_upsert(session, subject, solution or "")
    logger.info("Solution updated for subject %r by %s", subject, identity.email)
    return problem
