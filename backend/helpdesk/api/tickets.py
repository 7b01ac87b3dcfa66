"""Tickets API: scoped listing, analytics, frequent problems, solution editing."""
from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.auth.identity import Identity
from helpdesk.deps import get_database, get_db, get_identity
from helpdesk.errors import StoreFailure
from helpdesk.schemas.ticket import (
    FrequentProblemsOut,
    ProblemSolutionOut,
    SolutionUpdateIn,
    SolutionUpdateOut,
    TicketAnalyticsEnvelope,
    TicketListOut,
    TicketOut,
)
from helpdesk.services.ticket_analytics import (
    frequent_problems,
    list_tickets,
    ticket_analytics,
    update_solution,
)
from helpdesk.storage.db import Database
from helpdesk.storage.models import TicketModel, unset_to_none

router = APIRouter(prefix="/api/tickets", tags=["tickets"])


def ticket_out(t: TicketModel) -> TicketOut:
    return TicketOut(
        id=t.id,
        email=t.email,
        user_name=unset_to_none(t.user_name),
        subject=t.subject,
        message=t.message or "",
        category=unset_to_none(t.category),
        priority=unset_to_none(t.priority),
        status=unset_to_none(t.status),
        source=unset_to_none(t.source),
        createdAt=t.created_at.isoformat(),
    )


@router.get("", response_model=TicketListOut)
async def get_tickets(
    identity: Identity = Depends(get_identity),
    session: AsyncSession = Depends(get_db),
):
    """All tickets for admins, the caller's own tickets otherwise. Newest first."""
    try:
        tickets = await list_tickets(session, identity)
    except SQLAlchemyError as e:
        raise StoreFailure.wrap("Server error fetching tickets", e) from e
    return TicketListOut(tickets=[ticket_out(t) for t in tickets])


@router.get("/analytics", response_model=TicketAnalyticsEnvelope)
async def get_ticket_analytics(
    identity: Identity = Depends(get_identity),
    database: Database = Depends(get_database),
):
    try:
        analytics = await ticket_analytics(database, identity)
    except SQLAlchemyError as e:
        raise StoreFailure.wrap("Server error fetching ticket analytics", e) from e
    return TicketAnalyticsEnvelope(analytics=analytics)


@router.get("/frequent-problems", response_model=FrequentProblemsOut, dependencies=[Depends(get_identity)])
async def get_frequent_problems(
    session: AsyncSession = Depends(get_db),
):
    """Top subjects over every ticket (not scoped by role), joined with the knowledge base."""
    try:
        problems = await frequent_problems(session)
    except SQLAlchemyError as e:
        raise StoreFailure.wrap("Server error fetching frequent problems", e) from e
    return FrequentProblemsOut(problems=problems)


@router.put("/problems/solution", response_model=SolutionUpdateOut)
async def put_problem_solution(
    body: SolutionUpdateIn,
    identity: Identity = Depends(get_identity),
    session: AsyncSession = Depends(get_db),
):
    try:
        problem = await update_solution(session, identity, body.subject, body.solution)
        await session.commit()
    except SQLAlchemyError as e:
        raise StoreFailure.wrap("Server error updating problem solution", e) from e
    return SolutionUpdateOut(
        problem=ProblemSolutionOut(subject=problem.subject, solution=problem.solution),
    )
