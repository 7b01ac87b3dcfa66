import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from helpdesk.auth.identity import Identity
from helpdesk.errors import PermissionDenied, ValidationError
from helpdesk.services import ticket_analytics as analytics_service
from helpdesk.services.ticket_analytics import (
    FREQUENT_PROBLEMS_LIMIT,
    frequent_problems,
    list_tickets,
    ticket_analytics,
    update_solution,
)
from helpdesk.storage.models import ProblemSolutionModel, utcnow

ADMIN = Identity(email="admin@x.com", role="admin")
USER_A = Identity(email="a@x.com", role="user")


async def _list(database, identity):
    async with database.session() as session:
        return await list_tickets(session, identity)


async def _problems(database):
    async with database.session() as session:
        return await frequent_problems(session)


async def _upsert(database, identity, subject, solution):
    async with database.session() as session:
        return await update_solution(session, identity, subject, solution)


async def _solution_rows(database, subject):
    async with database.session() as session:
        r = await session.execute(
            select(func.count()).select_from(ProblemSolutionModel).where(ProblemSolutionModel.subject == subject)
        )
        return r.scalar_one()


# ---------- listing ----------
async def test_user_sees_only_own_tickets_newest_first(database, make_ticket):
    older = await make_ticket(email="a@x.com", subject="VPN down", minutes=1)
    newer = await make_ticket(email="a@x.com", subject="Printer jam", minutes=10)
    for i in range(5):
        await make_ticket(email=f"other{i}@x.com", subject="VPN down", minutes=i)

    tickets = await _list(database, USER_A)

    assert [t.id for t in tickets] == [newer.id, older.id]


async def test_admin_sees_every_ticket(database, make_ticket):
    for i in range(3):
        await make_ticket(email="a@x.com", minutes=i)
    for i in range(4):
        await make_ticket(email="b@x.com", minutes=10 + i)

    tickets = await _list(database, ADMIN)

    assert len(tickets) == 7
    created = [t.created_at for t in tickets]
    assert created == sorted(created, reverse=True)


async def test_email_scope_is_case_sensitive(database, make_ticket):
    await make_ticket(email="A@x.com")

    assert await _list(database, USER_A) == []


# ---------- analytics ----------
async def test_analytics_scoped_to_caller(database, make_ticket):
    await make_ticket(email="a@x.com", source="Email", status="TO DO", priority="High")
    await make_ticket(email="a@x.com", source="Email", status="DONE")
    await make_ticket(email="b@x.com", source="WhatsApp", status="DONE", priority="Low")

    mine = await ticket_analytics(database, USER_A)
    everyone = await ticket_analytics(database, ADMIN)

    assert mine.totalTickets == 2
    assert {c.source: c.count for c in mine.bySource} == {"Email": 2}
    assert {c.status: c.count for c in mine.byStatus} == {"TO DO": 1, "DONE": 1}
    assert {c.priority: c.count for c in mine.byPriority} == {"High": 1}

    assert everyone.totalTickets == 3
    assert {c.source: c.count for c in everyone.bySource} == {"Email": 2, "WhatsApp": 1}
    assert {c.status: c.count for c in everyone.byStatus} == {"TO DO": 1, "DONE": 2}


async def test_analytics_drops_unset_and_legacy_null_groups(database, make_ticket):
    await make_ticket(source="Chatbot", status="PENDING", priority="Medium")
    await make_ticket(source="null", status="null", priority="null")
    await make_ticket(source=None, status="", priority=None)

    analytics = await ticket_analytics(database, ADMIN)

    assert analytics.totalTickets == 3
    assert [(c.source, c.count) for c in analytics.bySource] == [("Chatbot", 1)]
    assert [(c.status, c.count) for c in analytics.byStatus] == [("PENDING", 1)]
    assert [(c.priority, c.count) for c in analytics.byPriority] == [("Medium", 1)]


async def test_analytics_with_no_tickets(database):
    analytics = await ticket_analytics(database, USER_A)

    assert analytics.totalTickets == 0
    assert analytics.bySource == []
    assert analytics.byStatus == []
    assert analytics.byPriority == []


# ---------- frequent problems ----------
async def test_frequent_problems_ordered_by_count(database, make_ticket):
    for i in range(3):
        await make_ticket(subject="Printer jam", minutes=i)
    for i in range(5):
        await make_ticket(subject="VPN down", minutes=10 + i)

    problems = await _problems(database)

    assert [p.model_dump() for p in problems] == [
        {"subject": "VPN down", "count": 5, "solution": ""},
        {"subject": "Printer jam", "count": 3, "solution": ""},
    ]


async def test_frequent_problems_ignores_caller_scope(database, make_ticket):
    await make_ticket(email="someone@x.com", subject="Password reset")

    async with database.session() as session:
        problems = await frequent_problems(session)

    assert [p.subject for p in problems] == ["Password reset"]


async def test_frequent_problems_limited_to_top_twenty(database, make_ticket):
    minute = 0
    for n in range(25):
        for _ in range(n + 1):
            await make_ticket(subject=f"Problem {n:02d}", minutes=minute)
            minute += 1

    problems = await _problems(database)

    assert len(problems) == FREQUENT_PROBLEMS_LIMIT == 20
    counts = [p.count for p in problems]
    assert counts == sorted(counts, reverse=True)
    assert problems[0].subject == "Problem 24"
    assert problems[0].count == 25
    assert problems[-1].count == 6


async def test_frequent_problems_skips_empty_subject(database, make_ticket):
    for _ in range(4):
        await make_ticket(subject="")
    await make_ticket(subject="Monitor flicker")

    problems = await _problems(database)

    assert [(p.subject, p.count) for p in problems] == [("Monitor flicker", 1)]


async def test_frequent_problems_joins_documented_solutions(database, make_ticket):
    await make_ticket(subject="VPN down")
    await make_ticket(subject="VPN down")
    await make_ticket(subject="Printer jam")
    await _upsert(database, ADMIN, "VPN down", "Restart the VPN client")
    await _upsert(database, ADMIN, "Unrelated", "Not a ticket subject")

    problems = await _problems(database)

    assert [(p.subject, p.solution) for p in problems] == [
        ("VPN down", "Restart the VPN client"),
        ("Printer jam", ""),
    ]


# ---------- solution upsert ----------
async def test_non_admin_cannot_update_solution(database):
    with pytest.raises(PermissionDenied):
        await _upsert(database, USER_A, "VPN down", "Restart")

    assert await _solution_rows(database, "VPN down") == 0


async def test_permission_checked_before_subject(database):
    with pytest.raises(PermissionDenied):
        await _upsert(database, USER_A, None, None)


@pytest.mark.parametrize("subject", [None, "", "   "])
async def test_subject_required(database, subject):
    with pytest.raises(ValidationError):
        await _upsert(database, ADMIN, subject, "something")


async def test_upsert_is_idempotent(database):
    await _upsert(database, ADMIN, "VPN down", "Restart the VPN client")
    problem = await _upsert(database, ADMIN, "VPN down", "Restart the VPN client")

    assert (problem.subject, problem.solution) == ("VPN down", "Restart the VPN client")
    assert await _solution_rows(database, "VPN down") == 1


async def test_upsert_overwrites_and_refreshes_timestamp(database):
    first = await _upsert(database, ADMIN, "VPN down", "Reconnect")
    first_updated = first.updated_at
    before = utcnow() - timedelta(seconds=1)

    second = await _upsert(database, ADMIN, "VPN down", "Restart the VPN client")

    assert second.solution == "Restart the VPN client"
    assert second.updated_at >= first_updated
    assert second.updated_at >= before
    assert await _solution_rows(database, "VPN down") == 1


async def test_upsert_trims_subject_and_defaults_solution(database):
    problem = await _upsert(database, ADMIN, "  Printer jam  ", None)

    assert problem.subject == "Printer jam"
    assert problem.solution == ""


async def test_failed_aggregate_cancels_the_others(database, monkeypatch):
    started = []
    all_started = asyncio.Event()
    cancelled = []

    async def stalled_group_count(session, column, email=None):
        started.append(column.key)
        if len(started) == 3:
            all_started.set()
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.append(column.key)
            raise

    async def broken_count(session, email=None):
        await asyncio.wait_for(all_started.wait(), timeout=5)
        raise OperationalError("SELECT count(*)", {}, Exception("disk I/O error"))

    monkeypatch.setattr(analytics_service, "ticket_group_count", stalled_group_count)
    monkeypatch.setattr(analytics_service, "ticket_count", broken_count)

    with pytest.raises(OperationalError):
        await ticket_analytics(database, ADMIN)

    assert sorted(cancelled) == ["priority", "source", "status"]
