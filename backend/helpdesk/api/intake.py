"""Legacy intake API: web form and automation webhooks post tickets here without auth."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.tickets import ticket_out
from helpdesk.deps import get_db
from helpdesk.errors import StoreFailure
from helpdesk.schemas.ticket import TicketCreatedOut, TicketCreateIn
from helpdesk.storage.repositories import ticket_create

logger = logging.getLogger(__name__)

router = APIRouter(tags=["intake"])


def _value(member):
    return member.value if member is not None else None


@router.post("/addTicket", response_model=TicketCreatedOut)
async def add_ticket(body: TicketCreateIn, session: AsyncSession = Depends(get_db)):
    try:
        ticket = await ticket_create(
            session,
            email=body.email,
            user_name=body.user_name,
            subject=body.subject,
            message=body.message,
            category=_value(body.category),
            priority=_value(body.priority),
            status=_value(body.status),
            source=_value(body.source),
        )
        await session.commit()
    except SQLAlchemyError as e:
        raise StoreFailure.wrap("Server error storing ticket", e) from e
    logger.info("Stored ticket %s from %s (source=%s)", ticket.id, ticket.email, ticket.source)
    return TicketCreatedOut(message="Ticket stored successfully", ticket=ticket_out(ticket))
