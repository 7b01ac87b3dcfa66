"""Request/response schemas for tickets, analytics and problem solutions."""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from helpdesk.storage.models import unset_to_none


class TicketCategory(str, Enum):
    SOFTWARE = "Software"
    HARDWARE = "Hardware"
    NETWORK = "Network"
    ACCESS = "Access"
    OTHER = "Other"


class TicketPriority(str, Enum):
    LOWEST = "Lowest"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    HIGHEST = "Highest"


class TicketStatus(str, Enum):
    TO_DO = "TO DO"
    IN_PROGRESS = "IN PROGRESS"
    PENDING = "PENDING"
    DONE = "DONE"


class TicketSource(str, Enum):
    EMAIL = "Email"
    WHATSAPP = "WhatsApp"
    CHATBOT = "Chatbot"


# Ordinal priorities (1 = lowest) sent by older automations
PRIORITY_BY_RANK = dict(enumerate(TicketPriority, start=1))


class TicketCreateIn(BaseModel):
    """Intake payload from the web form or an automation webhook."""
    email: str = Field(..., min_length=1, max_length=255)
    user_name: Optional[str] = None
    subject: str = Field(..., min_length=1, max_length=512)
    message: str = ""
    category: Optional[TicketCategory] = None
    priority: Optional[TicketPriority] = None
    status: Optional[TicketStatus] = None
    source: Optional[TicketSource] = None

    @field_validator("email", "subject")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("user_name", "category", "status", "source", mode="before")
    @classmethod
    def _unset(cls, v: Any) -> Any:
        return unset_to_none(v)

    @field_validator("message", mode="before")
    @classmethod
    def _message(cls, v: Any) -> Any:
        return v if v is not None else ""

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, v: Any) -> Any:
        v = unset_to_none(v)
        if isinstance(v, str) and v.strip().isdigit():
            v = int(v.strip())
        if isinstance(v, int) and not isinstance(v, bool):
            if v not in PRIORITY_BY_RANK:
                raise ValueError("priority rank must be between 1 and 5")
            return PRIORITY_BY_RANK[v]
        return v


class TicketOut(BaseModel):
    id: str
    email: str
    user_name: Optional[str] = None
    subject: str
    message: str
    category: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
    createdAt: str


class TicketListOut(BaseModel):
    success: bool = True
    tickets: list[TicketOut]


class TicketCreatedOut(BaseModel):
    success: bool = True
    message: str
    ticket: TicketOut


# ---------- Analytics ----------
class SourceCount(BaseModel):
    source: str
    count: int


class StatusCount(BaseModel):
    status: str
    count: int


class PriorityCount(BaseModel):
    priority: str
    count: int


class TicketAnalyticsOut(BaseModel):
    totalTickets: int
    bySource: list[SourceCount]
    byStatus: list[StatusCount]
    byPriority: list[PriorityCount]


class TicketAnalyticsEnvelope(BaseModel):
    success: bool = True
    analytics: TicketAnalyticsOut


# ---------- Frequent problems ----------
class FrequentProblemOut(BaseModel):
    subject: str
    count: int
    solution: str = ""


class FrequentProblemsOut(BaseModel):
    success: bool = True
    problems: list[FrequentProblemOut]


class SolutionUpdateIn(BaseModel):
    # Presence is checked by the service so a missing subject is a 400, not a schema error
    subject: Optional[str] = None
    solution: Optional[str] = None


class ProblemSolutionOut(BaseModel):
    subject: str
    solution: str


class SolutionUpdateOut(BaseModel):
    success: bool = True
    problem: ProblemSolutionOut
