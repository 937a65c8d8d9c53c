"""
Processing Domain Entities
==========================

Domain entities for the ticket processing module.

Contains pure Python business objects: tickets and their lifecycle, the
per-ticket process result and the solution/feedback records derived
from it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ticket_rag.config import TicketStatus, STATUS_ORDER
from ticket_rag.core import DomainException


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NewTicket:
    """Request to open a ticket."""
    title: str
    description: str
    category: str
    priority: int
    tags: List[str] = field(default_factory=list)


@dataclass
class TicketUpdate:
    """Partial update of an existing ticket; ``None`` leaves a field alone."""
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TicketStatus] = None
    priority: Optional[int] = None
    tags: Optional[List[str]] = None


@dataclass
class Ticket:
    """
    Support ticket entity.

    Status only moves forward (NEW -> PROCESSING -> RESOLVED -> CLOSED) and
    every mutation refreshes ``updated_at``.
    """
    id: uuid.UUID
    title: str
    description: str
    category: str
    priority: int
    status: TicketStatus = TicketStatus.NEW
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    embedding: Optional[List[float]] = None
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_new(cls, request: NewTicket) -> "Ticket":
        """Build a ticket from a request; only id, status and timestamps are synthesized."""
        now = utcnow()
        return cls(
            id=uuid.uuid4(),
            title=request.title,
            description=request.description,
            category=request.category,
            priority=request.priority,
            status=TicketStatus.NEW,
            created_at=now,
            updated_at=now,
            embedding=None,
            tags=list(request.tags),
        )

    @property
    def embedding_text(self) -> str:
        """Text embedded and used as the rerank query."""
        return f"{self.title} {self.description}"

    @property
    def full_text(self) -> str:
        """Title, description and tags, for indexing historical tickets."""
        parts = [self.title, self.description]
        if self.tags:
            parts.append(" ".join(self.tags))
        return " ".join(parts)

    def can_transition_to(self, status: TicketStatus) -> bool:
        return STATUS_ORDER.index(status) >= STATUS_ORDER.index(self.status)

    def update_status(self, status: TicketStatus) -> None:
        """Move the ticket forward in its lifecycle."""
        if not self.can_transition_to(status):
            raise DomainException(
                "status",
                f"illegal transition {self.status.value} -> {status.value}",
                {"field": "status", "ticket_id": str(self.id)}
            )
        self.status = status
        self.updated_at = utcnow()

    def set_embedding(self, embedding: List[float]) -> None:
        self.embedding = list(embedding)
        self.updated_at = utcnow()

    def apply_update(self, update: TicketUpdate) -> None:
        """Apply a (validated) partial update."""
        if update.status is not None:
            self.update_status(update.status)
        if update.title is not None:
            self.title = update.title
        if update.description is not None:
            self.description = update.description
        if update.priority is not None:
            self.priority = update.priority
        if update.tags is not None:
            self.tags = list(update.tags)
        self.updated_at = utcnow()


@dataclass
class SimilarTicket:
    """A historical ticket judged similar to the one being processed."""
    ticket_id: uuid.UUID
    title: str
    description: str
    similarity_score: float
    rerank_score: float
    solution: Optional[str] = None


@dataclass
class ProcessResult:
    """
    Outcome of processing one ticket.

    The only externally visible output of the pipeline per ticket.
    """
    ticket_id: uuid.UUID
    similar_tickets: List[SimilarTicket]
    suggested_solution: str
    confidence: float  # 0.0 to 1.0
    reasoning: str
    processing_time_ms: int

    def __post_init__(self):
        """Validate process result."""
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0 and 1")


@dataclass
class Feedback:
    """User feedback on a suggested solution."""
    solution_id: uuid.UUID
    is_accepted: bool
    score: Optional[int] = None
    comment: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class TicketSolution:
    """
    A suggested solution kept for a ticket.

    Records whether it was accepted and the feedback it received.
    """
    id: uuid.UUID
    ticket_id: uuid.UUID
    solution: str
    confidence: float
    reasoning: str
    is_accepted: bool = False
    created_at: datetime = field(default_factory=utcnow)
    feedback_score: Optional[int] = None
    feedback_comment: Optional[str] = None

    @classmethod
    def from_result(cls, result: ProcessResult) -> "TicketSolution":
        return cls(
            id=uuid.uuid4(),
            ticket_id=result.ticket_id,
            solution=result.suggested_solution,
            confidence=result.confidence,
            reasoning=result.reasoning,
        )

    def accept(self, feedback: Optional[Feedback] = None) -> None:
        """Mark the solution accepted, keeping any feedback given with it."""
        self.is_accepted = True
        if feedback is not None:
            self.feedback_score = feedback.score
            self.feedback_comment = feedback.comment
