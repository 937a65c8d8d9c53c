"""
Processing Domain Layer
=======================

Domain layer for the ticket processing module.

Contains:
- Entities: Ticket, ProcessResult, SimilarTicket, TicketSolution, Feedback
- Validators: business rules checked before the pipeline runs

This layer is framework-agnostic and contains pure business logic.
"""

from ticket_rag.processing.domain.entities import (
    NewTicket,
    TicketUpdate,
    Ticket,
    SimilarTicket,
    ProcessResult,
    Feedback,
    TicketSolution,
)
from ticket_rag.processing.domain.validators import (
    TicketValidator,
    SolutionValidator,
)

__all__ = [
    "NewTicket",
    "TicketUpdate",
    "Ticket",
    "SimilarTicket",
    "ProcessResult",
    "Feedback",
    "TicketSolution",
    "TicketValidator",
    "SolutionValidator",
]
