"""
Processing Application Layer
============================

Application layer for the ticket processing module.

Contains:
- TicketProcessor: the retrieval-augmented pipeline
- TicketOutcome: per-ticket batch accounting
"""

from ticket_rag.processing.application.services import (
    TicketProcessor,
    TicketOutcome,
    pair_candidates,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_TOP_N,
)

__all__ = [
    "TicketProcessor",
    "TicketOutcome",
    "pair_candidates",
    "DEFAULT_SEARCH_LIMIT",
    "DEFAULT_TOP_N",
]
