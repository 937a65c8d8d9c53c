"""
Domain Validators
=================

Business rule checks run before any provider is called.

All validators raise ``ValidationException(field, message)`` on the first
rule that fails.
"""

from ticket_rag.config import (
    MIN_PRIORITY, MAX_PRIORITY, MAX_TITLE_LENGTH, MAX_DESCRIPTION_LENGTH,
    MAX_TAGS, MAX_TAG_LENGTH, MAX_SOLUTION_LENGTH,
)
from ticket_rag.core import ValidationException
from ticket_rag.processing.domain.entities import (
    NewTicket, Ticket, TicketUpdate, TicketSolution
)


def _check_title(title: str) -> None:
    if not title.strip():
        raise ValidationException("title", "title must not be empty")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationException("title", f"title must be at most {MAX_TITLE_LENGTH} characters")


def _check_description(description: str) -> None:
    if not description.strip():
        raise ValidationException("description", "description must not be empty")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationException(
            "description", f"description must be at most {MAX_DESCRIPTION_LENGTH} characters"
        )


def _check_priority(priority: int) -> None:
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ValidationException("priority", "priority must be an integer")
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise ValidationException(
            "priority", f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}"
        )


def _check_tags(tags: list) -> None:
    if len(tags) > MAX_TAGS:
        raise ValidationException("tags", f"at most {MAX_TAGS} tags are allowed")
    for tag in tags:
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationException("tags", f"each tag must be at most {MAX_TAG_LENGTH} characters")


class TicketValidator:
    """Validates ticket requests and updates."""

    @staticmethod
    def validate_new_ticket(request: NewTicket) -> None:
        _check_title(request.title)
        _check_description(request.description)
        if not request.category.strip():
            raise ValidationException("category", "category must not be empty")
        _check_priority(request.priority)
        _check_tags(request.tags)

    @staticmethod
    def validate_ticket_update(ticket: Ticket, update: TicketUpdate) -> None:
        """Check the fields present in ``update`` and the status move, if any."""
        if update.title is not None:
            _check_title(update.title)
        if update.description is not None:
            _check_description(update.description)
        if update.priority is not None:
            _check_priority(update.priority)
        if update.tags is not None:
            _check_tags(update.tags)
        if update.status is not None and not ticket.can_transition_to(update.status):
            raise ValidationException(
                "status",
                f"cannot move from {ticket.status.value} to {update.status.value}"
            )


class SolutionValidator:
    """Validates stored solutions and their feedback."""

    @staticmethod
    def validate_solution(solution: TicketSolution) -> None:
        if not solution.solution.strip():
            raise ValidationException("solution", "solution must not be empty")
        if len(solution.solution) > MAX_SOLUTION_LENGTH:
            raise ValidationException(
                "solution", f"solution must be at most {MAX_SOLUTION_LENGTH} characters"
            )
        if not 0.0 <= solution.confidence <= 1.0:
            raise ValidationException("confidence", "confidence must be between 0 and 1")
        if solution.feedback_score is not None and not 1 <= solution.feedback_score <= 5:
            raise ValidationException("feedback_score", "feedback score must be between 1 and 5")
