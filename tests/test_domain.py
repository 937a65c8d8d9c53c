"""Tests for ticket entities and validators."""

import uuid

import pytest

from ticket_rag.config import TicketStatus
from ticket_rag.core import DomainException, ValidationException
from ticket_rag.processing.domain import (
    Feedback, NewTicket, ProcessResult, SolutionValidator, Ticket,
    TicketSolution, TicketUpdate, TicketValidator
)


def make_request(**kwargs) -> NewTicket:
    defaults = {
        "title": "Cannot connect to VPN",
        "description": "The VPN client times out during the handshake",
        "category": "network",
        "priority": 3,
        "tags": ["vpn", "remote"],
    }
    return NewTicket(**{**defaults, **kwargs})


class TestTicket:
    """Ticket entity behaviour."""

    def test_from_new_preserves_request_fields(self):
        request = make_request()
        ticket = Ticket.from_new(request)

        assert ticket.title == request.title
        assert ticket.description == request.description
        assert ticket.category == request.category
        assert ticket.priority == request.priority
        assert ticket.tags == request.tags
        assert ticket.status == TicketStatus.NEW
        assert ticket.embedding is None
        assert isinstance(ticket.id, uuid.UUID)
        assert ticket.created_at == ticket.updated_at

    def test_from_new_copies_tags(self):
        request = make_request()
        ticket = Ticket.from_new(request)
        request.tags.append("changed")
        assert "changed" not in ticket.tags

    def test_embedding_text_joins_title_and_description(self):
        ticket = Ticket.from_new(make_request(title="A", description="B"))
        assert ticket.embedding_text == "A B"

    def test_full_text_appends_tags(self):
        ticket = Ticket.from_new(make_request(title="A", description="B", tags=["x", "y"]))
        assert ticket.full_text == "A B x y"

    def test_forward_status_transitions(self):
        ticket = Ticket.from_new(make_request())
        for status in (TicketStatus.PROCESSING, TicketStatus.RESOLVED, TicketStatus.CLOSED):
            ticket.update_status(status)
            assert ticket.status == status

    def test_backward_transition_raises(self):
        ticket = Ticket.from_new(make_request())
        ticket.update_status(TicketStatus.RESOLVED)

        with pytest.raises(DomainException):
            ticket.update_status(TicketStatus.NEW)
        assert ticket.status == TicketStatus.RESOLVED

    def test_backward_transition_reported_as_validation(self):
        ticket = Ticket.from_new(make_request())
        ticket.update_status(TicketStatus.CLOSED)

        with pytest.raises(ValidationException) as exc_info:
            ticket.update_status(TicketStatus.PROCESSING)
        assert exc_info.value.kind == "Validation"
        assert exc_info.value.field == "status"
        assert exc_info.value.details["ticket_id"] == str(ticket.id)

    def test_same_status_refreshes_timestamp(self):
        ticket = Ticket.from_new(make_request())
        before = ticket.updated_at
        ticket.update_status(TicketStatus.NEW)
        assert ticket.status == TicketStatus.NEW
        assert ticket.updated_at >= before

    def test_set_embedding(self):
        ticket = Ticket.from_new(make_request())
        ticket.set_embedding([0.1, 0.2])
        assert ticket.embedding == [0.1, 0.2]

    def test_apply_update(self):
        ticket = Ticket.from_new(make_request())
        ticket.apply_update(TicketUpdate(title="New title", status=TicketStatus.PROCESSING, tags=[]))

        assert ticket.title == "New title"
        assert ticket.status == TicketStatus.PROCESSING
        assert ticket.tags == []
        assert ticket.priority == 3


class TestProcessResult:

    def test_rejects_out_of_range_confidence(self):
        with pytest.raises(ValueError):
            ProcessResult(
                ticket_id=uuid.uuid4(),
                similar_tickets=[],
                suggested_solution="Restart",
                confidence=1.5,
                reasoning="",
                processing_time_ms=1,
            )

    def test_solution_from_result_and_accept(self):
        result = ProcessResult(
            ticket_id=uuid.uuid4(),
            similar_tickets=[],
            suggested_solution="Restart the router",
            confidence=0.8,
            reasoning="Seen before",
            processing_time_ms=12,
        )
        solution = TicketSolution.from_result(result)
        assert solution.ticket_id == result.ticket_id
        assert solution.solution == "Restart the router"
        assert not solution.is_accepted

        solution.accept(Feedback(solution_id=solution.id, is_accepted=True, score=5, comment="Worked"))
        assert solution.is_accepted
        assert solution.feedback_score == 5
        assert solution.feedback_comment == "Worked"


class TestTicketValidator:

    def test_valid_request_passes(self):
        TicketValidator.validate_new_ticket(make_request())

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"title": "   "}, "title"),
            ({"title": "x" * 201}, "title"),
            ({"description": ""}, "description"),
            ({"description": "x" * 5001}, "description"),
            ({"category": " "}, "category"),
            ({"priority": 0}, "priority"),
            ({"priority": 6}, "priority"),
            ({"tags": [f"t{i}" for i in range(11)]}, "tags"),
            ({"tags": ["x" * 51]}, "tags"),
        ],
    )
    def test_invalid_request_names_field(self, overrides, field):
        with pytest.raises(ValidationException) as exc_info:
            TicketValidator.validate_new_ticket(make_request(**overrides))
        assert exc_info.value.field == field
        assert exc_info.value.kind == "Validation"

    def test_boundary_values_pass(self):
        TicketValidator.validate_new_ticket(make_request(
            title="x" * 200,
            description="y" * 5000,
            priority=5,
            tags=["z" * 50] * 10,
        ))

    def test_update_rejects_backward_status(self):
        ticket = Ticket.from_new(make_request())
        ticket.update_status(TicketStatus.CLOSED)

        with pytest.raises(ValidationException) as exc_info:
            TicketValidator.validate_ticket_update(ticket, TicketUpdate(status=TicketStatus.PROCESSING))
        assert exc_info.value.field == "status"

    def test_update_checks_present_fields_only(self):
        ticket = Ticket.from_new(make_request())
        TicketValidator.validate_ticket_update(ticket, TicketUpdate(priority=1))

        with pytest.raises(ValidationException):
            TicketValidator.validate_ticket_update(ticket, TicketUpdate(title=""))


class TestSolutionValidator:

    def _solution(self, **kwargs) -> TicketSolution:
        defaults = {
            "id": uuid.uuid4(),
            "ticket_id": uuid.uuid4(),
            "solution": "Clear the cache",
            "confidence": 0.5,
            "reasoning": "",
        }
        return TicketSolution(**{**defaults, **kwargs})

    def test_valid_solution_passes(self):
        SolutionValidator.validate_solution(self._solution(feedback_score=4))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"solution": " "},
            {"solution": "x" * 10001},
            {"confidence": -0.1},
            {"feedback_score": 0},
            {"feedback_score": 6},
        ],
    )
    def test_invalid_solution_raises(self, overrides):
        with pytest.raises(ValidationException):
            SolutionValidator.validate_solution(self._solution(**overrides))
