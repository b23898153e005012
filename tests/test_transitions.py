import pytest

from virtualib.errors import InvalidStateTransition
from virtualib.models.borrow_request import RequestStatus
from virtualib.models.loan import LoanStatus
from virtualib.services.transitions import (
    BORROW_REQUEST_MACHINE,
    LOAN_MACHINE,
    Actor,
    BorrowEvent,
    LoanEvent,
)


@pytest.mark.parametrize("machine,statuses", [
    (BORROW_REQUEST_MACHINE, RequestStatus),
    (LOAN_MACHINE, LoanStatus),
])
def test_every_state_is_a_known_status(machine, statuses):
    assert machine.states == {status.value for status in statuses}


@pytest.mark.parametrize("machine", [BORROW_REQUEST_MACHINE, LOAN_MACHINE])
def test_every_state_but_the_initial_one_has_a_declared_source(machine):
    targets = set(machine.transitions.values())
    assert machine.states - {machine.initial} <= targets


def test_borrow_request_terminal_states():
    assert BORROW_REQUEST_MACHINE.terminal_states == {"approved", "rejected", "cancelled"}
    for state in BORROW_REQUEST_MACHINE.terminal_states:
        for event in BorrowEvent:
            for actor in Actor:
                with pytest.raises(InvalidStateTransition):
                    BORROW_REQUEST_MACHINE.target(state, event, actor)


def test_only_the_borrower_cancels_and_only_managers_decide():
    assert BORROW_REQUEST_MACHINE.target("pending", BorrowEvent.CANCEL, Actor.BORROWER) == "cancelled"
    assert BORROW_REQUEST_MACHINE.target("pending", BorrowEvent.APPROVE, Actor.MANAGER) == "approved"
    with pytest.raises(InvalidStateTransition):
        BORROW_REQUEST_MACHINE.target("pending", BorrowEvent.APPROVE, Actor.BORROWER)
    with pytest.raises(InvalidStateTransition):
        BORROW_REQUEST_MACHINE.target("pending", BorrowEvent.CANCEL, Actor.MANAGER)


def test_loan_return_cycle():
    state = LOAN_MACHINE.initial
    state = LOAN_MACHINE.target(state, LoanEvent.REQUEST_RETURN, Actor.BORROWER)
    assert state == "return_requested"
    state = LOAN_MACHINE.target(state, LoanEvent.CANCEL_RETURN_REQUEST, Actor.BORROWER)
    assert state == "active"
    state = LOAN_MACHINE.target(state, LoanEvent.REQUEST_RETURN, Actor.BORROWER)
    state = LOAN_MACHINE.target(state, LoanEvent.REJECT_RETURN, Actor.MANAGER)
    assert state == "return_rejected"
    state = LOAN_MACHINE.target(state, LoanEvent.APPROVE_RETURN, Actor.MANAGER)
    assert state == "returned"
    assert LOAN_MACHINE.terminal_states == {"returned"}


def test_managers_may_force_a_return_but_not_twice():
    assert LOAN_MACHINE.target("active", LoanEvent.APPROVE_RETURN, Actor.MANAGER) == "returned"
    with pytest.raises(InvalidStateTransition):
        LOAN_MACHINE.target("returned", LoanEvent.APPROVE_RETURN, Actor.MANAGER)


def test_return_requests_only_from_active_loans():
    assert LOAN_MACHINE.sources(LoanEvent.REQUEST_RETURN) == {"active"}
    with pytest.raises(InvalidStateTransition):
        LOAN_MACHINE.target("return_rejected", LoanEvent.REQUEST_RETURN, Actor.BORROWER)


def test_each_event_has_one_actor():
    assert LOAN_MACHINE.actor_for(LoanEvent.APPROVE_RETURN) is Actor.MANAGER
    assert LOAN_MACHINE.actor_for(LoanEvent.CANCEL_RETURN_REQUEST) is Actor.BORROWER
    assert BORROW_REQUEST_MACHINE.actor_for(BorrowEvent.CANCEL) is Actor.BORROWER
