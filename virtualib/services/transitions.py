"""Transition tables for borrow requests and loans.

Each machine is a mapping ``(state, event, actor) -> target state``.  Services
look transitions up here instead of branching on status strings, so every
reachable state has a declared source.
"""
import enum
from dataclasses import dataclass
from typing import Dict, FrozenSet, Tuple

from virtualib.errors import InvalidStateTransition
from virtualib.models.borrow_request import RequestStatus
from virtualib.models.loan import LoanStatus


class Actor(str, enum.Enum):
    # The requester of a borrow request or the borrower of a loan
    BORROWER = "borrower"
    # Admin, or a librarian managing the parent library
    MANAGER = "manager"


class BorrowEvent(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"


class LoanEvent(str, enum.Enum):
    REQUEST_RETURN = "request_return"
    APPROVE_RETURN = "approve_return"
    REJECT_RETURN = "reject_return"
    CANCEL_RETURN_REQUEST = "cancel_return_request"


@dataclass(frozen=True)
class StateMachine:
    name: str
    initial: str
    transitions: Dict[Tuple[str, str, Actor], str]

    def target(self, state: str, event: str, actor: Actor) -> str:
        """Return the state reached by ``event`` from ``state`` or raise InvalidStateTransition."""
        key = (state, str(getattr(event, "value", event)), Actor(actor))
        try:
            return self.transitions[key]
        except KeyError:
            raise InvalidStateTransition(
                f"Cannot {key[1].replace('_', ' ')} a {self.name} that is {state}"
            )

    def actor_for(self, event: str) -> Actor:
        """The single actor allowed to fire ``event``."""
        event = str(getattr(event, "value", event))
        actors = {actor for (_, ev, actor) in self.transitions if ev == event}
        if len(actors) != 1:
            raise KeyError(f"Event {event} of {self.name} has no unique actor")
        return actors.pop()

    def sources(self, event: str) -> FrozenSet[str]:
        event = str(getattr(event, "value", event))
        return frozenset(state for (state, ev, _) in self.transitions if ev == event)

    @property
    def states(self) -> FrozenSet[str]:
        found = {self.initial}
        for (state, _, _), target in self.transitions.items():
            found.update((state, target))
        return frozenset(found)

    @property
    def terminal_states(self) -> FrozenSet[str]:
        return self.states - {state for (state, _, _) in self.transitions}


BORROW_REQUEST_MACHINE = StateMachine(
    name="borrow request",
    initial=RequestStatus.PENDING.value,
    transitions={
        (RequestStatus.PENDING.value, BorrowEvent.APPROVE.value, Actor.MANAGER): RequestStatus.APPROVED.value,
        (RequestStatus.PENDING.value, BorrowEvent.REJECT.value, Actor.MANAGER): RequestStatus.REJECTED.value,
        (RequestStatus.PENDING.value, BorrowEvent.CANCEL.value, Actor.BORROWER): RequestStatus.CANCELLED.value,
    },
)

LOAN_MACHINE = StateMachine(
    name="loan",
    initial=LoanStatus.ACTIVE.value,
    transitions={
        (LoanStatus.ACTIVE.value, LoanEvent.REQUEST_RETURN.value, Actor.BORROWER): LoanStatus.RETURN_REQUESTED.value,
        (LoanStatus.RETURN_REQUESTED.value, LoanEvent.CANCEL_RETURN_REQUEST.value, Actor.BORROWER): LoanStatus.ACTIVE.value,
        (LoanStatus.RETURN_REQUESTED.value, LoanEvent.REJECT_RETURN.value, Actor.MANAGER): LoanStatus.RETURN_REJECTED.value,
        (LoanStatus.RETURN_REQUESTED.value, LoanEvent.APPROVE_RETURN.value, Actor.MANAGER): LoanStatus.RETURNED.value,
        # Managers may force-return any open loan
        (LoanStatus.ACTIVE.value, LoanEvent.APPROVE_RETURN.value, Actor.MANAGER): LoanStatus.RETURNED.value,
        (LoanStatus.RETURN_REJECTED.value, LoanEvent.APPROVE_RETURN.value, Actor.MANAGER): LoanStatus.RETURNED.value,
    },
)


def apply_transition(db, model, row, machine: StateMachine, event: str, actor: Actor, **changes) -> str:
    """Move ``row`` along ``machine`` with a compare-and-set UPDATE.

    The UPDATE only matches while the row still holds the state it was read
    in, so of two racing transitions the first to commit wins and the other
    sees zero rows and raises InvalidStateTransition.  Nothing is committed
    here; the caller owns the transaction.
    """
    source = row.status
    target = machine.target(source, event, actor)
    updated = db.query(model).filter(
        model.id == row.id,
        model.status == source,
    ).update({"status": target, **changes}, synchronize_session=False)
    if updated != 1:
        db.rollback()
        raise InvalidStateTransition(f"The {machine.name} changed state concurrently; reload and retry")
    return target
