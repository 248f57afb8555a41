"""
Order lifecycle engine.

    pending --payment_confirmed--> paid --input_confirmed--> uploaded
    uploaded|processing --output_confirmed--> processing
    processing --marked_complete--> complete

Forward only: no cancellation, no rollback, no branches. `decide_transition`
is a pure function of (current status, event, actor, owner, has-output-file);
the service layer turns its answer into one conditional row update.

Checks run in a fixed order so the same inputs always produce the same error:
structural precondition, then actor capability, then current status.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from shared.errors import Forbidden, InvalidTransition, PreconditionUnmet
from shared.security.principal import Principal


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return STATUS_SEQUENCE.index(self)


STATUS_SEQUENCE = tuple(OrderStatus)


class FileRole(str, enum.Enum):
    INPUT = "input"
    OUTPUT = "output"


class TransitionEvent(str, enum.Enum):
    PAYMENT_CONFIRMED = "payment_confirmed"
    INPUT_CONFIRMED = "input_confirmed"
    OUTPUT_CONFIRMED = "output_confirmed"
    MARKED_COMPLETE = "marked_complete"


# Actor requirements
SYSTEM_ACTOR = "system"
OWNER_ACTOR = "owner"
ADMIN_ACTOR = "admin"

# Status -> the Order column holding its once-set timestamp
MILESTONES: Dict[OrderStatus, str] = {
    OrderStatus.PAID: "paid_at",
    OrderStatus.UPLOADED: "uploaded_at",
    OrderStatus.COMPLETE: "completed_at",
}


@dataclass(frozen=True)
class TransitionRule:
    sources: FrozenSet[OrderStatus]
    target: OrderStatus
    actor: str
    requires_output: bool = False


TRANSITIONS: Dict[TransitionEvent, TransitionRule] = {
    TransitionEvent.PAYMENT_CONFIRMED: TransitionRule(
        sources=frozenset({OrderStatus.PENDING}),
        target=OrderStatus.PAID,
        actor=SYSTEM_ACTOR,
    ),
    TransitionEvent.INPUT_CONFIRMED: TransitionRule(
        sources=frozenset({OrderStatus.PAID}),
        target=OrderStatus.UPLOADED,
        actor=OWNER_ACTOR,
    ),
    TransitionEvent.OUTPUT_CONFIRMED: TransitionRule(
        sources=frozenset({OrderStatus.UPLOADED, OrderStatus.PROCESSING}),
        target=OrderStatus.PROCESSING,
        actor=ADMIN_ACTOR,
    ),
    TransitionEvent.MARKED_COMPLETE: TransitionRule(
        sources=frozenset({OrderStatus.PROCESSING}),
        target=OrderStatus.COMPLETE,
        actor=ADMIN_ACTOR,
        requires_output=True,
    ),
}

# Which file role each confirm event records
CONFIRM_EVENTS: Dict[FileRole, TransitionEvent] = {
    FileRole.INPUT: TransitionEvent.INPUT_CONFIRMED,
    FileRole.OUTPUT: TransitionEvent.OUTPUT_CONFIRMED,
}


@dataclass(frozen=True)
class Transition:
    event: TransitionEvent
    source: OrderStatus
    target: OrderStatus

    @property
    def milestone(self) -> Optional[str]:
        return MILESTONES.get(self.target)


def _actor_allowed(required: str, actor: Principal, owner_id: str) -> bool:
    if required == SYSTEM_ACTOR:
        return actor.is_system
    if required == OWNER_ACTOR:
        return actor.owns(owner_id)
    return actor.is_admin


def decide_transition(
    status: OrderStatus,
    event: TransitionEvent,
    actor: Principal,
    owner_id: str,
    has_output_file: bool = False,
) -> Transition:
    """Accept or reject `event` for an order currently in `status`.

    Raises PreconditionUnmet, Forbidden or InvalidTransition; never touches
    storage.
    """
    status = OrderStatus(status)
    rule = TRANSITIONS.get(event)
    if rule is None:
        raise InvalidTransition(f"Unknown lifecycle event: {event}")

    if rule.requires_output and not has_output_file:
        raise PreconditionUnmet("Must upload deliverables before completing")

    if not _actor_allowed(rule.actor, actor, owner_id):
        raise Forbidden()

    if status not in rule.sources:
        raise InvalidTransition(
            f"Cannot apply '{event.value}' to an order in status '{status.value}'"
        )

    return Transition(event=event, source=status, target=rule.target)


def is_replay(status: OrderStatus, event: TransitionEvent) -> bool:
    """True when the order has already reached (or passed) what `event` would produce.

    Callers use this to answer a retried confirm or a redelivered webhook with
    success instead of an error.
    """
    status = OrderStatus(status)
    rule = TRANSITIONS[event]
    return status not in rule.sources and status.rank >= rule.target.rank


def planned_values(transition: Transition, now: datetime) -> dict:
    """Column values for one accepted transition: the status and updated_at.

    The milestone column is written by the repository with a COALESCE so it
    can only ever be filled once.
    """
    return {"status": transition.target.value, "updated_at": now}
