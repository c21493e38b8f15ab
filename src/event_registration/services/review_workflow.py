"""Registration status state machine.

Every status change goes through ``transition``; the table below is the only
place legal moves are defined.
"""

import enum
import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from event_registration.errors import Forbidden, InvalidTransition, PaymentRequired
from event_registration.models.registration import Registration, RegistrationStatus

logger = logging.getLogger(__name__)


class WorkflowEvent(str, enum.Enum):
    SUBMIT = "submit"
    START_REVIEW = "start_review"
    APPROVE = "approve"
    REJECT = "reject"
    WITHDRAW = "withdraw"
    PAYMENT_SETTLED = "payment_settled"


class Party(str, enum.Enum):
    PARTICIPANT = "participant"
    VENDOR = "vendor"
    SYSTEM = "system"


_S = RegistrationStatus
_E = WorkflowEvent

# (from status, event) -> (possible targets, parties allowed to fire it)
TRANSITIONS: Dict[
    Tuple[RegistrationStatus, WorkflowEvent],
    Tuple[FrozenSet[RegistrationStatus], FrozenSet[Party]],
] = {
    (_S.DRAFT, _E.SUBMIT): (
        frozenset({_S.SUBMITTED, _S.UNDER_REVIEW}),
        frozenset({Party.PARTICIPANT}),
    ),
    (_S.SUBMITTED, _E.START_REVIEW): (
        frozenset({_S.UNDER_REVIEW}),
        frozenset({Party.VENDOR}),
    ),
    (_S.SUBMITTED, _E.APPROVE): (frozenset({_S.APPROVED}), frozenset({Party.VENDOR})),
    (_S.UNDER_REVIEW, _E.APPROVE): (frozenset({_S.APPROVED}), frozenset({Party.VENDOR})),
    (_S.SUBMITTED, _E.PAYMENT_SETTLED): (
        frozenset({_S.APPROVED}),
        frozenset({Party.SYSTEM}),
    ),
    (_S.SUBMITTED, _E.REJECT): (frozenset({_S.REJECTED}), frozenset({Party.VENDOR})),
    (_S.UNDER_REVIEW, _E.REJECT): (frozenset({_S.REJECTED}), frozenset({Party.VENDOR})),
    (_S.DRAFT, _E.WITHDRAW): (
        frozenset({_S.WITHDRAWN}),
        frozenset({Party.PARTICIPANT, Party.VENDOR}),
    ),
    (_S.SUBMITTED, _E.WITHDRAW): (
        frozenset({_S.WITHDRAWN}),
        frozenset({Party.PARTICIPANT, Party.VENDOR}),
    ),
    (_S.UNDER_REVIEW, _E.WITHDRAW): (
        frozenset({_S.WITHDRAWN}),
        frozenset({Party.PARTICIPANT, Party.VENDOR}),
    ),
}

TERMINAL_STATES = frozenset({_S.APPROVED, _S.REJECTED, _S.WITHDRAWN})
# States in which the participant may still edit answers
EDITABLE_STATES = frozenset({_S.DRAFT, _S.SUBMITTED})
# States that block a new registration by the same participant
ACTIVE_STATES = frozenset({_S.SUBMITTED, _S.UNDER_REVIEW, _S.APPROVED})
# Statuses the vendor still has to act on
ACTIONABLE_STATES = frozenset({_S.SUBMITTED, _S.UNDER_REVIEW})

# Events whose target requires the payment to be settled
_PAYMENT_GUARDED = {_E.APPROVE, _E.PAYMENT_SETTLED}


def allowed_events(
    status: RegistrationStatus, parties: Optional[Iterable[Party]] = None
) -> List[WorkflowEvent]:
    """Events that can be fired from ``status``, by any of ``parties`` when given"""
    wanted = None if parties is None else frozenset(parties)
    return [
        event
        for (source, event), (_, allowed) in TRANSITIONS.items()
        if source == status and (wanted is None or allowed & wanted)
    ]


def transition(
    registration: Registration,
    event: WorkflowEvent,
    party: Party,
    requires_approval: bool = False,
) -> RegistrationStatus:
    """
    Apply ``event`` to the registration, mutating its status in place.

    The caller owns the session and commits the change together with any
    other attribute it records (review remarks, timestamps).

    Args:
        registration: Registration to move
        event: Workflow event to fire
        party: Who is firing the event
        requires_approval: Config flag; picks the target of ``submit``

    Returns:
        The new status

    Raises:
        InvalidTransition: If the event is not legal from the current status
        Forbidden: If ``party`` may not fire this event
        PaymentRequired: If approving while a required payment is unsettled
    """
    current = registration.status
    rule = TRANSITIONS.get((current, event))
    if rule is None:
        raise InvalidTransition(
            f"Cannot {event.value.replace('_', ' ')} a registration that is "
            f"{current.value.replace('_', ' ')}"
        )

    targets, parties = rule
    if party not in parties:
        raise Forbidden(f"Only the {' or '.join(sorted(p.value for p in parties))} can do this")

    if event in _PAYMENT_GUARDED and not registration.payment_settled:
        raise PaymentRequired()

    if event == _E.SUBMIT:
        target = _S.UNDER_REVIEW if requires_approval else _S.SUBMITTED
    else:
        (target,) = targets

    registration.status = target
    registration.updated_at = datetime.now(timezone.utc)
    logger.debug(f"Registration {registration.id}: {current.value} -[{event.value}]-> {target.value}")
    return target
