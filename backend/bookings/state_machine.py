"""
Booking item lifecycle.

``TRANSITIONS`` is the only place that says which status follows which;
services never assign ``BookingItem.status`` directly.

    pending_deposit --confirm_deposit--> confirm --confirm_pickup--> in_progress
    in_progress --return_offline--> pending_payment --confirm_payment--> completed
    in_progress --settle_return--> completed
    pending_deposit | confirm --cancel--> cancelled
"""

from __future__ import annotations

import logging
from enum import Enum

from core.errors import FailureReason, InvalidTransitionError

from .models import Booking, BookingItem

logger = logging.getLogger(__name__)

Status = BookingItem.Status


class Action(str, Enum):
    CONFIRM_DEPOSIT = "confirm_deposit"
    CONFIRM_PICKUP = "confirm_pickup"
    RETURN_OFFLINE = "return_offline"
    SETTLE_RETURN = "settle_return"
    CONFIRM_PAYMENT = "confirm_payment"
    CANCEL = "cancel"


class Actor(str, Enum):
    OWNER = "owner"
    RENTER = "renter"


_RULES = (
    (Action.CONFIRM_DEPOSIT, Actor.OWNER, (Status.PENDING_DEPOSIT,), Status.CONFIRM),
    (Action.CONFIRM_PICKUP, Actor.RENTER, (Status.CONFIRM,), Status.IN_PROGRESS),
    (Action.RETURN_OFFLINE, Actor.RENTER, (Status.IN_PROGRESS,), Status.PENDING_PAYMENT),
    (Action.SETTLE_RETURN, Actor.RENTER, (Status.IN_PROGRESS,), Status.COMPLETED),
    (Action.CONFIRM_PAYMENT, Actor.OWNER, (Status.PENDING_PAYMENT,), Status.COMPLETED),
    (Action.CANCEL, Actor.RENTER, (Status.PENDING_DEPOSIT, Status.CONFIRM), Status.CANCELLED),
)

TRANSITIONS: dict[tuple[str, Action], str] = {
    (source, action): target for action, _, sources, target in _RULES for source in sources
}
ACTION_ACTORS: dict[Action, Actor] = {action: actor for action, actor, _, _ in _RULES}


def initial_status(payment_method: str) -> str:
    """Wallet bookings pay the deposit up front and start confirmed."""
    if payment_method == Booking.PaymentMethod.WALLET:
        return Status.CONFIRM
    return Status.PENDING_DEPOSIT


def next_status(current: str, action: Action) -> str:
    try:
        return TRANSITIONS[(current, Action(action))]
    except KeyError:
        raise InvalidTransitionError(
            f"Cannot {Action(action).value.replace('_', ' ')} a booking item that is {current}."
        ) from None


def allowed_actions(current: str) -> list[Action]:
    return [action for (source, action) in TRANSITIONS if source == current]


def authorize(item: BookingItem, action: Action, user_id: int) -> None:
    """Raise NOT_PERMITTED unless ``user_id`` is the party allowed to act."""
    actor = ACTION_ACTORS[Action(action)]
    expected = item.car.owner_id if actor is Actor.OWNER else item.booking.renter_id
    if user_id != expected:
        raise InvalidTransitionError(
            f"Only the {actor.value} may {Action(action).value.replace('_', ' ')} this booking item.",
            reason=FailureReason.NOT_PERMITTED,
        )


def apply_transition(item: BookingItem, action: Action, *, actor_id: int) -> str:
    """Authorize, then move ``item`` to its next status and persist it."""
    authorize(item, action, actor_id)
    target = next_status(item.status, action)
    previous = item.status
    item.status = target
    item.save(update_fields=["status", "updated_at"])
    logger.info(
        "bookings: item %s %s -> %s via %s",
        item.pk,
        previous,
        target,
        Action(action).value,
        extra={"booking_item_id": item.pk, "booking_id": item.booking_id, "user_id": actor_id},
    )
    return target
