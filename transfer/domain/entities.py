"""
Domain value objects and the booking state machine.

Patterns used
-------------
- **State Pattern**: ``check_transition`` enforces the booking lifecycle
  (pending -> confirmed -> driver_assigned -> driver_en_route ->
  in_progress -> completed, with cancelled / no_show side exits) and which
  actor role may trigger each edge.
- ``DriverSnapshot`` is the denormalised copy of a driver a booking keeps
  from the moment of assignment.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .enums import BOOKING_TRANSITIONS, ROLE_TRANSITIONS, ActorRole, BookingStatus
from .errors import AuthorizationError, InvalidTransition, ValidationError

SYSTEM_ACTOR_ID = "system"


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: ActorRole
    driver_id: Optional[int] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(user_id=SYSTEM_ACTOR_ID, role=ActorRole.SYSTEM)


@dataclass(frozen=True)
class DriverSnapshot:
    driver_id: int
    name: str
    phone: str = ""
    vehicle_plate: str = ""
    vehicle_model: str = ""
    vehicle_color: str = ""


# ── State machine ─────────────────────────────────────────────────────


def check_transition(
    current: BookingStatus,
    target: BookingStatus,
    role: ActorRole,
    note: Optional[str] = None,
) -> None:
    """Raise unless *role* may move a booking from *current* to *target*."""
    allowed = BOOKING_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidTransition(
            f"Cannot change status from {current.value} to {target.value}"
        )

    if role is ActorRole.ADMIN:
        if not note or not note.strip():
            raise ValidationError("An audit note is required for admin status changes")
        return

    if (current, target) not in ROLE_TRANSITIONS.get(role, frozenset()):
        raise AuthorizationError(
            f"You are not authorized to change status from {current.value} to {target.value}"
        )
