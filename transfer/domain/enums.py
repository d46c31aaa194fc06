"""Domain enumerations and state-transition rules."""

import enum


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DRIVER_ASSIGNED = "driver_assigned"
    DRIVER_EN_ROUTE = "driver_en_route"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    PROMPTPAY = "promptpay"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"


class DriverStatus(str, enum.Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"
    SUSPENDED = "suspended"


class VehicleType(str, enum.Enum):
    SEDAN = "sedan"
    SUV = "suv"
    VAN = "van"
    LUXURY = "luxury"


class TripType(str, enum.Enum):
    ONE_WAY = "one_way"
    ROUND_TRIP = "round_trip"


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class ActorRole(str, enum.Enum):
    """Role an actor plays relative to one specific booking."""

    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"
    SYSTEM = "system"


class RatingType(str, enum.Enum):
    CUSTOMER_TO_DRIVER = "customerToDriver"
    DRIVER_TO_CUSTOMER = "driverToCustomer"


class CancellationReason(str, enum.Enum):
    CHANGE_OF_PLANS = "change_of_plans"
    FOUND_ALTERNATIVE = "found_alternative"
    BOOKED_BY_MISTAKE = "booked_by_mistake"
    DRIVER_LATE = "driver_late"
    CUSTOMER_NO_SHOW = "customer_no_show"
    ADMIN_ACTION = "admin_action"
    OTHER = "other"


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    REJECTED = "rejected"


# State machine: maps current status -> set of valid next statuses.
# pending -> driver_assigned is the dispatch edge (no confirmation step).
BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.DRIVER_ASSIGNED, BookingStatus.CANCELLED}
    ),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.DRIVER_ASSIGNED, BookingStatus.CANCELLED}
    ),
    BookingStatus.DRIVER_ASSIGNED: frozenset(
        {BookingStatus.DRIVER_EN_ROUTE, BookingStatus.CANCELLED}
    ),
    BookingStatus.DRIVER_EN_ROUTE: frozenset(
        {BookingStatus.IN_PROGRESS, BookingStatus.NO_SHOW}
    ),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

# Edges each non-admin role may trigger. Admins may trigger any edge above.
ROLE_TRANSITIONS: dict[ActorRole, frozenset[tuple[BookingStatus, BookingStatus]]] = {
    ActorRole.CUSTOMER: frozenset(
        {
            (BookingStatus.PENDING, BookingStatus.CANCELLED),
            (BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
        }
    ),
    ActorRole.DRIVER: frozenset(
        {
            (BookingStatus.DRIVER_ASSIGNED, BookingStatus.DRIVER_EN_ROUTE),
            (BookingStatus.DRIVER_EN_ROUTE, BookingStatus.IN_PROGRESS),
            (BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED),
            (BookingStatus.DRIVER_EN_ROUTE, BookingStatus.NO_SHOW),
        }
    ),
    ActorRole.SYSTEM: frozenset(
        {
            (BookingStatus.PENDING, BookingStatus.DRIVER_ASSIGNED),
            (BookingStatus.CONFIRMED, BookingStatus.DRIVER_ASSIGNED),
        }
    ),
    ActorRole.ADMIN: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    s for s, nxt in BOOKING_TRANSITIONS.items() if not nxt
)

DISPATCHABLE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

# A driver holding a booking in one of these is on a job.
ACTIVE_JOB_STATUSES = frozenset(
    {
        BookingStatus.DRIVER_ASSIGNED,
        BookingStatus.DRIVER_EN_ROUTE,
        BookingStatus.IN_PROGRESS,
    }
)

# booking.driver is set iff the booking is in one of these.
DRIVER_BOUND_STATUSES = ACTIVE_JOB_STATUSES | {BookingStatus.COMPLETED}

DISPUTABLE_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)

RATING_REASON_CODES = frozenset(
    {
        # customer -> driver
        "late",
        "dirty_car",
        "bad_driving",
        "rude",
        "wrong_route",
        # driver -> customer
        "no_show",
        "messy",
        "other",
    }
)

DISPUTE_REASON_CODES = frozenset(
    {
        "wrong_charge",
        "service_not_provided",
        "driver_misconduct",
        "safety_concern",
        "wrong_route",
        "vehicle_issue",
        "unfair_fee",
        "other",
    }
)
