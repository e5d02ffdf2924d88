"""Domain Enums"""
from enum import Enum


class ReservationStatus(str, Enum):
    RESERVED = "RESERVED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    SETTLED = "SETTLED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class PenaltyKind(str, Enum):
    NONE = "none"
    NO_SHOW = "no-show"
    LATE_PAYMENT = "late-payment"


class PaymentMethod(str, Enum):
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"


class Role(str, Enum):
    DRIVER = "DRIVER"
    ADMIN = "ADMIN"


class Timeframe(str, Enum):
    PAST = "PAST"
    CURRENT = "CURRENT"
    FUTURE = "FUTURE"
