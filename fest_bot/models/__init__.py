from .user import User, UserRead, UserRole
from .event import Event, EventCategory, EventFields, EventRead
from .registration import Registration, RegistrationRead, RegistrationStatus

__all__ = [
    "User",
    "UserRead",
    "UserRole",
    "Event",
    "EventCategory",
    "EventFields",
    "EventRead",
    "Registration",
    "RegistrationRead",
    "RegistrationStatus",
]
