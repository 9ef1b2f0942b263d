"""Failure kinds of the registration ledger.

Every operation either succeeds or raises one of these.  ``code`` is stable and
is what the JSON API reports; ``message`` is the text shown to bot users.
"""


class LedgerError(Exception):
    code = "error"
    message = "Something went wrong."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)

    @property
    def text(self) -> str:
        return str(self)


class Unauthenticated(LedgerError):
    code = "unauthenticated"
    message = "Please sign in first."


class Unauthorized(LedgerError):
    code = "unauthorized"
    message = "You are not allowed to do that."


class NotFound(LedgerError):
    code = "not_found"
    message = "Not found."


class EventNotFound(NotFound):
    message = "Event not found."


class RegistrationNotFound(NotFound):
    message = "Registration not found."


class UserNotFound(NotFound):
    message = "User not found. Send /start to sign up."


class ValidationFailed(LedgerError):
    code = "validation_failed"
    message = "Invalid input."

    def __init__(self, message: str | None = None, problems: list[str] | None = None):
        self.problems = list(problems or [])
        if message is None and self.problems:
            message = "; ".join(self.problems)
        super().__init__(message)


class AlreadyRegistered(LedgerError):
    code = "already_registered"
    message = "You are already registered for this event."


class AlreadyCancelled(LedgerError):
    code = "already_cancelled"
    message = "This registration is already cancelled."


class EventFull(LedgerError):
    code = "event_full"
    message = "Sorry, this event is full."
