"""Exception types shared by the access layer, the rollover job and the API."""
from typing import Optional


class LedgerError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError):
    status_code = 400


class AuthorizationError(LedgerError):
    status_code = 401


class NotFoundError(LedgerError):
    status_code = 404


class ConflictError(LedgerError):
    status_code = 409


class StoreError(LedgerError):
    status_code = 500


class RolloverError(LedgerError):
    """Base for rollover failures; ``operation`` names the step involved, if any."""

    operation: Optional[str] = None


class NotScheduledDayError(RolloverError):
    status_code = 403


class AlreadyProcessedError(RolloverError):
    status_code = 409


class RolloverStepError(RolloverError):
    status_code = 500

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
