from __future__ import annotations


class WorkflowError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(WorkflowError):
    status_code = 404


class InvalidStatus(WorkflowError):
    status_code = 400


class InvalidTransition(WorkflowError):
    status_code = 409


class InvalidFulfillment(WorkflowError):
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class StorageError(WorkflowError):
    status_code = 500


class PartialFulfillmentInconsistency(StorageError):
    """Fulfillment failed midway and the compensating rollback failed too."""


class NotificationError(WorkflowError):
    """Raised by the dispatcher; the workflow logs it and never surfaces it."""
