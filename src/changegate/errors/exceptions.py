"""Custom exception classes for changegate."""


class ChangeGateError(Exception):
    """Base exception for changegate."""

    def __init__(self, code: str, message: str, details=None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigurationError(ChangeGateError):
    """Invalid approval policy registration or unusable record binding."""

    def __init__(self, message: str, details=None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class CaptureError(ChangeGateError):
    """A diverted mutation could not be turned into a pending approval."""

    def __init__(self, message: str, details=None):
        super().__init__("CAPTURE_ERROR", message, details)


class ReconciliationError(ChangeGateError):
    """A pending approval could not be approved; it stays in the queue."""

    def __init__(self, message: str, approval_id: str | None = None, details=None):
        self.approval_id = approval_id
        super().__init__("RECONCILIATION_ERROR", message, details)


class NotFoundError(ChangeGateError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        self.resource_id = resource_id
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
        )
