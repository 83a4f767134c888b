"""Custom exceptions for laundrytrack."""


class LaundryTrackError(Exception):
    """Base exception for all laundrytrack errors."""

    pass


class NoNextStateError(LaundryTrackError):
    """Raised when advance() is called from a terminal or unmapped state."""

    def __init__(self, state: str, reason: str | None = None):
        self.state = state
        msg = f"No next state from '{state}'"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class NoPriorStateError(LaundryTrackError):
    """Raised when reverse() is called on a record with a single history entry."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"No previous state to return to for tracking record {record_id}")


class InvalidStateError(LaundryTrackError):
    """Raised when a dispatch operation is invoked in the wrong state."""

    def __init__(self, operation: str, state: str, expected: str | None = None):
        self.operation = operation
        self.state = state
        self.expected = expected
        msg = f"Cannot {operation} while in state '{state}'"
        if expected:
            msg = f"{msg}; expected '{expected}'"
        super().__init__(msg)


class CodeMismatchError(LaundryTrackError):
    """Raised when the delivery verification code does not match."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Verification code does not match for tracking record {record_id}")


class NotFoundError(LaundryTrackError):
    """Raised when a referenced record does not exist."""

    pass


class OrderNotFoundError(NotFoundError):
    """Raised when an order ID or order number doesn't exist."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Order not found: {key}")


class TrackingNotFoundError(NotFoundError):
    """Raised when a tracking record ID doesn't exist."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Tracking record not found: {record_id}")


class TrackingExistsError(LaundryTrackError):
    """Raised when creating a tracking record whose ID is already taken."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Tracking record already exists: {record_id}")


class AssignmentRequiredError(LaundryTrackError):
    """Raised when a staffed state is entered without a shift or workers."""

    def __init__(self, state: str, reason: str):
        self.state = state
        super().__init__(f"Assignment required to enter '{state}': {reason}")


class DescriptionRequiredError(LaundryTrackError):
    """Raised when an 'other' incident is reported without a description."""

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"A description is required for incident category '{category}'")


class InvalidOrderError(LaundryTrackError):
    """Raised when a stored order payload cannot be read as an Order."""

    def __init__(self, order_id: str, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Invalid order payload {order_id}: {reason}")
