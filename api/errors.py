from typing import Optional


class BackendError(Exception):
    """Non-2xx answer from the backend. `message` is shown to the user as is."""

    def __init__(self, status: int, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.code = code

    def __repr__(self):
        return f"{self.__class__.__name__}(status={self.status}, code={self.code!r}, message={self.message!r})"


class NotFound(BackendError):
    def __init__(self, message: str = "Record not found"):
        super().__init__(404, message, code="PGRST116")


class OrderNotFound(NotFound):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class AssignmentConflict(BackendError):
    """The order has been taken by another rider in the meantime."""

    def __init__(self, message: str = "This order has already been assigned to another rider"):
        super().__init__(409, message, code="assignment_conflict")
