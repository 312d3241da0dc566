class PaymentError(Exception):
    """Base for errors rendered as ``{"success": false, "message": ...}``."""

    status_code = 500
    message = "Internal error"

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidRequest(PaymentError):
    status_code = 400
    message = "Invalid request"


class OrderNotFound(PaymentError):
    status_code = 404
    message = "Order not found"


class PersistenceFailure(PaymentError):
    # Never carries the underlying database error back to the caller
    status_code = 500
    message = "Internal error"
