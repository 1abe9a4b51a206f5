"""
Domain errors raised by the service modules.

Each error carries the HTTP status the API answers with; main.py turns
them into ``{"message": ...}`` responses.
"""


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StoreError):
    status_code = 400


class InvalidQuantity(ValidationError):
    pass


class NotFoundError(StoreError):
    status_code = 404


class ItemNotFound(NotFoundError):
    pass


class ConflictError(StoreError):
    status_code = 400


class CouponRejected(ConflictError):
    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class DuplicateCouponCode(ConflictError):
    status_code = 409


class OrderNotCancellable(ConflictError):
    pass


class UnauthorizedError(StoreError):
    status_code = 401


class ForbiddenError(StoreError):
    status_code = 403


class InternalError(StoreError):
    status_code = 500
