from __future__ import annotations


class ScrapCoreError(Exception):
    status_code = 400


class ValidationError(ScrapCoreError):
    status_code = 400


class NotFoundError(ScrapCoreError):
    status_code = 404


class AccountNotFoundError(NotFoundError):
    pass


class AuthorizationError(ScrapCoreError):
    status_code = 403


class ConflictError(ScrapCoreError):
    status_code = 409


class InsufficientFundsError(ScrapCoreError):
    status_code = 402

    def __init__(self, message: str, *, required: int | None = None, available: int | None = None):
        super().__init__(message)
        self.required = required
        self.available = available

    @property
    def shortfall(self) -> int | None:
        if self.required is None or self.available is None:
            return None
        return max(0, self.required - self.available)


class AlreadyRedeemedError(ScrapCoreError):
    status_code = 409


class ExternalServiceError(ScrapCoreError):
    status_code = 502


class InternalError(ScrapCoreError):
    status_code = 500
