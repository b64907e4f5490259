"""
Error kinds raised by the reward services.

Every rejected operation surfaces one of these to the caller; none of them is
fatal to the process. The HTTP layer renders them through a single exception
handler registered in ``reward_engine.main``.
"""


class RewardEngineError(Exception):
    code = "REWARD_ENGINE_ERROR"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationError(RewardEngineError):
    code = "VALIDATION_ERROR"
    status_code = 400


class IntegrityError(RewardEngineError):
    """A wallet, program, item or transaction reference does not exist."""

    code = "INTEGRITY_ERROR"
    status_code = 404


class ConcurrencyConflictError(RewardEngineError):
    """A competing operation invalidated this one; the caller may retry."""

    code = "CONCURRENCY_CONFLICT"
    status_code = 409


class InsufficientError(RewardEngineError):
    status_code = 422

    def __init__(self, message: str, *, required: int, available: int, **details):
        super().__init__(
            message,
            required=int(required),
            available=int(available),
            shortfall=max(0, int(required) - int(available)),
            **details,
        )

    @property
    def shortfall(self) -> int:
        return self.details["shortfall"]


class InsufficientBudgetError(InsufficientError):
    code = "INSUFFICIENT_BUDGET"


class InsufficientBalanceError(InsufficientError):
    code = "INSUFFICIENT_BALANCE"


class InsufficientStockError(InsufficientError):
    code = "INSUFFICIENT_STOCK"
