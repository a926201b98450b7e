"""
RSS Settlement - Exception Hierarchy

Every settlement error carries an ExceptionType code plus the arguments used
to format its message, so callers can map errors to responses and logs
without parsing text.
"""

from enum import Enum
from typing import Any


class ExceptionType(Enum):
    """Error codes with their message templates."""

    INVALID_PROVIDER = ("SVC3002", "Provider {0} is not valid for aggregator {1}")
    NON_EXISTENT_RESOURCE_ID = ("SVC3005", "Resource {0} does not exist")
    INVALID_INPUT_VALUE = ("SVC1001", "Invalid parameter value: {0}")
    GENERIC_SERVER_FAULT = ("SVR1006", "Generic server fault: {0}")

    def __init__(self, code: str, template: str):
        self.code = code
        self.template = template


class RSSError(Exception):
    """
    Base exception for settlement errors.

    Args:
        exception_type: Error code and message template
        args: Values substituted into the template
        cause: Optional underlying exception
    """

    def __init__(
        self,
        exception_type: ExceptionType,
        args: list[Any] | tuple[Any, ...] | None = None,
        cause: Exception | None = None,
    ):
        self.exception_type = exception_type
        self.args_list = list(args or [])
        self.message = exception_type.template.format(*self.args_list)
        super().__init__(self.message)
        self.cause = cause
        if cause:
            self.__cause__ = cause

    @property
    def code(self) -> str:
        return self.exception_type.code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error_type": type(self).__name__,
            "code": self.code,
            "exception": self.exception_type.name,
            "message": self.message,
            "args": [str(a) for a in self.args_list],
        }
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return result

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.cause:
            base += f" (caused by: {self.cause})"
        return base


class ValidationError(RSSError):
    """Raised when a settlement scope is inconsistent (bad provider, missing model)."""
    pass


class AllocationError(RSSError):
    """Raised inside a settlement task when allocations cannot be computed."""
    pass
