"""
Data Adapter Exceptions - Error taxonomy for financial data adapters.

Every adapter failure carries the adapter name and a machine-readable
code. Registry misconfiguration (duplicate names, unknown chain entries)
is reported separately through RegistryError.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ErrorCode(Enum):
    """Machine-readable adapter failure codes."""
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    RATE_LIMITED = "RATE_LIMITED"
    UNAVAILABLE = "UNAVAILABLE"
    INVALID_REQUEST = "INVALID_REQUEST"
    UNKNOWN = "UNKNOWN"


RETRYABLE_CODES = frozenset({
    ErrorCode.RATE_LIMITED,
    ErrorCode.UNAVAILABLE,
    ErrorCode.UNKNOWN,
})


class AdapterError(Exception):
    """Base exception for all data adapter errors."""

    default_code = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        adapter: str,
        code: Optional[ErrorCode] = None,
        cause: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.adapter = adapter
        self.code = code or self.default_code
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)
        if cause is not None:
            self.__cause__ = cause

    @property
    def retryable(self) -> bool:
        """Whether trying again (later or elsewhere) may succeed."""
        return self.code in RETRYABLE_CODES

    @classmethod
    def from_exception(
        cls,
        error: BaseException,
        adapter: str,
        message: Optional[str] = None,
    ) -> "AdapterError":
        """Wrap an unexpected failure, keeping the original as cause."""
        if isinstance(error, AdapterError):
            return error
        detail = str(error) or error.__class__.__name__
        return AdapterError(
            message=f"{message}: {detail}" if message else detail,
            adapter=adapter,
            code=ErrorCode.UNKNOWN,
            cause=error,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "adapter": self.adapter,
            "cause": str(self.cause) if self.cause else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.code.value}: {self.message}", f"[adapter={self.adapter}]"]
        if self.cause:
            parts.append(f"(caused by: {self.cause})")
        return " ".join(parts)


class UnsupportedOperationError(AdapterError):
    """The adapter cannot provide this kind of data."""

    default_code = ErrorCode.UNSUPPORTED_OPERATION


class RateLimitedError(AdapterError):
    """The provider refused the request because of its quota."""

    default_code = ErrorCode.RATE_LIMITED

    def __init__(
        self,
        message: str,
        adapter: str,
        retry_after_seconds: Optional[float] = None,
        cause: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, adapter, cause=cause, context=context)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class AdapterUnavailableError(AdapterError):
    """An adapter, or the registry as a whole, could not produce a result."""

    default_code = ErrorCode.UNAVAILABLE

    def __init__(
        self,
        message: str,
        adapter: str,
        attempted_adapters: Optional[list[str]] = None,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, adapter, cause=cause, context=context)
        self.attempted_adapters = attempted_adapters or []
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "attempted_adapters": self.attempted_adapters,
            "status_code": self.status_code,
        })
        return data


class InvalidRequestError(AdapterError):
    """Malformed input or unknown symbol; retrying will not help."""

    default_code = ErrorCode.INVALID_REQUEST


# ============================================================
# REGISTRY CONFIGURATION ERRORS
# ============================================================

class RegistryError(Exception):
    """Base class for registry misuse. Never retryable."""


class DuplicateAdapterError(RegistryError, ValueError):
    """An adapter with the same name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Adapter '{name}' is already registered")
        self.name = name


class FallbackChainError(RegistryError, ValueError):
    """A fallback chain was rejected."""


class UnknownAdapterError(FallbackChainError):
    """A fallback chain referenced an adapter that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown adapter '{name}' in fallback chain")
        self.name = name


class RegistryDisposedError(RegistryError, RuntimeError):
    """The registry was disposed and cannot be used again."""
