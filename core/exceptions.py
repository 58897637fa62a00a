"""
Exception Hierarchy & Error Handling Framework
===============================================
Exception taxonomy with structured context for logging and HTTP mapping.

- AdmissionDeniedError: quota denial, user-visible, not a fault
- ProviderError family: LLM backend failures, recovered by fallback
- MediaError: image/video failures, recovered by omitting media
- ValidationError: malformed client input
- PersistenceError: content store write failures, logged only
- UsageStoreError: the usage store could not answer, request rejected
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional
from uuid import UUID, uuid4

from core.enums import ErrorSeverity, MediaKind

if TYPE_CHECKING:
    from core.models import DeniedResponse


class ContentDashboardException(Exception):
    """
    Root exception for all application errors.

    Carries a unique error id, severity, structured context, a stable
    error code and the causing exception.
    """

    def __init__(
        self,
        message: str,
        *,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[dict[str, Any]] = None,
        error_code: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.error_id: UUID = uuid4()
        self.message: str = message
        self.severity: ErrorSeverity = severity
        self.context: dict[str, Any] = context or {}
        self.error_code: Optional[str] = error_code
        self.retryable: bool = retryable
        self.timestamp: datetime = datetime.utcnow()

        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/telemetry."""
        return {
            "error_id": str(self.error_id),
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.name,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.__cause__) if self.__cause__ else None,
        }

    def __str__(self) -> str:
        parts = [f"[{self.severity.name}] {self.message}"]
        if self.error_code:
            parts.append(f"Code: {self.error_code}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


# =============================================================================
# ADMISSION
# =============================================================================


class AdmissionDeniedError(ContentDashboardException):
    """Caller exhausted their generation quota."""

    def __init__(self, denied: "DeniedResponse", **kwargs):
        super().__init__(
            denied.message,
            severity=ErrorSeverity.INFO,
            context={
                "reason": denied.reason.value,
                "usage_count": denied.usage_count,
                "usage_limit": denied.usage_limit,
            },
            error_code=denied.reason.value,
            **kwargs,
        )
        self.denied = denied


# =============================================================================
# PROVIDER EXCEPTIONS
# =============================================================================


class ProviderError(ContentDashboardException):
    """Base exception for LLM provider failures."""

    def __init__(
        self,
        message: str = "LLM provider call failed",
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        error_code: str = "PROVIDER_ERROR",
        retryable: bool = False,
        context: Optional[dict[str, Any]] = None,
        **kwargs,
    ):
        merged = {"provider": provider, "model": model}
        merged.update(context or {})
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            context=merged,
            error_code=error_code,
            retryable=retryable,
            **kwargs,
        )
        self.provider = provider
        self.model = model


class ProviderTimeoutError(ProviderError):
    """Provider call exceeded its timeout."""

    def __init__(
        self,
        message: str = "LLM provider request timed out",
        *,
        timeout_seconds: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            error_code="PROVIDER_TIMEOUT",
            retryable=True,
            context={"timeout_seconds": timeout_seconds},
            **kwargs,
        )
        self.timeout_seconds = timeout_seconds


class ProviderRateLimitError(ProviderError):
    """Provider rejected the call with a rate limit."""

    def __init__(self, message: str = "LLM provider rate limit exceeded", **kwargs):
        super().__init__(message, error_code="PROVIDER_RATE_LIMIT", retryable=True, **kwargs)


class ProviderAuthenticationError(ProviderError):
    """Provider rejected the configured credentials."""

    def __init__(self, message: str = "LLM provider authentication failed", **kwargs):
        super().__init__(message, error_code="PROVIDER_AUTH", **kwargs)


class ProviderNotConfiguredError(ProviderError):
    """No credentials are configured for the selected provider."""

    def __init__(self, message: str = "LLM provider is not configured", **kwargs):
        super().__init__(message, error_code="PROVIDER_NOT_CONFIGURED", **kwargs)


# =============================================================================
# MEDIA
# =============================================================================


class MediaError(ContentDashboardException):
    """Image or video augmentation failed."""

    def __init__(
        self,
        message: str = "Media generation failed",
        *,
        kind: Optional[MediaKind] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            context={"kind": kind.value if kind else None},
            error_code="MEDIA_ERROR",
            **kwargs,
        )
        self.kind = kind


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(ContentDashboardException):
    """Malformed generation request."""

    def __init__(self, message: str, *, field: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.INFO,
            context={"field": field},
            error_code="VALIDATION_ERROR",
            **kwargs,
        )
        self.field = field


# =============================================================================
# STORAGE
# =============================================================================


class PersistenceError(ContentDashboardException):
    """Writing generated content failed."""

    def __init__(self, message: str = "Failed to persist generated content", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.ERROR,
            error_code="PERSISTENCE_ERROR",
            **kwargs,
        )


class UsageStoreError(ContentDashboardException):
    """The usage store could not read or update a usage record."""

    def __init__(self, message: str = "Usage store unavailable", **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            error_code="USAGE_STORE_UNAVAILABLE",
            retryable=True,
            **kwargs,
        )


class InfrastructureError(ContentDashboardException):
    """Startup or connection failure of a backing service."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, severity=ErrorSeverity.CRITICAL, **kwargs)


__all__ = [
    "ContentDashboardException",
    "AdmissionDeniedError",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderRateLimitError",
    "ProviderAuthenticationError",
    "ProviderNotConfiguredError",
    "MediaError",
    "ValidationError",
    "PersistenceError",
    "UsageStoreError",
    "InfrastructureError",
]
