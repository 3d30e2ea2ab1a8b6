"""Base exceptions for proxy services."""

from typing import Optional


class ServiceError(Exception):
    """Base class for all service-layer errors."""


class InvalidRequest(ServiceError):
    """Raised when a client request body fails validation."""


class ServiceNotConfigured(ServiceError):
    """Raised when a required service has no usable configuration."""


class ProviderError(ServiceError):
    """Base class for failures talking to an upstream AI provider."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider


class UpstreamError(ProviderError):
    """Raised when the upstream provider answers with a non-success status."""

    def __init__(self, provider: str, status_code: Optional[int], message: str) -> None:
        super().__init__(provider, message)
        self.status_code = status_code

    @property
    def is_quota_error(self) -> bool:
        text = str(self).lower()
        return self.status_code == 429 or 'quota' in text or 'resource_exhausted' in text


class NetworkError(ProviderError):
    """Raised when the upstream provider could not be reached."""


class QuotaExceededError(ServiceError):
    """Raised when provider quota is exhausted and no fallback succeeded."""
