"""
   Hub（Aggregator）集成层专用异常类型。
   全部挂在领域层 TransportError / CredentialError 下面，业务层按分类处理即可。
"""

from marketplace_hub.core.errors import CredentialError, NotFoundError, TransportError


class HubError(TransportError):
    """Base for all Hub transport errors."""

class HubAuthError(HubError, CredentialError):
    """OAuth login/refresh failed or the token was rejected twice."""

class HubClientError(HubError):
    """Network/client-side errors after retries, or a 4xx response."""

class HubNotFoundError(HubClientError, NotFoundError):
    """404 for a referenced order, invoice or SKU."""

class HubServerError(HubError):
    """Server-side (5xx) errors after retries."""

class HubRateLimitError(HubError):
    """429 Too Many Requests not resolved after retries."""

class HubPayloadError(HubError):
    """Unexpected/invalid response payload shape or content."""
