"""
   领域层异常分类，与具体 HTTP 客户端解耦。
   集成层（hub / erp）的异常都继承自这里的 TransportError / CredentialError，
   上层只需要按分类处理。
"""


class MarketplaceHubError(Exception):
    """Base for all marketplace hub errors."""


class TransportError(MarketplaceHubError):
    """A gateway call failed: network, timeout or a non-2xx response."""


class NotFoundError(MarketplaceHubError):
    """A referenced order, product or variation is absent where it is required."""


class ConflictError(MarketplaceHubError):
    """A conditional update did not apply because the stored state moved on."""


class CredentialError(MarketplaceHubError):
    """Login or refresh failed; the affected scope has no usable token."""
