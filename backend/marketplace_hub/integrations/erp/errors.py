"""
   ERP-A（Tiny）集成层异常类型，挂在领域层 TransportError 下面。
"""

from marketplace_hub.core.errors import TransportError


class ErpError(TransportError):
    """ERP call failed: network, timeout, non-2xx or retorno.status != OK."""

class ErpPayloadError(ErpError):
    """Unexpected/invalid ERP response payload."""
