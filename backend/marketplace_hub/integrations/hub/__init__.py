"""
对外统一入口（Public Surface）：
- 从这里 import 需要的类/函数，内部实现可自由演进。
"""

from .http_client import HubHttpClient, TokenProvider
from .auth import HubAuthAPI, LoginCredentials
from .gateway import HubGateway
from .schemas import HubCatalogItem, HubInvoice, HubOrder, HubTracking, TokenResponse
from .scopes import AGENCY_SCOPE, GLOBAL_SCOPE, tenant_scope, tenant_id_of

from .errors import (
    HubError, HubAuthError, HubClientError, HubNotFoundError, HubServerError, HubRateLimitError, HubPayloadError
)


__all__ = [
    "HubHttpClient", "TokenProvider",
    "HubAuthAPI", "LoginCredentials",
    "HubGateway",
    "HubCatalogItem", "HubInvoice", "HubOrder", "HubTracking", "TokenResponse",
    "AGENCY_SCOPE", "GLOBAL_SCOPE", "tenant_scope", "tenant_id_of",
    "HubError", "HubAuthError", "HubClientError", "HubNotFoundError", "HubServerError",
    "HubRateLimitError", "HubPayloadError",
]
