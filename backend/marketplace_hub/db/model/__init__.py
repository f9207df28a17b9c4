# 聚合导入所有模型，供 Alembic / create_all 发现

from .order import Order, IntegrationCheckpoint, ORDER_STATUSES, LIMBO_SHOP_ID
from .product import Product, Variation
from .credential import Credential
from .integration import SystemIntegration, TenantAccount

__all__ = [
    # order
    "Order", "IntegrationCheckpoint", "ORDER_STATUSES", "LIMBO_SHOP_ID",
    # catalog
    "Product", "Variation",
    # others
    "Credential", "SystemIntegration", "TenantAccount",
]
