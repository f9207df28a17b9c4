"""
对外统一入口（Public Surface）：ERP-A（Tiny）。
"""

from .erp_client import ErpClient
from .errors import ErpError, ErpPayloadError
from .normalizers import (
    ORDER_STATUS_FROM_ERP, ORDER_STATUS_TO_ERP, channel_status_from_erp, erp_status_for, order_to_erp_payload,
)


__all__ = [
    "ErpClient",
    "ErpError", "ErpPayloadError",
    "ORDER_STATUS_FROM_ERP", "ORDER_STATUS_TO_ERP",
    "channel_status_from_erp", "erp_status_for", "order_to_erp_payload",
]
