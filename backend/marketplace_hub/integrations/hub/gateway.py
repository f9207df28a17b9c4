"""
Hub 业务级网关：把 REST 路径/参数/响应形状封装成类型化方法。
  - 每个方法都接受 scope（global / tenant:<id>），决定用哪个账号的 token；
  - 返回 schemas.py 里的模型；失败一律抛 integrations.hub.errors 里的异常（TransportError 子类）。
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from marketplace_hub.core.config import settings
from marketplace_hub.integrations.hub import normalizers
from marketplace_hub.integrations.hub.errors import HubClientError, HubPayloadError
from marketplace_hub.integrations.hub.http_client import HubHttpClient
from marketplace_hub.integrations.hub.schemas import (
    HubCatalogItem, HubInvoice, HubOrder, HubStockLevel, HubTracking,
)
from marketplace_hub.integrations.hub.scopes import GLOBAL_SCOPE, tenant_scope
from marketplace_hub.utils.clock import hub_timestamp

logger = logging.getLogger(__name__)


def _validate(model, data: Any, what: str):
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise HubPayloadError(f"unexpected {what} payload: {e.error_count()} errors") from e


def _order_list(data: Any) -> List[Dict[str, Any]]:
    # /Orders 列表在 response 字段里；兼容直接返回数组
    if isinstance(data, dict):
        data = data.get("response")
    if data is None:
        return []
    if not isinstance(data, list):
        raise HubPayloadError(f"unexpected order list payload type={type(data).__name__}")
    return data


class HubGateway:

    def __init__(self, http: HubHttpClient, *, marketplace: Optional[str] = None,
                 sales_channel: Optional[str] = None, page_limit: Optional[int] = None) -> None:
        self.http = http
        self.marketplace = marketplace or settings.HUB_MARKETPLACE
        self.sales_channel = sales_channel or settings.HUB_SALES_CHANNEL
        self.page_limit = page_limit or settings.HUB_CATALOG_PAGE_LIMIT


    # ---------- Orders ----------
    def fetch_order(self, reference_id: str, scope: str = GLOBAL_SCOPE) -> HubOrder:
        data = self.http.get_json(f"/Orders/{reference_id}", scope=scope)
        return _validate(HubOrder, data, "order")


    def fetch_orders_by_window(self, start: datetime, end: datetime, scope: str = GLOBAL_SCOPE) -> List[HubOrder]:
        params = {"purchaseFrom": hub_timestamp(start), "purchaseTo": hub_timestamp(end)}
        data = self.http.get_json("/Orders", params=params, scope=scope)
        return [_validate(HubOrder, row, "order") for row in _order_list(data)]


    def list_all_orders(self, scope: str = GLOBAL_SCOPE) -> List[HubOrder]:
        data = self.http.get_json("/Orders", scope=scope)
        return [_validate(HubOrder, row, "order") for row in _order_list(data)]


    def fetch_invoice(self, reference_id: str, scope: str = GLOBAL_SCOPE) -> HubInvoice:
        data = self.http.get_json(f"/Orders/{reference_id}/Invoice", scope=scope)
        return _validate(HubInvoice, data or {}, "invoice")


    def post_invoice(self, reference_id: str, invoice: HubInvoice, scope: str = GLOBAL_SCOPE) -> HubInvoice:
        data = self.http.post_json(
            f"/Orders/{reference_id}/Invoice", json_body=normalizers.invoice_payload(invoice), scope=scope
        )
        logger.info("hub.invoice.posted ref=%s scope=%s", reference_id, scope)
        return _validate(HubInvoice, data, "invoice") if data else invoice


    def fetch_tracking(self, reference_id: str, scope: str = GLOBAL_SCOPE) -> HubTracking:
        data = self.http.get_json(f"/Orders/{reference_id}/Tracking", scope=scope)
        return _validate(HubTracking, data or {}, "tracking")


    def post_tracking(self, reference_id: str, tracking: HubTracking, scope: str = GLOBAL_SCOPE) -> HubTracking:
        data = self.http.post_json(
            f"/Orders/{reference_id}/Tracking", json_body=normalizers.tracking_payload(tracking), scope=scope
        )
        logger.info("hub.tracking.posted ref=%s scope=%s", reference_id, scope)
        return _validate(HubTracking, data, "tracking") if data else tracking


    def put_order_status(self, reference_id: str, status: str, scope: str = GLOBAL_SCOPE) -> bool:
        self.http.put_json(f"/Orders/{reference_id}/Status", json_body=normalizers.status_payload(status), scope=scope)
        logger.info("hub.status.put ref=%s status=%s scope=%s", reference_id, status, scope)
        return True


    def post_order(self, order: Dict[str, Any], tenant_id: str) -> HubOrder:
        """在子账号下创建订单（order 已经过 build_tenant_order_payload）。"""
        data = self.http.post_json("/Orders", json_body=order, scope=tenant_scope(tenant_id))
        created = _validate(HubOrder, data, "order")
        logger.info("hub.order.forwarded tenant=%s tenant_order=%s", tenant_id, created.reference_id)
        return created


    # ---------- Catalog / Inventory ----------
    def fetch_catalog_page(self, tenant_id: str, status_filter: str = "2", offset: int = 0) -> List[HubCatalogItem]:
        params: Dict[str, Any] = {
            "idProductStatus": status_filter,
            "onlyWithDestinationSKU": "false",
            "offset": int(offset),
        }
        if status_filter == "2":
            params["limit"] = self.page_limit
        data = self.http.get_json(
            f"/catalog/product/{self.marketplace}/{tenant_id}", params=params, scope=tenant_scope(tenant_id)
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise HubPayloadError(f"unexpected catalog payload type={type(data).__name__}")
        # 逐行校验：坏行只丢这一条，不连累整页
        items: List[HubCatalogItem] = []
        for index, row in enumerate(data):
            try:
                items.append(HubCatalogItem.model_validate(row))
            except PydanticValidationError as e:
                skus = row.get("skus") if isinstance(row, dict) else None
                sku = skus.get("source") if isinstance(skus, dict) else None
                logger.warning("hub.catalog.row_invalid tenant=%s offset=%s index=%s sku=%s errors=%s",
                               tenant_id, offset, index, sku, e.error_count())
        return items


    def fetch_stock(self, sku: str, scope: str = GLOBAL_SCOPE) -> Optional[int]:
        """Hub 当前可用库存；没有库存记录时返回 None。"""
        data = self.http.get_json(f"/inventory/{sku}/stocks", scope=scope)
        if not data:
            return None
        first = data[0] if isinstance(data, list) else data
        return _validate(HubStockLevel, first, "stock").available


    def put_stock(self, sku: str, available: int, scope: str = GLOBAL_SCOPE) -> bool:
        self.http.put_json(f"/inventory/{sku}/stocks", json_body=normalizers.stock_payload(available), scope=scope)
        logger.info("hub.stock.put sku=%s available=%s", sku, available)
        return True


    def put_price(self, sku: str, base: Any, sale: Any, scope: str = GLOBAL_SCOPE) -> bool:
        self.http.put_json(f"/inventory/{sku}/price", json_body=normalizers.price_payload(base, sale), scope=scope)
        logger.info("hub.price.put sku=%s base=%s sale=%s", sku, base, sale)
        return True


    def map_skus(self, pairs: Iterable[Tuple[str, str]], scope: str = GLOBAL_SCOPE) -> bool:
        body = normalizers.sku_mapping_pairs(pairs)
        if not body:
            return True
        self.http.post_json(f"/catalog/product/mapsku/{self.sales_channel}", json_body=body, scope=scope)
        logger.info("hub.mapsku count=%s scope=%s", len(body), scope)
        return True


    # ---------- Setup ----------
    def setup_order_webhook(self, callback_url: str, token: str, tenant_id: Optional[str] = None) -> Any:
        """注册 ERPOrdersNotification；已存在时 POST 会被拒绝，改用 PUT 覆盖。"""
        body = normalizers.order_webhook_integration(callback_url, token, tenant_id or settings.HUB_TENANT_ID)
        try:
            return self.http.post_json("/Setup/integration", json_body=body, scope=GLOBAL_SCOPE)
        except HubClientError as e:
            logger.info("hub.setup.integration POST rejected (%s), retrying with PUT", e)
            return self.http.put_json("/Setup/integration", json_body=body, scope=GLOBAL_SCOPE)
