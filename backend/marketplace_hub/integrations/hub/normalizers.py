"""
Hub → 内部模型 的纯函数映射（不访问网络/数据库）。

约定
- 输入：schemas.py 里的 pydantic 模型（或 Hub 原始 dict）
- 输出：repository 层直接接受的 dict（Product / Variation / Credential 字段）
- 单位：Hub 尺寸为 m / kg；本地存 cm / g
"""

from __future__ import annotations

import copy
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from marketplace_hub.integrations.hub.schemas import (
    HubCatalogItem, HubInvoice, HubOrder, HubTracking, TokenResponse,
)
from marketplace_hub.utils.clock import hub_timestamp
from marketplace_hub.utils.serialization import to_decimal


# 属性名（小写子串）→ Variation 字段；按顺序匹配，第一个命中的生效
VARIATION_ATTRIBUTE_KEYWORDS: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("tamanho", "size"), "size"),
    (("sabor", "flavor"), "flavor"),
    (("voltagem", "voltage"), "voltage"),
    (("cor", "color"), "color"),
)


# ---------- Orders ----------
def order_payload(order: HubOrder) -> Dict[str, Any]:
    """存库用：还原成 Hub 的 camelCase 结构。"""
    return order.model_dump(by_alias=True, exclude_none=True, mode="json")


def status_payload(status: str, *, message: str = "", at: Optional[datetime] = None) -> Dict[str, Any]:
    return {"status": status, "updatedDate": hub_timestamp(at), "active": True, "message": message}


def invoice_payload(invoice: HubInvoice) -> Dict[str, Any]:
    return invoice.model_dump(by_alias=True, exclude_none=True, mode="json")


def tracking_payload(tracking: HubTracking) -> Dict[str, Any]:
    return tracking.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------- Tenant（子账号）----------
def build_tenant_order_payload(order: Dict[str, Any], tenant_id: str, *, source: str) -> Dict[str, Any]:
    """
    主账号订单 → 子账号下单用的 payload：
      - reference.id 删除（由子账号重新分配）
      - reference.idTenant 改为子账号
      - reference.system.source 标记来源渠道
    """
    body = copy.deepcopy(order)
    reference = dict(body.get("reference") or {})
    reference.pop("id", None)
    reference["idTenant"] = str(tenant_id)
    system = dict(reference.get("system") or {})
    system["source"] = source
    reference["system"] = system
    body["reference"] = reference
    return body


def tenant_order_id_of(created: HubOrder) -> Optional[str]:
    return created.reference.id


# ---------- Catalog ----------
def _scaled(value: Optional[float], factor: int) -> Optional[Decimal]:
    if value is None:
        return None
    return to_decimal(Decimal(str(value)) * factor, places="0.001")


def catalog_item_to_product(item: HubCatalogItem, shop_id: str) -> Dict[str, Any]:
    """新建 Product 用；以父 SKU 为 sku，尺寸 m→cm，重量 kg→g。"""
    category = item.categorization.source
    return {
        "shop_id": shop_id,
        "sku": item.group_sku,
        "name": item.name,
        "brand": item.brand,
        "description": item.description.source_description,
        "category": category.code if category else None,
        "subcategory": category.name if category else None,
        "images": [img.url for img in item.images],
        "ean": item.ean,
        "price": to_decimal(item.destination_prices.price_base),
        "price_discounted": to_decimal(item.destination_prices.price_sale),
        "height": _scaled(item.dimensions.height, 100),
        "width": _scaled(item.dimensions.width, 100),
        "length": _scaled(item.dimensions.length, 100),
        "weight": _scaled(item.dimensions.weight, 1000),
        "is_active": False,
    }


def derive_variation(item: HubCatalogItem) -> Dict[str, Any]:
    """
    按属性名（不区分大小写的子串）识别 size / color / flavor / voltage。
    只是启发式：识别不了的属性直接忽略。
    """
    variation: Dict[str, Any] = {
        "source_sku": item.source_sku,
        "mapping_id": item.skus.destination or None,
        "stock": int(item.stocks.source_stock or 0),
    }
    for attr in item.attributes:
        name = (attr.name or "").lower()
        for keywords, field in VARIATION_ATTRIBUTE_KEYWORDS:
            if field not in variation and any(k in name for k in keywords):
                variation[field] = attr.value
                break
    return variation


def catalog_diff_fields(item: HubCatalogItem) -> Dict[str, Any]:
    """已存在 Product 时参与逐字段比较的值。"""
    category = item.categorization.source
    return {
        "description": item.description.source_description,
        "price": to_decimal(item.destination_prices.price_base),
        "price_discounted": to_decimal(item.destination_prices.price_sale),
        "category": category.code if category else None,
    }


def sku_mapping_pairs(pairs: Iterable[Tuple[str, str]]) -> List[Dict[str, str]]:
    return [{"sourceSKU": source, "destinationSKU": destination} for source, destination in pairs]


def stock_payload(available: int) -> Dict[str, Any]:
    return {"available": int(available), "warehouseId": 0}


def price_payload(base: Any, sale: Any) -> Dict[str, Any]:
    base_d = to_decimal(base)
    sale_d = to_decimal(sale)
    return {
        "base": float(base_d) if base_d is not None else None,
        "sale": float(sale_d) if sale_d is not None else None,
    }


# ---------- Webhook setup ----------
def order_webhook_integration(callback_url: str, token: str, tenant_id: str) -> Dict[str, Any]:
    return {
        "system": "ERPOrdersNotification",
        "idTenant": int(tenant_id) if str(tenant_id).isdigit() else tenant_id,
        "responsibilities": [{"type": "Orders", "flow": "HubTo"}],
        "apiKeys": [
            {"key": "URL_ERPOrdersNotification", "value": callback_url},
            {"key": "authToken_ERPOrdersNotification", "value": token},
            {"key": "AuthKey_ERPOrdersNotification", "value": "Authorization"},
            {"key": "HUB_ID_ERPOrdersNotification", "value": str(tenant_id)},
        ],
    }


# ---------- Auth ----------
def token_response_to_credential(
    token: TokenResponse, *, issued_at: datetime, ttl_fallback_sec: int
) -> Dict[str, Any]:
    expires_in = token.expires_in if token.expires_in and token.expires_in > 0 else ttl_fallback_sec
    return {
        "access_token": token.access_token,
        "refresh_token": token.refresh_token,
        "token_type": token.token_type or "bearer",
        "expires_in": int(expires_in),
        "issued_at": issued_at,
    }


def expires_at(issued_at: datetime, expires_in: int) -> datetime:
    return issued_at + timedelta(seconds=int(expires_in or 0))
