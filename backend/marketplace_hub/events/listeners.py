"""
事件 → 外部系统的推送。只在 core/wiring.py 里通过 register_listeners 显式订阅。
  - order.created：转发给店铺的 tenant，没有 tenant 就推 ERP
  - stock.updated / price.updated：推回 Hub（origin == "hub" 的变化本来就来自 Hub，不回推）
  - 其它订单/商品事件只记日志
handler 抛出的异常由 EventBus 记录，不影响发布方。
"""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session, sessionmaker

from marketplace_hub.db.session import session_scope
from marketplace_hub.events import bus as events
from marketplace_hub.events.bus import DomainEvent, EventBus
from marketplace_hub.integrations.hub import GLOBAL_SCOPE, HubGateway, tenant_scope
from marketplace_hub.repository.integration_repo import find_tenant_by_shop
from marketplace_hub.repository.product_repo import get_product, get_variation

if TYPE_CHECKING:
    from marketplace_hub.services.order_service import OrderService

logger = logging.getLogger(__name__)

HUB_ORIGIN = "hub"

ORDER_LOG_EVENTS = (
    events.ORDER_UPDATED, events.ORDER_APPROVED, events.ORDER_INVOICED,
    events.ORDER_SHIPPED, events.ORDER_DELIVERED, events.ORDER_CANCELED,
)


def _scope_for_shop(db: Session, shop_id: str) -> str:
    tenant = find_tenant_by_shop(db, shop_id)
    return tenant_scope(tenant.tenant_id) if tenant is not None else GLOBAL_SCOPE


def register_listeners(
    bus: EventBus,
    *,
    order_service: "OrderService",
    gateway: HubGateway,
    session_factory: sessionmaker[Session],
) -> None:

    # ---------- Orders ----------
    def on_order_created(event: DomainEvent) -> None:
        linked = order_service.handle_new_order(event.payload["reference_id"])
        logger.info("listener.order.created ref=%s linked=%s", event.payload["reference_id"], linked)

    def on_order_event(event: DomainEvent) -> None:
        p = event.payload
        logger.info("listener.%s ref=%s status=%s prev=%s source=%s",
                    event.name, p.get("reference_id"), p.get("status"), p.get("previous_status"), p.get("source"))

    # ---------- Inventory ----------
    def on_stock_updated(event: DomainEvent) -> None:
        p = event.payload
        if p.get("origin") == HUB_ORIGIN:
            return
        with session_scope(session_factory) as db:
            variation = get_variation(db, p["variation_id"])
            if variation is None:
                logger.warning("listener.stock.unknown_variation id=%s", p["variation_id"])
                return
            product = get_product(db, variation.product_id)
            scope = _scope_for_shop(db, product.shop_id) if product is not None else GLOBAL_SCOPE
            sku, stock = variation.hub_sku, variation.stock
        gateway.put_stock(sku, max(int(stock), 0), scope=scope)

    def on_price_updated(event: DomainEvent) -> None:
        p = event.payload
        if p.get("origin") == HUB_ORIGIN:
            return
        with session_scope(session_factory) as db:
            product = get_product(db, p["product_id"])
            if product is None:
                logger.warning("listener.price.unknown_product id=%s", p["product_id"])
                return
            scope = _scope_for_shop(db, product.shop_id)
            skus = [v.hub_sku for v in product.variations]
        for sku in skus:
            gateway.put_price(sku, p.get("price"), p.get("price_discounted"), scope=scope)

    def on_product_event(event: DomainEvent) -> None:
        logger.info("listener.%s product=%s shop=%s", event.name, event.payload.get("product_id"), event.payload.get("shop_id"))

    bus.subscribe(events.ORDER_CREATED, on_order_created)
    for name in ORDER_LOG_EVENTS:
        bus.subscribe(name, on_order_event)
    bus.subscribe(events.STOCK_UPDATED, on_stock_updated)
    bus.subscribe(events.PRICE_UPDATED, on_price_updated)
    bus.subscribe(events.PRODUCT_CREATED, on_product_event)
    bus.subscribe(events.PRODUCT_UPDATED, on_product_event)
