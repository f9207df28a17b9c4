"""
订单的补充操作（不属于状态对账本身，但都以 observe_status 收尾）：
  - 提交发票/物流到 Hub，然后观测 Invoiced / Shipped；
  - 新订单转发给子账号（tenant）或推送到 ERP；
  - 子账号 / ERP 回传的状态变化折算成主订单的一次观测。
"""

from __future__ import annotations
import logging
from typing import List, Optional

from sqlalchemy.orm import Session, sessionmaker

from marketplace_hub.core.config import settings
from marketplace_hub.core.errors import NotFoundError, TransportError
from marketplace_hub.db.model.integration import TenantAccount
from marketplace_hub.db.model.order import Order
from marketplace_hub.db.session import session_scope
from marketplace_hub.integrations.erp import ErpClient, channel_status_from_erp, erp_status_for, order_to_erp_payload
from marketplace_hub.integrations.hub import HubGateway, HubInvoice, HubTracking, tenant_scope
from marketplace_hub.integrations.hub.normalizers import build_tenant_order_payload, tenant_order_id_of
from marketplace_hub.repository.integration_repo import find_tenant_by_shop
from marketplace_hub.repository.order_repo import (
    OrderFilter, find_orders_by_shop, get_order_by_reference_id, get_order_by_tenant_order_id,
    set_erp_link, set_erp_status, set_tenant_link,
)
from marketplace_hub.services.status_reconciliation import StatusReconciliationEngine, TransitionResult
from marketplace_hub.services.system_integration import find_active_system

logger = logging.getLogger(__name__)


class OrderService:

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        gateway: HubGateway,
        engine: StatusReconciliationEngine,
        *,
        erp_client: Optional[ErpClient] = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.engine = engine
        self.erp_client = erp_client


    # ---------- Documents ----------
    def submit_invoice(self, reference_id: str, invoice: HubInvoice, *, source: str = "api") -> TransitionResult:
        """先把发票交给 Hub；Hub 接受后再观测 Invoiced（扣库存、发事件走对账流程）。"""
        self.gateway.post_invoice(reference_id, invoice)
        return self.engine.observe_status(reference_id, "Invoiced", source)


    def submit_tracking(self, reference_id: str, tracking: HubTracking, *, source: str = "api") -> TransitionResult:
        self.gateway.post_tracking(reference_id, tracking)
        return self.engine.observe_status(reference_id, "Shipped", source)


    # ---------- Fan-out of new orders ----------
    def forward_order_to_tenant(self, order: Order, tenant: TenantAccount) -> Optional[str]:
        """在子账号下建一份订单副本并记录链接；已经有链接时什么都不做。"""
        if order.tenant_id or order.erp_order_id:
            return order.tenant_order_id
        body = build_tenant_order_payload(order.payload, tenant.tenant_id, source=settings.HUB_MARKETPLACE)
        created = self.gateway.post_order(body, tenant.tenant_id)
        tenant_order_id = tenant_order_id_of(created)
        if not tenant_order_id:
            logger.warning("order.forward.no_id ref=%s tenant=%s", order.reference_id, tenant.tenant_id)
            return None

        with session_scope(self.session_factory) as db:
            linked = set_tenant_link(db, order.id, tenant.tenant_id, tenant_order_id)
        if not linked:
            logger.info("order.forward.link_exists ref=%s tenant=%s", order.reference_id, tenant.tenant_id)
            return None
        logger.info("order.forward ref=%s tenant=%s tenant_order=%s", order.reference_id, tenant.tenant_id, tenant_order_id)
        return tenant_order_id


    def push_order_to_erp(self, order: Order) -> Optional[str]:
        """推送到该店铺已激活的 ERP；没有激活的 ERP 时返回 None。"""
        if order.tenant_id or order.erp_order_id:
            return order.erp_order_id
        if self.erp_client is None:
            return None

        with session_scope(self.session_factory) as db:
            system = find_active_system(db, order.shop_id)
            token = (system.credentials or {}).get("token") if system is not None else None
        if not token:
            logger.info("order.erp_push.skip ref=%s shop=%s (no active system)", order.reference_id, order.shop_id)
            return None

        body = order_to_erp_payload(order.payload, order.status)
        erp_order_id = self.erp_client.send_order(token, body)
        with session_scope(self.session_factory) as db:
            set_erp_link(db, order.id, erp_order_id, erp_status=body["pedido"]["situacao"])
        logger.info("order.erp_push ref=%s erp_order=%s", order.reference_id, erp_order_id)
        return erp_order_id


    # ---------- Inbound from linked systems ----------
    def sync_from_tenant(self, tenant_id: str, tenant_order_id: str, status: str) -> Optional[TransitionResult]:
        """
        子账号订单状态变化 → 主订单：
          Invoiced / Shipped 需要把子账号的发票 / 物流先交给主订单，再观测；
          其它状态直接观测。找不到链接返回 None。
        """
        with session_scope(self.session_factory) as db:
            order = get_order_by_tenant_order_id(db, tenant_id, tenant_order_id)
        if order is None:
            logger.info("order.tenant_sync.unlinked tenant=%s tenant_order=%s", tenant_id, tenant_order_id)
            return None

        scope = tenant_scope(tenant_id)
        if status == "Invoiced" and order.status != "Invoiced":
            invoice = self.gateway.fetch_invoice(tenant_order_id, scope=scope)
            return self.submit_invoice(order.reference_id, invoice, source="tenant-sync")
        if status == "Shipped" and order.status != "Shipped":
            tracking = self.gateway.fetch_tracking(tenant_order_id, scope=scope)
            return self.submit_tracking(order.reference_id, tracking, source="tenant-sync")
        return self.engine.observe_status(order.reference_id, status, "tenant-sync")


    def sync_from_erp(self, reference_id: str, situacao: str) -> TransitionResult:
        """ERP 回传状态：先记下 ERP 侧当前状态（避免把同一状态再推回去），再观测。"""
        status = channel_status_from_erp(situacao)
        if status is None:
            raise ValueError(f"unknown ERP status: {situacao!r}")

        with session_scope(self.session_factory) as db:
            order = get_order_by_reference_id(db, reference_id)
            if order is None:
                raise NotFoundError(f"order {reference_id} not found")
            if order.erp_order_id:
                set_erp_status(db, order.id, erp_status_for(status))
        return self.engine.observe_status(reference_id, status, "erp-webhook")


    # ---------- Query ----------
    def find_orders_by_shop(self, shop_id: str, filters: Optional[OrderFilter] = None) -> List[Order]:
        with session_scope(self.session_factory) as db:
            return find_orders_by_shop(db, shop_id, filters)


    def handle_new_order(self, reference_id: str) -> Optional[str]:
        """
        order.created 之后的分发：店铺有 tenant 就转发给 tenant，否则推送到 ERP。
        返回新链接的外部单号；推送失败只记日志（下一次观测不会重复创建）。
        """
        with session_scope(self.session_factory) as db:
            order = get_order_by_reference_id(db, reference_id)
            if order is None:
                return None
            tenant = find_tenant_by_shop(db, order.shop_id)

        try:
            if tenant is not None:
                return self.forward_order_to_tenant(order, tenant)
            return self.push_order_to_erp(order)
        except TransportError as e:
            logger.warning("order.fanout.failed ref=%s err=%s", reference_id, e)
            return None
