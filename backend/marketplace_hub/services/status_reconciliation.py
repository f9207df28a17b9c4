from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from marketplace_hub.core.errors import ConflictError, CredentialError, TransportError
from marketplace_hub.db.model.order import LIMBO_SHOP_ID, ORDER_STATUSES, Order
from marketplace_hub.db.session import session_scope
from marketplace_hub.events import bus as events
from marketplace_hub.events.bus import EventBus
from marketplace_hub.integrations.erp import ErpClient, erp_status_for
from marketplace_hub.integrations.hub import HubGateway, HubOrder, tenant_scope
from marketplace_hub.integrations.hub.normalizers import invoice_payload, order_payload, tracking_payload
from marketplace_hub.integrations.hub.schemas import HubInvoice, HubTracking
from marketplace_hub.repository.order_repo import (
    conditional_update_order_status, get_order_by_reference_id, insert_order, meta_patch_for, set_erp_status,
)
from marketplace_hub.repository.product_repo import decrement_variation_stock, find_variation_by_sku, get_product
from marketplace_hub.services.system_integration import find_active_system
from marketplace_hub.utils.keyed_lock import KeyedLocks

logger = logging.getLogger(__name__)


OUTCOME_CREATED = "created"
OUTCOME_TRANSITIONED = "transitioned"
OUTCOME_NOOP = "noop"

# 子账号侧只有处在“前一个状态”时才推进；Canceled 任何非终态都可以推
TENANT_PREDECESSORS: Dict[str, str] = {
    "Approved": "Pending",
    "Invoiced": "Approved",
    "Shipped": "Invoiced",
    "Delivered": "Shipped",
    "Completed": "Delivered",
}
TENANT_TERMINAL_STATUSES = frozenset({"Canceled", "Completed", "Delivered"})

# 渠道侧的 Delivered 对 ERP 来说就是 Completed
DELIVERED_ERP_STATUS = "Completed"


@dataclass
class TransitionResult:
    reference_id: str
    outcome: str
    status: Optional[str]
    previous_status: Optional[str] = None
    events: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.outcome == OUTCOME_NOOP

    @property
    def partial_failure(self) -> bool:
        return bool(self.failures)



"""
  "第一个行项目决定 shop" 的启发式：
    行项目 sku → Variation → Product.shop_id；任何一步找不到都落到 'limbo'。
"""
def resolve_shop_id(db: Session, external_order: Optional[HubOrder]) -> str:
    if external_order is None or not external_order.products:
        return LIMBO_SHOP_ID
    variation = find_variation_by_sku(db, external_order.products[0].sku)
    if variation is None:
        return LIMBO_SHOP_ID
    product = get_product(db, variation.product_id)
    if product is None or not product.shop_id:
        return LIMBO_SHOP_ID
    return product.shop_id



class StatusReconciliationEngine:
    """
    订单状态对账：任何来源（webhook / 轮询 / 子账号 / ERP）的一次状态观测都走 observe_status。
    同一笔订单同一次真实迁移，副作用（扣库存、事件、下游推送）至多执行一次。
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        gateway: HubGateway,
        bus: EventBus,
        *,
        erp_client: Optional[ErpClient] = None,
        stock_locks: Optional[KeyedLocks] = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.bus = bus
        self.erp_client = erp_client
        self.stock_locks = stock_locks or KeyedLocks()


    # ---------- Public ----------
    def observe_status(
        self,
        reference_id: str,
        new_status: str,
        source: str,
        external_order: Optional[HubOrder] = None,
    ) -> TransitionResult:
        """
        1) 按 reference id 找订单；找不到就从 Hub 拉全单并创建
        2) 状态没变 → NoOp（只重跑自带门控的下游同步）
        3) CAS 写入新状态 + meta.<status>_at
        4) CAS 没命中 → NoOp（另一方会负责副作用）
        5) 迁移成功 → 发事件 / 扣库存
        6) 有 tenant 或 ERP 链接 → 下游同步（失败只记 failures，不回滚本地状态）

        只有“连订单当前状态都拿不到”时才抛异常（TransportError 等），调用方据此让对方重投。
        """
        if new_status not in ORDER_STATUSES:
            raise ValueError(f"unknown order status: {new_status!r}")
        reference_id = str(reference_id)

        with session_scope(self.session_factory) as db:
            order = get_order_by_reference_id(db, reference_id)

            if order is None:
                result = self._create(db, reference_id, new_status, source, external_order)
                self._log(result, source)
                return result

            # 2) 重复观测：不发事件、不动库存
            if order.status == new_status:
                result = TransitionResult(reference_id, OUTCOME_NOOP, order.status, previous_status=order.status)
                if order.tenant_id or order.erp_order_id:
                    self._sync_downstream(db, order, new_status, result, documents={})
                self._log(result, source)
                return result

            previous = order.status
            try:
                self._transition(db, order, previous, new_status)
            except ConflictError:
                # 4) 输掉竞争：对方已经推进了状态，副作用交给对方
                result = TransitionResult(reference_id, OUTCOME_NOOP, new_status, previous_status=previous)
                self._log(result, source)
                return result

            db.refresh(order)
            result = TransitionResult(reference_id, OUTCOME_TRANSITIONED, new_status, previous_status=previous)
            documents = self._apply_side_effects(db, order, new_status, source, result)
            if order.tenant_id or order.erp_order_id:
                self._sync_downstream(db, order, new_status, result, documents=documents)
            self._log(result, source)
            return result


    # ---------- Steps ----------
    def _create(
        self, db: Session, reference_id: str, new_status: str, source: str, external_order: Optional[HubOrder]
    ) -> TransitionResult:
        # 1) 首次见到这个单号：拉全单（拉不到直接往上抛，调用方重投）
        if external_order is None:
            external_order = self.gateway.fetch_order(reference_id)

        shop_id = resolve_shop_id(db, external_order)
        try:
            order = insert_order(
                db,
                reference_id=reference_id,
                status=new_status,
                payload=order_payload(external_order),
                shop_id=shop_id,
                meta=meta_patch_for(new_status),
            )
        except IntegrityError:
            # 并发创建：唯一约束 (reference_id, shop_id) 兜底，对方已经创建并负责副作用
            db.rollback()
            logger.info("order.create lost race ref=%s shop=%s", reference_id, shop_id)
            return TransitionResult(reference_id, OUTCOME_NOOP, new_status)

        result = TransitionResult(reference_id, OUTCOME_CREATED, new_status)
        self._emit(events.ORDER_CREATED, self._event_payload(order, None, source), result)
        self._apply_side_effects(db, order, new_status, source, result)
        return result


    def _transition(self, db: Session, order: Order, previous: str, new_status: str) -> None:
        applied = conditional_update_order_status(
            db,
            order.id,
            expected_prior_status=previous,
            new_status=new_status,
            meta_patch=meta_patch_for(new_status),
            current_meta=order.meta,
        )
        if not applied:
            raise ConflictError(f"order {order.reference_id} moved away from {previous}")


    def _apply_side_effects(
        self, db: Session, order: Order, status: str, source: str, result: TransitionResult
    ) -> Dict[str, Any]:
        """5) 按新状态发事件；返回本次拉到的发票/物流，供 6) 复用。"""
        documents: Dict[str, Any] = {}
        payload = self._event_payload(order, result.previous_status, source)

        # a. 每次迁移都发
        self._emit(events.ORDER_UPDATED, payload, result)

        # b. 审核通过：只发事件，不扣库存
        if status == "Approved":
            self._emit(events.ORDER_APPROVED, payload, result)

        # c. 开票：拉发票（失败也照常扣库存、发事件，只记部分失败）
        elif status == "Invoiced":
            invoice = self._fetch_document(order, "invoice", result)
            documents["invoice"] = invoice
            self._decrement_stock(db, order, result)
            self._emit(
                events.ORDER_INVOICED,
                {**payload, "invoice": invoice_payload(invoice) if invoice else None},
                result,
            )

        # d. 发货：拉物流
        elif status == "Shipped":
            tracking = self._fetch_document(order, "tracking", result)
            documents["tracking"] = tracking
            self._emit(
                events.ORDER_SHIPPED,
                {**payload, "tracking": tracking_payload(tracking) if tracking else None},
                result,
            )

        # e. 妥投：ERP 侧词汇是 Completed
        elif status == "Delivered":
            self._emit(events.ORDER_DELIVERED, {**payload, "erp_status": DELIVERED_ERP_STATUS}, result)

        elif status == "Canceled":
            self._emit(events.ORDER_CANCELED, payload, result)

        return documents


    def _fetch_document(self, order: Order, kind: str, result: TransitionResult):
        fetch = self.gateway.fetch_invoice if kind == "invoice" else self.gateway.fetch_tracking
        try:
            return fetch(order.reference_id)
        except (TransportError, CredentialError) as e:
            logger.warning("order.%s.fetch_failed ref=%s err=%s", kind, order.reference_id, e)
            result.failures.append(f"fetch_{kind}: {e}")
            return None


    def _decrement_stock(self, db: Session, order: Order, result: TransitionResult) -> None:
        """每个行项目按售出数量扣减，同一 SKU 串行；允许负库存。"""
        for item in order.line_items:
            variation = find_variation_by_sku(db, item["sku"], shop_id=order.shop_id)
            if variation is None and order.shop_id != LIMBO_SHOP_ID:
                variation = find_variation_by_sku(db, item["sku"])
            if variation is None:
                logger.warning("order.stock.sku_not_found ref=%s sku=%s", order.reference_id, item["sku"])
                result.failures.append(f"stock: sku {item['sku']} not found")
                continue

            with self.stock_locks.hold(str(variation.id)):
                updated = decrement_variation_stock(db, variation.id, item["quantity"])
            if updated is None:
                result.failures.append(f"stock: variation {variation.id} vanished")
                continue
            if updated.stock < 0:
                logger.warning("order.stock.negative ref=%s variation=%s stock=%s", order.reference_id, updated.id, updated.stock)

            self.bus.publish(events.STOCK_UPDATED, {
                "variation_id": str(updated.id),
                "product_id": str(updated.product_id),
                "stock": updated.stock,
                "origin": "order",
            })


    # ---------- Downstream sync ----------
    def _sync_downstream(
        self, db: Session, order: Order, status: str, result: TransitionResult, *, documents: Dict[str, Any]
    ) -> None:
        """6) tenant 与 ERP 互斥；每次都根据当前存储状态重新判断，重复观测即可修复上次失败的推送。"""
        try:
            if order.tenant_id and order.tenant_order_id:
                self._sync_tenant(order, status, result, documents)
            elif order.erp_order_id:
                self._sync_erp(db, order, status, result)
        except (TransportError, CredentialError) as e:
            logger.warning("order.sync.failed ref=%s status=%s err=%s", order.reference_id, status, e)
            result.failures.append(f"sync: {e}")


    def _sync_tenant(self, order: Order, status: str, result: TransitionResult, documents: Dict[str, Any]) -> None:
        scope = tenant_scope(order.tenant_id)
        tenant_ref = order.tenant_order_id
        tenant_status = self.gateway.fetch_order(tenant_ref, scope=scope).status_name

        if tenant_status == status:
            return

        if status == "Canceled":
            allowed = tenant_status not in TENANT_TERMINAL_STATUSES
        else:
            allowed = TENANT_PREDECESSORS.get(status) == tenant_status
        if not allowed:
            logger.info(
                "order.tenant_sync.skip ref=%s tenant_order=%s tenant_status=%s target=%s",
                order.reference_id, tenant_ref, tenant_status, status,
            )
            return

        if status == "Invoiced":
            invoice: Optional[HubInvoice] = documents.get("invoice") or self.gateway.fetch_invoice(order.reference_id)
            self.gateway.post_invoice(tenant_ref, invoice, scope=scope)
        elif status == "Shipped":
            tracking: Optional[HubTracking] = documents.get("tracking") or self.gateway.fetch_tracking(order.reference_id)
            self.gateway.post_tracking(tenant_ref, tracking, scope=scope)
        else:
            self.gateway.put_order_status(tenant_ref, status, scope=scope)
        logger.info("order.tenant_sync.pushed ref=%s tenant_order=%s status=%s", order.reference_id, tenant_ref, status)


    def _sync_erp(self, db: Session, order: Order, status: str, result: TransitionResult) -> None:
        situacao = erp_status_for(status)
        if situacao is None or situacao == order.erp_status:
            return
        if self.erp_client is None:
            result.failures.append("erp: no client configured")
            return

        system = find_active_system(db, order.shop_id)
        token = (system.credentials or {}).get("token") if system is not None else None
        if not token:
            logger.warning("order.erp_sync.no_active_system ref=%s shop=%s", order.reference_id, order.shop_id)
            result.failures.append(f"erp: no active system for shop {order.shop_id}")
            return

        self.erp_client.update_order_status(token, order.erp_order_id, situacao)
        set_erp_status(db, order.id, situacao)
        logger.info("order.erp_sync.pushed ref=%s erp_order=%s situacao=%s", order.reference_id, order.erp_order_id, situacao)


    # ---------- Helpers ----------
    def _emit(self, name: str, payload: Dict[str, Any], result: TransitionResult) -> None:
        self.bus.publish(name, payload)
        result.events.append(name)


    @staticmethod
    def _event_payload(order: Order, previous: Optional[str], source: str) -> Dict[str, Any]:
        return {
            "order_id": str(order.id),
            "reference_id": order.reference_id,
            "shop_id": order.shop_id,
            "status": order.status,
            "previous_status": previous,
            "source": source,
        }


    @staticmethod
    def _log(result: TransitionResult, source: str) -> None:
        logger.info(
            "order.observe ref=%s status=%s source=%s outcome=%s events=%s failures=%s",
            result.reference_id, result.status, source, result.outcome, len(result.events), len(result.failures),
        )
