"""
订单轮询（webhook 的兜底）：
  - 显式窗口：拉 [start, end]，逐单观测，写 checkpoint{last_update=end}
  - 没有窗口：从最新 checkpoint 的 last_update 拉到现在；
    一条 checkpoint 都没有时拉全量，窗口取最早/最晚的 createdDate
  - 空窗口不写 checkpoint；拉列表失败直接抛出（不写 checkpoint，下一轮覆盖同一窗口）
  - 任何一单观测失败也不推进 checkpoint；观测本身幂等，下一轮重放无副作用
"""

from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from marketplace_hub.core.errors import CredentialError, TransportError
from marketplace_hub.db.model.order import ORDER_STATUSES
from marketplace_hub.db.session import session_scope
from marketplace_hub.integrations.hub import HubGateway, HubOrder
from marketplace_hub.repository.order_repo import append_integration_checkpoint, get_latest_checkpoint
from marketplace_hub.services.status_reconciliation import StatusReconciliationEngine
from marketplace_hub.utils.clock import hub_timestamp, now_utc, parse_hub_timestamp

logger = logging.getLogger(__name__)

POLL_SOURCE = "poll"


class OrderPoller:

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        gateway: HubGateway,
        engine: StatusReconciliationEngine,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.engine = engine


    def integrate_orders(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
        window = self._resolve_window(start, end)
        if window is None:
            orders = self.gateway.list_all_orders()
            window_from, window_to = _created_bounds(orders)
        else:
            window_from, window_to = window
            orders = self.gateway.fetch_orders_by_window(window_from, window_to)

        summary: Dict[str, Any] = {"status": "ok", "fetched": len(orders), "created": 0,
                                   "transitioned": 0, "noop": 0, "skipped": 0, "failed": 0, "checkpoint": None}
        if not orders:
            logger.info("orders.poll empty window from=%s to=%s", window_from, window_to)
            return summary

        for order in orders:
            outcome = self._observe(order)
            summary[outcome] += 1

        if summary["failed"]:
            summary["status"] = "partial"
            logger.warning("orders.poll partial failed=%s; checkpoint not advanced", summary["failed"])
            return summary

        stamp_from, stamp_to = hub_timestamp(window_from), hub_timestamp(window_to)
        with session_scope(self.session_factory) as db:
            append_integration_checkpoint(db, last_update=stamp_to, window_from=stamp_from, window_to=stamp_to)
        summary["checkpoint"] = stamp_to
        logger.info("orders.poll %s", summary)
        return summary


    def _resolve_window(self, start: Optional[datetime], end: Optional[datetime]) -> Optional[tuple]:
        """返回 (from, to)；返回 None 表示首次运行需要全量拉取。"""
        if start is not None:
            return start, end or now_utc()
        with session_scope(self.session_factory) as db:
            latest = get_latest_checkpoint(db)
            last_update = latest.last_update if latest is not None else None
        resumed = parse_hub_timestamp(last_update)
        if resumed is None:
            if last_update:
                logger.warning("orders.poll unparseable checkpoint last_update=%r, doing full fetch", last_update)
            return None
        return resumed, end or now_utc()


    def _observe(self, order: HubOrder) -> str:
        ref = order.reference_id
        status = order.status_name
        if not ref or status not in ORDER_STATUSES:
            logger.warning("orders.poll skip ref=%s status=%s", ref, status)
            return "skipped"
        try:
            result = self.engine.observe_status(ref, status, POLL_SOURCE, external_order=order)
        except (TransportError, CredentialError) as e:
            logger.warning("orders.poll observe_failed ref=%s err=%s", ref, e)
            return "failed"
        return result.outcome



def _created_bounds(orders: List[HubOrder]) -> tuple:
    stamps = [parse_hub_timestamp(o.created_date) for o in orders]
    stamps = [s for s in stamps if s is not None]
    if not stamps:
        now = now_utc()
        return now, now
    return min(stamps), max(stamps)
