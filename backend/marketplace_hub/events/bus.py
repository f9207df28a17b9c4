"""
进程内事件总线（同步 fan-out）：
  - publish(name, payload)：按订阅顺序依次调用 handler；
  - 单个 handler 抛异常只记日志，不影响其它 handler，也不回传给发布方；
  - 订阅只在组装阶段（core/wiring.py）显式进行，模块导入时不注册任何 listener。
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, List, Mapping

from marketplace_hub.utils.clock import now_utc

logger = logging.getLogger(__name__)


# ---------- 事件名 ----------
ORDER_CREATED = "order.created"
ORDER_UPDATED = "order.updated"
ORDER_APPROVED = "order.approved"
ORDER_INVOICED = "order.invoiced"
ORDER_SHIPPED = "order.shipped"
ORDER_DELIVERED = "order.delivered"
ORDER_CANCELED = "order.canceled"

PRODUCT_CREATED = "product.created"
PRODUCT_UPDATED = "product.updated"
STOCK_UPDATED = "stock.updated"
PRICE_UPDATED = "price.updated"


@dataclass(frozen=True)
class DomainEvent:
    name: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=now_utc)


EventHandler = Callable[[DomainEvent], None]


class EventBus:

    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, name: str, handler: EventHandler) -> None:
        with self._lock:
            self._handlers.setdefault(name, []).append(handler)

    def publish(self, name: str, payload: Mapping[str, Any] | None = None) -> DomainEvent:
        event = DomainEvent(name=name, payload=dict(payload or {}))
        with self._lock:
            handlers = list(self._handlers.get(name, []))
        logger.debug("event.publish name=%s handlers=%s", name, len(handlers))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("event.handler_failed name=%s handler=%s", name, getattr(handler, "__name__", handler))
        return event

    def handlers_for(self, name: str) -> List[EventHandler]:
        with self._lock:
            return list(self._handlers.get(name, []))

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
