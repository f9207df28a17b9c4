"""
组装根（composition root）：
  HTTP 客户端 → CredentialManager（回绑为 token provider）→ 网关 → 事件总线 → 引擎 → listener。
FastAPI 依赖和 Celery 任务都从 get_container() 拿同一套实例；测试自己 build_container 并传入假对象。
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import requests
from sqlalchemy.orm import Session, sessionmaker

from marketplace_hub.db.session import SessionLocal
from marketplace_hub.events.bus import EventBus
from marketplace_hub.events.listeners import register_listeners
from marketplace_hub.integrations.erp import ErpClient
from marketplace_hub.integrations.hub import HubAuthAPI, HubGateway, HubHttpClient
from marketplace_hub.services.catalog_sync import CatalogSyncEngine
from marketplace_hub.services.credential_manager import CredentialManager
from marketplace_hub.services.order_polling import OrderPoller
from marketplace_hub.services.order_service import OrderService
from marketplace_hub.services.status_reconciliation import StatusReconciliationEngine
from marketplace_hub.utils.keyed_lock import KeyedLocks

logger = logging.getLogger(__name__)


@dataclass
class HubContainer:
    session_factory: sessionmaker[Session]
    http: HubHttpClient
    credentials: CredentialManager
    gateway: HubGateway
    erp_client: ErpClient
    bus: EventBus
    reconciliation: StatusReconciliationEngine
    orders: OrderService
    poller: OrderPoller
    catalog: CatalogSyncEngine


def build_container(
    session_factory: Optional[sessionmaker[Session]] = None,
    *,
    http_session: Optional[requests.Session] = None,
    erp_session: Optional[requests.Session] = None,
    gateway: Optional[HubGateway] = None,
    erp_client: Optional[ErpClient] = None,
    bus: Optional[EventBus] = None,
) -> HubContainer:
    factory = session_factory or SessionLocal

    http = HubHttpClient(session=http_session)
    credentials = CredentialManager(factory, HubAuthAPI(http))
    http.bind_token_provider(credentials)

    gateway = gateway or HubGateway(http)
    erp_client = erp_client or ErpClient(session=erp_session)
    bus = bus or EventBus()

    # 库存扣减（订单）和库存覆盖（目录/ERP）共用同一组 SKU 锁
    stock_locks = KeyedLocks()
    reconciliation = StatusReconciliationEngine(
        factory, gateway, bus, erp_client=erp_client, stock_locks=stock_locks
    )
    orders = OrderService(factory, gateway, reconciliation, erp_client=erp_client)
    poller = OrderPoller(factory, gateway, reconciliation)
    catalog = CatalogSyncEngine(factory, gateway, bus, stock_locks=stock_locks)

    register_listeners(bus, order_service=orders, gateway=gateway, session_factory=factory)

    return HubContainer(
        session_factory=factory,
        http=http,
        credentials=credentials,
        gateway=gateway,
        erp_client=erp_client,
        bus=bus,
        reconciliation=reconciliation,
        orders=orders,
        poller=poller,
        catalog=catalog,
    )


@lru_cache(maxsize=1)
def get_container() -> HubContainer:
    logger.info("wiring.build_container")
    return build_container()
