from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from marketplace_hub.core.errors import NotFoundError, TransportError
from marketplace_hub.db.model.integration import SystemIntegration
from marketplace_hub.integrations.erp import ErpClient
from marketplace_hub.repository.integration_repo import (
    find_system_by_shop, get_system_integration, set_system_active, upsert_system_integration,
)

logger = logging.getLogger(__name__)


def save_system_integration(
    db: Session, shop_id: str, system_name: str, credentials: Dict[str, Any]
) -> SystemIntegration:
    """保存（或覆盖）店铺的 ERP 配置；保存后一律是未激活状态。"""
    system = upsert_system_integration(
        db, shop_id=shop_id, system_name=(system_name or "").strip().lower(), credentials=dict(credentials or {})
    )
    logger.info("system.saved shop=%s system=%s", shop_id, system.system_name)
    return system


def activate_system_integration(db: Session, system_id: Any, erp_client: ErpClient) -> SystemIntegration:
    """
    用保存的 token 调一次 ERP 的 info 接口：
      retorno.status == OK → active=True；其它（包括网络错误）→ active=False。
    """
    system = get_system_integration(db, system_id)
    if system is None:
        raise NotFoundError(f"system integration {system_id} not found")

    token = (system.credentials or {}).get("token")
    ok = False
    if token:
        try:
            ok = erp_client.get_info(token).ok
        except TransportError as e:
            logger.warning("system.probe.failed id=%s shop=%s err=%s", system.id, system.shop_id, e)
    else:
        logger.warning("system.probe.no_token id=%s shop=%s", system.id, system.shop_id)

    system = set_system_active(db, system, ok)
    logger.info("system.activate id=%s shop=%s active=%s", system.id, system.shop_id, system.active)
    return system


def find_active_system(db: Session, shop_id: str) -> Optional[SystemIntegration]:
    system = find_system_by_shop(db, shop_id)
    if system is None or not system.active:
        return None
    return system
