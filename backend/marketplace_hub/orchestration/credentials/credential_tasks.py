from __future__ import annotations
import logging
from typing import Any, Dict

from celery import shared_task

from marketplace_hub.core.logging import configure_logging
from marketplace_hub.core.wiring import get_container


configure_logging()
logger = logging.getLogger(__name__)


# 每 CREDENTIAL_SWEEP_INTERVAL_SEC 清理一次过了宽限期的 token；缓存里的当前 token 不会被删
@shared_task(name="marketplace_hub.orchestration.credentials.credential_tasks.sweep_credentials")
def sweep_credentials() -> Dict[str, Any]:
    return sweep_credentials_inline()


def sweep_credentials_inline() -> Dict[str, Any]:
    deleted = get_container().credentials.sweep()
    return {"status": "ok", "deleted": deleted}
