from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from celery import shared_task

from marketplace_hub.core.config import settings
from marketplace_hub.core.errors import CredentialError, TransportError
from marketplace_hub.core.logging import configure_logging
from marketplace_hub.core.wiring import get_container
from marketplace_hub.utils.clock import parse_hub_timestamp


configure_logging()
logger = logging.getLogger(__name__)



'''
 订单轮询（webhook 兜底）
 - beat 每 ORDER_POLL_INTERVAL_SEC 触发一次；手动触发时可以传显式窗口（Hub 时间字符串）
 - 拉列表失败：本轮不写 checkpoint，直接返回 failed，下一轮覆盖同一窗口
'''
@shared_task(name="marketplace_hub.orchestration.orders.order_tasks.poll_orders")
def poll_orders(start: Optional[str] = None, end: Optional[str] = None) -> Dict[str, Any]:
    return poll_orders_inline(parse_hub_timestamp(start), parse_hub_timestamp(end))


def poll_orders_inline(start: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    logger.info("========  poll_orders start window=%s..%s  ========", start, end)
    try:
        summary = get_container().poller.integrate_orders(start, end)
    except (TransportError, CredentialError) as e:
        logger.warning("poll_orders failed err=%s", e)
        return {"status": "failed", "error": str(e)}
    logger.info("======== poll_orders end %s ========", summary)
    return summary



'''
 在 Hub 注册 ERPOrdersNotification（订单 webhook 回调地址）
 - 没配置回调地址/token 时直接跳过
'''
@shared_task(name="marketplace_hub.orchestration.orders.order_tasks.setup_order_webhook")
def setup_order_webhook(tenant_id: Optional[str] = None) -> Dict[str, Any]:
    return setup_order_webhook_inline(tenant_id)


def setup_order_webhook_inline(tenant_id: Optional[str] = None) -> Dict[str, Any]:
    callback_url = settings.HUB_WEBHOOK_CALLBACK_URL
    token = settings.HUB_WEBHOOK_TOKEN
    if not callback_url or not token:
        return {"status": "skipped", "reason": "webhook callback or token not configured"}
    try:
        get_container().gateway.setup_order_webhook(callback_url, token, tenant_id)
    except (TransportError, CredentialError) as e:
        logger.warning("setup_order_webhook failed err=%s", e)
        return {"status": "failed", "error": str(e)}
    return {"status": "ok", "callback_url": callback_url}
