# Hub（Aggregator）订单通知 webhook

from __future__ import annotations
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator

from marketplace_hub.api.deps import get_hub
from marketplace_hub.core.config import settings
from marketplace_hub.core.errors import CredentialError, TransportError
from marketplace_hub.core.wiring import HubContainer
from marketplace_hub.db.model.order import ORDER_STATUSES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/hub", tags=["webhooks.hub"])

# Hub 注册回调地址时会先推一条 IdOrder=0 的探测
PING_ORDER_ID = "0"


class HubOrderNotification(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id_order: str = Field(alias="IdOrder")
    order_status: str = Field(alias="OrderStatus")

    @field_validator("id_order", mode="before")
    @classmethod
    def _as_str(cls, value):
        return str(value) if value is not None else value


class TenantOrderNotification(HubOrderNotification):
    id_tenant: str = Field(alias="IdTenant")

    @field_validator("id_tenant", mode="before")
    @classmethod
    def _tenant_as_str(cls, value):
        return str(value) if value is not None else value


def _verify_token_or_401(authorization: Optional[str]) -> None:
    """配置了 HUB_WEBHOOK_TOKEN 才校验；注册 webhook 时把同一个 token 交给了 Hub。"""
    expected = settings.HUB_WEBHOOK_TOKEN
    if not expected:
        return
    provided = (authorization or "").removeprefix("Bearer ").strip()
    if not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=401, detail="Invalid webhook token")


def _known_status_or_422(status: str) -> str:
    if status not in ORDER_STATUSES:
        raise HTTPException(status_code=422, detail=f"unknown order status: {status}")
    return status



'''
Webhook: 订单状态变化
  body: {"IdOrder": "123", "OrderStatus": "Invoiced"}
  - 任何对账结果（包括 NoOp / 下游部分失败）都回 200
  - 只有连订单当前状态都拿不到（Hub 拉单失败 / 凭证不可用）时回 503，让 Hub 重投
'''
@router.post("/order")
def hub_order_notification(
    body: HubOrderNotification,
    authorization: Optional[str] = Header(default=None),
    hub: HubContainer = Depends(get_hub),
):
    _verify_token_or_401(authorization)
    if body.id_order == PING_ORDER_ID:
        return {"status": "ignored"}
    status = _known_status_or_422(body.order_status)

    try:
        result = hub.reconciliation.observe_status(body.id_order, status, "webhook")
    except (TransportError, CredentialError) as e:
        logger.warning("webhook.hub.order unavailable ref=%s err=%s", body.id_order, e)
        raise HTTPException(status_code=503, detail="order state unavailable, retry later") from e

    return {
        "status": "ok",
        "outcome": result.outcome,
        "order_status": result.status,
        "partial_failure": result.partial_failure,
    }



'''
Webhook: 子账号（tenant）订单状态变化
  body: {"IdOrder": "<tenant 单号>", "IdTenant": "...", "OrderStatus": "..."}
  通过 tenant 链接找到主订单后折算成一次观测；找不到链接就忽略
'''
@router.post("/tenant-order")
def hub_tenant_order_notification(
    body: TenantOrderNotification,
    authorization: Optional[str] = Header(default=None),
    hub: HubContainer = Depends(get_hub),
):
    _verify_token_or_401(authorization)
    if body.id_order == PING_ORDER_ID:
        return {"status": "ignored"}
    status = _known_status_or_422(body.order_status)

    try:
        result = hub.orders.sync_from_tenant(body.id_tenant, body.id_order, status)
    except (TransportError, CredentialError) as e:
        logger.warning("webhook.hub.tenant_order unavailable tenant=%s order=%s err=%s", body.id_tenant, body.id_order, e)
        raise HTTPException(status_code=503, detail="order state unavailable, retry later") from e

    if result is None:
        return {"status": "ignored", "reason": "no linked order"}
    return {"status": "ok", "outcome": result.outcome, "order_status": result.status}
