# 集成配置 / 运营接口：ERP 配置与激活、手动导入目录、手动轮询订单

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marketplace_hub.api.deps import get_hub
from marketplace_hub.core.errors import CredentialError, NotFoundError, TransportError
from marketplace_hub.core.wiring import HubContainer
from marketplace_hub.db.session import get_db
from marketplace_hub.services.system_integration import activate_system_integration, save_system_integration

router = APIRouter(prefix="/integration", tags=["integration"])


class SystemIntegrationIn(BaseModel):
    shop_id: str
    system_name: str = "tiny"
    credentials: Dict[str, Any] = Field(default_factory=dict)


class SystemIntegrationOut(BaseModel):
    id: str
    shop_id: str
    system_name: str
    active: bool


class CatalogImportIn(BaseModel):
    tenant_id: str
    shop_id: str
    status_filter: str = "2"
    offset: int = Field(0, ge=0)


class OrderPollIn(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


def _system_out(system) -> SystemIntegrationOut:
    return SystemIntegrationOut(
        id=str(system.id), shop_id=system.shop_id, system_name=system.system_name, active=system.active
    )


# ====================== ERP 配置 ====================== #
@router.post("/system", response_model=SystemIntegrationOut)
def save_system(body: SystemIntegrationIn, db: Session = Depends(get_db)) -> SystemIntegrationOut:
    """保存后是未激活状态，需要再调 /activate 做一次连通性探测。"""
    system = save_system_integration(db, body.shop_id, body.system_name, body.credentials)
    return _system_out(system)


@router.post("/system/{system_id}/activate", response_model=SystemIntegrationOut)
def activate_system(
    system_id: str, db: Session = Depends(get_db), hub: HubContainer = Depends(get_hub)
) -> SystemIntegrationOut:
    try:
        system = activate_system_integration(db, system_id, hub.erp_client)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return _system_out(system)


# ====================== 运营触发 ====================== #
@router.post("/catalog/import")
def import_catalog(body: CatalogImportIn, hub: HubContainer = Depends(get_hub)):
    try:
        page = hub.catalog.import_catalog_page(body.tenant_id, body.shop_id, body.status_filter, body.offset)
    except (TransportError, CredentialError) as e:
        raise HTTPException(status_code=502, detail=f"catalog page unavailable: {e}") from e
    return {"status": "ok", **page.summary(), "products": [str(p.id) for p in page.products]}


@router.post("/orders/poll")
def poll_orders(body: OrderPollIn, hub: HubContainer = Depends(get_hub)):
    try:
        return hub.poller.integrate_orders(body.start, body.end)
    except (TransportError, CredentialError) as e:
        raise HTTPException(status_code=502, detail=f"order listing unavailable: {e}") from e
