# system integration / tenant account repository

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace_hub.db.model.integration import SystemIntegration, TenantAccount
from marketplace_hub.utils.clock import now_utc
from marketplace_hub.utils.serialization import parse_uuid


# ---------- SystemIntegration ----------
def get_system_integration(db: Session, system_id: Any) -> Optional[SystemIntegration]:
    sid = parse_uuid(system_id)
    if sid is None:
        return None
    return db.get(SystemIntegration, sid)


def find_system_by_shop(db: Session, shop_id: str) -> Optional[SystemIntegration]:
    stmt = select(SystemIntegration).where(SystemIntegration.shop_id == shop_id)
    return db.scalars(stmt).first()


def upsert_system_integration(
    db: Session, *, shop_id: str, system_name: str, credentials: Dict[str, Any]
) -> SystemIntegration:
    """
    有则更新，无则插入；任何一次保存都会把 active 置回 False（需要重新探测）。
    """
    upd = (
        update(SystemIntegration)
        .where(SystemIntegration.shop_id == shop_id)
        .values(system_name=system_name, credentials=credentials, active=False, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    res = db.execute(upd)
    if res.rowcount:
        db.commit()
    else:
        try:
            db.add(SystemIntegration(shop_id=shop_id, system_name=system_name, credentials=credentials, active=False))
            db.commit()
        except IntegrityError:
            db.rollback()
            db.execute(upd)
            db.commit()

    row = find_system_by_shop(db, shop_id)
    if row is None:
        raise RuntimeError(f"failed to upsert system integration for shop {shop_id}")
    db.refresh(row)
    return row


def set_system_active(db: Session, system: SystemIntegration, active: bool) -> SystemIntegration:
    system.active = bool(active)
    system.updated_at = now_utc()
    db.commit()
    db.refresh(system)
    return system


# ---------- TenantAccount ----------
def get_tenant(db: Session, tenant_id: str) -> Optional[TenantAccount]:
    return db.get(TenantAccount, str(tenant_id))


def find_tenant_by_shop(db: Session, shop_id: str) -> Optional[TenantAccount]:
    stmt = select(TenantAccount).where(TenantAccount.shop_id == shop_id)
    return db.scalars(stmt).first()


def list_tenants(db: Session, *, with_shop_only: bool = True) -> List[TenantAccount]:
    stmt = select(TenantAccount)
    if with_shop_only:
        stmt = stmt.where(TenantAccount.shop_id.is_not(None))
    return list(db.scalars(stmt.order_by(TenantAccount.tenant_id.asc())))


def save_tenant(db: Session, **fields) -> TenantAccount:
    tenant_id = str(fields.pop("tenant_id"))
    row = db.get(TenantAccount, tenant_id)
    if row is None:
        row = TenantAccount(tenant_id=tenant_id)
        db.add(row)
    for key, value in fields.items():
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row


def set_catalog_offset(db: Session, tenant_id: str, offset: int) -> None:
    db.execute(
        update(TenantAccount)
        .where(TenantAccount.tenant_id == str(tenant_id))
        .values(catalog_offset=int(offset), updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    db.commit()
