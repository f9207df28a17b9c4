# order database repository

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace_hub.db.model.order import IntegrationCheckpoint, Order, LIMBO_SHOP_ID
from marketplace_hub.utils.clock import now_utc


# 状态 → meta 时间戳字段
STATUS_META_FIELDS: Dict[str, str] = {
    "Approved": "approved_at",
    "Invoiced": "invoiced_at",
    "Shipped": "shipped_at",
    "Delivered": "delivered_at",
    "Canceled": "canceled_at",
    "Completed": "completed_at",
}


@dataclass(slots=True)
class OrderFilter:
    status: Optional[str] = None
    statuses: Sequence[str] = field(default_factory=tuple)
    limit: Optional[int] = None


def meta_patch_for(status: str, at: Optional[datetime] = None) -> Dict[str, Any]:
    key = STATUS_META_FIELDS.get(status)
    if not key:
        return {}
    return {key: (at or now_utc()).isoformat()}


# ---------- Query ----------
def get_order_by_reference_id(db: Session, reference_id: str) -> Optional[Order]:
    """
    按 Hub reference id 查订单。
    同一个 reference id 理论上只属于一个 shop；若历史数据里有多条，取最早的一条。
    """
    stmt = (
        select(Order)
        .where(Order.reference_id == str(reference_id))
        .order_by(Order.created_at.asc())
    )
    return db.scalars(stmt).first()


def get_order_by_tenant_order_id(db: Session, tenant_id: str, tenant_order_id: str) -> Optional[Order]:
    stmt = select(Order).where(
        Order.tenant_id == str(tenant_id),
        Order.tenant_order_id == str(tenant_order_id),
    )
    return db.scalars(stmt).first()


def find_orders_by_shop(db: Session, shop_id: str, filters: Optional[OrderFilter] = None) -> list[Order]:
    stmt = select(Order).where(Order.shop_id == shop_id)
    if filters is not None:
        if filters.status:
            stmt = stmt.where(Order.status == filters.status)
        if filters.statuses:
            stmt = stmt.where(Order.status.in_(list(filters.statuses)))
    stmt = stmt.order_by(Order.created_at.desc())
    if filters is not None and filters.limit:
        stmt = stmt.limit(filters.limit)
    return list(db.scalars(stmt))


# ---------- Mutations ----------
def insert_order(
    db: Session,
    *,
    reference_id: str,
    status: str,
    payload: Dict[str, Any],
    shop_id: str = LIMBO_SHOP_ID,
    meta: Optional[Dict[str, Any]] = None,
) -> Order:
    """
    新增订单并提交；(reference_id, shop_id) 唯一约束冲突时抛 IntegrityError，由调用方决定怎么处理。
    """
    order = Order(
        reference_id=str(reference_id),
        shop_id=shop_id or LIMBO_SHOP_ID,
        status=status,
        status_updated_at=now_utc(),
        payload=payload or {},
        meta=dict(meta or {}),
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def conditional_update_order_status(
    db: Session,
    order_id,
    expected_prior_status: str,
    new_status: str,
    meta_patch: Optional[Dict[str, Any]] = None,
    current_meta: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    CAS：只有当库里的 status 仍等于 expected_prior_status 时才写入。
    返回 True 表示这次调用赢得了这次状态迁移；False 表示别人先改了（丢弃即可）。
    meta 以调用方读到的快照为底合并 patch，状态守卫保证合并基于同一版本。
    """
    values: Dict[str, Any] = {
        "status": new_status,
        "status_updated_at": now_utc(),
        "updated_at": now_utc(),
    }
    if meta_patch:
        merged = dict(current_meta or {})
        merged.update(meta_patch)
        values["meta"] = merged

    stmt = (
        update(Order)
        .where(Order.id == order_id, Order.status == expected_prior_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    res = db.execute(stmt)
    if not res.rowcount:
        db.rollback()
        return False
    db.commit()
    return True


def set_tenant_link(db: Session, order_id, tenant_id: str, tenant_order_id: str) -> bool:
    """只在还没有 tenant/ERP 链接时写入（两个同步目标互斥）。"""
    stmt = (
        update(Order)
        .where(Order.id == order_id, Order.tenant_id.is_(None), Order.erp_order_id.is_(None))
        .values(tenant_id=str(tenant_id), tenant_order_id=str(tenant_order_id), updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    res = db.execute(stmt)
    db.commit()
    return bool(res.rowcount)


def set_erp_link(db: Session, order_id, erp_order_id: str, erp_status: Optional[str] = None) -> bool:
    stmt = (
        update(Order)
        .where(Order.id == order_id, Order.erp_order_id.is_(None), Order.tenant_id.is_(None))
        .values(erp_order_id=str(erp_order_id), erp_status=erp_status, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    res = db.execute(stmt)
    db.commit()
    return bool(res.rowcount)


def set_erp_status(db: Session, order_id, erp_status: str) -> None:
    stmt = (
        update(Order)
        .where(Order.id == order_id)
        .values(erp_status=erp_status, updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    db.execute(stmt)
    db.commit()


# ---------- Checkpoints ----------
def append_integration_checkpoint(db: Session, *, last_update: str, window_from: str, window_to: str) -> IntegrationCheckpoint:
    row = IntegrationCheckpoint(last_update=last_update, window_from=window_from, window_to=window_to)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def get_latest_checkpoint(db: Session) -> Optional[IntegrationCheckpoint]:
    # 按插入顺序（自增 id）取最后一行
    stmt = select(IntegrationCheckpoint).order_by(IntegrationCheckpoint.id.desc()).limit(1)
    return db.scalars(stmt).first()


def list_checkpoints(db: Session) -> Iterable[IntegrationCheckpoint]:
    stmt = select(IntegrationCheckpoint).order_by(IntegrationCheckpoint.id.asc())
    return list(db.scalars(stmt))
