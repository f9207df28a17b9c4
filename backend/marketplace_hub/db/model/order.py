from __future__ import annotations
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, String, Index, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
from marketplace_hub.db.base import Base, JSONType


# 渠道侧订单状态（Hub 的词汇表）
ORDER_STATUSES = ("Pending", "Approved", "Invoiced", "Shipped", "Delivered", "Canceled", "Completed")

# shop 无法解析时的保留值
LIMBO_SHOP_ID = "limbo"


"""
  orders 表：一条 = 一笔渠道销售
  - reference_id: Hub 分配的外部单号，跨系统关联的唯一依据
  - status 只能通过 conditional update（CAS）推进，见 order_repo.conditional_update_order_status
"""
class Order(Base):

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    reference_id: Mapped[str]           = mapped_column(String(64), nullable=False, index=True)     # Hub reference.id
    shop_id:      Mapped[str]           = mapped_column(String(64), nullable=False, default=LIMBO_SHOP_ID, index=True)
    status:       Mapped[str]           = mapped_column(String(16), nullable=False)
    status_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    payload: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)         # Hub 原始订单（含 products 行项目）
    meta:    Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)         # approved_at / invoiced_at / ... 时间戳

    # 转发到子账号（tenant）后的链接，双向同步的锚点
    tenant_id:       Mapped[Optional[str]] = mapped_column(String(64))
    tenant_order_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)

    # 推送到 ERP 后的链接；与 tenant 互斥
    erp_order_id: Mapped[Optional[str]] = mapped_column(String(64))
    erp_status:   Mapped[Optional[str]] = mapped_column(String(32))                                  # 最近一次推给 ERP 的状态（ERP 词汇：aberto / aprovado / ...）

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("reference_id", "shop_id", name="uq_orders_reference_shop"),
        Index("ix_orders_shop_status", "shop_id", "status"),
    )

    @property
    def line_items(self) -> List[Dict[str, Any]]:
        """``[{"sku": ..., "quantity": ...}]`` read from the stored Hub payload."""
        items = []
        for row in (self.payload or {}).get("products") or []:
            sku = row.get("sku")
            if not sku:
                continue
            items.append({"sku": str(sku), "quantity": int(row.get("quantity") or 0)})
        return items

    def __repr__(self) -> str:
        return f"<Order ref={self.reference_id} shop={self.shop_id} status={self.status}>"



"""
  integration_checkpoints 表：只追加；最新一行 = 下次轮询的起点
"""
class IntegrationCheckpoint(Base):

    __tablename__ = "integration_checkpoints"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    last_update: Mapped[str] = mapped_column(String(40), nullable=False)    # Hub 时间字符串（ISO8601）
    window_from: Mapped[str] = mapped_column(String(40), nullable=False)
    window_to:   Mapped[str] = mapped_column(String(40), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
