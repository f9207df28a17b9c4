from __future__ import annotations
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
from marketplace_hub.db.base import Base, JSONType


"""
  system_integrations 表：每个店铺配置的下游 ERP
  active 只有在连通性探测成功后才会置 True
"""
class SystemIntegration(Base):

    __tablename__ = "system_integrations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    shop_id:     Mapped[str]            = mapped_column(String(64), nullable=False)
    system_name: Mapped[str]            = mapped_column(String(32), nullable=False)          # tiny / bling / ...
    credentials: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)  # {"token": ..., "ecommerce_id": ...}
    active:      Mapped[bool]           = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("shop_id", name="uq_system_integrations_shop_id"),
    )



"""
  tenant_accounts 表：Hub 子账号（agency 下的 tenant）
  - api_username / api_password：子账号 OAuth 登录用
  - catalog_offset：该 tenant 自己的目录分页游标，绝不跨 tenant 共享
"""
class TenantAccount(Base):

    __tablename__ = "tenant_accounts"

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    shop_id:      Mapped[Optional[str]] = mapped_column(String(64), index=True)
    name:         Mapped[Optional[str]] = mapped_column(String(255))
    owner_email:  Mapped[Optional[str]] = mapped_column(String(255))
    api_username: Mapped[Optional[str]] = mapped_column(String(255))
    api_password: Mapped[Optional[str]] = mapped_column(String(255))

    catalog_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
