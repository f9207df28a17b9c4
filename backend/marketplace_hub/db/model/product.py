from __future__ import annotations
from decimal import Decimal
import uuid
from typing import Optional, List, Dict, Any
from datetime import datetime

from sqlalchemy import (
    Boolean, DateTime, String, Integer, Index, UniqueConstraint, func, Numeric, ForeignKey, Text, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from marketplace_hub.db.base import Base, JSONType



"""
  商品表：一个 Product = 一个父 SKU；同一父 SKU 的多个 Hub 条目归并为它的 Variation
  validation_errors 是每次变更后重新计算的“完整度”视图，不是权威状态
"""
class Product(Base):

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    shop_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sku:     Mapped[str] = mapped_column(String(128), nullable=False)                  # 父 SKU（Hub parentSKU，没有就是自身 sku）

    name:        Mapped[Optional[str]] = mapped_column(String(255))
    brand:       Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    category:    Mapped[Optional[str]] = mapped_column(String(64))
    subcategory: Mapped[Optional[str]] = mapped_column(String(64))
    images:      Mapped[List[str]]     = mapped_column(JSONType, nullable=False, default=list)
    ean:         Mapped[Optional[str]] = mapped_column(String(32))

    # 价格
    price:            Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))     # base
    price_discounted: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))     # sale

    # 尺寸/重量（本地单位：g / cm）
    weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 3))
    height: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 3))
    width:  Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 3))
    length: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 3))

    is_active:         Mapped[bool]                 = mapped_column(Boolean, nullable=False, default=True)
    validation_errors: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    variations: Mapped[List["Variation"]] = relationship(
        back_populates="product", cascade="all, delete-orphan", lazy="selectin", order_by="Variation.created_at",
    )

    __table_args__ = (
        UniqueConstraint("shop_id", "sku", name="uq_products_shop_sku"),
    )

    def __repr__(self) -> str:
        return f"<Product shop={self.shop_id} sku={self.sku}>"



"""
  变体表：库存挂在这里；stock 允许为负（超卖信号，不做截断）
  product_id 只是反查用的弱引用，Product 是唯一 owner
"""
class Variation(Base):

    __tablename__ = "variations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    product_id: Mapped[uuid.UUID]     = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    source_sku: Mapped[Optional[str]] = mapped_column(String(128), index=True)          # Hub 侧 SKU
    mapping_id: Mapped[Optional[str]] = mapped_column(String(128))                      # mapsku 绑定后的 destination SKU

    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # 可选属性；是否必填由 Product.category 决定
    size:         Mapped[Optional[str]]  = mapped_column(String(64))
    color:        Mapped[Optional[str]]  = mapped_column(String(64))
    flavor:       Mapped[Optional[str]]  = mapped_column(String(64))
    voltage:      Mapped[Optional[str]]  = mapped_column(String(16))
    gluten_free:  Mapped[Optional[bool]] = mapped_column(Boolean)
    lactose_free: Mapped[Optional[bool]] = mapped_column(Boolean)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    product: Mapped[Product] = relationship(back_populates="variations")

    __table_args__ = (
        Index("ix_variations_product_source", "product_id", "source_sku"),
    )

    @property
    def hub_sku(self) -> str:
        """Hub inventory 接口用的 SKU：已绑定用 destination，否则退回 source。"""
        return self.mapping_id or self.source_sku or str(self.id)

    def __repr__(self) -> str:
        return f"<Variation id={self.id} source_sku={self.source_sku} stock={self.stock}>"
