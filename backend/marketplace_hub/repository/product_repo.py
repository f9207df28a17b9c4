# product / variation database repository

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace_hub.db.model.product import Product, Variation
from marketplace_hub.utils.clock import now_utc
from marketplace_hub.utils.serialization import parse_uuid


# 允许通过 update_product_fields 写入的字段白名单
PRODUCT_FIELDS = (
    "name", "brand", "description", "category", "subcategory", "images", "ean",
    "price", "price_discounted", "weight", "height", "width", "length", "is_active",
)

VARIATION_FIELDS = (
    "source_sku", "mapping_id", "stock",
    "size", "color", "flavor", "voltage", "gluten_free", "lactose_free",
)


# ---------- Query ----------
def get_variation(db: Session, variation_id: Any) -> Optional[Variation]:
    vid = parse_uuid(variation_id)
    if vid is None:
        return None
    return db.get(Variation, vid)


def get_variation_by_source_sku(db: Session, shop_id: str, source_sku: str) -> Optional[Variation]:
    stmt = (
        select(Variation)
        .join(Product, Product.id == Variation.product_id)
        .where(Product.shop_id == shop_id, Variation.source_sku == str(source_sku))
    )
    return db.scalars(stmt).first()


def find_variation_by_sku(db: Session, sku: str, shop_id: Optional[str] = None) -> Optional[Variation]:
    """
    订单行项目里的 sku 可能是：本地 variation id（已做 mapsku）/ mapping_id / Hub source sku。
    按这个顺序查，第一个命中即返回。
    """
    vid = parse_uuid(sku)
    if vid is not None:
        row = db.get(Variation, vid)
        if row is not None:
            return row

    for column in (Variation.mapping_id, Variation.source_sku):
        stmt = select(Variation).join(Product, Product.id == Variation.product_id).where(column == str(sku))
        if shop_id is not None:
            stmt = stmt.where(Product.shop_id == shop_id)
        row = db.scalars(stmt.order_by(Variation.created_at.asc())).first()
        if row is not None:
            return row
    return None


def get_product(db: Session, product_id: Any) -> Optional[Product]:
    pid = parse_uuid(product_id)
    if pid is None:
        return None
    return db.get(Product, pid)


def get_product_by_sku(db: Session, shop_id: str, sku: str) -> Optional[Product]:
    stmt = select(Product).where(Product.shop_id == shop_id, Product.sku == str(sku))
    return db.scalars(stmt).first()


def list_products_by_shop(db: Session, shop_id: str) -> List[Product]:
    stmt = select(Product).where(Product.shop_id == shop_id).order_by(Product.created_at.asc())
    return list(db.scalars(stmt))


# ---------- Mutations ----------
def insert_product(db: Session, product: Dict[str, Any], variations: Sequence[Dict[str, Any]]) -> Product:
    """
    一次性插入 Product 及其 Variation（同一事务）。
    product / variations 是已经规范化好的 dict（见 integrations/hub/normalizers.py）。
    """
    row = Product(
        shop_id=product["shop_id"],
        sku=str(product["sku"]),
        **{k: product[k] for k in PRODUCT_FIELDS if k in product},
        validation_errors=list(product.get("validation_errors") or []),
    )
    for v in variations:
        row.variations.append(Variation(**{k: v[k] for k in VARIATION_FIELDS if k in v}))
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def add_variation(db: Session, product: Product, fields: Dict[str, Any]) -> Variation:
    variation = Variation(product_id=product.id, **{k: fields[k] for k in VARIATION_FIELDS if k in fields})
    db.add(variation)
    db.commit()
    db.refresh(variation)
    db.refresh(product)
    return variation


def update_product_fields(db: Session, product: Product, fields: Dict[str, Any]) -> Product:
    """只写白名单里的字段；空 dict 直接返回。"""
    clean = {k: v for k, v in fields.items() if k in PRODUCT_FIELDS or k == "validation_errors"}
    if not clean:
        return product
    for key, value in clean.items():
        setattr(product, key, value)
    product.updated_at = now_utc()
    db.commit()
    db.refresh(product)
    return product


def upsert_variation_stock(db: Session, variation_id: Any, new_stock: int) -> Optional[Variation]:
    """
    覆盖写库存；变体不存在返回 None（批量循环里按“跳过该条”处理）。
    """
    vid = parse_uuid(variation_id)
    if vid is None:
        return None
    stmt = (
        update(Variation)
        .where(Variation.id == vid)
        .values(stock=int(new_stock), updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    res = db.execute(stmt)
    if not res.rowcount:
        db.rollback()
        return None
    db.commit()
    row = db.get(Variation, vid)
    if row is not None:
        db.refresh(row)
    return row


def decrement_variation_stock(db: Session, variation_id: Any, quantity: int) -> Optional[Variation]:
    """
    按售出数量扣减库存：UPDATE ... SET stock = stock - :qty，
    不做下限截断，负数库存是需要人工排查的信号。
    """
    vid = parse_uuid(variation_id)
    if vid is None:
        return None
    stmt = (
        update(Variation)
        .where(Variation.id == vid)
        .values(stock=Variation.stock - int(quantity), updated_at=now_utc())
        .execution_options(synchronize_session=False)
    )
    res = db.execute(stmt)
    if not res.rowcount:
        db.rollback()
        return None
    db.commit()
    row = db.get(Variation, vid)
    if row is not None:
        db.refresh(row)
    return row


def set_variation_mappings(db: Session, pairs: Iterable[tuple[str, str]]) -> int:
    """pairs: (variation_id, destination_sku)；返回写入条数。"""
    count = 0
    for variation_id, destination in pairs:
        vid = parse_uuid(variation_id)
        if vid is None:
            continue
        res = db.execute(
            update(Variation)
            .where(Variation.id == vid)
            .values(mapping_id=str(destination), updated_at=now_utc())
            .execution_options(synchronize_session=False)
        )
        count += res.rowcount or 0
    db.commit()
    return count
