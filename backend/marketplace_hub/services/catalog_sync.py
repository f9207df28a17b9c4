from __future__ import annotations
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from marketplace_hub.core.errors import CredentialError, NotFoundError, TransportError
from marketplace_hub.db.model.product import Product, Variation
from marketplace_hub.db.session import session_scope
from marketplace_hub.events import bus as events
from marketplace_hub.events.bus import EventBus
from marketplace_hub.integrations.hub import HubCatalogItem, HubGateway, tenant_scope
from marketplace_hub.integrations.hub.normalizers import (
    catalog_diff_fields, catalog_item_to_product, derive_variation,
)
from marketplace_hub.repository.integration_repo import list_tenants, set_catalog_offset
from marketplace_hub.repository.product_repo import (
    add_variation, get_product, get_product_by_sku, get_variation, insert_product, list_products_by_shop,
    set_variation_mappings, update_product_fields, upsert_variation_stock,
)
from marketplace_hub.services.product_validation import compute_validation_errors
from marketplace_hub.utils.keyed_lock import KeyedLocks
from marketplace_hub.utils.serialization import to_decimal

logger = logging.getLogger(__name__)

# status=2：待导入（Hub 侧未分类的新商品）
IMPORT_STATUS = "2"


@dataclass
class CatalogPage:
    products: List[Product] = field(default_factory=list)
    next_offset: int = 0
    fetched: int = 0
    uncategorized: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0

    def summary(self) -> Dict[str, int]:
        return {
            "fetched": self.fetched, "created": self.created, "updated": self.updated,
            "uncategorized": self.uncategorized, "failed": self.failed, "next_offset": self.next_offset,
        }


def _same_decimal(current: Any, incoming: Optional[Decimal]) -> bool:
    if current is None or incoming is None:
        return current is None and incoming is None
    return to_decimal(current) == incoming


def next_page_offset(status_filter: str, offset: int, uncategorized: int, page_limit: int) -> int:
    """
    只有 status=2 且整页都是“未分类”时才前进（说明后面还有积压），否则归零；
    这样上游分类完成后的商品不会被永久跳过。
    """
    if status_filter == IMPORT_STATUS and uncategorized >= page_limit:
        return offset + page_limit
    return 0



class CatalogSyncEngine:
    """
    Hub 目录 → 本地 Product/Variation：
      - 同一父 SKU 的多条 item 归并为一个 Product（同一页内只插一次）；
      - 已存在的 Product 按字段 diff，只写变了的字段、只发对应事件；
      - 新 Variation 没有 destination 映射时调用 mapsku 绑定回 Hub。
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        gateway: HubGateway,
        bus: EventBus,
        *,
        stock_locks: Optional[KeyedLocks] = None,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.bus = bus
        self.stock_locks = stock_locks or KeyedLocks()


    @property
    def page_limit(self) -> int:
        return self.gateway.page_limit


    # ---------- Import ----------
    def import_catalog_page(
        self, tenant_id: str, shop_id: str, status_filter: str = IMPORT_STATUS, offset: int = 0
    ) -> CatalogPage:
        """
        1) 拉一页 Hub 目录（失败整页放弃，抛给调用方）
        2) 逐条：未分类跳过；已存在 diff；不存在按父 SKU 暂存
        3) 暂存的新 Product 批量创建
        4) 没有 destination 的新 Variation 做 mapsku
        5) 计算下一页 offset
        """
        items = self.gateway.fetch_catalog_page(tenant_id, status_filter, offset)
        page = CatalogPage(fetched=len(items))
        staged: Dict[str, Tuple[Dict[str, Any], List[Dict[str, Any]]]] = {}
        unmapped: List[Variation] = []

        with session_scope(self.session_factory) as db:
            for item in items:
                if not item.is_categorized:
                    page.uncategorized += 1
                    continue
                try:
                    existing = get_product_by_sku(db, shop_id, item.group_sku)
                    if existing is None:
                        self._stage(staged, item, shop_id)
                    elif self._update_existing(db, existing, item, unmapped):
                        page.updated += 1
                        page.products.append(existing)
                except (TransportError, NotFoundError) as e:
                    db.rollback()
                    page.failed += 1
                    logger.warning("catalog.item.failed tenant=%s sku=%s err=%s", tenant_id, item.source_sku, e)

            for group_sku, (product_fields, variations) in staged.items():
                product_fields["validation_errors"] = compute_validation_errors(product_fields, variations)
                try:
                    product = insert_product(db, product_fields, variations)
                except IntegrityError:
                    db.rollback()
                    page.failed += 1
                    logger.warning("catalog.product.create_conflict shop=%s sku=%s", shop_id, group_sku)
                    continue
                page.created += 1
                page.products.append(product)
                unmapped.extend(v for v in product.variations if not v.mapping_id)
                self.bus.publish(events.PRODUCT_CREATED, {
                    "product_id": str(product.id), "shop_id": shop_id, "sku": product.sku, "tenant_id": tenant_id,
                    "origin": "hub",
                })

            if unmapped:
                self._map_skus(db, tenant_id, unmapped, page)

        page.next_offset = next_page_offset(status_filter, offset, page.uncategorized, self.page_limit)
        logger.info("catalog.import tenant=%s shop=%s status=%s offset=%s %s",
                    tenant_id, shop_id, status_filter, offset, page.summary())
        return page


    def _stage(self, staged: Dict[str, Tuple[Dict[str, Any], List[Dict[str, Any]]]], item: HubCatalogItem, shop_id: str) -> None:
        variation = derive_variation(item)
        if item.group_sku not in staged:
            staged[item.group_sku] = (catalog_item_to_product(item, shop_id), [variation])
            return
        variations = staged[item.group_sku][1]
        if all(v["source_sku"] != variation["source_sku"] for v in variations):
            variations.append(variation)


    def _update_existing(self, db: Session, product: Product, item: HubCatalogItem, unmapped: List[Variation]) -> bool:
        """逐字段比较；返回是否有任何变化。"""
        incoming = catalog_diff_fields(item)
        changed: Dict[str, Any] = {}

        if (product.description or None) != (incoming["description"] or None):
            changed["description"] = incoming["description"]

        price_changed = not (
            _same_decimal(product.price, incoming["price"])
            and _same_decimal(product.price_discounted, incoming["price_discounted"])
        )
        if price_changed:
            changed["price"] = incoming["price"]
            changed["price_discounted"] = incoming["price_discounted"]

        if incoming["category"] is not None and product.category != incoming["category"]:
            changed["category"] = incoming["category"]
            changed["subcategory"] = item.categorization.source.name

        stock_changed = self._reconcile_variation(db, product, item, unmapped)

        if changed:
            validation = compute_validation_errors({**_product_view(product), **changed}, product.variations)
            if validation != (product.validation_errors or []):
                changed["validation_errors"] = validation
            update_product_fields(db, product, changed)
            self.bus.publish(events.PRODUCT_UPDATED, {
                "product_id": str(product.id), "shop_id": product.shop_id, "fields": sorted(changed), "origin": "hub",
            })
            if price_changed:
                self.bus.publish(events.PRICE_UPDATED, {
                    "product_id": str(product.id), "price": product.price,
                    "price_discounted": product.price_discounted, "origin": "hub",
                })

        return bool(changed) or stock_changed


    def _reconcile_variation(self, db: Session, product: Product, item: HubCatalogItem, unmapped: List[Variation]) -> bool:
        variation = next((v for v in product.variations if v.source_sku == item.source_sku), None)
        if variation is None:
            variation = add_variation(db, product, derive_variation(item))
            if not variation.mapping_id:
                unmapped.append(variation)
            return True

        incoming_stock = int(item.stocks.source_stock or 0)
        if variation.stock == incoming_stock:
            return False
        self._write_stock(db, variation.id, incoming_stock, origin="hub")
        return True


    def _map_skus(self, db: Session, tenant_id: str, variations: List[Variation], page: CatalogPage) -> None:
        pairs = [(v.source_sku, str(v.id)) for v in variations if v.source_sku]
        try:
            self.gateway.map_skus(pairs, scope=tenant_scope(tenant_id))
        except TransportError as e:
            # 没绑上也不影响本地数据；下一轮导入会再次尝试
            logger.warning("catalog.mapsku.failed tenant=%s count=%s err=%s", tenant_id, len(pairs), e)
            page.failed += len(pairs)
            return
        set_variation_mappings(db, [(vid, vid) for _, vid in pairs])
        for variation in variations:
            db.refresh(variation)


    # ---------- Stock / price ----------
    def _write_stock(self, db: Session, variation_id: Any, stock: int, *, origin: str) -> Optional[Variation]:
        with self.stock_locks.hold(str(variation_id)):
            updated = upsert_variation_stock(db, variation_id, stock)
        if updated is None:
            return None
        self.bus.publish(events.STOCK_UPDATED, {
            "variation_id": str(updated.id), "product_id": str(updated.product_id),
            "stock": updated.stock, "origin": origin,
        })
        return updated


    def apply_stock_update(self, variation_id: Any, stock: int, *, origin: str = "erp") -> Variation:
        """ERP 库存 webhook：覆盖写库存并发 stock.updated（listener 推给 Hub）。"""
        with session_scope(self.session_factory) as db:
            if get_variation(db, variation_id) is None:
                raise NotFoundError(f"variation {variation_id} not found")
            updated = self._write_stock(db, variation_id, int(stock), origin=origin)
            if updated is None:
                raise NotFoundError(f"variation {variation_id} not found")
            return updated


    def apply_price_update(self, product_id: Any, base: Any, sale: Any, *, origin: str = "erp") -> Product:
        with session_scope(self.session_factory) as db:
            product = get_product(db, product_id)
            if product is None:
                raise NotFoundError(f"product {product_id} not found")
            fields = {"price": to_decimal(base), "price_discounted": to_decimal(sale)}
            if _same_decimal(product.price, fields["price"]) and _same_decimal(product.price_discounted, fields["price_discounted"]):
                return product
            fields["validation_errors"] = compute_validation_errors({**_product_view(product), **fields}, product.variations)
            update_product_fields(db, product, fields)
            self.bus.publish(events.PRICE_UPDATED, {
                "product_id": str(product.id), "price": product.price,
                "price_discounted": product.price_discounted, "origin": origin,
            })
            return product


    # ---------- Periodic drivers ----------
    def sync_all_catalogs(self) -> Dict[str, Any]:
        """每个有 shop 的 tenant 各自用自己持久化的 offset 导入一页，再写回下一页 offset。"""
        with session_scope(self.session_factory) as db:
            tenants = [(t.tenant_id, t.shop_id, t.catalog_offset or 0) for t in list_tenants(db)]

        totals = {"tenants": len(tenants), "created": 0, "updated": 0, "failed_tenants": 0}
        for tenant_id, shop_id, offset in tenants:
            try:
                page = self.import_catalog_page(tenant_id, shop_id, IMPORT_STATUS, offset)
            except (TransportError, CredentialError) as e:
                totals["failed_tenants"] += 1
                logger.warning("catalog.sync.tenant_failed tenant=%s offset=%s err=%s", tenant_id, offset, e)
                continue
            with session_scope(self.session_factory) as db:
                set_catalog_offset(db, tenant_id, page.next_offset)
            totals["created"] += page.created
            totals["updated"] += page.updated
        return totals


    def sync_all_stock(self) -> Dict[str, Any]:
        """按 tenant 遍历本地 Variation，对比 Hub 可用库存，不一致就覆盖本地。"""
        totals = {"tenants": 0, "checked": 0, "updated": 0, "failed": 0}
        with session_scope(self.session_factory) as db:
            tenants = [(t.tenant_id, t.shop_id) for t in list_tenants(db)]
            totals["tenants"] = len(tenants)

            for tenant_id, shop_id in tenants:
                scope = tenant_scope(tenant_id)
                for product in list_products_by_shop(db, shop_id):
                    for variation in list(product.variations):
                        totals["checked"] += 1
                        try:
                            available = self.gateway.fetch_stock(variation.hub_sku, scope=scope)
                        except (TransportError, CredentialError) as e:
                            totals["failed"] += 1
                            logger.warning("stock.sync.failed tenant=%s sku=%s err=%s", tenant_id, variation.hub_sku, e)
                            continue
                        if available is None or available == variation.stock:
                            continue
                        if self._write_stock(db, variation.id, available, origin="hub") is not None:
                            totals["updated"] += 1

        logger.info("stock.sync %s", totals)
        return totals



def _product_view(product: Product) -> Dict[str, Any]:
    return {
        "name": product.name, "brand": product.brand, "description": product.description,
        "category": product.category, "subcategory": product.subcategory, "images": product.images,
        "price": product.price, "weight": product.weight, "height": product.height,
        "width": product.width, "length": product.length,
    }
