"""
共享 fixture：
  - session_factory：每个测试一个临时 SQLite 文件库（线程测试也能用）
  - fake_gateway / fake_erp：内存假网关，记录所有调用
  - bus：记录发布顺序的 EventBus
  - make_order / seed_product：构造 Hub 订单、预置商品
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from marketplace_hub.db.base import Base
import marketplace_hub.db.model  # noqa: F401  登记全部表
from marketplace_hub.core.errors import NotFoundError
from marketplace_hub.events.bus import DomainEvent, EventBus
from marketplace_hub.integrations.erp.schemas import ErpRetorno
from marketplace_hub.integrations.hub.errors import HubNotFoundError, HubServerError
from marketplace_hub.integrations.hub.schemas import (
    HubCatalogItem, HubInvoice, HubOrder, HubTracking,
)
from marketplace_hub.integrations.hub.scopes import GLOBAL_SCOPE
from marketplace_hub.repository.product_repo import insert_product


# ---------- DB ----------
@pytest.fixture
def session_factory(tmp_path) -> Iterable[sessionmaker[Session]]:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'hub.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory) -> Iterable[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------- Event bus ----------
class RecordingBus(EventBus):

    def __init__(self) -> None:
        super().__init__()
        self.published: List[DomainEvent] = []

    def publish(self, name, payload=None):
        event = super().publish(name, payload)
        self.published.append(event)
        return event

    def names(self) -> List[str]:
        return [e.name for e in self.published]

    def of(self, name: str) -> List[DomainEvent]:
        return [e for e in self.published if e.name == name]


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


# ---------- Hub fakes ----------
def build_hub_order(
    reference_id: str,
    status: str,
    items: Iterable[Tuple[str, int]] = (("SKU-1", 1),),
    *,
    created: Optional[str] = None,
    tenant_id: Optional[str] = None,
) -> HubOrder:
    return HubOrder.model_validate({
        "reference": {"id": reference_id, "idTenant": tenant_id, "system": {"source": "Marketplace"}},
        "status": {"status": status, "updatedDate": "2026-10-01T10:00:00Z", "active": True, "message": ""},
        "products": [{"sku": sku, "quantity": qty, "price": 10.0} for sku, qty in items],
        "payment": {"totalAmount": 10.0},
        "shipping": {"provider": "Correios", "service": "PAC", "price": 0},
        "customer": {"name": "Cliente Teste", "email": "cliente@example.com"},
        "createdDate": created or "2026-10-01T09:00:00Z",
    })


class FakeGateway:
    """HubGateway 的内存替身：orders / tenant_orders / catalog / stock 都是可写字典。"""

    def __init__(self) -> None:
        self.page_limit = 10
        self.orders: Dict[str, HubOrder] = {}
        self.tenant_orders: Dict[str, HubOrder] = {}
        self.invoices: Dict[str, HubInvoice] = {}
        self.trackings: Dict[str, HubTracking] = {}
        self.catalog_pages: Dict[Tuple[str, str, int], List[HubCatalogItem]] = {}
        self.hub_stock: Dict[str, int] = {}
        self.window_orders: List[HubOrder] = []

        self.fail_fetch_order = False
        self.fail_invoice = False
        self.fail_status_push = False
        self.fail_catalog = False

        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self._next_tenant_id = 9000

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def called(self, name: str) -> List[Tuple[Any, ...]]:
        return [args for n, args in self.calls if n == name]

    # orders
    def fetch_order(self, reference_id, scope=GLOBAL_SCOPE):
        self._record("fetch_order", reference_id, scope)
        if self.fail_fetch_order:
            raise HubServerError("503 after retries")
        source = self.orders if scope == GLOBAL_SCOPE else self.tenant_orders
        if reference_id not in source:
            raise HubNotFoundError(f"404 not found: /Orders/{reference_id}")
        return source[reference_id]

    def fetch_orders_by_window(self, start, end, scope=GLOBAL_SCOPE):
        self._record("fetch_orders_by_window", start, end)
        if self.fail_fetch_order:
            raise HubServerError("503 after retries")
        return list(self.window_orders)

    def list_all_orders(self, scope=GLOBAL_SCOPE):
        self._record("list_all_orders")
        if self.fail_fetch_order:
            raise HubServerError("503 after retries")
        return list(self.window_orders)

    def fetch_invoice(self, reference_id, scope=GLOBAL_SCOPE):
        self._record("fetch_invoice", reference_id, scope)
        if self.fail_invoice:
            raise HubServerError("invoice endpoint down")
        return self.invoices.get(reference_id) or HubInvoice(key="KEY-" + str(reference_id), number="1", series="1")

    def post_invoice(self, reference_id, invoice, scope=GLOBAL_SCOPE):
        self._record("post_invoice", reference_id, invoice, scope)
        if scope != GLOBAL_SCOPE and reference_id in self.tenant_orders:
            self._set_tenant_status(reference_id, "Invoiced")
        return invoice

    def fetch_tracking(self, reference_id, scope=GLOBAL_SCOPE):
        self._record("fetch_tracking", reference_id, scope)
        return self.trackings.get(reference_id) or HubTracking(code="TRK-" + str(reference_id))

    def post_tracking(self, reference_id, tracking, scope=GLOBAL_SCOPE):
        self._record("post_tracking", reference_id, tracking, scope)
        if scope != GLOBAL_SCOPE and reference_id in self.tenant_orders:
            self._set_tenant_status(reference_id, "Shipped")
        return tracking

    def put_order_status(self, reference_id, status, scope=GLOBAL_SCOPE):
        self._record("put_order_status", reference_id, status, scope)
        if self.fail_status_push:
            raise HubServerError("status endpoint down")
        if scope != GLOBAL_SCOPE and reference_id in self.tenant_orders:
            self._set_tenant_status(reference_id, status)
        return True

    def post_order(self, order, tenant_id):
        self._record("post_order", order, tenant_id)
        self._next_tenant_id += 1
        created = dict(order)
        created["reference"] = {**order["reference"], "id": str(self._next_tenant_id)}
        hub_order = HubOrder.model_validate(created)
        self.tenant_orders[str(self._next_tenant_id)] = hub_order
        return hub_order

    def _set_tenant_status(self, reference_id, status):
        current = self.tenant_orders[reference_id]
        self.tenant_orders[reference_id] = current.model_copy(
            update={"status": current.status.model_copy(update={"status": status})}
        )

    # catalog / inventory
    def fetch_catalog_page(self, tenant_id, status_filter="2", offset=0):
        self._record("fetch_catalog_page", tenant_id, status_filter, offset)
        if self.fail_catalog:
            raise HubServerError("catalog down")
        return list(self.catalog_pages.get((str(tenant_id), status_filter, int(offset)), []))

    def fetch_stock(self, sku, scope=GLOBAL_SCOPE):
        self._record("fetch_stock", sku, scope)
        return self.hub_stock.get(sku)

    def put_stock(self, sku, available, scope=GLOBAL_SCOPE):
        self._record("put_stock", sku, available, scope)
        return True

    def put_price(self, sku, base, sale, scope=GLOBAL_SCOPE):
        self._record("put_price", sku, base, sale, scope)
        return True

    def map_skus(self, pairs, scope=GLOBAL_SCOPE):
        self._record("map_skus", list(pairs), scope)
        return True

    def setup_order_webhook(self, callback_url, token, tenant_id=None):
        self._record("setup_order_webhook", callback_url, token, tenant_id)
        return {"ok": True}


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


class FakeErpClient:

    def __init__(self) -> None:
        self.info_status = "OK"
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.status_updates: List[Tuple[str, str, str]] = []
        self._next_id = 500

    def get_info(self, token):
        return ErpRetorno(status=self.info_status)

    def send_order(self, token, pedido):
        self.sent.append((token, pedido))
        self._next_id += 1
        return str(self._next_id)

    def update_order_status(self, token, erp_order_id, situacao):
        self.status_updates.append((token, erp_order_id, situacao))
        return True


@pytest.fixture
def fake_erp() -> FakeErpClient:
    return FakeErpClient()


# ---------- Builders ----------
@pytest.fixture
def make_order():
    return build_hub_order


@pytest.fixture
def seed_product(session_factory):
    """seed_product(shop_id, sku, [(source_sku, stock), ...], **product_fields) -> Product"""

    def _seed(shop_id: str, sku: str, variations: Iterable[Tuple[str, int]] = (), **fields: Any):
        product = {
            "shop_id": shop_id, "sku": sku, "name": f"Produto {sku}", "brand": "Marca",
            "description": "desc", "category": "10", "subcategory": "Acessórios", "images": ["http://img/1.jpg"],
            "price": 100, "weight": 500, "height": 10, "width": 10, "length": 10,
        }
        product.update(fields)
        rows = [{"source_sku": s, "stock": stock} for s, stock in (variations or [(sku, 0)])]
        with session_factory() as session:
            return insert_product(session, product, rows)

    return _seed


@pytest.fixture
def catalog_item():
    def _item(source: str, *, parent: Optional[str] = None, categorized: bool = True, stock: int = 5,
              price: float = 99.9, sale: Optional[float] = 89.9, description: str = "Descrição",
              attributes: Iterable[Tuple[str, str]] = (), destination: Optional[str] = None) -> HubCatalogItem:
        data: Dict[str, Any] = {
            "skus": {"source": source, "destination": destination},
            "parentSKU": parent,
            "name": f"Item {source}",
            "brand": "Marca",
            "description": {"sourceDescription": description},
            "attributes": [{"name": n, "value": v} for n, v in attributes],
            "images": [{"url": "http://img/a.jpg"}],
            "stocks": {"sourceStock": stock},
            "destinationPrices": {"priceBase": price, "priceSale": sale},
            "dimensions": {"height": 0.1, "width": 0.2, "length": 0.3, "weight": 1.5},
        }
        if categorized:
            data["categorization"] = {"source": {"code": "55", "name": "Moda Feminina"}}
        return HubCatalogItem.model_validate(data)

    return _item


@pytest.fixture
def missing():
    """给需要 NotFoundError 的替身用。"""
    return NotFoundError
