from __future__ import annotations

import pytest

from marketplace_hub.core.errors import NotFoundError
from marketplace_hub.integrations.hub.errors import HubServerError
from marketplace_hub.integrations.hub.schemas import HubInvoice, HubTracking
from marketplace_hub.repository.integration_repo import save_tenant, set_system_active, upsert_system_integration
from marketplace_hub.repository.order_repo import OrderFilter, get_order_by_reference_id, set_erp_link, set_tenant_link
from marketplace_hub.services.order_service import OrderService
from marketplace_hub.services.status_reconciliation import OUTCOME_TRANSITIONED, StatusReconciliationEngine


@pytest.fixture
def engine(session_factory, fake_gateway, bus, fake_erp) -> StatusReconciliationEngine:
    return StatusReconciliationEngine(session_factory, fake_gateway, bus, erp_client=fake_erp)


@pytest.fixture
def service(session_factory, fake_gateway, engine, fake_erp) -> OrderService:
    return OrderService(session_factory, fake_gateway, engine, erp_client=fake_erp)


@pytest.fixture
def order_ref(engine, fake_gateway, make_order, seed_product) -> str:
    seed_product("shop-1", "P-A", [("SKU-A", 10)])
    fake_gateway.orders["100"] = make_order("100", "Pending", [("SKU-A", 1)])
    engine.observe_status("100", "Pending", "webhook")
    return "100"


def _order(session_factory, ref: str):
    with session_factory() as db:
        return get_order_by_reference_id(db, ref)


def _activate_erp(session_factory, shop_id: str = "shop-1", token: str = "tok") -> None:
    with session_factory() as db:
        system = upsert_system_integration(db, shop_id=shop_id, system_name="tiny", credentials={"token": token})
        set_system_active(db, system, True)



# ---------- 发票 / 物流 ----------
def test_submit_invoice_posts_then_observes(service, fake_gateway, order_ref, session_factory):
    invoice = HubInvoice(key="NFE-1", number="10", series="1")

    result = service.submit_invoice(order_ref, invoice)

    assert fake_gateway.called("post_invoice") == [(order_ref, invoice, "global")]
    assert result.outcome == OUTCOME_TRANSITIONED
    assert _order(session_factory, order_ref).status == "Invoiced"


# Hub 拒绝发票：不观测，状态不变
def test_rejected_invoice_does_not_transition(service, fake_gateway, order_ref, session_factory, monkeypatch):
    def reject(reference_id, invoice, scope="global"):
        raise HubServerError("invoice rejected")

    monkeypatch.setattr(fake_gateway, "post_invoice", reject)

    with pytest.raises(HubServerError):
        service.submit_invoice(order_ref, HubInvoice(key="NFE-1"))
    assert _order(session_factory, order_ref).status == "Pending"


def test_submit_tracking(service, fake_gateway, order_ref, session_factory):
    result = service.submit_tracking(order_ref, HubTracking(code="BR123"), source="erp-webhook")

    assert result.status == "Shipped"
    assert fake_gateway.called("post_tracking")[0][1].code == "BR123"



# ---------- 新订单分发 ----------
def test_new_order_forwarded_to_shop_tenant(service, fake_gateway, order_ref, session_factory):
    with session_factory() as db:
        save_tenant(db, tenant_id="77", shop_id="shop-1")

    tenant_order_id = service.handle_new_order(order_ref)

    assert tenant_order_id == "9001"
    body, tenant_id = fake_gateway.called("post_order")[0]
    assert tenant_id == "77"
    assert "id" not in body["reference"]
    assert body["reference"]["idTenant"] == "77"
    assert body["reference"]["system"]["source"] == "Marketplace"
    order = _order(session_factory, order_ref)
    assert (order.tenant_id, order.tenant_order_id) == ("77", "9001")


def test_already_linked_order_is_not_forwarded_again(service, fake_gateway, order_ref, session_factory):
    with session_factory() as db:
        save_tenant(db, tenant_id="77", shop_id="shop-1")
    service.handle_new_order(order_ref)

    assert service.handle_new_order(order_ref) == "9001"
    assert len(fake_gateway.called("post_order")) == 1


def test_new_order_pushed_to_active_erp(service, fake_erp, order_ref, session_factory):
    _activate_erp(session_factory)

    erp_order_id = service.handle_new_order(order_ref)

    assert erp_order_id == "501"
    token, body = fake_erp.sent[0]
    assert token == "tok"
    assert body["pedido"]["numero_pedido_ecommerce"] == order_ref
    order = _order(session_factory, order_ref)
    assert (order.erp_order_id, order.erp_status) == ("501", "aberto")


def test_inactive_erp_is_not_used(service, fake_erp, order_ref, session_factory):
    with session_factory() as db:
        upsert_system_integration(db, shop_id="shop-1", system_name="tiny", credentials={"token": "tok"})

    assert service.handle_new_order(order_ref) is None
    assert fake_erp.sent == []


def test_forward_failure_is_logged_not_raised(service, fake_gateway, order_ref, session_factory, monkeypatch):
    with session_factory() as db:
        save_tenant(db, tenant_id="77", shop_id="shop-1")

    def down(order, tenant_id):
        raise HubServerError("tenant down")

    monkeypatch.setattr(fake_gateway, "post_order", down)

    assert service.handle_new_order(order_ref) is None
    assert _order(session_factory, order_ref).tenant_id is None


def test_handle_unknown_order(service):
    assert service.handle_new_order("nope") is None



# ---------- 子账号 / ERP 回传 ----------
@pytest.fixture
def tenant_linked(order_ref, fake_gateway, make_order, session_factory) -> str:
    order = _order(session_factory, order_ref)
    with session_factory() as db:
        set_tenant_link(db, order.id, "77", "T1")
    fake_gateway.tenant_orders["T1"] = make_order("T1", "Pending", [("SKU-A", 1)])
    return order_ref


def test_tenant_sync_unlinked_is_ignored(service):
    assert service.sync_from_tenant("77", "unknown", "Approved") is None


def test_tenant_invoice_is_copied_to_main_order(service, fake_gateway, make_order, tenant_linked, session_factory):
    fake_gateway.tenant_orders["T1"] = make_order("T1", "Invoiced", [("SKU-A", 1)])

    result = service.sync_from_tenant("77", "T1", "Invoiced")

    assert fake_gateway.called("fetch_invoice")[0] == ("T1", "tenant:77")
    posted_ref, posted_invoice, posted_scope = fake_gateway.called("post_invoice")[0]
    assert (posted_ref, posted_scope) == (tenant_linked, "global")
    assert posted_invoice.key == "KEY-T1"
    assert result.outcome == OUTCOME_TRANSITIONED
    assert _order(session_factory, tenant_linked).status == "Invoiced"


def test_tenant_plain_status_is_observed(service, fake_gateway, make_order, tenant_linked, session_factory):
    fake_gateway.tenant_orders["T1"] = make_order("T1", "Approved", [("SKU-A", 1)])

    result = service.sync_from_tenant("77", "T1", "Approved")

    assert result.status == "Approved"
    assert fake_gateway.called("post_invoice") == []
    # tenant 已经是 Approved：不回推
    assert fake_gateway.called("put_order_status") == []


def test_erp_status_unknown_raises_value_error(service, order_ref):
    with pytest.raises(ValueError):
        service.sync_from_erp(order_ref, "preparando_envio")


def test_erp_status_for_missing_order(service):
    with pytest.raises(NotFoundError):
        service.sync_from_erp("missing", "aprovado")


# ERP 自己报上来的状态不再推回 ERP
def test_erp_status_is_not_echoed_back(service, fake_erp, order_ref, session_factory):
    _activate_erp(session_factory)
    order = _order(session_factory, order_ref)
    with session_factory() as db:
        set_erp_link(db, order.id, "E1", erp_status="aberto")

    result = service.sync_from_erp(order_ref, "APROVADO")

    assert result.status == "Approved"
    assert fake_erp.status_updates == []
    assert _order(session_factory, order_ref).erp_status == "aprovado"


def test_find_orders_by_shop(service, order_ref):
    assert [o.reference_id for o in service.find_orders_by_shop("shop-1")] == [order_ref]
    assert service.find_orders_by_shop("shop-1", OrderFilter(status="Shipped")) == []
