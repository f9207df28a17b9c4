from __future__ import annotations

from datetime import datetime, timezone

import pytest

from marketplace_hub.integrations.hub.auth import HubAuthAPI, LoginCredentials
from marketplace_hub.integrations.hub.errors import HubAuthError, HubPayloadError
from marketplace_hub.integrations.hub.gateway import HubGateway
from marketplace_hub.integrations.hub.http_client import HubHttpClient
from marketplace_hub.integrations.hub.schemas import HubInvoice


ORDER = {
    "reference": {"id": 100, "idTenant": 5, "system": {"source": "Marketplace"}},
    "status": {"status": "Approved", "updatedDate": "2026-10-01T10:00:00Z", "active": True, "message": ""},
    "products": [{"sku": 123, "quantity": 2, "price": 10.5}],
    "createdDate": "2026-10-01T09:00:00Z",
    "somethingNew": {"kept": True},
}


@pytest.fixture
def http(stub_session, stub_tokens) -> HubHttpClient:
    return HubHttpClient(base_url="https://hub.test", rate_limit_per_min=6000, max_attempts=2,
                         token_provider=stub_tokens, session=stub_session, backoff_base_sec=0)


@pytest.fixture
def gateway(http) -> HubGateway:
    return HubGateway(http, marketplace="Marketplace", sales_channel="1", page_limit=10)



# ---------- Orders ----------
def test_fetch_order_coerces_ids_and_keeps_extra_fields(gateway, stub_session):
    stub_session.add(200, ORDER)

    order = gateway.fetch_order("100")

    assert stub_session.requests[0]["url"] == "https://hub.test/Orders/100"
    assert order.reference_id == "100"
    assert order.status_name == "Approved"
    assert order.products[0].sku == "123"
    assert order.model_extra["somethingNew"] == {"kept": True}


def test_fetch_orders_by_window(gateway, stub_session):
    stub_session.add(200, {"response": [ORDER, ORDER]})
    start = datetime(2026, 10, 1, 0, 0, tzinfo=timezone.utc)
    end = datetime(2026, 10, 1, 6, 30, tzinfo=timezone.utc)

    orders = gateway.fetch_orders_by_window(start, end)

    assert len(orders) == 2
    params = stub_session.requests[0]["params"]
    assert params["purchaseFrom"] == "2026-10-01T00:00:00Z"
    assert params["purchaseTo"] == "2026-10-01T06:30:00Z"


def test_malformed_order_is_payload_error(gateway, stub_session):
    stub_session.add(200, {"reference": {"id": "1"}})

    with pytest.raises(HubPayloadError):
        gateway.fetch_order("1")


def test_post_invoice_uses_camel_case(gateway, stub_session):
    stub_session.add(200)
    invoice = HubInvoice(key="NFE", number=10, series=1, issue_date="2026-10-01", total_amount=20.0)

    returned = gateway.post_invoice("100", invoice, scope="tenant:7")

    sent = stub_session.requests[0]
    assert sent["method"] == "POST"
    assert sent["json"] == {"key": "NFE", "number": "10", "series": "1", "issueDate": "2026-10-01", "totalAmount": 20.0}
    assert returned is invoice


def test_put_order_status_payload(gateway, stub_session):
    stub_session.add(204)

    gateway.put_order_status("100", "Canceled")

    body = stub_session.requests[0]["json"]
    assert body["status"] == "Canceled"
    assert body["active"] is True


def test_post_order_uses_tenant_scope(gateway, stub_session, stub_tokens):
    created = dict(ORDER, reference={"id": "T-9", "idTenant": "7"})
    stub_session.add(200, created)

    result = gateway.post_order({"reference": {"idTenant": "7"}}, "7")

    assert result.reference_id == "T-9"
    assert stub_session.requests[0]["url"] == "https://hub.test/Orders"



# ---------- Catalog / inventory ----------
def test_catalog_page_params(gateway, stub_session):
    stub_session.add(200, [{"skus": {"source": "A-1"}, "parentSKU": "P1", "description": "plain text"}])

    items = gateway.fetch_catalog_page("7", "2", 30)

    sent = stub_session.requests[0]
    assert sent["url"] == "https://hub.test/catalog/product/Marketplace/7"
    assert sent["params"]["idProductStatus"] == "2"
    assert sent["params"]["offset"] == 30
    assert sent["params"]["limit"] == 10
    assert items[0].group_sku == "P1"
    assert items[0].description.source_description == "plain text"
    assert not items[0].is_categorized


def test_catalog_page_other_status_has_no_limit(gateway, stub_session):
    stub_session.add(200, [])

    assert gateway.fetch_catalog_page("7", "3") == []
    assert "limit" not in stub_session.requests[0]["params"]


# 坏行只跳过自己，同页其余条目照常返回
def test_catalog_page_skips_invalid_rows(gateway, stub_session):
    stub_session.add(200, [
        {"skus": {"source": "A-1"}},
        {"skus": {"source": "A-2"}, "stocks": {"sourceStock": "lots"}},
        {"name": "no skus at all"},
        "garbage",
        {"skus": {"source": "A-3"}, "parentSKU": "P3"},
    ])

    items = gateway.fetch_catalog_page("7", "2", 0)

    assert [item.source_sku for item in items] == ["A-1", "A-3"]
    assert items[1].group_sku == "P3"


def test_fetch_stock(gateway, stub_session):
    stub_session.add(200, [{"available": 12, "warehouseId": 0}]).add(200, [])

    assert gateway.fetch_stock("SKU-A") == 12
    assert gateway.fetch_stock("SKU-B") is None


def test_put_price_payload(gateway, stub_session):
    stub_session.add(200)

    gateway.put_price("SKU-A", "79.9", None, scope="tenant:7")

    assert stub_session.requests[0]["json"] == {"base": 79.9, "sale": None}


def test_map_skus(gateway, stub_session):
    stub_session.add(200)

    assert gateway.map_skus([("A-1", "v-1")], scope="tenant:7")
    assert gateway.map_skus([]) is True

    assert len(stub_session.requests) == 1
    assert stub_session.requests[0]["url"] == "https://hub.test/catalog/product/mapsku/1"
    assert stub_session.requests[0]["json"] == [{"sourceSKU": "A-1", "destinationSKU": "v-1"}]


# 已注册过时 POST 被拒，改用 PUT 覆盖
def test_setup_order_webhook_falls_back_to_put(gateway, stub_session):
    stub_session.add(400, text="already exists").add(200, {"ok": True})

    assert gateway.setup_order_webhook("https://me/webhooks/hub/order", "secret", "7") == {"ok": True}

    methods = [r["method"] for r in stub_session.requests]
    assert methods == ["POST", "PUT"]
    body = stub_session.requests[1]["json"]
    assert body["idTenant"] == 7
    assert {"key": "URL_ERPOrdersNotification", "value": "https://me/webhooks/hub/order"} in body["apiKeys"]



# ---------- OAuth ----------
def test_login_success(http, stub_session):
    stub_session.add(200, {"access_token": "abc", "refresh_token": "r", "expires_in": 7200})
    auth = HubAuthAPI(http, client_id="cid", client_secret="secret")

    token = auth.login("global", LoginCredentials("user", "pass", "inventory orders"))

    assert token.access_token == "abc"
    sent = stub_session.requests[0]
    assert sent["url"] == "https://hub.test/oauth2/login"
    assert sent["json"]["grant_type"] == "password"
    assert "access_token" not in sent["params"]


def test_refresh_rejected_is_auth_error(http, stub_session):
    stub_session.add(400, text="invalid_grant")
    auth = HubAuthAPI(http, client_id="cid", client_secret="secret")

    with pytest.raises(HubAuthError):
        auth.refresh("global", "old-refresh")
    assert stub_session.requests[0]["json"]["grant_type"] == "refresh_token"


def test_login_response_without_token(http, stub_session):
    stub_session.add(200, {"token_type": "bearer"})
    auth = HubAuthAPI(http, client_id="cid", client_secret="secret")

    with pytest.raises(HubAuthError):
        auth.login("global", LoginCredentials("user", "pass", "orders"))
