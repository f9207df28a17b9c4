"""
Celery 任务的 *_inline 版本：get_container 换成用假网关组装的容器，直接调用。
"""

from __future__ import annotations

import pytest

from marketplace_hub.core.wiring import build_container
from marketplace_hub.orchestration.catalog import catalog_tasks
from marketplace_hub.orchestration.credentials import credential_tasks
from marketplace_hub.orchestration.orders import order_tasks
from marketplace_hub.repository.integration_repo import get_tenant, save_tenant


@pytest.fixture
def container(session_factory, fake_gateway, fake_erp, bus, monkeypatch):
    hub = build_container(session_factory, gateway=fake_gateway, erp_client=fake_erp, bus=bus)
    for module in (order_tasks, catalog_tasks, credential_tasks):
        monkeypatch.setattr(module, "get_container", lambda: hub)
    return hub



# ---------- Orders ----------
def test_poll_orders_inline(container, fake_gateway, make_order):
    fake_gateway.window_orders = [make_order("700", "Approved"), make_order("701", "Pending")]

    summary = order_tasks.poll_orders_inline()

    assert summary["status"] == "ok"
    assert summary["created"] == 2


# 拉列表失败不抛出：返回 failed，下一轮重试
def test_poll_orders_inline_listing_failure(container, fake_gateway):
    fake_gateway.fail_fetch_order = True

    summary = order_tasks.poll_orders_inline()

    assert summary["status"] == "failed"


def test_poll_orders_task_parses_window(container, fake_gateway):
    order_tasks.poll_orders("2026-10-01T00:00:00Z", "2026-10-01T06:00:00Z")

    start, end = fake_gateway.called("fetch_orders_by_window")[0]
    assert (start.hour, end.hour) == (0, 6)


def test_setup_order_webhook_skipped_without_config(container, fake_gateway, monkeypatch):
    monkeypatch.setattr(order_tasks.settings, "HUB_WEBHOOK_CALLBACK_URL", None)

    assert order_tasks.setup_order_webhook_inline()["status"] == "skipped"
    assert fake_gateway.calls == []


def test_setup_order_webhook(container, fake_gateway, monkeypatch):
    monkeypatch.setattr(order_tasks.settings, "HUB_WEBHOOK_CALLBACK_URL", "https://me/api/v1/webhooks/hub/order")
    monkeypatch.setattr(order_tasks.settings, "HUB_WEBHOOK_TOKEN", "s3cret")

    result = order_tasks.setup_order_webhook_inline("7")

    assert result["status"] == "ok"
    assert fake_gateway.called("setup_order_webhook") == [("https://me/api/v1/webhooks/hub/order", "s3cret", "7")]



# ---------- Catalog ----------
def test_sync_all_catalogs_inline(container, fake_gateway, catalog_item, session_factory):
    with session_factory() as db:
        save_tenant(db, tenant_id="7", shop_id="shop-7")
    fake_gateway.catalog_pages[("7", "2", 0)] = [catalog_item("A-1", parent="P1")]

    result = catalog_tasks.sync_all_catalogs_inline()

    assert result["status"] == "ok"
    assert result["created"] == 1
    with session_factory() as db:
        assert get_tenant(db, "7").catalog_offset == 0


def test_sync_all_stock_inline(container, fake_gateway, seed_product, session_factory):
    with session_factory() as db:
        save_tenant(db, tenant_id="7", shop_id="shop-7")
    seed_product("shop-7", "P-A", [("SKU-A", 3)])
    fake_gateway.hub_stock["SKU-A"] = 8

    result = catalog_tasks.sync_all_stock_inline()

    assert result["updated"] == 1



# ---------- Credentials ----------
def test_sweep_credentials_inline(container):
    assert credential_tasks.sweep_credentials_inline() == {"status": "ok", "deleted": 0}
