from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from marketplace_hub.integrations.erp.normalizers import (
    channel_status_from_erp, erp_status_for, invoice_from_erp, order_to_erp_payload,
)
from marketplace_hub.integrations.erp.schemas import ErpInvoiceWebhook, ErpStockWebhook
from marketplace_hub.integrations.hub.normalizers import (
    build_tenant_order_payload, catalog_item_to_product, derive_variation, token_response_to_credential,
)
from marketplace_hub.integrations.hub.schemas import HubCatalogItem, TokenResponse
from marketplace_hub.utils.clock import hub_timestamp, parse_hub_timestamp


def test_tenant_payload_drops_reference_id():
    order = {"reference": {"id": "100", "idTenant": "1", "system": {"source": "Other"}}, "products": []}

    body = build_tenant_order_payload(order, "77", source="Marketplace")

    assert body["reference"] == {"idTenant": "77", "system": {"source": "Marketplace"}}
    # 原订单不被修改
    assert order["reference"]["id"] == "100"


def test_derive_variation_reads_attributes_by_keyword():
    item = HubCatalogItem.model_validate({
        "skus": {"source": "A-1", "destination": ""},
        "attributes": [
            {"name": "Tamanho", "value": "M"},
            {"name": "Cor Principal", "value": "Azul"},
            {"name": "Voltagem", "value": 220},
            {"name": "Material", "value": "Algodão"},
        ],
        "stocks": {"sourceStock": 4},
    })

    variation = derive_variation(item)

    assert variation == {
        "source_sku": "A-1", "mapping_id": None, "stock": 4, "size": "M", "color": "Azul", "voltage": "220",
    }


def test_catalog_item_units_are_converted():
    item = HubCatalogItem.model_validate({
        "skus": {"source": "A-1"},
        "parentSKU": "P1",
        "destinationPrices": {"priceBase": 10, "priceSale": 8.5},
        "dimensions": {"height": 0.25, "width": 0.1, "length": 1, "weight": 0.75},
        "categorization": {"source": {"code": 55, "name": "Moda"}},
    })

    product = catalog_item_to_product(item, "shop-1")

    assert product["sku"] == "P1"
    assert product["category"] == "55"
    assert product["price_discounted"] == Decimal("8.50")
    assert product["height"] == Decimal("25.000")
    assert product["weight"] == Decimal("750.000")


def test_token_without_expiry_uses_fallback():
    issued = datetime(2026, 10, 1, tzinfo=timezone.utc)

    fields = token_response_to_credential(TokenResponse(access_token="a", expires_in=0), issued_at=issued, ttl_fallback_sec=60)

    assert fields["expires_in"] == 60
    assert fields["issued_at"] == issued



# ---------- ERP 词汇 ----------
@pytest.mark.parametrize(
    "status, situacao",
    [("Pending", "aberto"), ("Approved", "aprovado"), ("Invoiced", "faturado"), ("Shipped", "enviado"),
     ("Delivered", "entregue"), ("Canceled", "cancelado"), ("Completed", "entregue")],
)
def test_status_to_erp(status, situacao):
    assert erp_status_for(status) == situacao


def test_status_from_erp():
    assert channel_status_from_erp(" Entregue ") == "Delivered"
    assert channel_status_from_erp("preparando_envio") is None


def test_order_to_erp_payload():
    order = {
        "reference": {"id": "100"},
        "createdDate": "2026-10-01T09:00:00Z",
        "customer": {"name": "Ana", "documentNumber": "123"},
        "shipping": {"provider": "Correios", "address": {"city": "Recife", "state": "PE"}},
        "products": [{"sku": "SKU-A", "quantity": 2, "price": 10}],
    }

    pedido = order_to_erp_payload(order, "Approved")["pedido"]

    assert pedido["data_pedido"] == "01/10/2026"
    assert pedido["situacao"] == "aprovado"
    assert pedido["numero_pedido_ecommerce"] == "100"
    assert pedido["endereco_entrega"]["uf"] == "PE"
    assert pedido["itens"][0]["item"]["quantidade"] == 2


def test_erp_webhooks_parse():
    stock = ErpStockWebhook.model_validate({
        "versao": "1.0.0", "cnpj": "1", "tipo": "estoque", "idEcommerce": 9,
        "dados": {"skuMapeamento": 555, "saldo": "12.0000"},
    })
    invoice = ErpInvoiceWebhook.model_validate({
        "tipo": "nota_fiscal", "dados": {"idPedidoEcommerce": 100, "chaveAcesso": "KEY", "numero": 7, "serie": 1},
    })

    assert stock.dados.sku_mapeamento == "555"
    assert stock.dados.saldo == 12
    hub_invoice = invoice_from_erp(invoice.dados)
    assert (hub_invoice.key, hub_invoice.number, hub_invoice.series) == ("KEY", "7", "1")



# ---------- 时间 ----------
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2026-10-01T10:00:00Z", datetime(2026, 10, 1, 10, 0, tzinfo=timezone.utc)),
        ("2026-10-01T10:00:00.123Z", datetime(2026, 10, 1, 10, 0, 0, 123000, tzinfo=timezone.utc)),
        ("2026-10-01T07:00:00-03:00", datetime(2026, 10, 1, 10, 0, tzinfo=timezone.utc)),
        ("not a date", None),
        (None, None),
    ],
)
def test_parse_hub_timestamp(raw, expected):
    assert parse_hub_timestamp(raw) == expected


def test_hub_timestamp_is_utc():
    assert hub_timestamp(datetime(2026, 10, 1, 7, 0)) == "2026-10-01T07:00:00Z"
