# ERP-A（Tiny）webhook：订单状态 / 库存 / 价格 / 发票 / 物流

from __future__ import annotations
import logging

from fastapi import APIRouter, Depends, HTTPException

from marketplace_hub.api.deps import get_hub
from marketplace_hub.core.errors import CredentialError, NotFoundError, TransportError
from marketplace_hub.core.wiring import HubContainer
from marketplace_hub.db.session import session_scope
from marketplace_hub.integrations.erp.normalizers import invoice_from_erp, tracking_from_erp
from marketplace_hub.integrations.erp.schemas import (
    ErpInvoiceWebhook, ErpOrderWebhook, ErpPriceWebhook, ErpStockWebhook, ErpTrackingWebhook,
)
from marketplace_hub.repository.product_repo import find_variation_by_sku

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/erp", tags=["webhooks.erp"])


def _variation_for(hub: HubContainer, sku: str):
    """Tiny 的 skuMapeamento 就是我们绑定给它的 SKU（variation id / mapping_id / source sku 之一）。"""
    with session_scope(hub.session_factory) as db:
        variation = find_variation_by_sku(db, sku)
    if variation is None:
        raise HTTPException(status_code=404, detail=f"unknown sku {sku}")
    return variation



'''
订单状态：situacao（ERP 词汇）→ 渠道状态，作为 source=erp-webhook 的一次观测
'''
@router.post("/order")
def erp_order_webhook(body: ErpOrderWebhook, hub: HubContainer = Depends(get_hub)):
    dados = body.dados
    try:
        result = hub.orders.sync_from_erp(dados.id_pedido_ecommerce, dados.situacao)
    except ValueError:
        # ERP 有些中间状态（em aberto / preparando envio ...）渠道侧没有对应，直接忽略
        logger.info("webhook.erp.order ignored ref=%s situacao=%s", dados.id_pedido_ecommerce, dados.situacao)
        return {"status": "ignored", "reason": f"unmapped situacao {dados.situacao}"}
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (TransportError, CredentialError) as e:
        raise HTTPException(status_code=503, detail="order state unavailable, retry later") from e
    return {"status": "ok", "outcome": result.outcome, "order_status": result.status}



@router.post("/stock")
def erp_stock_webhook(body: ErpStockWebhook, hub: HubContainer = Depends(get_hub)):
    variation = _variation_for(hub, body.dados.sku_mapeamento)
    updated = hub.catalog.apply_stock_update(variation.id, body.dados.saldo, origin="erp")
    return {"status": "ok", "variation_id": str(updated.id), "stock": updated.stock}



@router.post("/price")
def erp_price_webhook(body: ErpPriceWebhook, hub: HubContainer = Depends(get_hub)):
    variation = _variation_for(hub, body.dados.sku_mapeamento)
    product = hub.catalog.apply_price_update(
        variation.product_id, body.dados.preco, body.dados.preco_promocional, origin="erp"
    )
    return {"status": "ok", "product_id": str(product.id)}



'''
发票 / 物流：先交给 Hub，再观测 Invoiced / Shipped
'''
@router.post("/invoice")
def erp_invoice_webhook(body: ErpInvoiceWebhook, hub: HubContainer = Depends(get_hub)):
    ref = body.dados.id_pedido_ecommerce
    try:
        result = hub.orders.submit_invoice(ref, invoice_from_erp(body.dados), source="erp-webhook")
    except (TransportError, CredentialError) as e:
        logger.warning("webhook.erp.invoice failed ref=%s err=%s", ref, e)
        raise HTTPException(status_code=503, detail="invoice not accepted, retry later") from e
    return {"status": "ok", "outcome": result.outcome}


@router.post("/tracking")
def erp_tracking_webhook(body: ErpTrackingWebhook, hub: HubContainer = Depends(get_hub)):
    ref = body.dados.id_pedido_ecommerce
    try:
        result = hub.orders.submit_tracking(ref, tracking_from_erp(body.dados), source="erp-webhook")
    except (TransportError, CredentialError) as e:
        logger.warning("webhook.erp.tracking failed ref=%s err=%s", ref, e)
        raise HTTPException(status_code=503, detail="tracking not accepted, retry later") from e
    return {"status": "ok", "outcome": result.outcome}
