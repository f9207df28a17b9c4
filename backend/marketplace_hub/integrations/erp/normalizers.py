"""
渠道（Hub）状态 ↔ ERP-A（Tiny）状态，以及 Hub 订单 → Tiny pedido 的纯函数映射。
两边词汇表不同：Hub 的 Delivered 在 Tiny 里就是 entregue（Completed 同样映射到 entregue）。
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from marketplace_hub.integrations.erp.schemas import ErpInvoiceData, ErpTrackingData
from marketplace_hub.integrations.hub.schemas import HubInvoice, HubTracking


ORDER_STATUS_TO_ERP: Dict[str, str] = {
    "Pending": "aberto",
    "Approved": "aprovado",
    "Invoiced": "faturado",
    "Shipped": "enviado",
    "Delivered": "entregue",
    "Canceled": "cancelado",
    "Completed": "entregue",
}

ORDER_STATUS_FROM_ERP: Dict[str, str] = {
    "aberto": "Pending",
    "aprovado": "Approved",
    "faturado": "Invoiced",
    "enviado": "Shipped",
    "entregue": "Delivered",
    "cancelado": "Canceled",
}


def erp_status_for(status: str) -> Optional[str]:
    return ORDER_STATUS_TO_ERP.get(status)


def channel_status_from_erp(situacao: str) -> Optional[str]:
    return ORDER_STATUS_FROM_ERP.get((situacao or "").strip().lower())


def _tiny_date(value: Optional[str]) -> str:
    # Tiny 只认 dd/mm/yyyy
    if value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%d/%m/%Y")
        except ValueError:
            pass
    return datetime.now().strftime("%d/%m/%Y")


def order_to_erp_payload(order: Dict[str, Any], status: str) -> Dict[str, Any]:
    """Hub 订单 payload（camelCase dict）→ pedido.incluir.php 的 body。"""
    reference = order.get("reference") or {}
    customer = order.get("customer") or {}
    shipping = order.get("shipping") or {}
    address = shipping.get("address") or {}
    payment = order.get("payment") or {}

    itens = [
        {
            "item": {
                "codigo": str(p.get("sku")),
                "descricao": p.get("name") or str(p.get("sku")),
                "unidade": "UN",
                "quantidade": p.get("quantity") or 0,
                "valor_unitario": p.get("price") or 0,
            }
        }
        for p in order.get("products") or []
    ]

    return {
        "pedido": {
            "data_pedido": _tiny_date(order.get("createdDate")),
            "cliente": {
                "nome": customer.get("name") or "",
                "cpf_cnpj": customer.get("documentNumber") or "",
                "email": customer.get("email") or "",
                "fone": customer.get("telephone") or "",
            },
            "endereco_entrega": {
                "endereco": address.get("street") or "",
                "numero": address.get("number") or "",
                "complemento": address.get("additionalInfo") or "",
                "bairro": address.get("neighborhood") or "",
                "cep": address.get("zipCode") or "",
                "cidade": address.get("city") or "",
                "uf": address.get("state") or "",
            },
            "itens": itens,
            "nome_transportador": shipping.get("provider") or "",
            "forma_frete": shipping.get("service") or "",
            "valor_frete": shipping.get("price") or 0,
            "valor_desconto": payment.get("totalDiscount") or 0,
            "numero_pedido_ecommerce": str(reference.get("id") or ""),
            "situacao": erp_status_for(status) or "aberto",
        }
    }


def invoice_from_erp(dados: ErpInvoiceData) -> HubInvoice:
    return HubInvoice(
        cfop=dados.cfop,
        issue_date=dados.data_emissao,
        key=dados.chave_acesso,
        number=dados.numero,
        packages=1,
        series=dados.serie,
        total_amount=dados.valor_nota,
        xml_reference=dados.link_acesso,
    )


def tracking_from_erp(dados: ErpTrackingData) -> HubTracking:
    return HubTracking(
        code=dados.codigo_rastreio,
        url=dados.url_rastreio,
        shipping_date=dados.data_envio,
        shipping_provider=dados.transportadora or dados.forma_frete,
        shipping_service=dados.forma_frete,
    )
