"""
ERP-A（Tiny）webhook / API 的外部数据结构。
Tiny 的 webhook 统一是 {versao, cnpj, tipo, idEcommerce, dados}，不同类型只差 dados。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ErpModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


def _as_str(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


# ---------- dados ----------
class ErpOrderData(_ErpModel):
    id_pedido_ecommerce: str = Field(alias="idPedidoEcommerce")
    situacao: str
    id_pedido: Optional[str] = Field(None, alias="idPedido")

    _coerce = field_validator("id_pedido_ecommerce", "id_pedido", mode="before")(_as_str)


class ErpStockData(_ErpModel):
    sku_mapeamento: str = Field(alias="skuMapeamento")
    saldo: int
    sku: Optional[str] = None
    tipo_estoque: Optional[str] = Field(None, alias="tipoEstoque")

    _coerce = field_validator("sku_mapeamento", mode="before")(_as_str)

    @field_validator("saldo", mode="before")
    @classmethod
    def _int_saldo(cls, value: Any) -> Any:
        # Tiny 的 saldo 是字符串，例如 "12.0000"
        if isinstance(value, str):
            return int(float(value))
        return value


class ErpPriceData(_ErpModel):
    sku_mapeamento: str = Field(alias="skuMapeamento")
    sku_mapeamento_pai: Optional[str] = Field(None, alias="skuMapeamentoPai")
    preco: Optional[str] = None
    preco_promocional: Optional[str] = Field(None, alias="precoPromocional")

    _coerce = field_validator("sku_mapeamento", "sku_mapeamento_pai", "preco", "preco_promocional", mode="before")(_as_str)


class ErpInvoiceData(_ErpModel):
    id_pedido_ecommerce: str = Field(alias="idPedidoEcommerce")
    chave_acesso: Optional[str] = Field(None, alias="chaveAcesso")
    numero: Optional[str] = None
    serie: Optional[str] = None
    data_emissao: Optional[str] = Field(None, alias="dataEmissao")
    valor_nota: Optional[float] = Field(None, alias="valorNota")
    cfop: Optional[str] = None
    link_acesso: Optional[str] = Field(None, alias="linkAcesso")

    _coerce = field_validator("id_pedido_ecommerce", "numero", "serie", "cfop", mode="before")(_as_str)


class ErpTrackingData(_ErpModel):
    id_pedido_ecommerce: str = Field(alias="idPedidoEcommerce")
    codigo_rastreio: Optional[str] = Field(None, alias="codigoRastreio")
    url_rastreio: Optional[str] = Field(None, alias="urlRastreio")
    forma_frete: Optional[str] = Field(None, alias="formaFrete")
    transportadora: Optional[str] = None
    data_envio: Optional[str] = Field(None, alias="dataEnvio")

    _coerce = field_validator("id_pedido_ecommerce", mode="before")(_as_str)


# ---------- envelopes ----------
class _ErpWebhook(_ErpModel):
    versao: Optional[str] = None
    cnpj: Optional[str] = None
    tipo: Optional[str] = None
    id_ecommerce: Optional[str] = Field(None, alias="idEcommerce")

    _coerce_ecommerce = field_validator("id_ecommerce", mode="before")(_as_str)


class ErpOrderWebhook(_ErpWebhook):
    dados: ErpOrderData


class ErpStockWebhook(_ErpWebhook):
    dados: ErpStockData


class ErpPriceWebhook(_ErpWebhook):
    dados: ErpPriceData


class ErpInvoiceWebhook(_ErpWebhook):
    dados: ErpInvoiceData


class ErpTrackingWebhook(_ErpWebhook):
    dados: ErpTrackingData


# ---------- API ----------
class ErpRetorno(_ErpModel):
    status: str = ""
    status_processamento: Optional[str] = None
    erros: List[Dict[str, Any]] = Field(default_factory=list)
    registros: Any = None

    @property
    def ok(self) -> bool:
        return self.status.upper() == "OK"
