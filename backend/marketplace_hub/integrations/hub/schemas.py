"""
Hub（Aggregator）外部数据结构：只描述对方 JSON 的形状。
  - 字段名用 snake_case，alias 对应 Hub 的 camelCase；
  - extra="allow"：Hub 经常加字段，原样保留，存库时用 model_dump(by_alias=True)；
  - 和内部 Order/Product 的转换全部在 normalizers.py 里做。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _HubModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


def _as_str(value: Any) -> Any:
    # Hub 的 id 有时是 int 有时是 str，统一成 str
    if value is None or isinstance(value, str):
        return value
    return str(value)


# ---------- Orders ----------
class HubOrderStatus(_HubModel):
    status: str
    updated_date: Optional[str] = Field(None, alias="updatedDate")
    active: bool = True
    message: str = ""


class HubOrderReference(_HubModel):
    id: Optional[str] = None
    id_tenant: Optional[str] = Field(None, alias="idTenant")
    system: Dict[str, Any] = Field(default_factory=dict)

    _coerce_ids = field_validator("id", "id_tenant", mode="before")(_as_str)


class HubOrderProduct(_HubModel):
    sku: str
    quantity: int = 0
    price: Optional[float] = None

    _coerce_sku = field_validator("sku", mode="before")(_as_str)


class HubOrder(_HubModel):
    reference: HubOrderReference = Field(default_factory=HubOrderReference)
    status: HubOrderStatus
    products: List[HubOrderProduct] = Field(default_factory=list)
    payment: Dict[str, Any] = Field(default_factory=dict)
    shipping: Dict[str, Any] = Field(default_factory=dict)
    customer: Dict[str, Any] = Field(default_factory=dict)
    created_date: Optional[str] = Field(None, alias="createdDate")

    @property
    def reference_id(self) -> Optional[str]:
        return self.reference.id

    @property
    def status_name(self) -> str:
        return self.status.status


class HubInvoice(_HubModel):
    cfop: Optional[str] = None
    issue_date: Optional[str] = Field(None, alias="issueDate")
    key: Optional[str] = None
    number: Optional[str] = None
    packages: Optional[int] = None
    series: Optional[str] = None
    total_amount: Optional[float] = Field(None, alias="totalAmount")
    xml_reference: Optional[str] = Field(None, alias="xmlReference")

    _coerce = field_validator("number", "series", "cfop", mode="before")(_as_str)


class HubTracking(_HubModel):
    code: Optional[str] = None
    url: Optional[str] = None
    shipping_date: Optional[str] = Field(None, alias="shippingDate")
    shipping_provider: Optional[str] = Field(None, alias="shippingProvider")
    shipping_service: Optional[str] = Field(None, alias="shippingService")


# ---------- Catalog ----------
class HubSkus(_HubModel):
    source: str
    destination: Optional[str] = None

    _coerce = field_validator("source", "destination", mode="before")(_as_str)


class HubCategoryRef(_HubModel):
    code: Optional[str] = None
    name: Optional[str] = None

    _coerce = field_validator("code", mode="before")(_as_str)


class HubCategorization(_HubModel):
    source: Optional[HubCategoryRef] = None


class HubAttribute(_HubModel):
    name: str
    value: Optional[str] = None

    _coerce = field_validator("value", mode="before")(_as_str)


class HubImage(_HubModel):
    url: str


class HubStocks(_HubModel):
    source_stock: int = Field(0, alias="sourceStock")


class HubPrices(_HubModel):
    price_base: Optional[float] = Field(None, alias="priceBase")
    price_sale: Optional[float] = Field(None, alias="priceSale")


class HubDimensions(_HubModel):
    # Hub 单位：m / kg
    height: Optional[float] = None
    width: Optional[float] = None
    length: Optional[float] = None
    weight: Optional[float] = None


class HubDescription(_HubModel):
    source_description: Optional[str] = Field(None, alias="sourceDescription")


class HubCatalogItem(_HubModel):
    skus: HubSkus
    parent_sku: Optional[str] = Field(None, alias="parentSKU")
    name: Optional[str] = None
    brand: Optional[str] = None
    ean: Optional[str] = Field(None, alias="ean13")
    description: HubDescription = Field(default_factory=HubDescription)
    categorization: HubCategorization = Field(default_factory=HubCategorization)
    attributes: List[HubAttribute] = Field(default_factory=list)
    images: List[HubImage] = Field(default_factory=list)
    stocks: HubStocks = Field(default_factory=HubStocks)
    destination_prices: HubPrices = Field(default_factory=HubPrices, alias="destinationPrices")
    dimensions: HubDimensions = Field(default_factory=HubDimensions)

    _coerce = field_validator("parent_sku", "ean", mode="before")(_as_str)

    @field_validator("description", mode="before")
    @classmethod
    def _wrap_plain_description(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"sourceDescription": value}
        return value

    @property
    def source_sku(self) -> str:
        return self.skus.source

    @property
    def group_sku(self) -> str:
        """同一父 SKU 的条目归并为一个 Product；没有父 SKU 的条目自成一个。"""
        return self.parent_sku or self.skus.source

    @property
    def is_categorized(self) -> bool:
        return self.categorization.source is not None


class HubStockLevel(_HubModel):
    available: int = 0
    warehouse_id: Optional[int] = Field(None, alias="warehouseId")


# ---------- Auth ----------
class TokenResponse(_HubModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
