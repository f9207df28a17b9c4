"""
Product 完整度视图：每次 Product / Variation 变更后重新计算 validation_errors。
只记录缺什么（[{field, conditions}]），不会阻止导入。
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


REQUIRED_PRODUCT_FIELDS: Tuple[str, ...] = (
    "name", "brand", "description", "category", "images",
    "price", "weight", "height", "width", "length",
)

# 子类目名称关键字（小写子串）→ 该类目下每个 Variation 必填的属性
VARIATION_ATTRIBUTES_BY_CATEGORY: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...] = (
    (("moda", "roupa", "vestu", "calçado", "calcado", "fashion", "shoes"), ("size", "color")),
    (("suplemento", "alimento", "bebida", "food", "supplement"), ("flavor",)),
    (("eletro", "eletrônico", "eletronico", "electronic", "appliance"), ("voltage",)),
)


def _get(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def required_variation_attributes(subcategory: Optional[str]) -> Tuple[str, ...]:
    name = (subcategory or "").lower()
    if not name:
        return ()
    for keywords, attrs in VARIATION_ATTRIBUTES_BY_CATEGORY:
        if any(k in name for k in keywords):
            return attrs
    return ()


def compute_validation_errors(product: Any, variations: Iterable[Any]) -> List[Dict[str, Any]]:
    """product / variations 可以是 ORM 对象也可以是 dict。"""
    errors: List[Dict[str, Any]] = []

    for name in REQUIRED_PRODUCT_FIELDS:
        value = _get(product, name)
        if _is_blank(value):
            errors.append({"field": name, "conditions": ["required"]})
        elif name in ("price", "weight", "height", "width", "length") and value <= 0:
            errors.append({"field": name, "conditions": ["positive"]})

    variations = list(variations)
    if not variations:
        errors.append({"field": "variations", "conditions": ["at_least_one"]})

    attrs = required_variation_attributes(_get(product, "subcategory"))
    for attr in attrs:
        missing = [str(_get(v, "source_sku") or i) for i, v in enumerate(variations) if _is_blank(_get(v, attr))]
        if missing:
            errors.append({"field": f"variations.{attr}", "conditions": [f"required:{sku}" for sku in missing]})

    return errors
