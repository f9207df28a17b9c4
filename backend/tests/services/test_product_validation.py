from __future__ import annotations

import threading

from marketplace_hub.services.product_validation import compute_validation_errors, required_variation_attributes
from marketplace_hub.utils.keyed_lock import KeyedLocks


COMPLETE = {
    "name": "Camiseta", "brand": "Marca", "description": "algodão", "category": "55", "subcategory": "Moda Feminina",
    "images": ["http://img/1.jpg"], "price": 10, "weight": 100, "height": 1, "width": 1, "length": 1,
}


def test_complete_product_has_no_errors():
    assert compute_validation_errors(COMPLETE, [{"source_sku": "A", "size": "M", "color": "Azul"}]) == []


def test_missing_and_non_positive_fields():
    product = dict(COMPLETE, brand="  ", images=[], price=0)

    errors = compute_validation_errors(product, [{"source_sku": "A", "size": "M", "color": "Azul"}])

    assert {"field": "brand", "conditions": ["required"]} in errors
    assert {"field": "images", "conditions": ["required"]} in errors
    assert {"field": "price", "conditions": ["positive"]} in errors


def test_category_driven_variation_attributes():
    errors = compute_validation_errors(COMPLETE, [{"source_sku": "A", "size": "M"}, {"source_sku": "B", "color": "X"}])

    assert errors == [
        {"field": "variations.size", "conditions": ["required:B"]},
        {"field": "variations.color", "conditions": ["required:A"]},
    ]


def test_no_variations():
    assert {"field": "variations", "conditions": ["at_least_one"]} in compute_validation_errors(COMPLETE, [])


def test_required_attributes_by_subcategory():
    assert required_variation_attributes("Suplementos") == ("flavor",)
    assert required_variation_attributes("Eletrodomésticos") == ("voltage",)
    assert required_variation_attributes("Livros") == ()
    assert required_variation_attributes(None) == ()



# ---------- KeyedLocks ----------
def test_idle_keys_are_released():
    locks = KeyedLocks()

    with locks.hold("SKU-A"):
        with locks.hold("SKU-B"):
            assert len(locks) == 2
        assert len(locks) == 1

    assert len(locks) == 0


def test_released_key_can_be_held_again():
    locks = KeyedLocks()

    for sku in ("SKU-A", "SKU-A", "SKU-B"):
        with locks.hold(sku):
            pass

    assert len(locks) == 0


# 多线程争用同一个 key：串行执行，全部退出后不留下条目
def test_hold_serializes_same_key():
    locks = KeyedLocks()
    counter = {"value": 0}

    def bump():
        for _ in range(200):
            with locks.hold("SKU-A"):
                current = counter["value"]
                counter["value"] = current + 1

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert counter["value"] == 800
    assert len(locks) == 0
