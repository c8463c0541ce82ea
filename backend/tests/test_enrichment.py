import json
from decimal import Decimal

import pytest

from backend.app.enrichment import (
    EnrichmentEngine,
    InfrastructureFailure,
    MalformedRecord,
    NotFound,
    parse_line_items,
)
from backend.app.prescription import PRESCRIPTION_FIELDS
from backend.tests.fakes import FakeParties, FakeProducts, FakeStore


PRODUCTS = [
    {"id": 1, "name": "Lens A", "price": Decimal("450.00")},
    {"id": 10, "name": "Frame Classic", "price": Decimal("1200.00")},
    {"id": 20, "name": "Cleaning Kit", "price": Decimal("0")},
]

CUSTOMERS = [
    {
        "id": 7,
        "name": "Asha",
        "phone": "9800000001",
        "left_eye_dv_spherical": "-1.25",
        "left_eye_dv_cylindrical": "-0.50",
        "left_eye_dv_axis": "180",
        "left_eye_dv_vn": "6/6",
        "left_eye_nv_spherical": "+0.75",
        "left_eye_nv_cylindrical": None,
        "left_eye_nv_axis": None,
        "left_eye_nv_vn": "N6",
        "right_eye_dv_spherical": "-2.00",
        "right_eye_dv_cylindrical": "-0.75",
        "right_eye_dv_axis": "90",
        "right_eye_dv_vn": "6/9",
        "right_eye_nv_spherical": "+1.00",
        "right_eye_nv_cylindrical": None,
        "right_eye_nv_axis": None,
        "right_eye_nv_vn": "N8",
        "left_eye_addition": "+1.50",
        "right_eye_addition": "+1.75",
    },
]

SUPPLIERS = [{"id": 3, "name": "Vision Wholesale", "phone": "9800000099"}]


def _sale(sale_id, customer_id, items, **extra):
    blob = items if isinstance(items, str) or items is None else json.dumps(items)
    return {
        "sale_id": sale_id,
        "created_at": "2026-10-01T10:00:00+00:00",
        "customer_id": customer_id,
        "product_details": blob,
        "order_discount": Decimal("0"),
        "paid": Decimal("100"),
        "payment_method": "Cash",
        **extra,
    }


def _engine(products=None, customers=None, suppliers=None, store=None, **kw):
    return EnrichmentEngine(
        products=products or FakeProducts(PRODUCTS),
        customers=customers or FakeParties(CUSTOMERS),
        suppliers=suppliers or FakeParties(SUPPLIERS),
        store=store,
        **kw,
    )


def test_enrich_list_preserves_length_and_order():
    sales = [
        _sale("s-3", 7, [{"product_id": 10}]),
        _sale("s-1", 7, [{"product_id": 1}]),
        _sale("s-2", 99, []),
    ]
    out = _engine().enrich_list(sales, "customer")
    assert [r["sale_id"] for r in out] == ["s-3", "s-1", "s-2"]
    assert len(out) == len(sales)


def test_missing_product_joins_as_unknown():
    sales = [_sale("s-1", 7, [{"product_id": 1}, {"product_id": 2}])]
    out = _engine().enrich_list(sales, "customer")
    assert out[0]["product_names"] == "Lens A, Unknown"
    assert [it["product_name"] for it in out[0]["product_details"]] == ["Lens A", "Unknown"]


def test_duplicate_items_keep_duplicate_names_and_pass_through_fields():
    sales = [_sale("s-1", 7, [{"product_id": 1, "quantity": 2, "price": 400}, {"product_id": "1", "quantity": 1}])]
    out = _engine().enrich_list(sales, "customer")
    assert out[0]["product_names"] == "Lens A, Lens A"
    first = out[0]["product_details"][0]
    assert first["quantity"] == 2
    assert first["price"] == 400
    assert "product_price" not in first


def test_unknown_counterparty_falls_back():
    sales = [_sale("s-1", 404, [{"product_id": 1}])]
    out = _engine().enrich_list(sales, "customer")
    assert out[0]["customer_name"] == "Unknown"
    assert out[0]["customer_phone"] == "Unknown"


def test_empty_or_missing_blob_enriches_to_nothing():
    sales = [_sale("s-1", 7, None), _sale("s-2", 7, ""), _sale("s-3", 7, "[]"), _sale("s-4", 7, "null")]
    products = FakeProducts(PRODUCTS)
    out = _engine(products=products).enrich_list(sales, "customer")
    for rec in out:
        assert rec["product_details"] == []
        assert rec["product_names"] == ""
        assert "line_items_error" not in rec
    assert products.calls == []


def test_product_lookup_is_issued_once_for_deduplicated_ids():
    sales = [
        _sale("a", 7, [{"product_id": 10}, {"product_id": 20}]),
        _sale("b", 7, [{"product_id": 10}]),
    ]
    products = FakeProducts(PRODUCTS)
    customers = FakeParties(CUSTOMERS)
    out = _engine(products=products, customers=customers).enrich_list(sales, "customer")

    assert len(products.calls) == 1
    assert sorted(products.calls[0]) == ["10", "20"]
    assert customers.many_calls == [["7"]]
    assert out[0]["product_names"] == "Frame Classic, Cleaning Kit"
    assert out[1]["product_names"] == "Frame Classic"


def test_sequential_lookups_give_same_result():
    sales = [_sale("a", 7, [{"product_id": 10}, {"product_id": 5}])]
    concurrent = _engine().enrich_list(sales, "customer")
    sequential = _engine(concurrent_lookups=False).enrich_list(sales, "customer")
    assert concurrent == sequential


def test_malformed_blob_is_contained_to_one_transaction():
    sales = [
        _sale("ok-1", 7, [{"product_id": 1}]),
        _sale("bad", 7, "{not json"),
        _sale("bad-shape", 7, '{"product_id": 1}'),
        _sale("ok-2", 7, [{"product_id": 10}]),
    ]
    out = _engine().enrich_list(sales, "customer")
    assert [r["sale_id"] for r in out] == ["ok-1", "bad", "bad-shape", "ok-2"]
    assert out[1]["product_names"] == ""
    assert out[1]["product_details"] == []
    assert out[1]["line_items_error"] == "malformed"
    assert out[2]["line_items_error"] == "malformed"
    assert out[0]["product_names"] == "Lens A"
    assert out[3]["product_names"] == "Frame Classic"
    # The malformed record still resolves its customer.
    assert out[1]["customer_name"] == "Asha"


def test_product_lookup_failure_aborts_batch():
    sales = [_sale("s-1", 7, [{"product_id": 1}])]
    with pytest.raises(InfrastructureFailure):
        _engine(products=FakeProducts(PRODUCTS, fail=True)).enrich_list(sales, "customer")


def test_counterparty_lookup_failure_aborts_batch():
    sales = [_sale("s-1", 7, [{"product_id": 1}])]
    with pytest.raises(InfrastructureFailure):
        _engine(customers=FakeParties(CUSTOMERS, fail=True)).enrich_list(sales, "customer")


def test_purchase_list_resolves_supplier_fields():
    purchases = [
        {
            "purchase_id": "p-1",
            "created_at": "2026-10-01T09:00:00+00:00",
            "supplier_id": 3,
            "product_details": json.dumps([{"product_id": 10, "quantity": 5}]),
            "order_discount": Decimal("0"),
            "paid": Decimal("5000"),
            "payment_method": "UPI",
        }
    ]
    out = _engine().enrich_list(purchases, "supplier")
    assert out[0]["supplier_name"] == "Vision Wholesale"
    assert out[0]["supplier_phone"] == "9800000099"
    assert out[0]["product_names"] == "Frame Classic"
    assert "customer_name" not in out[0]


def test_enrich_one_surfaces_prices_and_both_eyes():
    sale = _sale("s-1", 7, [{"product_id": 10}, {"product_id": 20}, {"product_id": 77}])
    customers = FakeParties(CUSTOMERS)
    out = _engine(customers=customers).enrich_one(sale, "customer")

    prices = [it["product_price"] for it in out["product_details"]]
    assert prices == [Decimal("1200.00"), Decimal("0"), "Unknown"]
    assert out["product_details"][2]["product_name"] == "Unknown"
    assert out["customer_name"] == "Asha"
    assert customers.one_calls == ["7"]
    assert customers.many_calls == []

    for f in PRESCRIPTION_FIELDS:
        assert f in out
    assert out["left_eye_dv_spherical"] == "-1.25"
    assert out["right_eye_dv_spherical"] == "-2.00"
    assert out["left_eye_addition"] == "+1.50"
    assert out["right_eye_addition"] == "+1.75"
    assert out["right_eye_nv_vn"] == "N8"


def test_enrich_one_unknown_customer_has_empty_prescription():
    sale = _sale("s-1", 404, [{"product_id": 1}])
    out = _engine().enrich_one(sale, "customer")
    assert out["customer_name"] == "Unknown"
    assert all(out[f] is None for f in PRESCRIPTION_FIELDS)


def test_enrich_one_supplier_has_no_prescription():
    purchase = {
        "purchase_id": "p-1",
        "supplier_id": 3,
        "product_details": json.dumps([{"product_id": 1}]),
    }
    out = _engine().enrich_one(purchase, "supplier")
    assert out["supplier_name"] == "Vision Wholesale"
    assert out["product_details"][0]["product_price"] == Decimal("450.00")
    assert "left_eye_addition" not in out


def test_enrich_one_malformed_blob_keeps_record():
    sale = _sale("bad", 7, "{not json")
    out = _engine().enrich_one(sale, "customer")
    assert out["product_details"] == []
    assert out["line_items_error"] == "malformed"
    assert out["customer_name"] == "Asha"
    assert out["left_eye_dv_spherical"] == "-1.25"


def test_enrich_one_counterparty_failure_raises():
    sale = _sale("s-1", 7, [{"product_id": 1}])
    with pytest.raises(InfrastructureFailure):
        _engine(customers=FakeParties(CUSTOMERS, fail=True)).enrich_one(sale, "customer")


def test_get_sale_detail_not_found_is_distinct_from_failure():
    engine = _engine(store=FakeStore(sales=[_sale("s-1", 7, [])]))
    with pytest.raises(NotFound) as exc_info:
        engine.get_sale_detail("missing")
    assert not isinstance(exc_info.value, InfrastructureFailure)
    assert str(exc_info.value) == "sale not found"

    with pytest.raises(NotFound):
        engine.get_sale_detail("   ")

    broken = _engine(store=FakeStore(fail=True))
    with pytest.raises(InfrastructureFailure):
        broken.get_sale_detail("s-1")


def test_get_purchase_detail_not_found():
    engine = _engine(store=FakeStore())
    with pytest.raises(NotFound) as exc_info:
        engine.get_purchase_detail("p-404")
    assert str(exc_info.value) == "purchase not found"


def test_list_sales_report_reads_store_and_enriches():
    store = FakeStore(sales=[_sale("s-2", 7, [{"product_id": 1}]), _sale("s-1", 7, [])])
    out = _engine(store=store).list_sales_report()
    assert [r["sale_id"] for r in out] == ["s-2", "s-1"]
    assert out[0]["product_names"] == "Lens A"


def test_parse_line_items_accepts_decoded_json():
    assert parse_line_items([{"product_id": 1}]) == [{"product_id": 1}]
    assert parse_line_items(b'[{"product_id": 2}]') == [{"product_id": 2}]
    with pytest.raises(MalformedRecord):
        parse_line_items("[1, 2]", "s-1")
