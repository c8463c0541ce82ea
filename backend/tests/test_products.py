import io
from contextlib import contextmanager
from decimal import Decimal

import pytest
from fastapi import HTTPException, UploadFile
from starlette.datastructures import Headers

from backend.app.routers import products as products_router
from backend.tests.fakes import DummyConn, DummyCursor, patch_db


def _upload(data=b"\x89PNG...", content_type="image/png", filename="frame.png"):
    return UploadFile(file=io.BytesIO(data), filename=filename, headers=Headers({"content-type": content_type}))


def _patch_storage(monkeypatch, url="https://media.example/products/abc.png", fail=False):
    uploads = []

    def fake_upload(*, data, content_type):
        uploads.append((data, content_type))
        if fail:
            raise RuntimeError("endpoint unreachable")
        return url

    monkeypatch.setattr(products_router, "s3_enabled", lambda: True)
    monkeypatch.setattr(products_router, "upload_product_image", fake_upload)
    return uploads


def test_create_product_requires_image(monkeypatch):
    patch_db(monkeypatch, products_router)
    with pytest.raises(HTTPException) as exc_info:
        products_router.create_product(name="Frame", price=Decimal("10"), stock=1, product_code=None, image=None)
    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "no image uploaded"


def test_create_product_uploads_then_inserts(monkeypatch):
    uploads = _patch_storage(monkeypatch)
    cur = patch_db(monkeypatch, products_router, [[{"id": 12}]])
    out = products_router.create_product(
        name=" Frame Classic ",
        price=Decimal("1200"),
        stock=4,
        product_code=" 8901234567890 ",
        image=_upload(),
    )
    assert out == {"id": 12, "image_url": "https://media.example/products/abc.png"}
    assert uploads == [(b"\x89PNG...", "image/png")]
    _, params = cur.executed[0]
    assert params == (1, "Frame Classic", Decimal("1200"), 4, "8901234567890", "https://media.example/products/abc.png")


def test_create_product_upload_failure_is_502(monkeypatch):
    _patch_storage(monkeypatch, fail=True)
    cur = patch_db(monkeypatch, products_router)
    with pytest.raises(HTTPException) as exc_info:
        products_router.create_product(name="Frame", price=Decimal("1"), stock=0, product_code=None, image=_upload())
    assert exc_info.value.status_code == 502
    assert cur.executed == []


def test_create_product_rejects_non_image(monkeypatch):
    _patch_storage(monkeypatch)
    patch_db(monkeypatch, products_router)
    with pytest.raises(HTTPException) as exc_info:
        products_router.create_product(
            name="Frame",
            price=Decimal("1"),
            stock=0,
            product_code=None,
            image=_upload(content_type="application/pdf", filename="x.pdf"),
        )
    assert exc_info.value.status_code == 400


def test_update_product_keeps_existing_image(monkeypatch):
    uploads = _patch_storage(monkeypatch)
    cur = patch_db(monkeypatch, products_router, [[{"image": "https://media.example/old.png"}], [{"id": 7}]])
    out = products_router.update_product(
        7, name="Frame", price=Decimal("99"), stock=2, product_code=None, image=None
    )
    assert out == {"ok": True, "image_url": "https://media.example/old.png"}
    assert uploads == []
    _, params = cur.executed[1]
    assert params[-2:] == ("https://media.example/old.png", 7)


def test_update_product_replaces_image(monkeypatch):
    _patch_storage(monkeypatch, url="https://media.example/new.png")
    cur = patch_db(monkeypatch, products_router, [[{"image": "https://media.example/old.png"}], [{"id": 7}]])
    out = products_router.update_product(
        7, name="Frame", price=Decimal("99"), stock=2, product_code=None, image=_upload()
    )
    assert out["image_url"] == "https://media.example/new.png"
    assert cur.executed[1][1][-2] == "https://media.example/new.png"


def test_update_product_uploads_without_holding_a_connection(monkeypatch):
    cur = DummyCursor([[{"image": "https://media.example/old.png"}], [{"id": 7}]])
    open_conns = []

    @contextmanager
    def tracked_conn():
        open_conns.append(1)
        try:
            yield DummyConn(cur)
        finally:
            open_conns.pop()

    held_during_upload = []

    def fake_upload(*, data, content_type):
        held_during_upload.append(len(open_conns))
        return "https://media.example/new.png"

    monkeypatch.setattr(products_router, "get_conn", tracked_conn)
    monkeypatch.setattr(products_router, "s3_enabled", lambda: True)
    monkeypatch.setattr(products_router, "upload_product_image", fake_upload)

    out = products_router.update_product(
        7, name="Frame", price=Decimal("99"), stock=2, product_code=None, image=_upload()
    )
    assert out["image_url"] == "https://media.example/new.png"
    assert held_during_upload == [0]
    assert "SELECT image" in cur.executed[0][0]
    assert "UPDATE products" in cur.executed[1][0]


def test_update_product_deleted_during_upload_is_404(monkeypatch):
    _patch_storage(monkeypatch)
    patch_db(monkeypatch, products_router, [[{"image": "https://media.example/old.png"}], []])
    with pytest.raises(HTTPException) as exc_info:
        products_router.update_product(
            7, name="Frame", price=Decimal("99"), stock=2, product_code=None, image=_upload()
        )
    assert exc_info.value.status_code == 404


def test_update_missing_product_is_404(monkeypatch):
    patch_db(monkeypatch, products_router, [[]])
    with pytest.raises(HTTPException) as exc_info:
        products_router.update_product(7, name="Frame", price=Decimal("1"), stock=0, product_code=None, image=None)
    assert exc_info.value.status_code == 404


def test_barcode_lookup(monkeypatch):
    cur = patch_db(monkeypatch, products_router, [[{"id": 12, "product_code": "890"}]])
    out = products_router.get_product_by_code(" 890 ")
    assert out["product"]["id"] == 12
    assert cur.executed[0][1] == ("890",)


def test_delete_missing_product_is_404(monkeypatch):
    patch_db(monkeypatch, products_router, [[]])
    with pytest.raises(HTTPException) as exc_info:
        products_router.delete_product(99)
    assert exc_info.value.status_code == 404
