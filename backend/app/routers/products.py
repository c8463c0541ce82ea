from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from ..config import settings
from ..db import get_conn
from ..logging_utils import json_log
from ..storage.s3 import s3_enabled, upload_product_image

router = APIRouter(prefix="/products", tags=["products"])

_PRODUCT_COLUMNS = "id, branch, product_code, name, price, stock, image, created_at"


def _read_image(image: UploadFile) -> tuple[bytes, str]:
    raw = image.file.read() or b""
    if not raw:
        raise HTTPException(status_code=400, detail="image is empty")
    max_mb = settings.product_image_max_mb
    if len(raw) > max_mb * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"image too large (max {max_mb}MB)")
    content_type = (image.content_type or "").strip().lower()
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="image must be an image file")
    return raw, content_type


def _store_image(raw: bytes, content_type: str) -> str:
    if not s3_enabled():
        raise HTTPException(status_code=503, detail="image storage not configured")
    try:
        return upload_product_image(data=raw, content_type=content_type)
    except Exception as exc:
        json_log("error", "products.image_upload_failed", error=str(exc))
        raise HTTPException(status_code=502, detail="image upload failed")


def _clean_code(code: Optional[str]) -> Optional[str]:
    return (code or "").strip() or None


@router.get("")
def list_products():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY id")
            return {"products": cur.fetchall()}


@router.get("/barcode/{product_code}")
def get_product_by_code(product_code: str):
    code = _clean_code(product_code)
    if not code:
        raise HTTPException(status_code=400, detail="product_code is required")
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE product_code = %s ORDER BY id LIMIT 1",
                (code,),
            )
            row = cur.fetchone()
            if not row:
                raise HTTPException(status_code=404, detail="product not found")
            return {"product": row}


@router.get("/{product_id}")
def get_product(product_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = %s", (product_id,))
            row = cur.fetchone()
            if not row:
                raise HTTPException(status_code=404, detail="product not found")
            return {"product": row}


@router.post("")
def create_product(
    name: str = Form(...),
    price: Decimal = Form(..., ge=0),
    stock: int = Form(0, ge=0),
    product_code: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
):
    if image is None:
        raise HTTPException(status_code=400, detail="no image uploaded")
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    raw, content_type = _read_image(image)
    image_url = _store_image(raw, content_type)
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO products (branch, name, price, stock, product_code, image)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (settings.branch_id, name, price, stock, _clean_code(product_code), image_url),
            )
            return {"id": cur.fetchone()["id"], "image_url": image_url}


@router.put("/{product_id}")
def update_product(
    product_id: int,
    name: str = Form(...),
    price: Decimal = Form(..., ge=0),
    stock: int = Form(0, ge=0),
    product_code: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
):
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    replacement = None
    if image is not None and image.filename:
        replacement = _read_image(image)
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT image FROM products WHERE id = %s", (product_id,))
            row = cur.fetchone()
            if not row:
                raise HTTPException(status_code=404, detail="product not found")
    # Keep the current image unless a replacement was sent.
    image_url = row["image"]
    if replacement is not None:
        image_url = _store_image(*replacement)
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE products
                SET name = %s, price = %s, stock = %s, product_code = %s, image = %s
                WHERE id = %s
                RETURNING id
                """,
                (name, price, stock, _clean_code(product_code), image_url, product_id),
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="product not found")
            return {"ok": True, "image_url": image_url}


@router.delete("/{product_id}")
def delete_product(product_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM products WHERE id = %s RETURNING id", (product_id,))
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="product not found")
            return {"ok": True}
