from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional
import uuid
from ..catalogs import get_engine
from ..config import settings
from ..db import get_conn
from ..enrichment import NotFound
from ..validation import LineItemIn, Money, PaymentMethod, serialize_line_items

router = APIRouter(prefix="/purchases", tags=["purchases"])


class PurchaseIn(BaseModel):
    supplier_id: int
    supplier_phone: Optional[str] = None
    purchase_data: List[LineItemIn] = Field(default_factory=list)
    payment_method: PaymentMethod
    order_discount: Money = 0
    paid: Money = 0


@router.get("")
def list_purchases():
    return {"purchases": get_engine().list_purchases_report()}


@router.get("/{purchase_id}")
def get_purchase(purchase_id: str):
    try:
        return {"purchase": get_engine().get_purchase_detail(purchase_id)}
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("")
def create_purchase(data: PurchaseIn):
    purchase_id = str(uuid.uuid4())
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO purchases (branch, purchase_id, supplier_id, supplier_phone, payment_method,
                                       order_discount, paid, product_details)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING purchase_id, created_at
                """,
                (
                    settings.branch_id,
                    purchase_id,
                    data.supplier_id,
                    (data.supplier_phone or "").strip() or None,
                    data.payment_method,
                    data.order_discount,
                    data.paid,
                    serialize_line_items(data.purchase_data),
                ),
            )
            row = cur.fetchone()
            return {"purchase_id": row["purchase_id"], "created_at": row["created_at"]}
