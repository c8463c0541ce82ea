from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional
import uuid
from ..catalogs import get_engine
from ..config import settings
from ..db import get_conn
from ..enrichment import NotFound
from ..validation import LineItemIn, Money, PaymentMethod, serialize_line_items

router = APIRouter(prefix="/sales", tags=["sales"])


class SaleIn(BaseModel):
    customer_id: int
    customer_phone: Optional[str] = None
    sale_data: List[LineItemIn] = Field(default_factory=list)
    payment_method: PaymentMethod
    order_discount: Money = 0
    paid: Money = 0


@router.get("")
def list_sales():
    return {"sales": get_engine().list_sales_report()}


@router.get("/{sale_id}")
def get_sale(sale_id: str):
    """
    Bill/print view: items with current catalog name/price plus the customer's
    prescription block.
    """
    try:
        return {"sale": get_engine().get_sale_detail(sale_id)}
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("")
def create_sale(data: SaleIn):
    sale_id = str(uuid.uuid4())
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO sales (branch, sale_id, customer_id, customer_phone, payment_method,
                                   order_discount, paid, product_details)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING sale_id, created_at
                """,
                (
                    settings.branch_id,
                    sale_id,
                    data.customer_id,
                    (data.customer_phone or "").strip() or None,
                    data.payment_method,
                    data.order_discount,
                    data.paid,
                    serialize_line_items(data.sale_data),
                ),
            )
            row = cur.fetchone()
            return {"sale_id": row["sale_id"], "created_at": row["created_at"]}
