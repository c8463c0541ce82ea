from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import Optional
from datetime import date
from ..config import settings
from ..db import get_conn
from ..prescription import PRESCRIPTION_FIELDS, flatten_prescription
from ..validation import Reading

router = APIRouter(prefix="/customers", tags=["customers"])

_PROFILE_FIELDS = ("name", "phone", "email", "address", "date_of_birth", "gender")
_CUSTOMER_COLUMNS = ", ".join(("customer_id",) + _PROFILE_FIELDS + PRESCRIPTION_FIELDS + ("created_at",))


class EyeReadingIn(BaseModel):
    spherical: Reading = None
    cylindrical: Reading = None
    axis: Reading = None
    vn: Reading = None


class CustomerIn(BaseModel):
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    left_eye_dv: EyeReadingIn = Field(default_factory=EyeReadingIn)
    left_eye_nv: EyeReadingIn = Field(default_factory=EyeReadingIn)
    right_eye_dv: EyeReadingIn = Field(default_factory=EyeReadingIn)
    right_eye_nv: EyeReadingIn = Field(default_factory=EyeReadingIn)
    left_eye_addition: Reading = None
    right_eye_addition: Reading = None


class CustomerUpdate(BaseModel):
    # Edit form posts the flat column layout.
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    left_eye_dv_spherical: Reading = None
    left_eye_dv_cylindrical: Reading = None
    left_eye_dv_axis: Reading = None
    left_eye_dv_vn: Reading = None
    left_eye_nv_spherical: Reading = None
    left_eye_nv_cylindrical: Reading = None
    left_eye_nv_axis: Reading = None
    left_eye_nv_vn: Reading = None
    right_eye_dv_spherical: Reading = None
    right_eye_dv_cylindrical: Reading = None
    right_eye_dv_axis: Reading = None
    right_eye_dv_vn: Reading = None
    right_eye_nv_spherical: Reading = None
    right_eye_nv_cylindrical: Reading = None
    right_eye_nv_axis: Reading = None
    right_eye_nv_vn: Reading = None
    left_eye_addition: Reading = None
    right_eye_addition: Reading = None


def customer_insert_values(data: CustomerIn) -> dict:
    payload = data.model_dump()
    blocks = {k: payload[k] for k in ("left_eye_dv", "left_eye_nv", "right_eye_dv", "right_eye_nv")}
    values = {f: payload[f] for f in _PROFILE_FIELDS}
    values["name"] = (values["name"] or "").strip()
    values.update(flatten_prescription(blocks, payload))
    return values


@router.get("")
def list_customers():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {_CUSTOMER_COLUMNS} FROM customers ORDER BY name")
            return {"customers": cur.fetchall()}


@router.get("/{customer_id}")
def get_customer(customer_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {_CUSTOMER_COLUMNS} FROM customers WHERE customer_id = %s", (customer_id,))
            row = cur.fetchone()
            if not row:
                raise HTTPException(status_code=404, detail="customer not found")
            return {"customer": row}


@router.post("")
def create_customer(data: CustomerIn):
    values = customer_insert_values(data)
    if not values["name"]:
        raise HTTPException(status_code=400, detail="name is required")
    cols = ["branch"] + list(values.keys())
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO customers ({', '.join(cols)})
                VALUES ({', '.join(['%s'] * len(cols))})
                RETURNING customer_id
                """,
                [settings.branch_id] + list(values.values()),
            )
            return {"id": cur.fetchone()["customer_id"]}


@router.put("/{customer_id}")
def update_customer(customer_id: int, data: CustomerUpdate):
    payload = data.model_dump()
    for f in ("name", "phone", "email", "address", "gender"):
        payload[f] = (payload[f] or "").strip() or None
    if any(payload[f] is None for f in _PROFILE_FIELDS):
        raise HTTPException(status_code=400, detail="required fields are missing")
    cols = list(_PROFILE_FIELDS + PRESCRIPTION_FIELDS)
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                UPDATE customers
                SET {', '.join(f'{c} = %s' for c in cols)}
                WHERE customer_id = %s
                RETURNING customer_id
                """,
                [payload[c] for c in cols] + [customer_id],
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="customer not found")
            return {"ok": True}


@router.delete("/{customer_id}")
def delete_customer(customer_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM customers WHERE customer_id = %s RETURNING customer_id", (customer_id,))
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="customer not found")
            return {"ok": True}
