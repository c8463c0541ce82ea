from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional
from ..config import settings
from ..db import get_conn

router = APIRouter(prefix="/suppliers", tags=["suppliers"])


class SupplierIn(BaseModel):
    name: str
    email: str
    address: Optional[str] = None
    phone_number: Optional[str] = None


class SupplierUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    phone_number: Optional[str] = None


@router.get("")
def list_suppliers():
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT supplier_id, name, address, phone_number, email, created_at
                FROM suppliers
                ORDER BY name
                """
            )
            return {"suppliers": cur.fetchall()}


@router.get("/{supplier_id}")
def get_supplier(supplier_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT supplier_id, name, address, phone_number, email, created_at
                FROM suppliers
                WHERE supplier_id = %s
                """,
                (supplier_id,),
            )
            row = cur.fetchone()
            if not row:
                raise HTTPException(status_code=404, detail="supplier not found")
            return {"supplier": row}


@router.post("")
def create_supplier(data: SupplierIn):
    name = (data.name or "").strip()
    email = (data.email or "").strip()
    if not name or not email:
        raise HTTPException(status_code=400, detail="supplier name and email are required")
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO suppliers (branch, name, address, phone_number, email)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING supplier_id
                """,
                (
                    settings.branch_id,
                    name,
                    (data.address or "").strip() or None,
                    (data.phone_number or "").strip() or None,
                    email,
                ),
            )
            return {"id": cur.fetchone()["supplier_id"]}


@router.patch("/{supplier_id}")
def update_supplier(supplier_id: int, data: SupplierUpdate):
    fields = []
    params = []
    payload = data.model_dump(exclude_none=True)
    for k in ("name", "email"):
        if k in payload and not payload[k].strip():
            raise HTTPException(status_code=400, detail=f"{k} cannot be blank")
    for k, v in payload.items():
        fields.append(f"{k} = %s")
        params.append(v.strip() or None)
    params.append(supplier_id)
    with get_conn() as conn:
        with conn.cursor() as cur:
            if not fields:
                cur.execute("SELECT supplier_id FROM suppliers WHERE supplier_id = %s", params)
                if not cur.fetchone():
                    raise HTTPException(status_code=404, detail="supplier not found")
                return {"ok": True}
            cur.execute(
                f"""
                UPDATE suppliers
                SET {', '.join(fields)}
                WHERE supplier_id = %s
                RETURNING supplier_id
                """,
                params,
            )
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="supplier not found")
            return {"ok": True}


@router.delete("/{supplier_id}")
def delete_supplier(supplier_id: int):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM suppliers WHERE supplier_id = %s RETURNING supplier_id", (supplier_id,))
            if not cur.fetchone():
                raise HTTPException(status_code=404, detail="supplier not found")
            return {"ok": True}
