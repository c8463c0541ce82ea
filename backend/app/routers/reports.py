from fastapi import APIRouter
from datetime import date, datetime, timezone
from typing import Optional
from decimal import Decimal
from ..config import settings
from ..db import get_conn

router = APIRouter(prefix="/reports", tags=["reports"])

# Day boundaries are UTC, matching how the counter app stamps "today".
_ON_DAY = "(created_at AT TIME ZONE 'UTC')::date = %s"


def _report_day(day: Optional[date]) -> date:
    return day or datetime.now(timezone.utc).date()


def _dec(v) -> Decimal:
    return Decimal(str(v)) if v is not None else Decimal("0")


@router.get("/summary")
def daily_summary(day: Optional[date] = None):
    """
    Dashboard tiles for one day: takings, order count, discount given,
    customers registered, and current stock on hand (not day-bound).
    """
    d = _report_day(day)
    branch = settings.branch_id
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT
                  (SELECT COALESCE(SUM(paid), 0) FROM sales WHERE branch = %s AND {_ON_DAY}) AS total_sales,
                  (SELECT COUNT(*)::int FROM sales WHERE branch = %s AND {_ON_DAY}) AS total_orders,
                  (SELECT COALESCE(SUM(stock), 0) FROM products WHERE branch = %s) AS total_stock,
                  (SELECT COALESCE(SUM(order_discount), 0) FROM sales WHERE branch = %s AND {_ON_DAY}) AS total_discount,
                  (SELECT COUNT(*)::int FROM customers WHERE branch = %s AND {_ON_DAY}) AS new_customers
                """,
                (branch, d, branch, d, branch, branch, d, branch, d),
            )
            row = cur.fetchone() or {}
    return {
        "day": d.isoformat(),
        "total_sales": _dec(row.get("total_sales")),
        "total_orders": int(row.get("total_orders") or 0),
        "total_stock": int(row.get("total_stock") or 0),
        "total_discount": _dec(row.get("total_discount")),
        "new_customers": int(row.get("new_customers") or 0),
    }


@router.get("/income")
def income_split(day: Optional[date] = None):
    d = _report_day(day)
    branch = settings.branch_id
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT COALESCE(SUM(paid), 0) AS total FROM purchases WHERE branch = %s AND {_ON_DAY}",
                (branch, d),
            )
            spent = _dec((cur.fetchone() or {}).get("total"))
            cur.execute(
                f"SELECT COALESCE(SUM(paid), 0) AS total FROM sales WHERE branch = %s AND {_ON_DAY}",
                (branch, d),
            )
            taken = _dec((cur.fetchone() or {}).get("total"))
    return {"day": d.isoformat(), "spent": spent, "left": taken - spent}


@router.get("/revenue")
def revenue_by_payment_method(day: Optional[date] = None):
    d = _report_day(day)
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT payment_method, COALESCE(SUM(paid), 0) AS total
                FROM sales
                WHERE branch = %s AND {_ON_DAY}
                GROUP BY payment_method
                """,
                (settings.branch_id, d),
            )
            totals = {r["payment_method"]: _dec(r["total"]) for r in cur.fetchall()}
    return {
        "day": d.isoformat(),
        "online_sales": totals.get("UPI", Decimal("0")),
        "offline_sales": totals.get("Cash", Decimal("0")),
    }
