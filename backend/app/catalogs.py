from typing import Optional

from .db import get_conn
from .enrichment import EnrichmentEngine, CounterpartyKind
from .prescription import PRESCRIPTION_FIELDS

# Every lookup checks out its own pooled connection, so the engine can run the
# product and counterparty lookups side by side.

_TRANSACTION_TABLES = {
    "customer": ("sales", "sale_id", "customer_id"),
    "supplier": ("purchases", "purchase_id", "supplier_id"),
}


class PgProductCatalog:
    def fetch_many(self, product_ids: list[str]) -> list[dict]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, name, price
                    FROM products
                    WHERE id::text = ANY(%s::text[])
                    """,
                    (list(product_ids),),
                )
                return cur.fetchall()


class PgCustomerCatalog:
    def fetch_many(self, ids: list[str]) -> list[dict]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT customer_id AS id, name, phone
                    FROM customers
                    WHERE customer_id::text = ANY(%s::text[])
                    """,
                    (list(ids),),
                )
                return cur.fetchall()

    def fetch_one(self, id_: str) -> Optional[dict]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT customer_id AS id, name, phone,
                           {', '.join(PRESCRIPTION_FIELDS)}
                    FROM customers
                    WHERE customer_id::text = %s
                    """,
                    (id_,),
                )
                return cur.fetchone()


class PgSupplierCatalog:
    def fetch_many(self, ids: list[str]) -> list[dict]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT supplier_id AS id, name, phone_number AS phone
                    FROM suppliers
                    WHERE supplier_id::text = ANY(%s::text[])
                    """,
                    (list(ids),),
                )
                return cur.fetchall()

    def fetch_one(self, id_: str) -> Optional[dict]:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT supplier_id AS id, name, phone_number AS phone
                    FROM suppliers
                    WHERE supplier_id::text = %s
                    """,
                    (id_,),
                )
                return cur.fetchone()


class PgTransactionStore:
    def list_all(self, kind: CounterpartyKind) -> list[dict]:
        table, id_col, party_col = _TRANSACTION_TABLES[kind]
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT {id_col}, created_at, {party_col}, product_details,
                           order_discount, paid, payment_method
                    FROM {table}
                    ORDER BY created_at DESC, id DESC
                    """
                )
                return cur.fetchall()

    def fetch_one(self, kind: CounterpartyKind, transaction_id: str) -> Optional[dict]:
        table, id_col, party_col = _TRANSACTION_TABLES[kind]
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT {id_col}, created_at, {party_col}, product_details,
                           order_discount, paid, payment_method
                    FROM {table}
                    WHERE {id_col} = %s
                    """,
                    (transaction_id,),
                )
                return cur.fetchone()


def get_engine() -> EnrichmentEngine:
    return EnrichmentEngine(
        products=PgProductCatalog(),
        customers=PgCustomerCatalog(),
        suppliers=PgSupplierCatalog(),
        store=PgTransactionStore(),
    )
