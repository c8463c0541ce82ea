"""
Line-item enrichment for sales and purchases.

Stored transactions keep their items as a JSON text blob (`product_details`)
of `{product_id, quantity, price, ...}` objects. Reporting and bill/print views
need product names/prices and the customer or supplier resolved, so every view
goes through `EnrichmentEngine`: one product lookup for the whole batch, one
counterparty lookup, then an in-process merge.
"""
import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional, Protocol

from .logging_utils import json_log
from .prescription import prescription_of

UNKNOWN = "Unknown"
NAMES_SEPARATOR = ", "
LINE_ITEMS_FIELD = "product_details"

CounterpartyKind = Literal["customer", "supplier"]


class EnrichmentError(Exception):
    pass


class NotFound(EnrichmentError):
    def __init__(self, kind: str, transaction_id: str):
        self.kind = kind
        self.transaction_id = transaction_id
        label = "sale" if kind == "customer" else "purchase"
        super().__init__(f"{label} not found")


class InfrastructureFailure(EnrichmentError):
    pass


class MalformedRecord(EnrichmentError):
    def __init__(self, transaction_id: Optional[str], reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"malformed line items ({reason})")


@dataclass(frozen=True)
class CounterpartyShape:
    kind: str
    transaction_id_field: str
    id_field: str
    name_field: str
    phone_field: str
    with_prescription: bool


SHAPES = {
    "customer": CounterpartyShape(
        kind="customer",
        transaction_id_field="sale_id",
        id_field="customer_id",
        name_field="customer_name",
        phone_field="customer_phone",
        with_prescription=True,
    ),
    "supplier": CounterpartyShape(
        kind="supplier",
        transaction_id_field="purchase_id",
        id_field="supplier_id",
        name_field="supplier_name",
        phone_field="supplier_phone",
        with_prescription=False,
    ),
}


class ProductCatalog(Protocol):
    def fetch_many(self, product_ids: list[str]) -> list[dict]:
        """Rows with `id`, `name`, `price` for the ids that exist."""
        ...


class CounterpartyCatalog(Protocol):
    def fetch_many(self, ids: list[str]) -> list[dict]:
        """Rows with `id`, `name`, `phone` for the ids that exist."""
        ...

    def fetch_one(self, id_: str) -> Optional[dict]:
        """Row with `id`, `name`, `phone` (+ prescription columns for customers) or None."""
        ...


class TransactionStore(Protocol):
    def list_all(self, kind: CounterpartyKind) -> list[dict]:
        ...

    def fetch_one(self, kind: CounterpartyKind, transaction_id: str) -> Optional[dict]:
        ...


def _key(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def parse_line_items(raw: Any, transaction_id: Optional[str] = None) -> list[dict]:
    """
    Decode a stored `product_details` value into a list of item dicts.

    Missing/blank/`null` means zero items. Anything that is not a JSON list of
    objects raises MalformedRecord.
    """
    if raw is None:
        return []
    if isinstance(raw, (bytes, bytearray, memoryview)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            items = json.loads(raw)
        except ValueError as exc:
            raise MalformedRecord(transaction_id, "invalid json") from exc
    else:
        # jsonb columns come back already decoded.
        items = raw
    if items is None:
        return []
    if not isinstance(items, list):
        raise MalformedRecord(transaction_id, "not a list")
    if any(not isinstance(it, dict) for it in items):
        raise MalformedRecord(transaction_id, "item is not an object")
    return [dict(it) for it in items]


def _product_map(rows: list[dict]) -> dict[str, dict]:
    out: dict[str, dict] = {}
    for r in rows or []:
        k = _key(r.get("id"))
        if k is not None:
            out[k] = {"name": r.get("name"), "price": r.get("price")}
    return out


def _counterparty_map(rows: list[dict]) -> dict[str, dict]:
    out: dict[str, dict] = {}
    for r in rows or []:
        k = _key(r.get("id"))
        if k is not None:
            out[k] = r
    return out


def _resolve_item(item: dict, products: dict[str, dict], *, with_price: bool) -> dict:
    prod = products.get(_key(item.get("product_id")) or "")
    name = (prod or {}).get("name")
    out = {**item, "product_name": name if (name is not None and str(name).strip()) else UNKNOWN}
    if with_price:
        price = (prod or {}).get("price")
        out["product_price"] = price if price is not None else UNKNOWN
    return out


class EnrichmentEngine:
    def __init__(
        self,
        *,
        products: ProductCatalog,
        customers: CounterpartyCatalog,
        suppliers: CounterpartyCatalog,
        store: Optional[TransactionStore] = None,
        concurrent_lookups: bool = True,
    ):
        self.products = products
        self.counterparties = {"customer": customers, "supplier": suppliers}
        self.store = store
        self.concurrent_lookups = concurrent_lookups

    # -- lookups ---------------------------------------------------------

    def _guarded(self, lookup: str, fn: Callable, *args):
        try:
            return fn(*args)
        except EnrichmentError:
            raise
        except Exception as exc:
            json_log("error", "enrichment.lookup_failed", lookup=lookup, error=str(exc))
            raise InfrastructureFailure(f"{lookup} lookup failed") from exc

    def _fetch_products(self, product_ids: list[str]) -> dict[str, dict]:
        if not product_ids:
            return {}
        return _product_map(self._guarded("product", self.products.fetch_many, product_ids))

    def _resolve_both(self, product_ids: list[str], fetch_counterparties: Callable[[], dict]):
        # The two lookups don't depend on each other; both must finish before merge.
        if not self.concurrent_lookups or not product_ids:
            return self._fetch_products(product_ids), fetch_counterparties()
        with ThreadPoolExecutor(max_workers=2) as ex:
            fut_products = ex.submit(self._fetch_products, product_ids)
            fut_parties = ex.submit(fetch_counterparties)
            return fut_products.result(), fut_parties.result()

    # -- merge -----------------------------------------------------------

    def _decode(self, txn: dict, shape: CounterpartyShape) -> tuple[list[dict], Optional[str]]:
        tid = _key(txn.get(shape.transaction_id_field))
        try:
            return parse_line_items(txn.get(LINE_ITEMS_FIELD), tid), None
        except MalformedRecord as exc:
            json_log(
                "warning",
                "enrichment.malformed_line_items",
                kind=shape.kind,
                transaction_id=tid,
                reason=exc.reason,
            )
            return [], "malformed"

    def enrich_list(self, transactions: list[dict], kind: CounterpartyKind) -> list[dict]:
        """
        Enrich a batch of same-kind transactions for list views.

        Output has one record per input record, in input order.
        """
        shape = SHAPES[kind]
        decoded = [self._decode(t, shape) for t in transactions]

        product_ids: list[str] = []
        seen_products: set[str] = set()
        for items, _err in decoded:
            for it in items:
                k = _key(it.get("product_id"))
                if k is not None and k not in seen_products:
                    seen_products.add(k)
                    product_ids.append(k)

        party_ids: list[str] = []
        seen_parties: set[str] = set()
        for t in transactions:
            k = _key(t.get(shape.id_field))
            if k is not None and k not in seen_parties:
                seen_parties.add(k)
                party_ids.append(k)

        catalog = self.counterparties[kind]

        def fetch_parties() -> dict[str, dict]:
            if not party_ids:
                return {}
            return _counterparty_map(self._guarded(kind, catalog.fetch_many, party_ids))

        products, parties = self._resolve_both(product_ids, fetch_parties)

        out = []
        for txn, (items, err) in zip(transactions, decoded):
            enriched = [_resolve_item(it, products, with_price=False) for it in items]
            party = parties.get(_key(txn.get(shape.id_field)) or "") or {}
            rec = {
                **txn,
                LINE_ITEMS_FIELD: enriched,
                "product_names": NAMES_SEPARATOR.join(str(it["product_name"]) for it in enriched),
                shape.name_field: party.get("name") or UNKNOWN,
                shape.phone_field: party.get("phone") or UNKNOWN,
            }
            if err:
                rec["line_items_error"] = err
            out.append(rec)
        return out

    def enrich_one(self, transaction: dict, kind: CounterpartyKind) -> dict:
        """
        Enrich a single transaction for bill/print views: items carry
        `product_price`, and sales carry the customer's full prescription.
        """
        shape = SHAPES[kind]
        items, err = self._decode(transaction, shape)

        product_ids: list[str] = []
        for it in items:
            k = _key(it.get("product_id"))
            if k is not None and k not in product_ids:
                product_ids.append(k)

        party_id = _key(transaction.get(shape.id_field))
        catalog = self.counterparties[kind]

        def fetch_party() -> Optional[dict]:
            if party_id is None:
                return None
            return self._guarded(kind, catalog.fetch_one, party_id)

        products, party = self._resolve_both(product_ids, fetch_party)
        party = party or {}

        rec = {
            **transaction,
            LINE_ITEMS_FIELD: [_resolve_item(it, products, with_price=True) for it in items],
            shape.name_field: party.get("name") or UNKNOWN,
            shape.phone_field: party.get("phone") or UNKNOWN,
        }
        if shape.with_prescription:
            rec.update(prescription_of(party))
        if err:
            rec["line_items_error"] = err
        return rec

    # -- boundary operations ---------------------------------------------

    def _require_store(self) -> TransactionStore:
        if self.store is None:
            raise RuntimeError("EnrichmentEngine has no transaction store")
        return self.store

    def list_report(self, kind: CounterpartyKind) -> list[dict]:
        store = self._require_store()
        rows = self._guarded("transactions", store.list_all, kind)
        return self.enrich_list(list(rows or []), kind)

    def get_detail(self, kind: CounterpartyKind, transaction_id: str) -> dict:
        store = self._require_store()
        tid = _key(transaction_id)
        if tid is None:
            raise NotFound(kind, str(transaction_id or ""))
        row = self._guarded("transactions", store.fetch_one, kind, tid)
        if not row:
            raise NotFound(kind, tid)
        return self.enrich_one(row, kind)

    def list_sales_report(self) -> list[dict]:
        return self.list_report("customer")

    def list_purchases_report(self) -> list[dict]:
        return self.list_report("supplier")

    def get_sale_detail(self, sale_id: str) -> dict:
        return self.get_detail("customer", sale_id)

    def get_purchase_detail(self, purchase_id: str) -> dict:
        return self.get_detail("supplier", purchase_id)
