from __future__ import annotations

import json
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator


_PAYMENT_METHODS = {"cash": "Cash", "upi": "UPI"}


def _to_payment_method(v):
    if v is None:
        return v
    raw = str(v).strip()
    return _PAYMENT_METHODS.get(raw.lower(), raw)


def _to_reading(v):
    if v is None:
        return None
    # Numbers are kept as typed ("-1.25", "180"); readings are stored as text.
    s = str(v).strip()
    return s or None


# Stored and reported with this exact casing (revenue report splits on it).
PaymentMethod = Annotated[Literal["Cash", "UPI"], BeforeValidator(_to_payment_method)]

Money = Annotated[Decimal, Field(ge=0)]


class LineItemIn(BaseModel):
    # Extra keys (discounts, notes, lens options...) are kept verbatim in the stored blob.
    model_config = ConfigDict(extra="allow")

    product_id: Union[int, str]
    quantity: Decimal = Field(1, gt=0)
    price: Optional[Decimal] = Field(None, ge=0)

    @field_validator("product_id")
    @classmethod
    def _product_id_not_blank(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("product_id is required")
        return v


def _json_number(v):
    if isinstance(v, Decimal):
        # 2 stays 2, 2.5 stays 2.5
        return int(v) if v == v.to_integral_value() else float(v)
    raise TypeError(f"{type(v).__name__} is not JSON serializable")


def serialize_line_items(items: list[LineItemIn]) -> str:
    # Only what the client sent: no defaults filled in.
    return json.dumps([it.model_dump(exclude_unset=True) for it in items or []], default=_json_number)


# Prescription readings come from free-form counter forms; empty inputs mean "not measured".
Reading = Annotated[Optional[str], BeforeValidator(_to_reading)]
