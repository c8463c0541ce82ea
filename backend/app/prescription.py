from typing import Optional

EYES = ("left", "right")
DISTANCES = ("dv", "nv")  # distance vision / near vision
MEASUREMENTS = ("spherical", "cylindrical", "axis", "vn")

ADDITION_FIELDS = ("left_eye_addition", "right_eye_addition")

# Column names on `customers`, also the keys surfaced on bill/print views.
MEASUREMENT_FIELDS = tuple(
    f"{eye}_eye_{dist}_{m}" for eye in EYES for dist in DISTANCES for m in MEASUREMENTS
)
PRESCRIPTION_FIELDS = MEASUREMENT_FIELDS + ADDITION_FIELDS


def flatten_prescription(blocks: dict, additions: dict) -> dict:
    """
    Map nested per-eye blocks ({"left_eye_dv": {"spherical": ..., ...}, ...})
    onto the flat column names.
    """
    out = {}
    for eye in EYES:
        for dist in DISTANCES:
            block = blocks.get(f"{eye}_eye_{dist}") or {}
            for m in MEASUREMENTS:
                out[f"{eye}_eye_{dist}_{m}"] = block.get(m)
    for f in ADDITION_FIELDS:
        out[f] = additions.get(f)
    return out


def prescription_of(row: Optional[dict]) -> dict:
    row = row or {}
    return {f: row.get(f) for f in PRESCRIPTION_FIELDS}
