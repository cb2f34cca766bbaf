from typing import Optional


def as_float(x) -> Optional[float]:
    return float(x) if x is not None else None

def enum_value(x) -> Optional[str]:
    return getattr(x, "value", x) if x is not None else None
