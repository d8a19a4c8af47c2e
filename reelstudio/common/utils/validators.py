from typing import Any, Optional


def ensure_positive_int(value: Any, field: str, maximum: Optional[int] = None) -> int:
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field} must be a positive integer")
    try:
        v = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field} must be a positive integer") from exc
    if v <= 0:
        raise ValueError(f"{field} must be > 0")
    if maximum is not None and v > maximum:
        raise ValueError(f"{field} must be <= {maximum}")
    return v


def optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
