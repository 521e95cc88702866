from __future__ import annotations

from argparse import Namespace


def non_negative_int(args: Namespace, name: str) -> int:
    raw_value = getattr(args, name, None)
    if isinstance(raw_value, bool):
        raise ValueError(f"{name} must be an integer")
    try:
        value = int(raw_value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value
