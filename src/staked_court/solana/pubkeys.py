from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from solders.pubkey import Pubkey


def normalize_account(raw_value: object, *, role: str) -> str:
    """Return the canonical base58 form of a juror or voter account."""
    candidate = str(raw_value).strip()
    if not candidate:
        raise ValueError(f"{role} account is required")

    try:
        return str(Pubkey.from_string(candidate))
    except ValueError as exc:
        raise ValueError(f"{role} account {candidate!r} is not a valid Solana public key") from exc


def normalize_juror_stakes(entries: Iterable[dict[str, Any]]) -> list[tuple[str, int]]:
    """Canonicalise ``{"account", "stake"}`` entries; an account may stake only once."""
    stakes: dict[str, int] = {}
    for entry in entries:
        account = normalize_account(entry["account"], role="juror")
        if account in stakes:
            raise ValueError(f"juror account {account} is listed twice")
        stakes[account] = int(entry["stake"])
    return list(stakes.items())
