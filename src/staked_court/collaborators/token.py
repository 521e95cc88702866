from __future__ import annotations

from collections import defaultdict
from typing import Protocol

from staked_court.errors import TransferError


class FungibleToken(Protocol):
    def balance_of(self, account: str) -> int:
        ...

    def allowance(self, owner: str, spender: str) -> int:
        ...

    def approve(self, caller: str, spender: str, amount: int) -> bool:
        ...

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        ...

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool:
        ...


class InMemoryToken:
    """Balance ledger with the transfer/approve surface the court relies on.

    Accounts listed in ``rejecting`` refuse incoming transfers, which lets
    tests model a recipient that cannot be paid.
    """

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol
        self._balances: defaultdict[str, int] = defaultdict(int)
        self._allowances: defaultdict[tuple[str, str], int] = defaultdict(int)
        self.rejecting: set[str] = set()

    def mint(self, account: str, amount: int) -> None:
        if amount < 0:
            raise TransferError("mint amount must be non-negative")
        self._balances[account] += amount

    def balance_of(self, account: str) -> int:
        return self._balances[account]

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances[(owner, spender)]

    def approve(self, caller: str, spender: str, amount: int) -> bool:
        if amount < 0:
            raise TransferError("allowance must be non-negative")
        self._allowances[(caller, spender)] = amount
        return True

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        self._move(caller, to, amount)
        return True

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> bool:
        allowed = self._allowances[(owner, caller)]
        if owner != caller and allowed < amount:
            raise TransferError(
                f"{self.symbol}: allowance {allowed} of {owner} for {caller} below {amount}"
            )
        self._move(owner, to, amount)
        if owner != caller:
            self._allowances[(owner, caller)] = allowed - amount
        return True

    def _move(self, sender: str, to: str, amount: int) -> None:
        if amount < 0:
            raise TransferError("transfer amount must be non-negative")
        if to in self.rejecting:
            raise TransferError(f"{self.symbol}: recipient {to} rejected the transfer")
        if self._balances[sender] < amount:
            raise TransferError(
                f"{self.symbol}: balance {self._balances[sender]} of {sender} below {amount}"
            )
        self._balances[sender] -= amount
        self._balances[to] += amount
