"""Deposit positions inside a vault."""

import enum
from dataclasses import dataclass

from eth_typing import HexAddress


class PositionState(str, enum.Enum):
    """Position lifecycle.

    `created` → `active` → `destroyed`, no way back from `destroyed`.
    """

    #: Deposit committed, handle minted
    created = "created"

    #: Rebalanced at least once
    active = "active"

    #: Withdrawn, id retired
    destroyed = "destroyed"


@dataclass(slots=True)
class Position:
    """One deposit.

    - :py:attr:`position_id` never changes and is never reused within a vault
    - Rebalancing mutates :py:attr:`asset` and :py:attr:`amount` in place
    - Who may withdraw is tracked by the ownership handle, not here
    """

    #: Monotonic id, starting from 1
    position_id: int

    #: Token address the position is held in
    asset: HexAddress

    #: Raw token amount, always positive for a live position
    amount: int

    state: PositionState = PositionState.created

    #: How many times the position has been rebalanced
    rebalance_count: int = 0

    def __post_init__(self):
        assert type(self.position_id) == int and self.position_id > 0, f"Bad position id {self.position_id}"
        assert type(self.amount) == int and self.amount > 0, f"Live position needs amount > 0, got {self.amount}"
