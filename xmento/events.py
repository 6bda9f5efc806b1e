"""Emitted event records.

- Append-only, consumed by external indexers and UIs

- Each record is stored in :py:attr:`xmento.chain.Chain.logs` wrapped in :py:class:`LogEntry`
  together with the emitting contract address
"""

from dataclasses import dataclass

from eth_typing import HexAddress


@dataclass(frozen=True, slots=True)
class VaultCreated:
    """Legacy single-vault registry created a vault."""

    principal: HexAddress
    vault: HexAddress


@dataclass(frozen=True, slots=True)
class VaultCreatedV2:
    """Multi-vault registry created a vault.

    :py:attr:`index` is the stable index of the vault in the principal's vault list.
    """

    principal: HexAddress
    vault: HexAddress
    index: int


@dataclass(frozen=True, slots=True)
class Deposited:
    """Position was opened, or re-opened in a new asset by a rebalance."""

    user: HexAddress

    #: Asset token address
    asset: HexAddress

    #: Raw token amount
    amount: int

    position_id: int


@dataclass(frozen=True, slots=True)
class Withdrawn:
    """Position was closed, or closed in its old asset by a rebalance."""

    user: HexAddress

    #: Asset token address
    asset: HexAddress

    #: Raw token amount
    amount: int

    position_id: int


@dataclass(frozen=True, slots=True)
class HandleTransferred:
    """Ownership handle moved.

    Mint has the zero address as :py:attr:`from_`, burn has it as :py:attr:`to`.
    """

    from_: HexAddress
    to: HexAddress
    position_id: int


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One emitted event with its emitter."""

    #: Emitting contract
    address: HexAddress

    #: Running index over the whole chain log
    log_index: int

    event: object
