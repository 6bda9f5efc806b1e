"""Multi-asset stablecoin vault.

- One vault per :py:meth:`xmento.factory.factory.VaultFactory.create_vault` call,
  created and initialised by the factory
- Tracks discrete deposit positions, each with a transferable ownership handle
- Moves a position to the best yielding stablecoin on :py:meth:`XmentoVault.rebalance`

Example:

.. code-block:: python

    vault, index = factory.create_vault(user)

    cusd.approve(user, vault.address, 100 * 10**18)
    position_id = vault.deposit(user, "cUSD", 100 * 10**18)

    vault.rebalance(user, position_id)
    vault.withdraw(user, position_id)
"""

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal

from eth_typing import HexAddress

from xmento.address import normalise_address
from xmento.assets import AssetRegistry
from xmento.chain import Chain, Contract
from xmento.config import COMMON_UNIT_DECIMALS
from xmento.errors import AuthorizationError, ExternalCallError, NotFoundError, StateError, ValidationError, VaultError
from xmento.events import Deposited, Withdrawn
from xmento.exchange import execute_conversion
from xmento.guard import non_reentrant
from xmento.oracle import YieldScore, fetch_yield_snapshot
from xmento.token import StableToken
from xmento.vault.allocation import choose_target_asset, get_optimal_allocation
from xmento.vault.ownership import HandleTable
from xmento.vault.position import Position, PositionState

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class VaultStorage:
    """Vault state.

    New fields may only be appended.
    """

    #: Factory allowed to call :py:meth:`XmentoVault.initialize`
    factory: HexAddress

    #: Principal the vault was created for, may rebalance any position
    owner: HexAddress | None = None

    assets: AssetRegistry | None = None

    #: Next unused position id
    next_position_id: int = 1

    #: Live positions by id, in creation order
    positions: dict[int, Position] = field(default_factory=dict)

    handles: HandleTable = field(default_factory=HandleTable)

    initialized: bool = False


class XmentoVault(Contract):
    """Position accounting and yield seeking rebalancing for one vault.

    - All mutating entry points take the calling account as the first argument
    - Guarded entry points run as one atomic step and reject reentrant calls
    """

    def __init__(self, chain: Chain, address: HexAddress, factory: HexAddress):
        super().__init__(chain, address)
        self.storage = VaultStorage(factory=normalise_address(factory, "factory"))

    @property
    def owner(self) -> HexAddress | None:
        return self.storage.owner

    @property
    def factory(self) -> HexAddress:
        return self.storage.factory

    @property
    def assets(self) -> AssetRegistry:
        if not self.storage.initialized:
            raise StateError(f"Vault {self.address} is not initialised", vault=self.address)
        return self.storage.assets

    @non_reentrant
    def initialize(self, sender: HexAddress | str, owner: HexAddress | str, assets: AssetRegistry):
        """Bind the vault to its principal and the supported assets.

        :param sender:
            Must be the deploying factory

        :raise StateError:
            Already initialised
        """
        sender = normalise_address(sender, "sender")
        if sender != self.storage.factory:
            raise AuthorizationError(f"Only the factory {self.storage.factory} can initialise the vault, got {sender}", sender=sender)

        if self.storage.initialized:
            raise StateError(f"Vault {self.address} already initialised", vault=self.address)

        assert isinstance(assets, AssetRegistry), f"Got {type(assets)}"
        self.storage.owner = normalise_address(owner, "owner")
        self.storage.assets = assets
        self.storage.initialized = True
        logger.info("Vault %s initialised for %s", self.address, self.storage.owner)

    @non_reentrant
    def deposit(self, sender: HexAddress | str, asset: HexAddress | str, amount: int) -> int:
        """Open a new position.

        - The vault needs an allowance of `amount` from `sender`

        :param asset:
            Token address or symbol

        :param amount:
            Raw token amount

        :return:
            The new position id

        :raise ExternalCallError:
            The token pull failed
        """
        sender = normalise_address(sender, "sender")
        asset = self.assets.resolve(asset)
        if type(amount) is not int or amount <= 0:
            raise ValidationError(f"Deposit amount must be a positive integer, got {amount!r}", amount=amount)

        token = self._get_token(asset)
        before = token.balance_of(self.address)
        self._call_token(token, "transfer_from", self.address, sender, self.address, amount)
        received = token.balance_of(self.address) - before
        if received != amount:
            raise ExternalCallError(f"Deposit of {amount} {token.symbol} credited {received} to the vault", amount=amount, received=received)

        storage = self.storage
        position_id = storage.next_position_id
        storage.next_position_id += 1
        storage.positions[position_id] = Position(position_id=position_id, asset=asset, amount=amount)
        self.emit(storage.handles.mint(sender, position_id))
        self.emit(Deposited(user=sender, asset=asset, amount=amount, position_id=position_id))

        self._check_solvency()
        logger.info("Vault %s: %s deposited %d %s as position #%d", self.address, sender, amount, token.symbol, position_id)
        return position_id

    @non_reentrant
    def withdraw(self, sender: HexAddress | str, position_id: int) -> Position:
        """Close a position and pay out its recorded amount.

        :return:
            The closed position, in `destroyed` state

        :raise NotFoundError:
            No live position with the id

        :raise AuthorizationError:
            Sender does not hold the ownership handle
        """
        sender = normalise_address(sender, "sender")
        position = self._get_live_position(position_id)
        holder = self.storage.handles.owner_of(position_id)
        if holder != sender:
            raise AuthorizationError(f"{sender} does not hold position #{position_id}", position_id=position_id, sender=sender, holder=holder)

        del self.storage.positions[position_id]
        position.state = PositionState.destroyed
        self.emit(Withdrawn(user=sender, asset=position.asset, amount=position.amount, position_id=position_id))
        self.emit(self.storage.handles.burn(position_id))

        token = self._get_token(position.asset)
        self._call_token(token, "transfer", self.address, sender, position.amount)

        self._check_solvency()
        logger.info("Vault %s: %s withdrew %d %s from position #%d", self.address, sender, position.amount, token.symbol, position_id)
        return replace(position)

    @non_reentrant
    def rebalance(self, sender: HexAddress | str, position_id: int) -> Position:
        """Move a position to the asset with the best yield.

        - The position keeps its id, asset and amount are updated in place
        - `Withdrawn` for the old holding and `Deposited` for the new holding are emitted
          even when the asset stays the same

        :param sender:
            Handle holder, or the vault owner

        :return:
            The updated position
        """
        sender = normalise_address(sender, "sender")
        position = self._get_live_position(position_id)
        holder = self.storage.handles.owner_of(position_id)
        if sender not in (holder, self.storage.owner):
            raise AuthorizationError(f"{sender} cannot rebalance position #{position_id}", position_id=position_id, sender=sender)

        assets = self.assets
        snapshot = fetch_yield_snapshot(self.chain, assets)
        target = choose_target_asset(snapshot)

        old_asset = position.asset
        old_amount = position.amount
        if target != old_asset:
            new_amount = execute_conversion(self.chain, assets, self.address, old_asset, target, old_amount)
        else:
            new_amount = old_amount

        position.asset = target
        position.amount = new_amount
        position.state = PositionState.active
        position.rebalance_count += 1

        self.emit(Withdrawn(user=holder, asset=old_asset, amount=old_amount, position_id=position_id))
        self.emit(Deposited(user=holder, asset=target, amount=new_amount, position_id=position_id))

        self._check_solvency()
        logger.info(
            "Vault %s: rebalanced position #%d %d %s -> %d %s",
            self.address,
            position_id,
            old_amount,
            assets.get_symbol(old_asset),
            new_amount,
            assets.get_symbol(target),
        )
        return replace(position)

    @non_reentrant
    def transfer_position(self, sender: HexAddress | str, to: HexAddress | str, position_id: int):
        """Give the ownership handle of a position to another account.

        - The position record itself is not touched
        """
        sender = normalise_address(sender, "sender")
        to = normalise_address(to, "receiver")
        self._get_live_position(position_id)
        self.emit(self.storage.handles.transfer(sender, to, position_id))
        logger.info("Vault %s: position #%d handed from %s to %s", self.address, position_id, sender, to)

    def get_position(self, position_id: int) -> Position:
        """A copy of a live position, changing it does not touch the vault."""
        return replace(self._get_live_position(position_id))

    def get_positions(self) -> list[Position]:
        """All live positions in creation order."""
        return [replace(p) for p in self.storage.positions.values()]

    def owner_of(self, position_id: int) -> HexAddress:
        return self.storage.handles.owner_of(position_id)

    def balance_of(self, holder: HexAddress | str) -> int:
        """Number of ownership handles held."""
        return self.storage.handles.balance_of(normalise_address(holder, "holder"))

    def get_positions_of(self, holder: HexAddress | str) -> list[Position]:
        holder = normalise_address(holder, "holder")
        return [replace(self.storage.positions[i]) for i in self.storage.handles.handles_of(holder)]

    def get_tvl(self) -> int:
        """Total value of live positions.

        - Valued 1:1 under the stable peg

        :return:
            Value in 18 decimal common units
        """
        return sum(self._to_common_unit(p.asset, p.amount) for p in self.storage.positions.values())

    def get_apys(self) -> list[YieldScore]:
        """Current yield scores in the fixed cUSD, cEUR, cREAL order."""
        return fetch_yield_snapshot(self.chain, self.assets).as_list()

    def get_optimal_allocation(self) -> list[int]:
        """Where positions would be rebalanced to now, as percentages per asset."""
        return get_optimal_allocation(fetch_yield_snapshot(self.chain, self.assets))

    def get_user_balance(self, user: HexAddress | str) -> int:
        """Value of live positions whose handle `user` holds.

        :return:
            Value in 18 decimal common units
        """
        return sum(self._to_common_unit(p.asset, p.amount) for p in self.get_positions_of(user))

    def get_accounted_balances(self) -> dict[HexAddress, int]:
        """Sum of live position amounts per asset, raw token units."""
        balances = {asset: 0 for asset in self.assets.assets}
        for position in self.storage.positions.values():
            balances[position.asset] += position.amount
        return balances

    def get_held_balances(self) -> dict[HexAddress, int]:
        """Actual token balances of the vault per asset, raw token units."""
        return {asset: self._get_token(asset).balance_of(self.address) for asset in self.assets.assets}

    def is_solvent(self) -> bool:
        """Recorded positions never exceed what the vault holds."""
        held = self.get_held_balances()
        return all(amount <= held[asset] for asset, amount in self.get_accounted_balances().items())

    def get_value_in_units(self, raw_value: int) -> Decimal:
        """Convert a common unit value from :py:meth:`get_tvl` to a human amount."""
        return Decimal(raw_value) / Decimal(10**COMMON_UNIT_DECIMALS)

    def _get_live_position(self, position_id: int) -> Position:
        position = self.storage.positions.get(position_id)
        if position is None:
            raise NotFoundError(f"Position #{position_id} not found in vault {self.address}", position_id=position_id)
        return position

    def _get_token(self, asset: HexAddress) -> StableToken:
        try:
            return self.chain.get_contract(asset, StableToken)
        except NotFoundError as e:
            raise ExternalCallError(f"Asset token {asset} is not deployed", asset=asset) from e

    def _to_common_unit(self, asset: HexAddress, amount: int) -> int:
        decimals = self._get_token(asset).decimals
        if decimals <= COMMON_UNIT_DECIMALS:
            return amount * 10 ** (COMMON_UNIT_DECIMALS - decimals)
        return amount // 10 ** (decimals - COMMON_UNIT_DECIMALS)

    def _call_token(self, token: StableToken, func_name: str, *args):
        try:
            ok = getattr(token, func_name)(*args)
        except VaultError:
            raise
        except Exception as e:
            raise ExternalCallError(f"{token.symbol}.{func_name}() failed: {e}", asset=token.address) from e

        if ok is False:
            raise ExternalCallError(f"{token.symbol}.{func_name}() returned false", asset=token.address)

    def _check_solvency(self):
        held = self.get_held_balances()
        for asset, amount in self.get_accounted_balances().items():
            if amount > held[asset]:
                raise StateError(
                    f"Vault {self.address} would record {amount} of {asset}, holds only {held[asset]}",
                    asset=asset,
                    accounted=amount,
                    held=held[asset],
                )

