"""ERC-20 stablecoin contracts on the in-process chain.

Deploy stablecoins to be used by vaults and within your test suite.

- Raw amounts are integers in token decimals, human amounts are :py:class:`~decimal.Decimal`
- Reverts raise :py:class:`TokenTransferFailed` with ERC-20 style revert reasons
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from eth_typing import HexAddress

from xmento.address import is_zero_address, normalise_address
from xmento.chain import Chain, Contract

logger = logging.getLogger(__name__)


class TokenTransferFailed(Exception):
    """ERC-20 call reverted."""

    def __init__(self, revert_reason: str):
        super().__init__(f"execution reverted: {revert_reason}")
        self.revert_reason = revert_reason


@dataclass(slots=True)
class TokenStorage:
    name: str
    symbol: str
    decimals: int
    total_supply: int = 0
    balances: dict[HexAddress, int] = field(default_factory=dict)

    #: (owner, spender) -> raw allowance
    allowances: dict[tuple[HexAddress, HexAddress], int] = field(default_factory=dict)


class StableToken(Contract):
    """Mintable ERC-20 token.

    - Anyone can mint, like `ERC20Mock` in Solidity test suites
    """

    def __init__(self, chain: Chain, address: HexAddress, name: str, symbol: str, decimals: int = 18):
        super().__init__(chain, address)
        assert type(decimals) == int and 0 <= decimals <= 36, f"Bad decimals: {decimals}"
        self.storage = TokenStorage(name=name, symbol=symbol, decimals=decimals)

    def __repr__(self):
        return f"<{self.symbol} at {self.address}>"

    @property
    def name(self) -> str:
        return self.storage.name

    @property
    def symbol(self) -> str:
        return self.storage.symbol

    @property
    def decimals(self) -> int:
        return self.storage.decimals

    def total_supply(self) -> int:
        return self.storage.total_supply

    def balance_of(self, account: HexAddress | str) -> int:
        return self.storage.balances.get(normalise_address(account), 0)

    def allowance(self, owner: HexAddress | str, spender: HexAddress | str) -> int:
        return self.storage.allowances.get((normalise_address(owner), normalise_address(spender)), 0)

    def convert_to_decimals(self, raw_amount: int) -> Decimal:
        """Convert raw token units to human amount.

        Example:

        .. code-block:: python

            assert cusd.convert_to_decimals(10**18) == Decimal(1)
        """
        return Decimal(raw_amount) / Decimal(10**self.decimals)

    def convert_to_raw(self, decimal_amount: Decimal) -> int:
        """Convert human amount to raw token units."""
        assert isinstance(decimal_amount, (Decimal, int)), f"Got {type(decimal_amount)}"
        return int(decimal_amount * 10**self.decimals)

    def mint(self, to: HexAddress | str, amount: int):
        to = normalise_address(to)
        self._check_amount(amount)
        self.storage.total_supply += amount
        self.storage.balances[to] = self.storage.balances.get(to, 0) + amount

    def approve(self, sender: HexAddress | str, spender: HexAddress | str, amount: int) -> bool:
        sender = normalise_address(sender)
        spender = normalise_address(spender)
        self._check_amount(amount)
        if is_zero_address(spender):
            raise TokenTransferFailed("ERC20: approve to the zero address")
        self.storage.allowances[(sender, spender)] = amount
        return True

    def transfer(self, sender: HexAddress | str, to: HexAddress | str, amount: int) -> bool:
        self._move(normalise_address(sender), normalise_address(to), amount)
        return True

    def transfer_from(self, sender: HexAddress | str, from_: HexAddress | str, to: HexAddress | str, amount: int) -> bool:
        """Move tokens using the allowance `from_` has given to `sender`."""
        sender = normalise_address(sender)
        from_ = normalise_address(from_)
        to = normalise_address(to)
        self._check_amount(amount)
        allowed = self.storage.allowances.get((from_, sender), 0)
        if allowed < amount:
            raise TokenTransferFailed("ERC20: insufficient allowance")
        self._move(from_, to, amount)
        self.storage.allowances[(from_, sender)] = allowed - amount
        return True

    def _move(self, from_: HexAddress, to: HexAddress, amount: int):
        self._check_amount(amount)
        if is_zero_address(to):
            raise TokenTransferFailed("ERC20: transfer to the zero address")
        balance = self.storage.balances.get(from_, 0)
        if balance < amount:
            raise TokenTransferFailed("ERC20: transfer amount exceeds balance")
        self.storage.balances[from_] = balance - amount
        self.storage.balances[to] = self.storage.balances.get(to, 0) + amount

    @staticmethod
    def _check_amount(amount: int):
        if type(amount) != int or amount < 0:
            raise TokenTransferFailed(f"ERC20: invalid amount {amount!r}")


def create_token(
    chain: Chain,
    deployer: HexAddress | str,
    name: str,
    symbol: str,
    supply: int,
    decimals: int = 18,
    token_class: type[StableToken] = StableToken,
) -> StableToken:
    """Deploys a new ERC-20 token on the chain.

    Example:

    .. code-block:: python

        # Deploy an ERC-20 token
        token = create_token(chain, deployer, "Celo Dollar", "cUSD", 1_000_000 * 10**18)
        assert token.balance_of(deployer) == 1_000_000 * 10**18

    :param supply:
        Raw amount minted to the deployer

    :param token_class:
        Override for test tokens with custom transfer behaviour

    :return:
        The deployed token
    """
    token = chain.deploy(deployer, token_class, name, symbol, decimals)
    if supply:
        token.mint(deployer, supply)
    logger.info("Created token %s (%s) at %s", name, symbol, token.address)
    return token
