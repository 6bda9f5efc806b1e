"""Test collaborators and deployment helpers.

- Mock yield oracle and exchange standing in for the external services
- Malicious contracts for reentrancy testing
"""

import logging
from dataclasses import dataclass, field

from eth_typing import HexAddress

from xmento.address import normalise_address
from xmento.assets import AssetRegistry
from xmento.chain import Chain, Contract
from xmento.errors import AuthorizationError
from xmento.exchange import Exchange
from xmento.factory.deployment import XmentoDeployment, deploy_stablecoins, deploy_vault_factory
from xmento.factory.factory import VaultFactory, VaultFactoryV2
from xmento.oracle import YieldOracle, YieldScore
from xmento.token import StableToken
from xmento.vault.vault import XmentoVault

logger = logging.getLogger(__name__)


#: Same APY for all assets, like the original test fixtures
DEFAULT_APY = 5

#: Raw amount of each token the dummy exchange holds to pay out
DEFAULT_EXCHANGE_LIQUIDITY = 1_000_000 * 10**18


@dataclass(slots=True)
class MockOracleStorage:
    owner: HexAddress

    #: Asset -> score, unset assets report 0
    apys: dict[HexAddress, YieldScore] = field(default_factory=dict)

    #: Raise on every read
    failing: bool = False


class MockYieldOracle(Contract, YieldOracle):
    """Owner-set APYs."""

    def __init__(self, chain: Chain, address: HexAddress, owner: HexAddress | str):
        super().__init__(chain, address)
        self.storage = MockOracleStorage(owner=normalise_address(owner, "owner"))

    def update_apy(self, sender: HexAddress | str, asset: HexAddress | str, apy: YieldScore):
        if normalise_address(sender, "sender") != self.storage.owner:
            raise AuthorizationError("Only the oracle owner can update APYs", sender=sender)
        self.storage.apys[normalise_address(asset, "asset")] = apy

    def set_failing(self, failing: bool):
        self.storage.failing = failing

    def get_yield(self, asset: HexAddress) -> YieldScore:
        if self.storage.failing:
            raise RuntimeError("Yield oracle offline")
        return self.storage.apys.get(asset, 0)


@dataclass(slots=True)
class DummyExchangeStorage:
    #: Fee + price impact in basis points, taken off the output
    slippage_bps: int = 0

    #: Raw amount paid less than reported
    short_delivery: int = 0

    #: Raise on every convert
    failing: bool = False


class DummyExchange(Contract, Exchange):
    """1:1 stablecoin swaps paid from the exchange's own token reserves."""

    def __init__(self, chain: Chain, address: HexAddress):
        super().__init__(chain, address)
        self.storage = DummyExchangeStorage()

    def set_slippage(self, slippage_bps: int):
        assert 0 <= slippage_bps <= 10_000
        self.storage.slippage_bps = slippage_bps

    def set_short_delivery(self, amount: int):
        self.storage.short_delivery = amount

    def set_failing(self, failing: bool):
        self.storage.failing = failing

    def get_amount_out(self, amount: int) -> int:
        return amount * (10_000 - self.storage.slippage_bps) // 10_000

    def convert(self, sender: HexAddress, from_asset: HexAddress, to_asset: HexAddress, amount: int) -> int:
        if self.storage.failing:
            raise RuntimeError("DEX: swap failed")

        source = self.chain.get_contract(from_asset, StableToken)
        target = self.chain.get_contract(to_asset, StableToken)
        source.transfer_from(self.address, sender, self.address, amount)

        amount_out = self.get_amount_out(amount)
        delivered = max(amount_out - self.storage.short_delivery, 0)
        if delivered:
            target.transfer(self.address, sender, delivered)
        logger.debug("DummyExchange: %d %s -> %d %s", amount, source.symbol, amount_out, target.symbol)
        return amount_out


class MaliciousVault(XmentoVault):
    """Vault template that calls back into the factory while being initialised."""

    def initialize(self, sender: HexAddress | str, owner: HexAddress | str, assets: AssetRegistry):
        super().initialize(sender, owner, assets)
        factory = self.chain.get_contract(self.storage.factory)
        factory.create_vault(self.address)


class ReentrantToken(StableToken):
    """Token that calls back into a vault on every transfer.

    Set :py:attr:`attack_vault` to arm.
    """

    def __init__(self, chain: Chain, address: HexAddress, name: str, symbol: str, decimals: int = 18):
        super().__init__(chain, address, name, symbol, decimals)

        #: Vault to call back into
        self.attack_vault: HexAddress | None = None

        #: "deposit" or "withdraw"
        self.attack_function = "deposit"

    def transfer(self, sender: HexAddress | str, to: HexAddress | str, amount: int) -> bool:
        self._attack()
        return super().transfer(sender, to, amount)

    def transfer_from(self, sender: HexAddress | str, from_: HexAddress | str, to: HexAddress | str, amount: int) -> bool:
        self._attack()
        return super().transfer_from(sender, from_, to, amount)

    def _attack(self):
        if self.attack_vault is None:
            return
        vault = self.chain.get_contract(self.attack_vault, XmentoVault)
        if self.attack_function == "deposit":
            vault.deposit(self.address, self.address, 1)
        else:
            vault.withdraw(self.address, 1)


def create_xmento_deployment(
    chain: Chain,
    deployer: HexAddress | str,
    vault_implementation: type[XmentoVault] = XmentoVault,
    factory_implementation: type[VaultFactory] = VaultFactoryV2,
    token_class: type[StableToken] = StableToken,
    apy: YieldScore = DEFAULT_APY,
    exchange_liquidity: int = DEFAULT_EXCHANGE_LIQUIDITY,
) -> XmentoDeployment:
    """Deploy tokens, mock collaborators and the factory for tests.

    :param apy:
        Initial APY for every asset

    :param exchange_liquidity:
        Raw amount of each token minted to the exchange
    """
    deployer = normalise_address(deployer, "deployer")
    tokens = deploy_stablecoins(chain, deployer, token_class=token_class)

    oracle = chain.deploy(deployer, MockYieldOracle, deployer)
    for token in tokens.values():
        oracle.update_apy(deployer, token.address, apy)

    exchange = chain.deploy(deployer, DummyExchange)
    if exchange_liquidity:
        for token in tokens.values():
            token.mint(exchange.address, exchange_liquidity)

    assets = AssetRegistry.create(list(tokens.values()), yield_oracle=oracle.address, exchange=exchange.address)
    factory = deploy_vault_factory(chain, deployer, assets, vault_implementation, factory_implementation)
    return XmentoDeployment(
        chain=chain,
        deployer=deployer,
        tokens=tokens,
        assets=assets,
        yield_oracle=oracle,
        exchange=exchange,
        factory=factory,
    )


def set_apys(deployment: XmentoDeployment, cusd: YieldScore, ceur: YieldScore, creal: YieldScore):
    """Set the APYs of all three assets at once."""
    oracle: MockYieldOracle = deployment.yield_oracle
    for token, apy in zip(deployment.tokens.values(), (cusd, ceur, creal)):
        oracle.update_apy(deployment.deployer, token.address, apy)
