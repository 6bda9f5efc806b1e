"""Deploy and upgrade the vault factory.

Example:

.. code-block:: python

    tokens = deploy_stablecoins(chain, deployer)
    assets = AssetRegistry.create(list(tokens.values()), yield_oracle=oracle.address, exchange=exchange.address)

    factory = deploy_vault_factory(chain, deployer, assets, factory_implementation=VaultFactory)
    ...
    upgrade_vault_factory(factory, deployer, VaultFactoryV2)
"""

import logging
from dataclasses import dataclass

from eth_typing import HexAddress

from xmento.address import normalise_address
from xmento.assets import AssetRegistry
from xmento.chain import Chain
from xmento.config import TOKENS
from xmento.exchange import Exchange
from xmento.factory.factory import VaultFactory, VaultFactoryV2
from xmento.factory.proxy import FactoryProxy
from xmento.factory.storage import assert_storage_layout_compatible
from xmento.oracle import YieldOracle
from xmento.token import StableToken, create_token
from xmento.vault.vault import XmentoVault

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class XmentoDeployment:
    """Everything deployed for one vault system.

    - Have the deployment report for diagnostics
    """

    chain: Chain

    deployer: HexAddress

    #: Symbol -> token, in the fixed asset order
    tokens: dict[str, StableToken]

    assets: AssetRegistry

    yield_oracle: YieldOracle

    exchange: Exchange

    factory: FactoryProxy

    @property
    def cusd(self) -> StableToken:
        return self.tokens["cUSD"]

    @property
    def ceur(self) -> StableToken:
        return self.tokens["cEUR"]

    @property
    def creal(self) -> StableToken:
        return self.tokens["cREAL"]

    def get_deployment_data(self) -> dict:
        """Addresses of the deployment as a human readable dict."""
        fields = {
            "Chain id": self.chain.chain_id,
            "Deployer": self.deployer,
            "Factory": self.factory.address,
            "Factory version": self.factory.get_version(),
            "Vault template": self.factory.storage.state.vault_implementation.__name__,
            "Yield oracle": self.assets.yield_oracle,
            "Exchange": self.assets.exchange,
        }
        for symbol, token in self.tokens.items():
            fields[symbol] = token.address
        return fields


def deploy_stablecoins(
    chain: Chain,
    deployer: HexAddress | str,
    supply: int = 0,
    token_class: type[StableToken] = StableToken,
) -> dict[str, StableToken]:
    """Deploy the supported stablecoins.

    :param supply:
        Raw amount of each token minted to the deployer

    :param token_class:
        Override for test tokens with custom transfer behaviour

    :return:
        Symbol -> token, in the fixed asset order
    """
    return {symbol: create_token(chain, deployer, meta["name"], meta["symbol"], supply, meta["decimals"], token_class) for symbol, meta in TOKENS.items()}


def deploy_vault_factory(
    chain: Chain,
    deployer: HexAddress | str,
    assets: AssetRegistry,
    vault_implementation: type[XmentoVault] = XmentoVault,
    factory_implementation: type[VaultFactory] = VaultFactoryV2,
) -> FactoryProxy:
    """Deploy the factory behind its proxy and initialise it.

    :param deployer:
        Becomes the registry operator

    :param factory_implementation:
        Logic to start with. Use :py:class:`~xmento.factory.factory.VaultFactory`
        to get a legacy factory for upgrade testing.

    :return:
        The factory proxy
    """
    deployer = normalise_address(deployer, "deployer")
    factory = chain.deploy(deployer, FactoryProxy, factory_implementation)
    factory.initialize(deployer, assets, vault_implementation)
    logger.info("Deployed factory %s with %s logic at %s", factory.get_version(), factory_implementation.__name__, factory.address)
    return factory


def upgrade_vault_factory(
    factory: FactoryProxy,
    sender: HexAddress | str,
    implementation: type[VaultFactory] = VaultFactoryV2,
    migrate: bool = True,
) -> int | None:
    """Validate the storage layout, upgrade the factory logic and migrate the legacy records.

    - Upgrade and migration are one atomic step, a failed migration leaves the old logic in place

    :return:
        Number of migrated legacy records, or None if `migrate` was not asked
    """
    old = factory.implementation
    assert_storage_layout_compatible(old.storage_layout, implementation.storage_layout)
    vaults_before = factory.get_vaults()

    migrated = None
    with factory.chain.transaction():
        factory.upgrade_to(sender, implementation)
        if migrate:
            migrated = factory.migrate_v1_data(sender)

    assert factory.get_vaults() == vaults_before, "Vault set changed in upgrade"
    logger.info(
        "Factory %s upgraded %s -> %s, version %s, migrated %s records",
        factory.address,
        old.__name__,
        implementation.__name__,
        factory.get_version(),
        migrated,
    )
    return migrated
