"""Shared fixtures: an in-process chain with the stablecoins, mock collaborators and the vault factory."""

import pytest
from eth_typing import HexAddress
from eth_utils import to_checksum_address

from xmento.chain import Chain
from xmento.factory.deployment import XmentoDeployment
from xmento.factory.proxy import FactoryProxy
from xmento.testing import create_xmento_deployment
from xmento.token import StableToken
from xmento.vault.vault import XmentoVault

#: How much of each stablecoin test users start with
USER_FUNDS = 1_000 * 10**18


@pytest.fixture()
def chain() -> Chain:
    return Chain()


@pytest.fixture()
def deployer() -> HexAddress:
    """Deploys everything and operates the factory."""
    return to_checksum_address("0x1000000000000000000000000000000000000001")


@pytest.fixture()
def user_1() -> HexAddress:
    return to_checksum_address("0x2000000000000000000000000000000000000002")


@pytest.fixture()
def user_2() -> HexAddress:
    return to_checksum_address("0x3000000000000000000000000000000000000003")


@pytest.fixture()
def deployment(chain, deployer, user_1, user_2) -> XmentoDeployment:
    """Multi-vault factory with funded users."""
    deployment = create_xmento_deployment(chain, deployer)
    for token in deployment.tokens.values():
        token.mint(user_1, USER_FUNDS)
        token.mint(user_2, USER_FUNDS)
    return deployment


@pytest.fixture()
def factory(deployment) -> FactoryProxy:
    return deployment.factory


@pytest.fixture()
def cusd(deployment) -> StableToken:
    return deployment.cusd


@pytest.fixture()
def ceur(deployment) -> StableToken:
    return deployment.ceur


@pytest.fixture()
def creal(deployment) -> StableToken:
    return deployment.creal


@pytest.fixture()
def vault(deployment, factory, user_1, user_2) -> XmentoVault:
    """Vault of user_1, both users have approved it for all their funds."""
    vault, index = factory.create_vault(user_1)
    assert index == 0
    for token in deployment.tokens.values():
        token.approve(user_1, vault.address, USER_FUNDS)
        token.approve(user_2, vault.address, USER_FUNDS)
    return vault
