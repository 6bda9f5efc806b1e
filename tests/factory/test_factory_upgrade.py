"""Factory logic upgrade from single-vault to multi-vault, and the legacy record migration."""

import pytest

from xmento.errors import AuthorizationError, StateError
from xmento.factory.deployment import XmentoDeployment, upgrade_vault_factory
from xmento.factory.factory import VaultFactory, VaultFactoryV2
from xmento.factory.proxy import FactoryProxy
from xmento.factory.storage import STORAGE_LAYOUT_V1, STORAGE_LAYOUT_V2, SchemaVersion, assert_storage_layout_compatible
from xmento.testing import create_xmento_deployment

USER_FUNDS = 1_000 * 10**18


@pytest.fixture()
def legacy_deployment(chain, deployer, user_1, user_2) -> XmentoDeployment:
    """Single-vault factory where both users already have their vault."""
    deployment = create_xmento_deployment(chain, deployer, factory_implementation=VaultFactory)
    deployment.factory.create_vault(user_1)
    deployment.factory.create_vault(user_2)
    return deployment


@pytest.fixture()
def legacy_factory(legacy_deployment) -> FactoryProxy:
    return legacy_deployment.factory


def test_upgrade_and_migrate(legacy_factory: FactoryProxy, deployer, user_1, user_2):
    """Vaults survive the upgrade, legacy vaults become index 0, new vaults append."""
    vaults_before = legacy_factory.get_vaults()
    user_1_legacy = legacy_factory.get_user_vault(user_1, 0)
    proxy_address = legacy_factory.address

    legacy_factory.upgrade_to(deployer, VaultFactoryV2)
    assert legacy_factory.address == proxy_address
    assert legacy_factory.get_version() == "2.0.0"
    assert legacy_factory.get_schema_version() == SchemaVersion.v1

    migrated = legacy_factory.migrate_v1_data(deployer)
    assert migrated == 2
    assert legacy_factory.get_schema_version() == SchemaVersion.v2
    assert legacy_factory.get_vaults() == vaults_before

    new_vault, index = legacy_factory.create_vault(user_1)
    assert index == 1
    assert legacy_factory.get_user_vaults(user_1) == [user_1_legacy, new_vault.address]
    assert legacy_factory.get_user_vault_count(user_1) == 2
    assert legacy_factory.get_user_vault_count(user_2) == 1
    assert legacy_factory.get_user_vault(user_1, 0) == user_1_legacy

    assert legacy_factory.get_vault_record(user_1_legacy).created_at == 1
    assert legacy_factory.get_vault_record(new_vault.address).created_at == 3


def test_reads_before_migration(legacy_factory: FactoryProxy, deployer, user_1):
    """Upgraded but not migrated: legacy vault shows as index 0, creation is blocked."""
    legacy_vault = legacy_factory.get_user_vault(user_1, 0)
    legacy_factory.upgrade_to(deployer, VaultFactoryV2)

    assert legacy_factory.get_user_vaults(user_1) == [legacy_vault]
    assert legacy_factory.get_user_vault(user_1, 0) == legacy_vault

    with pytest.raises(StateError, match="migrate"):
        legacy_factory.create_vault(user_1)


def test_migrate_twice(legacy_factory: FactoryProxy, deployer, user_1, user_2):
    legacy_factory.upgrade_to(deployer, VaultFactoryV2)
    legacy_factory.migrate_v1_data(deployer)
    first = (legacy_factory.get_vaults(), legacy_factory.get_user_vaults(user_1), legacy_factory.get_user_vaults(user_2))

    assert legacy_factory.migrate_v1_data(deployer) == 0
    second = (legacy_factory.get_vaults(), legacy_factory.get_user_vaults(user_1), legacy_factory.get_user_vaults(user_2))
    assert first == second
    assert len(second[1]) == 1


def test_migrate_operator_only(legacy_factory: FactoryProxy, deployer, user_1):
    legacy_factory.upgrade_to(deployer, VaultFactoryV2)
    with pytest.raises(AuthorizationError):
        legacy_factory.migrate_v1_data(user_1)
    assert legacy_factory.get_schema_version() == SchemaVersion.v1


def test_upgrade_operator_only(legacy_factory: FactoryProxy, user_1):
    with pytest.raises(AuthorizationError):
        legacy_factory.upgrade_to(user_1, VaultFactoryV2)
    assert legacy_factory.implementation is VaultFactory


def test_downgrade_rejected(chain, deployer):
    """Multi-vault layout cannot be replaced with the shorter legacy layout."""
    deployment = create_xmento_deployment(chain, deployer)
    with pytest.raises(StateError, match="Incompatible storage layout"):
        deployment.factory.upgrade_to(deployer, VaultFactory)
    assert deployment.factory.implementation is VaultFactoryV2


def test_storage_layout_check():
    assert_storage_layout_compatible(STORAGE_LAYOUT_V1, STORAGE_LAYOUT_V2)
    assert_storage_layout_compatible(STORAGE_LAYOUT_V2, STORAGE_LAYOUT_V2)

    reordered = (STORAGE_LAYOUT_V1[1], STORAGE_LAYOUT_V1[0]) + STORAGE_LAYOUT_V1[2:]
    with pytest.raises(StateError):
        assert_storage_layout_compatible(STORAGE_LAYOUT_V1, reordered)

    with pytest.raises(StateError, match="unknown fields"):
        assert_storage_layout_compatible(STORAGE_LAYOUT_V2, STORAGE_LAYOUT_V2 + ("fees",))


def test_upgrade_helper(legacy_factory: FactoryProxy, deployer, user_1):
    migrated = upgrade_vault_factory(legacy_factory, deployer, VaultFactoryV2)
    assert migrated == 2
    assert legacy_factory.get_version() == "2.0.0"
    _, index = legacy_factory.create_vault(user_1)
    assert index == 1


def test_failed_migration_keeps_old_logic(legacy_factory: FactoryProxy, deployer, user_1):
    """Upgrade and migration are one step: corrupted legacy data rolls the upgrade back."""
    legacy_factory.storage.state.user_to_vault[deployer] = "0x4000000000000000000000000000000000000004"

    with pytest.raises(StateError, match="not a known vault"):
        upgrade_vault_factory(legacy_factory, deployer, VaultFactoryV2)

    assert legacy_factory.implementation is VaultFactory
    assert legacy_factory.get_schema_version() == SchemaVersion.v1
    assert legacy_factory.storage.state.user_vaults == {}


def test_upgrade_without_legacy_vaults(chain, deployer, user_1):
    """Nothing to migrate: principals can create many vaults right after the upgrade."""
    deployment = create_xmento_deployment(chain, deployer, factory_implementation=VaultFactory)
    factory = deployment.factory
    factory.upgrade_to(deployer, VaultFactoryV2)

    for _ in range(3):
        factory.create_vault(user_1)

    vaults = factory.get_user_vaults(user_1)
    assert len(vaults) == 3
    assert len(set(vaults)) == 3
    assert factory.get_vaults() == vaults

    assert factory.migrate_v1_data(deployer) == 0
    assert factory.get_user_vaults(user_1) == vaults


def test_legacy_vault_works_after_upgrade(legacy_deployment: XmentoDeployment, deployer, user_1):
    """Upgrading the factory does not touch vaults."""
    factory = legacy_deployment.factory
    cusd = legacy_deployment.cusd
    vault = factory.get_vault(factory.get_user_vault(user_1, 0))
    cusd.mint(user_1, USER_FUNDS)
    cusd.approve(user_1, vault.address, USER_FUNDS)
    vault.deposit(user_1, cusd.address, 100 * 10**18)

    upgrade_vault_factory(factory, deployer)

    assert vault.get_user_balance(user_1) == 100 * 10**18
    vault.withdraw(user_1, 1)
    assert cusd.balance_of(user_1) == USER_FUNDS
