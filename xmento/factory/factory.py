"""Vault factory logic classes.

- :py:class:`VaultFactory` is the legacy single-vault-per-principal logic
- :py:class:`VaultFactoryV2` allows any number of vaults per principal and migrates the legacy records

Logic classes hold no state of their own. They run against the :py:class:`~xmento.factory.storage.FactoryStorage`
of a :py:class:`~xmento.factory.proxy.FactoryProxy`, and share its reentrancy flag and address.
"""

import logging
from typing import TYPE_CHECKING

from eth_typing import HexAddress

from xmento.address import normalise_address
from xmento.assets import AssetRegistry
from xmento.chain import Chain
from xmento.config import FACTORY_VERSION_V1, FACTORY_VERSION_V2
from xmento.errors import AuthorizationError, ExternalCallError, NotFoundError, StateError, ValidationError, VaultError
from xmento.events import VaultCreated, VaultCreatedV2
from xmento.factory.storage import STORAGE_LAYOUT_V1, STORAGE_LAYOUT_V2, FactoryStorage, SchemaVersion, VaultRecord
from xmento.guard import non_reentrant
from xmento.vault.vault import XmentoVault

if TYPE_CHECKING:
    from xmento.factory.proxy import FactoryProxy

logger = logging.getLogger(__name__)


class VaultFactory:
    """Single vault per principal factory logic.

    - A second :py:meth:`create_vault` by the same principal is rejected
    """

    #: Storage fields this logic reads and writes
    storage_layout: tuple[str, ...] = STORAGE_LAYOUT_V1

    version: str = FACTORY_VERSION_V1

    #: Schema a fresh deployment starts with
    initial_schema_version: SchemaVersion = SchemaVersion.v1

    def __init__(self, proxy: "FactoryProxy"):
        self.proxy = proxy

    @property
    def storage(self) -> FactoryStorage:
        return self.proxy.storage.state

    @property
    def chain(self) -> Chain:
        return self.proxy.chain

    @property
    def address(self) -> HexAddress:
        return self.proxy.address

    @property
    def owner(self) -> HexAddress | None:
        return self.storage.owner

    @non_reentrant
    def initialize(self, sender: HexAddress | str, assets: AssetRegistry, vault_implementation: type[XmentoVault] = XmentoVault):
        """Set up a freshly deployed factory.

        :param sender:
            Becomes the registry operator

        :raise StateError:
            Already initialised
        """
        sender = normalise_address(sender, "sender")
        if self.storage.owner is not None:
            raise StateError(f"Factory {self.address} already initialised", factory=self.address)
        assert isinstance(assets, AssetRegistry), f"Got {type(assets)}"
        _check_vault_implementation(vault_implementation)
        self.storage.owner = sender
        self.storage.assets = assets
        self.storage.vault_implementation = vault_implementation
        if "schema_version" in self.storage_layout:
            self.storage.schema_version = self.initial_schema_version
        logger.info("Factory %s initialised by %s, vault template %s", self.address, sender, vault_implementation.__name__)

    @non_reentrant
    def create_vault(self, sender: HexAddress | str) -> tuple[XmentoVault, int]:
        """Create the vault of a principal.

        :return:
            Tuple (vault contract, index in the principal's vault list)

        :raise StateError:
            The principal already has a vault
        """
        sender = normalise_address(sender, "sender")
        self._check_initialized()
        existing = self.storage.user_to_vault.get(sender)
        if existing is not None:
            raise StateError("Vault already exists", principal=sender, vault=existing)

        vault = self._deploy_vault(sender)
        self.storage.user_to_vault[sender] = vault.address
        self._register_vault(vault.address)
        self.proxy.emit(VaultCreated(principal=sender, vault=vault.address))
        logger.info("Created vault %s for %s", vault.address, sender)
        return vault, 0

    @non_reentrant
    def set_vault_implementation(self, sender: HexAddress | str, vault_implementation: type[XmentoVault]):
        """Swap the template used by subsequent :py:meth:`create_vault` calls.

        - Already created vaults keep running the logic they were created with

        :raise AuthorizationError:
            Sender is not the registry operator
        """
        self._check_operator(sender)
        _check_vault_implementation(vault_implementation)
        old = self.storage.vault_implementation
        self.storage.vault_implementation = vault_implementation
        logger.info("Factory %s vault template %s -> %s", self.address, old.__name__, vault_implementation.__name__)

    def get_vaults(self) -> list[HexAddress]:
        """All vaults in creation order."""
        return list(self.storage.all_vaults)

    def is_vault(self, vault: HexAddress | str) -> bool:
        """Malformed addresses are not vaults."""
        try:
            vault = normalise_address(vault, "vault")
        except ValidationError:
            return False
        return self.storage.known_vaults.get(vault, False)

    def get_user_vaults(self, principal: HexAddress | str) -> list[HexAddress]:
        """Vaults of a principal, the list index is the stable vault index."""
        principal = normalise_address(principal, "principal")
        vault = self.storage.user_to_vault.get(principal)
        return [vault] if vault else []

    def get_user_vault(self, principal: HexAddress | str, index: int) -> HexAddress:
        """
        :raise NotFoundError:
            Index out of range
        """
        vaults = self.get_user_vaults(principal)
        if type(index) != int or not (0 <= index < len(vaults)):
            raise NotFoundError(f"Vault index {index} out of range, {principal} has {len(vaults)} vaults", principal=principal, index=index)
        return vaults[index]

    def get_user_vault_count(self, principal: HexAddress | str) -> int:
        return len(self.get_user_vaults(principal))

    def get_vault(self, vault: HexAddress | str) -> XmentoVault:
        """Resolve a vault address created by this factory to its contract.

        :raise NotFoundError:
            Not a vault of this factory
        """
        if not self.is_vault(vault):
            raise NotFoundError(f"Unknown vault {vault}", vault=vault)
        return self.chain.get_contract(vault, XmentoVault)

    def get_vault_record(self, vault: HexAddress | str) -> VaultRecord:
        """
        :raise NotFoundError:
            Not a vault of this factory
        """
        vault = normalise_address(vault, "vault")
        record = self.storage.vault_records.get(vault)
        if record is not None:
            return record

        if not self.is_vault(vault):
            raise NotFoundError(f"Unknown vault {vault}", vault=vault)

        for principal, legacy_vault in self.storage.user_to_vault.items():
            if legacy_vault == vault:
                return VaultRecord(owner=principal, vault=vault, created_at=self.storage.all_vaults.index(vault) + 1)

        raise NotFoundError(f"Vault {vault} has no owner record", vault=vault)

    def get_version(self) -> str:
        return self.version

    def get_schema_version(self) -> SchemaVersion:
        return self.storage.schema_version

    def _check_initialized(self):
        if self.storage.owner is None:
            raise StateError(f"Factory {self.address} is not initialised", factory=self.address)

    def _check_operator(self, sender: HexAddress | str) -> HexAddress:
        sender = normalise_address(sender, "sender")
        self._check_initialized()
        if sender != self.storage.owner:
            raise AuthorizationError(f"Only the registry operator {self.storage.owner} can do this, got {sender}", sender=sender)
        return sender

    def _deploy_vault(self, principal: HexAddress) -> XmentoVault:
        """Deploy a vault from the current template and initialise it.

        - Initialisation is an external call into the new vault
        """
        vault = self.chain.deploy(self.address, self.storage.vault_implementation, factory=self.address)
        try:
            vault.initialize(self.address, principal, self.storage.assets)
        except VaultError:
            raise
        except Exception as e:
            raise ExternalCallError(f"Vault {vault.address} initialisation failed: {e}", vault=vault.address) from e
        return vault

    def _register_vault(self, vault: HexAddress):
        assert vault not in self.storage.known_vaults, f"Vault {vault} registered twice"
        self.storage.all_vaults.append(vault)
        self.storage.known_vaults[vault] = True


class VaultFactoryV2(VaultFactory):
    """Multi-vault factory logic.

    - Appends :py:attr:`~xmento.factory.storage.FactoryStorage.user_vaults`,
      :py:attr:`~xmento.factory.storage.FactoryStorage.schema_version` and
      :py:attr:`~xmento.factory.storage.FactoryStorage.vault_records` to the storage layout

    - After an upgrade from :py:class:`VaultFactory`, :py:meth:`migrate_v1_data` must be run
      before principals with a legacy vault can create more.
      Until then reads present the legacy vault as index 0.
    """

    storage_layout = STORAGE_LAYOUT_V2

    version = FACTORY_VERSION_V2

    # Fresh deployment, nothing to migrate
    initial_schema_version = SchemaVersion.v2

    @non_reentrant
    def create_vault(self, sender: HexAddress | str) -> tuple[XmentoVault, int]:
        """Create a new vault for a principal.

        :return:
            Tuple (vault contract, index in the principal's vault list)

        :raise StateError:
            Legacy records exist and have not been migrated
        """
        sender = normalise_address(sender, "sender")
        self._check_initialized()
        if self._needs_migration():
            raise StateError("Legacy vault records not migrated, run migrate_v1_data() first", principal=sender)

        vault = self._deploy_vault(sender)
        vaults = self.storage.user_vaults.setdefault(sender, [])
        vaults.append(vault.address)
        index = len(vaults) - 1
        self._register_vault(vault.address)
        self.storage.vault_records[vault.address] = VaultRecord(owner=sender, vault=vault.address, created_at=len(self.storage.all_vaults))
        self.proxy.emit(VaultCreatedV2(principal=sender, vault=vault.address, index=index))
        logger.info("Created vault %s for %s at index %d", vault.address, sender, index)
        return vault, index

    @non_reentrant
    def migrate_v1_data(self, sender: HexAddress | str) -> int:
        """Move legacy single-vault records to the vault lists.

        - Each legacy vault becomes index 0 of its principal's list
        - Running again after a successful migration changes nothing

        :return:
            Number of legacy records migrated, 0 on a repeated run

        :raise StateError:
            Legacy records are inconsistent with the vault set
        """
        self._check_operator(sender)
        storage = self.storage
        if storage.schema_version == SchemaVersion.v2:
            logger.warning("Factory %s already migrated, nothing to do", self.address)
            return 0

        migrated = 0
        for principal, vault in storage.user_to_vault.items():
            if not storage.known_vaults.get(vault):
                raise StateError(f"Legacy vault {vault} of {principal} is not a known vault", principal=principal, vault=vault)

            vaults = storage.user_vaults.setdefault(principal, [])
            if vault not in vaults:
                vaults.insert(0, vault)

            storage.vault_records[vault] = VaultRecord(owner=principal, vault=vault, created_at=storage.all_vaults.index(vault) + 1)
            migrated += 1

        self._check_directory()
        storage.schema_version = SchemaVersion.v2
        logger.info("Factory %s migrated %d legacy vault records", self.address, migrated)
        return migrated

    def get_user_vaults(self, principal: HexAddress | str) -> list[HexAddress]:
        principal = normalise_address(principal, "principal")
        vaults = list(self.storage.user_vaults.get(principal, []))
        if self.storage.schema_version == SchemaVersion.v1:
            legacy = self.storage.user_to_vault.get(principal)
            if legacy is not None and legacy not in vaults:
                vaults.insert(0, legacy)
        return vaults

    def _needs_migration(self) -> bool:
        return self.storage.schema_version == SchemaVersion.v1 and len(self.storage.user_to_vault) > 0

    def _check_directory(self):
        """Every vault is in exactly one principal list, and nothing else is."""
        listed = [vault for vaults in self.storage.user_vaults.values() for vault in vaults]
        if len(listed) != len(set(listed)) or set(listed) != set(self.storage.all_vaults):
            raise StateError(
                f"Vault directory inconsistent: {len(listed)} listed, {len(self.storage.all_vaults)} known",
                listed=len(listed),
                known=len(self.storage.all_vaults),
            )


def _check_vault_implementation(vault_implementation: type):
    if not (isinstance(vault_implementation, type) and issubclass(vault_implementation, XmentoVault)):
        raise ValidationError(f"Vault template must be an XmentoVault subclass, got {vault_implementation!r}", implementation=vault_implementation)
