"""Upgradeable factory proxy.

- The proxy address and the directory stored behind it stay the same across logic upgrades,
  in the manner of an ERC-1967 transparent proxy
- Calls not handled by the proxy itself are delegated to the current logic class

Example:

.. code-block:: python

    factory = chain.deploy(deployer, FactoryProxy, VaultFactory)
    factory.initialize(deployer, assets)
    factory.create_vault(user)

    factory.upgrade_to(deployer, VaultFactoryV2)
    factory.migrate_v1_data(deployer)
    assert factory.get_version() == "2.0.0"
"""

import logging
from dataclasses import dataclass, field

from eth_typing import HexAddress

from xmento.address import normalise_address
from xmento.chain import Chain, Contract
from xmento.errors import AuthorizationError, ValidationError
from xmento.factory.factory import VaultFactory
from xmento.factory.storage import FactoryStorage, assert_storage_layout_compatible
from xmento.guard import non_reentrant

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProxyStorage:
    #: Current logic class, the ERC-1967 implementation slot
    implementation: type[VaultFactory]

    #: Directory the logic operates on
    state: FactoryStorage = field(default_factory=FactoryStorage)


class FactoryProxy(Contract):
    """Stable factory reference with swappable logic."""

    def __init__(self, chain: Chain, address: HexAddress, implementation: type[VaultFactory]):
        super().__init__(chain, address)
        _check_factory_implementation(implementation)
        self.storage = ProxyStorage(implementation=implementation)

    def __repr__(self):
        return f"<FactoryProxy at {self.address} to {self.implementation.__name__}>"

    def __getattr__(self, name: str):
        # Only called for attributes the proxy does not have itself
        if name.startswith("_") or "storage" not in self.__dict__:
            raise AttributeError(name)
        return getattr(self.logic, name)

    @property
    def implementation(self) -> type[VaultFactory]:
        return self.storage.implementation

    @property
    def logic(self) -> VaultFactory:
        """Current logic bound to this proxy."""
        return self.storage.implementation(self)

    @non_reentrant
    def upgrade_to(self, sender: HexAddress | str, implementation: type[VaultFactory]):
        """Swap the factory logic.

        - The new logic must only append to the storage layout of the current one

        :raise AuthorizationError:
            Sender is not the registry operator

        :raise StateError:
            Storage layouts are incompatible
        """
        sender = normalise_address(sender, "sender")
        if sender != self.storage.state.owner:
            raise AuthorizationError(f"Only the registry operator {self.storage.state.owner} can upgrade, got {sender}", sender=sender)

        _check_factory_implementation(implementation)
        old = self.storage.implementation
        assert_storage_layout_compatible(old.storage_layout, implementation.storage_layout)
        self.storage.implementation = implementation
        logger.info("Factory proxy %s upgraded %s -> %s", self.address, old.__name__, implementation.__name__)


def _check_factory_implementation(implementation: type):
    if not (isinstance(implementation, type) and issubclass(implementation, VaultFactory)):
        raise ValidationError(f"Not a factory logic class: {implementation!r}", implementation=implementation)
