"""Vault directory state behind the upgradeable factory proxy.

- :py:class:`FactoryStorage` outlives any logic class, logic is swapped with
  :py:meth:`xmento.factory.proxy.FactoryProxy.upgrade_to`
- Each logic class declares the storage fields it knows as an ordered layout tuple.
  A new logic may only append fields to the layout of the current logic.
"""

import enum
from dataclasses import dataclass, field

from eth_typing import HexAddress

from xmento.assets import AssetRegistry
from xmento.errors import StateError


class SchemaVersion(str, enum.Enum):
    """How principal -> vault records are stored."""

    #: One vault per principal in :py:attr:`FactoryStorage.user_to_vault`
    v1 = "v1"

    #: Vault lists in :py:attr:`FactoryStorage.user_vaults`
    v2 = "v2"


@dataclass(frozen=True)
class VaultRecord:
    """One created vault.

    - Created exactly once, never deleted or reassigned
    """

    owner: HexAddress

    vault: HexAddress

    #: 1-based creation ordinal across the whole factory
    created_at: int


@dataclass(slots=True)
class FactoryStorage:
    """Directory fields in storage order.

    - Fields up to :py:attr:`known_vaults` are the legacy single-vault layout
    - Fields after it were appended by the multi-vault logic
    """

    #: Registry operator, can swap the vault template, upgrade and migrate
    owner: HexAddress | None = None

    #: Vault class new vaults are deployed from
    vault_implementation: type | None = None

    assets: AssetRegistry | None = None

    #: Legacy principal -> their single vault
    user_to_vault: dict[HexAddress, HexAddress] = field(default_factory=dict)

    #: Every vault in creation order
    all_vaults: list[HexAddress] = field(default_factory=list)

    #: Vault -> True, membership test for :py:attr:`all_vaults`
    known_vaults: dict[HexAddress, bool] = field(default_factory=dict)

    #: Principal -> vaults in creation order
    user_vaults: dict[HexAddress, list[HexAddress]] = field(default_factory=dict)

    schema_version: SchemaVersion = SchemaVersion.v1

    #: Vault -> its record
    vault_records: dict[HexAddress, VaultRecord] = field(default_factory=dict)


#: Fields known to the single-vault factory logic
STORAGE_LAYOUT_V1: tuple[str, ...] = (
    "owner",
    "vault_implementation",
    "assets",
    "user_to_vault",
    "all_vaults",
    "known_vaults",
)

#: Fields known to the multi-vault factory logic
STORAGE_LAYOUT_V2: tuple[str, ...] = STORAGE_LAYOUT_V1 + (
    "user_vaults",
    "schema_version",
    "vault_records",
)


def assert_storage_layout_compatible(current: tuple[str, ...], new: tuple[str, ...]):
    """Check an upgrade only appends storage fields.

    :param current:
        Layout of the logic now behind the proxy

    :param new:
        Layout of the logic to upgrade to

    :raise StateError:
        A field was removed, renamed or reordered, or the new layout names a field
        :py:class:`FactoryStorage` does not have
    """
    if new[: len(current)] != current:
        raise StateError(f"Incompatible storage layout upgrade {current} -> {new}", current=current, new=new)

    unknown = set(new) - set(FactoryStorage.__dataclass_fields__)
    if unknown:
        raise StateError(f"Storage layout has unknown fields: {sorted(unknown)}", unknown=sorted(unknown))
