"""Persist the vault directory on disk.

Factory storage survives process restarts and logic upgrades the same way it survives
upgrades on chain: fields are keyed by name, and a newer layout only appends fields.

See :py:class:`FactoryStateStore`.
"""

import importlib
import json
import logging
import sqlite3
from pathlib import Path
from threading import get_ident
from typing import Any

from xmento.assets import AssetRegistry
from xmento.errors import StateError
from xmento.factory.storage import STORAGE_LAYOUT_V2, FactoryStorage, SchemaVersion, VaultRecord

logger = logging.getLogger(__name__)


class PersistentKeyValueStore:
    """String key-value table in a SQLite file.

    - Values go through the :py:meth:`encode_value` and :py:meth:`decode_value` hooks
    - One connection per thread
    """

    def __init__(self, filename: Path, autocommit=True):
        assert isinstance(filename, Path)
        self.autocommit = autocommit
        self.filename = filename
        self.thread_connection_map = {}

    @property
    def conn(self) -> sqlite3.Connection:
        thread_id = get_ident()
        if thread_id not in self.thread_connection_map:
            self.filename.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.filename)
            conn.execute("CREATE TABLE IF NOT EXISTS kv (key text unique, value text)")
            self.thread_connection_map[thread_id] = conn
        return self.thread_connection_map[thread_id]

    def encode_value(self, value: Any) -> str:
        return value

    def decode_value(self, value: str) -> Any:
        return value

    def close(self):
        conn = self.thread_connection_map.pop(get_ident(), None)
        if conn is not None:
            conn.commit()
            conn.close()

    def commit(self):
        self.conn.commit()

    def keys(self) -> list[str]:
        return [row[0] for row in self.conn.execute("SELECT key FROM kv")]

    def __getitem__(self, key: str) -> Any:
        item = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if item is None:
            raise KeyError(key)
        return self.decode_value(item[0])

    def __setitem__(self, key: str, value: Any):
        value = self.encode_value(value)
        assert type(value) == str, f"Only string values allowed, got {value}"
        self.conn.execute("REPLACE INTO kv (key, value) VALUES (?,?)", (key, value))
        if self.autocommit:
            self.conn.commit()


class JSONKeyValueStore(PersistentKeyValueStore):
    """Store JSON documents."""

    def encode_value(self, value: Any) -> str:
        return json.dumps(value)

    def decode_value(self, value: str) -> Any:
        return json.loads(value)


def _encode_class(cls: type) -> str:
    return f"{cls.__module__}:{cls.__qualname__}"


def _decode_class(path: str) -> type:
    module_name, _, qualname = path.partition(":")
    try:
        obj = importlib.import_module(module_name)
        for part in qualname.split("."):
            obj = getattr(obj, part)
    except (ImportError, AttributeError) as e:
        raise StateError(f"Cannot import stored vault template {path}", path=path) from e
    return obj


def _encode_field(name: str, value: Any) -> Any:
    match name:
        case "vault_implementation":
            return _encode_class(value) if value is not None else None
        case "assets":
            if value is None:
                return None
            return {
                "assets": list(value.assets),
                "symbols": list(value.symbols),
                "yield_oracle": value.yield_oracle,
                "exchange": value.exchange,
            }
        case "known_vaults":
            return list(value.keys())
        case "schema_version":
            return value.value
        case "vault_records":
            return [[r.owner, r.vault, r.created_at] for r in value.values()]
        case _:
            return value


def _decode_field(name: str, value: Any) -> Any:
    match name:
        case "vault_implementation":
            return _decode_class(value) if value is not None else None
        case "assets":
            if value is None:
                return None
            return AssetRegistry(
                assets=tuple(value["assets"]),
                symbols=tuple(value["symbols"]),
                yield_oracle=value["yield_oracle"],
                exchange=value["exchange"],
            )
        case "known_vaults":
            return {vault: True for vault in value}
        case "schema_version":
            return SchemaVersion(value)
        case "vault_records":
            return {vault: VaultRecord(owner=owner, vault=vault, created_at=created_at) for owner, vault, created_at in value}
        case _:
            return value


class FactoryStateStore:
    """Save and load :py:class:`~xmento.factory.storage.FactoryStorage`.

    - One JSON document per storage field
    - Loading a record written by an older, shorter layout fills the appended fields with defaults
    - The vault template class is stored as an import path `module:qualname`

    Example:

    .. code-block:: python

        store = FactoryStateStore(read_state_db_path())
        store.save_storage(factory.storage.state)

        restored = store.load_storage()
    """

    def __init__(self, filename: Path):
        self.kv = JSONKeyValueStore(filename, autocommit=False)

    def close(self):
        self.kv.close()

    def save_storage(self, storage: FactoryStorage, layout: tuple[str, ...] = STORAGE_LAYOUT_V2):
        """Write the fields of a layout.

        :param layout:
            Fields to write, the layout of the logic in use
        """
        for name in layout:
            self.kv[name] = _encode_field(name, getattr(storage, name))
        self.kv.commit()
        logger.info("Saved %d factory storage fields to %s", len(layout), self.kv.filename)

    def load_storage(self) -> FactoryStorage:
        """Read the stored fields back.

        :raise StateError:
            The store has a field the storage does not know of
        """
        known = FactoryStorage.__dataclass_fields__
        values = {}
        for name in self.kv.keys():
            if name not in known:
                raise StateError(f"Unknown factory storage field in {self.kv.filename}: {name}", field=name)
            values[name] = _decode_field(name, self.kv[name])

        missing = [name for name in known if name not in values]
        if missing:
            logger.info("Stored factory state predates fields %s, using defaults", missing)

        return FactoryStorage(**values)
