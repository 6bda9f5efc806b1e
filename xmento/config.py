"""Static configuration and environment variables."""

import os
from pathlib import Path
from typing import Final, TypedDict


class TokenMetadata(TypedDict):
    name: str
    symbol: str
    decimals: int


#: Supported stablecoins in their fixed order.
#:
#: The order is the tie-break order of the rebalancing and the order of :py:meth:`xmento.vault.vault.XmentoVault.get_apys`.
TOKENS: Final[dict[str, TokenMetadata]] = {
    "cUSD": {"name": "Celo Dollar", "symbol": "cUSD", "decimals": 18},
    "cEUR": {"name": "Celo Euro", "symbol": "cEUR", "decimals": 18},
    "cREAL": {"name": "Celo Real", "symbol": "cREAL", "decimals": 18},
}

#: Vaults hold exactly this many assets
SUPPORTED_ASSET_COUNT: Final[int] = 3

#: Amounts are valued in this many decimals under the 1:1 stable peg
COMMON_UNIT_DECIMALS: Final[int] = 18

#: Celo Alfajores testnet
DEFAULT_CHAIN_ID: Final[int] = 44787

#: Version string reported by the legacy single-vault registry logic
FACTORY_VERSION_V1: Final[str] = "1.0.0"

#: Version string reported by the multi-vault registry logic
FACTORY_VERSION_V2: Final[str] = "2.0.0"

#: Where the registry directory is persisted by default
DEFAULT_STATE_DB: Final[Path] = Path.home() / ".xmento" / "factory-state.sqlite"

#: Environment variable overriding :py:data:`DEFAULT_STATE_DB`
STATE_DB_ENV: Final[str] = "XMENTO_STATE_DB"


def read_state_db_path() -> Path:
    """Read the registry state database location from the environment.

    :return:
        Path from `XMENTO_STATE_DB`, or :py:data:`DEFAULT_STATE_DB` if the variable is not set
    """
    value = os.environ.get(STATE_DB_ENV)
    if not value:
        return DEFAULT_STATE_DB
    return Path(value).expanduser()
