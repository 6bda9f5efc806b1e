"""The fixed basket of supported stablecoins and their collaborators.

- No mutable state, a vault keeps its own copy in its storage
- Everything is referenced by address and resolved through :py:class:`~xmento.chain.Chain`
"""

from dataclasses import dataclass

from eth_typing import HexAddress

from xmento.address import normalise_address
from xmento.config import SUPPORTED_ASSET_COUNT
from xmento.errors import ValidationError
from xmento.token import StableToken


@dataclass(frozen=True)
class AssetRegistry:
    """Supported assets in their fixed order, plus the yield oracle and the exchange."""

    #: Token addresses, checksummed, in the fixed cUSD, cEUR, cREAL order
    assets: tuple[HexAddress, ...]

    #: Token symbols matching :py:attr:`assets`
    symbols: tuple[str, ...]

    #: :py:class:`xmento.oracle.YieldOracle` address
    yield_oracle: HexAddress

    #: :py:class:`xmento.exchange.Exchange` address
    exchange: HexAddress

    def __post_init__(self):
        assert len(self.assets) == SUPPORTED_ASSET_COUNT, f"Need exactly {SUPPORTED_ASSET_COUNT} assets, got {self.assets}"
        assert len(set(self.assets)) == len(self.assets), f"Duplicate assets: {self.assets}"
        assert len(self.symbols) == len(self.assets)

    @staticmethod
    def create(
        tokens: list[StableToken],
        yield_oracle: HexAddress | str,
        exchange: HexAddress | str,
    ) -> "AssetRegistry":
        """Build the registry from deployed tokens."""
        return AssetRegistry(
            assets=tuple(t.address for t in tokens),
            symbols=tuple(t.symbol for t in tokens),
            yield_oracle=normalise_address(yield_oracle, "yield oracle"),
            exchange=normalise_address(exchange, "exchange"),
        )

    def resolve(self, asset: HexAddress | str) -> HexAddress:
        """Map an asset address or a symbol to the supported asset address.

        :raise ValidationError:
            Asset is not one of the supported ones
        """
        if isinstance(asset, str) and asset in self.symbols:
            return self.assets[self.symbols.index(asset)]

        if isinstance(asset, str) and asset.startswith("0x"):
            address = normalise_address(asset, "asset")
            if address in self.assets:
                return address

        raise ValidationError(f"Unsupported asset: {asset!r}", asset=asset)

    def index_of(self, asset: HexAddress | str) -> int:
        return self.assets.index(self.resolve(asset))

    def get_symbol(self, asset: HexAddress | str) -> str:
        return self.symbols[self.index_of(asset)]
