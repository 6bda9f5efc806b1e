"""Yield oracle boundary.

- The oracle is an external collaborator, only its read interface is defined here
- A read is a trusted single shot call: no retries, no default values
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from eth_typing import HexAddress

from xmento.assets import AssetRegistry
from xmento.chain import Chain
from xmento.errors import ExternalCallError, NotFoundError, VaultError

logger = logging.getLogger(__name__)


#: Yield score, higher is better
YieldScore = int | Decimal


class YieldOracle(ABC):
    """Report a yield score per asset."""

    @abstractmethod
    def get_yield(self, asset: HexAddress) -> YieldScore:
        """Get the current yield score of an asset.

        :param asset:
            Checksummed token address
        """


@dataclass(frozen=True, slots=True)
class YieldSnapshot:
    """Yield scores read at the moment of one rebalance.

    - Not persisted, consumed once
    """

    #: Token address -> score, in the fixed asset order
    scores: dict[HexAddress, YieldScore]

    def as_list(self) -> list[YieldScore]:
        return list(self.scores.values())


def _check_score(asset: HexAddress, score) -> YieldScore:
    if isinstance(score, bool) or not isinstance(score, (int, Decimal)):
        raise ExternalCallError(f"Yield oracle returned malformed score {score!r} for {asset}", asset=asset, score=score)

    if isinstance(score, Decimal) and not score.is_finite():
        raise ExternalCallError(f"Yield oracle returned non-finite score {score} for {asset}", asset=asset, score=score)

    if score < 0:
        raise ExternalCallError(f"Yield oracle returned negative score {score} for {asset}", asset=asset, score=score)

    return score


def fetch_yield_snapshot(chain: Chain, assets: AssetRegistry) -> YieldSnapshot:
    """Read the yield score of every supported asset.

    :raise ExternalCallError:
        The oracle is missing, raised, or returned a malformed score
    """
    try:
        oracle = chain.get_contract(assets.yield_oracle)
    except NotFoundError as e:
        raise ExternalCallError(f"Yield oracle not deployed at {assets.yield_oracle}", oracle=assets.yield_oracle) from e

    if not isinstance(oracle, YieldOracle):
        raise ExternalCallError(f"Contract at {assets.yield_oracle} is not a yield oracle", oracle=assets.yield_oracle)

    scores = {}
    for asset in assets.assets:
        try:
            score = oracle.get_yield(asset)
        except VaultError:
            raise
        except Exception as e:
            raise ExternalCallError(f"Yield oracle read failed for {asset}: {e}", oracle=oracle.address, asset=asset) from e
        scores[asset] = _check_score(asset, score)

    logger.debug("Yield snapshot: %s", scores)
    return YieldSnapshot(scores=scores)
