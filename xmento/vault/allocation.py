"""Choose where a position should be held.

The policy is deliberately simple and deterministic:

- The whole position goes to the single asset with the strictly highest yield score
- Ties go to the asset that comes first in the fixed asset order (cUSD, cEUR, cREAL)
"""

from eth_typing import HexAddress

from xmento.oracle import YieldSnapshot


def choose_target_asset(snapshot: YieldSnapshot) -> HexAddress:
    """Pick the asset a position should be rebalanced to.

    :param snapshot:
        Scores in the fixed asset order
    """
    assert snapshot.scores, "Empty yield snapshot"
    best_asset = None
    best_score = None
    for asset, score in snapshot.scores.items():
        # Strictly greater, so the earlier asset wins a tie
        if best_score is None or score > best_score:
            best_asset = asset
            best_score = score
    return best_asset


def get_optimal_allocation(snapshot: YieldSnapshot) -> list[int]:
    """Target allocation as integer percentages in the fixed asset order.

    Example: `[0, 100, 0]` when cEUR has the best yield.
    """
    target = choose_target_asset(snapshot)
    return [100 if asset == target else 0 for asset in snapshot.scores]
