"""Asset exchange boundary.

- The exchange is an external collaborator, only its execute interface is defined here
- The reported output amount is ground truth, including slippage and fees,
  as long as the token balances agree with it
"""

import logging
from abc import ABC, abstractmethod

from eth_typing import HexAddress

from xmento.assets import AssetRegistry
from xmento.chain import Chain
from xmento.errors import ExternalCallError, NotFoundError, VaultError
from xmento.token import StableToken

logger = logging.getLogger(__name__)


class Exchange(ABC):
    """Convert one supported asset to another."""

    @abstractmethod
    def convert(self, sender: HexAddress, from_asset: HexAddress, to_asset: HexAddress, amount: int) -> int:
        """Swap `amount` of `from_asset` held by `sender` to `to_asset`.

        - Pulls `amount` from `sender` using the allowance given to the exchange
        - Pays the output to `sender`

        :return:
            Raw amount of `to_asset` paid out
        """


def execute_conversion(
    chain: Chain,
    assets: AssetRegistry,
    holder: HexAddress,
    from_asset: HexAddress,
    to_asset: HexAddress,
    amount: int,
) -> int:
    """Convert assets held by a vault through the exchange.

    - Approves the exchange for exactly `amount`
    - Checks the balance movements agree with the reported output

    :param holder:
        The vault doing the conversion

    :return:
        Raw output amount

    :raise ExternalCallError:
        Exchange failed, or the balances do not match the reported output
    """
    assert from_asset != to_asset
    assert type(amount) == int and amount > 0, f"Bad amount {amount}"

    try:
        exchange = chain.get_contract(assets.exchange)
    except NotFoundError as e:
        raise ExternalCallError(f"Exchange not deployed at {assets.exchange}", exchange=assets.exchange) from e

    if not isinstance(exchange, Exchange):
        raise ExternalCallError(f"Contract at {assets.exchange} is not an exchange", exchange=assets.exchange)

    source: StableToken = chain.get_contract(from_asset, StableToken)
    target: StableToken = chain.get_contract(to_asset, StableToken)

    source_before = source.balance_of(holder)
    target_before = target.balance_of(holder)

    try:
        source.approve(holder, exchange.address, amount)
        amount_out = exchange.convert(holder, from_asset, to_asset, amount)
    except VaultError:
        raise
    except Exception as e:
        raise ExternalCallError(f"Exchange conversion {source.symbol} -> {target.symbol} failed: {e}", from_asset=from_asset, to_asset=to_asset, amount=amount) from e

    if isinstance(amount_out, bool) or type(amount_out) != int or amount_out < 0:
        raise ExternalCallError(f"Exchange returned malformed output amount {amount_out!r}", amount_out=amount_out)

    pulled = source_before - source.balance_of(holder)
    received = target.balance_of(holder) - target_before

    if pulled != amount:
        raise ExternalCallError(f"Exchange pulled {pulled} {source.symbol}, requested {amount}", pulled=pulled, amount=amount)

    if received < amount_out:
        raise ExternalCallError(f"Exchange reported {amount_out} {target.symbol} out, delivered {received}", received=received, amount_out=amount_out)

    if amount_out == 0:
        raise ExternalCallError(f"Exchange returned nothing for {amount} {source.symbol}", amount=amount)

    logger.info("Converted %d %s to %d %s for %s", amount, source.symbol, amount_out, target.symbol, holder)
    return amount_out
