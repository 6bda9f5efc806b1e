"""Mock stablecoin deployment and transfers."""

from decimal import Decimal

import pytest

from xmento.chain import Chain
from xmento.token import TokenTransferFailed, create_token


def test_deploy_token(chain: Chain, deployer):
    """Deploy mock ERC-20."""
    token = create_token(chain, deployer, "Celo Real", "cREAL", 100_000 * 10**18, 6)
    assert token.name == "Celo Real"
    assert token.symbol == "cREAL"
    assert token.total_supply() == 100_000 * 10**18
    assert token.decimals == 6
    assert token.balance_of(deployer) == 100_000 * 10**18


def test_tranfer_tokens_between_users(chain: Chain, deployer, user_1, user_2):
    token = create_token(chain, deployer, "Celo Dollar", "cUSD", 100_000 * 10**18)

    token.transfer(deployer, user_1, 10 * 10**18)
    assert token.balance_of(user_1) == 10 * 10**18

    token.transfer(user_1, user_2, 6 * 10**18)
    assert token.balance_of(user_1) == 4 * 10**18
    assert token.balance_of(user_2) == 6 * 10**18


def test_tranfer_too_much(chain: Chain, deployer, user_1, user_2):
    """Attempt to transfer more tokens than an account has."""
    token = create_token(chain, deployer, "Celo Dollar", "cUSD", 100_000 * 10**18)
    token.transfer(deployer, user_1, 10 * 10**18)

    with pytest.raises(TokenTransferFailed) as excinfo:
        token.transfer(user_1, user_2, 10 * 10**18 + 1)
    assert excinfo.value.revert_reason == "ERC20: transfer amount exceeds balance"
    assert str(excinfo.value) == "execution reverted: ERC20: transfer amount exceeds balance"


def test_transfer_from_needs_allowance(chain: Chain, deployer, user_1, user_2):
    token = create_token(chain, deployer, "Celo Dollar", "cUSD", 100)

    with pytest.raises(TokenTransferFailed, match="insufficient allowance"):
        token.transfer_from(user_1, deployer, user_2, 10)

    token.approve(deployer, user_1, 15)
    token.transfer_from(user_1, deployer, user_2, 10)
    assert token.balance_of(user_2) == 10
    assert token.allowance(deployer, user_1) == 5


def test_transfer_to_zero_address(chain: Chain, deployer):
    token = create_token(chain, deployer, "Celo Dollar", "cUSD", 100)
    with pytest.raises(TokenTransferFailed, match="zero address"):
        token.transfer(deployer, "0x0000000000000000000000000000000000000000", 1)


def test_convert_decimals(chain: Chain, deployer):
    token = create_token(chain, deployer, "Celo Dollar", "cUSD", 0)
    assert token.convert_to_decimals(15 * 10**17) == Decimal("1.5")
    assert token.convert_to_raw(Decimal("1.5")) == 15 * 10**17
