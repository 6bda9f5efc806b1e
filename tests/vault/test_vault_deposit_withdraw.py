"""Vault deposit and withdraw."""

from decimal import Decimal

import pytest

from xmento.errors import AuthorizationError, ExternalCallError, NotFoundError, StateError, ValidationError
from xmento.events import Deposited, Withdrawn
from xmento.vault.position import PositionState
from xmento.vault.vault import XmentoVault

USER_FUNDS = 1_000 * 10**18


def test_deposit_withdraw_round_trip(vault: XmentoVault, cusd, user_1):
    """Deposit 100 cUSD, get position 1, withdraw it and get everything back."""
    amount = 100 * 10**18
    position_id = vault.deposit(user_1, cusd.address, amount)
    assert position_id == 1

    assert cusd.balance_of(user_1) == USER_FUNDS - amount
    assert cusd.balance_of(vault.address) == amount
    assert vault.owner_of(1) == user_1
    assert vault.get_user_balance(user_1) == amount
    assert vault.get_tvl() == amount

    position = vault.get_position(1)
    assert position.asset == cusd.address
    assert position.amount == amount
    assert position.state == PositionState.created

    closed = vault.withdraw(user_1, 1)
    assert closed.state == PositionState.destroyed
    assert cusd.balance_of(user_1) == USER_FUNDS
    assert cusd.balance_of(vault.address) == 0
    assert vault.get_user_balance(user_1) == 0
    assert vault.get_tvl() == 0

    assert vault.get_events(Deposited) == [Deposited(user=user_1, asset=cusd.address, amount=amount, position_id=1)]
    assert vault.get_events(Withdrawn) == [Withdrawn(user=user_1, asset=cusd.address, amount=amount, position_id=1)]


def test_withdraw_twice(vault: XmentoVault, ceur, user_1):
    """Second withdraw fails, no double payout."""
    vault.deposit(user_1, ceur.address, 50 * 10**18)
    vault.withdraw(user_1, 1)
    balance = ceur.balance_of(user_1)

    with pytest.raises(NotFoundError):
        vault.withdraw(user_1, 1)

    assert ceur.balance_of(user_1) == balance

    with pytest.raises(NotFoundError):
        vault.get_position(1)

    with pytest.raises(NotFoundError):
        vault.owner_of(1)


def test_deposit_by_symbol(vault: XmentoVault, creal, user_1):
    position_id = vault.deposit(user_1, "cREAL", 10 * 10**18)
    assert vault.get_position(position_id).asset == creal.address


def test_deposit_lowercase_address(vault: XmentoVault, cusd, user_1):
    position_id = vault.deposit(user_1, cusd.address.lower(), 10 * 10**18)
    assert vault.get_position(position_id).asset == cusd.address


def test_deposit_unsupported_asset(vault: XmentoVault, chain, deployer, user_1):
    from xmento.token import create_token

    other = create_token(chain, deployer, "Tether USD", "USDT", 1_000)
    with pytest.raises(ValidationError):
        vault.deposit(user_1, other.address, 100)

    with pytest.raises(ValidationError):
        vault.deposit(user_1, "USDT", 100)

    with pytest.raises(ValidationError):
        vault.deposit(user_1, 12345, 100)


@pytest.mark.parametrize("amount", [0, -1, True, 1.5, "100"])
def test_deposit_bad_amount(vault: XmentoVault, cusd, user_1, amount):
    with pytest.raises(ValidationError):
        vault.deposit(user_1, cusd.address, amount)
    assert vault.get_positions() == []


def test_deposit_without_allowance(vault: XmentoVault, cusd, user_1):
    """Failed pull creates no position and burns no id."""
    cusd.approve(user_1, vault.address, 0)
    log_count = len(vault.chain.logs)

    with pytest.raises(ExternalCallError, match="insufficient allowance"):
        vault.deposit(user_1, cusd.address, 100 * 10**18)

    assert vault.get_positions() == []
    assert vault.balance_of(user_1) == 0
    assert len(vault.chain.logs) == log_count
    assert not vault.entered

    cusd.approve(user_1, vault.address, 100 * 10**18)
    assert vault.deposit(user_1, cusd.address, 100 * 10**18) == 1


def test_deposit_more_than_balance(vault: XmentoVault, cusd, user_1):
    cusd.approve(user_1, vault.address, USER_FUNDS * 2)
    with pytest.raises(ExternalCallError, match="exceeds balance"):
        vault.deposit(user_1, cusd.address, USER_FUNDS + 1)
    assert cusd.balance_of(user_1) == USER_FUNDS


def test_withdraw_not_holder(vault: XmentoVault, cusd, user_1, user_2):
    vault.deposit(user_1, cusd.address, 100 * 10**18)
    with pytest.raises(AuthorizationError):
        vault.withdraw(user_2, 1)
    assert vault.get_position(1).amount == 100 * 10**18


def test_position_ids_never_reused(vault: XmentoVault, cusd, ceur, user_1, user_2):
    assert vault.deposit(user_1, cusd.address, 10) == 1
    assert vault.deposit(user_2, ceur.address, 20) == 2
    vault.withdraw(user_2, 2)
    assert vault.deposit(user_2, ceur.address, 30) == 3
    assert [p.position_id for p in vault.get_positions()] == [1, 3]


def test_balances_and_tvl(vault: XmentoVault, cusd, ceur, creal, user_1, user_2):
    """Positions of any depositor count towards TVL, user balances follow handles."""
    vault.deposit(user_1, cusd.address, 10 * 10**18)
    vault.deposit(user_1, ceur.address, 20 * 10**18)
    vault.deposit(user_2, creal.address, 5 * 10**18)

    assert vault.get_tvl() == 35 * 10**18
    assert vault.get_user_balance(user_1) == 30 * 10**18
    assert vault.get_user_balance(user_2) == 5 * 10**18
    assert vault.balance_of(user_1) == 2
    assert [p.position_id for p in vault.get_positions_of(user_1)] == [1, 2]

    assert vault.get_accounted_balances() == {cusd.address: 10 * 10**18, ceur.address: 20 * 10**18, creal.address: 5 * 10**18}
    assert vault.get_held_balances() == vault.get_accounted_balances()
    assert vault.is_solvent()
    assert vault.get_value_in_units(vault.get_tvl()) == Decimal(35)


def test_donation_keeps_vault_solvent(vault: XmentoVault, cusd, user_1, user_2):
    """Tokens sent to the vault directly are held but not accounted."""
    vault.deposit(user_1, cusd.address, 10 * 10**18)
    cusd.transfer(user_2, vault.address, 1 * 10**18)
    assert vault.get_held_balances()[cusd.address] == 11 * 10**18
    assert vault.get_accounted_balances()[cusd.address] == 10 * 10**18
    assert vault.get_tvl() == 10 * 10**18
    assert vault.is_solvent()


def test_initialize_only_once(vault: XmentoVault, factory, deployment, user_2):
    with pytest.raises(StateError):
        vault.initialize(factory.address, user_2, deployment.assets)

    with pytest.raises(AuthorizationError):
        vault.initialize(user_2, user_2, deployment.assets)

    assert vault.owner != user_2


def test_uninitialized_vault(chain, deployer, cusd, user_1):
    vault = chain.deploy(deployer, XmentoVault, factory=deployer)
    with pytest.raises(StateError):
        vault.deposit(user_1, cusd.address, 100)

    with pytest.raises(StateError):
        vault.get_apys()

    # Nothing to value yet
    assert vault.get_tvl() == 0


def test_returned_positions_are_copies(vault: XmentoVault, cusd, user_1):
    """Changing a position handed out by a read does not change the vault accounting."""
    amount = 100 * 10**18
    vault.deposit(user_1, cusd.address, amount)

    vault.get_position(1).amount = 10**30
    vault.get_positions()[0].amount = 10**30
    vault.get_positions_of(user_1)[0].state = PositionState.destroyed

    assert vault.get_tvl() == amount
    assert vault.get_user_balance(user_1) == amount
    assert vault.is_solvent()
    assert vault.get_position(1).state == PositionState.created

    closed = vault.withdraw(user_1, 1)
    closed.amount = 10**30
    assert cusd.balance_of(user_1) == USER_FUNDS
    assert vault.get_tvl() == 0
