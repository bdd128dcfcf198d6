import pytest
from pydantic import ValidationError

from stakechain.ledger.core.accounts import Account
from stakechain.ledger.core.custody import debit, credit, escrow, release
from stakechain.protocol.types.common import InsufficientBalance, InvalidAmount, EscrowReleased
from stakechain.protocol.types.value import Coin


def test_debit_and_credit_move_value():
    src = Account(address="stk1src", balance=100)
    dst = Account(address="stk1dst")

    coin = debit(src, 40)
    credit(dst, coin)

    assert coin.amount == 40
    assert src.balance == 60
    assert dst.balance == 40


def test_debit_more_than_balance_leaves_account_unchanged():
    acc = Account(address="stk1src", balance=10)
    with pytest.raises(InsufficientBalance):
        debit(acc, 11)
    assert acc.balance == 10


def test_debit_negative_amount_rejected():
    acc = Account(address="stk1src", balance=10)
    with pytest.raises(InvalidAmount):
        debit(acc, -1)


def test_escrow_releases_exactly_once():
    holder = escrow(Coin(amount=500))
    assert not holder.released

    coin = release(holder)
    assert coin.amount == 500
    assert holder.released

    with pytest.raises(EscrowReleased):
        release(holder)


def test_coin_is_immutable():
    coin = Coin(amount=5)
    with pytest.raises(ValidationError):
        coin.amount = 6
