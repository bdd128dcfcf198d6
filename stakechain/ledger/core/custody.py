"""
Token custody primitives.

All value movement inside the ledger goes through these four calls, so a
balance can only change by a matching debit/credit pair or by an escrow
being released.
"""
from .accounts import Account
from ...protocol.types.value import Coin, Escrow
from ...protocol.types.common import InsufficientBalance, InvalidAmount


def debit(account: Account, amount: int) -> Coin:
    """
    Splits `amount` off an account's free balance.

    Raises:
        InvalidAmount: amount is negative
        InsufficientBalance: amount exceeds the balance
    """
    if amount < 0:
        raise InvalidAmount(f"Cannot debit negative amount {amount}")
    if amount > account.balance:
        raise InsufficientBalance(f"Insufficient balance: have {account.balance}, need {amount}")
    account.balance -= amount
    return Coin(amount=amount)


def credit(account: Account, coin: Coin) -> None:
    """Merges a coin into an account's free balance."""
    account.balance += coin.amount


def escrow(coin: Coin) -> Escrow:
    return Escrow(amount=coin.amount)


def release(holder: Escrow) -> Coin:
    """Releases escrowed value. Works once per holder."""
    return holder.release()
