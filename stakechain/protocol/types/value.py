from pydantic import BaseModel, ConfigDict, Field
from .common import EscrowReleased

class Coin(BaseModel):
    """A value object moving between balances. Never mutated in place."""
    model_config = ConfigDict(frozen=True)

    amount: int = Field(ge=0)

class Escrow(BaseModel):
    """
    Holder for value locked inside a position.

    Two states: held (released=False) and released. release() hands the
    value back exactly once; any later call raises EscrowReleased.
    """
    amount: int = Field(ge=0)
    released: bool = False

    def release(self) -> Coin:
        if self.released:
            raise EscrowReleased("Escrowed value already released")
        self.released = True
        return Coin(amount=self.amount)
