from pydantic import BaseModel
from typing import Optional
from ..crypto.hash import sha256_hex
from .common import TxType
from ..crypto.keys import sign as crypto_sign

class Transaction(BaseModel):
    tx_type: TxType
    from_address: str
    to_address: Optional[str] = None   # TRANSFER only
    position_id: Optional[str] = None  # CLAIM / CLOSE_POSITION
    amount: int = 0                    # in minimal units (10^-6 STK)
    nonce: int
    signature: str = ""  # hex ECDSA, default empty
    pub_key: str = ""    # hex public key of sender

    def hash(self) -> str:
        payload_str = (
            self.tx_type.value
            + self.from_address
            + (self.to_address or "")
            + (self.position_id or "")
            + str(self.amount)
            + str(self.nonce)
            + self.pub_key
        )
        return sha256_hex(payload_str.encode("utf-8"))

    @property
    def hash_hex(self) -> str:
        return self.hash()

    def sign(self, priv_key_bytes: bytes):
        """Signs the transaction hash."""
        msg_hash = bytes.fromhex(self.hash())
        self.signature = crypto_sign(msg_hash, priv_key_bytes).hex()
