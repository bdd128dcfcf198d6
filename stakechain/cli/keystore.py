import os
import re
import json
import time
from typing import List, Dict, Optional
from ..protocol.crypto.keys import generate_private_key, public_key_from_private
from ..protocol.crypto.addresses import address_from_pubkey
from ..protocol.config.params import CURRENT_NETWORK, NetworkConfig

KEYSTORE_DIR = os.path.expanduser(os.environ.get("STAKECHAIN_KEYS", "~/.stakechain/keys"))

KEY_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]{1,64}$")
PUBLIC_FIELDS = ("name", "address", "public_key", "network")


class KeyStore:
    """
    Signing keys for the CLI, one JSON file per key.

    Addresses are derived with the prefix of the network the store was opened
    for, so the same private key imported under two networks gets two
    different addresses.
    """

    def __init__(self, root_dir: str = KEYSTORE_DIR, network: NetworkConfig = CURRENT_NETWORK):
        self.root_dir = root_dir
        self.network = network
        os.makedirs(self.root_dir, exist_ok=True)

    def _path(self, name: str) -> str:
        if not KEY_NAME_RE.match(name):
            raise ValueError(f"Invalid key name '{name}'")
        return os.path.join(self.root_dir, f"{name}.json")

    def create_key(self, name: str) -> Dict[str, str]:
        if self.get_key(name):
            raise ValueError(f"Key '{name}' already exists")
        return self._store(name, generate_private_key())

    def import_key(self, name: str, private_key_hex: str) -> Dict[str, str]:
        if self.get_key(name):
            raise ValueError(f"Key '{name}' already exists")

        try:
            priv = bytes.fromhex(private_key_hex)
        except ValueError:
            raise ValueError("Private key is not valid hex")
        if len(priv) != 32:
            raise ValueError(f"Private key must be 32 bytes, got {len(priv)}")

        return self._store(name, priv)

    def get_key(self, name: str) -> Optional[Dict[str, str]]:
        """Full key record including the private key, or None."""
        path = self._path(name)
        if not os.path.exists(path):
            return None

        with open(path, "r") as f:
            return json.load(f)

    def delete_key(self, name: str) -> bool:
        path = self._path(name)
        if not os.path.exists(path):
            return False
        os.remove(path)
        return True

    def list_keys(self) -> List[Dict[str, str]]:
        """Public view of every stored key, sorted by name."""
        keys = []
        for filename in sorted(os.listdir(self.root_dir)):
            if not filename.endswith(".json"):
                continue
            data = self.get_key(filename[:-5])
            if data:
                keys.append({field: data.get(field) for field in PUBLIC_FIELDS})
        return keys

    def _store(self, name: str, priv: bytes) -> Dict[str, str]:
        pub = public_key_from_private(priv)
        record = {
            "name": name,
            "network": self.network.network_id,
            "address": address_from_pubkey(pub, prefix=self.network.bech32_prefix_acc),
            "public_key": pub.hex(),
            # TODO: Encrypt this!
            "private_key": priv.hex(),
            "created_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        }
        path = self._path(name)
        with open(path, "w") as f:
            json.dump(record, f, indent=2)
        os.chmod(path, 0o600)
        return record
