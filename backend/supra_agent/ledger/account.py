"""Ed25519 signing account for the Supra ledger."""

import hashlib
from typing import Optional

from nacl.signing import SigningKey


# Single-signature Ed25519 authentication scheme byte
ED25519_SCHEME = b"\x00"


class SupraAccount:
    """Holds the signing key and derives the on-chain address."""

    def __init__(self, signing_key: SigningKey):
        self._signing_key = signing_key
        self._address: Optional[str] = None

    @classmethod
    def from_private_key_hex(cls, private_key_hex: str) -> "SupraAccount":
        """
        Load an account from a hex-encoded 32-byte Ed25519 seed.

        Raises:
            ValueError: If the key is not 32 bytes of hex
        """
        hex_str = private_key_hex.strip()
        if hex_str.startswith("0x"):
            hex_str = hex_str[2:]
        try:
            seed = bytes.fromhex(hex_str)
        except ValueError:
            raise ValueError("SUPRA_PRIVATE_KEY must be hex encoded")
        if len(seed) != 32:
            raise ValueError("SUPRA_PRIVATE_KEY must be a 32-byte Ed25519 seed")
        return cls(SigningKey(seed))

    @classmethod
    def generate(cls) -> "SupraAccount":
        return cls(SigningKey.generate())

    @property
    def public_key(self) -> bytes:
        return bytes(self._signing_key.verify_key)

    def address(self) -> str:
        """0x-prefixed account address: sha3-256(public_key || scheme)."""
        if self._address is None:
            digest = hashlib.sha3_256(self.public_key + ED25519_SCHEME).hexdigest()
            self._address = f"0x{digest}"
        return self._address

    def sign(self, message: bytes) -> bytes:
        """64-byte detached Ed25519 signature."""
        return self._signing_key.sign(message).signature

    def __repr__(self) -> str:
        # Never expose key material
        return f"SupraAccount(address={self.address()})"
