"""
Local transaction signing with a configured private key.
"""

from eth_account import Account
from eth_utils import to_checksum_address, to_hex

from .models import PreparedTransaction


class LocalSigner:
    """Signs EIP-1559 transactions for a single account held in memory."""

    def __init__(self, private_key: str):
        if not private_key:
            raise ValueError("A private key is required to sign transactions")
        key = private_key if private_key.startswith("0x") else f"0x{private_key}"
        self._account = Account.from_key(key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, tx: PreparedTransaction) -> str:
        """Return the raw signed transaction as a ``0x`` hex string."""
        unsigned = tx.to_signable()
        unsigned["to"] = to_checksum_address(unsigned["to"])
        signed = self._account.sign_transaction(unsigned)
        return to_hex(signed.raw_transaction)
