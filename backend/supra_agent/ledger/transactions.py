"""Transaction payload builders and signing for the Supra ledger."""

import hashlib
from dataclasses import dataclass, field
from typing import List, Union

from supra_agent.ledger.account import SupraAccount
from supra_agent.ledger.bcs import Serializer


# TransactionPayload variant tags
PAYLOAD_ENTRY_FUNCTION = 2
PAYLOAD_AUTOMATION_REGISTRATION = 4

# AutomationRegistrationParams variant tag
AUTOMATION_PARAMS_V1 = 0

# TransactionAuthenticator variant tag
AUTHENTICATOR_ED25519 = 0

RAW_TRANSACTION_SALT = b"SUPRA::RawTransaction"


@dataclass
class EntryFunction:
    """Call target ``address::module::function`` with BCS-encoded arguments."""

    module_address: str
    module_name: str
    function_name: str
    args: List[bytes] = field(default_factory=list)

    def serialize(self, serializer: Serializer) -> None:
        serializer.address(self.module_address)
        serializer.str(self.module_name)
        serializer.str(self.function_name)
        serializer.uleb128(0)  # no type arguments
        serializer.sequence(self.args, Serializer.to_bytes)


@dataclass
class AutomationRegistration:
    """Registers ``automated_function`` to be run by the ledger every epoch until expiry."""

    automated_function: EntryFunction
    max_gas_amount: int
    gas_price_cap: int
    automation_fee_cap: int
    expiration_timestamp_secs: int
    aux_data: List[bytes] = field(default_factory=list)

    def serialize(self, serializer: Serializer) -> None:
        serializer.uleb128(AUTOMATION_PARAMS_V1)
        self.automated_function.serialize(serializer)
        serializer.u64(self.max_gas_amount)
        serializer.u64(self.gas_price_cap)
        serializer.u64(self.automation_fee_cap)
        serializer.u64(self.expiration_timestamp_secs)
        serializer.sequence(self.aux_data, Serializer.to_bytes)


Payload = Union[EntryFunction, AutomationRegistration]


@dataclass
class RawTransaction:
    sender: str
    sequence_number: int
    payload: Payload
    max_gas_amount: int
    gas_unit_price: int
    expiration_timestamp_secs: int
    chain_id: int

    def serialize(self, serializer: Serializer) -> None:
        serializer.address(self.sender)
        serializer.u64(self.sequence_number)
        if isinstance(self.payload, AutomationRegistration):
            serializer.uleb128(PAYLOAD_AUTOMATION_REGISTRATION)
        else:
            serializer.uleb128(PAYLOAD_ENTRY_FUNCTION)
        self.payload.serialize(serializer)
        serializer.u64(self.max_gas_amount)
        serializer.u64(self.gas_unit_price)
        serializer.u64(self.expiration_timestamp_secs)
        serializer.u8(self.chain_id)

    def to_bytes(self) -> bytes:
        serializer = Serializer()
        self.serialize(serializer)
        return serializer.output()

    def signing_message(self) -> bytes:
        return hashlib.sha3_256(RAW_TRANSACTION_SALT).digest() + self.to_bytes()


def sign_transaction(account: SupraAccount, raw_txn: RawTransaction) -> bytes:
    """
    Sign a raw transaction and return the BCS-encoded signed transaction.

    Args:
        account: Signing account (must be the transaction sender)
        raw_txn: Transaction to sign

    Returns:
        bytes: raw transaction followed by an Ed25519 authenticator
    """
    if raw_txn.sender != account.address():
        raise ValueError("Transaction sender does not match signing account")

    signature = account.sign(raw_txn.signing_message())

    serializer = Serializer()
    raw_txn.serialize(serializer)
    serializer.uleb128(AUTHENTICATOR_ED25519)
    serializer.to_bytes(account.public_key)
    serializer.to_bytes(signature)
    return serializer.output()
