"""Ledger client interface and Supra RPC implementation."""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence, Tuple

import requests

from supra_agent.errors import LedgerRequestError
from supra_agent.ledger.account import SupraAccount
from supra_agent.ledger.bcs import encode_u64, parse_address
from supra_agent.ledger.transactions import (
    AutomationRegistration,
    EntryFunction,
    RawTransaction,
    sign_transaction,
)


logger = logging.getLogger(__name__)

SUPRA_COIN = "0x1::supra_coin::SupraCoin"
RECONFIGURATION_RESOURCE = "0x1::reconfiguration::Configuration"
BLOCK_RESOURCE = "0x1::block::BlockResource"
ESTIMATE_FEE_FUNCTION = "0x1::automation_registry::estimate_automation_fee"

SIGNED_TXN_CONTENT_TYPE = "application/x.supra.signed_transaction+bcs"


def extract_transaction_hash(result: Any) -> str:
    """
    Pull the transaction hash out of a submission response.

    Raises:
        ValueError: If no hash can be found
    """
    if isinstance(result, dict):
        for key in ("hash", "txHash", "transaction_hash"):
            if result.get(key):
                return result[key]
    if isinstance(result, str) and result.startswith("0x"):
        return result
    raise ValueError(f"No valid transaction hash found: {json.dumps(result, default=str)}")


class LedgerClient(ABC):
    """Read and submit operations the agent needs from the ledger."""

    chain_id: int = 6
    tx_ttl_seconds: int = 300

    @abstractmethod
    def get_balance(self, address: str, coin_type: str = SUPRA_COIN) -> int:
        """Coin balance in micro-units."""
        pass

    @abstractmethod
    def get_sequence_number(self, address: str) -> int:
        """Current account sequence number."""
        pass

    @abstractmethod
    def get_resource(self, address: str, resource_type: str) -> Dict[str, Any]:
        """Data of a Move resource stored under an account."""
        pass

    @abstractmethod
    def view(self, function: str, type_arguments: Sequence[str], arguments: Sequence[Any]) -> List[Any]:
        """Call a Move view function and return its result values."""
        pass

    @abstractmethod
    def submit_signed_transaction(self, signed_txn: bytes) -> str:
        """Submit a BCS-encoded signed transaction and return its hash."""
        pass

    def read_epoch_state(self) -> Tuple[int, int]:
        """
        Read the epoch boundary from the framework account.

        Returns:
            (last_reconfiguration_time, epoch_interval), both in microseconds
        """
        reconfig = self.get_resource("0x1", RECONFIGURATION_RESOURCE)
        block = self.get_resource("0x1", BLOCK_RESOURCE)
        return int(reconfig["last_reconfiguration_time"]), int(block["epoch_interval"])

    def estimate_fee(self, reference_gas: int) -> int:
        """
        Estimate the per-epoch automation fee for a task of ``reference_gas``.

        Raises:
            ValueError: If the view returns no estimate
        """
        result = self.view(ESTIMATE_FEE_FUNCTION, [], [str(reference_gas)])
        if not result or result[0] in (None, ""):
            raise ValueError("Empty automation fee estimate")
        return int(result[0])

    def _build_raw_transaction(self, account: SupraAccount, sequence_number: int, payload,
                               max_gas_amount: int, gas_unit_price: int) -> RawTransaction:
        return RawTransaction(
            sender=account.address(),
            sequence_number=sequence_number,
            payload=payload,
            max_gas_amount=max_gas_amount,
            gas_unit_price=gas_unit_price,
            expiration_timestamp_secs=int(time.time()) + self.tx_ttl_seconds,
            chain_id=self.chain_id,
        )

    def submit_scheduled_transfer(
        self,
        account: SupraAccount,
        sequence_number: int,
        automated_function: EntryFunction,
        max_gas_amount: int,
        gas_price_cap: int,
        fee_cap: int,
        expiry_secs: int,
    ) -> str:
        """
        Sign and submit an automation registration.

        Args:
            account: Signer and sender
            sequence_number: Sequence number to use for this attempt
            automated_function: Entry function the ledger will run
            max_gas_amount: Gas limit for each automated run
            gas_price_cap: Highest gas price the automation may pay
            fee_cap: Per-epoch automation fee cap (micro-units)
            expiry_secs: Absolute expiry of the automation (Unix seconds)

        Returns:
            str: Transaction hash
        """
        payload = AutomationRegistration(
            automated_function=automated_function,
            max_gas_amount=max_gas_amount,
            gas_price_cap=gas_price_cap,
            automation_fee_cap=fee_cap,
            expiration_timestamp_secs=expiry_secs,
        )
        raw_txn = self._build_raw_transaction(account, sequence_number, payload,
                                              max_gas_amount, gas_price_cap)
        return self.submit_signed_transaction(sign_transaction(account, raw_txn))

    def transfer(self, account: SupraAccount, recipient: str, amount: int,
                 max_gas_amount: int = 500, gas_unit_price: int = 100) -> str:
        """Transfer ``amount`` micro-units of SupraCoin to ``recipient``."""
        payload = EntryFunction(
            module_address="0x1",
            module_name="supra_account",
            function_name="transfer",
            args=[parse_address(recipient), encode_u64(amount)],
        )
        sequence_number = self.get_sequence_number(account.address())
        raw_txn = self._build_raw_transaction(account, sequence_number, payload,
                                              max_gas_amount, gas_unit_price)
        return self.submit_signed_transaction(sign_transaction(account, raw_txn))


class SupraRpcClient(LedgerClient):
    """LedgerClient backed by the Supra RPC REST API."""

    def __init__(self, rpc_url: str = "https://rpc-testnet.supra.com", chain_id: int = 6,
                 timeout: float = 15.0, submit_path: str = "/rpc/v3/transactions/submit"):
        """
        Initialize the RPC client.

        Args:
            rpc_url: Base URL of the RPC node
            chain_id: Chain id embedded in signed transactions
            timeout: Per-request timeout in seconds
            submit_path: Endpoint accepting BCS signed transactions
        """
        self.rpc_url = rpc_url.rstrip("/")
        self.chain_id = chain_id
        self.timeout = timeout
        self.submit_path = submit_path
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.rpc_url}{path}"
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if not response.ok:
            raise LedgerRequestError(response.status_code, response.text, url)
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _unwrap(data: Any) -> Any:
        """Strip the ``result``/``data`` envelope the RPC wraps values in."""
        if isinstance(data, dict):
            if "result" in data:
                data = data["result"]
            elif "data" in data and isinstance(data["data"], dict):
                data = data["data"]
        if isinstance(data, list) and len(data) == 1 and isinstance(data[0], dict):
            data = data[0]
        return data

    def get_balance(self, address: str, coin_type: str = SUPRA_COIN) -> int:
        result = self.view("0x1::coin::balance", [coin_type], [address])
        if not result or result[0] in (None, ""):
            raise ValueError(f"Empty balance result for {address}")
        return int(result[0])

    def get_sequence_number(self, address: str) -> int:
        data = self._unwrap(self._request("GET", f"/rpc/v1/accounts/{address}"))
        return int(data["sequence_number"])

    def get_resource(self, address: str, resource_type: str) -> Dict[str, Any]:
        data = self._request("GET", f"/rpc/v1/accounts/{address}/resources/{resource_type}")
        return self._unwrap(data)

    def view(self, function: str, type_arguments: Sequence[str], arguments: Sequence[Any]) -> List[Any]:
        data = self._request("POST", "/rpc/v1/view", json={
            "function": function,
            "type_arguments": list(type_arguments),
            "arguments": list(arguments),
        })
        if isinstance(data, dict):
            data = data.get("result", [])
        return list(data or [])

    def submit_signed_transaction(self, signed_txn: bytes) -> str:
        logger.debug(f"Submitting signed transaction ({len(signed_txn)} bytes)")
        result = self._request(
            "POST",
            self.submit_path,
            data=signed_txn,
            headers={"Content-Type": SIGNED_TXN_CONTENT_TYPE},
        )
        if isinstance(result, dict) and "result" in result and not isinstance(result["result"], list):
            result = result["result"]
        return extract_transaction_hash(result)
