"""Shared fakes and fixtures for the agent tests."""

from typing import Any, Dict, List, Sequence

import pytest

from supra_agent.errors import LedgerRequestError
from supra_agent.ledger.account import SupraAccount
from supra_agent.ledger.ledger_client import LedgerClient
from supra_agent.models import MarketSnapshot


TEST_SEED_HEX = "11" * 32
MODULE_ADDRESS = "0xabc"


class FakeLedger(LedgerClient):
    """In-memory ledger. Submission outcomes are scripted per attempt."""

    def __init__(self, balance: int = 10_000 * 1_000_000):
        self.balance = balance
        self.sequence_number = 7
        self.resources: Dict[str, Dict[str, Any]] = {
            "0x1::reconfiguration::Configuration": {"last_reconfiguration_time": "1700000000000000"},
            "0x1::block::BlockResource": {"epoch_interval": "7200000000"},
        }
        self.view_results: Dict[str, List[Any]] = {
            "0x1::automation_registry::estimate_automation_fee": ["1000000"],
        }
        self.view_errors: Dict[str, Exception] = {}
        self.view_calls: List[str] = []
        # Each entry is a tx hash to return or an exception to raise
        self.submit_outcomes: List[Any] = []
        self.submissions: List[Dict[str, Any]] = []
        self.sequence_reads = 0
        self.transfers: List[Dict[str, Any]] = []

    def get_balance(self, address: str, coin_type: str = "") -> int:
        return self.balance

    def get_sequence_number(self, address: str) -> int:
        self.sequence_reads += 1
        return self.sequence_number

    def get_resource(self, address: str, resource_type: str) -> Dict[str, Any]:
        if resource_type not in self.resources:
            raise LedgerRequestError(404, "Resource not found")
        return self.resources[resource_type]

    def view(self, function: str, type_arguments: Sequence[str], arguments: Sequence[Any]) -> List[Any]:
        self.view_calls.append(function)
        if function in self.view_errors:
            raise self.view_errors[function]
        return self.view_results.get(function, [])

    def submit_signed_transaction(self, signed_txn: bytes) -> str:
        raise AssertionError("submit_scheduled_transfer is faked directly")

    def submit_scheduled_transfer(self, account, sequence_number, automated_function,
                                  max_gas_amount, gas_price_cap, fee_cap, expiry_secs) -> str:
        self.submissions.append({
            "sequence_number": sequence_number,
            "function": automated_function,
            "max_gas_amount": max_gas_amount,
            "gas_price_cap": gas_price_cap,
            "fee_cap": fee_cap,
            "expiry_secs": expiry_secs,
        })
        outcome = self.submit_outcomes.pop(0) if self.submit_outcomes else "0x" + "ab" * 32
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def transfer(self, account, recipient, amount, max_gas_amount=500, gas_unit_price=100) -> str:
        self.transfers.append({"recipient": recipient, "amount": amount})
        return "0xrecord"


@pytest.fixture
def account():
    return SupraAccount.from_private_key_hex(TEST_SEED_HEX)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def no_sleep():
    calls = []

    def sleep(seconds):
        calls.append(seconds)

    sleep.calls = calls
    return sleep


@pytest.fixture
def snapshot():
    return MarketSnapshot(
        trading_pair="btc_usdt",
        current_price=67000.0,
        change_24h=1.2,
        high_24h=68000.0,
        low_24h=66000.0,
        timestamp="2024-01-01T00:00:00Z",
    )
