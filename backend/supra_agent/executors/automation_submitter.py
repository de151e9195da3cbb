"""Automation registration with fee estimation, expiry and sequence-conflict retry."""

import logging
import time
from typing import Callable, Optional

from supra_agent.errors import (
    InsufficientBalanceError,
    SequenceConflictExhaustedError,
    SubmissionFailedError,
)
from supra_agent.ledger.account import SupraAccount
from supra_agent.ledger.bcs import encode_u64
from supra_agent.ledger.ledger_client import LedgerClient
from supra_agent.ledger.transactions import EntryFunction
from supra_agent.managers.task_registry import TaskRegistry
from supra_agent.models import AutomationParameters, AutomationTask


logger = logging.getLogger(__name__)

MICRO_UNITS = 1_000_000

# Headroom required on top of the budget before anything is submitted
BALANCE_BUFFER = 500
# Headroom required on top of budget and fee after the fee is known
FEE_RECHECK_BUFFER = 100

STEP_COUNT = 2
STEP_INTERVAL_SECONDS = 2
SLIPPAGE_BPS = 400

MAX_GAS_AMOUNT = 5000
GAS_PRICE_CAP = 200
FEE_REFERENCE_GAS = 5000
FALLBACK_FEE_CAP = 1_440_000_000

EXPIRY_MARGIN_SECONDS = 300
FALLBACK_EXPIRY_SECONDS = 8 * 3600

MAX_ATTEMPTS = 3
SETTLE_DELAY_SECONDS = 8.0

TASK_ID_PREFIX = "supraagent_"


def is_sequence_conflict(error: BaseException) -> bool:
    """True if the error reports a stale or duplicate account sequence number."""
    message = str(error)
    body = getattr(error, "body", None)
    if body:
        message = f"{message} {body}"
    return "SEQUENCE_NUMBER" in message or "sequence" in message


class AutomationSubmitter:
    """Registers scheduled-transfer automations on the ledger."""

    def __init__(
        self,
        ledger: LedgerClient,
        account: SupraAccount,
        registry: TaskRegistry,
        module_address: str,
        settle_delay_seconds: float = SETTLE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the submitter.

        Args:
            ledger: Ledger RPC client
            account: Signing account that owns the automation
            registry: Task registry the new task is appended to
            module_address: Address of the on-chain swap automation module
            settle_delay_seconds: Wait after a successful submission
            sleep: Sleep function (replaced in tests)
            clock: Wall clock in Unix seconds (replaced in tests)
        """
        self.ledger = ledger
        self.account = account
        self.registry = registry
        self.module_address = module_address
        self.settle_delay_seconds = settle_delay_seconds
        self._sleep = sleep
        self._clock = clock

    @staticmethod
    def derive_parameters(total_budget: float, confidence: Optional[float] = None) -> AutomationParameters:
        """
        Split a budget into the execution schedule.

        The schedule is always two equal steps; confidence does not change it.
        """
        return AutomationParameters(
            total_budget=total_budget,
            amount_per_step=total_budget / STEP_COUNT,
            step_interval_seconds=STEP_INTERVAL_SECONDS,
            slippage_bps=SLIPPAGE_BPS,
        )

    def check_balance(self, total_budget: float) -> int:
        """
        Make sure the account can cover the budget plus headroom.

        Returns:
            int: Current balance in micro-units

        Raises:
            InsufficientBalanceError: If the balance is below budget + buffer
            SubmissionFailedError: If the balance cannot be read
        """
        try:
            balance = self.ledger.get_balance(self.account.address())
        except Exception as e:
            logger.error(f"Could not read balance: {e}")
            raise SubmissionFailedError(f"Could not read balance: {e}") from e
        required = total_budget + BALANCE_BUFFER
        if balance < required * MICRO_UNITS:
            raise InsufficientBalanceError(required, balance / MICRO_UNITS)
        return balance

    def compute_expiry(self) -> int:
        """
        Expiry (Unix seconds) just past the end of the current epoch.

        Falls back to eight hours from now when epoch state is unavailable.
        """
        try:
            last_reconfig_us, epoch_interval_us = self.ledger.read_epoch_state()
            expiry = last_reconfig_us // MICRO_UNITS + epoch_interval_us // MICRO_UNITS + EXPIRY_MARGIN_SECONDS
            logger.debug(f"Automation expiry from epoch state: {expiry}")
            return expiry
        except Exception as e:
            logger.warning(f"Could not read epoch state ({e}), using fallback expiry")
            return int(self._clock()) + FALLBACK_EXPIRY_SECONDS

    def estimate_fee(self) -> int:
        """Per-epoch automation fee cap in micro-units, or the fallback constant."""
        try:
            fee = self.ledger.estimate_fee(FEE_REFERENCE_GAS)
            logger.debug(f"Estimated automation fee: {fee}")
            return fee
        except Exception as e:
            logger.warning(f"Fee estimation failed ({e}), using fallback fee cap {FALLBACK_FEE_CAP}")
            return FALLBACK_FEE_CAP

    def _automated_function(self, params: AutomationParameters) -> EntryFunction:
        return EntryFunction(
            module_address=self.module_address,
            module_name="agent_swap_autom",
            function_name="process_automated_swap",
            args=[
                encode_u64(int(params.total_budget * MICRO_UNITS)),
                encode_u64(int(params.amount_per_step * MICRO_UNITS)),
                encode_u64(params.step_interval_seconds),
                encode_u64(params.slippage_bps),
            ],
        )

    def _submit_with_retry(self, params: AutomationParameters, expiry: int) -> str:
        automated_function = self._automated_function(params)
        address = self.account.address()

        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                sequence_number = self.ledger.get_sequence_number(address)
                logger.info(f"Submitting automation (attempt {attempt}/{MAX_ATTEMPTS}, sequence {sequence_number})")
                tx_hash = self.ledger.submit_scheduled_transfer(
                    self.account,
                    sequence_number,
                    automated_function,
                    MAX_GAS_AMOUNT,
                    GAS_PRICE_CAP,
                    params.fee_cap,
                    expiry,
                )
                if not tx_hash:
                    raise ValueError("No transaction hash returned")
                return tx_hash
            except Exception as e:
                if not is_sequence_conflict(e):
                    logger.error(f"Automation submission failed: {e}")
                    raise SubmissionFailedError(f"Automation submission failed: {e}") from e
                if attempt == MAX_ATTEMPTS:
                    logger.error(f"Sequence number conflict on final attempt {attempt}: {e}")
                    raise SequenceConflictExhaustedError(MAX_ATTEMPTS) from e
                backoff = attempt * 2 + 2
                logger.warning(f"Sequence number conflict on attempt {attempt}, retrying in {backoff}s")
                self._sleep(backoff)

        raise SequenceConflictExhaustedError(MAX_ATTEMPTS)

    def register(self, trigger_pair: str, total_budget: float,
                 confidence: Optional[float] = None) -> AutomationTask:
        """
        Register a scheduled-transfer automation for ``total_budget``.

        Args:
            trigger_pair: Trading pair that triggered the submission
            total_budget: Budget in whole SUPRA
            confidence: Decision confidence, recorded in logs only

        Returns:
            AutomationTask: The registered task, already appended to the registry

        Raises:
            InsufficientBalanceError: Balance cannot cover budget and fees
            SequenceConflictExhaustedError: Every attempt hit a sequence conflict
            SubmissionFailedError: Any other submission failure
        """
        logger.info(f"Registering automation for {trigger_pair.upper()}: budget {total_budget} SUPRA")

        balance = self.check_balance(total_budget)
        params = self.derive_parameters(total_budget, confidence)
        expiry = self.compute_expiry()
        fee_cap = self.estimate_fee()

        total_required = fee_cap + total_budget * MICRO_UNITS + FEE_RECHECK_BUFFER * MICRO_UNITS
        if balance < total_required:
            raise InsufficientBalanceError(
                total_required / MICRO_UNITS,
                balance / MICRO_UNITS,
                f"Insufficient balance for automation fee. Total needed: {total_required / MICRO_UNITS:.2f} SUPRA, "
                f"Available: {balance / MICRO_UNITS:.2f} SUPRA",
            )

        params = AutomationParameters(
            total_budget=params.total_budget,
            amount_per_step=params.amount_per_step,
            step_interval_seconds=params.step_interval_seconds,
            slippage_bps=params.slippage_bps,
            fee_cap=fee_cap,
        )

        tx_hash = self._submit_with_retry(params, expiry)
        logger.info(f"Automation submitted: {tx_hash}")

        if self.settle_delay_seconds > 0:
            logger.debug(f"Waiting {self.settle_delay_seconds}s for the registration to settle")
            self._sleep(self.settle_delay_seconds)

        task = AutomationTask(
            task_id=f"{TASK_ID_PREFIX}{tx_hash[-8:]}",
            tx_hash=tx_hash,
            total_budget=params.total_budget,
            amount_per_step=params.amount_per_step,
            step_interval_seconds=params.step_interval_seconds,
            slippage_bps=params.slippage_bps,
            trigger_pair=trigger_pair,
            status="ACTIVE",
            registered_at=int(self._clock() * 1000),
            expires_at=expiry * 1000,
        )
        self.registry.append(task)
        logger.info(f"Automation task {task.task_id} registered (expires {expiry})")
        return task
