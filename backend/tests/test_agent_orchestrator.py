"""
Tests for supra_agent/controllers/agent_orchestrator.py

Tests cover:
- Round state progression
- Snapshot failure handling
- Consensus overriding the draft analysis
- Submission eligibility
- History and round log recording
"""

import dataclasses
import json
from unittest.mock import MagicMock

import pytest

from supra_agent.config import Config
from supra_agent.controllers.agent_orchestrator import AgentOrchestrator
from supra_agent.data_fetchers.oracle_fetcher import OracleClient
from supra_agent.decision_provider import AnalysisProvider
from supra_agent.errors import InsufficientBalanceError, LedgerRequestError, TransientFetchError
from supra_agent.executors.automation_submitter import AutomationSubmitter
from supra_agent.executors.onchain_recorder import OnChainRecorder
from supra_agent.experts.expert_panel import ExpertPanel
from supra_agent.logger import RoundLogger
from supra_agent.managers.task_registry import TaskRegistry
from supra_agent.memory.analysis_history import AnalysisHistory
from supra_agent.models import AnalysisRecord, AutomationTask, ConsensusDecision, ExpertVote, RoundState

from conftest import MODULE_ADDRESS, TEST_SEED_HEX, FakeLedger


def make_config(**overrides):
    values = dict(
        oracle_api_key="oracle-key",
        private_key_hex=TEST_SEED_HEX,
        openai_api_key=None,
        oracle_base_url="https://oracle.test",
        rpc_url="https://rpc.test",
        chain_id=6,
        module_address=MODULE_ADDRESS,
        openai_model="gpt-3.5-turbo",
        trading_pairs=["btc_usdt"],
        loop_interval_seconds=300,
        enable_auto_trading=True,
        enable_experts=True,
        enable_onchain_recording=False,
        max_investment_per_trade=400,
        confidence_threshold=0.7,
        risk_level="MEDIUM",
        expert_timeout_seconds=20,
        settle_delay_seconds=0,
    )
    values.update(overrides)
    return Config(**values)


class FakeOracle(OracleClient):
    def __init__(self, snapshot, history=None, fail=False):
        self.snapshot = snapshot
        self.history = history or [{"close": "66000"}, {"close": "67000"}]
        self.fail = fail

    def fetch_snapshot(self, trading_pair):
        if self.fail:
            raise TransientFetchError("oracle down")
        return dataclasses.replace(self.snapshot, trading_pair=trading_pair)

    def fetch_history(self, trading_pair, hours_back=24):
        return self.history


class FixedProvider(AnalysisProvider):
    def __init__(self, recommendation="BUY", confidence=0.5):
        self.recommendation = recommendation
        self.confidence = confidence

    def analyze(self, snapshot, history):
        return AnalysisRecord(pair=snapshot.trading_pair, analysis="draft",
                              recommendation=self.recommendation,
                              confidence=self.confidence, reasoning="draft reasoning")


class BrokenProvider(AnalysisProvider):
    def analyze(self, snapshot, history):
        raise RuntimeError("model unavailable")


def consensus(recommendation="BUY", confidence=80, agreement=80, execute=True):
    votes = (ExpertVote("technical_analyst", recommendation, confidence, "r"),)
    return ConsensusDecision(votes=votes, recommendation=recommendation, confidence=confidence,
                             agreement_percentage=agreement, should_execute=execute)


def make_task():
    return AutomationTask(task_id="supraagent_abcd1234", tx_hash="0xabcd1234", total_budget=400,
                          amount_per_step=200, step_interval_seconds=2, slippage_bps=400,
                          trigger_pair="btc_usdt", status="ACTIVE", registered_at=0, expires_at=0)


@pytest.fixture
def submitter():
    mock = MagicMock(spec=AutomationSubmitter)
    mock.register.return_value = make_task()
    return mock


def build(ledger, account, snapshot, submitter, provider=None, panel=None, config=None,
          oracle=None, **kwargs):
    return AgentOrchestrator(
        config=config or make_config(),
        oracle=oracle or FakeOracle(snapshot),
        analysis_provider=provider or FixedProvider(),
        ledger=ledger,
        account=account,
        submitter=submitter,
        registry=TaskRegistry(ledger, MODULE_ADDRESS),
        expert_panel=panel,
        **kwargs,
    )


def mock_panel(decision):
    panel = MagicMock(spec=ExpertPanel)
    panel.get_consensus.return_value = decision
    return panel


class UnreachableBalanceLedger(FakeLedger):
    def __init__(self, error):
        super().__init__()
        self.error = error

    def get_balance(self, address, coin_type=""):
        raise self.error


class TestRoundFlow:
    """Test the per-round state machine."""

    def test_snapshot_failure_returns_none(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter,
                             oracle=FakeOracle(snapshot, fail=True))
        assert orchestrator.analyze_pair("btc_usdt") is None
        assert len(orchestrator.history) == 0
        submitter.register.assert_not_called()

    def test_states_with_experts_and_submission(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter, panel=mock_panel(consensus()))
        result = orchestrator.analyze_pair("btc_usdt")

        assert result.states == [
            RoundState.IDLE, RoundState.DATA_FETCHED, RoundState.ANALYZED, RoundState.EXPERTS_POLLED,
            RoundState.DECIDED, RoundState.SUBMITTED, RoundState.RECORDED,
        ]
        assert result.task_id == "supraagent_abcd1234"

    def test_states_without_experts(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter, provider=FixedProvider("HOLD", 0.5))
        result = orchestrator.analyze_pair("btc_usdt")

        assert result.states == [
            RoundState.IDLE, RoundState.DATA_FETCHED, RoundState.ANALYZED,
            RoundState.DECIDED, RoundState.SKIPPED, RoundState.RECORDED,
        ]
        assert result.expert_votes is None

    def test_provider_failure_degrades_to_hold(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter, provider=BrokenProvider())
        result = orchestrator.analyze_pair("btc_usdt")

        assert result.recommendation == "HOLD"
        assert result.confidence == 0.3
        assert result.reasoning == "Could not perform analysis"

    def test_history_always_appended(self, ledger, account, snapshot, submitter):
        submitter.register.side_effect = InsufficientBalanceError(900, 10)
        orchestrator = build(ledger, account, snapshot, submitter, panel=mock_panel(consensus()))
        result = orchestrator.analyze_pair("btc_usdt")

        assert result.task_id is None
        assert "Insufficient balance" in result.submission_error
        assert len(orchestrator.history) == 1
        assert result.states[-1] == RoundState.RECORDED

    def test_balance_read_failure_keeps_round(self, account, snapshot, no_sleep):
        ledger = UnreachableBalanceLedger(LedgerRequestError(503, "node unavailable"))
        registry = TaskRegistry(ledger, MODULE_ADDRESS)
        real_submitter = AutomationSubmitter(ledger, account, registry, MODULE_ADDRESS, sleep=no_sleep)
        orchestrator = build(ledger, account, snapshot, real_submitter, provider=FixedProvider("BUY", 0.9))

        result = orchestrator.analyze_pair("btc_usdt")

        assert result.task_id is None
        assert "Could not read balance" in result.submission_error
        assert RoundState.SUBMITTED in result.states
        assert result.states[-1] == RoundState.RECORDED
        assert len(orchestrator.history) == 1
        assert ledger.submissions == []
        assert registry.tasks() == []

    def test_connection_error_keeps_multi_pair_round(self, account, snapshot, no_sleep):
        ledger = UnreachableBalanceLedger(ConnectionError("connection reset"))
        real_submitter = AutomationSubmitter(ledger, account, TaskRegistry(ledger, MODULE_ADDRESS),
                                             MODULE_ADDRESS, sleep=no_sleep)
        orchestrator = build(ledger, account, snapshot, real_submitter, provider=FixedProvider("BUY", 0.9))

        results = orchestrator.analyze_pairs(["btc_usdt"])

        assert results["btc_usdt"] is not None
        assert "connection reset" in results["btc_usdt"].submission_error
        assert len(orchestrator.history) == 1

    def test_unexpected_submitter_error_keeps_round(self, ledger, account, snapshot, submitter):
        submitter.register.side_effect = KeyError("sequence_number")
        orchestrator = build(ledger, account, snapshot, submitter, provider=FixedProvider("BUY", 0.9))
        result = orchestrator.analyze_pair("btc_usdt")

        assert result.task_id is None
        assert result.submission_error.startswith("Unexpected error")
        assert result.states[-1] == RoundState.RECORDED
        assert len(orchestrator.history) == 1


class TestConsensusOverride:
    """Test how the expert consensus replaces the draft."""

    def test_gate_true_overwrites_draft(self, ledger, account, snapshot, submitter):
        panel = mock_panel(consensus("SELL", confidence=85, execute=True))
        orchestrator = build(ledger, account, snapshot, submitter,
                             provider=FixedProvider("BUY", 0.9), panel=panel)
        result = orchestrator.analyze_pair("btc_usdt")

        assert result.recommendation == "SELL"
        assert result.confidence == 0.85
        submitter.register.assert_not_called()

    def test_gate_false_keeps_draft(self, ledger, account, snapshot, submitter):
        panel = mock_panel(consensus("SELL", confidence=60, agreement=40, execute=False))
        orchestrator = build(ledger, account, snapshot, submitter,
                             provider=FixedProvider("BUY", 0.75), panel=panel)
        result = orchestrator.analyze_pair("btc_usdt")

        assert result.recommendation == "BUY"
        assert result.confidence == 0.75
        assert result.consensus.recommendation == "SELL"
        # Draft confidence alone clears the threshold
        submitter.register.assert_called_once_with("btc_usdt", 400, 0.75)

    def test_panel_receives_history_length_and_draft(self, ledger, account, snapshot, submitter):
        panel = mock_panel(consensus())
        build(ledger, account, snapshot, submitter, panel=panel).analyze_pair("btc_usdt")
        panel.get_consensus.assert_called_once_with(snapshot, 2, "draft")


class TestSubmissionEligibility:
    """Test when the submission path runs."""

    def test_hold_never_submits(self, ledger, account, snapshot, submitter):
        panel = mock_panel(consensus("HOLD", confidence=100, agreement=100, execute=True))
        orchestrator = build(ledger, account, snapshot, submitter,
                             provider=FixedProvider("HOLD", 1.0), panel=panel)
        result = orchestrator.analyze_pair("btc_usdt")

        assert result.recommendation == "HOLD"
        submitter.register.assert_not_called()
        assert RoundState.SKIPPED in result.states

    def test_strong_sell_never_submits(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter, provider=FixedProvider("STRONG_SELL", 0.95))
        orchestrator.analyze_pair("btc_usdt")
        submitter.register.assert_not_called()

    def test_low_confidence_without_gate_skips(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter, provider=FixedProvider("BUY", 0.69))
        orchestrator.analyze_pair("btc_usdt")
        submitter.register.assert_not_called()

    def test_strong_buy_at_threshold_submits(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter, provider=FixedProvider("STRONG_BUY", 0.7))
        result = orchestrator.analyze_pair("btc_usdt")
        submitter.register.assert_called_once()
        assert result.task_id == "supraagent_abcd1234"

    def test_auto_trading_disabled(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter,
                             config=make_config(enable_auto_trading=False),
                             provider=FixedProvider("BUY", 0.99))
        orchestrator.analyze_pair("btc_usdt")
        submitter.register.assert_not_called()


class TestExtras:
    """Test toggles, recording, multi-pair rounds and summaries."""

    def test_toggles(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter, panel=mock_panel(consensus()))
        assert orchestrator.toggle_auto_trading() is False
        assert orchestrator.toggle_experts() is False
        assert orchestrator.toggle_experts() is True

    def test_toggle_experts_without_panel(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter)
        assert orchestrator.toggle_experts() is False

    def test_onchain_recording(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter,
                             config=make_config(enable_onchain_recording=True),
                             recorder=OnChainRecorder(ledger, account))
        result = orchestrator.analyze_pair("btc_usdt")

        assert result.record_tx_hash == "0xrecord"
        assert ledger.transfers == [{"recipient": account.address(), "amount": 1}]

    def test_analyze_pairs(self, ledger, account, snapshot, submitter):
        orchestrator = build(ledger, account, snapshot, submitter, provider=FixedProvider("HOLD", 0.5))
        results = orchestrator.analyze_pairs(["btc_usdt", "eth_usdt", "sol_usdt"])

        assert list(results) == ["btc_usdt", "eth_usdt", "sol_usdt"]
        assert all(r is not None for r in results.values())
        assert len(orchestrator.history) == 3

    def test_round_log_written(self, ledger, account, snapshot, submitter, tmp_path):
        log_file = tmp_path / "logs" / "rounds.jsonl"
        orchestrator = build(ledger, account, snapshot, submitter, panel=mock_panel(consensus()),
                             round_logger=RoundLogger(str(log_file)))
        orchestrator.analyze_pair("btc_usdt")

        entry = json.loads(log_file.read_text().strip())
        assert entry["pair"] == "btc_usdt"
        assert entry["analysis_recommendation"] == "BUY"
        assert entry["agreement_percentage"] == 80
        assert entry["task_id"] == "supraagent_abcd1234"
        assert entry["states"][-1] == RoundState.RECORDED

    def test_round_log_failure_keeps_round(self, ledger, account, snapshot, submitter, tmp_path):
        # A directory in place of the log file makes every write fail
        orchestrator = build(ledger, account, snapshot, submitter, provider=FixedProvider("HOLD", 0.5),
                             round_logger=RoundLogger(str(tmp_path)))
        results = orchestrator.analyze_pairs(["btc_usdt"])

        assert results["btc_usdt"] is not None
        assert results["btc_usdt"].states[-1] == RoundState.RECORDED
        assert len(orchestrator.history) == 1

    def test_portfolio_summary(self, ledger, account, snapshot, submitter):
        history = AnalysisHistory()
        orchestrator = build(ledger, account, snapshot, submitter, provider=FixedProvider("HOLD", 0.5),
                             history=history)
        for pair in ("btc_usdt", "eth_usdt", "sol_usdt", "avax_usdt"):
            orchestrator.analyze_pair(pair)

        summary = orchestrator.portfolio_summary()

        assert summary["supra_balance"] == 10_000
        assert summary["automation"]["initialized"] is False
        assert summary["history_size"] == 4
        assert [s["pair"] for s in summary["recent_signals"]] == ["eth_usdt", "sol_usdt", "avax_usdt"]
        assert summary["auto_trading"] is True
