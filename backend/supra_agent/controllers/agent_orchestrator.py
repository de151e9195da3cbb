"""Agent orchestrator: runs one analysis round per trading pair."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional

from supra_agent.config import Config
from supra_agent.data_fetchers.oracle_fetcher import OracleClient
from supra_agent.decision_provider import AnalysisProvider, failed_analysis
from supra_agent.errors import AutomationError, TransientFetchError
from supra_agent.executors.automation_submitter import MICRO_UNITS, AutomationSubmitter
from supra_agent.executors.onchain_recorder import OnChainRecorder
from supra_agent.experts.expert_panel import ExpertPanel
from supra_agent.ledger.account import SupraAccount
from supra_agent.ledger.ledger_client import LedgerClient
from supra_agent.logger import RoundLogger
from supra_agent.managers.task_registry import TaskRegistry
from supra_agent.memory.analysis_history import AnalysisHistory
from supra_agent.models import (
    BUY_SIGNALS,
    SELL_SIGNALS,
    AnalysisRecord,
    MarketSnapshot,
    RoundLog,
    RoundResult,
    RoundState,
)


logger = logging.getLogger(__name__)

HISTORY_HOURS = 24
MAX_PARALLEL_PAIRS = 6


class AgentOrchestrator:
    """Drives the per-round flow from market data to automation submission."""

    def __init__(
        self,
        config: Config,
        oracle: OracleClient,
        analysis_provider: AnalysisProvider,
        ledger: LedgerClient,
        account: SupraAccount,
        submitter: AutomationSubmitter,
        registry: TaskRegistry,
        expert_panel: Optional[ExpertPanel] = None,
        recorder: Optional[OnChainRecorder] = None,
        history: Optional[AnalysisHistory] = None,
        round_logger: Optional[RoundLogger] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Configuration object
            oracle: Price feed
            analysis_provider: Single-shot analysis provider
            ledger: Ledger RPC client (balance reads for the portfolio summary)
            account: Agent account
            submitter: Automation submitter
            registry: Task registry shared with the submitter
            expert_panel: Expert panel, None when experts are unavailable
            recorder: On-chain recorder, None to never record
            history: Bounded analysis history
            round_logger: JSONL round log writer
        """
        self.config = config
        self.oracle = oracle
        self.analysis_provider = analysis_provider
        self.ledger = ledger
        self.account = account
        self.submitter = submitter
        self.registry = registry
        self.expert_panel = expert_panel
        self.recorder = recorder
        self.history = history or AnalysisHistory()
        self.round_logger = round_logger

        self.auto_trading = config.enable_auto_trading
        self.experts_enabled = config.enable_experts and expert_panel is not None
        self.onchain_recording = config.enable_onchain_recording and recorder is not None

    def toggle_auto_trading(self) -> bool:
        self.auto_trading = not self.auto_trading
        logger.info(f"Auto-trading {'ENABLED' if self.auto_trading else 'DISABLED'}")
        if self.auto_trading:
            logger.info(f"Buy signals will register automations of {self.config.max_investment_per_trade} SUPRA")
        return self.auto_trading

    def toggle_experts(self) -> bool:
        if self.expert_panel is None:
            logger.warning("Expert panel unavailable: an OpenAI API key is required")
            return False
        self.experts_enabled = not self.experts_enabled
        logger.info(f"Expert panel {'ENABLED' if self.experts_enabled else 'DISABLED'}")
        return self.experts_enabled

    def _fetch_history(self, pair: str) -> List[Dict[str, Any]]:
        try:
            return self.oracle.fetch_history(pair, HISTORY_HOURS)
        except Exception as e:
            logger.warning(f"Historical data unavailable for {pair}: {e}")
            return []

    def _analyze(self, snapshot: MarketSnapshot, history: List[Dict[str, Any]]) -> AnalysisRecord:
        try:
            return self.analysis_provider.analyze(snapshot, history)
        except Exception as e:
            logger.error(f"Analysis failed for {snapshot.trading_pair}: {e}")
            return failed_analysis(snapshot.trading_pair)

    def _should_submit(self, record: AnalysisRecord) -> bool:
        if not self.auto_trading:
            return False

        experts_approve = record.consensus is not None and record.consensus.should_execute
        high_confidence = record.confidence >= self.config.confidence_threshold
        if not experts_approve and not high_confidence:
            logger.info("Auto-trading SKIPPED: experts didn't agree or low confidence")
            return False

        if record.recommendation in BUY_SIGNALS:
            return True
        if record.recommendation in SELL_SIGNALS:
            logger.info(f"SELL signal for {record.pair.upper()} - no automation registered")
        else:
            logger.info(f"HOLD {record.pair.upper()} - no action taken")
        return False

    def analyze_pair(self, pair: str) -> Optional[RoundResult]:
        """
        Run one analysis round for ``pair``.

        Returns:
            RoundResult, or None if market data could not be fetched
        """
        logger.info(f"=== ANALYZING {pair.upper()} ===")
        states = [RoundState.IDLE]

        try:
            snapshot = self.oracle.fetch_snapshot(pair)
        except TransientFetchError as e:
            logger.warning(f"Could not fetch price data: {e}")
            return None

        history = self._fetch_history(pair)
        states.append(RoundState.DATA_FETCHED)

        record = self._analyze(snapshot, history)
        analysis_recommendation = record.recommendation
        states.append(RoundState.ANALYZED)

        if self.experts_enabled:
            consensus = self.expert_panel.get_consensus(snapshot, len(history), record.analysis)
            record.consensus = consensus
            if consensus.should_execute:
                record.recommendation = consensus.recommendation
                record.confidence = consensus.confidence / 100
            states.append(RoundState.EXPERTS_POLLED)

        states.append(RoundState.DECIDED)
        logger.info(f"{pair.upper()}: {record.recommendation} ({record.confidence * 100:.0f}% confidence)")

        result = RoundResult(
            pair=pair,
            recommendation=record.recommendation,
            confidence=record.confidence,
            reasoning=record.reasoning,
            expert_votes=list(record.consensus.votes) if record.consensus else None,
            consensus=record.consensus,
            states=states,
        )

        if self.onchain_recording:
            result.record_tx_hash = self.recorder.record_analysis(record)

        if self._should_submit(record):
            logger.info(f"Consensus APPROVED: registering automation for {pair.upper()}")
            states.append(RoundState.SUBMITTED)
            try:
                task = self.submitter.register(pair, self.config.max_investment_per_trade, record.confidence)
                result.task_id = task.task_id
            except AutomationError as e:
                logger.error(f"Automation registration failed: {e}")
                result.submission_error = str(e)
            except Exception as e:
                logger.error(f"Unexpected error registering automation: {e}", exc_info=True)
                result.submission_error = f"Unexpected error: {e}"
        else:
            states.append(RoundState.SKIPPED)

        self.history.append(record)
        states.append(RoundState.RECORDED)

        if self.round_logger:
            try:
                self.round_logger.log_round(self._build_round_log(snapshot, analysis_recommendation, record, result))
            except OSError as e:
                logger.error(f"Could not write round log: {e}")

        return result

    def analyze_pairs(self, pairs: List[str]) -> Dict[str, Optional[RoundResult]]:
        """Run one round per pair concurrently; results keyed by pair."""
        results: Dict[str, Optional[RoundResult]] = {}
        if not pairs:
            return results

        with ThreadPoolExecutor(max_workers=min(len(pairs), MAX_PARALLEL_PAIRS)) as executor:
            future_to_pair = {executor.submit(self.analyze_pair, pair): pair for pair in pairs}
            for future in as_completed(future_to_pair):
                pair = future_to_pair[future]
                try:
                    results[pair] = future.result()
                except Exception as e:
                    logger.error(f"Round for {pair} failed: {e}", exc_info=True)
                    results[pair] = None

        return {pair: results.get(pair) for pair in pairs}

    def _build_round_log(self, snapshot: MarketSnapshot, analysis_recommendation: str,
                         record: AnalysisRecord, result: RoundResult) -> RoundLog:
        consensus = record.consensus
        return RoundLog(
            timestamp=int(time.time()),
            pair=record.pair,
            market_price=snapshot.current_price,
            change_24h=snapshot.change_24h,
            analysis_recommendation=analysis_recommendation,
            final_recommendation=record.recommendation,
            confidence=record.confidence,
            reasoning=record.reasoning,
            consensus_recommendation=consensus.recommendation if consensus else None,
            agreement_percentage=consensus.agreement_percentage if consensus else None,
            consensus_confidence=consensus.confidence if consensus else None,
            should_execute=consensus.should_execute if consensus else None,
            auto_trading=self.auto_trading,
            task_id=result.task_id,
            submission_error=result.submission_error,
            states=list(result.states),
        )

    def portfolio_summary(self) -> Dict[str, Any]:
        """Balances, automation status, toggles and the three most recent signals."""
        address = self.account.address()
        try:
            balance = self.ledger.get_balance(address) / MICRO_UNITS
        except Exception as e:
            logger.warning(f"Could not read balance: {e}")
            balance = None

        status = self.registry.refresh_status(address)
        recent = [
            {
                "pair": record.pair,
                "recommendation": record.recommendation,
                "confidence": record.confidence,
                "consensus": record.consensus.recommendation if record.consensus else None,
            }
            for record in self.history.recent(3)
        ]

        return {
            "address": address,
            "supra_balance": balance,
            "automation": {
                "initialized": status.initialized,
                "active": status.active,
                "budget_used": status.budget_used,
                "total_budget": status.total_budget,
                "received": status.received,
                "total_swaps": status.total_swaps,
                "will_trigger_next": status.will_trigger_next,
            },
            "tasks": len(self.registry),
            "history_size": len(self.history),
            "auto_trading": self.auto_trading,
            "experts_enabled": self.experts_enabled,
            "recent_signals": recent,
        }
