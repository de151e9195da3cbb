"""Loop controller for the Supra threshold agent."""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from openai import OpenAI

from supra_agent.config import Config
from supra_agent.controllers.agent_orchestrator import AgentOrchestrator
from supra_agent.data_fetchers.oracle_fetcher import SupraOracleClient
from supra_agent.decision_provider import AnalysisProvider, BasicAnalysisProvider, OpenAIAnalysisProvider
from supra_agent.executors.automation_submitter import MICRO_UNITS, AutomationSubmitter
from supra_agent.executors.onchain_recorder import OnChainRecorder
from supra_agent.experts.expert_panel import ExpertPanel, OpenAIExpertAdvisor
from supra_agent.ledger.account import SupraAccount
from supra_agent.ledger.ledger_client import SupraRpcClient
from supra_agent.logger import RoundLogger
from supra_agent.managers.task_registry import TaskRegistry
from supra_agent.memory.analysis_history import AnalysisHistory
from supra_agent.models import RoundResult
from supra_agent.services.shutdown_service import ShutdownService


logger = logging.getLogger(__name__)


class LoopController:
    """Builds the agent components and runs analysis rounds on an interval."""

    def __init__(self, config: Config, orchestrator: Optional[AgentOrchestrator] = None):
        """
        Initialize loop controller with all components.

        Args:
            config: Configuration object
            orchestrator: Pre-built orchestrator (components are built from config otherwise)
        """
        self.config = config
        self.running = True
        self._stop_event = threading.Event()
        self.shutdown_service = ShutdownService(self)

        if orchestrator is None:
            logger.info("Initializing loop controller components...")
            orchestrator = self._build_orchestrator(config)
        self.orchestrator = orchestrator

        logger.info("Loop controller initialized successfully")

    def _init_analysis_provider(self, config: Config, client: Optional[OpenAI]) -> AnalysisProvider:
        if config.enable_analysis:
            logger.info(f"Analysis: OpenAI ({config.openai_model})")
            return OpenAIAnalysisProvider(config.openai_api_key, model=config.openai_model, client=client)
        logger.info("Analysis: basic heuristic (no OpenAI API key)")
        return BasicAnalysisProvider()

    def _build_orchestrator(self, config: Config) -> AgentOrchestrator:
        account = SupraAccount.from_private_key_hex(config.private_key_hex)
        ledger = SupraRpcClient(config.rpc_url, chain_id=config.chain_id)
        oracle = SupraOracleClient(config.oracle_api_key, config.oracle_base_url)
        registry = TaskRegistry(ledger, config.module_address)
        submitter = AutomationSubmitter(
            ledger, account, registry, config.module_address,
            settle_delay_seconds=config.settle_delay_seconds,
        )

        client = OpenAI(api_key=config.openai_api_key) if config.openai_api_key else None
        expert_panel = None
        if client is not None:
            advisor = OpenAIExpertAdvisor(
                config.openai_api_key, model=config.openai_model,
                timeout=config.expert_timeout_seconds, client=client,
            )
            expert_panel = ExpertPanel(advisor, timeout_seconds=config.expert_timeout_seconds)

        logger.info(f"Agent address: {account.address()}")
        return AgentOrchestrator(
            config=config,
            oracle=oracle,
            analysis_provider=self._init_analysis_provider(config, client),
            ledger=ledger,
            account=account,
            submitter=submitter,
            registry=registry,
            expert_panel=expert_panel,
            recorder=OnChainRecorder(ledger, account),
            history=AnalysisHistory(),
            round_logger=RoundLogger("logs/rounds.jsonl"),
        )

    def startup(self) -> bool:
        """
        Check oracle and ledger connectivity before starting the loop.

        Returns:
            bool: True if all connectivity checks pass, False otherwise
        """
        logger.info("=" * 60)
        logger.info("STARTING SUPRA THRESHOLD AGENT")
        logger.info("=" * 60)

        logger.info("Testing oracle connectivity...")
        try:
            self.orchestrator.oracle.fetch_snapshot(self.config.trading_pairs[0])
            logger.info("Oracle connectivity OK")
        except Exception as e:
            logger.error(f"Oracle connectivity FAILED: {e}")
            return False

        logger.info("Testing ledger connectivity...")
        try:
            balance = self.orchestrator.ledger.get_balance(self.orchestrator.account.address())
            logger.info(f"Ledger connectivity OK (balance {balance / MICRO_UNITS:.2f} SUPRA)")
        except Exception as e:
            logger.error(f"Ledger connectivity FAILED: {e}")
            return False

        logger.info(f"Auto-trading: {'ENABLED' if self.orchestrator.auto_trading else 'DISABLED'}")
        logger.info(f"Expert panel: {'ENABLED' if self.orchestrator.experts_enabled else 'DISABLED'}")
        logger.info("=" * 60)
        return True

    def run_once(self, pairs: Optional[List[str]] = None) -> Dict[str, Optional[RoundResult]]:
        """Run one round for every pair."""
        return self.orchestrator.analyze_pairs(pairs or self.config.trading_pairs)

    def run(self, pairs: Optional[List[str]] = None) -> None:
        """
        Run rounds in a continuous loop until stopped.

        A failed round is logged and the loop continues.
        """
        round_count = 0
        while self.running:
            round_count += 1
            round_start_time = time.time()
            logger.info(f"ROUND {round_count} - {datetime.now(timezone.utc).strftime('%H:%M:%S')}")

            try:
                results = self.run_once(pairs)
                completed = sum(1 for result in results.values() if result is not None)
                logger.info(f"Round {round_count} complete: {completed}/{len(results)} pairs analyzed")
            except Exception as e:
                logger.error(f"Round {round_count} failed: {e}", exc_info=True)

            self._sleep_until_next_round(round_start_time)

    def _sleep_until_next_round(self, round_start_time: float) -> None:
        """Sleep until the next round based on configured interval."""
        round_duration = time.time() - round_start_time
        sleep_time = max(0, self.config.loop_interval_seconds - round_duration)

        if sleep_time > 0:
            logger.debug(f"Sleeping for {sleep_time:.1f} seconds until next round")
            self._stop_event.wait(sleep_time)
        else:
            logger.warning(f"Round took {round_duration:.1f}s, longer than interval {self.config.loop_interval_seconds}s")

    def stop(self) -> None:
        self.running = False
        self._stop_event.set()

    def shutdown(self) -> None:
        """Stop the loop after the current round."""
        self.shutdown_service.shutdown()

    def register_signal_handlers(self) -> None:
        self.shutdown_service.register_signal_handlers()
