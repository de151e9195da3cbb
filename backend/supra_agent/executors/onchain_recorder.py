"""Records that an analysis happened with a minimal on-chain self-transfer."""

import logging
from typing import Optional

from supra_agent.ledger.account import SupraAccount
from supra_agent.ledger.ledger_client import LedgerClient
from supra_agent.models import AnalysisRecord


logger = logging.getLogger(__name__)

RECORD_AMOUNT = 1  # micro-units


class OnChainRecorder:
    """Sends 1 micro-unit to the agent's own address per analysis."""

    def __init__(self, ledger: LedgerClient, account: SupraAccount):
        self.ledger = ledger
        self.account = account

    def record_analysis(self, analysis: AnalysisRecord) -> Optional[str]:
        """
        Record ``analysis`` on-chain.

        Returns:
            Transaction hash, or None if the transfer failed
        """
        logger.info(f"Recording {analysis.pair.upper()} analysis on-chain...")
        try:
            tx_hash = self.ledger.transfer(self.account, self.account.address(), RECORD_AMOUNT)
        except Exception as e:
            logger.error(f"Failed to record analysis on-chain: {e}")
            return None

        logger.info(f"Analysis recorded on-chain: {tx_hash}")
        return tx_hash
