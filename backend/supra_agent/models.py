"""Data models for the Supra threshold agent."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


# Expert vote space, in tally order
VOTE_OPTIONS = ("BUY", "SELL", "HOLD")

# Analysis recommendation space
RECOMMENDATIONS = ("STRONG_BUY", "BUY", "HOLD", "SELL", "STRONG_SELL")
BUY_SIGNALS = ("STRONG_BUY", "BUY")
SELL_SIGNALS = ("STRONG_SELL", "SELL")

TASK_STATUSES = ("ACTIVE", "COMPLETED", "CANCELLED", "EXPIRED")


class RoundState:
    """States visited by one analysis round."""

    IDLE = "IDLE"
    DATA_FETCHED = "DATA_FETCHED"
    ANALYZED = "ANALYZED"
    EXPERTS_POLLED = "EXPERTS_POLLED"
    DECIDED = "DECIDED"
    SUBMITTED = "SUBMITTED"
    SKIPPED = "SKIPPED"
    RECORDED = "RECORDED"


@dataclass(frozen=True)
class MarketSnapshot:
    """Latest oracle price data for one trading pair."""

    trading_pair: str  # e.g. "btc_usdt"
    current_price: float
    change_24h: float  # percent
    high_24h: float
    low_24h: float
    timestamp: str  # ISO-8601 from the feed


@dataclass(frozen=True)
class ExpertProfile:
    """Configuration record for one expert on the panel."""

    expert_id: str
    name: str
    role: str
    expertise: str


@dataclass(frozen=True)
class ExpertVote:
    """One expert's opinion for one analysis round."""

    expert_id: str
    recommendation: str  # "BUY" | "SELL" | "HOLD"
    confidence: int  # 0 to 100
    reasoning: str


@dataclass(frozen=True)
class ConsensusDecision:
    """Aggregated expert decision with agreement metrics and execution gate."""

    votes: Tuple[ExpertVote, ...]
    recommendation: str  # "BUY" | "SELL" | "HOLD"
    confidence: int  # mean confidence of the winning votes, 0 to 100
    agreement_percentage: int  # 0 to 100
    should_execute: bool
    vote_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "votes": [vote.__dict__.copy() for vote in self.votes],
            "recommendation": self.recommendation,
            "confidence": self.confidence,
            "agreement_percentage": self.agreement_percentage,
            "should_execute": self.should_execute,
            "vote_counts": dict(self.vote_counts),
        }


@dataclass(frozen=True)
class AutomationParameters:
    """Execution schedule derived from a budget."""

    total_budget: float
    amount_per_step: float
    step_interval_seconds: int
    slippage_bps: int
    fee_cap: int = 0  # micro-units, filled in after fee estimation


@dataclass
class AutomationTask:
    """A registered scheduled-transfer automation."""

    task_id: str
    tx_hash: str
    total_budget: float
    amount_per_step: float
    step_interval_seconds: int
    slippage_bps: int
    trigger_pair: str
    status: str  # one of TASK_STATUSES
    registered_at: int  # Unix milliseconds
    expires_at: int  # Unix milliseconds


@dataclass(frozen=True)
class AutomationStatus:
    """Remote automation state for an account."""

    initialized: bool
    budget_used: int
    total_budget: int
    received: int
    total_swaps: int
    active: bool
    will_trigger_next: bool

    @classmethod
    def inactive(cls) -> "AutomationStatus":
        return cls(
            initialized=False,
            budget_used=0,
            total_budget=0,
            received=0,
            total_swaps=0,
            active=False,
            will_trigger_next=False,
        )

    @property
    def progress_pct(self) -> float:
        if self.total_budget <= 0:
            return 0.0
        return self.budget_used / self.total_budget * 100


@dataclass
class AnalysisRecord:
    """Analysis outcome for one trading pair."""

    pair: str
    analysis: str
    recommendation: str  # one of RECOMMENDATIONS
    confidence: float  # 0.0 to 1.0
    reasoning: str
    target_price: Optional[float] = None
    stop_loss: Optional[float] = None
    timeframe: str = "24h"
    consensus: Optional[ConsensusDecision] = None


@dataclass
class RoundResult:
    """Outcome of one analysis round, handed to the display layer."""

    pair: str
    recommendation: str
    confidence: float
    reasoning: str
    expert_votes: Optional[List[ExpertVote]] = None
    consensus: Optional[ConsensusDecision] = None
    task_id: Optional[str] = None
    submission_error: Optional[str] = None
    record_tx_hash: Optional[str] = None
    states: List[str] = field(default_factory=list)


@dataclass
class RoundLog:
    """Complete log record for one analysis round."""

    timestamp: int
    pair: str
    market_price: float
    change_24h: float
    analysis_recommendation: str
    final_recommendation: str
    confidence: float
    reasoning: str
    consensus_recommendation: Optional[str]
    agreement_percentage: Optional[int]
    consensus_confidence: Optional[int]
    should_execute: Optional[bool]
    auto_trading: bool
    task_id: Optional[str]
    submission_error: Optional[str]
    states: List[str]
