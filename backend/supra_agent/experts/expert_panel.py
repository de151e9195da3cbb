"""Expert panel: independent analyzer opinions gathered in parallel."""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, wait
from typing import List, Optional, Sequence

from openai import OpenAI

from supra_agent.decision_parser import parse_expert_response
from supra_agent.experts.consensus_engine import summarize_votes, tally_votes
from supra_agent.models import ConsensusDecision, ExpertProfile, ExpertVote, MarketSnapshot


logger = logging.getLogger(__name__)


EXPERT_PROFILES: Sequence[ExpertProfile] = (
    ExpertProfile(
        expert_id="technical_analyst",
        name="Technical Analyst",
        role="Technical Analysis Expert",
        expertise="Chart patterns, indicators, momentum",
    ),
    ExpertProfile(
        expert_id="fundamental_analyst",
        name="Fundamental Analyst",
        role="Fundamental Analysis Expert",
        expertise="Market fundamentals, news sentiment",
    ),
    ExpertProfile(
        expert_id="risk_manager",
        name="Risk Manager",
        role="Risk Management Specialist",
        expertise="Risk assessment, position sizing",
    ),
    ExpertProfile(
        expert_id="macro_analyst",
        name="Macro Analyst",
        role="Macro Economic Analyst",
        expertise="Economic trends, global markets",
    ),
    ExpertProfile(
        expert_id="quant_trader",
        name="Quant Trader",
        role="Quantitative Trading Expert",
        expertise="Statistical models, algorithmic trading",
    ),
)

FALLBACK_CONFIDENCE = 50
FALLBACK_REASONING = "fallback"


def fallback_vote(expert_id: str) -> ExpertVote:
    """Vote recorded for an expert that failed to answer."""
    return ExpertVote(
        expert_id=expert_id,
        recommendation="HOLD",
        confidence=FALLBACK_CONFIDENCE,
        reasoning=FALLBACK_REASONING,
    )


def expert_display_name(expert_id: str) -> str:
    for profile in EXPERT_PROFILES:
        if profile.expert_id == expert_id:
            return profile.name
    return expert_id


class ExpertAdvisor(ABC):
    """Source of free-text opinions for a single expert profile."""

    @abstractmethod
    def get_opinion(
        self,
        expert: ExpertProfile,
        snapshot: MarketSnapshot,
        history_length: int,
        prior_analysis: str,
    ) -> str:
        """
        Ask one expert for an opinion.

        Returns:
            str: Raw model response

        Raises:
            Exception: Any transport or model error; the panel degrades it
        """
        pass


class OpenAIExpertAdvisor(ExpertAdvisor):
    """Expert opinions from an OpenAI chat model."""

    def __init__(self, api_key: str, model: str = "gpt-3.5-turbo", timeout: float = 20.0,
                 client: Optional[OpenAI] = None):
        """
        Initialize the advisor.

        Args:
            api_key: OpenAI API key
            model: Chat model name
            timeout: Per-request timeout in seconds
            client: Pre-built client (shared with the analysis provider)
        """
        self.client = client or OpenAI(api_key=api_key)
        self.model = model
        self.timeout = timeout

    def _build_prompt(self, expert: ExpertProfile, snapshot: MarketSnapshot,
                      history_length: int, prior_analysis: str) -> str:
        return f"""
You are a {expert.role}, specializing in {expert.expertise}.

MARKET DATA FOR {snapshot.trading_pair.upper()}:
- Current Price: ${snapshot.current_price}
- 24h Change: {snapshot.change_24h}%
- 24h High: ${snapshot.high_24h}
- 24h Low: ${snapshot.low_24h}
- Data Points: {history_length}

PREVIOUS ANALYSIS:
{prior_analysis}

As a {expert.role}, give your expert trading recommendation:

RECOMMENDATION: [BUY/SELL/HOLD]
CONFIDENCE: [0-100]
REASONING: [one sentence explaining your decision from your expertise perspective]

Focus ONLY on your specialty: {expert.expertise}
"""

    def get_opinion(self, expert: ExpertProfile, snapshot: MarketSnapshot,
                    history_length: int, prior_analysis: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "system",
                    "content": f"You are {expert.role}. Think like a professional {expert.expertise} specialist. Be decisive.",
                },
                {"role": "user", "content": self._build_prompt(expert, snapshot, history_length, prior_analysis)},
            ],
            max_tokens=150,
            temperature=0.3,
            timeout=self.timeout,
        )
        return response.choices[0].message.content or ""


class ExpertPanel:
    """Polls every configured expert concurrently and tallies their votes."""

    def __init__(self, advisor: ExpertAdvisor, experts: Sequence[ExpertProfile] = EXPERT_PROFILES,
                 timeout_seconds: float = 20.0):
        """
        Initialize the expert panel.

        Args:
            advisor: Opinion source used for every expert
            experts: Ordered expert profiles
            timeout_seconds: Upper bound on waiting for the whole panel
        """
        self.advisor = advisor
        self.experts = list(experts)
        self.timeout_seconds = timeout_seconds

    def _ask_expert(self, expert: ExpertProfile, snapshot: MarketSnapshot,
                    history_length: int, prior_analysis: str) -> ExpertVote:
        try:
            response = self.advisor.get_opinion(expert, snapshot, history_length, prior_analysis)
        except Exception as e:
            logger.warning(f"Expert {expert.expert_id} didn't respond ({e}), using default vote")
            return fallback_vote(expert.expert_id)
        return parse_expert_response(expert.expert_id, response)

    def collect_votes(self, snapshot: MarketSnapshot, history_length: int,
                      prior_analysis: str) -> List[ExpertVote]:
        """
        Ask every expert in parallel and wait for all of them.

        Votes come back in expert order. Experts that fail or do not answer
        within the panel timeout get the fallback vote.

        Args:
            snapshot: Market snapshot for the pair under analysis
            history_length: Number of historical data points available
            prior_analysis: Text of the single-shot analysis

        Returns:
            One ExpertVote per configured expert
        """
        if not self.experts:
            return []

        executor = ThreadPoolExecutor(max_workers=len(self.experts))
        try:
            futures = [
                executor.submit(self._ask_expert, expert, snapshot, history_length, prior_analysis)
                for expert in self.experts
            ]
            wait(futures, timeout=self.timeout_seconds)

            votes = []
            for expert, future in zip(self.experts, futures):
                if not future.done():
                    logger.warning(f"Expert {expert.expert_id} timed out after {self.timeout_seconds}s, using default vote")
                    future.cancel()
                    votes.append(fallback_vote(expert.expert_id))
                    continue
                votes.append(future.result())
            return votes
        finally:
            # Do not block the round on stragglers
            executor.shutdown(wait=False)

    def get_consensus(self, snapshot: MarketSnapshot, history_length: int,
                      prior_analysis: str) -> ConsensusDecision:
        """Collect votes and reduce them to a consensus decision."""
        logger.info(f"Expert panel analyzing {snapshot.trading_pair.upper()} ({len(self.experts)} experts)...")
        votes = self.collect_votes(snapshot, history_length, prior_analysis)
        decision = tally_votes(votes)

        logger.info(f"Expert votes: {summarize_votes(votes)}")
        logger.info(
            f"Decision: {decision.recommendation} ({decision.agreement_percentage}% agreement, "
            f"{decision.confidence}% confidence, execute={decision.should_execute})"
        )
        return decision
