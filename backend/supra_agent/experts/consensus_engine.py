"""Threshold consensus over expert votes."""

import math
from typing import Dict, Sequence

from supra_agent.models import ConsensusDecision, ExpertVote, VOTE_OPTIONS


MIN_AGREEMENT_PCT = 60
MIN_CONFIDENCE = 70


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(value + 0.5))


def passes_execution_gate(agreement_percentage: float, confidence: float) -> bool:
    """True when a decision is strong enough to trigger automation."""
    return agreement_percentage >= MIN_AGREEMENT_PCT and confidence >= MIN_CONFIDENCE


def count_votes(votes: Sequence[ExpertVote]) -> Dict[str, int]:
    """Vote count per option, keyed in tally order BUY, SELL, HOLD."""
    counts = {option: 0 for option in VOTE_OPTIONS}
    for vote in votes:
        counts[vote.recommendation] += 1
    return counts


def tally_votes(votes: Sequence[ExpertVote]) -> ConsensusDecision:
    """
    Reduce a collection of expert votes to a single decision.

    The winner is the option with the most votes; on a tie the first option in
    BUY, SELL, HOLD order wins. The execution gate is evaluated on the unrounded
    agreement and mean confidence, the exposed values are rounded half-up.

    Args:
        votes: Expert votes for one round

    Returns:
        ConsensusDecision (HOLD, 0 %, 0, gate closed when there are no votes)
    """
    counts = count_votes(votes)
    total_votes = len(votes)

    if total_votes == 0:
        return ConsensusDecision(
            votes=(),
            recommendation="HOLD",
            confidence=0,
            agreement_percentage=0,
            should_execute=False,
            vote_counts=counts,
        )

    # max() keeps the first maximum it sees
    winner = max(VOTE_OPTIONS, key=lambda option: counts[option])
    winning_votes = counts[winner]

    agreement_percentage = winning_votes / total_votes * 100
    winner_confidence = sum(
        vote.confidence for vote in votes if vote.recommendation == winner
    ) / winning_votes

    return ConsensusDecision(
        votes=tuple(votes),
        recommendation=winner,
        confidence=round_half_up(winner_confidence),
        agreement_percentage=round_half_up(agreement_percentage),
        should_execute=passes_execution_gate(agreement_percentage, winner_confidence),
        vote_counts=counts,
    )


def summarize_votes(votes: Sequence[ExpertVote]) -> str:
    counts = count_votes(votes)
    return f"{counts['BUY']} BUY, {counts['SELL']} SELL, {counts['HOLD']} HOLD"
