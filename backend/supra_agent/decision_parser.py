"""Text pattern extraction for model responses.

Every field pulled out of model output is treated as untrusted and optional:
helpers return ``None`` on a miss and callers substitute their documented
default. Nothing here raises on malformed input.
"""

import logging
import re
from typing import Iterable, Optional

from supra_agent.models import AnalysisRecord, ExpertVote, VOTE_OPTIONS


logger = logging.getLogger(__name__)

DEFAULT_EXPERT_RECOMMENDATION = "HOLD"
DEFAULT_EXPERT_CONFIDENCE = 50
DEFAULT_EXPERT_REASONING = "No reasoning provided"

DEFAULT_ANALYSIS_CONFIDENCE = 0.5

# Compound labels must be tried before their substrings
_ANALYSIS_SEARCH_ORDER = ("STRONG_BUY", "STRONG_SELL", "BUY", "SELL", "HOLD")

_NUMBER = r"\$?\s*([0-9][0-9,]*\.?[0-9]*)"


def extract_labeled_choice(text: str, label: str, choices: Iterable[str]) -> Optional[str]:
    """Return the choice following ``LABEL:`` (case-insensitive), or None."""
    if not text:
        return None
    alternatives = "|".join(re.escape(c) for c in sorted(choices, key=len, reverse=True))
    match = re.search(rf"{label}:\s*({alternatives})", text, re.IGNORECASE)
    if not match:
        return None
    return match.group(1).upper()


def extract_labeled_int(text: str, label: str) -> Optional[int]:
    """Return the integer following ``LABEL:``, or None."""
    if not text:
        return None
    match = re.search(rf"{label}:\s*(\d+)", text)
    if not match:
        return None
    return int(match.group(1))


def extract_labeled_line(text: str, label: str) -> Optional[str]:
    """Return the rest of the line following ``LABEL:``, or None."""
    if not text:
        return None
    match = re.search(rf"{label}:\s*(.+)", text, re.IGNORECASE)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def extract_labeled_price(text: str, label: str) -> Optional[float]:
    """Return the price following a label such as ``Target Price: $71,200``, or None."""
    if not text:
        return None
    match = re.search(rf"{label}[^0-9$\n]{{0,20}}{_NUMBER}", text, re.IGNORECASE)
    if not match:
        return None
    try:
        return float(match.group(1).replace(",", ""))
    except ValueError:
        return None


def parse_expert_response(expert_id: str, response: str) -> ExpertVote:
    """
    Parse an expert's free-text opinion into an ExpertVote.

    Each field degrades to its default independently.

    Args:
        expert_id: Identifier of the expert that produced the response
        response: Raw model output

    Returns:
        ExpertVote with confidence clamped to 0-100
    """
    recommendation = extract_labeled_choice(response, "RECOMMENDATION", VOTE_OPTIONS)
    confidence = extract_labeled_int(response, "CONFIDENCE")
    reasoning = extract_labeled_line(response, "REASONING")

    if recommendation is None:
        logger.debug(f"Expert {expert_id}: no recommendation found, defaulting to {DEFAULT_EXPERT_RECOMMENDATION}")
        recommendation = DEFAULT_EXPERT_RECOMMENDATION
    if confidence is None:
        confidence = DEFAULT_EXPERT_CONFIDENCE
    confidence = max(0, min(100, confidence))

    return ExpertVote(
        expert_id=expert_id,
        recommendation=recommendation,
        confidence=confidence,
        reasoning=reasoning or DEFAULT_EXPERT_REASONING,
    )


def extract_analysis_recommendation(analysis: str) -> Optional[str]:
    """Return the first recommendation keyword mentioned in an analysis, or None."""
    if not analysis:
        return None
    upper = analysis.upper()
    for rec in _ANALYSIS_SEARCH_ORDER:
        if rec in upper:
            return rec
    return None


def extract_analysis_confidence(analysis: str) -> Optional[float]:
    """Return confidence as a 0.0-1.0 fraction, or None."""
    if not analysis:
        return None
    match = re.search(r"confidence[:\s]*(\d+\.?\d*)", analysis, re.IGNORECASE) or \
        re.search(r"(\d+\.?\d*)%", analysis)
    if not match:
        return None
    return min(float(match.group(1)) / 100, 1.0)


def summarize_reasoning(analysis: str, lines: int = 2) -> str:
    """First non-empty lines of an analysis joined into one line."""
    kept = [line.strip() for line in analysis.split("\n") if line.strip()]
    return " ".join(kept[:lines])


def parse_analysis_response(pair: str, analysis: str) -> AnalysisRecord:
    """
    Parse a single-shot market analysis into an AnalysisRecord draft.

    Args:
        pair: Trading pair the analysis is about
        analysis: Raw model output

    Returns:
        AnalysisRecord with HOLD / 0.5 defaults on parse misses
    """
    recommendation = extract_analysis_recommendation(analysis) or "HOLD"
    confidence = extract_analysis_confidence(analysis)
    if confidence is None:
        confidence = DEFAULT_ANALYSIS_CONFIDENCE

    return AnalysisRecord(
        pair=pair,
        analysis=analysis,
        recommendation=recommendation,
        confidence=confidence,
        reasoning=summarize_reasoning(analysis),
        target_price=extract_labeled_price(analysis, "target"),
        stop_loss=extract_labeled_price(analysis, "stop[- ]loss"),
        timeframe="24h",
    )
