"""Single-shot market analysis providers."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from openai import OpenAI

from supra_agent.decision_parser import parse_analysis_response
from supra_agent.models import AnalysisRecord, MarketSnapshot


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional crypto market analyst. Analyze the provided data and give "
    "specific trading recommendations with clear reasoning."
)

# Basic heuristic thresholds (24h change, percent)
OVERBOUGHT_CHANGE_PCT = 5.0
OVERSOLD_CHANGE_PCT = -5.0


def failed_analysis(pair: str) -> AnalysisRecord:
    """Draft used when the analysis provider cannot produce a result."""
    return AnalysisRecord(
        pair=pair,
        analysis="Analysis failed - using basic technical indicators",
        recommendation="HOLD",
        confidence=0.3,
        reasoning="Could not perform analysis",
    )


class AnalysisProvider(ABC):
    """Abstract base class for single-shot analysis providers."""

    @abstractmethod
    def analyze(self, snapshot: MarketSnapshot, history: List[Dict[str, Any]]) -> AnalysisRecord:
        """
        Produce a draft analysis for one trading pair.

        Args:
            snapshot: Latest market snapshot
            history: Hourly candles, oldest first (may be empty)

        Returns:
            AnalysisRecord: Draft recommendation and confidence (0.0 to 1.0)
        """
        pass


class OpenAIAnalysisProvider(AnalysisProvider):
    """Analysis from an OpenAI chat model."""

    def __init__(self, api_key: str, model: str = "gpt-3.5-turbo", timeout: float = 30.0,
                 client: Optional[OpenAI] = None):
        self.client = client or OpenAI(api_key=api_key)
        self.model = model
        self.timeout = timeout

    def _build_prompt(self, snapshot: MarketSnapshot, history: List[Dict[str, Any]]) -> str:
        closes = []
        for candle in history[-24:]:
            try:
                closes.append(float(candle["close"]))
            except (KeyError, TypeError, ValueError):
                continue

        return f"""
Analyze this crypto trading data for {snapshot.trading_pair.upper()}:

CURRENT DATA:
- Price: ${snapshot.current_price}
- 24h Change: {snapshot.change_24h}%
- 24h High: ${snapshot.high_24h}
- 24h Low: ${snapshot.low_24h}

HISTORICAL PRICES (last 24 hours): {', '.join(str(p) for p in closes[-5:])}

Please provide:
1. Overall market sentiment (STRONG_BUY/BUY/HOLD/SELL/STRONG_SELL)
2. Confidence level (0-100)
3. Key reasoning points

Format your response clearly with your recommendation and reasoning.
"""

    def analyze(self, snapshot: MarketSnapshot, history: List[Dict[str, Any]]) -> AnalysisRecord:
        logger.info(f"Analyzing market data for {snapshot.trading_pair.upper()}...")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self._build_prompt(snapshot, history)},
                ],
                max_tokens=500,
                temperature=0.3,
                timeout=self.timeout,
            )
            analysis = response.choices[0].message.content or ""
        except Exception as e:
            logger.error(f"Analysis failed: {e}")
            return failed_analysis(snapshot.trading_pair)

        return parse_analysis_response(snapshot.trading_pair, analysis)


class BasicAnalysisProvider(AnalysisProvider):
    """Local heuristic on the 24h change, used when no model is configured."""

    def analyze(self, snapshot: MarketSnapshot, history: List[Dict[str, Any]]) -> AnalysisRecord:
        change = snapshot.change_24h
        if change > OVERBOUGHT_CHANGE_PCT:
            recommendation, confidence = "SELL", 0.6
            reasoning = "Strong 24h gains - potential reversal"
        elif change < OVERSOLD_CHANGE_PCT:
            recommendation, confidence = "BUY", 0.7
            reasoning = "Significant 24h drop - potential recovery"
        else:
            recommendation, confidence = "HOLD", 0.5
            reasoning = "Basic technical analysis"

        return AnalysisRecord(
            pair=snapshot.trading_pair,
            analysis=f"Basic technical analysis for {snapshot.trading_pair.upper()}",
            recommendation=recommendation,
            confidence=confidence,
            reasoning=reasoning,
        )
