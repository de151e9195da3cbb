"""Configuration module for the Supra threshold agent."""

import os
from dataclasses import dataclass
from typing import List, Optional
from dotenv import load_dotenv


DEFAULT_MODULE_ADDRESS = "0x1c5acf62be507c27a7788a661b546224d806246765ff2695efece60194c6df05"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "y")


@dataclass
class Config:
    """Configuration for the agent loaded from environment variables."""

    # Credentials
    oracle_api_key: str
    private_key_hex: str
    openai_api_key: Optional[str]

    # Endpoints
    oracle_base_url: str
    rpc_url: str
    chain_id: int
    module_address: str
    openai_model: str

    # Agent behavior
    trading_pairs: List[str]
    loop_interval_seconds: int

    # Feature toggles
    enable_auto_trading: bool
    enable_experts: bool
    enable_onchain_recording: bool

    # Risk
    max_investment_per_trade: float
    confidence_threshold: float  # 0.0 to 1.0
    risk_level: str  # "LOW" | "MEDIUM" | "HIGH"

    # Timing
    expert_timeout_seconds: float
    settle_delay_seconds: float

    @property
    def enable_analysis(self) -> bool:
        """Model-backed analysis is only possible with an OpenAI key."""
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls) -> "Config":
        """
        Load configuration from environment variables with validation.

        Returns:
            Config: Validated configuration object

        Raises:
            ValueError: If required fields are missing or invalid
        """
        load_dotenv()

        oracle_api_key = os.getenv("SUPRA_ORACLE_API_KEY")
        private_key_hex = os.getenv("SUPRA_PRIVATE_KEY")
        openai_api_key = os.getenv("OPENAI_API_KEY") or None

        required_fields = {
            "SUPRA_ORACLE_API_KEY": oracle_api_key,
            "SUPRA_PRIVATE_KEY": private_key_hex,
        }
        missing_fields = [name for name, value in required_fields.items() if not value]
        if missing_fields:
            raise ValueError(f"Missing required environment variables: {', '.join(missing_fields)}")

        pairs_str = os.getenv("TRADING_PAIRS", "btc_usdt")
        trading_pairs = [p.strip().lower() for p in pairs_str.split(",") if p.strip()]
        if not trading_pairs:
            raise ValueError("TRADING_PAIRS must contain at least one trading pair")

        try:
            chain_id = int(os.getenv("SUPRA_CHAIN_ID", "6"))
        except ValueError:
            raise ValueError("SUPRA_CHAIN_ID must be a valid integer")

        try:
            loop_interval_seconds = int(os.getenv("LOOP_INTERVAL_SECONDS", "300"))
        except ValueError:
            raise ValueError("LOOP_INTERVAL_SECONDS must be a valid integer")

        try:
            max_investment_per_trade = float(os.getenv("MAX_INVESTMENT_PER_TRADE", "400"))
        except ValueError:
            raise ValueError("MAX_INVESTMENT_PER_TRADE must be a valid float")

        try:
            confidence_threshold = float(os.getenv("CONFIDENCE_THRESHOLD", "0.7"))
        except ValueError:
            raise ValueError("CONFIDENCE_THRESHOLD must be a valid float")

        try:
            expert_timeout_seconds = float(os.getenv("EXPERT_TIMEOUT_SECONDS", "20"))
        except ValueError:
            raise ValueError("EXPERT_TIMEOUT_SECONDS must be a valid float")

        try:
            settle_delay_seconds = float(os.getenv("SETTLE_DELAY_SECONDS", "8"))
        except ValueError:
            raise ValueError("SETTLE_DELAY_SECONDS must be a valid float")

        risk_level = os.getenv("RISK_LEVEL", "MEDIUM").strip().upper()

        # Validate ranges
        if chain_id <= 0 or chain_id > 255:
            raise ValueError("SUPRA_CHAIN_ID must be between 1 and 255")
        if loop_interval_seconds <= 0:
            raise ValueError("LOOP_INTERVAL_SECONDS must be greater than 0")
        if max_investment_per_trade <= 0:
            raise ValueError("MAX_INVESTMENT_PER_TRADE must be greater than 0")
        if not 0.0 <= confidence_threshold <= 1.0:
            raise ValueError("CONFIDENCE_THRESHOLD must be between 0.0 and 1.0")
        if expert_timeout_seconds <= 0:
            raise ValueError("EXPERT_TIMEOUT_SECONDS must be greater than 0")
        if settle_delay_seconds < 0:
            raise ValueError("SETTLE_DELAY_SECONDS must be non-negative")
        if risk_level not in ["LOW", "MEDIUM", "HIGH"]:
            raise ValueError("RISK_LEVEL must be 'LOW', 'MEDIUM' or 'HIGH'")

        # Experts need a model to ask
        enable_experts = _env_flag("ENABLE_EXPERTS", "true") and bool(openai_api_key)

        return cls(
            oracle_api_key=oracle_api_key,
            private_key_hex=private_key_hex,
            openai_api_key=openai_api_key,
            oracle_base_url=os.getenv("ORACLE_BASE_URL", "https://prod-kline-rest.supra.com").rstrip("/"),
            rpc_url=os.getenv("SUPRA_RPC_URL", "https://rpc-testnet.supra.com").rstrip("/"),
            chain_id=chain_id,
            module_address=os.getenv("AUTOMATION_MODULE_ADDRESS", DEFAULT_MODULE_ADDRESS),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-3.5-turbo"),
            trading_pairs=trading_pairs,
            loop_interval_seconds=loop_interval_seconds,
            enable_auto_trading=_env_flag("ENABLE_AUTO_TRADING", "false"),
            enable_experts=enable_experts,
            enable_onchain_recording=_env_flag("ENABLE_ONCHAIN_RECORDING", "false"),
            max_investment_per_trade=max_investment_per_trade,
            confidence_threshold=confidence_threshold,
            risk_level=risk_level,
            expert_timeout_seconds=expert_timeout_seconds,
            settle_delay_seconds=settle_delay_seconds,
        )
