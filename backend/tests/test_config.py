"""
Tests for supra_agent/config.py
"""

from unittest.mock import patch

import pytest

from supra_agent.config import DEFAULT_MODULE_ADDRESS, Config


REQUIRED = {
    "SUPRA_ORACLE_API_KEY": "oracle-key",
    "SUPRA_PRIVATE_KEY": "11" * 32,
}


def load(env):
    # load_dotenv is patched so a developer's .env file never leaks into tests
    with patch.dict("os.environ", env, clear=True), patch("supra_agent.config.load_dotenv"):
        return Config.from_env()


class TestConfig:
    """Test environment configuration loading."""

    def test_defaults(self):
        config = load(REQUIRED)

        assert config.trading_pairs == ["btc_usdt"]
        assert config.loop_interval_seconds == 300
        assert config.max_investment_per_trade == 400
        assert config.confidence_threshold == 0.7
        assert config.enable_auto_trading is False
        assert config.enable_onchain_recording is False
        assert config.module_address == DEFAULT_MODULE_ADDRESS
        assert config.chain_id == 6

    def test_experts_need_openai_key(self):
        assert load(REQUIRED).enable_experts is False
        assert load(REQUIRED).enable_analysis is False

        config = load({**REQUIRED, "OPENAI_API_KEY": "sk-test"})
        assert config.enable_experts is True
        assert config.enable_analysis is True

    def test_pairs_normalized(self):
        config = load({**REQUIRED, "TRADING_PAIRS": " BTC_USDT, eth_usdt ,"})
        assert config.trading_pairs == ["btc_usdt", "eth_usdt"]

    def test_flags(self):
        config = load({**REQUIRED, "ENABLE_AUTO_TRADING": "true", "ENABLE_ONCHAIN_RECORDING": "1"})
        assert config.enable_auto_trading is True
        assert config.enable_onchain_recording is True

    @pytest.mark.parametrize("missing", ["SUPRA_ORACLE_API_KEY", "SUPRA_PRIVATE_KEY"])
    def test_missing_required(self, missing):
        env = {k: v for k, v in REQUIRED.items() if k != missing}
        with pytest.raises(ValueError, match=missing):
            load(env)

    @pytest.mark.parametrize("name,value", [
        ("CONFIDENCE_THRESHOLD", "1.5"),
        ("CONFIDENCE_THRESHOLD", "high"),
        ("LOOP_INTERVAL_SECONDS", "0"),
        ("MAX_INVESTMENT_PER_TRADE", "-1"),
        ("RISK_LEVEL", "EXTREME"),
        ("SUPRA_CHAIN_ID", "300"),
    ])
    def test_invalid_values(self, name, value):
        with pytest.raises(ValueError, match=name):
            load({**REQUIRED, name: value})
