"""
test_config.py - Unit tests for PoolConfig
"""

import pytest

from lending_ledger import PoolConfig, BASE_CURRENCY_UNIT


class TestPoolConfig:

    def test_defaults(self):
        config = PoolConfig()
        assert config.treasury_account == "treasury"
        assert config.default_close_factor == 5000
        assert config.max_close_factor == 10_000
        assert config.small_position_threshold_base == 2000 * BASE_CURRENCY_UNIT
        assert config.max_reserves == 128

    def test_from_mapping(self):
        config = PoolConfig.from_mapping({"treasury_account": "dao", "max_reserves": 4})
        assert config.treasury_account == "dao"
        assert config.max_reserves == 4

    def test_from_mapping_rejects_unknown_keys(self):
        with pytest.raises(ValueError, match="max_price_age"):
            PoolConfig.from_mapping({"max_price_age": 60})

    @pytest.mark.parametrize("kwargs", [
        {"treasury_account": ""},
        {"default_close_factor": 0},
        {"default_close_factor": 6000, "max_close_factor": 5000},
        {"max_close_factor": 10_001},
        {"small_position_threshold_base": -1},
        {"max_reserves": 0},
        {"max_reserves": 129},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            PoolConfig(**kwargs)

    def test_frozen(self):
        config = PoolConfig()
        with pytest.raises(AttributeError):
            config.max_reserves = 1
