"""Tests for BackoffConfig validation and presets."""

import dataclasses

import pytest

from call_gateway.backoff.config import (
    DEFAULT_BACKOFF_CONFIG,
    SOURCE_CONTROL_BACKOFF_CONFIG,
    BackoffConfig,
)


class TestBackoffConfig:
    """Tests for BackoffConfig."""

    def test_defaults(self):
        """Default envelope is 1s initial, 60s max, 5 retries, x2, jitter on."""
        config = BackoffConfig()
        assert config.initial_delay_ms == 1_000
        assert config.max_delay_ms == 60_000
        assert config.max_retries == 5
        assert config.multiplier == 2.0
        assert config.jitter is True
        assert config.hint_buffer_ms == 1_000
        assert config.max_hint_delay_ms == 300_000

    def test_source_control_envelope(self):
        """The source-control envelope is tighter than the default."""
        assert SOURCE_CONTROL_BACKOFF_CONFIG.max_retries == 3
        assert SOURCE_CONTROL_BACKOFF_CONFIG.max_delay_ms == 10_000
        assert DEFAULT_BACKOFF_CONFIG == BackoffConfig()

    def test_is_frozen(self):
        """BackoffConfig cannot be mutated."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_BACKOFF_CONFIG.max_retries = 10  # type: ignore[misc]

    def test_zero_retries_allowed(self):
        """max_retries=0 means a single attempt."""
        assert BackoffConfig(max_retries=0).max_retries == 0

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"initial_delay_ms": -1}, "initial_delay_ms"),
            ({"initial_delay_ms": 5_000, "max_delay_ms": 1_000}, "max_delay_ms"),
            ({"max_retries": -1}, "max_retries"),
            ({"multiplier": 0.5}, "multiplier"),
            ({"hint_buffer_ms": -5}, "hint_buffer_ms"),
            ({"max_hint_delay_ms": 0}, "max_hint_delay_ms"),
        ],
    )
    def test_validation(self, kwargs, message):
        """Invalid values raise ValueError naming the field."""
        with pytest.raises(ValueError, match=message):
            BackoffConfig(**kwargs)
