"""Configuration of the SV1 to SV2 translator proxy."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any


class ConfigError(ValueError):
    """Raised when a configuration is missing, malformed or out of range."""


_MISSING = object()
_U32_MAX = 0xFFFFFFFF


def _round_u32(value: float) -> int:
    """Round half away from zero and saturate into the u32 range."""
    if math.isnan(value):
        return 0
    if math.isinf(value):
        return _U32_MAX if value > 0 else 0
    rounded = math.floor(abs(value) + 0.5)
    if value < 0:
        return 0
    return min(rounded, _U32_MAX)


@dataclass(eq=False)
class DownstreamDifficultyConfig:
    """Difficulty adjustment settings for downstream miners."""

    min_individual_miner_hashrate: float
    shares_per_minute: float
    submits_since_last_update: int = 0
    timestamp_of_last_update: int = 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DownstreamDifficultyConfig):
            return NotImplemented
        return _round_u32(self.min_individual_miner_hashrate) == _round_u32(
            other.min_individual_miner_hashrate
        )

    def __hash__(self) -> int:
        return hash(_round_u32(self.min_individual_miner_hashrate))


@dataclass
class UpstreamDifficultyConfig:
    """Difficulty adjustment settings for the upstream channel."""

    channel_diff_update_interval: int
    channel_nominal_hashrate: float
    timestamp_of_last_update: int = 0
    should_aggregate: bool = False


@dataclass
class UpstreamConfig:
    """Upstream server address, port, authority key and difficulty settings."""

    address: str
    port: int
    authority_pubkey: str
    difficulty_config: UpstreamDifficultyConfig


@dataclass
class DownstreamConfig:
    """Downstream listening address, port and difficulty settings."""

    address: str
    port: int
    difficulty_config: DownstreamDifficultyConfig


def _get(data: Mapping[str, Any], key: str, default: Any = _MISSING) -> Any:
    if key in data:
        return data[key]
    if default is _MISSING:
        raise ConfigError(f"missing field `{key}`")
    return default


def _uint(data: Mapping[str, Any], key: str, bits: int, default: Any = _MISSING) -> int:
    value = _get(data, key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"field `{key}` must be an integer")
    if not 0 <= value < (1 << bits):
        raise ConfigError(f"field `{key}` out of range for u{bits}: {value}")
    return value


def _float(data: Mapping[str, Any], key: str) -> float:
    value = _get(data, key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"field `{key}` must be a number")
    return float(value)


def _str(data: Mapping[str, Any], key: str) -> str:
    value = _get(data, key)
    if not isinstance(value, str):
        raise ConfigError(f"field `{key}` must be a string")
    return value


def _bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = _get(data, key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"field `{key}` must be a boolean")
    return value


def _table(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = _get(data, key)
    if not isinstance(value, Mapping):
        raise ConfigError(f"field `{key}` must be a table")
    return value


def _downstream_difficulty(data: Mapping[str, Any]) -> DownstreamDifficultyConfig:
    return DownstreamDifficultyConfig(
        min_individual_miner_hashrate=_float(data, "min_individual_miner_hashrate"),
        shares_per_minute=_float(data, "shares_per_minute"),
        submits_since_last_update=_uint(data, "submits_since_last_update", 32, 0),
        timestamp_of_last_update=_uint(data, "timestamp_of_last_update", 64, 0),
    )


def _upstream_difficulty(data: Mapping[str, Any]) -> UpstreamDifficultyConfig:
    return UpstreamDifficultyConfig(
        channel_diff_update_interval=_uint(data, "channel_diff_update_interval", 32),
        channel_nominal_hashrate=_float(data, "channel_nominal_hashrate"),
        timestamp_of_last_update=_uint(data, "timestamp_of_last_update", 64, 0),
        should_aggregate=_bool(data, "should_aggregate", False),
    )


@dataclass
class TranslatorConfig:
    """Full translator configuration."""

    upstream_address: str
    upstream_port: int
    upstream_authority_pubkey: str
    downstream_address: str
    downstream_port: int
    max_supported_version: int
    min_supported_version: int
    min_extranonce2_size: int
    downstream_difficulty_config: DownstreamDifficultyConfig
    upstream_difficulty_config: UpstreamDifficultyConfig
    log_file: Path | None = None

    @classmethod
    def from_parts(
        cls,
        upstream: UpstreamConfig,
        downstream: DownstreamConfig,
        max_supported_version: int,
        min_supported_version: int,
        min_extranonce2_size: int,
    ) -> "TranslatorConfig":
        """Combine upstream and downstream settings with version limits."""
        return cls(
            upstream_address=upstream.address,
            upstream_port=upstream.port,
            upstream_authority_pubkey=upstream.authority_pubkey,
            downstream_address=downstream.address,
            downstream_port=downstream.port,
            max_supported_version=max_supported_version,
            min_supported_version=min_supported_version,
            min_extranonce2_size=min_extranonce2_size,
            downstream_difficulty_config=downstream.difficulty_config,
            upstream_difficulty_config=upstream.difficulty_config,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TranslatorConfig":
        """Build a configuration from a parsed TOML document."""
        if not isinstance(data, Mapping):
            raise ConfigError("configuration must be a table")
        log_file = data.get("log_file")
        if log_file is not None and not isinstance(log_file, str):
            raise ConfigError("field `log_file` must be a string")
        return cls(
            upstream_address=_str(data, "upstream_address"),
            upstream_port=_uint(data, "upstream_port", 16),
            upstream_authority_pubkey=_str(data, "upstream_authority_pubkey"),
            downstream_address=_str(data, "downstream_address"),
            downstream_port=_uint(data, "downstream_port", 16),
            max_supported_version=_uint(data, "max_supported_version", 16),
            min_supported_version=_uint(data, "min_supported_version", 16),
            min_extranonce2_size=_uint(data, "min_extranonce2_size", 16),
            downstream_difficulty_config=_downstream_difficulty(
                _table(data, "downstream_difficulty_config")
            ),
            upstream_difficulty_config=_upstream_difficulty(
                _table(data, "upstream_difficulty_config")
            ),
            log_file=Path(log_file) if log_file is not None else None,
        )

    def set_log_dir(self, log_dir: Path | str | None) -> None:
        """Set the log file path; ``None`` leaves the current value."""
        if log_dir is not None:
            self.log_file = Path(log_dir)

    def log_dir(self) -> Path | None:
        """Return the configured log file path, if any."""
        return self.log_file