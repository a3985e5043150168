"""Command-line handling for the translator proxy."""

from __future__ import annotations

import argparse
import tomllib
from collections.abc import Sequence
from pathlib import Path

from stratumkit.translator_config import ConfigError, TranslatorConfig

DEFAULT_CONFIG_PATH = Path("proxy-config.toml")


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="translator", description="Translator Proxy")
    parser.add_argument(
        "-c",
        "--config",
        dest="config_path",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to the TOML configuration file",
    )
    parser.add_argument(
        "-f",
        "--log-file",
        dest="log_file",
        type=Path,
        default=None,
        help="Path to the log file. If not set, logs will only be written to stdout.",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse the translator's command-line arguments."""
    return _parser().parse_args(argv)


def process_cli_args(argv: Sequence[str] | None = None) -> TranslatorConfig:
    """Parse arguments, load the TOML configuration and apply the log file."""
    args = parse_args(argv)
    try:
        with args.config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except OSError as exc:
        raise ConfigError(
            f"cannot read configuration file {args.config_path}: {exc}"
        ) from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {args.config_path}: {exc}") from exc
    config = TranslatorConfig.from_mapping(data)
    config.set_log_dir(args.log_file)
    return config