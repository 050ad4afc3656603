"""Configuration module — frozen dataclass loaded from YAML, env vars and CLI args."""

import argparse
import logging
import math
import os
from dataclasses import dataclass

import yaml

from analytics_pipeline.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.segment.io"


@dataclass(frozen=True)
class AnalyticsConfig:
    write_key: str
    endpoint: str = DEFAULT_ENDPOINT
    flush_queue_size: int = 250
    flush_interval: float = 10.0   # seconds
    max_retries: int = 0
    request_timeout: float = 15.0  # seconds
    network_workers: int = 1
    thread_name: str = "analytics-worker"

    def __post_init__(self):
        if not self.write_key:
            raise ConfigurationError("write_key cannot be null or empty.")
        if not self.endpoint:
            raise ConfigurationError("endpoint cannot be null or empty.")
        if self.flush_queue_size < 1:
            raise ConfigurationError("flush_queue_size must not be less than 1.")
        if not math.isfinite(self.flush_interval):
            raise ConfigurationError("flush_interval must be a finite number of seconds.")
        if self.flush_interval < 1.0:
            raise ConfigurationError("flush_interval must not be less than 1 second.")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must not be negative.")
        if not math.isfinite(self.request_timeout) or self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive.")
        if self.network_workers < 1:
            raise ConfigurationError("network_workers must not be less than 1.")


# Environment variable -> (field name, converter)
_ENV_VARS = {
    "ANALYTICS_WRITE_KEY": ("write_key", str),
    "ANALYTICS_ENDPOINT": ("endpoint", str),
    "FLUSH_QUEUE_SIZE": ("flush_queue_size", int),
    "FLUSH_INTERVAL": ("flush_interval", float),
    "MAX_RETRIES": ("max_retries", int),
    "REQUEST_TIMEOUT": ("request_timeout", float),
    "NETWORK_WORKERS": ("network_workers", int),
}

# Field name -> converter, for values read from a YAML file
_FIELD_TYPES = {name: convert for name, convert in _ENV_VARS.values()}
_FIELD_TYPES["thread_name"] = str


def load_yaml_config(path: str | None) -> dict:
    """Load options from a YAML file. Returns empty dict if no path or the
    file does not exist."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    logger.info("Loaded YAML config from %s", path)
    return data


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Analytics pipeline client")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--write-key", type=str, default=None)
    parser.add_argument("--endpoint", type=str, default=None)
    parser.add_argument("--flush-queue-size", type=int, default=None)
    parser.add_argument("--flush-interval", type=float, default=None)
    parser.add_argument("--max-retries", type=int, default=None)
    parser.add_argument("--request-timeout", type=float, default=None)
    parser.add_argument("--network-workers", type=int, default=None)
    parser.add_argument("--events-per-second", type=int, default=5)
    parser.add_argument("--run-time", type=int, default=30)
    return parser


def parse_args(argv=None) -> argparse.Namespace:
    """Parse CLI flags. Pass argv for testability; when None, argparse
    reads sys.argv."""
    return _build_parser().parse_args(argv)


def load_config(argv=None, yaml_path: str | None = None) -> AnalyticsConfig:
    """Build AnalyticsConfig from defaults <- YAML file <- env vars <- CLI args.

    The YAML path is taken from *yaml_path*, then ``--config``, then the
    ``ANALYTICS_CONFIG`` environment variable.
    """
    args = parse_args(argv)
    path = yaml_path or args.config or os.environ.get("ANALYTICS_CONFIG")

    kwargs = {}
    for key, value in load_yaml_config(path).items():
        convert = _FIELD_TYPES.get(key)
        if convert is None:
            logger.warning("Ignoring unknown config option %r", key)
            continue
        if value is None:
            continue
        # Go through str() so YAML scalars parse the same way env vars do
        try:
            kwargs[key] = convert(str(value))
        except ValueError as exc:
            raise ConfigurationError(f"Invalid value for {key} in {path}: {value!r}") from exc

    for env_name, (field_name, convert) in _ENV_VARS.items():
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            kwargs[field_name] = convert(raw)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid value for {env_name}: {raw!r}") from exc

    # CLI flags override everything else
    for field_name in (
        "write_key", "endpoint", "flush_queue_size", "flush_interval",
        "max_retries", "request_timeout", "network_workers",
    ):
        value = getattr(args, field_name)
        if value is not None:
            kwargs[field_name] = value

    kwargs.setdefault("write_key", "")
    return AnalyticsConfig(**kwargs)
