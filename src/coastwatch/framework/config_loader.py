"""
Configuration loading from YAML, environment variables and AWS SSM Parameter Store.

Reads config/coastwatch.yaml and layers overrides on top of it.

Configuration hierarchy (highest to lowest priority):
1. Environment variables (API keys, database URL, stream name, region)
2. SSM Parameter Store (secrets named under `secrets.*_param`)
3. YAML file (config/coastwatch.yaml)
4. Built-in defaults (DEFAULTS below)
"""

import copy
import logging
import os
from typing import Any, Optional

import boto3
import yaml

from coastwatch.framework.base_source import FetchOptions
from coastwatch.framework.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULTS: dict[str, Any] = {
    "hazards": {
        "poll_interval_seconds": 60,
        "earthquake_sources": ["usgs", "emsc", "jma", "iris"],
        "tsunami_sources": ["ptwc", "geonet", "dart", "seismic-inference"],
        "fetch": {
            "min_magnitude": 4.0,
            "time_window_hours": 24,
            "limit": 200,
            "bounding_box": None,
        },
    },
    "publishing": {
        "kinesis_enabled": True,
        "kinesis_stream": "coastwatch-hazards",
        "metrics_enabled": True,
        "cloudwatch_namespace": "CoastWatch/Ingestion",
        "region": "us-west-2",
    },
    "vessels": {
        "region": "global",
        "track_positions": True,
        "position_sample_rate": 10,
        "max_reconnect_attempts": 10,
        "reconnect_delay_seconds": 5,
        "max_reconnect_delay_seconds": 300,
        "stats_interval_seconds": 60,
    },
    "enrichment": {
        "batch_size": 50,
        "limit": 1000,
        "only_missing": True,
        "batch_pause_seconds": 1.0,
        "rate_limit_pause_seconds": 60.0,
    },
    "database": {"url": "sqlite:///coastwatch.db", "echo": False},
    "secrets": {
        "aisstream_api_key_param": None,
        "marinesia_api_key_param": None,
    },
}

# env var -> (section, key)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "COASTWATCH_DATABASE_URL": ("database", "url"),
    "KINESIS_STREAM_NAME": ("publishing", "kinesis_stream"),
    "AWS_REGION": ("publishing", "region"),
    "AIS_REGION": ("vessels", "region"),
}

# secret name -> env var
_SECRET_ENV: dict[str, str] = {
    "aisstream_api_key": "AISSTREAM_API_KEY",
    "marinesia_api_key": "MARINESIA_API_KEY",
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigLoader:
    """
    Loads and merges configuration from all sources.

    Usage:
        loader = ConfigLoader("config/coastwatch.yaml")
        config = loader.load()
        options = loader.get_fetch_options()
        api_key = loader.get_secret("aisstream_api_key")
    """

    DEFAULT_CONFIG_PATH = "config/coastwatch.yaml"

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH) -> None:
        self.config_path = config_path
        self._config: Optional[dict[str, Any]] = None
        self._ssm = None

    def load(self) -> dict[str, Any]:
        """
        Load the YAML file (if present), merge over defaults, apply env overrides.

        Returns:
            Merged configuration dict

        Raises:
            ConfigError: If the file exists but is not a YAML mapping
        """
        file_config: dict[str, Any] = {}
        if os.path.exists(self.config_path):
            with open(self.config_path) as f:
                loaded = yaml.safe_load(f)
            if loaded is not None and not isinstance(loaded, dict):
                raise ConfigError(f"{self.config_path} must contain a mapping")
            file_config = loaded or {}
        else:
            logger.warning("Config file not found, using defaults | path=%s", self.config_path)

        config = _deep_merge(DEFAULTS, file_config)
        for env_var, (section, key) in _ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value:
                config[section][key] = value

        self._config = config
        return config

    @property
    def config(self) -> dict[str, Any]:
        if self._config is None:
            self.load()
        assert self._config is not None
        return self._config

    def section(self, name: str) -> dict[str, Any]:
        """Return one top-level section, e.g. 'vessels'."""
        try:
            return self.config[name]
        except KeyError:
            raise ConfigError(f"Unknown config section '{name}'") from None

    def get_fetch_options(self) -> FetchOptions:
        """Build FetchOptions from hazards.fetch."""
        fetch = self.section("hazards").get("fetch", {})
        bbox = fetch.get("bounding_box")
        if bbox is not None:
            if len(bbox) != 4:
                raise ConfigError("hazards.fetch.bounding_box needs [min_lat, min_lon, max_lat, max_lon]")
            bbox = tuple(float(v) for v in bbox)
        return FetchOptions(
            min_magnitude=fetch.get("min_magnitude"),
            time_window_hours=fetch.get("time_window_hours"),
            limit=fetch.get("limit"),
            bounding_box=bbox,
        )

    def get_secret(self, name: str, required: bool = True) -> Optional[str]:
        """
        Resolve a secret (API key) from env, then SSM.

        Args:
            name: Secret name, e.g. "aisstream_api_key"
            required: Raise if the secret cannot be resolved

        Returns:
            Secret value, or None when optional and unresolved

        Raises:
            ConfigError: If required and neither env nor SSM provides it
        """
        env_var = _SECRET_ENV.get(name)
        if env_var and os.getenv(env_var):
            return os.environ[env_var]

        param = self.section("secrets").get(f"{name}_param")
        if param:
            value = self._read_ssm(param)
            if value:
                return value

        if required:
            raise ConfigError(
                f"Secret '{name}' not configured (set {env_var or 'env var'} or secrets.{name}_param)"
            )
        return None

    def _read_ssm(self, parameter: str) -> Optional[str]:
        if self._ssm is None:
            region = self.section("publishing").get("region")
            self._ssm = boto3.client("ssm", region_name=region)
        try:
            response = self._ssm.get_parameter(Name=parameter, WithDecryption=True)
        except Exception as exc:
            logger.warning("SSM get_parameter failed | parameter=%s | error=%s", parameter, exc)
            return None
        return response["Parameter"]["Value"]
