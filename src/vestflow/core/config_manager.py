"""
vestflow Configuration Manager

Centralized configuration management supporting:
- Environment-based configs (development/testnet/production)
- Config file loading (YAML/JSON)
- Command-line override support
- Environment variable support (VESTFLOW_*)
- Config validation
"""

import os
import json
import logging
import yaml
from typing import Any, Dict, List, Optional, Union
from pathlib import Path
from dataclasses import dataclass, field, asdict
from enum import Enum
from dotenv import load_dotenv

from vestflow.core.exceptions import ConfigurationError

logger = logging.getLogger("vestflow.config")

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
ENV_PREFIX = "VESTFLOW_"

WEEK = 7 * 24 * 60 * 60
DAY = 24 * 60 * 60


class Environment(Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    TESTNET = "testnet"
    PRODUCTION = "production"


@dataclass
class LedgerConfig:
    """Custody and ownership settings"""
    owner: str = "owner"
    custody_account: str = "vestflow_custody"

    def validate(self):
        if not self.owner:
            raise ConfigurationError("ledger.owner cannot be empty")
        if not self.custody_account:
            raise ConfigurationError("ledger.custody_account cannot be empty")
        if self.owner == self.custody_account:
            raise ConfigurationError("ledger.owner must differ from ledger.custody_account")


@dataclass
class PoolConfig:
    """Reward pool settings"""
    total_amount: int = 2_300_000_000
    interval: int = 4 * WEEK
    total_duration: int = 92 * WEEK
    launch_time: int = 0
    recipient: str = "game_contract"

    def validate(self):
        if not isinstance(self.total_amount, int) or self.total_amount < 0:
            raise ConfigurationError(f"Invalid pool.total_amount: {self.total_amount}. Must be an integer >= 0")
        if not isinstance(self.interval, int) or self.interval <= 0:
            raise ConfigurationError(f"Invalid pool.interval: {self.interval}. Must be > 0")
        if not isinstance(self.total_duration, int) or self.total_duration < self.interval:
            raise ConfigurationError(
                f"Invalid pool.total_duration: {self.total_duration}. Must be >= pool.interval"
            )
        if not isinstance(self.launch_time, int) or self.launch_time < 0:
            raise ConfigurationError(f"Invalid pool.launch_time: {self.launch_time}. Must be >= 0")
        if not self.recipient:
            raise ConfigurationError("pool.recipient cannot be empty")


@dataclass
class StageConfig:
    """A single pre-declared sale stage"""
    stage_id: int
    name: str
    rate: int
    tge_percentage: int
    cliff: int
    interval: int
    vesting_duration: int
    cap: int
    requires_whitelist: bool = False

    def validate(self):
        if self.rate <= 0:
            raise ConfigurationError(f"Invalid rate for stage {self.name}: {self.rate}. Must be > 0")
        if not 0 <= self.tge_percentage <= 100:
            raise ConfigurationError(
                f"Invalid tge_percentage for stage {self.name}: {self.tge_percentage}. Must be 0-100"
            )
        if self.cliff < 0:
            raise ConfigurationError(f"Invalid cliff for stage {self.name}: {self.cliff}. Must be >= 0")
        if self.interval <= 0:
            raise ConfigurationError(f"Invalid interval for stage {self.name}: {self.interval}. Must be > 0")
        if self.vesting_duration < self.interval:
            raise ConfigurationError(
                f"Invalid vesting_duration for stage {self.name}: {self.vesting_duration}. Must be >= interval"
            )
        if self.cap < 0:
            raise ConfigurationError(f"Invalid cap for stage {self.name}: {self.cap}. Must be >= 0")


def _default_stages() -> List[StageConfig]:
    return [
        StageConfig(0, "seed", 1000, 10, 90 * DAY, 30 * DAY, 360 * DAY, 100_000_000, True),
        StageConfig(1, "strategic", 500, 15, 60 * DAY, 30 * DAY, 270 * DAY, 150_000_000, True),
        StageConfig(2, "public", 250, 25, 0, 30 * DAY, 180 * DAY, 250_000_000, False),
    ]


@dataclass
class SaleConfig:
    """Staged sale settings"""
    stages: List[StageConfig] = field(default_factory=_default_stages)

    def validate(self):
        ids = [stage.stage_id for stage in self.stages]
        if len(ids) != len(set(ids)):
            raise ConfigurationError(f"Duplicate stage ids in sale.stages: {ids}")
        for stage in self.stages:
            stage.validate()


@dataclass
class StorageConfig:
    """Storage configuration settings"""
    state_file: str = "data/vestflow_state.json"

    def validate(self):
        if not self.state_file:
            raise ConfigurationError("storage.state_file cannot be empty")


@dataclass
class LoggingConfig:
    """Logging configuration settings"""
    level: str = "INFO"
    log_file: str = ""
    max_log_size: int = 10485760  # 10MB
    enable_console: bool = True
    enable_file: bool = False

    def validate(self):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ConfigurationError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")
        if self.max_log_size < 1024:
            raise ConfigurationError(f"Invalid max_log_size: {self.max_log_size}. Must be >= 1024")


class ConfigManager:
    """
    Configuration Manager for vestflow

    Handles loading, validation, and access to configuration settings
    from multiple sources with proper precedence:
    1. Command-line arguments (highest priority)
    2. Environment variables (VESTFLOW_*)
    3. Environment-specific config files
    4. Default config file
    5. Built-in defaults (lowest priority)
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 config_dir: Optional[str] = None,
                 cli_overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize Configuration Manager

        Args:
            environment: Environment name (development/testnet/production)
            config_dir: Directory containing config files
            cli_overrides: Dotted-key overrides, e.g. {"pool.launch_time": 1700000000}
        """
        load_dotenv()

        self.environment = self._determine_environment(environment)
        self.config_dir = Path(config_dir).resolve() if config_dir else DEFAULT_CONFIG_DIR
        self.cli_overrides = cli_overrides or {}

        self.ledger: LedgerConfig = None
        self.pool: PoolConfig = None
        self.sale: SaleConfig = None
        self.storage: StorageConfig = None
        self.logging: LoggingConfig = None

        self._raw_config: Dict[str, Any] = {}

        self._load_configuration()

    def _determine_environment(self, environment: Optional[str]) -> Environment:
        """
        Determine the environment to use

        Priority:
        1. Passed environment parameter
        2. VESTFLOW_ENVIRONMENT environment variable
        3. Default to DEVELOPMENT
        """
        env_str = (environment or os.getenv("VESTFLOW_ENVIRONMENT", "development")).lower()

        env_mapping = {
            "dev": Environment.DEVELOPMENT,
            "development": Environment.DEVELOPMENT,
            "test": Environment.TESTNET,
            "testnet": Environment.TESTNET,
            "prod": Environment.PRODUCTION,
            "production": Environment.PRODUCTION,
        }

        return env_mapping.get(env_str, Environment.DEVELOPMENT)

    def _load_configuration(self):
        """Load configuration from all sources with proper precedence"""
        default_config = self._load_config_file("default")
        env_config = self._load_config_file(self.environment.value)

        merged_config = self._merge_configs(default_config, env_config)
        merged_config = self._apply_env_variables(merged_config)
        merged_config = self._apply_cli_overrides(merged_config)

        self._raw_config = merged_config

        self._parse_configuration(merged_config)
        self._validate_configuration()
        logger.debug(
            "Configuration loaded for %s from %s",
            self.environment.value,
            self.config_dir,
            extra={"event": "config.loaded", "environment": self.environment.value},
        )

    def _load_config_file(self, filename: str) -> Dict[str, Any]:
        """
        Load configuration from YAML or JSON file

        Args:
            filename: Config filename (without extension)

        Returns:
            Configuration dictionary
        """
        yaml_path = self.config_dir / f"{filename}.yaml"
        try:
            if yaml_path.exists():
                with open(yaml_path, "r", encoding="utf-8") as f:
                    return yaml.safe_load(f) or {}

            json_path = self.config_dir / f"{filename}.json"
            if json_path.exists():
                with open(json_path, "r", encoding="utf-8") as f:
                    return json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Could not parse config file {filename}: {exc}") from exc

        return {}

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_variables(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variable overrides (VESTFLOW_*)

        Environment variables format:
        VESTFLOW_SECTION_KEY=value

        Example:
        VESTFLOW_POOL_LAUNCH_TIME=1700000000
        VESTFLOW_LEDGER_OWNER=treasury
        """
        result = config.copy()
        sections = {"ledger", "pool", "sale", "storage", "logging"}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX) or key == "VESTFLOW_ENVIRONMENT":
                continue

            parts = key[len(ENV_PREFIX):].lower().split("_")
            if len(parts) < 2 or parts[0] not in sections:
                continue

            section = parts[0]
            config_key = "_".join(parts[1:])

            if not isinstance(result.get(section), dict):
                result[section] = {}
            else:
                result[section] = dict(result[section])
            result[section][config_key] = self._parse_env_value(value)

        return result

    def _parse_env_value(self, value: str) -> Union[str, int, bool]:
        """Parse environment variable value to appropriate type"""
        try:
            return int(value)
        except ValueError:
            pass

        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        return value

    def _apply_cli_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply command-line argument overrides (dotted keys)"""
        result = config.copy()

        for key, value in self.cli_overrides.items():
            parts = key.split(".")

            if len(parts) == 1:
                result[key] = value
            elif len(parts) == 2:
                section, config_key = parts
                section_values = dict(result.get(section) or {})
                section_values[config_key] = value
                result[section] = section_values

        return result

    def _parse_configuration(self, config: Dict[str, Any]):
        """Parse configuration into typed objects"""
        try:
            self.ledger = LedgerConfig(**config.get("ledger", {}))
            self.pool = PoolConfig(**config.get("pool", {}))
            sale_config = config.get("sale", {})
            if "stages" in sale_config:
                self.sale = SaleConfig(stages=[StageConfig(**stage) for stage in sale_config["stages"]])
            else:
                self.sale = SaleConfig()
            self.storage = StorageConfig(**config.get("storage", {}))
            self.logging = LoggingConfig(**config.get("logging", {}))
        except TypeError as exc:
            raise ConfigurationError(f"Unknown configuration key: {exc}") from exc

    def _validate_configuration(self):
        """Validate all configuration sections"""
        self.ledger.validate()
        self.pool.validate()
        self.sale.validate()
        self.storage.validate()
        self.logging.validate()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Args:
            key: Configuration key (e.g., "pool.interval")
            default: Default value if key not found
        """
        value = self.to_dict()

        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value

    def get_section(self, section: str) -> Optional[Dict[str, Any]]:
        """Get entire configuration section"""
        return self.to_dict().get(section)

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration to dictionary"""
        return {
            "environment": self.environment.value,
            "ledger": asdict(self.ledger),
            "pool": asdict(self.pool),
            "sale": asdict(self.sale),
            "storage": asdict(self.storage),
            "logging": asdict(self.logging),
        }

    def reload(self):
        """Reload configuration from files"""
        self._load_configuration()

    def __repr__(self) -> str:
        return f"ConfigManager(environment={self.environment.value})"


_config_manager: Optional[ConfigManager] = None


def get_config_manager(
    environment: Optional[str] = None,
    config_dir: Optional[str] = None,
    cli_overrides: Optional[Dict[str, Any]] = None,
    force_reload: bool = False
) -> ConfigManager:
    """
    Get or create ConfigManager singleton instance

    Args:
        environment: Environment name
        config_dir: Config directory path
        cli_overrides: CLI argument overrides
        force_reload: Force reload configuration
    """
    global _config_manager

    if _config_manager is None or force_reload:
        _config_manager = ConfigManager(
            environment=environment,
            config_dir=config_dir,
            cli_overrides=cli_overrides
        )

    return _config_manager
