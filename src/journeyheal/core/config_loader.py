"""Configuration loading and validation utilities for self-healing and mapping policy."""

import re
import yaml
from dataclasses import replace
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple
import logging

from .models.healing_models import HealingConfiguration
from .models.mapping_models import SelectorPolicy, LocatorStrategy
from .models.llkb_models import LlkbPolicy
from .config import settings

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


class HealingConfigLoader:
    """Loads and validates the healing policy file (healing, selectors, llkb sections)."""

    DEFAULT_CONFIG = {
        "healing": {
            "enabled": True,
            "max_attempts": 3,
            "max_timeout_increase": 30000,
            "allowed_fixes": [
                "selector-refine",
                "add-exact",
                "missing-await",
                "navigation-wait",
                "web-first-assertion",
            ],
        },
        "selectors": {
            "priority": ["role", "label", "placeholder", "text", "testid", "css"],
            "forbidden_patterns": [],
        },
        "llkb": {
            "min_confidence": 0.7,
            "prune_min_confidence": 0.3,
            "prune_min_applications": 3,
            "publish_threshold": 0.7,
        },
    }

    def __init__(self, config_path: Optional[str] = None):
        """Initialize config loader with optional custom path."""
        self.config_path = Path(config_path or settings.HEALING_CONFIG_PATH)
        self._config_cache: Optional[Tuple[HealingConfiguration, SelectorPolicy, LlkbPolicy]] = None
        self._config_file_mtime: Optional[float] = None

    def load_config(self, force_reload: bool = False) -> HealingConfiguration:
        """Load and validate the healing section.

        Args:
            force_reload: Force reload even if cached config exists

        Returns:
            HealingConfiguration: Validated configuration object

        Raises:
            ConfigurationError: If configuration is invalid
        """
        return self._load_all(force_reload)[0]

    def load_selector_policy(self, force_reload: bool = False) -> SelectorPolicy:
        """Load the selector priority and forbidden patterns."""
        return self._load_all(force_reload)[1]

    def load_llkb_policy(self, force_reload: bool = False) -> LlkbPolicy:
        """Load the learned pattern store thresholds."""
        return self._load_all(force_reload)[2]

    def _load_all(self, force_reload: bool = False) -> Tuple[HealingConfiguration, SelectorPolicy, LlkbPolicy]:
        # Check if we need to reload
        if not force_reload and self._config_cache and self._is_config_current():
            return self._config_cache

        try:
            config_data = self._load_config_file()
            healing_config = self._parse_healing_config(config_data)
            selector_policy = self._parse_selector_policy(config_data)
            llkb_policy = self._parse_llkb_policy(config_data)
            self._validate_config(healing_config, selector_policy, llkb_policy)

            # Cache the config and file modification time
            self._config_cache = (healing_config, selector_policy, llkb_policy)
            if self.config_path.exists():
                self._config_file_mtime = self.config_path.stat().st_mtime
            else:
                self._config_file_mtime = None

            logger.info(f"Loaded healing configuration from {self.config_path}")
            return self._config_cache

        except ConfigurationError as e:
            logger.error(f"Failed to load healing configuration: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load healing configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}") from e

    def save_config(self, config: HealingConfiguration,
                    selector_policy: Optional[SelectorPolicy] = None,
                    llkb_policy: Optional[LlkbPolicy] = None) -> None:
        """Save configuration to file.

        Sections not supplied keep their currently loaded values.

        Raises:
            ConfigurationError: If saving fails
        """
        try:
            if selector_policy is None or llkb_policy is None:
                try:
                    _, current_selectors, current_llkb = self._load_all()
                except ConfigurationError:
                    current_selectors, current_llkb = SelectorPolicy(), LlkbPolicy()
                selector_policy = selector_policy or current_selectors
                llkb_policy = llkb_policy or current_llkb

            self._validate_config(config, selector_policy, llkb_policy)

            # Ensure directory exists
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

            config_data = {
                "healing": self._config_to_dict(config),
                "selectors": selector_policy.to_dict(),
                "llkb": llkb_policy.to_dict(),
            }

            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.dump(config_data, f, default_flow_style=False, indent=2)

            # Update cache
            self._config_cache = (config, selector_policy, llkb_policy)
            self._config_file_mtime = self.config_path.stat().st_mtime

            logger.info(f"Saved healing configuration to {self.config_path}")

        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Failed to save healing configuration: {e}")
            raise ConfigurationError(f"Configuration saving failed: {e}") from e

    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration from file or return defaults."""
        if not self.config_path.exists():
            logger.info(f"Config file {self.config_path} not found, using defaults")
            return self._deep_merge(self.DEFAULT_CONFIG, {})

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level")

        # Merge with defaults to ensure all keys exist
        return self._deep_merge(self.DEFAULT_CONFIG, config_data)

    def _parse_healing_config(self, config_data: Dict[str, Any]) -> HealingConfiguration:
        """Parse the healing section into a HealingConfiguration."""
        section = config_data.get("healing", {})
        return HealingConfiguration(
            enabled=bool(section.get("enabled", True)),
            max_attempts=section.get("max_attempts", 3),
            max_timeout_increase=section.get("max_timeout_increase", 30000),
            allowed_fixes=list(section.get("allowed_fixes") or []),
            forbidden_fixes=self._merge_forbidden_fixes(section.get("forbidden_fixes") or []),
        )

    def _parse_selector_policy(self, config_data: Dict[str, Any]) -> SelectorPolicy:
        """Parse the selectors section into a SelectorPolicy."""
        section = config_data.get("selectors", {})
        try:
            priority = [LocatorStrategy(s) for s in section.get("priority") or []]
        except ValueError as e:
            raise ConfigurationError(f"Invalid locator strategy: {e}") from e
        return SelectorPolicy(
            priority=priority,
            forbidden_patterns=list(section.get("forbidden_patterns") or []),
        )

    def _parse_llkb_policy(self, config_data: Dict[str, Any]) -> LlkbPolicy:
        """Parse the llkb section into an LlkbPolicy."""
        section = config_data.get("llkb", {})
        return LlkbPolicy(
            min_confidence=float(section.get("min_confidence", 0.7)),
            prune_min_confidence=float(section.get("prune_min_confidence", 0.3)),
            prune_min_applications=int(section.get("prune_min_applications", 3)),
            publish_threshold=float(section.get("publish_threshold", 0.7)),
        )

    @staticmethod
    def _merge_forbidden_fixes(extra: List[str]) -> List[str]:
        """The built-in forbidden fixes can only be added to, never removed."""
        forbidden = HealingConfiguration().forbidden_fixes
        return forbidden + [fix for fix in extra if fix not in forbidden]

    def _config_to_dict(self, config: HealingConfiguration) -> Dict[str, Any]:
        """Convert HealingConfiguration to the healing section of the file.

        Only forbidden fixes beyond the built-in list are written.
        """
        data = {
            "enabled": config.enabled,
            "max_attempts": config.max_attempts,
            "max_timeout_increase": config.max_timeout_increase,
            "allowed_fixes": list(config.allowed_fixes),
        }
        built_in = HealingConfiguration().forbidden_fixes
        extra = [fix for fix in config.forbidden_fixes if fix not in built_in]
        if extra:
            data["forbidden_fixes"] = extra
        return data

    def _validate_config(self, config: HealingConfiguration, selector_policy: SelectorPolicy,
                         llkb_policy: LlkbPolicy) -> None:
        """Validate configuration values.

        Raises:
            ConfigurationError: If validation fails
        """
        errors = []

        if config.max_attempts < 1 or config.max_attempts > 10:
            errors.append("max_attempts must be between 1 and 10")

        if config.max_timeout_increase < 1000 or config.max_timeout_increase > 120000:
            errors.append("max_timeout_increase must be between 1000 and 120000 ms")

        if not selector_policy.priority:
            errors.append("At least one locator strategy must be specified")

        if len(selector_policy.priority) != len(set(selector_policy.priority)):
            errors.append("Duplicate locator strategies are not allowed")

        for pattern in selector_policy.forbidden_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                errors.append(f"Invalid forbidden pattern '{pattern}': {e}")

        for name in ("min_confidence", "prune_min_confidence", "publish_threshold"):
            value = getattr(llkb_policy, name)
            if value < 0.0 or value > 1.0:
                errors.append(f"{name} must be between 0.0 and 1.0")

        if llkb_policy.prune_min_applications < 1:
            errors.append("prune_min_applications must be at least 1")

        if errors:
            raise ConfigurationError("Configuration validation failed: " + "; ".join(errors))

    def _is_config_current(self) -> bool:
        """Check if cached config is still current."""
        if not self.config_path.exists():
            return self._config_file_mtime is None

        current_mtime = self.config_path.stat().st_mtime
        return self._config_file_mtime == current_mtime

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries without mutating either."""
        result = {k: (dict(v) if isinstance(v, dict) else v) for k, v in base.items()}

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


# Global config loader instance
config_loader = HealingConfigLoader()


def get_healing_config(force_reload: bool = False) -> HealingConfiguration:
    """Get the current healing configuration.

    The HEALING_ENABLED environment setting overrides the file.
    """
    config = config_loader.load_config(force_reload)
    if not settings.HEALING_ENABLED:
        return replace(config, enabled=False)
    return config


def save_healing_config(config: HealingConfiguration) -> None:
    """Save the healing section, keeping the other sections as loaded."""
    config_loader.save_config(config)


def get_selector_policy(force_reload: bool = False) -> SelectorPolicy:
    """Get the configured selector priority and forbidden patterns."""
    return config_loader.load_selector_policy(force_reload)


def get_llkb_policy(force_reload: bool = False) -> LlkbPolicy:
    """Get the configured learned pattern thresholds."""
    return config_loader.load_llkb_policy(force_reload)


def create_default_config_file() -> None:
    """Create a default configuration file if it doesn't exist."""
    if not config_loader.config_path.exists():
        config_loader.save_config(HealingConfiguration(), SelectorPolicy(), LlkbPolicy())
        logger.info(f"Created default healing config at {config_loader.config_path}")
