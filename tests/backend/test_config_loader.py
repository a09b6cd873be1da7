"""Unit tests for the healing policy file loader."""

from unittest.mock import Mock, patch

import pytest
import yaml

from src.journeyheal.core.config_loader import ConfigurationError, HealingConfigLoader, get_healing_config
from src.journeyheal.core.models.healing_models import HealingConfiguration
from src.journeyheal.core.models.llkb_models import LlkbPolicy
from src.journeyheal.core.models.mapping_models import LocatorStrategy, SelectorPolicy


@pytest.fixture
def config_path(tmp_path):
    """Path of a policy file inside a temp directory."""
    return tmp_path / "config" / "healing.yaml"


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


class TestHealingConfigLoader:
    """Test cases for loading, validating and saving the policy file."""

    def test_defaults_without_file(self, config_path):
        """A missing file yields the default policy."""
        loader = HealingConfigLoader(str(config_path))
        config = loader.load_config()
        assert config == HealingConfiguration()
        assert "timeout-increase" not in config.allowed_fixes
        assert loader.load_selector_policy().priority[0] == LocatorStrategy.ROLE
        assert loader.load_llkb_policy() == LlkbPolicy()

    def test_file_values_merge_with_defaults(self, config_path):
        """Only the keys in the file override the defaults."""
        _write(config_path, {
            "healing": {"max_attempts": 5},
            "selectors": {"priority": ["testid", "role"], "forbidden_patterns": ["^nth="]},
            "llkb": {"min_confidence": 0.8},
        })
        loader = HealingConfigLoader(str(config_path))

        config = loader.load_config()
        assert config.max_attempts == 5
        assert config.max_timeout_increase == 30000
        assert config.allowed_fixes == HealingConfiguration().allowed_fixes

        policy = loader.load_selector_policy()
        assert policy.priority == [LocatorStrategy.TESTID, LocatorStrategy.ROLE]
        assert policy.forbidden_patterns == ["^nth="]

        llkb = loader.load_llkb_policy()
        assert llkb.min_confidence == 0.8
        assert llkb.publish_threshold == 0.7

    @pytest.mark.parametrize("data,message", [
        ({"healing": {"max_attempts": 0}}, "max_attempts must be between 1 and 10"),
        ({"healing": {"max_timeout_increase": 500}}, "max_timeout_increase must be between 1000 and 120000 ms"),
        ({"selectors": {"priority": []}}, "At least one locator strategy must be specified"),
        ({"selectors": {"priority": ["role", "role"]}}, "Duplicate locator strategies are not allowed"),
        ({"selectors": {"forbidden_patterns": ["("]}}, "Invalid forbidden pattern '('"),
        ({"llkb": {"publish_threshold": 1.5}}, "publish_threshold must be between 0.0 and 1.0"),
        ({"llkb": {"prune_min_applications": 0}}, "prune_min_applications must be at least 1"),
    ])
    def test_validation_errors(self, config_path, data, message):
        """Out-of-range values are rejected with a descriptive error."""
        _write(config_path, data)
        with pytest.raises(ConfigurationError) as exc_info:
            HealingConfigLoader(str(config_path)).load_config()
        assert message in str(exc_info.value)

    def test_unknown_strategy(self, config_path):
        """Unknown locator strategies are configuration errors."""
        _write(config_path, {"selectors": {"priority": ["xpath"]}})
        with pytest.raises(ConfigurationError, match="Invalid locator strategy"):
            HealingConfigLoader(str(config_path)).load_selector_policy()

    def test_invalid_yaml(self, config_path):
        """Unparseable YAML is a configuration error."""
        config_path.parent.mkdir(parents=True)
        config_path.write_text("healing: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            HealingConfigLoader(str(config_path)).load_config()

    def test_non_mapping_file(self, config_path):
        """A file that is not a mapping is rejected."""
        config_path.parent.mkdir(parents=True)
        config_path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="mapping at the top level"):
            HealingConfigLoader(str(config_path)).load_config()

    def test_save_and_reload(self, config_path):
        """Saved sections are read back by a new loader."""
        loader = HealingConfigLoader(str(config_path))
        config = HealingConfiguration(max_attempts=4, allowed_fixes=["missing-await", "timeout-increase"])
        policy = SelectorPolicy(priority=[LocatorStrategy.LABEL, LocatorStrategy.ROLE])
        loader.save_config(config, policy, LlkbPolicy(min_confidence=0.6))

        written = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        assert "forbidden_fixes" not in written["healing"]
        assert written["selectors"]["priority"] == ["label", "role"]

        reloaded = HealingConfigLoader(str(config_path))
        assert reloaded.load_config() == config
        assert reloaded.load_selector_policy() == policy
        assert reloaded.load_llkb_policy().min_confidence == 0.6

    def test_extra_forbidden_fixes(self, config_path):
        """Forbidden fixes in the file are added to the built-in list and written back."""
        _write(config_path, {"healing": {"forbidden_fixes": ["add-exact", "add-sleep"]}})
        loader = HealingConfigLoader(str(config_path))
        config = loader.load_config()
        assert config.forbidden_fixes == HealingConfiguration().forbidden_fixes + ["add-exact"]

        loader.save_config(config)
        written = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        assert written["healing"]["forbidden_fixes"] == ["add-exact"]
        assert HealingConfigLoader(str(config_path)).load_config() == config

    def test_save_keeps_other_sections(self, config_path):
        """Saving only the healing section keeps the loaded selector policy."""
        _write(config_path, {"selectors": {"priority": ["testid"]}})
        loader = HealingConfigLoader(str(config_path))
        loader.save_config(HealingConfiguration(max_attempts=2))
        assert HealingConfigLoader(str(config_path)).load_selector_policy().priority == [LocatorStrategy.TESTID]

    def test_save_rejects_invalid(self, config_path):
        """Invalid configurations are never written."""
        loader = HealingConfigLoader(str(config_path))
        with pytest.raises(ConfigurationError):
            loader.save_config(HealingConfiguration(max_attempts=11))
        assert not config_path.exists()

    def test_cache_follows_file_changes(self, config_path):
        """The cached config is reused until forced or the file changes."""
        _write(config_path, {"healing": {"max_attempts": 2}})
        loader = HealingConfigLoader(str(config_path))
        first = loader.load_config()
        assert loader.load_config() is first

        _write(config_path, {"healing": {"max_attempts": 6}})
        assert loader.load_config(force_reload=True).max_attempts == 6


class TestGetHealingConfig:
    """Test cases for the module-level accessor."""

    def test_kill_switch_overrides_file(self, config_path):
        """HEALING_ENABLED=false disables healing whatever the file says."""
        loader = HealingConfigLoader(str(config_path))
        with patch("src.journeyheal.core.config_loader.config_loader", loader), \
                patch("src.journeyheal.core.config_loader.settings", Mock(HEALING_ENABLED=False)):
            assert get_healing_config().enabled is False
        assert loader.load_config().enabled is True

    def test_enabled_by_default(self, config_path):
        """With the switch on the file's value is used."""
        loader = HealingConfigLoader(str(config_path))
        with patch("src.journeyheal.core.config_loader.config_loader", loader), \
                patch("src.journeyheal.core.config_loader.settings", Mock(HEALING_ENABLED=True)):
            assert get_healing_config().enabled is True
