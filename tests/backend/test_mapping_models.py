"""Unit tests for the step mapping data models."""

import pytest

from src.journeyheal.core.models.mapping_models import (
    IRPrimitive, LocatorSpec, LocatorStrategy, MatchSource, PrimitiveType,
    SelectorPolicy, StepMappingResult, ValueSpec, ValueType
)


class TestLocatorSpec:
    """Test cases for LocatorSpec."""

    def test_empty_value_is_rejected(self):
        """A locator must always have a non-empty value."""
        with pytest.raises(ValueError):
            LocatorSpec(LocatorStrategy.TEXT, "   ")

    def test_none_options_are_dropped(self):
        """Unset options do not appear in the locator."""
        locator = LocatorSpec(LocatorStrategy.ROLE, "button", {"name": "Save", "level": None})
        assert locator.options == {"name": "Save"}
        assert locator.name == "Save"

    def test_string_strategy_is_coerced(self):
        """Strategies given as strings become enum members."""
        locator = LocatorSpec("label", "Email")
        assert locator.strategy == LocatorStrategy.LABEL

    def test_to_dict_omits_empty_options(self):
        """Options are serialized only when present."""
        assert LocatorSpec(LocatorStrategy.TESTID, "save").to_dict() == {"strategy": "testid", "value": "save"}


class TestIRPrimitive:
    """Test cases for IRPrimitive."""

    def test_missing_required_field_raises(self):
        """A fill without a value is a construction error."""
        with pytest.raises(ValueError, match="value"):
            IRPrimitive(PrimitiveType.FILL, locator=LocatorSpec(LocatorStrategy.LABEL, "Email"))

    def test_goto_requires_url(self):
        """goto needs a url."""
        with pytest.raises(ValueError, match="url"):
            IRPrimitive(PrimitiveType.GOTO)

    def test_primitives_without_requirements(self):
        """Parameterless primitives build without extra fields."""
        assert IRPrimitive(PrimitiveType.RELOAD).type == PrimitiveType.RELOAD

    def test_is_assertion(self):
        """Only expect* primitives are assertions."""
        locator = LocatorSpec(LocatorStrategy.TEXT, "Welcome")
        assert IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=locator).is_assertion
        assert not IRPrimitive(PrimitiveType.CLICK, locator=locator).is_assertion

    def test_blocked_is_not_executable(self):
        """Blocked placeholders are kept but never executed."""
        blocked = IRPrimitive(PrimitiveType.BLOCKED, reason="no match", source_text="do a thing")
        assert not blocked.is_executable

    def test_to_dict_uses_camel_case_and_drops_unset(self):
        """Serialized primitives use the wire key names."""
        primitive = IRPrimitive(PrimitiveType.GOTO, url="/login", wait_for_load=True)
        assert primitive.to_dict() == {"type": "goto", "url": "/login", "waitForLoad": True}

    def test_from_dict_restores_nested_specs(self):
        """Locator and value dictionaries are rebuilt into specs."""
        data = {
            "type": "fill",
            "locator": {"strategy": "label", "value": "Email"},
            "value": {"type": "actor", "value": "email"},
        }
        primitive = IRPrimitive.from_dict(data)
        assert primitive.locator == LocatorSpec(LocatorStrategy.LABEL, "Email")
        assert primitive.value == ValueSpec(ValueType.ACTOR, "email")
        assert primitive.to_dict() == data


class TestStepMappingResult:
    """Test cases for StepMappingResult."""

    def test_unmapped_result_must_have_none_source(self):
        """A missing primitive is only valid with match source none."""
        with pytest.raises(ValueError):
            StepMappingResult(primitive=None, source_text="x", is_assertion=False, match_source=MatchSource.PATTERN)

    def test_mapped_result_cannot_have_none_source(self):
        """A primitive cannot come from the none tier."""
        with pytest.raises(ValueError):
            StepMappingResult(primitive=IRPrimitive(PrimitiveType.RELOAD), source_text="x",
                              is_assertion=False, match_source=MatchSource.NONE)

    def test_to_dict(self):
        """Results serialize with their match source value."""
        result = StepMappingResult(primitive=None, source_text="x", is_assertion=False,
                                   match_source=MatchSource.NONE, message='Could not map step: "x"')
        data = result.to_dict()
        assert data["primitive"] is None
        assert data["matchSource"] == "none"
        assert data["message"] == 'Could not map step: "x"'
        assert not result.is_mapped


class TestSelectorPolicy:
    """Test cases for SelectorPolicy."""

    def test_default_priority(self):
        """Role comes first and CSS last by default."""
        policy = SelectorPolicy()
        assert policy.priority[0] == LocatorStrategy.ROLE
        assert policy.priority[-1] == LocatorStrategy.CSS

    def test_from_dict_parses_strategies(self):
        """Priority strings become strategies."""
        policy = SelectorPolicy.from_dict({"priority": ["testid", "role"], "forbidden_patterns": ["^#"]})
        assert policy.priority == [LocatorStrategy.TESTID, LocatorStrategy.ROLE]
        assert policy.to_dict() == {"priority": ["testid", "role"], "forbidden_patterns": ["^#"]}
