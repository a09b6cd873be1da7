"""Unit tests for the step mapper."""

import pytest

from src.journeyheal.core.models.mapping_models import (
    AcceptanceCriterion, IRPrimitive, LocatorSpec, LocatorStrategy, MatchSource, PrimitiveType,
    ProceduralStep
)
from src.journeyheal.services.step_mapper import (
    StepMapper, StepMapperOptions, create_primitive_from_hints, get_mapping_stats, suggest_improvements
)


@pytest.fixture
def mapper(glossary, store):
    """Step mapper backed by an empty temp store."""
    return StepMapper(glossary=glossary, store=store)


@pytest.fixture
def cart_primitive():
    """Primitive the store learns for a cart step."""
    return IRPrimitive(PrimitiveType.CLICK, locator=LocatorSpec(LocatorStrategy.TESTID, "cart-add"))


def _learn_confident(store, text, primitive, confidence=0.8):
    pattern = store.learn(text, primitive, "J1")
    store.load(force=True)
    store.get(pattern.id).confidence = confidence
    store.save()
    return pattern


class TestMapStepText:
    """Test cases for tier resolution in map_step_text."""

    def test_pattern_tier(self, mapper):
        """A plain click step resolves through the pattern library."""
        result = mapper.map_step_text('User clicks "Submit" button')
        assert result.match_source == MatchSource.PATTERN
        assert result.matched_pattern_name == "click-button-quoted"
        assert result.confidence == 1.0
        assert result.primitive.type == PrimitiveType.CLICK
        assert result.primitive.locator.strategy == LocatorStrategy.ROLE
        assert result.primitive.locator.value == "button"
        assert result.primitive.locator.name == "Submit"
        assert not result.is_assertion

    def test_hint_locator_only(self, mapper):
        """A hinted heading with no verb becomes a visibility assertion."""
        result = mapper.map_step_text("(role=heading, level=2)Welcome")
        assert result.match_source == MatchSource.HINTS
        assert result.primitive.type == PrimitiveType.EXPECT_VISIBLE
        assert result.primitive.locator.strategy == LocatorStrategy.ROLE
        assert result.primitive.locator.value == "heading"
        assert result.primitive.locator.options == {"level": 2}
        assert result.is_assertion
        assert result.warnings == []

    def test_hint_locator_overrides_pattern_target(self, mapper):
        """With a matching pattern the hint decides the target and the pattern the action."""
        result = mapper.map_step_text('User clicks "Submit" button (testid=submit-btn)')
        assert result.match_source == MatchSource.HINTS
        assert result.matched_pattern_name == "click-button-quoted"
        assert result.primitive.type == PrimitiveType.CLICK
        assert result.primitive.locator == LocatorSpec(LocatorStrategy.TESTID, "submit-btn")

    def test_hint_locator_ignored_by_pattern_without_target(self, mapper):
        """A navigation pattern keeps its own action when a locator hint is present."""
        result = mapper.map_step_text("User navigates to the settings page (testid=settings-link)")
        assert result.match_source == MatchSource.HINTS
        assert result.matched_pattern_name == "navigate-to-page"
        assert result.primitive.type == PrimitiveType.GOTO
        assert result.primitive.url == "/settings"
        assert result.primitive.locator is None

    def test_module_hint(self, mapper):
        """A module hint alone produces a module call."""
        result = mapper.map_step_text("Do the usual dance (module=auth.login)")
        assert result.match_source == MatchSource.HINTS
        assert result.primitive.type == PrimitiveType.CALL_MODULE
        assert (result.primitive.module, result.primitive.method) == ("auth", "login")

    def test_behavior_hints_apply_to_pattern_matches(self, mapper):
        """Timeout and signal hints decorate a pattern-tier primitive."""
        result = mapper.map_step_text('User clicks "Submit" button (timeout=5000, signal=saved)')
        assert result.match_source == MatchSource.PATTERN
        assert result.primitive.timeout == 5000
        assert result.primitive.signal == "saved"

    def test_hint_warnings_are_reported(self, mapper):
        """Conflicting hints are mapped anyway and reported as warnings."""
        result = mapper.map_step_text('Click it (testid=save, text="Save")')
        assert result.is_mapped
        assert "Multiple conflicting locator hints specified" in result.warnings

    def test_normalization_enables_pattern_match(self, mapper):
        """Synonyms are resolved before matching."""
        result = mapper.map_step_text("User tap the Save btn")
        assert result.match_source == MatchSource.PATTERN
        assert result.primitive.type == PrimitiveType.CLICK

        raw = mapper.map_step_text("User tap the Save btn", StepMapperOptions(normalize_text=False))
        assert raw.match_source == MatchSource.NONE

    def test_learned_tier(self, mapper, store, cart_primitive):
        """A confident learned pattern maps text the library does not know."""
        pattern = _learn_confident(store, "User adds item to cart", cart_primitive)
        result = mapper.map_step_text("User adds item to cart")
        assert result.match_source == MatchSource.LLKB
        assert result.matched_pattern_id == pattern.id
        assert result.confidence == pytest.approx(0.8)
        assert result.primitive == cart_primitive
        assert result.primitive is not store.get(pattern.id).mapped_primitive

    def test_learned_tier_respects_threshold_and_toggle(self, mapper, store, cart_primitive):
        """Low-confidence patterns and a disabled store give no match."""
        _learn_confident(store, "User adds item to cart", cart_primitive, confidence=0.6)
        assert mapper.map_step_text("User adds item to cart").match_source == MatchSource.NONE

        lenient = StepMapperOptions(llkb_min_confidence=0.5)
        assert mapper.map_step_text("User adds item to cart", lenient).match_source == MatchSource.LLKB

        disabled = StepMapperOptions(use_llkb=False, llkb_min_confidence=0.5)
        assert mapper.map_step_text("User adds item to cart", disabled).match_source == MatchSource.NONE

    def test_patterns_beat_learned(self, mapper, store, cart_primitive):
        """A fixed pattern wins over a learned one for the same text."""
        _learn_confident(store, 'User clicks "Submit" button', cart_primitive, confidence=0.95)
        result = mapper.map_step_text('User clicks "Submit" button')
        assert result.match_source == MatchSource.PATTERN

    def test_unmappable_text(self, mapper):
        """Unmappable text gives a diagnostic result instead of raising."""
        result = mapper.map_step_text("Contemplate life")
        assert result.primitive is None
        assert result.match_source == MatchSource.NONE
        assert result.message == 'Could not map step: "Contemplate life"'

    def test_mapper_without_store(self, glossary):
        """Without a store the learned tier is skipped."""
        result = StepMapper(glossary=glossary).map_step_text("User adds item to cart")
        assert result.match_source == MatchSource.NONE


class TestCreatePrimitiveFromHints:
    """Test cases for verb inference on hinted locators."""

    @pytest.mark.parametrize("text,expected", [
        ("Click it", PrimitiveType.CLICK),
        ('Type "bob" here', PrimitiveType.FILL),
        ("See it", PrimitiveType.EXPECT_VISIBLE),
        ("Check it", PrimitiveType.CHECK),
        ("Something", PrimitiveType.CLICK),
    ])
    def test_verb_inference(self, text, expected):
        """The first recognised verb decides the action."""
        locator = LocatorSpec(LocatorStrategy.TESTID, "target")
        assert create_primitive_from_hints(text, locator).type == expected

    def test_fill_uses_first_quoted_value(self):
        """Fill takes the first quoted value as a literal."""
        primitive = create_primitive_from_hints('Type "bob" then "alice"', LocatorSpec(LocatorStrategy.LABEL, "Name"))
        assert primitive.value.value == "bob"


class TestAcceptanceCriteria:
    """Test cases for mapping criteria and procedural steps."""

    def test_map_acceptance_criterion(self, mapper):
        """Actions, assertions and blocked steps are grouped into an IR step."""
        ac = AcceptanceCriterion(
            id="AC-1",
            title="User can submit",
            steps=['User clicks "Submit" button', 'User sees "Welcome"', "Contemplate life"],
            raw_content="- bullets",
        )
        procedural = [
            ProceduralStep(1, "User refreshes the page", linked_ac="AC-1"),
            ProceduralStep(2, 'User clicks "Submit" button', linked_ac="AC-1"),
            ProceduralStep(3, "User goes back", linked_ac="AC-2"),
        ]
        result = mapper.map_acceptance_criterion(ac, procedural)

        assert result.mapped_count == 2
        assert result.blocked_count == 1
        assert [p.type for p in result.step.actions] == [
            PrimitiveType.CLICK, PrimitiveType.BLOCKED, PrimitiveType.RELOAD]
        assert [p.type for p in result.step.assertions] == [PrimitiveType.EXPECT_VISIBLE]
        assert result.step.actions[1].source_text == "Contemplate life"
        assert result.step.notes == []
        assert result.step.source_text == "- bullets"

    def test_blocked_steps_can_be_excluded(self, mapper):
        """include_blocked=False drops unmapped steps and notes the missing assertion."""
        ac = AcceptanceCriterion(id="AC-2", title="Nothing works", steps=["Contemplate life"])
        result = mapper.map_acceptance_criterion(ac, [], StepMapperOptions(include_blocked=False))
        assert result.step.actions == []
        assert result.step.notes == ["TODO: Add assertion for: Nothing works"]

    def test_map_procedural_step(self, mapper):
        """Procedural steps get their own IR step id."""
        result = mapper.map_procedural_step(ProceduralStep(3, "User goes back"))
        assert result.step.id == "PS-3"
        assert result.step.actions[0].type == PrimitiveType.GO_BACK
        assert result.mapped_count == 1


class TestLearningLoop:
    """Test cases for confirming and teaching learned mappings."""

    def test_confirm_success_updates_learned_pattern(self, mapper, store, cart_primitive):
        """A passing test raises the learned pattern's confidence."""
        pattern = _learn_confident(store, "User adds item to cart", cart_primitive)
        result = mapper.map_step_text("User adds item to cart")

        updated = mapper.confirm_success(result, "J2")
        assert updated.confidence == pytest.approx(0.85)
        assert updated.source_journeys == ["J1", "J2"]
        assert store.get(pattern.id).success_count == 2

    def test_confirm_success_ignores_other_tiers(self, mapper):
        """Only learned-tier results are recorded."""
        result = mapper.map_step_text('User clicks "Submit" button')
        assert mapper.confirm_success(result, "J2") is None

    def test_confirm_success_needs_journey(self, mapper, store, cart_primitive):
        """Without a journey id nothing is recorded."""
        _learn_confident(store, "User adds item to cart", cart_primitive)
        result = mapper.map_step_text("User adds item to cart")
        assert mapper.confirm_success(result) is None

    def test_record_failure(self, mapper, store, cart_primitive):
        """A failing learned mapping lowers confidence."""
        _learn_confident(store, "User adds item to cart", cart_primitive)
        result = mapper.map_step_text("User adds item to cart")
        assert mapper.record_failure(result).confidence == pytest.approx(0.7)

    def test_learn_from_mapping_strips_hints(self, mapper, store, cart_primitive):
        """Hint blocks are not part of the learned text."""
        pattern = mapper.learn_from_mapping("User adds item to cart (timeout=100)", cart_primitive, "J1")
        assert pattern.original_text == "User adds item to cart"
        assert store.find_by_text("User adds item to cart").id == pattern.id


class TestStats:
    """Test cases for mapping statistics and suggestions."""

    def test_get_mapping_stats(self, mapper):
        """Stats count mapped, blocked, actions and assertions."""
        results = mapper.map_steps(['User clicks "Submit" button', 'User sees "Welcome"', "Contemplate life"])
        stats = get_mapping_stats(results)
        assert stats == {
            "total": 3,
            "mapped": 2,
            "blocked": 1,
            "actions": 1,
            "assertions": 1,
            "mappingRate": pytest.approx(2 / 3),
        }

    def test_empty_stats(self):
        """An empty list has a zero mapping rate."""
        assert get_mapping_stats([])["mappingRate"] == 0

    def test_suggest_improvements(self, mapper):
        """Suggestions are keyed off the intent words in the text."""
        blocked = mapper.map_steps(["Navigate somewhere nice please", "Contemplate life"])
        suggestions = suggest_improvements(blocked)
        assert "User navigates to /path" in suggestions[0]
        assert "Could not determine intent" in suggestions[1]
