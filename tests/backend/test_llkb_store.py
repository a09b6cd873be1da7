"""Unit tests for the learned pattern store."""

import json
import re

import pytest

from src.journeyheal.core.models.llkb_models import LearnedPattern, LlkbPolicy
from src.journeyheal.core.models.mapping_models import IRPrimitive, LocatorSpec, LocatorStrategy, PrimitiveType
from src.journeyheal.services.llkb_store import (
    PATTERNS_FILE, LearnedPatternStore, generate_pattern_id, generate_regex_from_text
)


@pytest.fixture
def click_primitive():
    """Primitive used for learned patterns."""
    return IRPrimitive(PrimitiveType.CLICK, locator=LocatorSpec(LocatorStrategy.TESTID, "cart-add"))


def _set_confidence(store, pattern_id, confidence):
    store.load(force=True)
    store.get(pattern_id).confidence = confidence
    store.save()


class TestLoadAndSave:
    """Test cases for persistence."""

    def test_missing_file_is_empty(self, store):
        """A store without a file has no patterns."""
        assert store.patterns == []

    def test_corrupt_file_is_empty(self, store, llkb_root):
        """A corrupt file is treated as an empty store."""
        (llkb_root / PATTERNS_FILE).write_text("{not json", encoding="utf-8")
        assert store.load(force=True) == []

    def test_wrong_shape_is_empty(self, store, llkb_root):
        """A document without a patterns list is treated as empty."""
        (llkb_root / PATTERNS_FILE).write_text(json.dumps({"patterns": {}}), encoding="utf-8")
        assert store.load(force=True) == []

    def test_learned_pattern_persists(self, store, llkb_root, click_primitive, glossary):
        """Learned patterns survive a reload from another store instance."""
        pattern = store.learn("User adds item to cart", click_primitive, "JRN-1")

        document = json.loads((llkb_root / PATTERNS_FILE).read_text(encoding="utf-8"))
        assert document["version"] == "1.0.0"
        assert document["patterns"][0]["id"] == pattern.id

        reloaded = LearnedPatternStore(str(llkb_root), glossary=glossary).get(pattern.id)
        assert reloaded.mapped_primitive == click_primitive
        assert reloaded.source_journeys == ["JRN-1"]

    def test_no_temp_files_left_behind(self, store, llkb_root, click_primitive):
        """Atomic writes leave only the store file."""
        store.learn("User adds item to cart", click_primitive, "JRN-1")
        assert [p.name for p in llkb_root.iterdir()] == [PATTERNS_FILE]

    def test_reset(self, store, llkb_root, click_primitive):
        """reset deletes the file and every pattern."""
        store.learn("User adds item to cart", click_primitive, "JRN-1")
        store.reset()
        assert store.patterns == []
        assert not (llkb_root / PATTERNS_FILE).exists()


class TestLearning:
    """Test cases for learn, record_success and record_failure."""

    def test_learn_creates_pattern_at_half_confidence(self, store, click_primitive):
        """A new pattern starts at 0.5 with one success."""
        pattern = store.learn("User adds item to cart", click_primitive, "JRN-1")
        assert pattern.confidence == 0.5
        assert pattern.success_count == 1
        assert pattern.normalized_text == "user adds item to cart"

    def test_learn_without_journey_is_ignored(self, store, click_primitive):
        """Nothing is learned without a journey id."""
        assert store.learn("User adds item to cart", click_primitive, None) is None
        assert store.patterns == []

    def test_learning_same_text_reinforces(self, store, click_primitive):
        """Learning a known text counts as a success for the existing pattern."""
        first = store.learn("User adds item to cart", click_primitive, "JRN-1")
        second = store.learn("user  adds item to cart", click_primitive, "JRN-2")
        assert second.id == first.id
        assert second.success_count == 2
        assert second.confidence == pytest.approx(0.55)
        assert second.source_journeys == ["JRN-1", "JRN-2"]
        assert len(store.patterns) == 1

    def test_success_raises_confidence(self, store, click_primitive):
        """A confirmed success adds 0.05 and records the journey once."""
        pattern = store.learn("User adds item to cart", click_primitive, "J1")
        _set_confidence(store, pattern.id, 0.8)

        updated = store.record_success(pattern.id, "J2")
        assert updated.confidence == pytest.approx(0.85)
        assert updated.success_count == 2
        assert updated.source_journeys == ["J1", "J2"]

        store.record_success(pattern.id, "J2")
        assert store.get(pattern.id).source_journeys == ["J1", "J2"]

    def test_success_is_capped(self, store, click_primitive):
        """Confidence never exceeds 0.95."""
        pattern = store.learn("User adds item to cart", click_primitive, "J1")
        _set_confidence(store, pattern.id, 0.93)
        assert store.record_success(pattern.id, "J1").confidence == pytest.approx(0.95)
        assert store.record_success(pattern.id, "J1").confidence == pytest.approx(0.95)

    def test_success_without_journey_is_ignored(self, store, click_primitive):
        """A success without a journey id changes nothing."""
        pattern = store.learn("User adds item to cart", click_primitive, "J1")
        assert store.record_success(pattern.id, None) is None
        assert store.get(pattern.id).success_count == 1

    def test_failure_lowers_confidence_with_floor(self, store, click_primitive):
        """A failure subtracts 0.10 and never goes below 0.10."""
        pattern = store.learn("User adds item to cart", click_primitive, "J1")
        assert store.record_failure(pattern.id).confidence == pytest.approx(0.4)

        _set_confidence(store, pattern.id, 0.15)
        updated = store.record_failure(pattern.id)
        assert updated.confidence == pytest.approx(0.10)
        assert updated.fail_count == 2

    def test_unknown_pattern(self, store):
        """Outcomes for unknown ids are ignored."""
        assert store.record_success("LPNOPE", "J1") is None
        assert store.record_failure("LPNOPE") is None


class TestMatch:
    """Test cases for matching learned patterns."""

    def test_match_respects_threshold(self, store, click_primitive):
        """Patterns below the minimum confidence do not match."""
        pattern = store.learn("User adds item to cart", click_primitive, "J1")
        assert store.match("User adds item to cart") is None
        assert store.match("User adds item to cart", min_confidence=0.5).id == pattern.id

    def test_match_uses_normalized_text(self, store, click_primitive):
        """Synonyms and spacing do not prevent a match."""
        pattern = store.learn("User taps the Add btn", click_primitive, "J1")
        assert store.match("user  click the Add button", min_confidence=0.5).id == pattern.id

    def test_promoted_patterns_never_match(self, store, click_primitive):
        """Promoted patterns are served by the pattern library instead."""
        pattern = store.learn("User adds item to cart", click_primitive, "J1")
        assert store.mark_patterns_promoted([pattern.id]) == 1
        assert store.match("User adds item to cart", min_confidence=0.0) is None
        assert store.mark_patterns_promoted([pattern.id]) == 0


class TestMaintenance:
    """Test cases for prune, export and stats."""

    def test_prune_removes_only_tried_low_confidence(self, store, click_primitive):
        """Patterns with enough applications and low confidence are removed."""
        weak = store.learn("User adds item to cart", click_primitive, "J1")
        fresh = store.learn("User empties the cart", click_primitive, "J1")
        for _ in range(3):
            store.record_failure(weak.id)
        _set_confidence(store, fresh.id, 0.2)

        result = store.prune_lessons()
        assert result == {"removed": 1, "remaining": 1}
        assert store.get(weak.id) is None
        assert store.get(fresh.id) is not None

    def test_export_top(self, store, click_primitive):
        """Export lists patterns at or above the threshold, most confident first."""
        low = store.learn("User adds item to cart", click_primitive, "J1")
        mid = store.learn("User empties the cart", click_primitive, "J1")
        high = store.learn("User checks out", click_primitive, "J1")
        _set_confidence(store, mid.id, 0.7)
        _set_confidence(store, high.id, 0.9)

        exported = store.export_top(10)
        assert [p["id"] for p in exported] == [high.id, mid.id]
        assert low.id not in [p["id"] for p in store.export_top(10)]
        assert len(store.export_top(1)) == 1

    def test_promotable_patterns(self, store, click_primitive):
        """Only confident, proven, multi-journey patterns are promotable."""
        pattern = store.learn('User adds "Socks" to the cart', click_primitive, "J1")
        for journey in ("J2", "J3", "J4", "J5"):
            store.record_success(pattern.id, journey)
        _set_confidence(store, pattern.id, 0.92)

        promotable = store.get_promotable_patterns()
        assert [p.pattern.id for p in promotable] == [pattern.id]
        assert re.match(promotable[0].generated_regex, 'user adds "shoes" to cart')

    def test_stats(self, store, click_primitive):
        """Stats summarise counts and confidences."""
        pattern = store.learn("User adds item to cart", click_primitive, "J1")
        store.record_failure(pattern.id)
        stats = store.get_pattern_stats()
        assert stats["total"] == 1
        assert stats["totalSuccesses"] == 1
        assert stats["totalFailures"] == 1
        assert stats["avgConfidence"] == pytest.approx(0.4)

    def test_policy_thresholds_are_used(self, llkb_root, click_primitive):
        """The store's policy supplies the default thresholds."""
        store = LearnedPatternStore(str(llkb_root), policy=LlkbPolicy(min_confidence=0.5, publish_threshold=0.5))
        store.learn("User adds item to cart", click_primitive, "J1")
        assert store.match("User adds item to cart") is not None
        assert len(store.export_top()) == 1


class TestHelpers:
    """Test cases for module helpers."""

    def test_pattern_id_format(self):
        """Ids start with LP and are upper-case base36."""
        assert re.fullmatch(r"LP[0-9A-Z]+", generate_pattern_id())

    def test_generated_regex_makes_articles_optional(self):
        """Articles, the user prefix and verb plurals are generalised."""
        regex = generate_regex_from_text("User clicks the Save button")
        assert re.match(regex, "clicks save button")
        assert re.match(regex, "user click the save button")

    def test_from_dict_deduplicates_journeys(self, click_primitive):
        """Duplicate journey ids in a stored pattern are collapsed."""
        data = LearnedPattern(id="LP1", original_text="x", normalized_text="x",
                              mapped_primitive=click_primitive, source_journeys=["J1"]).to_dict()
        data["sourceJourneys"] = ["J1", "J1", "J2"]
        assert LearnedPattern.from_dict(data).source_journeys == ["J1", "J2"]
