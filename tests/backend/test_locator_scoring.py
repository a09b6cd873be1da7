"""Unit tests for locator scoring and forbidden-pattern filtering."""

from src.journeyheal.core.models.mapping_models import LocatorSpec, LocatorStrategy, SelectorPolicy
from src.journeyheal.services.locator_scoring import is_forbidden, score_locator, select_best_locator


class TestScoreLocator:
    """Test cases for score_locator."""

    def test_index_in_priority(self):
        """The score is the strategy's position in the priority list."""
        assert score_locator(LocatorSpec(LocatorStrategy.ROLE, "button")) == 0
        assert score_locator(LocatorSpec(LocatorStrategy.CSS, ".btn")) == 5

    def test_missing_strategy_scores_worst(self):
        """Strategies left out of the policy score the list length."""
        policy = SelectorPolicy(priority=[LocatorStrategy.TESTID, LocatorStrategy.ROLE])
        assert score_locator(LocatorSpec(LocatorStrategy.TEXT, "Save"), policy) == 2


class TestSelectBestLocator:
    """Test cases for select_best_locator."""

    def test_empty_candidates(self):
        """No candidates means no selection."""
        assert select_best_locator([]) is None

    def test_best_priority_wins(self):
        """The lowest score is chosen."""
        css = LocatorSpec(LocatorStrategy.CSS, ".save")
        role = LocatorSpec(LocatorStrategy.ROLE, "button", {"name": "Save"})
        assert select_best_locator([css, role]).locator is role

    def test_ties_keep_input_order(self):
        """Equal scores keep the first candidate."""
        first = LocatorSpec(LocatorStrategy.TEXT, "Save")
        second = LocatorSpec(LocatorStrategy.TEXT, "Save changes")
        assert select_best_locator([first, second]).locator is first

    def test_forbidden_candidates_are_dropped(self):
        """A forbidden candidate never wins, even with a better score."""
        policy = SelectorPolicy(forbidden_patterns=[r"^btn-\d+$"])
        role = LocatorSpec(LocatorStrategy.ROLE, "btn-123")
        text = LocatorSpec(LocatorStrategy.TEXT, "Save")
        selection = select_best_locator([role, text], policy)
        assert selection.locator is text
        assert selection.rejected == [role]
        assert not selection.all_forbidden
        assert is_forbidden(role, policy)

    def test_all_forbidden_falls_back_to_first(self):
        """When everything is forbidden the first candidate is flagged."""
        policy = SelectorPolicy(forbidden_patterns=["."])
        first = LocatorSpec(LocatorStrategy.TEXT, "a")
        selection = select_best_locator([first, LocatorSpec(LocatorStrategy.ROLE, "b")], policy)
        assert selection.locator is first
        assert selection.all_forbidden
