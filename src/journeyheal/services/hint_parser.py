"""
Parser for inline machine hints embedded in step text.

A hint block is a parenthesised list of ``key=value`` pairs, for example
``Click Save (role=button, label="Save changes")``. Values may be single- or
double-quoted. Unknown keys and invalid values produce warnings and never
abort parsing.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

from ..core.models.mapping_models import LocatorSpec, LocatorStrategy

logger = logging.getLogger(__name__)

HINTS_SECTION_PATTERN = re.compile(
    r"""\((?:[a-z]+=(?:"[^"]*"|'[^']*'|[^,)\s]+)(?:,\s*)?)+\)""", re.IGNORECASE)
HINT_PAIR_PATTERN = re.compile(
    r"""([a-z]+)=(?:"([^"]*)"|'([^']*)'|([^,)\s]+))""", re.IGNORECASE)

# Per-key grammar, matched against the whole "key=value" pair
HINT_PATTERNS: Dict[str, re.Pattern] = {
    "role": re.compile(r"""role=(?:"([^"]+)"|'([^']+)'|([a-z]+))""", re.IGNORECASE),
    "testid": re.compile(r"""testid=(?:"([^"]+)"|'([^']+)'|([a-z0-9_-]+))""", re.IGNORECASE),
    "label": re.compile(r"""label=(?:"([^"]+)"|'([^']+)')""", re.IGNORECASE),
    "text": re.compile(r"""text=(?:"([^"]+)"|'([^']+)')""", re.IGNORECASE),
    "exact": re.compile(r"exact=(true|false)", re.IGNORECASE),
    "level": re.compile(r"level=([1-6])", re.IGNORECASE),
    "signal": re.compile(r"""signal=(?:"([^"]+)"|'([^']+)'|([a-z0-9_-]+))""", re.IGNORECASE),
    "module": re.compile(r"""module=(?:"([^"]+)"|'([^']+)'|([a-z0-9_.]+))""", re.IGNORECASE),
    "wait": re.compile(r"wait=(networkidle|domcontentloaded|load|commit)", re.IGNORECASE),
    "timeout": re.compile(r"timeout=(\d+)", re.IGNORECASE),
}

LOCATOR_HINT_TYPES = ("role", "testid", "label", "text", "exact", "level")
BEHAVIOR_HINT_TYPES = ("signal", "module", "wait", "timeout")

VALID_ROLES = frozenset([
    "alert", "alertdialog", "application", "article", "banner", "button", "cell",
    "checkbox", "columnheader", "combobox", "complementary", "contentinfo",
    "definition", "dialog", "directory", "document", "feed", "figure", "form",
    "grid", "gridcell", "group", "heading", "img", "link", "list", "listbox",
    "listitem", "log", "main", "marquee", "math", "menu", "menubar", "menuitem",
    "menuitemcheckbox", "menuitemradio", "navigation", "none", "note", "option",
    "presentation", "progressbar", "radio", "radiogroup", "region", "row",
    "rowgroup", "rowheader", "scrollbar", "search", "searchbox", "separator",
    "slider", "spinbutton", "status", "switch", "tab", "table", "tablist",
    "tabpanel", "term", "textbox", "timer", "toolbar", "tooltip", "tree",
    "treegrid", "treeitem",
])


@dataclass
class Hint:
    type: str
    value: str
    raw: str


@dataclass
class ParsedHints:
    hints: List[Hint]
    clean_text: str
    original_text: str
    warnings: List[str] = field(default_factory=list)


@dataclass
class LocatorHints:
    role: Optional[str] = None
    testid: Optional[str] = None
    label: Optional[str] = None
    text: Optional[str] = None
    exact: Optional[bool] = None
    level: Optional[int] = None


@dataclass
class BehaviorHints:
    signal: Optional[str] = None
    module: Optional[str] = None
    wait: Optional[str] = None
    timeout: Optional[int] = None


@dataclass
class ExtractedHints:
    """Hints grouped into locator and behavior fields."""
    locator: LocatorHints
    behavior: BehaviorHints
    has_hints: bool
    clean_text: str
    warnings: List[str] = field(default_factory=list)


@dataclass
class HintValidation:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def is_valid_role(role: str) -> bool:
    return role.lower() in VALID_ROLES


def contains_hints(text: str) -> bool:
    return HINTS_SECTION_PATTERN.search(text) is not None


def remove_hints(text: str) -> str:
    """Strip every hint block and collapse the remaining whitespace."""
    return " ".join(HINTS_SECTION_PATTERN.sub(" ", text).split())


def parse_hints(text: str) -> ParsedHints:
    """Parse all hint blocks in ``text``.

    Returns the recognised hints in order of appearance, the text with the
    blocks removed, and a warning for each unknown key, empty value,
    malformed value or unknown ARIA role.
    """
    if not contains_hints(text):
        return ParsedHints(hints=[], clean_text=text, original_text=text)

    hints: List[Hint] = []
    warnings: List[str] = []

    for section in HINTS_SECTION_PATTERN.finditer(text):
        for pair in HINT_PAIR_PATTERN.finditer(section.group(0)):
            key = pair.group(1).lower()
            value = next((g for g in pair.group(2, 3, 4) if g is not None), "")
            raw = pair.group(0)

            if not value.strip():
                warnings.append(f"Empty value for hint: {key}")
                continue
            if key not in HINT_PATTERNS:
                warnings.append(f"Unknown hint type: {key}")
                continue
            if not HINT_PATTERNS[key].fullmatch(raw):
                warnings.append(f"Invalid value for hint {key}: {value}")
                continue
            if key == "role" and not is_valid_role(value):
                warnings.append(f"Invalid ARIA role: {value}")

            hints.append(Hint(type=key, value=value, raw=raw))

    return ParsedHints(hints=hints, clean_text=remove_hints(text),
                       original_text=text, warnings=warnings)


def extract_hints(text: str) -> ExtractedHints:
    """Parse hints and group them by concern. A repeated key keeps its last value."""
    parsed = parse_hints(text)
    locator = LocatorHints()
    behavior = BehaviorHints()

    for hint in parsed.hints:
        if hint.type == "exact":
            locator.exact = hint.value.lower() == "true"
        elif hint.type == "level":
            locator.level = int(hint.value)
        elif hint.type == "timeout":
            behavior.timeout = int(hint.value)
        elif hint.type in LOCATOR_HINT_TYPES:
            setattr(locator, hint.type, hint.value)
        elif hint.type in BEHAVIOR_HINT_TYPES:
            setattr(behavior, hint.type, hint.value)

    return ExtractedHints(
        locator=locator,
        behavior=behavior,
        has_hints=bool(parsed.hints),
        clean_text=parsed.clean_text,
        warnings=parsed.warnings,
    )


def has_locator_hints(hints: ExtractedHints) -> bool:
    loc = hints.locator
    return bool(loc.role or loc.testid or loc.label or loc.text)


def has_behavior_hints(hints: ExtractedHints) -> bool:
    beh = hints.behavior
    return bool(beh.signal or beh.module or beh.wait or beh.timeout is not None)


def parse_module_hint(module_hint: str) -> Optional[Dict[str, str]]:
    """Split ``module.method``; anything other than exactly two parts is rejected."""
    parts = module_hint.split(".")
    if len(parts) != 2 or not all(parts):
        return None
    return {"module": parts[0], "method": parts[1]}


def build_locator_from_hints(hints: ExtractedHints) -> Optional[LocatorSpec]:
    """Build a locator with priority testid > role > label > text."""
    loc = hints.locator

    if loc.testid:
        return LocatorSpec(LocatorStrategy.TESTID, loc.testid)

    if loc.role:
        options: Dict[str, Any] = {}
        if loc.label:
            options["name"] = loc.label
        if loc.exact:
            options["exact"] = True
        if loc.level:
            options["level"] = loc.level
        return LocatorSpec(LocatorStrategy.ROLE, loc.role, options)

    if loc.label:
        return LocatorSpec(LocatorStrategy.LABEL, loc.label, {"exact": True} if loc.exact else {})

    if loc.text:
        return LocatorSpec(LocatorStrategy.TEXT, loc.text, {"exact": True} if loc.exact else {})

    return None


def validate_hints(hints: ExtractedHints) -> HintValidation:
    """Report inconsistent hint combinations without correcting them."""
    result = HintValidation()
    loc = hints.locator

    locator_count = sum(1 for v in (loc.testid, loc.role, loc.label, loc.text) if v)
    if loc.role and loc.label:
        # label is the accessible name of the role
        locator_count -= 1
    if locator_count > 1:
        result.errors.append("Multiple conflicting locator hints specified")

    if loc.level is not None and (loc.role or "").lower() != "heading":
        result.warnings.append("level hint only applies to role=heading")

    if hints.behavior.module and parse_module_hint(hints.behavior.module) is None:
        result.errors.append("module hint must be in format: moduleName.methodName")

    if result.errors or result.warnings:
        logger.warning(f"Inconsistent hints in '{hints.clean_text}': "
                       f"{'; '.join(result.errors + result.warnings)}")
    return result
