"""Data models for step mapping: locators, values and IR primitives."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum


class LocatorStrategy(Enum):
    """Supported locator strategies, default priority order."""
    ROLE = "role"
    LABEL = "label"
    PLACEHOLDER = "placeholder"
    TEXT = "text"
    TESTID = "testid"
    CSS = "css"


class ValueType(Enum):
    """Where the value of a fill/select comes from."""
    LITERAL = "literal"
    ACTOR = "actor"
    TEST_DATA = "testData"
    GENERATED = "generated"
    RUN_ID = "runId"


class PrimitiveType(Enum):
    """Kinds of executable test actions and assertions."""
    # Navigation and waits
    GOTO = "goto"
    WAIT_FOR_URL = "waitForURL"
    WAIT_FOR_LOADING_COMPLETE = "waitForLoadingComplete"
    WAIT_FOR_VISIBLE = "waitForVisible"
    WAIT_FOR_HIDDEN = "waitForHidden"
    WAIT_FOR_TIMEOUT = "waitForTimeout"
    WAIT_FOR_NETWORK_IDLE = "waitForNetworkIdle"
    RELOAD = "reload"
    GO_BACK = "goBack"
    GO_FORWARD = "goForward"

    # Interactions
    CLICK = "click"
    DBLCLICK = "dblclick"
    RIGHT_CLICK = "rightClick"
    FILL = "fill"
    CLEAR = "clear"
    SELECT = "select"
    CHECK = "check"
    UNCHECK = "uncheck"
    PRESS = "press"
    HOVER = "hover"
    FOCUS = "focus"

    # Assertions
    EXPECT_VISIBLE = "expectVisible"
    EXPECT_NOT_VISIBLE = "expectNotVisible"
    EXPECT_HIDDEN = "expectHidden"
    EXPECT_TEXT = "expectText"
    EXPECT_CONTAINS_TEXT = "expectContainsText"
    EXPECT_VALUE = "expectValue"
    EXPECT_CHECKED = "expectChecked"
    EXPECT_ENABLED = "expectEnabled"
    EXPECT_DISABLED = "expectDisabled"
    EXPECT_URL = "expectURL"
    EXPECT_TITLE = "expectTitle"
    EXPECT_COUNT = "expectCount"
    EXPECT_TOAST = "expectToast"

    # Dialogs
    DISMISS_MODAL = "dismissModal"
    ACCEPT_ALERT = "acceptAlert"
    DISMISS_ALERT = "dismissAlert"

    # Other
    CALL_MODULE = "callModule"
    BLOCKED = "blocked"


class MatchSource(Enum):
    """Which resolution tier produced a mapping."""
    HINTS = "hints"
    PATTERN = "pattern"
    LLKB = "llkb"
    NONE = "none"


# Fields each primitive type must carry. Anything not listed needs nothing.
_LOCATOR_TYPES = {
    PrimitiveType.WAIT_FOR_VISIBLE, PrimitiveType.WAIT_FOR_HIDDEN,
    PrimitiveType.CLICK, PrimitiveType.DBLCLICK, PrimitiveType.RIGHT_CLICK,
    PrimitiveType.FILL, PrimitiveType.CLEAR, PrimitiveType.SELECT,
    PrimitiveType.CHECK, PrimitiveType.UNCHECK, PrimitiveType.HOVER, PrimitiveType.FOCUS,
    PrimitiveType.EXPECT_VISIBLE, PrimitiveType.EXPECT_NOT_VISIBLE, PrimitiveType.EXPECT_HIDDEN,
    PrimitiveType.EXPECT_TEXT, PrimitiveType.EXPECT_CONTAINS_TEXT, PrimitiveType.EXPECT_VALUE,
    PrimitiveType.EXPECT_CHECKED, PrimitiveType.EXPECT_ENABLED, PrimitiveType.EXPECT_DISABLED,
    PrimitiveType.EXPECT_COUNT,
}

REQUIRED_FIELDS: Dict[PrimitiveType, List[str]] = {t: ["locator"] for t in _LOCATOR_TYPES}
REQUIRED_FIELDS.update({
    PrimitiveType.GOTO: ["url"],
    PrimitiveType.WAIT_FOR_URL: ["pattern"],
    PrimitiveType.WAIT_FOR_TIMEOUT: ["ms"],
    PrimitiveType.FILL: ["locator", "value"],
    PrimitiveType.SELECT: ["locator", "option"],
    PrimitiveType.PRESS: ["key"],
    PrimitiveType.EXPECT_TEXT: ["locator", "text"],
    PrimitiveType.EXPECT_CONTAINS_TEXT: ["locator", "text"],
    PrimitiveType.EXPECT_VALUE: ["locator", "expected"],
    PrimitiveType.EXPECT_URL: ["pattern"],
    PrimitiveType.EXPECT_TITLE: ["title"],
    PrimitiveType.EXPECT_COUNT: ["locator", "count"],
    PrimitiveType.EXPECT_TOAST: ["toast_type"],
    PrimitiveType.CALL_MODULE: ["module", "method"],
    PrimitiveType.BLOCKED: ["reason", "source_text"],
})

# Python attribute name -> serialized key
_FIELD_KEYS = {
    "locator": "locator",
    "value": "value",
    "url": "url",
    "wait_for_load": "waitForLoad",
    "pattern": "pattern",
    "option": "option",
    "key": "key",
    "text": "text",
    "expected": "expected",
    "title": "title",
    "count": "count",
    "ms": "ms",
    "toast_type": "toastType",
    "message": "message",
    "module": "module",
    "method": "method",
    "args": "args",
    "timeout": "timeout",
    "signal": "signal",
    "reason": "reason",
    "source_text": "sourceText",
}


@dataclass
class LocatorSpec:
    """How to find an element: a strategy, a value and strategy-specific options."""
    strategy: LocatorStrategy
    value: str
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.strategy, str):
            self.strategy = LocatorStrategy(self.strategy)
        if not self.value or not str(self.value).strip():
            raise ValueError(f"LocatorSpec value must be non-empty (strategy={self.strategy.value})")
        self.options = {k: v for k, v in (self.options or {}).items() if v is not None}

    @property
    def name(self) -> Optional[str]:
        return self.options.get("name")

    def to_dict(self) -> Dict[str, Any]:
        """Convert locator to dictionary for storage."""
        data = {"strategy": self.strategy.value, "value": self.value}
        if self.options:
            data["options"] = dict(self.options)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LocatorSpec':
        """Create locator from dictionary."""
        return cls(
            strategy=LocatorStrategy(data["strategy"]),
            value=data["value"],
            options=dict(data.get("options") or {}),
        )


@dataclass
class ValueSpec:
    """A value to type or select, literal or resolved at runtime."""
    type: ValueType
    value: str

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = ValueType(self.type)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValueSpec':
        return cls(type=ValueType(data["type"]), value=data["value"])


@dataclass
class IRPrimitive:
    """One canonical test action or assertion, tagged by ``type``.

    Each type requires the fields listed in ``REQUIRED_FIELDS``; building a
    primitive without them raises ``ValueError`` since that is a defect in
    the caller, not a runtime condition.
    """
    type: PrimitiveType
    locator: Optional[LocatorSpec] = None
    value: Optional[ValueSpec] = None
    url: Optional[str] = None
    wait_for_load: Optional[bool] = None
    pattern: Optional[str] = None
    option: Optional[str] = None
    key: Optional[str] = None
    text: Optional[str] = None
    expected: Optional[str] = None
    title: Optional[str] = None
    count: Optional[int] = None
    ms: Optional[int] = None
    toast_type: Optional[str] = None
    message: Optional[str] = None
    module: Optional[str] = None
    method: Optional[str] = None
    args: Optional[List[Any]] = None
    timeout: Optional[int] = None
    signal: Optional[str] = None
    reason: Optional[str] = None
    source_text: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = PrimitiveType(self.type)
        missing = [f for f in REQUIRED_FIELDS.get(self.type, []) if getattr(self, f) is None]
        if missing:
            raise ValueError(
                f"Primitive '{self.type.value}' is missing required field(s): {', '.join(missing)}")

    @property
    def is_assertion(self) -> bool:
        return self.type.value.startswith("expect")

    @property
    def is_executable(self) -> bool:
        return self.type != PrimitiveType.BLOCKED

    @property
    def accepts_locator(self) -> bool:
        """Whether this primitive type has a locator slot."""
        return self.type in _LOCATOR_TYPES or self.type == PrimitiveType.PRESS

    def to_dict(self) -> Dict[str, Any]:
        """Convert primitive to its JSON shape, dropping unset fields."""
        data: Dict[str, Any] = {"type": self.type.value}
        for attr, key in _FIELD_KEYS.items():
            val = getattr(self, attr)
            if val is None:
                continue
            if isinstance(val, (LocatorSpec, ValueSpec)):
                val = val.to_dict()
            elif isinstance(val, list):
                val = list(val)
            data[key] = val
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IRPrimitive':
        """Create primitive from its JSON shape."""
        kwargs: Dict[str, Any] = {"type": PrimitiveType(data["type"])}
        for attr, key in _FIELD_KEYS.items():
            if key not in data:
                continue
            val = data[key]
            if attr == "locator":
                val = LocatorSpec.from_dict(val)
            elif attr == "value" and isinstance(val, dict):
                val = ValueSpec.from_dict(val)
            kwargs[attr] = val
        return cls(**kwargs)


@dataclass
class StepMappingResult:
    """Outcome of mapping one line of step text."""
    primitive: Optional[IRPrimitive]
    source_text: str
    is_assertion: bool
    match_source: MatchSource
    confidence: Optional[float] = None
    matched_pattern_id: Optional[str] = None
    matched_pattern_name: Optional[str] = None
    message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def __post_init__(self):
        if (self.primitive is None) != (self.match_source == MatchSource.NONE):
            raise ValueError("primitive must be None exactly when match_source is 'none'")

    @property
    def is_mapped(self) -> bool:
        return self.primitive is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert mapping result to dictionary for API responses."""
        return {
            "primitive": self.primitive.to_dict() if self.primitive else None,
            "sourceText": self.source_text,
            "isAssertion": self.is_assertion,
            "matchSource": self.match_source.value,
            "confidence": self.confidence,
            "matchedPatternId": self.matched_pattern_id,
            "matchedPatternName": self.matched_pattern_name,
            "message": self.message,
            "warnings": list(self.warnings),
        }


@dataclass
class AcceptanceCriterion:
    """An acceptance criterion as supplied by the journey source."""
    id: str
    title: str
    steps: List[str] = field(default_factory=list)
    raw_content: str = ""


@dataclass
class ProceduralStep:
    """A numbered procedural step, optionally linked to an acceptance criterion."""
    number: int
    text: str
    linked_ac: Optional[str] = None


@dataclass
class IRStep:
    """A group of primitives produced from one criterion or procedural step."""
    id: str
    description: str
    actions: List[IRPrimitive] = field(default_factory=list)
    assertions: List[IRPrimitive] = field(default_factory=list)
    source_text: Optional[str] = None
    notes: List[str] = field(default_factory=list)


@dataclass
class ACMappingResult:
    """Result of mapping an acceptance criterion or procedural step."""
    step: IRStep
    mappings: List[StepMappingResult]
    mapped_count: int
    blocked_count: int


DEFAULT_SELECTOR_PRIORITY = [
    LocatorStrategy.ROLE,
    LocatorStrategy.LABEL,
    LocatorStrategy.PLACEHOLDER,
    LocatorStrategy.TEXT,
    LocatorStrategy.TESTID,
    LocatorStrategy.CSS,
]


@dataclass
class SelectorPolicy:
    """Preferred locator strategies (best first) and values never to emit."""
    priority: List[LocatorStrategy] = field(default_factory=lambda: list(DEFAULT_SELECTOR_PRIORITY))
    forbidden_patterns: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": [s.value for s in self.priority],
            "forbidden_patterns": list(self.forbidden_patterns),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SelectorPolicy':
        data = data.copy()
        if "priority" in data:
            data["priority"] = [LocatorStrategy(s) for s in data["priority"]]
        return cls(**data)
