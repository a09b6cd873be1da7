"""
Fixed pattern library: ordered regex rules that turn step text into primitives.

The first matching rule wins, so list order is a precedence contract.
Specific variants (e.g. "go back", "click on X") come before the generic
rules they would otherwise be swallowed by.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Any

from ..core.models.mapping_models import (
    IRPrimitive, LocatorSpec, LocatorStrategy, PrimitiveType, ValueSpec, ValueType
)

# Increment MINOR when patterns are added, PATCH for fixes to existing ones
PATTERN_VERSION = "1.1.0"

EXTENDED_ADDED_DATE = "2026-01-27"
CORE_ADDED_DATE = "2026-01-02"


@dataclass
class StepPattern:
    """A named regex rule and the extractor that builds its primitive."""
    name: str
    regex: re.Pattern
    primitive_type: PrimitiveType
    extract: Callable[[re.Match], Optional[IRPrimitive]]


def _rule(name: str, pattern: str, primitive_type: PrimitiveType,
          extract: Callable[[re.Match], Optional[IRPrimitive]]) -> StepPattern:
    return StepPattern(name, re.compile(pattern, re.IGNORECASE), primitive_type, extract)


def create_locator_from_match(strategy: LocatorStrategy, value: str,
                              name: Optional[str] = None) -> LocatorSpec:
    return LocatorSpec(strategy, value, {"name": name} if name else {})


def create_value_from_text(text: str) -> ValueSpec:
    """Classify a value: ``{{x}}`` actor, ``$x`` test data, ``${..}`` generated, else literal."""
    if re.match(r"^\{\{.+\}\}$", text):
        return ValueSpec(ValueType.ACTOR, text[2:-2].strip())
    if re.match(r"^\$.+", text):
        return ValueSpec(ValueType.TEST_DATA, text[1:])
    if re.search(r"\$\{.+\}", text):
        return ValueSpec(ValueType.GENERATED, text)
    return ValueSpec(ValueType.LITERAL, text)


def parse_selector_to_locator(selector: str) -> LocatorSpec:
    """Turn a natural-language target ("the Save button") into a locator."""
    clean = re.sub(r"^the\s+", "", selector, flags=re.IGNORECASE).strip()

    if re.search(r"button$", clean, re.IGNORECASE):
        name = re.sub(r"\s*button$", "", clean, flags=re.IGNORECASE).strip()
        return create_locator_from_match(LocatorStrategy.ROLE, "button", name)

    if re.search(r"link$", clean, re.IGNORECASE):
        name = re.sub(r"\s*link$", "", clean, flags=re.IGNORECASE).strip()
        return create_locator_from_match(LocatorStrategy.ROLE, "link", name)

    if re.search(r"(?:input|field)$", clean, re.IGNORECASE):
        label = re.sub(r"\s*(?:input|field)$", "", clean, flags=re.IGNORECASE).strip()
        return LocatorSpec(LocatorStrategy.LABEL, label)

    return LocatorSpec(LocatorStrategy.TEXT, clean)


def _unquote(text: str) -> str:
    return re.sub(r"[\"']", "", text)


def _text(m: re.Match, group: int = 1) -> LocatorSpec:
    return LocatorSpec(LocatorStrategy.TEXT, m.group(group))


def _label(m: re.Match, group: int = 1) -> LocatorSpec:
    return LocatorSpec(LocatorStrategy.LABEL, m.group(group))


def _simple(primitive_type: PrimitiveType) -> Callable[[re.Match], IRPrimitive]:
    return lambda m: IRPrimitive(primitive_type)


STRUCTURED_PATTERNS = [
    _rule("structured-action-click",
          r"""^\*\*Action\*\*:\s*[Cc]lick\s+(?:the\s+)?['"]?(.+?)['"]?\s*(?:button|link)?$""",
          PrimitiveType.CLICK,
          lambda m: IRPrimitive(PrimitiveType.CLICK, locator=parse_selector_to_locator(m.group(1) + " button"))),
    _rule("structured-action-fill",
          r"""^\*\*Action\*\*:\s*[Ff]ill\s+(?:in\s+)?['"]?(.+?)['"]?\s+with\s+['"]?(.+?)['"]?$""",
          PrimitiveType.FILL,
          lambda m: IRPrimitive(PrimitiveType.FILL, locator=parse_selector_to_locator(m.group(1)),
                                value=create_value_from_text(m.group(2)))),
    _rule("structured-action-navigate",
          r"""^\*\*Action\*\*:\s*[Nn]avigate\s+to\s+['"]?(.+?)['"]?$""",
          PrimitiveType.GOTO,
          lambda m: IRPrimitive(PrimitiveType.GOTO, url=m.group(1), wait_for_load=True)),
    _rule("structured-wait-for-visible",
          r"""^\*\*Wait for\*\*:\s*(.+?)\s+(?:to\s+)?(?:be\s+)?(?:visible|appear|load)""",
          PrimitiveType.EXPECT_VISIBLE,
          lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=parse_selector_to_locator(m.group(1)))),
    _rule("structured-assert-visible",
          r"""^\*\*Assert\*\*:\s*(.+?)\s+(?:is\s+)?visible$""",
          PrimitiveType.EXPECT_VISIBLE,
          lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=parse_selector_to_locator(m.group(1)))),
    _rule("structured-assert-text",
          r"""^\*\*Assert\*\*:\s*(.+?)\s+(?:contains|has text)\s+['"]?(.+?)['"]?$""",
          PrimitiveType.EXPECT_TEXT,
          lambda m: IRPrimitive(PrimitiveType.EXPECT_TEXT, locator=parse_selector_to_locator(m.group(1)),
                                text=m.group(2))),
]

AUTH_PATTERNS = [
    _rule("user-login",
          r"^(?:user\s+)?(?:logs?\s*in|login\s+is\s+performed|authenticates?)$",
          PrimitiveType.CALL_MODULE,
          lambda m: IRPrimitive(PrimitiveType.CALL_MODULE, module="auth", method="login")),
    _rule("user-logout",
          r"^(?:user\s+)?(?:logs?\s*out|logout\s+is\s+performed|signs?\s*out)$",
          PrimitiveType.CALL_MODULE,
          lambda m: IRPrimitive(PrimitiveType.CALL_MODULE, module="auth", method="logout")),
    _rule("login-as-role",
          r"^(?:user\s+)?logs?\s*in\s+as\s+(?:an?\s+)?(.+?)(?:\s+user)?$",
          PrimitiveType.CALL_MODULE,
          lambda m: IRPrimitive(PrimitiveType.CALL_MODULE, module="auth", method="loginAs",
                                args=[m.group(1).lower()])),
]


def _toast(toast_type: str) -> Callable[[re.Match], IRPrimitive]:
    return lambda m: IRPrimitive(PrimitiveType.EXPECT_TOAST, toast_type=toast_type, message=m.group(1))


TOAST_PATTERNS = [
    _rule("success-toast-message",
          r"""^(?:a\s+)?success\s+toast\s+(?:with\s+)?["']([^"']+)["']\s*(?:message\s+)?(?:appears?|is\s+shown|displays?)$""",
          PrimitiveType.EXPECT_TOAST, _toast("success")),
    _rule("success-toast-appears-with",
          r"""^(?:a\s+)?success\s+toast\s+(?:appears?|is\s+shown|displays?)\s+(?:with\s+)?(?:(?:message|text)\s+)?["']?(.+?)["']?$""",
          PrimitiveType.EXPECT_TOAST, _toast("success")),
    _rule("error-toast-message",
          r"""^(?:an?\s+)?error\s+toast\s+(?:with\s+)?["']([^"']+)["']\s*(?:message\s+)?(?:appears?|is\s+shown|displays?)$""",
          PrimitiveType.EXPECT_TOAST, _toast("error")),
    _rule("error-toast-appears-with",
          r"""^(?:an?\s+)?error\s+toast\s+(?:appears?|is\s+shown|displays?)\s+(?:with\s+)?(?:(?:message|text)\s+)?["']?(.+?)["']?$""",
          PrimitiveType.EXPECT_TOAST, _toast("error")),
    _rule("toast-appears",
          r"^(?:a\s+)?(?:(success|error|info|warning)\s+)?toast\s+(?:notification\s+)?(?:appears?|is\s+shown|displays?)$",
          PrimitiveType.EXPECT_TOAST,
          lambda m: IRPrimitive(PrimitiveType.EXPECT_TOAST, toast_type=(m.group(1) or "info").lower())),
    _rule("toast-with-text",
          r"""^(?:a\s+)?(?:toast|notification)\s+(?:with\s+)?(?:(?:text|message)\s+)?["']?(.+?)["']?\s+(?:appears?|is\s+shown|displays?)$""",
          PrimitiveType.EXPECT_TOAST, _toast("info")),
    _rule("status-message-visible",
          r"""^(?:a\s+)?status\s+(?:message\s+)?["']([^"']+)["']\s+(?:is\s+)?(?:visible|shown|displayed)$""",
          PrimitiveType.EXPECT_VISIBLE,
          lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE,
                                locator=create_locator_from_match(LocatorStrategy.ROLE, "status", m.group(1)))),
    _rule("verify-status-message",
          r"""^(?:verify|check)\s+(?:that\s+)?(?:the\s+)?status\s+(?:message\s+)?(?:shows?|displays?|contains?)\s+["']([^"']+)["']$""",
          PrimitiveType.EXPECT_VISIBLE,
          lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE,
                                locator=create_locator_from_match(LocatorStrategy.ROLE, "status", m.group(1)))),
]

MODAL_ALERT_PATTERNS = [
    _rule("dismiss-modal", r"^(?:dismiss|close)\s+(?:the\s+)?(?:modal|dialog)(?:\s+dialog)?$",
          PrimitiveType.DISMISS_MODAL, _simple(PrimitiveType.DISMISS_MODAL)),
    _rule("accept-alert", r"^(?:accept|confirm|ok)\s+(?:the\s+)?alert$",
          PrimitiveType.ACCEPT_ALERT, _simple(PrimitiveType.ACCEPT_ALERT)),
    _rule("dismiss-alert", r"^(?:dismiss|cancel|close)\s+(?:the\s+)?alert$",
          PrimitiveType.DISMISS_ALERT, _simple(PrimitiveType.DISMISS_ALERT)),
]

EXTENDED_NAVIGATION_PATTERNS = [
    _rule("refresh-page", r"^(?:user\s+)?(?:refresh(?:es)?|reloads?)\s+(?:the\s+)?page$",
          PrimitiveType.RELOAD, _simple(PrimitiveType.RELOAD)),
    _rule("go-back", r"^(?:user\s+)?(?:go(?:es)?|navigates?)\s+back$",
          PrimitiveType.GO_BACK, _simple(PrimitiveType.GO_BACK)),
    _rule("go-forward", r"^(?:user\s+)?(?:go(?:es)?|navigates?)\s+forward$",
          PrimitiveType.GO_FORWARD, _simple(PrimitiveType.GO_FORWARD)),
]

NAVIGATION_PATTERNS = [
    _rule("navigate-to-url",
          r"""^(?:user\s+)?(?:navigates?|go(?:es)?|opens?)\s+(?:to\s+)?(?:the\s+)?["']?([^"'\s]+)["']?$""",
          PrimitiveType.GOTO,
          lambda m: IRPrimitive(PrimitiveType.GOTO, url=m.group(1), wait_for_load=True)),
    _rule("navigate-to-page",
          r"^(?:user\s+)?(?:navigates?|go(?:es)?|opens?)\s+(?:to\s+)?(?:the\s+)?(.+?)\s+page$",
          PrimitiveType.GOTO,
          lambda m: IRPrimitive(PrimitiveType.GOTO, url="/" + re.sub(r"\s+", "-", m.group(1).lower()),
                                wait_for_load=True)),
    _rule("wait-for-url-change",
          r"""^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?url\s+(?:to\s+)?(?:change\s+to|contain|include)\s+["']?([^"']+)["']?$""",
          PrimitiveType.WAIT_FOR_URL,
          lambda m: IRPrimitive(PrimitiveType.WAIT_FOR_URL, pattern=m.group(1))),
]

EXTENDED_CLICK_PATTERNS = [
    _rule("click-on-element",
          r"^(?:user\s+)?(?:clicks?|selects?)\s+on\s+(?:the\s+)?(.+?)(?:\s+button|\s+link)?$",
          PrimitiveType.CLICK,
          lambda m: IRPrimitive(PrimitiveType.CLICK, locator=LocatorSpec(LocatorStrategy.TEXT, _unquote(m.group(1))))),
    _rule("press-enter-key", r"^(?:user\s+)?(?:press(?:es)?|hits?)\s+(?:the\s+)?(?:enter|return)(?:\s+key)?$",
          PrimitiveType.PRESS, lambda m: IRPrimitive(PrimitiveType.PRESS, key="Enter")),
    _rule("press-tab-key", r"^(?:user\s+)?(?:press(?:es)?|hits?)\s+(?:the\s+)?tab(?:\s+key)?$",
          PrimitiveType.PRESS, lambda m: IRPrimitive(PrimitiveType.PRESS, key="Tab")),
    _rule("press-escape-key", r"^(?:user\s+)?(?:press(?:es)?|hits?)\s+(?:the\s+)?(?:escape|esc)(?:\s+key)?$",
          PrimitiveType.PRESS, lambda m: IRPrimitive(PrimitiveType.PRESS, key="Escape")),
    _rule("double-click",
          r"""^(?:user\s+)?double[-\s]?clicks?\s+(?:on\s+)?(?:the\s+)?["']?(.+?)["']?$""",
          PrimitiveType.DBLCLICK,
          lambda m: IRPrimitive(PrimitiveType.DBLCLICK, locator=LocatorSpec(LocatorStrategy.TEXT, _unquote(m.group(1))))),
    _rule("right-click",
          r"""^(?:user\s+)?right[-\s]?clicks?\s+(?:on\s+)?(?:the\s+)?["']?(.+?)["']?$""",
          PrimitiveType.RIGHT_CLICK,
          lambda m: IRPrimitive(PrimitiveType.RIGHT_CLICK,
                                locator=LocatorSpec(LocatorStrategy.TEXT, _unquote(m.group(1))))),
    _rule("submit-form", r"^(?:user\s+)?submits?\s+(?:the\s+)?form$",
          PrimitiveType.CLICK,
          lambda m: IRPrimitive(PrimitiveType.CLICK,
                                locator=create_locator_from_match(LocatorStrategy.ROLE, "button", "Submit"))),
]


def _click_role(role: str) -> Callable[[re.Match], IRPrimitive]:
    return lambda m: IRPrimitive(PrimitiveType.CLICK,
                                 locator=create_locator_from_match(LocatorStrategy.ROLE, role, m.group(1)))


CLICK_PATTERNS = [
    _rule("click-button-quoted",
          r"""^(?:user\s+)?(?:clicks?|presses?|taps?|selects?)\s+(?:on\s+)?(?:the\s+)?["']([^"']+)["']\s+button$""",
          PrimitiveType.CLICK, _click_role("button")),
    _rule("click-link-quoted",
          r"""^(?:user\s+)?(?:clicks?|presses?|taps?|selects?)\s+(?:on\s+)?(?:the\s+)?["']([^"']+)["']\s+link$""",
          PrimitiveType.CLICK, _click_role("link")),
    _rule("click-menuitem-quoted",
          r"""^(?:user\s+)?(?:clicks?|selects?)\s+(?:on\s+)?(?:the\s+)?["']([^"']+)["']\s+menu\s*item$""",
          PrimitiveType.CLICK, _click_role("menuitem")),
    _rule("click-tab-quoted",
          r"""^(?:user\s+)?(?:clicks?|selects?)\s+(?:on\s+)?(?:the\s+)?["']([^"']+)["']\s+tab$""",
          PrimitiveType.CLICK, _click_role("tab")),
    _rule("click-element-quoted",
          r"""^(?:user\s+)?(?:clicks?|presses?|taps?|selects?)\s+(?:on\s+)?(?:the\s+)?["']([^"']+)["']$""",
          PrimitiveType.CLICK, lambda m: IRPrimitive(PrimitiveType.CLICK, locator=_text(m))),
    _rule("click-element-generic",
          r"^(?:user\s+)?(?:clicks?|presses?|taps?|selects?)\s+(?:on\s+)?(?:the\s+)?(.+?)\s+(?:button|link|icon|menu|tab)$",
          PrimitiveType.CLICK, lambda m: IRPrimitive(PrimitiveType.CLICK, locator=_text(m))),
]

EXTENDED_FILL_PATTERNS = [
    _rule("fill-field-with-value",
          r"""^(?:user\s+)?(?:fills?|enters?|types?|inputs?)(?:\s+in)?\s+(?:the\s+)?["']?(.+?)["']?\s+(?:field|input)\s+with\s+["']?(.+?)["']?$""",
          PrimitiveType.FILL,
          lambda m: IRPrimitive(PrimitiveType.FILL, locator=LocatorSpec(LocatorStrategy.LABEL, _unquote(m.group(1))),
                                value=create_value_from_text(_unquote(m.group(2))))),
    _rule("type-into-field",
          r"""^(?:user\s+)?types?\s+['"](.+?)['"]\s+into\s+(?:the\s+)?["']?(.+?)["']?\s*(?:field|input)?$""",
          PrimitiveType.FILL,
          lambda m: IRPrimitive(PrimitiveType.FILL, locator=_label(m, 2), value=create_value_from_text(m.group(1)))),
    _rule("fill-in-field-no-value",
          r"""^(?:user\s+)?fills?\s+in\s+(?:the\s+)?["']?(.+?)["']?\s*(?:field|input)?$""",
          PrimitiveType.FILL,
          lambda m: IRPrimitive(PrimitiveType.FILL, locator=LocatorSpec(LocatorStrategy.LABEL, _unquote(m.group(1))),
                                value=ValueSpec(ValueType.ACTOR,
                                                re.sub(r"\s+", "_", _unquote(m.group(1)).lower())))),
    _rule("clear-field",
          r"""^(?:user\s+)?clears?\s+(?:the\s+)?["']?(.+?)["']?\s*(?:field|input)?$""",
          PrimitiveType.CLEAR,
          lambda m: IRPrimitive(PrimitiveType.CLEAR, locator=LocatorSpec(LocatorStrategy.LABEL, _unquote(m.group(1))))),
    _rule("set-value",
          r"""^(?:user\s+)?sets?\s+(?:the\s+)?(?:value\s+)?(?:of\s+)?["']?(.+?)["']?\s+to\s+['"](.+?)['"]$""",
          PrimitiveType.FILL,
          lambda m: IRPrimitive(PrimitiveType.FILL, locator=_label(m), value=create_value_from_text(m.group(2)))),
]

FILL_PATTERNS = [
    _rule("fill-field-quoted-value",
          r"""^(?:user\s+)?(?:enters?|types?|fills?\s+in?|inputs?)\s+["']([^"']+)["']\s+(?:in|into)\s+(?:the\s+)?["']([^"']+)["']\s*(?:field|input)?$""",
          PrimitiveType.FILL,
          lambda m: IRPrimitive(PrimitiveType.FILL, locator=_label(m, 2), value=create_value_from_text(m.group(1)))),
    _rule("fill-field-actor-value",
          r"""^(?:user\s+)?(?:enters?|types?|fills?\s+in?|inputs?)\s+(\{\{[^}]+\}\})\s+(?:in|into)\s+(?:the\s+)?["']([^"']+)["']\s*(?:field|input)?$""",
          PrimitiveType.FILL,
          lambda m: IRPrimitive(PrimitiveType.FILL, locator=_label(m, 2), value=create_value_from_text(m.group(1)))),
    _rule("fill-placeholder-field",
          r"""^(?:user\s+)?(?:enters?|types?|fills?)\s+["']([^"']+)["']\s+(?:in|into)\s+(?:the\s+)?(?:field|input)\s+with\s+placeholder\s+["']([^"']+)["']$""",
          PrimitiveType.FILL,
          lambda m: IRPrimitive(PrimitiveType.FILL, locator=LocatorSpec(LocatorStrategy.PLACEHOLDER, m.group(2)),
                                value=create_value_from_text(m.group(1)))),
    _rule("fill-field-generic",
          r"""^(?:user\s+)?(?:enters?|types?|fills?\s+in?|inputs?)\s+(.+?)\s+(?:in|into)\s+(?:the\s+)?(.+?)\s*(?:field|input)?$""",
          PrimitiveType.FILL,
          lambda m: IRPrimitive(PrimitiveType.FILL, locator=LocatorSpec(LocatorStrategy.LABEL, _unquote(m.group(2))),
                                value=create_value_from_text(_unquote(m.group(1))))),
]


def _combobox_select(m: re.Match) -> IRPrimitive:
    return IRPrimitive(PrimitiveType.SELECT, locator=LocatorSpec(LocatorStrategy.ROLE, "combobox"),
                       option=m.group(1))


EXTENDED_SELECT_PATTERNS = [
    _rule("select-from-named-dropdown",
          r"""^(?:user\s+)?(?:selects?|chooses?)\s+["'](.+?)["']\s+from\s+(?:the\s+)?(.+?)\s*(?:dropdown|select|selector|menu|list)$""",
          PrimitiveType.SELECT,
          lambda m: IRPrimitive(PrimitiveType.SELECT, locator=LocatorSpec(LocatorStrategy.LABEL, m.group(2).strip()),
                                option=m.group(1))),
    _rule("select-from-dropdown",
          r"""^(?:user\s+)?(?:selects?|chooses?)\s+['"](.+?)['"]\s+from\s+(?:the\s+)?dropdown$""",
          PrimitiveType.SELECT, _combobox_select),
    _rule("select-option-named",
          r"""^(?:user\s+)?(?:selects?|chooses?)\s+(?:the\s+)?(?:option\s+)?(?:named\s+)?["'](.+?)["'](?:\s+option)?$""",
          PrimitiveType.SELECT, _combobox_select),
]

SELECT_PATTERNS = [
    _rule("select-option",
          r"""^(?:user\s+)?(?:selects?|chooses?)\s+["']([^"']+)["']\s+(?:from|in)\s+(?:the\s+)?["']([^"']+)["']\s*(?:dropdown|select|menu)?$""",
          PrimitiveType.SELECT,
          lambda m: IRPrimitive(PrimitiveType.SELECT, locator=_label(m, 2), option=m.group(1))),
]

CHECK_PATTERNS = [
    _rule("check-checkbox",
          r"""^(?:user\s+)?(?:checks?|enables?|ticks?)\s+(?:the\s+)?["']([^"']+)["']\s*(?:checkbox|option)?$""",
          PrimitiveType.CHECK, lambda m: IRPrimitive(PrimitiveType.CHECK, locator=_label(m))),
    _rule("check-checkbox-unquoted",
          r"^(?:user\s+)?(?:checks?|enables?|ticks?)\s+(?:the\s+)?(\w+(?:\s+\w+)*)\s+checkbox$",
          PrimitiveType.CHECK, lambda m: IRPrimitive(PrimitiveType.CHECK, locator=_label(m))),
    _rule("uncheck-checkbox",
          r"""^(?:user\s+)?(?:unchecks?|disables?|unticks?)\s+(?:the\s+)?["']([^"']+)["']\s*(?:checkbox|option)?$""",
          PrimitiveType.UNCHECK, lambda m: IRPrimitive(PrimitiveType.UNCHECK, locator=_label(m))),
    _rule("uncheck-checkbox-unquoted",
          r"^(?:user\s+)?(?:unchecks?|disables?|unticks?)\s+(?:the\s+)?(\w+(?:\s+\w+)*)\s+checkbox$",
          PrimitiveType.UNCHECK, lambda m: IRPrimitive(PrimitiveType.UNCHECK, locator=_label(m))),
]

# Negative assertions come before positive ones, URL/title before generic "contains"
EXTENDED_ASSERTION_PATTERNS = [
    _rule("verify-not-visible",
          r"""^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?["']?(.+?)["']?\s+is\s+not\s+visible$""",
          PrimitiveType.EXPECT_HIDDEN, lambda m: IRPrimitive(PrimitiveType.EXPECT_HIDDEN, locator=_text(m))),
    _rule("element-should-not-be-visible",
          r"""^(?:the\s+)?["']?(.+?)["']?\s+(?:should\s+)?(?:not\s+be|is\s+not)\s+(?:visible|displayed|shown)$""",
          PrimitiveType.EXPECT_HIDDEN, lambda m: IRPrimitive(PrimitiveType.EXPECT_HIDDEN, locator=_text(m))),
    _rule("verify-url-contains",
          r"""^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?url\s+contains?\s+["']([^"']+)["']$""",
          PrimitiveType.EXPECT_URL, lambda m: IRPrimitive(PrimitiveType.EXPECT_URL, pattern=m.group(1))),
    _rule("verify-title-is",
          r"""^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?(?:page\s+)?title\s+(?:is|equals?)\s+["']([^"']+)["']$""",
          PrimitiveType.EXPECT_TITLE, lambda m: IRPrimitive(PrimitiveType.EXPECT_TITLE, title=m.group(1))),
    _rule("verify-field-value",
          r"""^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?["']?(\w+)["']?\s+(?:field\s+)?has\s+value\s+["']([^"']+)["']$""",
          PrimitiveType.EXPECT_VALUE,
          lambda m: IRPrimitive(PrimitiveType.EXPECT_VALUE, locator=_label(m), expected=m.group(2))),
    _rule("verify-element-enabled",
          r"""^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?["']?(.+?)["']?\s+(?:button\s+)?is\s+enabled$""",
          PrimitiveType.EXPECT_ENABLED, lambda m: IRPrimitive(PrimitiveType.EXPECT_ENABLED, locator=_label(m))),
    _rule("verify-element-disabled",
          r"""^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?["']?(.+?)["']?\s+(?:input\s+)?is\s+disabled$""",
          PrimitiveType.EXPECT_DISABLED, lambda m: IRPrimitive(PrimitiveType.EXPECT_DISABLED, locator=_label(m))),
    _rule("verify-checkbox-checked",
          r"""^(?:verify|confirm|check)\s+(?:that\s+)?(?:the\s+)?["']?(.+?)["']?\s+(?:checkbox\s+)?is\s+checked$""",
          PrimitiveType.EXPECT_CHECKED, lambda m: IRPrimitive(PrimitiveType.EXPECT_CHECKED, locator=_label(m))),
    _rule("verify-count",
          r"^(?:verify|confirm|check)\s+(?:that\s+)?(\d+)\s+(?:items?|elements?|rows?)\s+(?:are\s+)?(?:shown|displayed|exist|visible)$",
          PrimitiveType.EXPECT_COUNT,
          lambda m: IRPrimitive(PrimitiveType.EXPECT_COUNT, locator=LocatorSpec(LocatorStrategy.TEXT, "item"),
                                count=int(m.group(1)))),
    _rule("verify-element-showing",
          r"""^(?:verify|confirm|ensure)\s+(?:that\s+)?(?:the\s+)?["']?(.+?)["']?\s+(?:is\s+)?(?:showing|displayed|visible)$""",
          PrimitiveType.EXPECT_VISIBLE, lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=_text(m))),
    _rule("page-should-show",
          r"""^(?:the\s+)?page\s+should\s+(?:show|display|contain)\s+['"](.+?)['"]$""",
          PrimitiveType.EXPECT_TEXT,
          lambda m: IRPrimitive(PrimitiveType.EXPECT_TEXT, locator=LocatorSpec(LocatorStrategy.ROLE, "main"),
                                text=m.group(1))),
    _rule("make-sure-assertion",
          r"^make\s+sure\s+(?:that\s+)?(?:the\s+)?(.+?)\s+(?:is\s+)?(?:visible|displayed|shown)$",
          PrimitiveType.EXPECT_VISIBLE, lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=_text(m))),
    _rule("confirm-that-assertion",
          r"""^(?:verify|confirm)\s+(?:that\s+)?(?:the\s+)?["']?(.+?)["']?\s+(?:appears?|is\s+shown|displays?)$""",
          PrimitiveType.EXPECT_VISIBLE, lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=_text(m))),
    _rule("check-element-exists",
          r"""^check\s+(?:that\s+)?(?:the\s+)?["']?(.+?)["']?\s+(?:exists?|is\s+present)$""",
          PrimitiveType.EXPECT_VISIBLE, lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=_text(m))),
    _rule("element-contains-text",
          r"""^(?:the\s+)?["']?(.+?)["']?\s+(?:should\s+)?contains?\s+['"](.+?)['"]$""",
          PrimitiveType.EXPECT_TEXT,
          lambda m: IRPrimitive(PrimitiveType.EXPECT_TEXT, locator=_text(m), text=m.group(2))),
]

VISIBILITY_PATTERNS = [
    _rule("should-see-text",
          r"""^(?:user\s+)?(?:should\s+)?(?:sees?|views?)\s+(?:the\s+)?["']([^"']+)["']$""",
          PrimitiveType.EXPECT_VISIBLE, lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=_text(m))),
    _rule("is-visible",
          r"""^["']?([^"']+)["']?\s+(?:is\s+)?(?:visible|displayed|shown)$""",
          PrimitiveType.EXPECT_VISIBLE, lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=_text(m))),
    _rule("should-see-element",
          r"^(?:user\s+)?(?:should\s+)?(?:sees?|views?)\s+(?:the\s+)?(.+?)\s+(?:heading|button|link|form|page|element)$",
          PrimitiveType.EXPECT_VISIBLE, lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=_text(m))),
    _rule("page-displayed",
          r"^(?:the\s+)?(.+?)\s+(?:page|screen|view)\s+(?:is\s+)?(?:displayed|shown|visible)$",
          PrimitiveType.EXPECT_VISIBLE, lambda m: IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=_text(m))),
]

URL_PATTERNS = [
    _rule("url-contains",
          r"""^(?:the\s+)?url\s+(?:should\s+)?(?:contains?|includes?)\s+["']?([^"'\s]+)["']?$""",
          PrimitiveType.EXPECT_URL, lambda m: IRPrimitive(PrimitiveType.EXPECT_URL, pattern=m.group(1))),
    _rule("url-is",
          r"""^(?:the\s+)?url\s+(?:should\s+)?(?:is|equals?|be)\s+["']?([^"'\s]+)["']?$""",
          PrimitiveType.EXPECT_URL, lambda m: IRPrimitive(PrimitiveType.EXPECT_URL, pattern=m.group(1))),
    _rule("redirected-to",
          r"""^(?:user\s+)?(?:is\s+)?redirected\s+to\s+["']?([^"'\s]+)["']?$""",
          PrimitiveType.EXPECT_URL, lambda m: IRPrimitive(PrimitiveType.EXPECT_URL, pattern=m.group(1))),
]

EXTENDED_WAIT_PATTERNS = [
    _rule("wait-for-element-visible",
          r"""^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?["']?(.+?)["']?\s+to\s+(?:disappear|be\s+hidden)$""",
          PrimitiveType.WAIT_FOR_HIDDEN, lambda m: IRPrimitive(PrimitiveType.WAIT_FOR_HIDDEN, locator=_text(m))),
    _rule("wait-for-element-appear",
          r"""^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?["']?(.+?)["']?\s+to\s+(?:appear|show|be\s+visible)$""",
          PrimitiveType.WAIT_FOR_VISIBLE, lambda m: IRPrimitive(PrimitiveType.WAIT_FOR_VISIBLE, locator=_text(m))),
    _rule("wait-until-loaded",
          r"^(?:user\s+)?waits?\s+until\s+(?:the\s+)?(?:page|content|data)\s+(?:is\s+)?loaded$",
          PrimitiveType.WAIT_FOR_LOADING_COMPLETE, _simple(PrimitiveType.WAIT_FOR_LOADING_COMPLETE)),
    _rule("wait-seconds",
          r"^(?:user\s+)?waits?\s+(?:for\s+)?(\d+)\s+seconds?$",
          PrimitiveType.WAIT_FOR_TIMEOUT,
          lambda m: IRPrimitive(PrimitiveType.WAIT_FOR_TIMEOUT, ms=int(m.group(1)) * 1000)),
    _rule("wait-for-network",
          r"^(?:user\s+)?waits?\s+(?:for\s+)?(?:the\s+)?network\s+(?:to\s+be\s+)?idle$",
          PrimitiveType.WAIT_FOR_NETWORK_IDLE, _simple(PrimitiveType.WAIT_FOR_NETWORK_IDLE)),
]

WAIT_PATTERNS = [
    _rule("wait-for-navigation",
          r"""^(?:user\s+)?(?:waits?\s+)?(?:for\s+)?navigation\s+to\s+["']?([^"'\s]+)["']?$""",
          PrimitiveType.WAIT_FOR_URL, lambda m: IRPrimitive(PrimitiveType.WAIT_FOR_URL, pattern=m.group(1))),
    _rule("wait-for-page",
          r"^(?:user\s+)?(?:waits?\s+)?(?:for\s+)?(?:the\s+)?(.+?)\s+(?:page|screen)\s+to\s+load$",
          PrimitiveType.WAIT_FOR_LOADING_COMPLETE, _simple(PrimitiveType.WAIT_FOR_LOADING_COMPLETE)),
]

HOVER_PATTERNS = [
    _rule("hover-over-element",
          r"""^(?:user\s+)?hovers?\s+(?:over|on)\s+(?:the\s+)?["']?(.+?)["']?$""",
          PrimitiveType.HOVER,
          lambda m: IRPrimitive(PrimitiveType.HOVER, locator=LocatorSpec(LocatorStrategy.TEXT, _unquote(m.group(1))))),
    _rule("mouse-over",
          r"""^(?:user\s+)?mouse\s*over\s+(?:the\s+)?["']?(.+?)["']?$""",
          PrimitiveType.HOVER,
          lambda m: IRPrimitive(PrimitiveType.HOVER, locator=LocatorSpec(LocatorStrategy.TEXT, _unquote(m.group(1))))),
]

FOCUS_PATTERNS = [
    _rule("focus-on-element",
          r"""^(?:user\s+)?focus(?:es)?\s+(?:on\s+)?(?:the\s+)?["']?(.+?)["']?$""",
          PrimitiveType.FOCUS,
          lambda m: IRPrimitive(PrimitiveType.FOCUS, locator=LocatorSpec(LocatorStrategy.LABEL, _unquote(m.group(1))))),
]

ALL_PATTERNS: List[StepPattern] = [
    *STRUCTURED_PATTERNS,
    *AUTH_PATTERNS,
    *TOAST_PATTERNS,
    *MODAL_ALERT_PATTERNS,
    *EXTENDED_NAVIGATION_PATTERNS,
    *NAVIGATION_PATTERNS,
    *EXTENDED_CLICK_PATTERNS,
    *CLICK_PATTERNS,
    *EXTENDED_FILL_PATTERNS,
    *FILL_PATTERNS,
    *EXTENDED_SELECT_PATTERNS,
    *SELECT_PATTERNS,
    *CHECK_PATTERNS,
    *EXTENDED_ASSERTION_PATTERNS,
    *VISIBILITY_PATTERNS,
    *URL_PATTERNS,
    *EXTENDED_WAIT_PATTERNS,
    *WAIT_PATTERNS,
    *HOVER_PATTERNS,
    *FOCUS_PATTERNS,
]


def _try_extract(pattern: StepPattern, text: str) -> Optional[IRPrimitive]:
    match = pattern.regex.match(text)
    if not match:
        return None
    try:
        return pattern.extract(match)
    except ValueError:
        # The capture produced an empty locator value; treat as no match
        return None


def match_pattern_with_name(text: str) -> Optional[Dict[str, Any]]:
    """Return ``{"name", "primitive"}`` for the first rule matching ``text``."""
    trimmed = text.strip()
    for pattern in ALL_PATTERNS:
        primitive = _try_extract(pattern, trimmed)
        if primitive is not None:
            return {"name": pattern.name, "primitive": primitive}
    return None


def match_pattern(text: str) -> Optional[IRPrimitive]:
    """Match ``text`` against every rule in order and return the first primitive."""
    matched = match_pattern_with_name(text)
    return matched["primitive"] if matched else None


def get_pattern_matches(text: str) -> List[Dict[str, Any]]:
    """All rules that match ``text``, in precedence order."""
    trimmed = text.strip()
    matches = []
    for pattern in ALL_PATTERNS:
        primitive = _try_extract(pattern, trimmed)
        if primitive is not None:
            matches.append({"pattern": pattern.name, "match": primitive})
    return matches


def find_matching_patterns(text: str) -> List[str]:
    trimmed = text.strip()
    return [p.name for p in ALL_PATTERNS if p.regex.match(trimmed)]


def get_all_pattern_names() -> List[str]:
    return [p.name for p in ALL_PATTERNS]


def _category(name: str) -> str:
    return name.split("-")[0] or "other"


def get_pattern_count_by_category() -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for pattern in ALL_PATTERNS:
        category = _category(pattern.name)
        counts[category] = counts.get(category, 0) + 1
    return counts


def get_pattern_metadata(pattern_name: str) -> Optional[Dict[str, str]]:
    """Version, added date, source and category for a named rule."""
    pattern = next((p for p in ALL_PATTERNS if p.name == pattern_name), None)
    if pattern is None:
        return None

    is_extended = ("extended" in pattern_name
                   or pattern_name.startswith(("hover", "focus", "press-", "double-", "right-")))
    return {
        "name": pattern.name,
        "version": "1.1.0" if is_extended else "1.0.0",
        "addedDate": EXTENDED_ADDED_DATE if is_extended else CORE_ADDED_DATE,
        "source": "core",
        "category": _category(pattern.name),
    }
