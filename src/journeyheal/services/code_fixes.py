"""
Repair strategies for generated Playwright test source.

Every strategy is a textual transform: it takes the test code and returns a
``FixResult`` with the new code, a one-line description and a confidence.
Nothing here weakens an assertion or adds a sleep; those fix types are
rejected by ``apply_fix``.

``PlaywrightTestCodeUpdater`` applies a strategy to a file on disk with a
timestamped backup, and is what the healing session uses as its fix applier.
"""

import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging

from ..core.models.healing_models import FixApplication
from ..core.models.mapping_models import LocatorSpec, LocatorStrategy, SelectorPolicy
from .healing_rules import is_fix_forbidden
from .locator_scoring import select_best_locator

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 5000
TIMEOUT_GROWTH = 1.5


@dataclass
class FixResult:
    """Outcome of one repair strategy."""
    applied: bool
    code: str
    description: str
    confidence: float = 0.0
    new_locator: Optional[str] = None


@dataclass
class AriaInfo:
    """Accessibility details captured for the element a failing locator targeted."""
    role: Optional[str] = None
    name: Optional[str] = None
    level: Optional[int] = None
    test_id: Optional[str] = None
    label: Optional[str] = None
    placeholder: Optional[str] = None


def _not_applied(code: str, description: str) -> FixResult:
    return FixResult(applied=False, code=code, description=description)


# ----------------------------------------------------------------------------- selectors

CSS_SELECTOR_PATTERNS = [
    # page.locator('.class') or page.locator('#id')
    re.compile(r"""page\.locator\s*\(\s*['"`]([.#][^'"`]+)['"`]\s*\)"""),
    # page.locator('[attribute]')
    re.compile(r"""page\.locator\s*\(\s*['"`](\[[^\]]+\])['"`]\s*\)"""),
    # page.locator('tag.class')
    re.compile(r"""page\.locator\s*\(\s*['"`]([a-z]+[.#][^'"`]+)['"`]\s*\)"""),
]

# Substring of a class or id name -> ARIA role, first hit wins
UI_PATTERN_TO_ROLE: List[Tuple[str, str]] = [
    ("button", "button"),
    ("btn", "button"),
    ("submit", "button"),
    ("input", "textbox"),
    ("textbox", "textbox"),
    ("checkbox", "checkbox"),
    ("radio", "radio"),
    ("select", "combobox"),
    ("dropdown", "combobox"),
    ("link", "link"),
    ("heading", "heading"),
    ("h1", "heading"),
    ("h2", "heading"),
    ("h3", "heading"),
    ("dialog", "dialog"),
    ("modal", "dialog"),
    ("alert", "alert"),
    ("tab", "tab"),
    ("menu", "menu"),
    ("menuitem", "menuitem"),
    ("table", "table"),
    ("row", "row"),
    ("cell", "cell"),
    ("grid", "grid"),
    ("list", "list"),
    ("listitem", "listitem"),
    ("img", "img"),
    ("image", "img"),
    ("nav", "navigation"),
    ("navigation", "navigation"),
    ("search", "search"),
    ("main", "main"),
    ("banner", "banner"),
    ("footer", "contentinfo"),
]

# Confidence of a refined locator, keyed by how it was derived
ARIA_CONFIDENCE = {"testid": 1.0, "role_name": 0.9, "label": 0.85, "role": 0.6}
CSS_CONFIDENCE = {"role_name": 0.6, "role": 0.4, "text": 0.3}


def extract_css_selector(code: str, line_number: Optional[int] = None) -> Optional[str]:
    """First CSS selector passed to ``page.locator``, preferring the given line."""
    if line_number:
        lines = code.split("\n")
        if 1 <= line_number <= len(lines):
            found = extract_css_selector(lines[line_number - 1])
            if found:
                return found

    for pattern in CSS_SELECTOR_PATTERNS:
        match = pattern.search(code)
        if match:
            return match.group(1)
    return None


def contains_css_selector(code: str) -> bool:
    return any(p.search(code) for p in CSS_SELECTOR_PATTERNS)


def infer_role_from_selector(selector: str) -> Optional[str]:
    lower = selector.lower()
    return next((role for hint, role in UI_PATTERN_TO_ROLE if hint in lower), None)


def extract_name_from_selector(selector: str) -> Optional[str]:
    """Readable name from an aria-label/title/alt/name attribute or a descriptive class."""
    attr = re.search(r"""\[(?:aria-label|title|alt|name)=['"]([^'"]+)['"]\]""", selector)
    if attr:
        return attr.group(1)

    class_match = re.search(r"\.([a-zA-Z][-a-zA-Z0-9_]*)", selector)
    if class_match:
        words = [w for w in re.split(r"[-_]", class_match.group(1)) if w]
        if words and len(words[0]) > 2:
            return " ".join(words)
    return None


def render_locator(locator: LocatorSpec) -> str:
    """Playwright expression for a locator."""
    exact = locator.options.get("exact")
    if locator.strategy == LocatorStrategy.TESTID:
        return f"page.getByTestId('{locator.value}')"
    if locator.strategy == LocatorStrategy.ROLE:
        opts = []
        if locator.name:
            opts.append(f"name: '{locator.name}'")
            if exact:
                opts.append("exact: true")
        if locator.options.get("level") is not None and locator.value == "heading":
            opts.append(f"level: {locator.options['level']}")
        if opts:
            return f"page.getByRole('{locator.value}', {{ {', '.join(opts)} }})"
        return f"page.getByRole('{locator.value}')"
    if locator.strategy == LocatorStrategy.CSS:
        return f"page.locator('{locator.value}')"

    method = {
        LocatorStrategy.LABEL: "getByLabel",
        LocatorStrategy.TEXT: "getByText",
        LocatorStrategy.PLACEHOLDER: "getByPlaceholder",
    }[locator.strategy]
    if exact:
        return f"page.{method}('{locator.value}', {{ exact: true }})"
    return f"page.{method}('{locator.value}')"


def _aria_candidates(aria: AriaInfo) -> List[Tuple[LocatorSpec, float]]:
    candidates = []
    if aria.test_id:
        candidates.append((LocatorSpec(LocatorStrategy.TESTID, aria.test_id), ARIA_CONFIDENCE["testid"]))
    if aria.role and aria.name:
        options = {"name": aria.name, "exact": True, "level": aria.level}
        candidates.append((LocatorSpec(LocatorStrategy.ROLE, aria.role, options), ARIA_CONFIDENCE["role_name"]))
    if aria.label:
        candidates.append((LocatorSpec(LocatorStrategy.LABEL, aria.label, {"exact": True}), ARIA_CONFIDENCE["label"]))
    # A bare role is only a fallback
    if aria.role and not candidates:
        candidates.append((LocatorSpec(LocatorStrategy.ROLE, aria.role), ARIA_CONFIDENCE["role"]))
    return candidates


def _css_candidates(selector: str) -> List[Tuple[LocatorSpec, float]]:
    role = infer_role_from_selector(selector)
    name = extract_name_from_selector(selector)
    if role and name:
        return [(LocatorSpec(LocatorStrategy.ROLE, role, {"name": name}), CSS_CONFIDENCE["role_name"])]
    if role:
        return [(LocatorSpec(LocatorStrategy.ROLE, role), CSS_CONFIDENCE["role"])]
    if name:
        return [(LocatorSpec(LocatorStrategy.TEXT, name), CSS_CONFIDENCE["text"])]
    return []


def refine_selector(code: str, line_number: Optional[int] = None, aria_info: Optional[AriaInfo] = None,
                    policy: Optional[SelectorPolicy] = None) -> FixResult:
    """Replace a CSS ``page.locator()`` with a semantic locator.

    Uses captured ARIA details when available, otherwise infers a role or
    text from the CSS selector itself. Candidates are ranked by the selector
    policy; a candidate matching a forbidden pattern is never written.
    """
    selector = extract_css_selector(code, line_number)
    if not selector:
        return _not_applied(code, "No CSS selector found to refine")

    candidates = _aria_candidates(aria_info) if aria_info else _css_candidates(selector)
    if not candidates:
        source = "ARIA info" if aria_info else "CSS selector"
        return _not_applied(code, f"Unable to generate locator from {source}")

    selection = select_best_locator([c for c, _ in candidates], policy)
    if selection.all_forbidden:
        return _not_applied(code, "Every refined locator matches a forbidden pattern")

    confidence = next(conf for cand, conf in candidates if cand is selection.locator)
    new_locator = render_locator(selection.locator)

    pattern = re.compile(r"""page\.locator\s*\(\s*['"`]""" + re.escape(selector) + r"""['"`]\s*\)""")
    modified = pattern.sub(lambda _m: new_locator, code)
    method = new_locator.split("(")[0]
    description = (f"Replaced CSS selector with {method}" if aria_info
                   else f"Inferred {method} from CSS selector pattern")

    return FixResult(applied=modified != code, code=modified, description=description,
                     confidence=confidence, new_locator=new_locator)


def add_exact_to_locator(code: str) -> FixResult:
    count = 0

    def _exact(template):
        def replace(match):
            nonlocal count
            count += 1
            return template.format(*match.groups())
        return replace

    modified = re.sub(
        r"""page\.getByRole\s*\(\s*['"](\w+)['"]\s*,\s*\{\s*name:\s*['"]([^'"]+)['"]\s*\}\s*\)""",
        _exact("page.getByRole('{0}', {{ name: '{1}', exact: true }})"), code)
    modified = re.sub(
        r"""page\.getByLabel\s*\(\s*['"]([^'"]+)['"]\s*\)""",
        _exact("page.getByLabel('{0}', {{ exact: true }})"), modified)
    modified = re.sub(
        r"""page\.getByText\s*\(\s*['"]([^'"]+)['"]\s*\)""",
        _exact("page.getByText('{0}', {{ exact: true }})"), modified)

    if not count:
        return _not_applied(code, "No locator found to add exact option")
    return FixResult(applied=True, code=modified, description="Added exact: true to locator", confidence=0.8)


# ----------------------------------------------------------------------------- navigation

EXISTING_WAIT_PATTERNS = [
    re.compile(r"await\s+page\.waitForURL"),
    re.compile(r"await\s+expect\s*\(\s*page\s*\)\.toHaveURL"),
    re.compile(r"await\s+page\.waitForNavigation"),
    re.compile(r"await\s+page\.waitForLoadState"),
]


def has_navigation_wait(code: str) -> bool:
    return any(p.search(code) for p in EXISTING_WAIT_PATTERNS)


def extract_url_from_error(error_message: str) -> Optional[str]:
    for pattern in (r"""Expected\s+URL\s+to\s+match\s+['"]([^'"]+)['"]""",
                    r"""expected\s+['"]([^'"]+)['"]\s+to\s+match""",
                    r"""waiting\s+for\s+URL\s+['"]([^'"]+)['"]"""):
        match = re.search(pattern, error_message, re.IGNORECASE)
        if match:
            return match.group(1)
    return None


def extract_url_from_goto(code: str) -> Optional[str]:
    match = re.search(r"""page\.goto\s*\(\s*['"`]([^'"`]+)['"`]""", code)
    return match.group(1) if match else None


def generate_to_have_url(url_pattern: str) -> str:
    if "*" in url_pattern or "\\" in url_pattern:
        return f"await expect(page).toHaveURL(/{url_pattern}/)"
    return f"await expect(page).toHaveURL('{url_pattern}')"


def _indentation(line: str) -> str:
    return re.match(r"^(\s*)", line).group(1)


def _insert_after(code: str, line_number: int, statement: str) -> Optional[str]:
    lines = code.split("\n")
    if line_number < 1 or line_number > len(lines):
        return None
    lines.insert(line_number, f"{_indentation(lines[line_number - 1])}{statement}")
    return "\n".join(lines)


def apply_navigation_fix(code: str, line_number: int, error_message: str = "",
                         expected_url: Optional[str] = None) -> FixResult:
    """Insert a URL assertion after the failing line, or a load-state wait when no URL is known."""
    url_pattern = expected_url or extract_url_from_error(error_message) or extract_url_from_goto(code)

    if not url_pattern:
        modified = _insert_after(code, line_number, "await page.waitForLoadState('networkidle')")
        if modified is None:
            return _not_applied(code, "Invalid line number")
        return FixResult(applied=True, code=modified, description="Added waitForLoadState as fallback",
                         confidence=0.5)

    if has_navigation_wait(code):
        return _not_applied(code, "Navigation wait already exists")

    modified = _insert_after(code, line_number, generate_to_have_url(url_pattern))
    if modified is None:
        return _not_applied(code, "Invalid line number")
    return FixResult(applied=True, code=modified, description=f"Added toHaveURL assertion for '{url_pattern}'",
                     confidence=0.7)


# ----------------------------------------------------------------------------- timing

# Group 1 captures an existing await so the match can be left alone
MISSING_AWAIT_PATTERNS = [
    re.compile(r"(\bawait\s+)?(page\.(?:click|fill|type|check|uncheck|selectOption|hover|focus|press|dblclick|dragTo)\s*\()"),
    re.compile(r"(\bawait\s+)?(expect\s*\([^)]+\)\.(?:toBeVisible|toBeHidden|toHaveText|toContainText|toHaveValue|toHaveURL|toHaveTitle)\s*\()"),
    re.compile(r"(\bawait\s+)?(?<![\w$.])([a-zA-Z_$][a-zA-Z0-9_$]*\.(?:click|fill|type|check|hover|press)\s*\()"),
]

WEB_FIRST_CONVERSIONS = [
    (re.compile(r"""const\s+(\w+)\s*=\s*await\s+(\w+)\.textContent\s*\(\s*\)\s*;?\s*\n(\s*)expect\s*\(\s*\1\s*\)\.toBe\s*\(\s*(['"][^'"]+['"])\s*\)"""),
     "await expect({locator}).toHaveText({expected})"),
    (re.compile(r"""const\s+(\w+)\s*=\s*await\s+(\w+)\.innerText\s*\(\s*\)\s*;?\s*\n(\s*)expect\s*\(\s*\1\s*\)\.toBe\s*\(\s*(['"][^'"]+['"])\s*\)"""),
     "await expect({locator}).toHaveText({expected})"),
    (re.compile(r"""const\s+(\w+)\s*=\s*await\s+(\w+)\.isVisible\s*\(\s*\)\s*;?\s*\n(\s*)expect\s*\(\s*\1\s*\)\.toBe\s*\(\s*true\s*\)"""),
     "await expect({locator}).toBeVisible()"),
    (re.compile(r"""const\s+(\w+)\s*=\s*await\s+(\w+)\.isHidden\s*\(\s*\)\s*;?\s*\n(\s*)expect\s*\(\s*\1\s*\)\.toBe\s*\(\s*true\s*\)"""),
     "await expect({locator}).toBeHidden()"),
]


def fix_missing_await(code: str) -> FixResult:
    count = 0

    def add_await(match):
        nonlocal count
        if match.group(1):
            return match.group(0)
        count += 1
        return f"await {match.group(2)}"

    modified = code
    for pattern in MISSING_AWAIT_PATTERNS:
        modified = pattern.sub(add_await, modified)

    if not count:
        return _not_applied(code, "No missing await found")
    return FixResult(applied=True, code=modified, description=f"Added {count} missing await statement(s)",
                     confidence=0.9)


def convert_to_web_first_assertion(code: str) -> FixResult:
    """Turn read-then-compare checks into auto-retrying ``expect(locator)`` assertions."""
    modified = code
    for pattern, template in WEB_FIRST_CONVERSIONS:
        modified = pattern.sub(
            lambda m, t=template: t.format(
                locator=m.group(2),
                expected=m.group(4) if m.lastindex >= 4 else ""),
            modified)

    if modified == code:
        return _not_applied(code, "No conversion needed")
    return FixResult(applied=True, code=modified, description="Converted to web-first assertion", confidence=0.85)


def extract_timeout_from_error(error_message: str) -> Optional[int]:
    match = re.search(r"timeout\s+(\d+)ms", error_message, re.IGNORECASE)
    return int(match.group(1)) if match else None


def suggest_timeout_increase(current_timeout: int, max_timeout: int = 30000) -> int:
    return min(round(current_timeout * TIMEOUT_GROWTH), max_timeout)


def add_timeout(code: str, line_number: int, timeout: int) -> FixResult:
    """Add an explicit ``timeout`` option to the action or assertion on one line."""
    lines = code.split("\n")
    if line_number < 1 or line_number > len(lines):
        return _not_applied(code, "Invalid line number")

    line = lines[line_number - 1]
    if re.search(r"\btimeout\s*:", line, re.IGNORECASE):
        return _not_applied(code, "Timeout already specified")

    actions = r"click|fill|press|type|hover|focus|check|uncheck"
    modified = re.sub(rf"\.({actions})\s*\(\s*\)", rf".\1({{ timeout: {timeout} }})", line)
    modified = re.sub(rf"""\.({actions})\s*\(\s*(['"][^'"]*['"])\s*\)""",
                      rf".\1(\2, {{ timeout: {timeout} }})", modified)
    modified = re.sub(rf"\.({actions})\s*\(\s*\{{([^}}]*)\}}\s*\)",
                      lambda m: m.group(0) if "timeout" in m.group(2)
                      else f".{m.group(1)}({{ {m.group(2).strip()}, timeout: {timeout} }})", modified)
    modified = re.sub(r"\.(toBeVisible|toBeHidden|toHaveText|toContainText|toHaveValue)\s*\(\s*\)",
                      rf".\1({{ timeout: {timeout} }})", modified)

    if modified == line:
        return _not_applied(code, "Unable to add timeout")
    lines[line_number - 1] = modified
    return FixResult(applied=True, code="\n".join(lines), description=f"Added timeout: {timeout}ms",
                     confidence=0.6)


# ----------------------------------------------------------------------------- dispatch

def apply_fix(code: str, fix_type: str, line_number: int = 1, error_message: str = "",
              aria_info: Optional[AriaInfo] = None, policy: Optional[SelectorPolicy] = None,
              max_timeout_increase: int = 30000, current_timeout: Optional[int] = None) -> FixResult:
    """Dispatch to the repair strategy named by ``fix_type``."""
    if is_fix_forbidden(fix_type):
        logger.warning(f"Refusing forbidden fix type '{fix_type}'")
        return _not_applied(code, f"Fix type '{fix_type}' is forbidden")

    if fix_type == "selector-refine":
        return refine_selector(code, line_number, aria_info, policy)
    if fix_type == "add-exact":
        return add_exact_to_locator(code)
    if fix_type == "missing-await":
        return fix_missing_await(code)
    if fix_type == "navigation-wait":
        return apply_navigation_fix(code, line_number, error_message)
    if fix_type == "web-first-assertion":
        return convert_to_web_first_assertion(code)
    if fix_type == "timeout-increase":
        timeout = current_timeout or extract_timeout_from_error(error_message) or DEFAULT_TIMEOUT_MS
        return add_timeout(code, line_number, suggest_timeout_increase(timeout, max_timeout_increase))

    return _not_applied(code, f"Unknown fix type: {fix_type}")


def extract_line_number(error_text: str) -> int:
    """Line of the failing statement in the test file; 1 when it cannot be found."""
    match = re.search(r"\.(?:spec|test)\.[jt]sx?:(\d+)(?::\d+)?", error_text)
    if not match:
        match = re.search(r":(\d+)(?::\d+)?(?:\)|$)", error_text, re.MULTILINE)
    if not match:
        match = re.search(r"at line (\d+)", error_text, re.IGNORECASE)
    return int(match.group(1)) if match else 1


class PlaywrightTestCodeUpdater:
    """Applies repair strategies to Playwright test files with backups."""

    def __init__(self, backup_dir: Optional[str] = None, selector_policy: Optional[SelectorPolicy] = None,
                 aria_info: Optional[AriaInfo] = None, max_timeout_increase: int = 30000):
        """Initialize the updater.

        Args:
            backup_dir: Directory to store backup files. If None, uses temp directory.
            selector_policy: Priority and forbidden patterns for refined locators.
            aria_info: Accessibility details of the failing element, when captured.
            max_timeout_increase: Upper bound for the timeout-increase fix, in ms.
        """
        self.backup_dir = Path(backup_dir) if backup_dir else Path(tempfile.gettempdir()) / "journeyheal_backups"
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        self.selector_policy = selector_policy
        self.aria_info = aria_info
        self.max_timeout_increase = max_timeout_increase

    def backup_test_file(self, file_path: str) -> str:
        """Create a timestamped backup of the test file.

        Raises:
            FileNotFoundError: If the source file doesn't exist
            IOError: If backup creation fails
        """
        source_path = Path(file_path)
        if not source_path.exists():
            raise FileNotFoundError(f"Test file not found: {file_path}")

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_path = self.backup_dir / f"{source_path.stem}_{timestamp}{source_path.suffix}"

        try:
            shutil.copy2(source_path, backup_path)
            logger.info(f"Created backup: {backup_path}")
            return str(backup_path)
        except OSError as e:
            logger.error(f"Failed to create backup: {e}")
            raise IOError(f"Failed to create backup: {e}") from e

    def restore_from_backup(self, file_path: str, backup_path: str) -> bool:
        try:
            if not Path(backup_path).exists():
                logger.error(f"Backup file not found: {backup_path}")
                return False

            shutil.copy2(backup_path, file_path)
            logger.info(f"Restored {file_path} from backup {backup_path}")
            return True

        except OSError as e:
            logger.error(f"Failed to restore from backup: {e}")
            return False

    def get_backup_info(self, file_path: str) -> List[Dict[str, str]]:
        """Backups of a test file, newest first."""
        source = Path(file_path)
        backups = []
        for backup_file in self.backup_dir.glob(f"{source.stem}_*{source.suffix}"):
            stat = backup_file.stat()
            backups.append({
                "path": str(backup_file),
                "created": datetime.fromtimestamp(stat.st_mtime).isoformat(),
                "size": stat.st_size,
            })
        return sorted(backups, key=lambda b: b["path"], reverse=True)

    def apply_fix_to_file(self, file_path: str, fix_type: str, error_text: str = "",
                          create_backup: bool = True) -> FixApplication:
        """Apply one strategy to a test file and write it back atomically.

        The file is left untouched when the strategy does not apply.
        """
        if not file_path or not Path(file_path).exists():
            return FixApplication(applied=False, fix_type=fix_type, file=file_path or "",
                                  change=f"File not found: {file_path}")

        with open(file_path, "r", encoding="utf-8") as f:
            code = f.read()

        result = apply_fix(
            code,
            fix_type,
            line_number=extract_line_number(error_text),
            error_message=error_text,
            aria_info=self.aria_info,
            policy=self.selector_policy,
            max_timeout_increase=self.max_timeout_increase,
        )
        if not result.applied:
            logger.info(f"🩹 HEALING: {fix_type} not applied to {file_path}: {result.description}")
            return FixApplication(applied=False, fix_type=fix_type, file=file_path, change=result.description)

        evidence = []
        if create_backup:
            evidence.append(self.backup_test_file(file_path))

        temp_file = f"{file_path}.tmp"
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                f.write(result.code)
            os.replace(temp_file, file_path)
        except OSError:
            if os.path.exists(temp_file):
                os.remove(temp_file)
            raise

        logger.info(f"🩹 HEALING: applied {fix_type} to {file_path}: {result.description}")
        return FixApplication(
            applied=True,
            fix_type=fix_type,
            file=file_path,
            change=result.description,
            evidence=evidence,
            confidence=result.confidence,
        )

    def __call__(self, fix_type: str, test_file: Optional[str], error_text: str) -> FixApplication:
        return self.apply_fix_to_file(test_file, fix_type, error_text)
