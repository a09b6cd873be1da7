"""
Glossary and step text normalization.

Resolves synonyms to canonical terms, maps display labels to locators and
phrases to module methods. A user glossary (YAML or JSON) can extend the
built-in defaults.
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Any

import yaml

from ..core.models.mapping_models import LocatorSpec, LocatorStrategy

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"""(['"][^'"]+['"])|(\S+)""")


@dataclass
class GlossaryEntry:
    canonical: str
    synonyms: List[str] = field(default_factory=list)


@dataclass
class LabelAlias:
    """Maps a display label to a test id, role or raw selector."""
    label: str
    testid: Optional[str] = None
    role: Optional[str] = None
    selector: Optional[str] = None


@dataclass
class ModuleMethodMapping:
    """Maps a phrase such as "log in" to a module method call."""
    phrase: str
    module: str
    method: str
    params: Optional[Dict[str, str]] = None


def _update_set_fields(target, source, names) -> None:
    for name in names:
        value = getattr(source, name)
        if value is not None:
            setattr(target, name, copy.deepcopy(value))


class Glossary:
    """Synonym table plus label aliases and module method phrases."""

    def __init__(self, entries: Optional[List[GlossaryEntry]] = None,
                 label_aliases: Optional[List[LabelAlias]] = None,
                 module_methods: Optional[List[ModuleMethodMapping]] = None,
                 version: int = 1):
        self.version = version
        self.entries = list(entries or [])
        self.label_aliases = list(label_aliases or [])
        self.module_methods = list(module_methods or [])
        self._synonym_map: Optional[Dict[str, str]] = None

    @property
    def synonym_map(self) -> Dict[str, str]:
        if self._synonym_map is None:
            self._synonym_map = self._build_synonym_map()
        return self._synonym_map

    def _build_synonym_map(self) -> Dict[str, str]:
        # First occurrence of a term wins
        mapping: Dict[str, str] = {}
        for entry in self.entries:
            mapping.setdefault(entry.canonical.lower(), entry.canonical)
            for synonym in entry.synonyms:
                mapping.setdefault(synonym.lower(), entry.canonical)
        return mapping

    def resolve_canonical(self, term: str) -> str:
        """Return the canonical form of ``term``, or ``term`` unchanged."""
        return self.synonym_map.get(term.lower(), term)

    def normalize_step_text(self, text: str) -> str:
        """Replace every unquoted token with its canonical form.

        Quoted spans are kept verbatim and tokens are re-joined with single spaces.
        """
        parts = []
        for match in TOKEN_PATTERN.finditer(text):
            token = match.group(0)
            if token.startswith('"') or token.startswith("'"):
                parts.append(token)
            else:
                parts.append(self.synonym_map.get(token.lower(), token))
        return " ".join(parts)

    def get_synonyms(self, canonical: str) -> List[str]:
        for entry in self.entries:
            if entry.canonical.lower() == canonical.lower():
                return list(entry.synonyms)
        return []

    def is_synonym_of(self, term: str, canonical: str) -> bool:
        return self.resolve_canonical(term).lower() == canonical.lower()

    def find_label_alias(self, label: str) -> Optional[LabelAlias]:
        normalized = label.strip().lower()
        for alias in self.label_aliases:
            if alias.label.lower() == normalized:
                return alias
        return None

    def get_locator_from_label(self, label: str) -> Optional[LocatorSpec]:
        """Locator for an aliased label, preferring testid, then role, then selector."""
        alias = self.find_label_alias(label)
        if not alias:
            return None
        if alias.testid:
            return LocatorSpec(LocatorStrategy.TESTID, alias.testid)
        if alias.role:
            return LocatorSpec(LocatorStrategy.ROLE, alias.role)
        if alias.selector:
            return LocatorSpec(LocatorStrategy.CSS, alias.selector)
        return None

    def find_module_method(self, text: str) -> Optional[ModuleMethodMapping]:
        """Find the longest module method phrase contained in ``text``."""
        normalized = text.strip().lower()
        best: Optional[ModuleMethodMapping] = None
        for mapping in self.module_methods:
            phrase = mapping.phrase.lower()
            if phrase in normalized and (best is None or len(phrase) > len(best.phrase)):
                best = mapping
        return best

    def merge(self, extension: 'Glossary') -> 'Glossary':
        """Return a new glossary with ``extension`` layered over this one.

        Matching canonical entries get their synonyms unioned. For label
        aliases and module methods the extension only overrides the fields it sets.
        """
        entries = [GlossaryEntry(e.canonical, list(e.synonyms)) for e in self.entries]
        for ext_entry in extension.entries:
            existing = next((e for e in entries
                             if e.canonical.lower() == ext_entry.canonical.lower()), None)
            if existing:
                for synonym in ext_entry.synonyms:
                    if synonym not in existing.synonyms:
                        existing.synonyms.append(synonym)
            else:
                entries.append(GlossaryEntry(ext_entry.canonical, list(ext_entry.synonyms)))

        aliases = [copy.copy(a) for a in self.label_aliases]
        for ext_alias in extension.label_aliases:
            existing = next((a for a in aliases if a.label.lower() == ext_alias.label.lower()), None)
            if existing is None:
                aliases.append(copy.copy(ext_alias))
            else:
                _update_set_fields(existing, ext_alias, ("testid", "role", "selector"))

        methods = [copy.deepcopy(m) for m in self.module_methods]
        for ext_method in extension.module_methods:
            existing = next((m for m in methods if m.phrase.lower() == ext_method.phrase.lower()), None)
            if existing is None:
                methods.append(copy.deepcopy(ext_method))
            else:
                _update_set_fields(existing, ext_method, ("module", "method", "params"))

        return Glossary(entries, aliases, methods, max(self.version, extension.version))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Glossary':
        """Build a glossary from its file shape.

        Raises:
            ValueError: If the document does not have the expected shape
        """
        if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
            raise ValueError("Glossary must be a mapping with an 'entries' list")
        try:
            entries = [GlossaryEntry(str(e["canonical"]), [str(s) for s in e.get("synonyms", [])])
                       for e in data["entries"]]
            aliases = [LabelAlias(label=str(a["label"]), testid=a.get("testid"),
                                  role=a.get("role"), selector=a.get("selector"))
                       for a in data.get("labelAliases") or []]
            methods = [ModuleMethodMapping(phrase=str(m["phrase"]), module=str(m["module"]),
                                           method=str(m["method"]), params=m.get("params"))
                       for m in data.get("moduleMethods") or []]
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed glossary entry: {e}") from e
        return cls(entries, aliases, methods, int(data.get("version", 1)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "entries": [{"canonical": e.canonical, "synonyms": list(e.synonyms)} for e in self.entries],
            "labelAliases": [{k: v for k, v in vars(a).items() if v is not None} for a in self.label_aliases],
            "moduleMethods": [{k: v for k, v in vars(m).items() if v is not None} for m in self.module_methods],
        }


# Synonyms that are verbs or nouns of the pattern library (press, select,
# check, tick, close, dismiss, confirm, shown, ...) are left out so that
# normalizing a step never turns it into a different pattern.
DEFAULT_GLOSSARY_DATA: Dict[str, Any] = {
    "version": 1,
    "labelAliases": [
        {"label": "email", "testid": "email-input", "role": "textbox"},
        {"label": "password", "testid": "password-input", "role": "textbox"},
        {"label": "username", "testid": "username-input", "role": "textbox"},
        {"label": "search", "testid": "search-input", "role": "searchbox"},
        {"label": "submit", "testid": "submit-button", "role": "button"},
        {"label": "cancel", "testid": "cancel-button", "role": "button"},
        {"label": "close", "testid": "close-button", "role": "button"},
    ],
    "moduleMethods": [
        {"phrase": "log in", "module": "auth", "method": "login"},
        {"phrase": "login", "module": "auth", "method": "login"},
        {"phrase": "sign in", "module": "auth", "method": "login"},
        {"phrase": "log out", "module": "auth", "method": "logout"},
        {"phrase": "logout", "module": "auth", "method": "logout"},
        {"phrase": "sign out", "module": "auth", "method": "logout"},
        {"phrase": "navigate to", "module": "navigation", "method": "goToPath"},
        {"phrase": "go to", "module": "navigation", "method": "goToPath"},
        {"phrase": "open", "module": "navigation", "method": "goToPath"},
        {"phrase": "fill form", "module": "forms", "method": "fillForm"},
        {"phrase": "submit form", "module": "forms", "method": "submitForm"},
        {"phrase": "wait for", "module": "waits", "method": "waitForSignal"},
    ],
    "entries": [
        {"canonical": "click", "synonyms": ["tap", "hit"]},
        {"canonical": "enter", "synonyms": ["type", "write"]},
        {"canonical": "navigate", "synonyms": ["go", "open", "visit", "browse"]},
        {"canonical": "see", "synonyms": ["view", "observe", "notice", "find"]},
        {"canonical": "visible", "synonyms": ["displayed"]},
        {"canonical": "button", "synonyms": ["btn", "action", "cta"]},
        {"canonical": "field", "synonyms": ["textbox", "text field", "text input"]},
        {"canonical": "dropdown", "synonyms": ["combo", "combobox", "selector", "picker"]},
        {"canonical": "checkbox", "synonyms": ["toggle"]},
        {"canonical": "login", "synonyms": ["log in", "sign in", "authenticate"]},
        {"canonical": "logout", "synonyms": ["log out", "sign out"]},
        {"canonical": "submit", "synonyms": ["send", "save"]},
        {"canonical": "cancel", "synonyms": ["abort"]},
        {"canonical": "success", "synonyms": ["passed", "completed", "done", "finished"]},
        {"canonical": "error", "synonyms": ["failure", "failed", "problem", "issue"]},
        {"canonical": "toast", "synonyms": ["snackbar"]},
        {"canonical": "modal", "synonyms": ["dialog", "popup", "overlay", "lightbox"]},
        {"canonical": "user", "synonyms": ["customer", "visitor", "member", "client"]},
        {"canonical": "page", "synonyms": ["screen", "section"]},
        {"canonical": "form", "synonyms": ["questionnaire", "survey", "wizard"]},
    ],
}


def default_glossary() -> Glossary:
    """A fresh copy of the built-in glossary."""
    return Glossary.from_dict(copy.deepcopy(DEFAULT_GLOSSARY_DATA))


def load_glossary(glossary_path: Optional[str] = None) -> Glossary:
    """Load a user glossary and merge it over the defaults.

    A missing, unreadable or malformed file falls back to the defaults.
    """
    defaults = default_glossary()
    if not glossary_path:
        return defaults

    path = Path(glossary_path)
    if not path.exists():
        logger.warning(f"Glossary file not found at {path}, using defaults")
        return defaults

    try:
        with open(path, "r", encoding="utf-8") as f:
            # yaml.safe_load also accepts JSON documents
            data = yaml.safe_load(f)
        user_glossary = Glossary.from_dict(data)
    except (OSError, yaml.YAMLError, ValueError) as e:
        logger.warning(f"Invalid glossary file at {path}, using defaults: {e}")
        return defaults

    logger.info(f"📖 GLOSSARY: Loaded {len(user_glossary.entries)} entries from {path}")
    return defaults.merge(user_glossary)
