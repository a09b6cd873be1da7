"""
Step mapper: turns one line of journey step text into a primitive.

Resolution order is fixed: explicit hints, then the pattern library, then
the learned pattern store. Fixed patterns always beat learned ones, whatever
their confidence. A learned pattern's success is only recorded later, once
the generated test has actually passed (see ``confirm_success``).
"""

import copy
import logging
import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Any

from ..core.logging_config import get_healing_logger
from ..core.models.mapping_models import (
    ACMappingResult, AcceptanceCriterion, IRPrimitive, IRStep, LocatorSpec, LocatorStrategy,
    MatchSource, PrimitiveType, ProceduralStep, StepMappingResult, ValueSpec, ValueType
)
from ..core.models.llkb_models import LearnedPattern
from .glossary import Glossary, default_glossary
from .hint_parser import (
    ExtractedHints, build_locator_from_hints, extract_hints, has_locator_hints,
    parse_module_hint, validate_hints
)
from .llkb_store import LearnedPatternStore
from .pattern_library import match_pattern_with_name

logger = logging.getLogger(__name__)

QUOTED_VALUE_PATTERN = re.compile(r"""['"]([^'"]+)['"]""")

# Roles that are looked at rather than clicked
NON_INTERACTIVE_ROLES = frozenset([
    "heading", "img", "status", "alert", "banner", "main", "region", "article",
    "contentinfo", "complementary", "figure", "note", "log", "marquee", "timer",
    "tooltip", "table", "list", "listitem", "paragraph",
])


@dataclass
class StepMapperOptions:
    normalize_text: bool = True
    include_blocked: bool = True
    use_llkb: bool = True
    llkb_min_confidence: float = 0.7
    journey_id: Optional[str] = None


def create_primitive_from_hints(text: str, locator: LocatorSpec) -> IRPrimitive:
    """Infer the action for a hinted locator from the verbs in ``text``."""
    lower = text.lower()

    if "click" in lower or "press" in lower:
        return IRPrimitive(PrimitiveType.CLICK, locator=locator)

    if "enter" in lower or "type" in lower or "fill" in lower:
        quoted = next((q for q in _quoted_values(text)), "")
        return IRPrimitive(PrimitiveType.FILL, locator=locator, value=ValueSpec(ValueType.LITERAL, quoted))

    if "see" in lower or "visible" in lower or "display" in lower:
        return IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=locator)

    if "check" in lower or "select" in lower:
        return IRPrimitive(PrimitiveType.CHECK, locator=locator)

    if locator.strategy == LocatorStrategy.ROLE and locator.value.lower() in NON_INTERACTIVE_ROLES:
        return IRPrimitive(PrimitiveType.EXPECT_VISIBLE, locator=locator)

    return IRPrimitive(PrimitiveType.CLICK, locator=locator)


def _quoted_values(text: str) -> List[str]:
    return QUOTED_VALUE_PATTERN.findall(text)


def apply_behavior_hints(primitive: IRPrimitive, hints: ExtractedHints) -> IRPrimitive:
    """Return a copy of ``primitive`` with timeout, signal and module hints applied."""
    behavior = hints.behavior
    changes: Dict[str, Any] = {}
    if behavior.timeout is not None:
        changes["timeout"] = behavior.timeout
    if behavior.signal:
        changes["signal"] = behavior.signal
    if behavior.module and primitive.type == PrimitiveType.CALL_MODULE:
        parsed = parse_module_hint(behavior.module)
        if parsed:
            changes.update(parsed)
    return replace(primitive, **changes) if changes else primitive


def _blocked(text: str, reason: str) -> IRPrimitive:
    return IRPrimitive(PrimitiveType.BLOCKED, reason=reason, source_text=text)


class StepMapper:
    """Maps step text to primitives using hints, fixed patterns and learned patterns."""

    def __init__(self, glossary: Optional[Glossary] = None,
                 store: Optional[LearnedPatternStore] = None,
                 options: Optional[StepMapperOptions] = None):
        self.glossary = glossary or default_glossary()
        self.store = store
        self.options = options or StepMapperOptions()

    def _match_pattern(self, processed: str, clean: str) -> Optional[Dict[str, Any]]:
        matched = match_pattern_with_name(processed)
        if matched is None and processed != clean:
            matched = match_pattern_with_name(clean)
        return matched

    def map_step_text(self, text: str, options: Optional[StepMapperOptions] = None) -> StepMappingResult:
        """Map a single line of step text.

        Never raises for unmappable text: the result then has no primitive,
        ``match_source`` none and a diagnostic message.
        """
        opts = options or self.options
        hints = extract_hints(text)
        clean = hints.clean_text if hints.has_hints else text
        processed = self.glossary.normalize_step_text(clean) if opts.normalize_text else clean

        warnings = list(hints.warnings)
        if hints.has_hints:
            validation = validate_hints(hints)
            warnings.extend(validation.errors + validation.warnings)

        # Tier 1: authored hints
        hint_locator = build_locator_from_hints(hints) if has_locator_hints(hints) else None
        hint_module = parse_module_hint(hints.behavior.module) if hints.behavior.module else None
        if hint_locator or hint_module:
            primitive, pattern_name = self._primitive_from_hints(processed, clean, hint_locator, hint_module)
            primitive = apply_behavior_hints(primitive, hints)
            logger.debug(f"Mapped '{text}' from hints to {primitive.type.value}")
            return StepMappingResult(
                primitive=primitive,
                source_text=text,
                is_assertion=primitive.is_assertion,
                match_source=MatchSource.HINTS,
                confidence=1.0,
                matched_pattern_name=pattern_name,
                warnings=warnings,
            )

        # Tier 2: fixed pattern library
        matched = self._match_pattern(processed, clean)
        if matched:
            primitive = apply_behavior_hints(matched["primitive"], hints)
            return StepMappingResult(
                primitive=primitive,
                source_text=text,
                is_assertion=primitive.is_assertion,
                match_source=MatchSource.PATTERN,
                confidence=1.0,
                matched_pattern_name=matched["name"],
                warnings=warnings,
            )

        # Tier 3: learned patterns
        if opts.use_llkb and self.store is not None:
            learned = self.store.match(clean, min_confidence=opts.llkb_min_confidence)
            if learned:
                primitive = apply_behavior_hints(copy.deepcopy(learned.mapped_primitive), hints)
                logger.debug(f"Mapped '{text}' from learned pattern {learned.id} "
                             f"(confidence {learned.confidence:.2f})")
                return StepMappingResult(
                    primitive=primitive,
                    source_text=text,
                    is_assertion=primitive.is_assertion,
                    match_source=MatchSource.LLKB,
                    confidence=learned.confidence,
                    matched_pattern_id=learned.id,
                    warnings=warnings,
                )

        logger.debug(f"Could not map step: '{text}'")
        return StepMappingResult(
            primitive=None,
            source_text=text,
            is_assertion=False,
            match_source=MatchSource.NONE,
            message=f'Could not map step: "{text}"',
            warnings=warnings,
        )

    def _primitive_from_hints(self, processed: str, clean: str, locator: Optional[LocatorSpec],
                              module: Optional[Dict[str, str]]):
        if locator is None:
            return IRPrimitive(PrimitiveType.CALL_MODULE, module=module["module"], method=module["method"]), None

        # A matching pattern decides the action, the hint decides the target if it has one
        matched = self._match_pattern(processed, clean)
        if matched:
            primitive = matched["primitive"]
            if primitive.accepts_locator:
                primitive = replace(primitive, locator=locator)
            return primitive, matched["name"]

        return create_primitive_from_hints(processed, locator), None

    def map_steps(self, steps: List[str], options: Optional[StepMapperOptions] = None) -> List[StepMappingResult]:
        return [self.map_step_text(step, options) for step in steps]

    def map_acceptance_criterion(self, ac: AcceptanceCriterion, procedural_steps: List[ProceduralStep],
                                 options: Optional[StepMapperOptions] = None) -> ACMappingResult:
        """Map every bullet of a criterion plus the procedural steps linked to it."""
        opts = options or self.options
        actions: List[IRPrimitive] = []
        assertions: List[IRPrimitive] = []
        mappings: List[StepMappingResult] = []
        notes: List[str] = []

        for step_text in ac.steps:
            result = self.map_step_text(step_text, opts)
            mappings.append(result)
            if result.primitive:
                (assertions if result.is_assertion else actions).append(result.primitive)
            elif opts.include_blocked:
                actions.append(_blocked(step_text, result.message or "Could not map step"))

        for ps in procedural_steps:
            if ps.linked_ac != ac.id or ps.text in ac.steps:
                continue
            result = self.map_step_text(ps.text, opts)
            if result.primitive:
                (assertions if result.is_assertion else actions).append(result.primitive)

        if not assertions and ac.title:
            notes.append(f"TODO: Add assertion for: {ac.title}")

        mapped = sum(1 for m in mappings if m.is_mapped)
        get_healing_logger("mapping", opts.journey_id).info(
            f"🗺️ MAPPING: {ac.id} mapped {mapped}/{len(mappings)} steps")

        return ACMappingResult(
            step=IRStep(
                id=ac.id,
                description=ac.title or f"Step {ac.id}",
                actions=actions,
                assertions=assertions,
                source_text=ac.raw_content,
                notes=notes,
            ),
            mappings=mappings,
            mapped_count=mapped,
            blocked_count=len(mappings) - mapped,
        )

    def map_procedural_step(self, ps: ProceduralStep,
                            options: Optional[StepMapperOptions] = None) -> ACMappingResult:
        opts = options or self.options
        result = self.map_step_text(ps.text, opts)
        actions: List[IRPrimitive] = []
        assertions: List[IRPrimitive] = []

        if result.primitive:
            (assertions if result.is_assertion else actions).append(result.primitive)
        elif opts.include_blocked:
            actions.append(_blocked(ps.text, result.message or "Could not map procedural step"))

        return ACMappingResult(
            step=IRStep(id=f"PS-{ps.number}", description=ps.text, actions=actions, assertions=assertions),
            mappings=[result],
            mapped_count=1 if result.is_mapped else 0,
            blocked_count=0 if result.is_mapped else 1,
        )

    # ------------------------------------------------------------------ learning loop

    def confirm_success(self, result: StepMappingResult,
                        journey_id: Optional[str] = None) -> Optional[LearnedPattern]:
        """Record that the test generated from a learned mapping passed.

        Only learned-pattern results with a known journey id are recorded.
        """
        journey_id = journey_id or self.options.journey_id
        if (result.match_source != MatchSource.LLKB or not result.matched_pattern_id
                or not journey_id or self.store is None):
            return None
        return self.store.record_success(result.matched_pattern_id, journey_id)

    def record_failure(self, result: StepMappingResult) -> Optional[LearnedPattern]:
        if result.match_source != MatchSource.LLKB or not result.matched_pattern_id or self.store is None:
            return None
        return self.store.record_failure(result.matched_pattern_id)

    def learn_from_mapping(self, source_text: str, primitive: IRPrimitive,
                           journey_id: Optional[str] = None) -> Optional[LearnedPattern]:
        """Teach the store a mapping confirmed outside the pattern library."""
        if self.store is None or not primitive.is_executable:
            return None
        clean = extract_hints(source_text).clean_text
        return self.store.learn(clean, primitive, journey_id or self.options.journey_id)


def get_mapping_stats(mappings: List[StepMappingResult]) -> Dict[str, Any]:
    mapped = [m for m in mappings if m.is_mapped]
    assertions = sum(1 for m in mapped if m.is_assertion)
    return {
        "total": len(mappings),
        "mapped": len(mapped),
        "blocked": len(mappings) - len(mapped),
        "actions": len(mapped) - assertions,
        "assertions": assertions,
        "mappingRate": len(mapped) / len(mappings) if mappings else 0,
    }


def suggest_improvements(blocked_steps: List[StepMappingResult]) -> List[str]:
    """Rewrite suggestions for steps that could not be mapped."""
    suggestions = []
    for step in blocked_steps:
        text = step.source_text.lower()
        if "go" in text or "open" in text or "navigate" in text:
            suggestions.append(f'"{step.source_text}" - Try: "User navigates to /path" or "User opens /path"')
        elif "click" in text or "press" in text or "button" in text:
            suggestions.append(f'"{step.source_text}" - Try: "User clicks \'Button Name\' button" '
                               f'or "Click the \'Label\' button"')
        elif "enter" in text or "type" in text or "field" in text:
            suggestions.append(f'"{step.source_text}" - Try: "User enters \'value\' in \'Field Label\' field"')
        elif "see" in text or "visible" in text or "display" in text:
            suggestions.append(f'"{step.source_text}" - Try: "User should see \'Text\'" or "\'Element\' is visible"')
        else:
            suggestions.append(f'"{step.source_text}" - Could not determine intent. '
                               f'Check the patterns documentation.')
    return suggestions
