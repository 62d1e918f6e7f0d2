"""Extraction phases and the runner that chains them.

Each phase is a pure function ``(ExtractionResult, PhaseContext) ->
(ExtractionResult, warnings)``. A phase starts from the result so far and only
adds to it through an ExtractionAccumulator, so the final result is the
deduplicated union of every phase that ran.

Phases, in order:
1. base: pattern pass plus the optional LLM pass
2. inference: temporal/hierarchical/functional/dependency relationships
3. enhancement: description, role, domain and context attributes
4. concept_mapping: concept -> entity ``relates_to`` links from co-occurrence

Standard mode runs only ``base``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from msgnet.errors import ConfigError, LlmError, MsgNetError
from msgnet.extraction.cooccurrence import count_concept_cooccurrence, find_mentions
from msgnet.extraction.entity_merger import ExtractionAccumulator
from msgnet.extraction.llm_extractor import LLMExtractor, LlmExtraction, LlmRelationship
from msgnet.extraction.models import (
    Entity,
    ExtractionResult,
    ExtractionWarning,
    RelationshipType,
    normalize_name,
)
from msgnet.extraction.pattern_extractor import DEEP_INFERENCE_CONFIDENCE, PatternExtractor
from msgnet.ingestion.text_normalizer import ContextWindow
from msgnet.utils.config import ExtractionConfig

LLM_TRUST_FACTOR = 0.8
CONCEPT_LINK_CONFIDENCE = 0.6
CONCEPT_LINK_LABEL = "relates-to"

ROLE_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    ("manager", "management_role"),
    ("developer", "technical_role"),
    ("customer", "business_role"),
    ("user", "user_role"),
    ("system", "system_component"),
    ("process", "business_process"),
)

DOMAIN_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    ("database", "data_management"),
    ("server", "infrastructure"),
    ("application", "software"),
    ("network", "networking"),
    ("security", "cybersecurity"),
)


@dataclass(frozen=True)
class PhaseContext:
    """Read-only inputs shared by every phase of one run."""

    windows: Tuple[ContextWindow, ...]
    patterns: PatternExtractor
    config: ExtractionConfig
    llm: Optional[LLMExtractor] = None


PhaseFn = Callable[[ExtractionResult, PhaseContext], Tuple[ExtractionResult, List[ExtractionWarning]]]


@dataclass(frozen=True)
class Phase:
    name: str
    run: PhaseFn


# -----------------------
# LLM merging
# -----------------------
def _resolve(name: str, by_name: Dict[str, Entity]) -> Optional[str]:
    entity = by_name.get(normalize_name(name))
    return entity.id if entity else None


def merge_llm_extraction(
    accumulator: ExtractionAccumulator,
    extraction: LlmExtraction,
    window: ContextWindow,
) -> None:
    """Fold one parsed LLM response into the accumulator at the LLM trust level."""
    for item in extraction.entities:
        accumulator.add_entity(
            item.name,
            item.entity_type,
            item.confidence * LLM_TRUST_FACTOR,
            source="llm",
        )

    by_name = ExtractionResult(entities=accumulator.entities).entities_by_name()
    merge_llm_relationships(accumulator, extraction.relationships, by_name, phase="base")

    if extraction.concepts:
        present = {m.node_id for m in find_mentions(window, accumulator.entities)}
        for item in extraction.concepts:
            accumulator.add_concept(
                item.name,
                item.confidence * LLM_TRUST_FACTOR,
                related_entity_ids=present,
            )


def merge_llm_relationships(
    accumulator: ExtractionAccumulator,
    relationships: Iterable[LlmRelationship],
    by_name: Dict[str, Entity],
    *,
    phase: str,
    cap: Optional[float] = None,
) -> int:
    added = 0
    for item in relationships:
        source_id = _resolve(item.source, by_name)
        target_id = _resolve(item.target, by_name)
        if source_id is None or target_id is None or source_id == target_id:
            logger.debug(
                "Dropping LLM relationship with unknown endpoint",
                source=item.source,
                target=item.target,
            )
            continue
        confidence = item.confidence * LLM_TRUST_FACTOR
        if cap is not None:
            confidence = min(confidence, cap)
        accumulator.add_relationship(
            source_id,
            target_id,
            item.label,
            item.relationship_type,
            confidence,
            phase=phase,
        )
        added += 1
    return added


# -----------------------
# Phases
# -----------------------
def base_phase(
    result: ExtractionResult, context: PhaseContext
) -> Tuple[ExtractionResult, List[ExtractionWarning]]:
    """Pattern pass over every window, plus one LLM request per window when enabled."""
    accumulator = ExtractionAccumulator(result)
    warnings: List[ExtractionWarning] = []

    for window in context.windows:
        mentions = context.patterns.extract_window(window, accumulator)
        if context.llm is None:
            continue

        window_ids = {m.node_id for m in mentions}
        known = [e for e in accumulator.entities if e.id in window_ids]
        try:
            extraction = context.llm.extract(window, known)
        except LlmError as exc:
            logger.warning(
                "LLM extraction failed; keeping pattern results",
                window=window.index,
                error=str(exc),
            )
            warnings.append(
                ExtractionWarning(stage="base", message=str(exc), window_index=window.index)
            )
            continue
        merge_llm_extraction(accumulator, extraction, window)

    return accumulator.to_result(), warnings


def inference_phase(
    result: ExtractionResult, context: PhaseContext
) -> Tuple[ExtractionResult, List[ExtractionWarning]]:
    """Deep relationship inference between already-known entities."""
    accumulator = ExtractionAccumulator(result)
    warnings: List[ExtractionWarning] = []
    by_name = result.entities_by_name()

    for window in context.windows:
        mentions = find_mentions(window, result.entities)
        context.patterns.infer_relationships(window, mentions, accumulator)

        if context.llm is None:
            continue
        window_ids = {m.node_id for m in mentions}
        if len(window_ids) < 2:
            continue
        known = [e for e in result.entities if e.id in window_ids]
        try:
            inferred = context.llm.infer_relationships(window, known)
        except LlmError as exc:
            logger.warning("LLM relationship inference failed", window=window.index, error=str(exc))
            warnings.append(
                ExtractionWarning(stage="inference", message=str(exc), window_index=window.index)
            )
            continue
        merge_llm_relationships(
            accumulator, inferred, by_name, phase="inference", cap=DEEP_INFERENCE_CONFIDENCE
        )

    return accumulator.to_result(), warnings


def describe_entity(name: str, text: str) -> Optional[str]:
    """Find an appositive description: "X, a/an/the Y" or "a/an/the Y X"."""
    escaped = r"\s+".join(re.escape(word) for word in name.split())
    patterns = (
        rf"(?<!\w){escaped},?\s+(?:a|an|the)\s+([^,.;!?]+)",
        rf"\b(?:a|an|the)\s+([^,.;!?\s]+)\s+{escaped}(?!\w)",
    )
    for pattern in patterns:
        match = re.search(pattern, text, flags=re.IGNORECASE)
        if match:
            description = " ".join(match.group(1).split())
            if description:
                return description
    return None


def entity_role(name: str, text: str) -> Optional[str]:
    lowered = " ".join(text.lower().split())
    name = normalize_name(name)
    for keyword, role in ROLE_KEYWORDS:
        if f"{name} {keyword}" in lowered or f"{keyword} {name}" in lowered:
            return role
    return None


def entity_domain(text: str) -> Optional[str]:
    lowered = text.lower()
    for keyword, domain in DOMAIN_KEYWORDS:
        if re.search(rf"\b{keyword}s?\b", lowered):
            return domain
    return None


def enhancement_phase(
    result: ExtractionResult, context: PhaseContext
) -> Tuple[ExtractionResult, List[ExtractionWarning]]:
    """Attach contextual attributes to existing entities. Never creates entities."""
    windows_by_entity: Dict[str, List[ContextWindow]] = {}
    for window in context.windows:
        for entity_id in {m.node_id for m in find_mentions(window, result.entities)}:
            windows_by_entity.setdefault(entity_id, []).append(window)

    enhanced = result.model_copy(deep=True)
    for entity in enhanced.entities:
        windows = windows_by_entity.get(entity.id)
        if not windows:
            continue
        text = " ".join(w.original_text for w in windows)
        found = {
            "description": describe_entity(entity.text, text),
            "role": entity_role(entity.text, text),
            "domain": entity_domain(text),
        }
        for key, value in found.items():
            if value is not None:
                entity.attributes.setdefault(key, value)
        entity.attributes["context_windows"] = ",".join(str(w.index) for w in windows)

    return enhanced, []


def concept_mapping_phase(
    result: ExtractionResult, context: PhaseContext
) -> Tuple[ExtractionResult, List[ExtractionWarning]]:
    """Link concepts to the entities they co-occur with often enough."""
    accumulator = ExtractionAccumulator(result)
    counts = count_concept_cooccurrence(result.concepts, context.windows, result.entities)
    concepts = {c.id: c for c in result.concepts}

    for (concept_id, entity_id), count in sorted(counts.items()):
        if count < context.config.min_cooccurrence:
            continue
        accumulator.add_relationship(
            concept_id,
            entity_id,
            CONCEPT_LINK_LABEL,
            RelationshipType.RELATES_TO,
            CONCEPT_LINK_CONFIDENCE,
            phase="concept_mapping",
        )
        link = concepts[concept_id].model_copy(
            update={"occurrences": 0, "related_entity_ids": [entity_id]}
        )
        accumulator.merge_concept(link)

    return accumulator.to_result(), []


BASE_PHASE = Phase("base", base_phase)
DEEP_PHASES: Tuple[Phase, ...] = (
    BASE_PHASE,
    Phase("inference", inference_phase),
    Phase("enhancement", enhancement_phase),
    Phase("concept_mapping", concept_mapping_phase),
)


def run_phases(
    phases: Sequence[Phase],
    context: PhaseContext,
    *,
    skip: Iterable[str] = (),
    result: Optional[ExtractionResult] = None,
) -> Tuple[ExtractionResult, List[ExtractionWarning]]:
    """Run ``phases`` in order, skipping names in ``skip``.

    A phase that raises LlmError (or any MsgNetError other than ConfigError)
    is recorded as a warning and skipped; the next phase receives the result
    so far.

    Raises:
        ConfigError: Propagated unchanged from any phase
    """
    skipped = set(skip)
    current = result or ExtractionResult()
    warnings: List[ExtractionWarning] = []

    for phase in phases:
        if phase.name in skipped:
            logger.info(f"Skipping extraction phase: {phase.name}")
            continue

        try:
            phase_result, phase_warnings = phase.run(current, context)
        except ConfigError:
            raise
        except MsgNetError as exc:
            logger.warning(f"Extraction phase '{phase.name}' failed; skipping", error=str(exc))
            warnings.append(ExtractionWarning(stage=phase.name, message=str(exc)))
            continue

        warnings.extend(phase_warnings)
        current = phase_result
        logger.debug(
            f"Phase '{phase.name}' complete",
            entities=len(current.entities),
            relationships=len(current.relationships),
            concepts=len(current.concepts),
        )

    return current, warnings
