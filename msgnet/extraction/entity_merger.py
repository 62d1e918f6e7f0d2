"""Deduplicating accumulator for extraction results.

Identity rules:
- Entities collapse on ``(normalized, entity_type)``.
- Relationships collapse on ``(source_id, target_id, relationship_type)``.
- Concepts collapse on ``normalized``.

Combination rules:
- Confidence is the maximum observed value, clamped to [0, 1].
- Occurrence counts add up.
- The earliest span (and the surface text found there) is kept.
- Attribute conflicts go to the higher-confidence observation; ties keep the
  lexicographically smaller value.

Every rule is commutative and associative, so merging window results in any
order yields the same ExtractionResult.
"""

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Tuple

from loguru import logger

from msgnet.extraction.models import (
    ConceptNode,
    Entity,
    EntityType,
    ExtractionResult,
    Relationship,
    RelationshipType,
    TextSpan,
    clamp_confidence,
    make_concept_id,
    make_entity_id,
    make_relationship_id,
    normalize_name,
)

EntityKey = Tuple[str, EntityType]
RelationshipKey = Tuple[str, str, RelationshipType]


class ExtractionAccumulator:
    """Owns the in-progress ExtractionResult during one extraction run."""

    def __init__(self, result: Optional[ExtractionResult] = None) -> None:
        self._entities: Dict[EntityKey, Entity] = {}
        self._relationships: Dict[RelationshipKey, Relationship] = {}
        self._concepts: Dict[str, ConceptNode] = {}
        # Overlapping windows see the same span more than once.
        self._seen_spans: set[Tuple[str, int, int]] = set()
        if result is not None:
            self.merge_result(result)

    # -----------------------
    # Builders
    # -----------------------
    def add_entity(
        self,
        text: str,
        entity_type: EntityType,
        confidence: float,
        *,
        span: Optional[TextSpan] = None,
        attributes: Optional[Mapping[str, str]] = None,
        source: str = "pattern",
    ) -> Optional[Entity]:
        """Record one entity observation and return the merged entity."""
        surface = " ".join(text.split())
        normalized = normalize_name(surface)
        if len(normalized) < 2:
            return None

        entity_id = make_entity_id(entity_type, normalized)
        if span is not None:
            seen = (entity_id, span.start, span.end)
            if seen in self._seen_spans:
                return self._entities[(normalized, entity_type)]
            self._seen_spans.add(seen)

        entity = Entity(
            id=entity_id,
            text=surface,
            normalized=normalized,
            entity_type=entity_type,
            confidence=clamp_confidence(confidence),
            occurrences=1,
            span=span,
            attributes=dict(attributes or {}),
            sources=[source],
        )
        return self.merge_entity(entity)

    def add_relationship(
        self,
        source_id: str,
        target_id: str,
        label: str,
        relationship_type: RelationshipType,
        confidence: float,
        *,
        phase: str = "base",
    ) -> Relationship:
        relationship = Relationship(
            id=make_relationship_id(source_id, target_id, relationship_type),
            source_id=source_id,
            target_id=target_id,
            label=label,
            relationship_type=relationship_type,
            confidence=clamp_confidence(confidence),
            phase=phase,
        )
        return self.merge_relationship(relationship)

    def add_concept(
        self,
        label: str,
        confidence: float,
        *,
        related_entity_ids: Iterable[str] = (),
        span: Optional[TextSpan] = None,
    ) -> Optional[ConceptNode]:
        surface = " ".join(label.split())
        normalized = normalize_name(surface)
        if len(normalized) < 3:
            return None

        concept_id = make_concept_id(normalized)
        if span is not None:
            seen = (concept_id, span.start, span.end)
            if seen in self._seen_spans:
                existing = self._concepts[normalized]
                existing.related_entity_ids = sorted(
                    set(existing.related_entity_ids) | set(related_entity_ids)
                )
                return existing
            self._seen_spans.add(seen)

        concept = ConceptNode(
            id=concept_id,
            label=surface,
            normalized=normalized,
            confidence=clamp_confidence(confidence),
            occurrences=1,
            related_entity_ids=sorted(set(related_entity_ids)),
        )
        return self.merge_concept(concept)

    # -----------------------
    # Merging
    # -----------------------
    def merge_entity(self, incoming: Entity) -> Entity:
        key = (incoming.normalized, incoming.entity_type)
        existing = self._entities.get(key)
        if existing is None:
            merged = incoming.model_copy(deep=True)
            merged.confidence = clamp_confidence(merged.confidence)
            merged.sources = sorted(set(merged.sources))
            self._entities[key] = merged
            return merged

        if _span_before(incoming.span, existing.span):
            existing.span = incoming.span
            existing.text = incoming.text

        existing.attributes = _merge_attributes(
            existing.attributes, existing.confidence, incoming.attributes, incoming.confidence
        )
        existing.confidence = max(existing.confidence, clamp_confidence(incoming.confidence))
        existing.occurrences += incoming.occurrences
        existing.sources = sorted(set(existing.sources) | set(incoming.sources))
        return existing

    def merge_relationship(self, incoming: Relationship) -> Relationship:
        key = (incoming.source_id, incoming.target_id, incoming.relationship_type)
        existing = self._relationships.get(key)
        if existing is None:
            merged = incoming.model_copy(deep=True)
            merged.confidence = clamp_confidence(merged.confidence)
            self._relationships[key] = merged
            return merged

        confidence = clamp_confidence(incoming.confidence)
        if confidence > existing.confidence or (
            confidence == existing.confidence and incoming.label < existing.label
        ):
            existing.label = incoming.label
            existing.phase = incoming.phase
        existing.confidence = max(existing.confidence, confidence)
        return existing

    def merge_concept(self, incoming: ConceptNode) -> ConceptNode:
        existing = self._concepts.get(incoming.normalized)
        if existing is None:
            merged = incoming.model_copy(deep=True)
            merged.confidence = clamp_confidence(merged.confidence)
            merged.related_entity_ids = sorted(set(merged.related_entity_ids))
            self._concepts[incoming.normalized] = merged
            return merged

        existing.confidence = max(existing.confidence, clamp_confidence(incoming.confidence))
        existing.occurrences += incoming.occurrences
        existing.related_entity_ids = sorted(
            set(existing.related_entity_ids) | set(incoming.related_entity_ids)
        )
        return existing

    def merge_result(self, result: ExtractionResult) -> None:
        for entity in result.entities:
            self.merge_entity(entity)
        for concept in result.concepts:
            self.merge_concept(concept)
        for relationship in result.relationships:
            self.merge_relationship(relationship)

    # -----------------------
    # Lookups
    # -----------------------
    @property
    def entities(self) -> list[Entity]:
        return list(self._entities.values())

    @property
    def concepts(self) -> list[ConceptNode]:
        return list(self._concepts.values())

    def has_node(self, node_id: str) -> bool:
        return any(e.id == node_id for e in self._entities.values()) or any(
            c.id == node_id for c in self._concepts.values()
        )

    def to_result(self) -> ExtractionResult:
        """Freeze the accumulated state into an ExtractionResult."""
        node_ids = {e.id for e in self._entities.values()} | {
            c.id for c in self._concepts.values()
        }
        relationships = []
        for rel in self._relationships.values():
            if rel.source_id not in node_ids or rel.target_id not in node_ids:
                logger.warning(
                    "Dropping relationship with unknown endpoint",
                    relationship_id=rel.id,
                    source_id=rel.source_id,
                    target_id=rel.target_id,
                )
                continue
            relationships.append(rel.model_copy(deep=True))

        return ExtractionResult(
            entities=[e.model_copy(deep=True) for e in self._entities.values()],
            relationships=relationships,
            concepts=[c.model_copy(deep=True) for c in self._concepts.values()],
        )


def _span_before(candidate: Optional[TextSpan], current: Optional[TextSpan]) -> bool:
    if candidate is None:
        return False
    if current is None:
        return True
    return (candidate.start, candidate.end) < (current.start, current.end)


def _merge_attributes(
    current: Mapping[str, str],
    current_confidence: float,
    incoming: Mapping[str, str],
    incoming_confidence: float,
) -> Dict[str, str]:
    merged = dict(current)
    for key, value in incoming.items():
        existing = merged.get(key)
        if existing is None or existing == value:
            merged[key] = value
        elif incoming_confidence > current_confidence:
            merged[key] = value
        elif incoming_confidence == current_confidence:
            merged[key] = min(existing, value)
    return merged
