from __future__ import annotations

from pytest import approx

from msgnet.extraction.entity_merger import ExtractionAccumulator
from msgnet.extraction.models import (
    Entity,
    EntityType,
    ExtractionResult,
    RelationshipType,
    TextSpan,
    make_entity_id,
)


def _span(start: int, end: int, sentence: int = 0) -> TextSpan:
    return TextSpan(start=start, end=end, sentence_index=sentence)


def _entity(
    text: str,
    confidence: float,
    start: int,
    attributes: dict[str, str] | None = None,
) -> Entity:
    normalized = text.lower()
    return Entity(
        id=make_entity_id(EntityType.PERSON, normalized),
        text=text,
        normalized=normalized,
        entity_type=EntityType.PERSON,
        confidence=confidence,
        span=_span(start, start + len(text)),
        attributes=attributes or {},
        sources=["pattern"],
    )


def _summary(result: ExtractionResult) -> list[tuple]:
    return sorted(
        (e.id, e.text, e.confidence, e.occurrences, e.span, tuple(sorted(e.attributes.items())))
        for e in result.entities
    )


def test_same_name_and_type_collapse_to_one_entity() -> None:
    acc = ExtractionAccumulator()
    first = acc.add_entity("Alice", EntityType.PERSON, 0.6, span=_span(10, 15))
    second = acc.add_entity("alice", EntityType.PERSON, 0.8, span=_span(0, 5))

    assert first is not None and second is not None
    result = acc.to_result()
    assert len(result.entities) == 1
    entity = result.entities[0]
    assert entity.confidence == approx(0.8)
    assert entity.occurrences == 2
    # Earliest span and its surface text win.
    assert entity.span == _span(0, 5)
    assert entity.text == "alice"


def test_same_name_different_type_stays_separate() -> None:
    acc = ExtractionAccumulator()
    acc.add_entity("Jordan", EntityType.PERSON, 0.6)
    acc.add_entity("Jordan", EntityType.PLACE, 0.6)

    result = acc.to_result()
    assert {e.entity_type for e in result.entities} == {EntityType.PERSON, EntityType.PLACE}


def test_short_names_are_rejected() -> None:
    acc = ExtractionAccumulator()
    assert acc.add_entity("A", EntityType.PERSON, 0.9) is None
    assert acc.add_concept("ai", 0.9) is None
    assert acc.to_result().entities == []


def test_confidence_is_clamped() -> None:
    acc = ExtractionAccumulator()
    entity = acc.add_entity("Overconfident", EntityType.PERSON, 1.7)
    assert entity is not None
    assert entity.confidence == 1.0


def test_repeated_span_counts_once() -> None:
    acc = ExtractionAccumulator()
    acc.add_entity("Alice", EntityType.PERSON, 0.6, span=_span(0, 5))
    acc.add_entity("Alice", EntityType.PERSON, 0.6, span=_span(0, 5))
    acc.add_entity("Alice", EntityType.PERSON, 0.6, span=_span(20, 25))

    assert acc.to_result().entities[0].occurrences == 2


def test_merge_is_order_independent() -> None:
    observations = [
        _entity("Alice", 0.6, 30, {"role": "engineer"}),
        _entity("Alice", 0.9, 50, {"role": "manager"}),
        _entity("Alice", 0.7, 5),
        _entity("Bob", 0.5, 12, {"domain": "finance"}),
    ]

    forward = ExtractionAccumulator()
    for entity in observations:
        forward.merge_entity(entity)

    backward = ExtractionAccumulator()
    for entity in reversed(observations):
        backward.merge_entity(entity)

    assert _summary(forward.to_result()) == _summary(backward.to_result())
    alice = next(e for e in forward.to_result().entities if e.normalized == "alice")
    assert alice.attributes == {"role": "manager"}
    assert alice.span == _span(5, 10)
    assert alice.occurrences == 3


def test_attribute_tie_keeps_smaller_value() -> None:
    acc = ExtractionAccumulator()
    acc.merge_entity(_entity("Alice", 0.6, 0, {"role": "tester"}))
    acc.merge_entity(_entity("Alice", 0.6, 9, {"role": "engineer"}))

    assert acc.to_result().entities[0].attributes == {"role": "engineer"}


def test_relationship_keeps_best_label() -> None:
    acc = ExtractionAccumulator()
    a = acc.add_entity("Alice", EntityType.PERSON, 0.6)
    b = acc.add_entity("Acme Corp", EntityType.ORGANIZATION, 0.75)
    assert a is not None and b is not None

    acc.add_relationship(a.id, b.id, "owns", RelationshipType.OWNS, 0.55)
    acc.add_relationship(a.id, b.id, "owned", RelationshipType.OWNS, 0.7, phase="llm")

    result = acc.to_result()
    assert len(result.relationships) == 1
    rel = result.relationships[0]
    assert rel.label == "owned"
    assert rel.confidence == approx(0.7)
    assert rel.phase == "llm"


def test_relationship_types_are_kept_apart() -> None:
    acc = ExtractionAccumulator()
    a = acc.add_entity("Alice", EntityType.PERSON, 0.6)
    b = acc.add_entity("Bob", EntityType.PERSON, 0.6)
    assert a is not None and b is not None

    acc.add_relationship(a.id, b.id, "manages", RelationshipType.HIERARCHICAL, 0.5)
    acc.add_relationship(a.id, b.id, "has", RelationshipType.HAS, 0.7)

    assert len(acc.to_result().relationships) == 2


def test_dangling_relationship_is_dropped() -> None:
    acc = ExtractionAccumulator()
    a = acc.add_entity("Alice", EntityType.PERSON, 0.6)
    assert a is not None
    acc.add_relationship(a.id, "ent_person_missing", "knows", RelationshipType.RELATED_TO, 0.6)

    assert acc.to_result().relationships == []


def test_concepts_union_related_entities() -> None:
    acc = ExtractionAccumulator()
    acc.add_concept("workflow", 0.45, related_entity_ids=["b", "a"], span=_span(0, 8))
    acc.add_concept("Workflow", 0.6, related_entity_ids=["c"], span=_span(40, 48))
    # Same span again, as seen from an overlapping window.
    acc.add_concept("workflow", 0.45, related_entity_ids=["d"], span=_span(0, 8))

    concepts = acc.to_result().concepts
    assert len(concepts) == 1
    concept = concepts[0]
    assert concept.occurrences == 2
    assert concept.confidence == approx(0.6)
    assert concept.related_entity_ids == ["a", "b", "c", "d"]


def test_seeding_from_existing_result() -> None:
    acc = ExtractionAccumulator()
    acc.add_entity("Alice", EntityType.PERSON, 0.6)
    seeded = ExtractionAccumulator(acc.to_result())
    seeded.add_entity("Alice", EntityType.PERSON, 0.8)

    result = seeded.to_result()
    assert len(result.entities) == 1
    assert result.entities[0].occurrences == 2
    assert seeded.has_node(result.entities[0].id)
    assert not seeded.has_node("cpt_unknown")
