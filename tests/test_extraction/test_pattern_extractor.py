from __future__ import annotations

from typing import List

import pytest

from msgnet.errors import ConfigError
from msgnet.extraction.entity_merger import ExtractionAccumulator
from msgnet.extraction.models import EntityType, ExtractionResult, RelationshipType
from msgnet.extraction.pattern_extractor import (
    PatternExtractor,
    classify_entity_type,
    classify_relationship_type,
    score_match,
)
from msgnet.ingestion import ContextWindow, TextNormalizer
from msgnet.utils.config import ExtractionConfig, TextProcessingConfig


def _windows(text: str, window_size: int = 3) -> List[ContextWindow]:
    config = TextProcessingConfig(window_size=window_size)
    return list(TextNormalizer(config).process(text).windows)


def _extract(text: str, config: ExtractionConfig | None = None, window_size: int = 3) -> ExtractionResult:
    extractor = PatternExtractor(config or ExtractionConfig())
    accumulator = ExtractionAccumulator()
    for window in _windows(text, window_size):
        extractor.extract_window(window, accumulator)
    return accumulator.to_result()


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Acme Corp", 0.75),
        ("New York City", 0.8),
        ("Alpha Beta Gamma Delta Epsilon Zeta", 0.9),
        ("NASA", 0.65),
        ("Alice", 0.6),
        ("user", 0.45),
    ],
)
def test_score_match_shapes(text: str, expected: float) -> None:
    assert score_match(text) == pytest.approx(expected)


@pytest.mark.parametrize(
    "text,category,preceding,expected",
    [
        ("Acme Corp", "entity", None, EntityType.ORGANIZATION),
        ("Stanford University", "entity", None, EntityType.ORGANIZATION),
        ("Web Summit", "entity", None, EntityType.EVENT),
        ("Pixel 8", "entity", None, EntityType.PRODUCT),
        ("Mississippi River", "entity", None, EntityType.PLACE),
        ("Paris", "entity", "in", EntityType.PLACE),
        ("workflow", "concept", None, EntityType.CONCEPT),
        ("Dr Smith", "entity", None, EntityType.PERSON),
        ("customer", "entity", None, EntityType.PERSON),
        ("Alice", "entity", None, EntityType.PERSON),
        ("blue", "entity", None, EntityType.ATTRIBUTE),
    ],
)
def test_classify_entity_type(
    text: str, category: str, preceding: str | None, expected: EntityType
) -> None:
    assert classify_entity_type(text, category, preceding) is expected


@pytest.mark.parametrize(
    "cue,expected",
    [
        ("is part of", RelationshipType.PART_OF),
        ("owns", RelationshipType.OWNS),
        ("has", RelationshipType.HAS),
        ("contains", RelationshipType.CONTAINS),
        ("is connected to", RelationshipType.CONNECTED_TO),
        ("depends on", RelationshipType.DEPENDENCY),
        ("manages", RelationshipType.HIERARCHICAL),
        ("is", RelationshipType.IS_A),
        ("this thing", RelationshipType.RELATED_TO),
    ],
)
def test_classify_relationship_type(cue: str, expected: RelationshipType) -> None:
    assert classify_relationship_type(cue) is expected


def test_invalid_pattern_raises_config_error() -> None:
    with pytest.raises(ConfigError, match="relationship_patterns"):
        PatternExtractor(ExtractionConfig(relationship_patterns=["(unclosed"]))


def test_entities_use_normalized_surface_and_spans() -> None:
    text = "Alice works at Acme Corp."
    result = _extract(text)

    by_text = {e.text: e for e in result.entities}
    assert set(by_text) == {"Alice", "Acme Corp"}

    acme = by_text["Acme Corp"]
    assert acme.entity_type is EntityType.ORGANIZATION
    assert acme.confidence == pytest.approx(0.75)
    assert acme.span is not None
    assert text[acme.span.start : acme.span.end] == "Acme Corp"
    assert by_text["Alice"].entity_type is EntityType.PERSON


def test_locative_preposition_is_read_from_original_text() -> None:
    result = _extract("Bob lives in Paris.")

    types = {e.text: e.entity_type for e in result.entities}
    assert types["Paris"] is EntityType.PLACE
    assert types["Bob"] is EntityType.PERSON


def test_relationship_cue_between_mentions() -> None:
    result = _extract("Alice owns Acme Corp.")

    assert len(result.relationships) == 1
    rel = result.relationships[0]
    ids = {e.text: e.id for e in result.entities}
    assert rel.source_id == ids["Alice"]
    assert rel.target_id == ids["Acme Corp"]
    assert rel.relationship_type is RelationshipType.OWNS
    assert rel.label == "owns"
    assert rel.confidence == pytest.approx(0.7)


def test_entities_never_span_removed_stopwords() -> None:
    text = "Acme Corp has a Billing Server."
    result = _extract(text)

    assert {e.text for e in result.entities} == {"Acme Corp", "Billing Server"}
    server = next(e for e in result.entities if e.text == "Billing Server")
    assert text[server.span.start : server.span.end] == "Billing Server"

    assert len(result.relationships) == 1
    rel = result.relationships[0]
    assert rel.relationship_type is RelationshipType.HAS
    assert rel.confidence == pytest.approx(0.7)


def test_long_gap_lowers_relationship_confidence() -> None:
    result = _extract("Alice quietly and very carefully owns Acme Corp.")

    assert len(result.relationships) == 1
    assert result.relationships[0].confidence == pytest.approx(0.55)


def test_no_relationship_without_cue() -> None:
    result = _extract("Alice visited Acme Corp.")

    assert result.relationships == []


def test_relationships_stay_within_one_sentence() -> None:
    result = _extract("Alice is here. Bob is there.")

    assert result.relationships == []


def test_concepts_link_window_entities() -> None:
    result = _extract("Alice designed the workflow.")

    assert [c.label for c in result.concepts] == ["workflow"]
    concept = result.concepts[0]
    alice = next(e for e in result.entities if e.text == "Alice")
    assert concept.related_entity_ids == [alice.id]
    assert concept.confidence == pytest.approx(0.45)


def test_overlapping_windows_do_not_double_count() -> None:
    text = "Alice owns Acme Corp. Bob joined Acme Corp. Carol left."

    result = _extract(text, window_size=2)

    acme = next(e for e in result.entities if e.text == "Acme Corp")
    assert acme.occurrences == 2
    assert acme.span is not None and acme.span.sentence_index == 0


def test_custom_patterns_are_used() -> None:
    config = ExtractionConfig(
        entity_patterns=[r"\b[a-z]+bot\b"],
        relationship_patterns=[r"\bmanages\b"],
        concept_patterns=[],
    )

    result = _extract("The helperbot manages the cleanerbot.", config)

    assert {e.text for e in result.entities} == {"helperbot", "cleanerbot"}
    assert result.relationships[0].relationship_type is RelationshipType.HIERARCHICAL
