"""Entity, relationship and concept extraction."""

from msgnet.extraction.entity_merger import ExtractionAccumulator
from msgnet.extraction.extractor import Extractor
from msgnet.extraction.models import (
    ConceptNode,
    Entity,
    EntityType,
    ExtractionMode,
    ExtractionResult,
    ExtractionWarning,
    Relationship,
    RelationshipType,
    TextSpan,
)

__all__ = [
    "ConceptNode",
    "Entity",
    "EntityType",
    "ExtractionAccumulator",
    "ExtractionMode",
    "ExtractionResult",
    "ExtractionWarning",
    "Extractor",
    "Relationship",
    "RelationshipType",
    "TextSpan",
]
