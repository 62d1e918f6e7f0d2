"""Shared data models for extraction modules."""

from __future__ import annotations

import hashlib
import re
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class EntityType(str, Enum):
    """Closed set of entity (and graph node) types."""

    PERSON = "person"
    PLACE = "place"
    ORGANIZATION = "organization"
    EVENT = "event"
    PRODUCT = "product"
    CONCEPT = "concept"
    ATTRIBUTE = "attribute"


class RelationshipType(str, Enum):
    """Closed set of relationship (and graph edge) types."""

    HAS = "has"
    IS_A = "is_a"
    PART_OF = "part_of"
    CONTAINS = "contains"
    OWNS = "owns"
    CONNECTED_TO = "connected_to"
    RELATED_TO = "related_to"
    USES = "uses"
    CREATES = "creates"
    INFLUENCES = "influences"
    TEMPORAL = "temporal"
    HIERARCHICAL = "hierarchical"
    FUNCTIONAL = "functional"
    DEPENDENCY = "dependency"
    RELATES_TO = "relates_to"


class ExtractionMode(str, Enum):
    STANDARD = "standard"
    DEEP = "deep"


class TextSpan(BaseModel):
    """Absolute offsets into the normalized text."""

    model_config = ConfigDict(frozen=True)

    start: int
    end: int
    sentence_index: int


class Entity(BaseModel):
    """Structured representation of an extracted entity."""

    model_config = ConfigDict(extra="forbid")

    id: str
    text: str
    normalized: str
    entity_type: EntityType
    confidence: float = 0.0
    occurrences: int = 1
    span: Optional[TextSpan] = None
    attributes: Dict[str, str] = Field(default_factory=dict)
    sources: List[str] = Field(default_factory=list)


class Relationship(BaseModel):
    """Structured representation of an extracted relationship."""

    model_config = ConfigDict(extra="forbid")

    id: str
    source_id: str
    target_id: str
    label: str
    relationship_type: RelationshipType
    confidence: float = 0.0
    phase: str = "base"


class ConceptNode(BaseModel):
    """Abstract idea/theme linked to the entities it co-occurs with."""

    model_config = ConfigDict(extra="forbid")

    id: str
    label: str
    normalized: str
    confidence: float = 0.0
    occurrences: int = 1
    related_entity_ids: List[str] = Field(default_factory=list)


class ExtractionResult(BaseModel):
    """Deduplicated union of entities, relationships and concepts."""

    model_config = ConfigDict(extra="forbid")

    entities: List[Entity] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)
    concepts: List[ConceptNode] = Field(default_factory=list)

    def node_ids(self) -> set[str]:
        return {e.id for e in self.entities} | {c.id for c in self.concepts}

    def entities_by_name(self) -> Dict[str, Entity]:
        """Map normalized name -> highest-confidence entity carrying it."""
        by_name: Dict[str, Entity] = {}
        for entity in self.entities:
            current = by_name.get(entity.normalized)
            if current is None or entity.confidence > current.confidence:
                by_name[entity.normalized] = entity
        return by_name


class ExtractionWarning(BaseModel):
    """Recoverable problem recorded during extraction."""

    model_config = ConfigDict(frozen=True)

    stage: str
    message: str
    window_index: Optional[int] = None


_SLUG = re.compile(r"[^a-z0-9]+")


def normalize_name(text: str) -> str:
    """Identity form of a surface string: collapsed whitespace, lowercase, trimmed punctuation."""
    collapsed = " ".join(text.split())
    return collapsed.strip(".,;:!?\"'()[]").lower()


def _key(*parts: str) -> str:
    digest = hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()[:10]
    slug = _SLUG.sub("_", parts[-1].lower()).strip("_")[:40] or "x"
    return f"{slug}_{digest}"


def make_entity_id(entity_type: EntityType, normalized: str) -> str:
    return f"ent_{entity_type.value}_{_key('entity', entity_type.value, normalized)}"


def make_concept_id(normalized: str) -> str:
    return f"cpt_{_key('concept', normalized)}"


def make_relationship_id(
    source_id: str, target_id: str, relationship_type: RelationshipType
) -> str:
    digest = hashlib.sha1(
        f"{source_id}|{relationship_type.value}|{target_id}".encode("utf-8")
    ).hexdigest()[:16]
    return f"rel_{digest}"


def clamp_confidence(value: float) -> float:
    return max(0.0, min(float(value), 1.0))
