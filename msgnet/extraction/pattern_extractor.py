"""Regex-based entity, relationship and concept extractor.

Entity and concept patterns scan a window's working text (stopwords removed).
Relationship patterns scan the original text between two entity mentions in
the same sentence, because relational cues are mostly function words.
"""

from __future__ import annotations

import re
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from loguru import logger

from msgnet.errors import ConfigError
from msgnet.extraction.cooccurrence import Mention, gap_text, mention_pairs
from msgnet.extraction.entity_merger import ExtractionAccumulator
from msgnet.extraction.models import EntityType, RelationshipType, TextSpan
from msgnet.ingestion.text_normalizer import ContextWindow, Sentence
from msgnet.utils.config import ExtractionConfig

DEEP_INFERENCE_CONFIDENCE = 0.5

ORGANIZATION_SUFFIXES = frozenset(
    {"corp", "corporation", "inc", "incorporated", "ltd", "llc", "plc", "gmbh", "co", "company"}
)
ORGANIZATION_KEYWORDS = frozenset(
    {
        "agency", "association", "bank", "committee", "council", "department", "foundation",
        "group", "institute", "labs", "ministry", "organization", "organisation", "university",
    }
)
EVENT_KEYWORDS = frozenset(
    {
        "ceremony", "championship", "conference", "election", "expo", "festival", "launch",
        "meeting", "olympics", "revolution", "summit", "tournament", "war", "workshop",
    }
)
PRODUCT_KEYWORDS = frozenset(
    {
        "app", "application", "database", "device", "edition", "engine", "framework", "library",
        "phone", "platform", "server", "software", "tool", "version",
    }
)
PLACE_KEYWORDS = frozenset(
    {
        "avenue", "city", "country", "county", "island", "lake", "mountain", "ocean", "park",
        "province", "region", "river", "sea", "state", "street", "valley",
    }
)
LOCATIVE_PREPOSITIONS = frozenset(
    {"across", "around", "at", "in", "inside", "into", "near", "throughout", "within"}
)
CONCEPT_KEYWORDS = frozenset(
    {
        "algorithm", "approach", "concept", "idea", "method", "principle", "procedure",
        "process", "protocol", "strategy", "system", "theory", "workflow",
    }
)
PERSON_TITLES = frozenset(
    {"mr", "mrs", "ms", "miss", "dr", "prof", "professor", "sir", "dame", "president", "ceo"}
)
PERSON_KEYWORDS = frozenset(
    {
        "client", "customer", "developer", "employee", "engineer", "individual", "manager",
        "people", "person", "user",
    }
)

# Checked in order; the first type with a matching cue wins.
RELATIONSHIP_CUES: Tuple[Tuple[RelationshipType, Tuple[str, ...]], ...] = (
    (RelationshipType.PART_OF, ("part of", "belongs to", "belongs", "belong to", "member of")),
    (RelationshipType.CONTAINS, ("contains", "contain", "includes", "include", "included")),
    (RelationshipType.OWNS, ("owns", "own", "owned")),
    (RelationshipType.HAS, ("has", "have", "had")),
    (RelationshipType.CONNECTED_TO, ("connected", "linked", "associated")),
    (RelationshipType.RELATED_TO, ("related",)),
    (RelationshipType.USES, ("uses", "use", "used", "utilizes", "utilize")),
    (RelationshipType.CREATES, ("creates", "created", "generates", "generated", "builds", "built")),
    (RelationshipType.INFLUENCES, ("influences", "influenced", "affects", "affected", "impacts")),
    (
        RelationshipType.DEPENDENCY,
        ("depends on", "depend on", "requires", "require", "relies on", "rely on", "needs"),
    ),
    (
        RelationshipType.HIERARCHICAL,
        (
            "manages", "manage", "managed", "reports to", "supervises", "inherits from",
            "parent of", "child of",
        ),
    ),
    (
        RelationshipType.FUNCTIONAL,
        (
            "implements", "implement", "provides", "provide", "serves", "handles",
            "communicates with", "operates",
        ),
    ),
    (
        RelationshipType.TEMPORAL,
        (
            "before", "after", "during", "follows", "followed by", "precedes", "preceded by",
            "leads to", "led to", "causes", "caused",
        ),
    ),
    (RelationshipType.IS_A, ("is", "are", "was", "were")),
)

DEEP_RELATIONSHIP_TYPES: Tuple[RelationshipType, ...] = (
    RelationshipType.TEMPORAL,
    RelationshipType.HIERARCHICAL,
    RelationshipType.FUNCTIONAL,
    RelationshipType.DEPENDENCY,
)

_CUE_PATTERNS: Dict[RelationshipType, re.Pattern[str]] = {
    rel_type: re.compile(
        r"\b(?:" + "|".join(re.escape(cue).replace(r"\ ", r"\s+") for cue in cues) + r")\b",
        re.IGNORECASE,
    )
    for rel_type, cues in RELATIONSHIP_CUES
}

_WORD = re.compile(r"[a-z0-9]+")


def compile_patterns(patterns: Sequence[str], category: str) -> List[re.Pattern[str]]:
    """Compile configured regexes.

    Raises:
        ConfigError: If any pattern does not compile
    """
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise ConfigError(
                f"Invalid regex in extraction.{category}: {pattern}", {"error": str(exc)}
            ) from exc
    return compiled


def score_match(text: str) -> float:
    """Deterministic confidence for a pattern match, based on its shape."""
    tokens = text.split()
    if not tokens:
        return 0.0

    if len(tokens) == 1 and len(text) >= 2 and text.isalpha() and text.isupper():
        return 0.65

    capitalized = [token for token in tokens if token[:1].isupper()]
    if tokens[0][:1].isupper() and len(capitalized) >= 2:
        return min(0.75 + 0.05 * (len(capitalized) - 2), 0.9)
    if len(tokens) == 1 and tokens[0][:1].isupper():
        return 0.6
    return 0.45


def classify_entity_type(
    text: str, category: str = "entity", preceding_word: Optional[str] = None
) -> EntityType:
    """Map a matched surface string to one of the closed entity types."""
    if category == "concept":
        return EntityType.CONCEPT

    words = _WORD.findall(text.lower())
    if not words:
        return EntityType.ATTRIBUTE
    tokens = text.split()
    capitalized = tokens[0][:1].isupper()

    if words[-1] in ORGANIZATION_SUFFIXES or any(w in ORGANIZATION_KEYWORDS for w in words):
        return EntityType.ORGANIZATION
    if any(w in EVENT_KEYWORDS for w in words):
        return EntityType.EVENT
    if any(w in PRODUCT_KEYWORDS for w in words) or (
        capitalized and any(ch.isdigit() for ch in text)
    ):
        return EntityType.PRODUCT
    if any(w in PLACE_KEYWORDS for w in words):
        return EntityType.PLACE
    if capitalized and preceding_word and preceding_word.lower() in LOCATIVE_PREPOSITIONS:
        return EntityType.PLACE
    if any(w in CONCEPT_KEYWORDS for w in words):
        return EntityType.CONCEPT
    if words[0] in PERSON_TITLES or any(w in PERSON_KEYWORDS for w in words):
        return EntityType.PERSON
    if capitalized and len(tokens) <= 3 and all(t[:1].isupper() for t in tokens):
        return EntityType.PERSON
    return EntityType.ATTRIBUTE


def classify_relationship_type(
    cue: str, allowed: Optional[Sequence[RelationshipType]] = None
) -> RelationshipType:
    """Map relationship cue text to a RelationshipType (related_to when nothing matches)."""
    for rel_type, _ in RELATIONSHIP_CUES:
        if allowed is not None and rel_type not in allowed:
            continue
        if _CUE_PATTERNS[rel_type].search(cue):
            return rel_type
    return RelationshipType.RELATED_TO


def _preceding_word(sentence: Sentence, abs_start: int) -> Optional[str]:
    words = sentence.slice(sentence.start, abs_start).split()
    return words[-1].strip("\"'(") if words else None


class PatternExtractor:
    """Extracts entities, relationships and concepts from windows with configured regexes."""

    def __init__(self, config: Optional[ExtractionConfig] = None) -> None:
        self.config = config or ExtractionConfig()
        self.entity_patterns = compile_patterns(self.config.entity_patterns, "entity_patterns")
        self.relationship_patterns = compile_patterns(
            self.config.relationship_patterns, "relationship_patterns"
        )
        self.concept_patterns = compile_patterns(self.config.concept_patterns, "concept_patterns")

        logger.info(
            "Initialized PatternExtractor",
            entity_patterns=len(self.entity_patterns),
            relationship_patterns=len(self.relationship_patterns),
            concept_patterns=len(self.concept_patterns),
        )

    # -----------------------
    # Public API
    # -----------------------
    def extract_window(
        self, window: ContextWindow, accumulator: ExtractionAccumulator
    ) -> List[Mention]:
        """Run the entity, relationship and concept scans over one window."""
        mentions = self.extract_entities(window, accumulator)
        self.extract_relationships(window, mentions, accumulator)
        self.extract_concepts(window, {m.node_id for m in mentions}, accumulator)
        return mentions

    def extract_entities(
        self, window: ContextWindow, accumulator: ExtractionAccumulator
    ) -> List[Mention]:
        mentions: List[Mention] = []
        for sentence, abs_start, abs_end, surface in self._scan(window, self.entity_patterns):
            if len(surface.strip()) < 2:
                continue
            entity = accumulator.add_entity(
                surface,
                classify_entity_type(surface, "entity", _preceding_word(sentence, abs_start)),
                score_match(surface),
                span=TextSpan(start=abs_start, end=abs_end, sentence_index=sentence.index),
            )
            if entity is None:
                continue
            mentions.append(
                Mention(
                    node_id=entity.id,
                    sentence_index=sentence.index,
                    start=abs_start,
                    end=abs_end,
                    text=surface,
                )
            )

        mentions.sort(key=lambda m: (m.start, -m.end, m.node_id))
        return mentions

    def extract_relationships(
        self,
        window: ContextWindow,
        mentions: Sequence[Mention],
        accumulator: ExtractionAccumulator,
    ) -> int:
        """Link mention pairs whose in-between text carries a relationship cue."""
        sentences = {s.index: s for s in window.sentences}
        added = 0
        for first, second in mention_pairs(mentions):
            gap = gap_text(sentences[first.sentence_index], first, second)
            cue = self._first_cue(gap)
            if cue is None:
                continue
            confidence = 0.7 if len(gap.split()) <= 3 else 0.55
            accumulator.add_relationship(
                first.node_id,
                second.node_id,
                cue.lower(),
                classify_relationship_type(cue),
                confidence,
            )
            added += 1
        return added

    def infer_relationships(
        self,
        window: ContextWindow,
        mentions: Sequence[Mention],
        accumulator: ExtractionAccumulator,
    ) -> int:
        """Scan mention gaps for temporal, hierarchical, functional and dependency cues."""
        sentences = {s.index: s for s in window.sentences}
        added = 0
        for first, second in mention_pairs(mentions):
            gap = gap_text(sentences[first.sentence_index], first, second)
            for rel_type in DEEP_RELATIONSHIP_TYPES:
                match = _CUE_PATTERNS[rel_type].search(gap)
                if match is None:
                    continue
                accumulator.add_relationship(
                    first.node_id,
                    second.node_id,
                    " ".join(match.group(0).lower().split()),
                    rel_type,
                    DEEP_INFERENCE_CONFIDENCE,
                    phase="inference",
                )
                added += 1
                break
        return added

    def extract_concepts(
        self,
        window: ContextWindow,
        entity_ids: set[str],
        accumulator: ExtractionAccumulator,
    ) -> None:
        for sentence, abs_start, abs_end, surface in self._scan(window, self.concept_patterns):
            accumulator.add_concept(
                surface,
                score_match(surface),
                related_entity_ids=entity_ids,
                span=TextSpan(start=abs_start, end=abs_end, sentence_index=sentence.index),
            )

    def _scan(
        self, window: ContextWindow, patterns: Sequence[re.Pattern[str]]
    ) -> Iterator[Tuple[Sentence, int, int, str]]:
        """Yield (sentence, abs_start, abs_end, surface) for matches in working text.

        Each run of adjacent kept tokens is scanned on its own, so a match never
        spans a sentence boundary or a word removed as a stopword.
        """
        for sentence in window.sentences:
            working = sentence.working_text
            if not working:
                continue
            runs = sentence.working_runs()
            for pattern in patterns:
                for run_start, run_end in runs:
                    for match in pattern.finditer(working[run_start:run_end]):
                        if match.end() <= match.start():
                            continue
                        abs_start, abs_end = sentence.map_span(
                            run_start + match.start(), run_start + match.end()
                        )
                        yield sentence, abs_start, abs_end, sentence.slice(abs_start, abs_end)

    def _first_cue(self, gap: str) -> Optional[str]:
        for pattern in self.relationship_patterns:
            match = pattern.search(gap)
            if match and match.group(0).strip():
                return " ".join(match.group(0).split())
        return None
