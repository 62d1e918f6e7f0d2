"""Entity mentions and window-level co-occurrence counting."""

from __future__ import annotations

import re
from collections import Counter
from itertools import combinations
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from msgnet.extraction.models import ConceptNode, Entity
from msgnet.ingestion.text_normalizer import ContextWindow, Sentence


class Mention(BaseModel):
    """One occurrence of a known node inside a sentence (absolute offsets)."""

    model_config = ConfigDict(frozen=True)

    node_id: str
    sentence_index: int
    start: int
    end: int
    text: str


def _surface_pattern(surface: str) -> re.Pattern[str]:
    words = [re.escape(word) for word in surface.split()]
    return re.compile(r"(?<!\w)" + r"\s+".join(words) + r"(?!\w)", re.IGNORECASE)


def find_mentions(window: ContextWindow, entities: Iterable[Entity]) -> List[Mention]:
    """Locate every occurrence of the given entities in the window's sentences.

    Matching is case-insensitive on the normalized sentence text, bounded by
    non-word characters. Mentions are returned sorted by position.
    """
    patterns = [(entity.id, _surface_pattern(entity.text)) for entity in entities if entity.text]

    mentions: List[Mention] = []
    for sentence in window.sentences:
        for node_id, pattern in patterns:
            for match in pattern.finditer(sentence.text):
                mentions.append(
                    Mention(
                        node_id=node_id,
                        sentence_index=sentence.index,
                        start=sentence.start + match.start(),
                        end=sentence.start + match.end(),
                        text=match.group(0),
                    )
                )

    mentions.sort(key=lambda m: (m.start, -m.end, m.node_id))
    return mentions


def mention_pairs(
    mentions: Sequence[Mention],
) -> Iterator[Tuple[Mention, Mention]]:
    """Yield ordered (earlier, later) pairs of non-overlapping mentions sharing a sentence."""
    by_sentence: Dict[int, List[Mention]] = {}
    for mention in mentions:
        by_sentence.setdefault(mention.sentence_index, []).append(mention)

    for sentence_index in sorted(by_sentence):
        for first, second in combinations(by_sentence[sentence_index], 2):
            if first.node_id == second.node_id:
                continue
            if first.end > second.start:
                continue
            yield first, second


def gap_text(sentence: Sentence, first: Mention, second: Mention) -> str:
    """Original sentence text between two mentions (stopwords intact)."""
    return sentence.slice(first.end, second.start)


def concept_in_window(concept: ConceptNode, window: ContextWindow) -> bool:
    return bool(_surface_pattern(concept.label).search(window.original_text))


def count_concept_cooccurrence(
    concepts: Iterable[ConceptNode],
    windows: Iterable[ContextWindow],
    entities: Sequence[Entity],
) -> Counter[Tuple[str, str]]:
    """Count, per (concept id, entity id), the windows where both are mentioned."""
    counts: Counter[Tuple[str, str]] = Counter()
    concepts = list(concepts)

    for window in windows:
        present = {mention.node_id for mention in find_mentions(window, entities)}
        if not present:
            continue
        for concept in concepts:
            if not concept_in_window(concept, window):
                continue
            for entity_id in present:
                counts[(concept.id, entity_id)] += 1

    return counts
