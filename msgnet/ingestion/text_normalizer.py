"""Text normalization: cleaning, sentence segmentation, stopword removal, windows.

The normalized text is the coordinate system for every span in the pipeline.
Stopword removal only rewrites each sentence's working token stream; the
sentence text and its offsets stay untouched so that spans found in working
text can always be mapped back to absolute offsets.
"""

from __future__ import annotations

import re
import string
import unicodedata
from bisect import bisect_left, bisect_right
from typing import List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import BaseModel, ConfigDict

from msgnet.errors import ConfigError, InputError
from msgnet.ingestion.stopwords import StopwordSet
from msgnet.utils.config import TextProcessingConfig

PUNCTUATION_REPLACEMENTS = {
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
    "–": "-",
    "—": "-",
    "−": "-",
    "…": "...",
    "\u00a0": " ",
}

_SENTENCE_END = re.compile(r"[.!?]+(?=\s|$)")
_TOKEN = re.compile(r"\S+")
_WHITESPACE = re.compile(r"\s+")
_TOKEN_STRIP = string.punctuation + "\"'"


class Token(BaseModel):
    """Whitespace-delimited token with absolute offsets into the normalized text."""

    model_config = ConfigDict(frozen=True)

    text: str
    start: int
    end: int


class Sentence(BaseModel):
    """Indexed sentence of normalized text plus its working token stream."""

    model_config = ConfigDict(frozen=True)

    index: int
    text: str
    start: int
    end: int
    tokens: Tuple[Token, ...] = ()

    @property
    def working_text(self) -> str:
        return " ".join(token.text for token in self.tokens)

    def _working_starts(self) -> List[int]:
        starts = []
        offset = 0
        for token in self.tokens:
            starts.append(offset)
            offset += len(token.text) + 1
        return starts

    def working_runs(self) -> List[Tuple[int, int]]:
        """Return [start, end) working_text spans of tokens that sit next to each other.

        Two kept tokens belong to the same run only when nothing but whitespace
        separates them in the sentence text, so a run never bridges a removed word.
        """
        runs: List[Tuple[int, int]] = []
        if not self.tokens:
            return runs

        starts = self._working_starts()
        run_start = 0
        for i in range(1, len(self.tokens)):
            previous, token = self.tokens[i - 1], self.tokens[i]
            if self.slice(previous.end, token.start).strip():
                runs.append((run_start, starts[i - 1] + len(previous.text)))
                run_start = starts[i]
        last = self.tokens[-1]
        runs.append((run_start, starts[-1] + len(last.text)))
        return runs

    def map_span(self, start: int, end: int) -> Tuple[int, int]:
        """Map a [start, end) span of working_text to absolute offsets."""
        if not self.tokens or end <= start:
            raise ValueError(f"Cannot map empty span ({start}, {end}) in sentence {self.index}")

        starts = self._working_starts()

        first = bisect_right(starts, start) - 1
        first_token = self.tokens[first]
        if start - starts[first] >= len(first_token.text):
            # Span begins on the separator space; snap to the next token.
            first += 1
            abs_start = self.tokens[first].start
        else:
            abs_start = first_token.start + (start - starts[first])

        last = max(bisect_left(starts, end) - 1, first)
        last_token = self.tokens[last]
        abs_end = last_token.start + min(end - starts[last], len(last_token.text))
        return abs_start, abs_end

    def slice(self, abs_start: int, abs_end: int) -> str:
        """Return the sentence text between two absolute offsets."""
        return self.text[abs_start - self.start : abs_end - self.start]


class ContextWindow(BaseModel):
    """Contiguous run of sentences used to scope pattern scans and LLM prompts."""

    model_config = ConfigDict(frozen=True)

    index: int
    start_sentence: int
    end_sentence: int
    sentences: Tuple[Sentence, ...]

    @property
    def text(self) -> str:
        """Working text of the window (stopwords removed)."""
        return " ".join(s.working_text for s in self.sentences if s.working_text)

    @property
    def original_text(self) -> str:
        """Normalized sentence text of the window (stopwords intact)."""
        return " ".join(s.text for s in self.sentences)


class NormalizedDocument(BaseModel):
    """Output of one normalizer pass."""

    model_config = ConfigDict(frozen=True)

    text: str
    sentences: Tuple[Sentence, ...] = ()
    windows: Tuple[ContextWindow, ...] = ()
    stopword_source: str = "default"

    @property
    def working_text(self) -> str:
        return " ".join(s.working_text for s in self.sentences if s.working_text)

    @property
    def word_count(self) -> int:
        return sum(len(s.tokens) for s in self.sentences)


def decode_text(data: bytes) -> str:
    """Decode raw input bytes as strict UTF-8.

    Raises:
        InputError: If the bytes are not valid UTF-8
    """
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InputError(
            "Input is not valid UTF-8",
            {"position": exc.start, "reason": exc.reason},
        ) from exc
    return text.removeprefix("\ufeff")


class TextNormalizer:
    """Clean, segment, de-stopword and window raw text.

    Example:
        >>> normalizer = TextNormalizer(config)
        >>> document = normalizer.process(raw_text)
        >>> print(f"{len(document.sentences)} sentences, {len(document.windows)} windows")
    """

    def __init__(
        self,
        config: Optional[TextProcessingConfig] = None,
        stopwords: Optional[StopwordSet] = None,
    ) -> None:
        """Initialize the normalizer.

        Args:
            config: Text processing configuration. If None, uses default settings.
            stopwords: Pre-built stopword set. If None, built from ``config``.

        Raises:
            InputError: If a configured stopwords file cannot be read
        """
        self.config = config or TextProcessingConfig()
        self.stopwords = stopwords if stopwords is not None else StopwordSet.from_config(self.config)

        logger.info(
            f"Initialized TextNormalizer: stopwords={self.stopwords.source} "
            f"({len(self.stopwords)}), window_size={self.config.window_size}, "
            f"stride={self.config.window_stride}"
        )

    def process(self, raw: str) -> NormalizedDocument:
        """Run clean -> segment -> stopword removal -> windows."""
        text = self.clean(raw)
        sentences = self.remove_stopwords(self.segment(text))
        windows = self.windows(sentences, self.config.window_size, self.config.window_stride)

        logger.debug(
            "Normalized text",
            characters=len(text),
            sentences=len(sentences),
            windows=len(windows),
        )
        return NormalizedDocument(
            text=text,
            sentences=tuple(sentences),
            windows=tuple(windows),
            stopword_source=self.stopwords.source,
        )

    def clean(self, raw: str) -> str:
        """Normalize punctuation, drop control/format characters, collapse whitespace.

        Args:
            raw: Raw text

        Returns:
            Cleaned single-line text
        """
        if not raw:
            return ""

        for source, replacement in PUNCTUATION_REPLACEMENTS.items():
            raw = raw.replace(source, replacement)

        characters = []
        for char in raw:
            category = unicodedata.category(char)
            if category == "Cf":
                continue
            if category == "Cc":
                characters.append(" ")
                continue
            characters.append(char)

        return _WHITESPACE.sub(" ", "".join(characters)).strip()

    def segment(self, text: str) -> List[Sentence]:
        """Split normalized text into non-empty sentences with absolute offsets."""
        boundaries = [match.end() for match in _SENTENCE_END.finditer(text)]
        if not boundaries or boundaries[-1] < len(text):
            boundaries.append(len(text))

        sentences: List[Sentence] = []
        start = 0
        for end in boundaries:
            piece = text[start:end]
            stripped = piece.strip()
            if stripped:
                piece_start = start + (len(piece) - len(piece.lstrip()))
                piece_end = piece_start + len(stripped)
                tokens = tuple(
                    Token(text=m.group(0), start=piece_start + m.start(), end=piece_start + m.end())
                    for m in _TOKEN.finditer(stripped)
                )
                sentences.append(
                    Sentence(
                        index=len(sentences),
                        text=stripped,
                        start=piece_start,
                        end=piece_end,
                        tokens=tokens,
                    )
                )
            start = end

        return sentences

    def remove_stopwords(self, sentences: Sequence[Sentence]) -> List[Sentence]:
        """Return copies of ``sentences`` whose token streams omit stopwords."""
        if not len(self.stopwords):
            return list(sentences)

        result = []
        for sentence in sentences:
            kept = tuple(token for token in sentence.tokens if not self._is_stopword(token.text))
            result.append(sentence.model_copy(update={"tokens": kept}))
        return result

    def _is_stopword(self, token: str) -> bool:
        core = token.strip(_TOKEN_STRIP)
        # Pure punctuation tokens carry no word to match.
        return bool(core) and core.lower() in self.stopwords.words

    @staticmethod
    def windows(
        sentences: Sequence[Sentence], size: int = 3, stride: int = 1
    ) -> List[ContextWindow]:
        """Build overlapping windows of ``size`` sentences advancing by ``stride``.

        The last window always reaches the final sentence.

        Raises:
            ConfigError: If size or stride is below 1
        """
        if size < 1 or stride < 1:
            raise ConfigError(f"Window size and stride must be >= 1 (size={size}, stride={stride})")
        if not sentences:
            return []

        count = len(sentences)
        if count <= size:
            starts = [0]
        else:
            starts = list(range(0, count - size + 1, stride))
            if starts[-1] + size < count:
                starts.append(count - size)

        return [
            ContextWindow(
                index=i,
                start_sentence=start,
                end_sentence=start + min(size, count),
                sentences=tuple(sentences[start : start + size]),
            )
            for i, start in enumerate(starts)
        ]
