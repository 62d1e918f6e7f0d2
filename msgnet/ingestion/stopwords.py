"""Stopword tables used to thin the token stream before extraction scans.

A StopwordSet is built from exactly one source. Precedence, highest first:
explicit disable, custom file, inline list from the configuration, built-in
default table.
"""

from __future__ import annotations

from pathlib import Path
from typing import FrozenSet, Iterable, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict

from msgnet.errors import InputError
from msgnet.utils.config import TextProcessingConfig

StopwordSource = Literal["default", "file", "inline", "disabled"]

DEFAULT_STOPWORDS: FrozenSet[str] = frozenset(
    """
    a about above after again against all also am an and any are as at be because been
    before being below between both but by can could did do does doing down during each
    either else ever few for from further had has have having he her here hers herself
    him himself his how however i if in into is it its itself just may me might more
    most must my myself neither no nor not now of off on once only or other ought our
    ours ourselves out over own same shall she should since so some such than that the
    their theirs them themselves then there these they this those though through thus
    to too under until up upon us very was we were what when where whether which while
    who whom whose why will with within without would yet you your yours yourself
    yourselves
    """.split()
)


class StopwordSet(BaseModel):
    """Immutable set of lowercase stopwords plus the source it was built from."""

    model_config = ConfigDict(frozen=True)

    words: FrozenSet[str]
    source: StopwordSource

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and word.lower() in self.words

    def __len__(self) -> int:
        return len(self.words)

    @classmethod
    def from_words(cls, words: Iterable[str], source: StopwordSource) -> "StopwordSet":
        cleaned = frozenset(w.strip().lower() for w in words if w and w.strip())
        return cls(words=cleaned, source=source)

    @classmethod
    def disabled(cls) -> "StopwordSet":
        return cls(words=frozenset(), source="disabled")

    @classmethod
    def from_config(
        cls,
        config: TextProcessingConfig,
        *,
        default: FrozenSet[str] = DEFAULT_STOPWORDS,
    ) -> "StopwordSet":
        """Build the stopword set for a run.

        Args:
            config: Text processing configuration
            default: Built-in table used when no other source is configured

        Raises:
            InputError: If the configured stopwords file is missing or unreadable
        """
        if not config.remove_stopwords:
            stopwords = cls.disabled()
        elif config.stopwords_file:
            stopwords = cls.from_words(load_stopwords_file(config.stopwords_file), "file")
        elif config.custom_stopwords is not None:
            stopwords = cls.from_words(config.custom_stopwords, "inline")
        else:
            stopwords = cls(words=default, source="default")

        logger.debug("Built stopword set", source=stopwords.source, size=len(stopwords))
        return stopwords


def load_stopwords_file(path: str | Path) -> list[str]:
    """Read a stopwords file: UTF-8, one word per line, '#' and blank lines ignored.

    Raises:
        InputError: If the file is missing, unreadable or not valid UTF-8
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise InputError(f"Stopwords file not found: {path}") from exc
    except UnicodeDecodeError as exc:
        raise InputError(f"Stopwords file is not valid UTF-8: {path}") from exc
    except OSError as exc:
        raise InputError(f"Cannot read stopwords file: {path}", {"error": str(exc)}) from exc

    words = []
    for line in content.splitlines():
        word = line.strip()
        if not word or word.startswith("#"):
            continue
        words.append(word.lower())

    logger.info(f"Loaded {len(words)} stopwords from {path}")
    return words
