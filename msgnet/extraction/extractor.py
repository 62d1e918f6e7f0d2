"""Extraction entry point: windows in, deduplicated ExtractionResult out."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from msgnet.errors import ConfigError
from msgnet.extraction.deep_analysis import BASE_PHASE, DEEP_PHASES, PhaseContext, run_phases
from msgnet.extraction.llm_extractor import LLMExtractor
from msgnet.extraction.models import ExtractionMode, ExtractionResult, ExtractionWarning
from msgnet.extraction.pattern_extractor import PatternExtractor
from msgnet.ingestion.text_normalizer import ContextWindow
from msgnet.utils.config import Config


class Extractor:
    """Pattern and LLM-assisted extraction over context windows.

    Example:
        >>> extractor = Extractor(config)
        >>> result, warnings = extractor.extract(document.windows, ExtractionMode.STANDARD)
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        llm_extractor: Optional[LLMExtractor] = None,
        skip_phases: Iterable[str] = (),
    ) -> None:
        """Initialize the extractor.

        Args:
            config: Full configuration; only the ``extraction`` section is used
            llm_extractor: Pre-built LLM extractor (tests inject a fake one here)
            skip_phases: Phase names the deep-analysis runner should skip

        Raises:
            ConfigError: If a pattern does not compile or the prompt template is unusable
        """
        self.config = (config or Config()).extraction
        self.patterns = PatternExtractor(self.config)
        if llm_extractor is not None:
            self.llm: Optional[LLMExtractor] = llm_extractor
        elif self.config.use_llm:
            self.llm = LLMExtractor(self.config)
        else:
            self.llm = None
        self.skip_phases = frozenset(skip_phases)

        logger.info(
            "Initialized Extractor",
            use_llm=self.llm is not None,
            skip_phases=sorted(self.skip_phases),
        )

    def extract(
        self,
        windows: Sequence[ContextWindow],
        mode: ExtractionMode | str = ExtractionMode.STANDARD,
    ) -> Tuple[ExtractionResult, List[ExtractionWarning]]:
        """Extract entities, relationships and concepts from ``windows``.

        Raises:
            ConfigError: If deep analysis is requested while the LLM is disabled
        """
        mode = ExtractionMode(mode)
        if mode is ExtractionMode.DEEP and self.llm is None:
            raise ConfigError(
                "Deep analysis requires the LLM to be enabled (extraction.use_llm / --use-llm)"
            )

        context = PhaseContext(
            windows=tuple(windows),
            patterns=self.patterns,
            config=self.config,
            llm=self.llm,
        )
        phases = DEEP_PHASES if mode is ExtractionMode.DEEP else (BASE_PHASE,)

        logger.info(f"Extracting from {len(context.windows)} windows", mode=mode.value)
        result, warnings = run_phases(phases, context, skip=self.skip_phases)

        logger.info(
            "Extraction complete",
            entities=len(result.entities),
            relationships=len(result.relationships),
            concepts=len(result.concepts),
            warnings=len(warnings),
        )
        return result, warnings
