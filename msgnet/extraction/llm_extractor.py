"""LLM-assisted extraction over an OpenAI-compatible chat endpoint.

Prompts are rendered from YAML templates. Responses are parsed leniently: a
JSON object or array is tried first, then ``ENTITY:`` / ``RELATIONSHIP:`` /
``CONCEPT:`` lines. Anything unrecognizable yields an empty contribution.
Transport failures surface as ``LlmError`` so callers can absorb them per
window.
"""

from __future__ import annotations

import json
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import yaml
from loguru import logger
from openai import OpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, Field

from msgnet.errors import ConfigError, LlmError
from msgnet.extraction.models import Entity, EntityType, RelationshipType
from msgnet.extraction.pattern_extractor import classify_entity_type, classify_relationship_type
from msgnet.ingestion.text_normalizer import ContextWindow
from msgnet.utils.config import ExtractionConfig
from msgnet.utils.llm_client import create_openai_client

DEFAULT_LLM_CONFIDENCE = 0.7

# Free-form type names a model tends to produce.
LLM_TYPE_ALIASES: Dict[str, EntityType] = {
    "person": EntityType.PERSON,
    "people": EntityType.PERSON,
    "place": EntityType.PLACE,
    "location": EntityType.PLACE,
    "organization": EntityType.ORGANIZATION,
    "organisation": EntityType.ORGANIZATION,
    "company": EntityType.ORGANIZATION,
    "event": EntityType.EVENT,
    "product": EntityType.PRODUCT,
    "system": EntityType.PRODUCT,
    "tool": EntityType.PRODUCT,
    "concept": EntityType.CONCEPT,
    "process": EntityType.CONCEPT,
    "idea": EntityType.CONCEPT,
    "attribute": EntityType.ATTRIBUTE,
    "property": EntityType.ATTRIBUTE,
}

_LINE = re.compile(r"^\s*[-*]?\s*(ENTITY|RELATIONSHIP|CONCEPT)\s*:\s*(.+)$", re.IGNORECASE)


class LlmEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    entity_type: EntityType
    confidence: float


class LlmRelationship(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    label: str
    relationship_type: RelationshipType
    confidence: float


class LlmConcept(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    confidence: float


class LlmExtraction(BaseModel):
    """Parsed contribution of one LLM response (raw, untrusted confidences)."""

    entities: List[LlmEntity] = Field(default_factory=list)
    relationships: List[LlmRelationship] = Field(default_factory=list)
    concepts: List[LlmConcept] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.entities or self.relationships or self.concepts)


def resolve_prompts_path(path: str | Path) -> Path:
    """Resolve a prompts path against the working directory, then the project root."""
    path = Path(path)
    if path.is_absolute() or path.exists():
        return path
    candidate = Path(__file__).resolve().parents[2] / path
    return candidate if candidate.exists() else path


class LLMExtractor:
    """Window-scoped LLM extractor with retries and lenient parsing."""

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        prompts_path: str | Path | None = None,
        *,
        sleep_fn: Callable[[float], None] | None = None,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.prompts_path = resolve_prompts_path(prompts_path or self.config.prompts_file)
        self.prompts = self._load_prompts(self.prompts_path)
        self._sleep = sleep_fn or time.sleep
        self._client = client

        logger.info(
            "Initialized LLMExtractor",
            model=self.config.llm_model,
            endpoint=self.config.llm_endpoint,
            prompts=str(self.prompts_path),
        )

    # -----------------------
    # Public API
    # -----------------------
    def extract(self, window: ContextWindow, known_entities: Iterable[Entity] = ()) -> LlmExtraction:
        """Extract entities, relationships and concepts from one window.

        Raises:
            LlmError: If the endpoint cannot be reached or keeps failing
        """
        system, user = self._render_prompt(
            "window_extraction",
            {
                "window_text": window.original_text,
                "entities_list": self._format_entities_for_prompt(known_entities),
            },
        )
        return self.parse_response(self._call_llm(system=system, user=user))

    def infer_relationships(
        self, window: ContextWindow, known_entities: Iterable[Entity]
    ) -> List[LlmRelationship]:
        """Ask for implicit, temporal, hierarchical, functional and dependency links.

        Raises:
            LlmError: If the endpoint cannot be reached or keeps failing
        """
        system, user = self._render_prompt(
            "deep_relationships",
            {
                "window_text": window.original_text,
                "entities_list": self._format_entities_for_prompt(known_entities),
            },
        )
        return self.parse_response(self._call_llm(system=system, user=user)).relationships

    # -----------------------
    # Prompt handling
    # -----------------------
    def _load_prompts(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise ConfigError(f"Extraction prompt template not found: {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot parse prompt template: {path}", {"error": str(exc)}) from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Prompt template root must be a mapping/dict: {path}")
        return data

    def _render_prompt(self, key: str, context: Dict[str, Any]) -> Tuple[str, str]:
        if key not in self.prompts:
            raise ConfigError(f"Prompt key not found in template: {key}")

        prompt = self.prompts.get(key) or {}
        system = str(prompt.get("system", "")).strip()
        user_template = str(prompt.get("user_template", "{window_text}"))

        try:
            user = user_template.format(**context)
        except KeyError as exc:
            missing = exc.args[0]
            raise ConfigError(f"Missing placeholder '{missing}' in prompt context for '{key}'") from exc
        return system, user

    def _format_entities_for_prompt(self, entities: Iterable[Entity]) -> str:
        names = sorted({entity.text for entity in entities})
        return json.dumps(names, ensure_ascii=False)

    # -----------------------
    # Transport
    # -----------------------
    def _call_llm(self, *, system: str, user: str) -> str:
        attempts = max(1, self.config.retry_attempts)
        last_error: Exception | None = None

        logger.debug(f"Calling LLM for extraction: {self.config.llm_model}")

        for attempt in range(1, attempts + 1):
            try:
                return self._call_openai(system=system, user=user)
            except OpenAIError as exc:
                last_error = exc
                logger.warning(
                    "LLM request failed",
                    attempt=attempt,
                    max_attempts=attempts,
                    error=str(exc),
                )
                if attempt >= attempts:
                    break
                backoff = min(2 ** (attempt - 1), 8)
                self._sleep(backoff)

        raise LlmError(
            f"LLM request to {self.config.llm_endpoint} failed after {attempts} attempt(s)",
            {"model": self.config.llm_model, "error": str(last_error)},
        ) from last_error

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = create_openai_client(
                api_key=self.config.llm_api_key,
                base_url=self.config.llm_endpoint,
                timeout=self.config.llm_timeout,
            )
        return self._client

    def _call_openai(self, *, system: str, user: str) -> str:
        response = self._get_client().chat.completions.create(
            model=self.config.llm_model,
            timeout=self.config.llm_timeout,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )

        if not response.choices:
            return ""
        content = response.choices[0].message.content
        if isinstance(content, list):
            parts = []
            for item in content:
                if isinstance(item, dict):
                    parts.append(str(item.get("text", "")))
                else:
                    parts.append(str(item))
            return "\n".join(parts).strip()
        return str(content or "")

    # -----------------------
    # Parsing helpers
    # -----------------------
    def parse_response(self, response_text: str) -> LlmExtraction:
        """Parse a model response; never raises on malformed content."""
        data = self._extract_json(response_text)
        if data is not None:
            extraction = self._parse_json(data)
            if not extraction.is_empty:
                return extraction

        extraction = self._parse_lines(response_text)
        if extraction.is_empty and response_text.strip():
            logger.debug("LLM response contained nothing recognizable", length=len(response_text))
        return extraction

    def _parse_json(self, data: Any) -> LlmExtraction:
        if isinstance(data, dict):
            raw_entities = data.get("entities") or []
            raw_relationships = data.get("relationships") or []
            raw_concepts = data.get("concepts") or []
        elif isinstance(data, list):
            # A bare array: sort items by the keys they carry.
            raw_entities = [i for i in data if isinstance(i, dict) and "name" in i and "from" not in i]
            raw_relationships = [i for i in data if isinstance(i, dict) and ("from" in i or "source" in i)]
            raw_concepts = []
        else:
            return LlmExtraction()

        extraction = LlmExtraction()
        for item in raw_entities if isinstance(raw_entities, list) else []:
            if not isinstance(item, dict):
                continue
            entity = self._make_entity(
                item.get("name") or item.get("text"),
                item.get("type") or item.get("entity_type"),
                item.get("confidence"),
            )
            if entity:
                extraction.entities.append(entity)

        for item in raw_relationships if isinstance(raw_relationships, list) else []:
            if not isinstance(item, dict):
                continue
            relationship = self._make_relationship(
                item.get("from") or item.get("source"),
                item.get("to") or item.get("target"),
                item.get("relationship") or item.get("label") or item.get("type"),
                item.get("type"),
                item.get("confidence"),
            )
            if relationship:
                extraction.relationships.append(relationship)

        for item in raw_concepts if isinstance(raw_concepts, list) else []:
            if isinstance(item, str):
                item = {"name": item}
            if not isinstance(item, dict):
                continue
            name = str(item.get("name") or "").strip()
            if name:
                extraction.concepts.append(
                    LlmConcept(name=name, confidence=self._clamp_confidence(item.get("confidence")))
                )

        return extraction

    def _parse_lines(self, text: str) -> LlmExtraction:
        extraction = LlmExtraction()
        for line in text.splitlines():
            match = _LINE.match(line)
            if not match:
                continue
            kind = match.group(1).upper()
            fields = [part.strip() for part in match.group(2).split("|")]

            if kind == "ENTITY":
                entity = self._make_entity(
                    fields[0],
                    fields[1] if len(fields) > 1 else None,
                    fields[2] if len(fields) > 2 else None,
                )
                if entity:
                    extraction.entities.append(entity)
            elif kind == "RELATIONSHIP" and len(fields) >= 3:
                relationship = self._make_relationship(
                    fields[0],
                    fields[2],
                    fields[1],
                    None,
                    fields[3] if len(fields) > 3 else None,
                )
                if relationship:
                    extraction.relationships.append(relationship)
            elif kind == "CONCEPT" and fields[0]:
                extraction.concepts.append(
                    LlmConcept(
                        name=fields[0],
                        confidence=self._clamp_confidence(fields[1] if len(fields) > 1 else None),
                    )
                )
        return extraction

    def _make_entity(self, name: Any, type_name: Any, confidence: Any) -> Optional[LlmEntity]:
        name = str(name or "").strip()
        if len(name) < 2:
            return None
        alias = str(type_name or "").strip().lower()
        entity_type = LLM_TYPE_ALIASES.get(alias) or classify_entity_type(name)
        return LlmEntity(
            name=name, entity_type=entity_type, confidence=self._clamp_confidence(confidence)
        )

    def _make_relationship(
        self, source: Any, target: Any, label: Any, type_name: Any, confidence: Any
    ) -> Optional[LlmRelationship]:
        source = str(source or "").strip()
        target = str(target or "").strip()
        label = " ".join(str(label or "").lower().split())
        if not source or not target or source.lower() == target.lower():
            return None

        try:
            relationship_type = RelationshipType(str(type_name or "").strip().lower())
        except ValueError:
            relationship_type = classify_relationship_type(label)

        return LlmRelationship(
            source=source,
            target=target,
            label=label or relationship_type.value.replace("_", " "),
            relationship_type=relationship_type,
            confidence=self._clamp_confidence(confidence),
        )

    def _extract_json(self, text: str) -> Any:
        if not text:
            return None

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        match = re.search(r"(\{.*\}|\[.*\])", text, flags=re.DOTALL)
        if not match:
            return None

        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            return None

    def _clamp_confidence(self, value: Any) -> float:
        if value is None or value == "":
            return DEFAULT_LLM_CONFIDENCE
        try:
            score = float(value)
        except (TypeError, ValueError):
            return DEFAULT_LLM_CONFIDENCE
        return max(0.0, min(score, 1.0))
