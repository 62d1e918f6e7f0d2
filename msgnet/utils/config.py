"""Configuration management using Pydantic for validation."""

import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from msgnet.errors import ConfigError

DEFAULT_NODE_COLORS: Dict[str, str] = {
    "person": "#FF6B6B",
    "place": "#96CEB4",
    "organization": "#4ECDC4",
    "event": "#FFEAA7",
    "product": "#DDA0DD",
    "concept": "#45B7D1",
    "attribute": "#FFA07A",
}

DEFAULT_NODE_SHAPES: Dict[str, str] = {
    "person": "ellipse",
    "place": "triangle",
    "organization": "box",
    "event": "star",
    "product": "square",
    "concept": "circle",
    "attribute": "diamond",
}


class LayoutConfig(BaseModel):
    """Node layout configuration."""

    algorithm: Literal["hierarchical", "force", "circular"] = "hierarchical"
    spacing: float = Field(default=200.0, gt=0)
    seed: int = 42


class PhysicsConfig(BaseModel):
    """Force-directed relaxation parameters."""

    enabled: bool = True
    stabilization: bool = True
    repulsion: float = Field(default=200.0, ge=0)
    spring_length: float = Field(default=150.0, gt=0)
    spring_constant: float = Field(default=0.04, ge=0)
    iterations: int = Field(default=200, ge=0)
    stabilization_threshold: float = Field(default=0.5, gt=0)


class GraphOptionsConfig(BaseModel):
    """Graph construction options."""

    consolidation: Literal["unique", "consolidated"] = "unique"


class ExtractionConfig(BaseModel):
    """Entity, relationship and concept extraction configuration."""

    use_llm: bool = False
    llm_model: str = "llama3.2"
    llm_endpoint: str = "http://localhost:11434/v1"
    llm_api_key: Optional[str] = None
    llm_timeout: float = Field(default=30.0, gt=0)
    retry_attempts: int = Field(default=1, ge=1)
    prompts_file: str = "config/extraction_prompts.yaml"
    min_cooccurrence: int = Field(default=1, ge=1)
    entity_patterns: List[str] = Field(
        default=[
            r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b",
            r"\b(?:person|people|individual|user|customer|client)\b",
        ]
    )
    relationship_patterns: List[str] = Field(
        default=[
            r"\b(?:has|have|is|are|was|were|contains|includes|owns|belongs)\b",
            r"\b(?:connected to|related to|associated with|linked to)\b",
        ]
    )
    concept_patterns: List[str] = Field(
        default=[
            r"\b(?:concept|idea|principle|theory|method|approach|strategy)\b",
            r"\b(?:system|process|workflow|procedure|protocol)\b",
        ]
    )


class TextProcessingConfig(BaseModel):
    """Text normalization configuration."""

    remove_stopwords: bool = True
    stopwords_file: Optional[str] = None
    custom_stopwords: Optional[List[str]] = None
    window_size: int = Field(default=3, ge=1)
    window_stride: int = Field(default=1, ge=1)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["json", "text"] = "text"
    file: Optional[str] = None
    max_size_mb: int = 100
    backup_count: int = 5

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize level names to upper case."""
        return v.upper()


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_prefix="MSGNET_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    node_colors: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_NODE_COLORS))
    node_shapes: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_NODE_SHAPES))
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    physics: PhysicsConfig = Field(default_factory=PhysicsConfig)
    graph: GraphOptionsConfig = Field(default_factory=GraphOptionsConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    text_processing: TextProcessingConfig = Field(default_factory=TextProcessingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @staticmethod
    def _deep_merge_dict(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge two dicts (overrides win)."""
        merged: Dict[str, Any] = dict(base)
        for key, value in overrides.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = Config._deep_merge_dict(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML or JSON file and environment variables.

        Precedence (highest to lowest):
        1) Environment variables / .env (``MSGNET_`` prefix)
        2) Configuration file
        3) Model defaults

        Args:
            path: Path to a YAML or JSON configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            ConfigError: If the file is missing, unparseable or not a mapping
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            file_config = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot parse configuration file: {path}", {"error": str(exc)})

        if not isinstance(file_config, dict):
            raise ConfigError(f"Config root must be a mapping/dict: {path}")

        # JSON and YAML share the loader; env values only override what they set.
        env_overrides = cls().model_dump(exclude_defaults=True)
        merged = cls._deep_merge_dict(file_config, env_overrides)
        return cls(**merged)

    def validate_config(self) -> None:
        """Validate cross-field settings that pydantic constraints cannot express.

        Raises:
            ConfigError: If a regex pattern does not compile
        """
        for category in ("entity_patterns", "relationship_patterns", "concept_patterns"):
            for pattern in getattr(self.extraction, category):
                try:
                    re.compile(pattern)
                except re.error as exc:
                    raise ConfigError(
                        f"Invalid regex in extraction.{category}: {pattern}",
                        {"error": str(exc)},
                    )


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Raises:
        RuntimeError: If configuration hasn't been initialized
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config() first.")
    return _config


def load_config(path: str | Path | None = None) -> Config:
    """Load and validate configuration.

    Args:
        path: Optional YAML/JSON configuration file; defaults apply when omitted

    Returns:
        Loaded and validated Config instance

    Raises:
        ConfigError: On any invalid or out-of-range value
    """
    global _config
    try:
        config = Config.from_file(path) if path is not None else Config()
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ConfigError(
            f"Invalid configuration value at '{location}': {first.get('msg', str(exc))}"
        ) from exc
    config.validate_config()
    _config = config
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
