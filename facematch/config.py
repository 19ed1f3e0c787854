"""
Configuration Management Module

Settings are read from a YAML file (config.yaml at the project root by
default) and turned into immutable dataclasses that are passed explicitly
to the store, matcher and pipelines. Nothing here is cached at module level:
every caller that loads configuration gets its own Settings object.

Lookup order for the config file:
    1. The path passed to load_config() / load_settings()
    2. The FACEMATCH_CONFIG environment variable
    3. config.yaml found by walking up from this file's directory

Usage:
    from facematch.config import load_settings

    settings = load_settings()
    threshold = settings.matching.threshold

    # Raw dict access is still available
    from facematch.config import load_config, get_section
    config = load_config()
    storage = get_section("storage", config)
"""

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

CONFIG_ENV_VAR = "FACEMATCH_CONFIG"
CONFIG_FILENAME = "config.yaml"

MATCH_POLICIES = ("first", "nearest")


def get_project_root() -> Path:
    """
    Find the project root directory.

    The project root is identified by the presence of config.yaml. The search
    walks up the directory tree from this file's location.

    Raises:
        FileNotFoundError: If config.yaml cannot be found in any parent directory.
    """
    current_dir = Path(__file__).resolve().parent

    while current_dir != current_dir.parent:
        if (current_dir / CONFIG_FILENAME).exists():
            return current_dir
        current_dir = current_dir.parent

    raise FileNotFoundError(
        f"Could not find {CONFIG_FILENAME} in any parent directory. "
        f"Set {CONFIG_ENV_VAR} or pass an explicit config path."
    )


def resolve_config_path(config_path: Optional[str] = None) -> Path:
    """Return the config file path following the lookup order above."""
    if config_path is not None:
        return Path(config_path)

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)

    return get_project_root() / CONFIG_FILENAME


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Optional path to the config file.

    Returns:
        Dict containing all configuration values. An empty file yields {}.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the config file contains invalid YAML.
    """
    path = resolve_config_path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    return config or {}


def get_section(section_name: str, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Get a top-level section from the configuration.

    Args:
        section_name: Name of the section (e.g. "storage", "matching").
        config: Already-loaded config dict. Loaded from disk if omitted.

    Raises:
        KeyError: If the section doesn't exist.
    """
    if config is None:
        config = load_config()

    if section_name not in config:
        raise KeyError(
            f"Configuration section '{section_name}' not found. "
            f"Available sections: {list(config.keys())}"
        )

    return config[section_name]


# ============================================================
# Typed settings
# ============================================================


@dataclass(frozen=True)
class StorageConfig:
    # Relative paths are resolved against the config file's directory.
    db_path: str = "storage/gallery.sqlite"


@dataclass(frozen=True)
class MatchingConfig:
    # Maximum Euclidean distance between descriptors of the same identity.
    # 0.4 is the reference value; recalibrate for every extractor model.
    threshold: float = 0.4
    # "first": first sub-threshold entry in gallery order.
    # "nearest": globally closest entry, if under threshold.
    policy: str = "first"

    def __post_init__(self):
        if not (isinstance(self.threshold, (int, float)) and math.isfinite(self.threshold)
                and self.threshold > 0):
            raise ValueError(f"matching.threshold must be a positive number, got {self.threshold!r}")
        if self.policy not in MATCH_POLICIES:
            raise ValueError(
                f"matching.policy must be one of {MATCH_POLICIES}, got {self.policy!r}"
            )


@dataclass(frozen=True)
class EmbeddingConfig:
    backend: str = "auto"          # "auto", "insightface", "facenet" or "stub"
    model: str = "buffalo_l"
    device: str = "cpu"
    dimension: int = 512
    min_face_size: int = 20        # regions smaller than this (px) are rejected


@dataclass(frozen=True)
class DetectionConfig:
    cascade: str = "haarcascade_frontalface_alt.xml"
    scale_factor: float = 1.1
    min_neighbors: int = 3
    min_size: Tuple[int, int] = (30, 30)


@dataclass(frozen=True)
class RecognitionConfig:
    max_workers: int = 1
    output_dir: str = "output"


@dataclass(frozen=True)
class ApiConfig:
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    """All configuration sections, plus the directory relative paths resolve against."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    face_detection: DetectionConfig = field(default_factory=DetectionConfig)
    recognition: RecognitionConfig = field(default_factory=RecognitionConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    base_dir: Path = field(default_factory=Path.cwd)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], base_dir: Optional[Path] = None) -> "Settings":
        """
        Build Settings from a raw config dict.

        Missing sections or keys fall back to the dataclass defaults; unknown
        keys are ignored.
        """
        raw = raw or {}

        def section(name: str, dc):
            values = raw.get(name) or {}
            known = {k: v for k, v in values.items() if k in dc.__dataclass_fields__}
            return dc(**known)

        detection = section("face_detection", DetectionConfig)
        if not isinstance(detection.min_size, tuple):
            detection = DetectionConfig(
                cascade=detection.cascade,
                scale_factor=detection.scale_factor,
                min_neighbors=detection.min_neighbors,
                min_size=tuple(detection.min_size),
            )

        return cls(
            storage=section("storage", StorageConfig),
            matching=section("matching", MatchingConfig),
            embedding=section("embedding", EmbeddingConfig),
            face_detection=detection,
            recognition=section("recognition", RecognitionConfig),
            api=section("api", ApiConfig),
            logging=section("logging", LoggingConfig),
            base_dir=Path(base_dir) if base_dir is not None else Path.cwd(),
        )

    def resolve_path(self, path: str) -> Path:
        """Resolve a configured path relative to base_dir."""
        p = Path(path)
        return p if p.is_absolute() else self.base_dir / p

    @property
    def db_path(self) -> Path:
        return self.resolve_path(self.storage.db_path)


def load_settings(config_path: Optional[str] = None) -> Settings:
    """Load config.yaml (see lookup order) into a Settings object."""
    path = resolve_config_path(config_path)
    raw = load_config(str(path))
    return Settings.from_dict(raw, base_dir=path.resolve().parent)


def configure_logging(settings: Settings) -> None:
    """Apply the logging section via logging.basicConfig (entry points only)."""
    logging.basicConfig(
        level=getattr(logging, settings.logging.level.upper(), logging.INFO),
        format=settings.logging.format,
    )


if __name__ == "__main__":
    settings = load_settings()
    print(f"Loaded settings from {settings.base_dir}")
    print(f"  Gallery database: {settings.db_path}")
    print(f"  Threshold: {settings.matching.threshold} ({settings.matching.policy}-match)")
    print(f"  Descriptor dimension: {settings.embedding.dimension}")
