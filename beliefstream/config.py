"""
Configuration

One dataclass per layer, aggregated by EngineConfig. Defaults are the
tuned production values; a JSON file and a handful of environment
variables may override them.

JSON layout:
    {
        "scoring": {"velocity_exponent": 1.8},
        "pipeline": {"top_k": 25},
        "services": {"ollama_url": "http://localhost:11434"}
    }
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Dict, Optional, Union
import json
import os


@dataclass
class ScoringConfig:
    """Composite relevance score weights."""
    velocity_exponent: float = 1.8
    age_offset_hours: float = 2.0
    trust_weight: float = 0.5
    alignment_weight: float = 0.3
    novelty_weight: float = 0.4
    novelty_cap: float = 5.0
    trust_max: float = 10.0
    min_label_word_length: int = 4
    engagement_weights: Dict[str, float] = field(default_factory=lambda: {
        'likes': 1.0,
        'reposts': 2.0,
        'replies': 1.0,
    })


@dataclass
class ClusteringConfig:
    dedup_threshold: float = 0.65
    cluster_threshold: float = 0.25
    burst_min_count: int = 2
    burst_ratio: float = 2.0
    burst_window_hours: float = 2.0


@dataclass
class PipelineConfig:
    max_batch_size: int = 500
    top_k: int = 25
    keywords_per_item: int = 8
    max_seen_ids: int = 10000
    sanitize: bool = True
    workers: int = 1


@dataclass
class EvidenceConfig:
    """Evidence aggregation and delta acceptance."""
    min_weight: float = 0.5
    max_weight: float = 2.0
    default_weight: float = 1.0
    neutral_reputation: float = 3.0
    confidence_per_weight: float = 0.025
    max_confidence: float = 0.95
    stance_min_chars: int = 30
    stance_min_confidence: float = 0.50
    enforce_creation_guard: bool = False
    max_new_axes_per_day: int = 3
    axis_similarity_threshold: float = 0.35


@dataclass
class DriftConfig:
    slack: float = 0.5
    threshold: float = 4.0
    min_evidence: int = 4


@dataclass
class RedundancyConfig:
    similarity_threshold: float = 0.88


@dataclass
class ServicesConfig:
    """External collaborators (embedding service, stance validator)."""
    ollama_url: str = "http://localhost:11434"
    stance_validation: bool = True
    stance_model: str = "qwen2.5:7b"
    embedding_backend: str = "ollama"  # "ollama" | "sentence-transformers"
    embedding_model: str = "nomic-embed-text"
    embedding_timeout_seconds: float = 30.0
    stance_timeout_seconds: float = 10.0
    trust_graph_path: Optional[str] = None


@dataclass
class StorageConfig:
    data_dir: str = "./state"
    items_db: str = "items.db"
    beliefs_db: str = "beliefs.db"
    prune_days: int = 7

    @property
    def items_path(self) -> Path:
        return Path(self.data_dir) / self.items_db

    @property
    def beliefs_path(self) -> Path:
        return Path(self.data_dir) / self.beliefs_db


@dataclass
class EngineConfig:
    """Unified configuration for the whole engine."""
    scoring: ScoringConfig = None
    clustering: ClusteringConfig = None
    pipeline: PipelineConfig = None
    evidence: EvidenceConfig = None
    drift: DriftConfig = None
    redundancy: RedundancyConfig = None
    services: ServicesConfig = None
    storage: StorageConfig = None

    def __post_init__(self):
        self.scoring = self.scoring or ScoringConfig()
        self.clustering = self.clustering or ClusteringConfig()
        self.pipeline = self.pipeline or PipelineConfig()
        self.evidence = self.evidence or EvidenceConfig()
        self.drift = self.drift or DriftConfig()
        self.redundancy = self.redundancy or RedundancyConfig()
        self.services = self.services or ServicesConfig()
        self.storage = self.storage or StorageConfig()

    @classmethod
    def from_dict(cls, data: dict) -> EngineConfig:
        config = cls()
        for section_name, values in data.items():
            section = getattr(config, section_name, None)
            if section is None or not is_dataclass(section):
                raise ValueError(f"unknown config section: {section_name}")
            if not isinstance(values, dict):
                raise ValueError(f"config section {section_name} must be an object")
            known = {f.name for f in fields(section)}
            for key, value in values.items():
                if key not in known:
                    raise ValueError(f"unknown config key: {section_name}.{key}")
                setattr(section, key, value)
        return config

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]] = None,
        environ: Optional[dict] = None
    ) -> EngineConfig:
        """Load from an optional JSON file, then apply environment overrides."""
        if path is not None:
            with open(path, 'r', encoding='utf-8') as f:
                config = cls.from_dict(json.load(f))
        else:
            config = cls()
        config.apply_env(os.environ if environ is None else environ)
        return config

    def apply_env(self, environ) -> None:
        if environ.get('BELIEFSTREAM_DATA_DIR'):
            self.storage.data_dir = environ['BELIEFSTREAM_DATA_DIR']
        if environ.get('OLLAMA_URL'):
            url = environ['OLLAMA_URL'].rstrip('/')
            for suffix in ('/api/generate', '/api/embeddings'):
                if url.endswith(suffix):
                    url = url[:-len(suffix)]
            self.services.ollama_url = url
        if environ.get('OLLAMA_MODEL'):
            self.services.stance_model = environ['OLLAMA_MODEL']
        if environ.get('CLUSTER_THRESHOLD'):
            self.redundancy.similarity_threshold = float(environ['CLUSTER_THRESHOLD'])
