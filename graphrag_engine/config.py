"""Engine configuration: feature toggles, fusion weights and budgets.

Defaults can be overridden from ``GRAPHRAG_*`` environment variables and the
whole config round-trips through JSON for export/import. A
:class:`ConfigManager` holds the live value; the retriever receives it through
an explicit :class:`~graphrag_engine.context.EngineContext` rather than a
global.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable

from .error_codes import ConfigurationError, StoreError
from .models import SearchStrategy

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "True", "yes", "YES", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip() in _TRUE


def _env_num(name: str, default: float, cast: Callable[[str], Any]) -> Any:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        logger.warning("ignoring malformed %s=%r", name, raw)
        return default


@dataclass(frozen=True)
class GraphRAGConfig:
    # Feature toggles
    hyde_enabled: bool = True
    community_detection_enabled: bool = True
    pagerank_enabled: bool = True
    reranking_enabled: bool = False
    synthesis_enabled: bool = True
    # Hybrid retrieval toggle and fusion weights
    hybrid_enabled: bool = True
    fusion_text_weight: float = 0.7
    fusion_graph_weight: float = 0.3
    search_strategy: SearchStrategy = SearchStrategy.AUTOMATIC
    # Budgets
    max_query_time_ms: int = 5000
    max_memory_mb: int = 100
    batch_size: int = 10

    def fusion_weights(self) -> tuple[float, float]:
        """Fusion weights clamped to >= 0 and scaled to sum 1."""
        text = max(0.0, float(self.fusion_text_weight))
        graph = max(0.0, float(self.fusion_graph_weight))
        total = text + graph
        if total <= 0:
            return 1.0, 0.0
        return text / total, graph / total

    def active_features(self) -> list[str]:
        features: list[str] = []
        if self.hyde_enabled:
            features.append("HyDE")
        if self.community_detection_enabled:
            features.append("Community")
        if self.pagerank_enabled:
            features.append("PageRank")
        if self.reranking_enabled:
            features.append("Reranking")
        if self.synthesis_enabled:
            features.append("Synthesis")
        return features

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["search_strategy"] = self.search_strategy.value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphRAGConfig":
        if not isinstance(data, dict):
            raise ConfigurationError("Invalid configuration: expected a JSON object")
        defaults = cls()
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            raw = data[f.name]
            current = getattr(defaults, f.name)
            try:
                if f.name == "search_strategy":
                    values[f.name] = SearchStrategy.parse(raw)
                elif isinstance(current, bool):
                    if not isinstance(raw, bool):
                        raise TypeError(f"{f.name} must be a boolean")
                    values[f.name] = raw
                elif isinstance(current, int):
                    values[f.name] = int(raw)
                else:
                    values[f.name] = float(raw)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid configuration: {e}") from e
        return replace(defaults, **values)

    @classmethod
    def from_json(cls, text: str) -> "GraphRAGConfig":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_env(cls) -> "GraphRAGConfig":
        d = cls()
        return cls(
            hyde_enabled=_env_bool("GRAPHRAG_HYDE_ENABLED", d.hyde_enabled),
            community_detection_enabled=_env_bool("GRAPHRAG_COMMUNITY_ENABLED", d.community_detection_enabled),
            pagerank_enabled=_env_bool("GRAPHRAG_PAGERANK_ENABLED", d.pagerank_enabled),
            reranking_enabled=_env_bool("GRAPHRAG_RERANKING_ENABLED", d.reranking_enabled),
            synthesis_enabled=_env_bool("GRAPHRAG_SYNTHESIS_ENABLED", d.synthesis_enabled),
            hybrid_enabled=_env_bool("GRAPHRAG_HYBRID_ENABLED", d.hybrid_enabled),
            fusion_text_weight=_env_num("GRAPHRAG_FUSION_TEXT_WEIGHT", d.fusion_text_weight, float),
            fusion_graph_weight=_env_num("GRAPHRAG_FUSION_GRAPH_WEIGHT", d.fusion_graph_weight, float),
            search_strategy=SearchStrategy.parse(os.getenv("GRAPHRAG_SEARCH_STRATEGY", d.search_strategy.value)),
            max_query_time_ms=_env_num("GRAPHRAG_MAX_QUERY_TIME_MS", d.max_query_time_ms, int),
            max_memory_mb=_env_num("GRAPHRAG_MAX_MEMORY_MB", d.max_memory_mb, int),
            batch_size=_env_num("GRAPHRAG_BATCH_SIZE", d.batch_size, int),
        )


class ConfigManager:
    """Holds the live configuration, optionally persisted as a JSON file."""

    def __init__(self, config: GraphRAGConfig | None = None, *, path: Path | str | None = None) -> None:
        self._lock = threading.Lock()
        self._path = Path(path) if path is not None else None
        self._config = config or self._load() or GraphRAGConfig()

    def _load(self) -> GraphRAGConfig | None:
        if self._path is None or not self._path.exists():
            return None
        try:
            return GraphRAGConfig.from_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ConfigurationError) as e:
            # A broken config file must not take the service down.
            logger.warning("falling back to default config: %s", e)
            return None

    def _save_unlocked(self, config: GraphRAGConfig) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(config.to_json(), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            raise StoreError(f"Failed to write config: {e}", path=str(self._path), write=True) from e

    def get(self) -> GraphRAGConfig:
        with self._lock:
            return self._config

    def set(self, config: GraphRAGConfig) -> GraphRAGConfig:
        with self._lock:
            self._save_unlocked(config)
            self._config = config
            return config

    def update(self, fn: Callable[[GraphRAGConfig], GraphRAGConfig]) -> GraphRAGConfig:
        with self._lock:
            config = fn(self._config)
            self._save_unlocked(config)
            self._config = config
            return config

    def toggle(self, flag: str) -> GraphRAGConfig:
        if flag not in {
            "hyde_enabled",
            "community_detection_enabled",
            "pagerank_enabled",
            "reranking_enabled",
            "synthesis_enabled",
            "hybrid_enabled",
        }:
            raise ConfigurationError(f"Unknown feature toggle: {flag}")
        return self.update(lambda c: replace(c, **{flag: not getattr(c, flag)}))

    def export_config(self) -> str:
        return self.get().to_json()

    def import_config(self, text: str) -> GraphRAGConfig:
        return self.set(GraphRAGConfig.from_json(text))

    def reset_to_defaults(self) -> GraphRAGConfig:
        return self.set(GraphRAGConfig())
