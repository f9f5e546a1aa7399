from __future__ import annotations

from dataclasses import dataclass, field

from .config import ConfigManager, GraphRAGConfig
from .metrics import Metrics, create_metrics


@dataclass
class EngineContext:
    """Everything a retriever or pipeline needs besides its stores.

    Passed explicitly so several engines can coexist in one process, each
    with its own configuration and metric registry.
    """

    config_manager: ConfigManager = field(default_factory=ConfigManager)
    metrics: Metrics = field(default_factory=create_metrics)

    @classmethod
    def with_config(cls, config: GraphRAGConfig) -> "EngineContext":
        return cls(config_manager=ConfigManager(config))

    @property
    def config(self) -> GraphRAGConfig:
        return self.config_manager.get()
