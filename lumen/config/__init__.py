"""
Configuration Module

Centralized configuration management for the knowledge core.
"""

from lumen.config.settings import (
    EmbeddingSettings,
    KnowledgeSettings,
    LLMSettings,
    ObservabilitySettings,
    Settings,
    get_settings,
)

__all__ = [
    "EmbeddingSettings",
    "KnowledgeSettings",
    "LLMSettings",
    "ObservabilitySettings",
    "Settings",
    "get_settings",
]
