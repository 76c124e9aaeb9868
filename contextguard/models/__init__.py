"""Model capability data."""

from contextguard.models.registry import ModelInfo, ModelRegistry

__all__ = ["ModelInfo", "ModelRegistry"]
