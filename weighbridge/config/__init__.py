from weighbridge.config.scale_models import (
    PRESET_SCALE_MODELS,
    ScaleModelConfig,
    get_model,
    load_models,
)
from weighbridge.config.settings import TerminalSettings

__all__ = [
    "PRESET_SCALE_MODELS",
    "ScaleModelConfig",
    "get_model",
    "load_models",
    "TerminalSettings",
]
