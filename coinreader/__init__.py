"""
Coin recognition engine: locates six coins in a column, classifies each face
and stabilizes the reading across live camera frames.
"""

__version__ = "1.0.0"

from .config.settings import Config, load_config, save_config
from .core.entities import CoinResult, CoinSide, DetectedRegion, LineValue, ReferenceTemplateSet

__all__ = [
    "Config", "load_config", "save_config",
    "CoinResult", "CoinSide", "DetectedRegion", "LineValue", "ReferenceTemplateSet",
]
