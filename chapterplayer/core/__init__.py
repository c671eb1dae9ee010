"""Chapter player runtime: state, assets, effects and orchestration."""

from .state import StateManager
from .assets import AssetManager
from .resolvers import (
    AssetResolver, AudioBackend, MappingAssetResolver, FileAssetResolver,
    HttpAssetResolver, LocatorAssetResolver, SilentAudioBackend,
)
from .presentation import Presentation
from .effects import EffectsProcessor
from .game import GameManager
from .stage import Stage, Portrait

__all__ = [
    'StateManager',
    'AssetManager',
    'AssetResolver', 'AudioBackend', 'MappingAssetResolver', 'FileAssetResolver',
    'HttpAssetResolver', 'LocatorAssetResolver', 'SilentAudioBackend',
    'Presentation',
    'EffectsProcessor',
    'GameManager',
    'Stage', 'Portrait',
]
