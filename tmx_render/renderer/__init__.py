# ============================================
# tmx_render/renderer/__init__.py
# ============================================
"""Placement engines, tile image cache and layer compositing"""

from .renderer import (
    Renderer, LayerObjects, TileObject, AnimationTile, JpegOptions, GifOptions
)
from .engine import RendererEngine, OrthogonalRendererEngine
from .tile_cache import TileImageCache
from .collision import CollisionMap

__all__ = ["Renderer", "LayerObjects", "TileObject", "AnimationTile",
           "JpegOptions", "GifOptions", "RendererEngine",
           "OrthogonalRendererEngine", "TileImageCache", "CollisionMap"]
