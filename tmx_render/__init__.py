"""
TMX Render - composites Tiled (TMX) maps into a single raster image

Requirements:
    pip install pillow numpy
"""

from .errors import (
    RenderError, UnsupportedOrientationError, UnsupportedRenderOrderError,
    InvalidTileGIDError, MissingTileImageError
)
from .geometry import Rect
from .map import TiledMap, LocalFileSystem, ZipFileSystem
from .renderer import (
    Renderer, LayerObjects, TileObject, AnimationTile,
    JpegOptions, GifOptions, CollisionMap
)

__version__ = "1.0.0"
__all__ = [
    "Renderer",
    "LayerObjects",
    "TileObject",
    "AnimationTile",
    "JpegOptions",
    "GifOptions",
    "CollisionMap",
    "TiledMap",
    "LocalFileSystem",
    "ZipFileSystem",
    "Rect",
    "RenderError",
    "UnsupportedOrientationError",
    "UnsupportedRenderOrderError",
    "InvalidTileGIDError",
    "MissingTileImageError",
]
