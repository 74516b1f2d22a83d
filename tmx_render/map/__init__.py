"""Map model, TMX loading and file access"""

from .tmx import TiledMap, Tileset, Tile, TileLayer, LayerGroup, LayerState, LayerTile
from .filesystem import LocalFileSystem, ZipFileSystem

__all__ = ["TiledMap", "Tileset", "Tile", "TileLayer", "LayerGroup", "LayerState", "LayerTile",
           "LocalFileSystem", "ZipFileSystem"]
