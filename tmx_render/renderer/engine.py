"""
Placement engines: where each tile goes on the canvas.

=============================================================================
ENGINE INTERFACE
=============================================================================

The compositor never does geometry itself. It asks an engine, chosen once
per map orientation:

    init(tmx_map)                       capture grid and tile sizes
    get_final_image_size()              canvas rectangle
    get_tile_position(x, y)             nominal grid cell
    get_true_tile_position(bounds,x,y)  where THIS tile image goes
    rotate_tile_image(tile, image)      apply the cell's flip flags

Only ORTHOGONAL exists. Isometric, staggered and hexagonal maps would be
new RendererEngine subclasses registered in ENGINES; the compositor would
not change.

=============================================================================
TALL TILES
=============================================================================

Tile images may be larger than the map's grid cell (trees, buildings).
Tiled draws them anchored at the BOTTOM-LEFT of their cell, so the extra
height sticks out upwards into the row above:

           +----+
           |    |  <- extra height
    +------+----+------+
    |      |tree|      |  <- grid row y
    +------+----+------+
           ^ cell bottom-left is the anchor

=============================================================================
FLIP FLAGS
=============================================================================

    diagonal    transpose (swap x/y); width and height swap
    horizontal  mirror left/right
    vertical    mirror top/bottom

The diagonal flip is applied FIRST, which is how Tiled combines them into
the four 90 degree rotations.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Dict, Type

from PIL import Image

from ..geometry import Rect
from ..map.tmx import LayerTile, TiledMap


class RendererEngine(ABC):
    """Geometry strategy for one map orientation."""

    @abstractmethod
    def init(self, tmx_map: TiledMap):
        ...

    @abstractmethod
    def get_final_image_size(self) -> Rect:
        ...

    @abstractmethod
    def rotate_tile_image(self, tile: LayerTile, image: Image.Image) -> Image.Image:
        ...

    @abstractmethod
    def get_tile_position(self, x: int, y: int) -> Rect:
        ...

    @abstractmethod
    def get_true_tile_position(self, tile_rect: Rect, x: int, y: int) -> Rect:
        ...


class OrthogonalRendererEngine(RendererEngine):
    """Square grid: cell (x, y) spans tilewidth x tileheight pixels."""

    def __init__(self):
        self.width = 0
        self.height = 0
        self.tilewidth = 0
        self.tileheight = 0

    def init(self, tmx_map: TiledMap):
        self.width = tmx_map.width
        self.height = tmx_map.height
        self.tilewidth = tmx_map.tilewidth
        self.tileheight = tmx_map.tileheight

    def get_final_image_size(self) -> Rect:
        return Rect(0, 0, self.width * self.tilewidth,
                    self.height * self.tileheight)

    def rotate_tile_image(self, tile: LayerTile, image: Image.Image) -> Image.Image:
        # transpose() always returns a new image, the cached one is untouched
        result = image
        if tile.diagonal_flip:
            result = result.transpose(Image.Transpose.TRANSPOSE)
        if tile.horizontal_flip:
            result = result.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        if tile.vertical_flip:
            result = result.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
        if result is image:
            result = image.copy()
        return result

    def get_tile_position(self, x: int, y: int) -> Rect:
        return Rect(x * self.tilewidth, y * self.tileheight,
                    (x + 1) * self.tilewidth, (y + 1) * self.tileheight)

    def get_true_tile_position(self, tile_rect: Rect, x: int, y: int) -> Rect:
        cell = self.get_tile_position(x, y)
        return Rect(cell.min_x, cell.max_y - tile_rect.height,
                    cell.min_x + tile_rect.width, cell.max_y)


ENGINES: Dict[str, Type[RendererEngine]] = {
    'orthogonal': OrthogonalRendererEngine,
}
