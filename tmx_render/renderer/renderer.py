"""
Compositing of Tiled map layers into one RGBA image.

=============================================================================
PIPELINE
=============================================================================

    Renderer(tmx_map)
        |  picks the placement engine for the orientation (once)
        v
    render_visible_layers()
        |  every visible tile layer, declaration order
        v
    render_layer(index)
        |  every cell, row by row, left to right
        |
        +--> TileImageCache.get_tile_image()     decoded + oriented image
        +--> engine.get_true_tile_position()     where it goes
        +--> collision rectangles -> CollisionMap
        +--> animation frames     -> AnimationTile
        +--> draw onto self.result

The canvas (self.result) accumulates across calls. Use clear() to start a
fresh image, e.g. to export each layer on its own:

    renderer = Renderer(tmx_map)
    for index, layer in enumerate(tmx_map.tile_layers):
        renderer.clear()
        renderer.render_layer(index)
        with open(f"{layer.name}.png", "wb") as f:
            renderer.save_as_png(f)

=============================================================================
OPACITY
=============================================================================

Layers with opacity < 1.0 are drawn through a uniform alpha mask of
round(opacity * 255): every source alpha is scaled by mask / 255 before the
"over" composite. Fully opaque layers skip the mask.

The opacity used is the layer's effective one: its own times that of
every group it sits in. Likewise a layer inside a hidden group is not
visible (see TiledMap.tile_layer_states).

=============================================================================
ERRORS
=============================================================================

Unsupported orientation is rejected by the constructor, unsupported render
order by every render call before anything is drawn. A failing tile image
aborts the render call at that tile; whatever was drawn before it stays on
the canvas. A failing ANIMATION FRAME is different: the frame is dropped
and rendering continues.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional

from PIL import Image, ImageChops

from ..errors import RenderError, UnsupportedOrientationError, UnsupportedRenderOrderError
from ..geometry import Rect
from ..map.tmx import LayerTile, TiledMap
from .collision import CollisionMap
from .engine import ENGINES, RendererEngine
from .tile_cache import TileImageCache, image_bounds

logger = logging.getLogger(__name__)


# Render orders this compositor can walk. "" is what maps written before
# Tiled 0.9 carry, and means right-down.
SUPPORTED_RENDER_ORDERS = ("", "right-down")


# =============================================================================
# RENDER RESULTS
# =============================================================================

@dataclass
class TileObject:
    """A drawn tile: its oriented image, canvas rectangle and tile class."""
    tile_image: Image.Image
    tile_pos: Rect
    tile_plane: str = ""


@dataclass
class AnimationTile:
    """
    Frames of an animated tile, all drawn at the same canvas rectangle.

    tile_images[0] is the image that was drawn; the following frames come
    from the tile definition's animation, minus any frame that could not be
    resolved. duration is left at 0: per-frame durations stay on the tile
    definition (Tile.animation).
    """
    tile_images: List[Image.Image]
    tile_pos: Rect
    tile_plane: str = ""
    duration: int = 0


@dataclass
class LayerObjects:
    """What a render call collected besides the pixels."""
    animation: List[AnimationTile] = field(default_factory=list)
    tile_objects: List[TileObject] = field(default_factory=list)
    collision: CollisionMap = field(default_factory=CollisionMap)

    # Plain dict snapshots: a missing key raises instead of growing the map
    @property
    def x_collision(self) -> Dict[int, List[int]]:
        return dict(self.collision.x)

    @property
    def y_collision(self) -> Dict[int, List[int]]:
        return dict(self.collision.y)

    def merge(self, other: 'LayerObjects'):
        self.animation.extend(other.animation)
        self.tile_objects.extend(other.tile_objects)
        self.collision.merge(other.collision)


# =============================================================================
# ENCODER OPTIONS
# =============================================================================

@dataclass
class JpegOptions:
    """JPEG quality, 1 (worst) to 100 (best)."""
    quality: int = 75


@dataclass
class GifOptions:
    """Palette size (2-256) and whether to dither while quantizing."""
    num_colors: int = 256
    dither: bool = True


# =============================================================================
# RENDERER
# =============================================================================

class Renderer:
    """
    Renders a TiledMap into self.result (an RGBA PIL image).

    One Renderer owns one tile cache and one canvas. It is not thread safe;
    separate Renderer instances share nothing and can be used in parallel.

    Parameters:
    -----------
    tmx_map : TiledMap
        Map to render. Only read, never modified.
    filesystem : object with open(path), optional
        Where tileset images are read from. Defaults to the map's own
        filesystem, then to the local disk.

    Raises:
    -------
    UnsupportedOrientationError : if the map is not orthogonal
    """

    def __init__(self, tmx_map: TiledMap, filesystem=None):
        engine_class = ENGINES.get(tmx_map.orientation)
        if engine_class is None:
            raise UnsupportedOrientationError(tmx_map.orientation)

        self.tmx_map = tmx_map
        self.engine: RendererEngine = engine_class()
        self.engine.init(tmx_map)
        self.tile_cache = TileImageCache(self.engine,
                                         filesystem or tmx_map.filesystem)
        self.result: Optional[Image.Image] = None
        self.clear()

    @property
    def bounds(self) -> Rect:
        return self.engine.get_final_image_size()

    @property
    def image(self) -> Image.Image:
        """A copy of the current canvas."""
        return self.result.copy()

    def clear(self):
        """Replace the canvas with a fully transparent one of the same size."""
        self.result = Image.new('RGBA', self.bounds.size, (0, 0, 0, 0))

    def get_tile_image(self, tile: LayerTile) -> Image.Image:
        return self.tile_cache.get_tile_image(tile)

    # =========================================================================
    # LAYER RENDERING
    # =========================================================================

    def render_layer(self, index: int) -> LayerObjects:
        """
        Draw tile layer `index` (see TiledMap.tile_layers) onto the canvas.

        Returns the layer's tiles, animations and collision map.

        Raises:
        -------
        UnsupportedRenderOrderError : before anything is drawn
        InvalidTileGIDError, MissingTileImageError, OSError : from the
            failing tile; earlier tiles stay drawn
        """
        renderorder = self.tmx_map.renderorder
        if renderorder not in SUPPORTED_RENDER_ORDERS:
            raise UnsupportedRenderOrderError(renderorder)

        state = self.tmx_map.tile_layer_states()[index]
        layer = state.layer
        objects = LayerObjects()
        cells = layer.data.tiles
        logger.debug("Rendering layer %d '%s' (opacity %.2f)",
                     index, layer.name, state.opacity)

        i = 0
        for y in range(self.tmx_map.height):
            for x in range(self.tmx_map.width):
                gid = cells[i] if i < len(cells) else 0
                i += 1

                tile = self.tmx_map.tile_gid_to_tile(gid)
                if tile.is_nil():
                    continue

                self._render_tile(tile, x, y, state.opacity, objects)

        logger.debug("Layer %d '%s': %d tiles, %d animations, %d collision points",
                     index, layer.name, len(objects.tile_objects),
                     len(objects.animation), len(objects.collision))
        return objects

    def _render_tile(self, tile: LayerTile, x: int, y: int,
                     opacity: float, objects: LayerObjects):
        image = self.get_tile_image(tile)
        pos = self.engine.get_true_tile_position(image_bounds(image), x, y)
        definition = tile.definition
        plane = definition.type if definition else ""

        if definition is not None:
            for rect in definition.collision_rects():
                if rect.empty:
                    continue
                objects.collision.add_rect(rect.translate(pos.min_x, pos.min_y))

            if definition.animation:
                objects.animation.append(AnimationTile(
                    tile_images=self._animation_frames(tile, image),
                    tile_pos=pos,
                    tile_plane=plane,
                ))

        objects.tile_objects.append(TileObject(tile_image=image, tile_pos=pos,
                                               tile_plane=plane))
        self._draw(image, pos, opacity)

    def _animation_frames(self, tile: LayerTile, first: Image.Image) -> List[Image.Image]:
        frames = [first]
        for frame in tile.definition.animation[1:]:
            image = self._resolve_frame(frame.tileid + tile.tileset.firstgid)
            if image is not None:
                frames.append(image)
        return frames

    def _resolve_frame(self, gid: int) -> Optional[Image.Image]:
        """Image for an animation frame, or None when it can't be resolved."""
        try:
            return self.get_tile_image(self.tmx_map.tile_gid_to_tile(gid))
        except (RenderError, OSError):
            return None

    def _draw(self, image: Image.Image, pos: Rect, opacity: float):
        if opacity < 1:
            mask = Image.new('L', image.size, int(round(opacity * 255)))
            faded = image.copy()
            faded.putalpha(ImageChops.multiply(image.getchannel('A'), mask))
            image = faded

        # Tall tiles on the first row start above the canvas; alpha_composite
        # only accepts destinations inside it
        visible = pos.intersect(self.bounds)
        if visible is None:
            return
        if visible != pos:
            image = image.crop(visible.translate(-pos.min_x, -pos.min_y).as_box())

        self.result.alpha_composite(image, dest=(visible.min_x, visible.min_y))

    def render_visible_layers(self) -> LayerObjects:
        """
        Render every visible tile layer in declaration order. A layer is
        skipped when it, or any group enclosing it, is hidden.

        Collision maps of all layers are concatenated key by key, as are
        the tile and animation lists. The first failing layer aborts the
        pass; layers drawn before it stay on the canvas.
        """
        collected = LayerObjects()
        for index, state in enumerate(self.tmx_map.tile_layer_states()):
            if not state.visible:
                continue
            collected.merge(self.render_layer(index))
        return collected

    # =========================================================================
    # ENCODING
    # =========================================================================

    def save_as_png(self, stream: BinaryIO):
        self.result.save(stream, format='PNG')

    def save_as_jpeg(self, stream: BinaryIO, options: Optional[JpegOptions] = None):
        """JPEG has no alpha channel: the canvas is flattened onto black."""
        options = options or JpegOptions()
        flat = Image.new('RGB', self.result.size, (0, 0, 0))
        flat.paste(self.result, mask=self.result.getchannel('A'))
        flat.save(stream, format='JPEG', quality=options.quality)

    def save_as_gif(self, stream: BinaryIO, options: Optional[GifOptions] = None):
        options = options or GifOptions()
        dither = Image.Dither.FLOYDSTEINBERG if options.dither else Image.Dither.NONE
        paletted = self.result.quantize(colors=options.num_colors,
                                        method=Image.Quantize.FASTOCTREE,
                                        dither=dither)
        paletted.save(stream, format='GIF')
