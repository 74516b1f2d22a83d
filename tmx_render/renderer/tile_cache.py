"""
Tile image decoding, slicing and caching (PIL).

=============================================================================
TWO KINDS OF TILESETS
=============================================================================

1. ATLAS TILESET: one image, tiles laid out on a grid.

   margin = pixels around the EDGE of the whole image
   spacing = pixels BETWEEN tiles

       +--+===+-+===+-+===+
       |  | 0 | | 1 | | 2 |     tile i:
       +--+===+-+===+-+===+       col = i % columns
       |  | 3 | | 4 | | 5 |       row = i // columns
       +--+===+-+===+-+===+       x = col * tilewidth + col * spacing + margin
                                   y = row * tileheight + row * spacing + margin

2. IMAGE COLLECTION TILESET: every tile has its own image file, possibly
   of its own size.

=============================================================================
LAZY, BUT WHOLE-TILESET
=============================================================================

Nothing is decoded until a layer actually references a tileset. The first
reference to ANY tile of a tileset decodes the whole tileset in one pass:

- atlas: decode the atlas once and crop every tile out of it
- collection: decode every tile's own image

Every later lookup into that tileset is a dictionary hit keyed by GID. A
cached image is never modified; orientation flags are applied to a new
image on every lookup.

=============================================================================
ERRORS
=============================================================================

A missing file (OSError) or an undecodable one
(PIL.UnidentifiedImageError) propagates unchanged to the render call.
A tileset that loaded fine but has no image for the requested GID raises
MissingTileImageError.

=============================================================================
"""

import logging
from typing import Dict, Optional, Set

import numpy as np
from PIL import Image

from ..errors import MissingTileImageError
from ..geometry import Rect
from ..map.filesystem import LocalFileSystem
from ..map.tmx import ImageSource, LayerTile, Tileset
from .engine import RendererEngine

logger = logging.getLogger(__name__)


def image_bounds(image: Image.Image) -> Rect:
    return Rect(0, 0, image.width, image.height)


def apply_color_key(image: Image.Image, rgb: tuple) -> Image.Image:
    """Return a copy of an RGBA image with every `rgb` pixel fully transparent."""
    pixels = np.array(image)
    r, g, b = rgb
    key = (pixels[..., 0] == r) & (pixels[..., 1] == g) & (pixels[..., 2] == b)
    pixels[key, 3] = 0
    return Image.fromarray(pixels)


class TileImageCache:
    """
    GID -> decoded tile image, owned by one Renderer.

    Parameters:
    -----------
    engine : RendererEngine
        Applies the layer cell's flip flags to every returned image.
    filesystem : object with open(path), optional
        Where tileset images are read from. Defaults to the local disk.
    """

    def __init__(self, engine: RendererEngine, filesystem=None):
        self.engine = engine
        self.filesystem = filesystem or LocalFileSystem()

        # GID -> un-oriented tile image
        self.tile_cache: Dict[int, Image.Image] = {}

        # firstgid of every tileset already decoded
        self.loaded_tilesets: Set[int] = set()

        # Number of image files decoded so far
        self.decode_count = 0

    def __len__(self):
        return len(self.tile_cache)

    def __contains__(self, gid: int) -> bool:
        return gid in self.tile_cache

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def get_tile_image(self, tile: LayerTile) -> Image.Image:
        """
        Oriented image for a (non-nil) layer tile.

        Decodes the tile's tileset on first use. Raises
        MissingTileImageError if the tileset has no image for this GID.
        """
        gid = tile.gid
        image = self.tile_cache.get(gid)
        if image is None:
            if tile.tileset.firstgid not in self.loaded_tilesets:
                self.load_tileset(tile.tileset)
            image = self.tile_cache.get(gid)
            if image is None:
                raise MissingTileImageError(gid, tile.tileset.name)

        return self.engine.rotate_tile_image(tile, image)

    # =========================================================================
    # TILESET LOADING
    # =========================================================================

    def load_tileset(self, tileset: Tileset):
        """Decode a tileset and cache all its tiles."""
        if tileset.image is not None:
            self._load_atlas_tileset(tileset)
        else:
            self._load_collection_tileset(tileset)
        self.loaded_tilesets.add(tileset.firstgid)

    def _decode(self, tileset: Tileset, source: ImageSource) -> Image.Image:
        path = tileset.get_file_full_path(source.source)
        with self.filesystem.open(path) as f:
            with Image.open(f) as opened:
                # convert() forces the decode while the file is still open
                image = opened.convert('RGBA')
        self.decode_count += 1

        key = source.trans_rgb()
        if key is not None:
            image = apply_color_key(image, key)
        return image

    def _load_collection_tileset(self, tileset: Tileset):
        loaded = 0
        for tile_id, tile in tileset.tiles.items():
            if tile.image is None:
                continue
            self.tile_cache[tileset.firstgid + tile_id] = self._decode(tileset, tile.image)
            loaded += 1
        logger.debug("Loaded image collection '%s': %d tiles", tileset.name, loaded)

    def _load_atlas_tileset(self, tileset: Tileset):
        atlas = self._decode(tileset, tileset.image)

        # The descriptor's size wins; the decoded size covers TSX files
        # that omit it
        atlas_width = tileset.image.width or atlas.width
        atlas_height = tileset.image.height or atlas.height

        tw = tileset.tilewidth
        th = tileset.tileheight
        spacing = tileset.spacing
        margin = tileset.margin

        columns = tileset.columns
        if columns == 0 and tw + spacing > 0:
            columns = atlas_width // (tw + spacing)

        tilecount = tileset.tilecount
        if tilecount == 0 and th + spacing > 0:
            tilecount = (atlas_height // (th + spacing)) * columns

        if columns <= 0:
            logger.debug("Atlas tileset '%s' has no columns, nothing to slice",
                         tileset.name)
            return

        for tile_id in range(tilecount):
            col = tile_id % columns
            row = tile_id // columns
            x = col * tw + col * spacing + margin
            y = row * th + row * spacing + margin
            self.tile_cache[tileset.firstgid + tile_id] = atlas.crop((x, y, x + tw, y + th))

        logger.debug("Sliced atlas tileset '%s' (%dx%d): %d tiles in %d columns",
                     tileset.name, atlas.width, atlas.height, tilecount, columns)

    def cached_image(self, gid: int) -> Optional[Image.Image]:
        """The un-oriented cached image for gid, without loading anything."""
        return self.tile_cache.get(gid)
