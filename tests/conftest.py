import array
from pathlib import Path

import pytest
from PIL import Image

from tmx_render.map.tmx import (
    ImageSource, MapObject, ObjectGroup, TiledMap, Tile, TileLayer, Tileset
)


RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
YELLOW = (255, 255, 0, 255)
TRANSPARENT = (0, 0, 0, 0)

COLORS = [RED, GREEN, BLUE, YELLOW]


def make_atlas(path: Path, colors=COLORS, tile=16, columns=None,
               margin=0, spacing=0, background=TRANSPARENT):
    """Save an atlas of solid-colour tiles; returns its (width, height)."""
    columns = columns or len(colors)
    rows = (len(colors) + columns - 1) // columns
    width = 2 * margin + columns * tile + (columns - 1) * spacing
    height = 2 * margin + rows * tile + (rows - 1) * spacing
    image = Image.new('RGBA', (width, height), background)
    for i, color in enumerate(colors):
        x = margin + (i % columns) * (tile + spacing)
        y = margin + (i // columns) * (tile + spacing)
        image.paste(color, (x, y, x + tile, y + tile))
    image.save(path)
    return width, height


def make_tileset(base_dir: Path, tiles=None, firstgid=1, source='atlas.png',
                 tilecount=4, columns=4, width=64, height=16) -> Tileset:
    return Tileset(
        firstgid=firstgid,
        name='atlas',
        tilewidth=16,
        tileheight=16,
        tilecount=tilecount,
        columns=columns,
        image=ImageSource(source=source, width=width, height=height),
        tiles=tiles or {},
        base_dir=str(base_dir),
    )


def make_layer(gids, width=2, height=2, name='ground', opacity=1.0,
               visible=True) -> TileLayer:
    layer = TileLayer(name=name, width=width, height=height,
                      opacity=opacity, visible=visible)
    layer.data.tiles = array.array('I', gids)
    return layer


def make_map(tilesets, layers, width=2, height=2, orientation='orthogonal',
             renderorder='right-down') -> TiledMap:
    return TiledMap(
        orientation=orientation,
        renderorder=renderorder,
        width=width,
        height=height,
        tilewidth=16,
        tileheight=16,
        tilesets=list(tilesets),
        layers=list(layers),
    )


def collision_tile(tile_id, x, y, width, height, type=""):
    """Tile definition with a single rectangular collision object."""
    group = ObjectGroup(objects=[MapObject(id=1, x=x, y=y, width=width, height=height)])
    return Tile(id=tile_id, type=type, objectgroup=group)


@pytest.fixture
def atlas_dir(tmp_path):
    """Directory holding atlas.png: four 16x16 tiles (red, green, blue, yellow)."""
    make_atlas(tmp_path / 'atlas.png')
    return tmp_path


@pytest.fixture
def simple_map(atlas_dir):
    """2x2 map, layer cells [tile 0, tile 1, tile 2, empty]."""
    return make_map([make_tileset(atlas_dir)], [make_layer([1, 2, 3, 0])])
