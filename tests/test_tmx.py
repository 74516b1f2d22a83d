import base64
import gzip
import struct
import xml.etree.ElementTree as ET
import zlib
from pathlib import Path

import pytest

from tmx_render.errors import InvalidTileGIDError
from tmx_render.geometry import Rect
from tmx_render.map.tmx import (
    FLIPPED_DIAGONALLY_FLAG, FLIPPED_HORIZONTALLY_FLAG, FLIPPED_VERTICALLY_FLAG,
    LayerData, LayerGroup, ObjectGroup, TiledMap, TileLayer, Tileset
)


TMX = """<?xml version="1.0" encoding="UTF-8"?>
<map version="1.10" orientation="orthogonal" renderorder="right-down"
     width="2" height="2" tilewidth="16" tileheight="16" infinite="0">
 <properties>
  <property name="title" value="test"/>
 </properties>
 <tileset firstgid="1" name="atlas" tilewidth="16" tileheight="16"
          tilecount="4" columns="4">
  <image source="atlas.png" width="64" height="16" trans="ff00ff"/>
  <tile id="0" type="water">
   <properties>
    <property name="speed" type="int" value="3"/>
    <property name="deep" type="bool" value="true"/>
   </properties>
   <animation>
    <frame tileid="0" duration="100"/>
    <frame tileid="1" duration="250"/>
   </animation>
  </tile>
  <tile id="2" class="wall">
   <objectgroup draworder="index">
    <object id="1" x="4" y="4" width="4" height="4"/>
    <object id="2" x="1" y="1"><point/></object>
    <object id="3" x="0.5" y="2.9" width="3.7" height="1"/>
   </objectgroup>
  </tile>
 </tileset>
 <tileset firstgid="5" source="sub/props.tsx"/>
 <layer id="1" name="ground" width="2" height="2">
  <data encoding="csv">
1,2,
3,0
</data>
 </layer>
 <objectgroup id="2" name="spawns">
  <object id="4" x="10" y="10"/>
 </objectgroup>
 <group id="3" name="deco" visible="0">
  <layer id="4" name="flowers" width="2" height="2" opacity="0.25">
   <data encoding="csv">0,0,0,5</data>
  </layer>
 </group>
</map>
"""

TSX = """<?xml version="1.0" encoding="UTF-8"?>
<tileset name="props" tilewidth="16" tileheight="32" tilecount="1" columns="0">
 <tile id="0">
  <image source="../img/tree.png" width="16" height="32"/>
 </tile>
</tileset>
"""


@pytest.fixture
def tmx_path(tmp_path) -> Path:
    (tmp_path / 'sub').mkdir()
    (tmp_path / 'sub' / 'props.tsx').write_text(TSX)
    path = tmp_path / 'level.tmx'
    path.write_text(TMX)
    return path


def data_element(encoding, text, compression=None) -> ET.Element:
    elem = ET.Element('data')
    elem.set('encoding', encoding)
    if compression:
        elem.set('compression', compression)
    elem.text = text
    return elem


def test_map_attributes(tmx_path):
    tmx_map = TiledMap.load(tmx_path)

    assert tmx_map.orientation == 'orthogonal'
    assert tmx_map.renderorder == 'right-down'
    assert (tmx_map.width, tmx_map.height) == (2, 2)
    assert (tmx_map.tilewidth, tmx_map.tileheight) == (16, 16)
    assert tmx_map.properties['title'].value == 'test'
    assert tmx_map.filesystem is not None


def test_embedded_tileset(tmx_path):
    tileset = TiledMap.load(tmx_path).tilesets[0]

    assert tileset.firstgid == 1
    assert (tileset.tilecount, tileset.columns) == (4, 4)
    assert tileset.image.source == 'atlas.png'
    assert tileset.image.trans_rgb() == (255, 0, 255)
    assert tileset.base_dir == str(tmx_path.parent)


def test_tile_properties_and_animation(tmx_path):
    tile = TiledMap.load(tmx_path).tilesets[0].get_tile(0)

    assert tile.type == 'water'
    assert tile.properties['speed'].value == 3
    assert tile.properties['deep'].value is True
    assert [(f.tileid, f.duration) for f in tile.animation] == [(0, 100), (1, 250)]


def test_tile_collision_rects(tmx_path):
    tile = TiledMap.load(tmx_path).tilesets[0].get_tile(2)

    assert tile.type == 'wall'
    # the point object is not a rectangle
    assert tile.collision_rects() == [Rect(4, 4, 8, 8), Rect(0, 2, 4, 3)]


def test_tile_without_definition(tmx_path):
    tileset = TiledMap.load(tmx_path).tilesets[0]
    assert tileset.get_tile(1) is None


def test_external_tileset_paths(tmx_path):
    tileset = TiledMap.load(tmx_path).tilesets[1]

    assert tileset.firstgid == 5
    assert tileset.name == 'props'
    assert tileset.source == 'sub/props.tsx'
    assert tileset.image is None
    full = Path(tileset.get_file_full_path(tileset.get_tile(0).image.source))
    assert full.resolve() == (tmx_path.parent / 'img' / 'tree.png').resolve()


def test_layers_and_groups(tmx_path):
    tmx_map = TiledMap.load(tmx_path)

    assert [type(layer) for layer in tmx_map.layers] == [TileLayer, ObjectGroup, LayerGroup]
    assert [layer.name for layer in tmx_map.tile_layers] == ['ground', 'flowers']
    assert list(tmx_map.tile_layers[0].data.tiles) == [1, 2, 3, 0]
    assert tmx_map.tile_layers[1].opacity == 0.25
    assert tmx_map.layers[2].layers == [tmx_map.tile_layers[1]]
    assert tmx_map.layers[2].visible is False


def test_missing_external_tileset_raises(tmp_path):
    path = tmp_path / 'level.tmx'
    path.write_text(TMX)

    with pytest.raises(FileNotFoundError):
        TiledMap.load(path)


def test_malformed_xml_raises(tmp_path):
    path = tmp_path / 'broken.tmx'
    path.write_text('<map><layer>')

    with pytest.raises(ET.ParseError):
        TiledMap.load(path)


def test_gid_decoding(tmx_path):
    tmx_map = TiledMap.load(tmx_path)

    tile = tmx_map.tile_gid_to_tile(3 | FLIPPED_HORIZONTALLY_FLAG | FLIPPED_DIAGONALLY_FLAG)
    assert tile.tileset is tmx_map.tilesets[0]
    assert tile.id == 2
    assert tile.gid == 3
    assert tile.horizontal_flip and tile.diagonal_flip
    assert not tile.vertical_flip
    assert tile.definition.type == 'wall'

    tile = tmx_map.tile_gid_to_tile(5 | FLIPPED_VERTICALLY_FLAG)
    assert tile.tileset.name == 'props'
    assert tile.id == 0
    assert tile.vertical_flip


def test_gid_zero_is_nil(tmx_path):
    tmx_map = TiledMap.load(tmx_path)

    assert tmx_map.tile_gid_to_tile(0).is_nil()
    assert tmx_map.tile_gid_to_tile(FLIPPED_HORIZONTALLY_FLAG).is_nil()
    assert tmx_map.tile_gid_to_tile(0).gid == 0


def test_gid_below_first_tileset_is_invalid():
    tmx_map = TiledMap(tilesets=[Tileset(firstgid=10, name='t', tilewidth=16, tileheight=16)])

    with pytest.raises(InvalidTileGIDError) as excinfo:
        tmx_map.tile_gid_to_tile(4)

    assert excinfo.value.gid == 4


def test_tilesets_sorted_by_firstgid(tmp_path):
    (tmp_path / 'sub').mkdir()
    (tmp_path / 'sub' / 'props.tsx').write_text(TSX)
    swapped = TMX.replace('firstgid="5" source', 'firstgid="0" source', 1)
    swapped = swapped.replace('<tileset firstgid="1" name', '<tileset firstgid="5" name', 1)
    swapped = swapped.replace('firstgid="0" source', 'firstgid="1" source', 1)
    path = tmp_path / 'level.tmx'
    path.write_text(swapped)

    tmx_map = TiledMap.load(path)

    assert [ts.name for ts in tmx_map.tilesets] == ['props', 'atlas']


def test_csv_data():
    data = LayerData()
    data.decode_data(data_element('csv', '\n1,2,\n3,4,\n'))
    assert list(data.tiles) == [1, 2, 3, 4]


@pytest.mark.parametrize("compression,compress", [
    (None, lambda raw: raw),
    ('zlib', zlib.compress),
    ('gzip', gzip.compress),
])
def test_base64_data(compression, compress):
    gids = [1, 0, 7, 3 | FLIPPED_HORIZONTALLY_FLAG]
    raw = struct.pack('<4I', *gids)
    text = base64.b64encode(compress(raw)).decode('ascii')

    data = LayerData()
    data.decode_data(data_element('base64', text, compression))

    assert list(data.tiles) == gids
    assert data.compression == compression


def test_xml_tile_data():
    elem = ET.fromstring('<data><tile gid="2"/><tile/><tile gid="9"/></data>')
    data = LayerData()
    data.decode_data(elem)
    assert list(data.tiles) == [2, 0, 9]



def test_duplicate_tile_definitions_keep_the_first():
    elem = ET.fromstring(
        '<tileset name="t" tilewidth="16" tileheight="16" tilecount="2" columns="2">'
        ' <tile id="0" type="first"/>'
        ' <tile id="0" type="second"/>'
        '</tileset>'
    )

    tileset = Tileset.from_xml(elem, firstgid=1, base_dir='')

    assert tileset.get_tile(0).type == 'first'
    assert len(tileset.tiles) == 1


def test_tile_layer_states_follow_groups(tmx_path):
    states = TiledMap.load(tmx_path).tile_layer_states()

    assert [state.layer.name for state in states] == ['ground', 'flowers']
    assert (states[0].visible, states[0].opacity) == (True, 1.0)
    # "flowers" is visible itself but sits in the hidden group "deco"
    assert states[1].layer.visible is True
    assert (states[1].visible, states[1].opacity) == (False, 0.25)


def test_nested_group_opacity_multiplies():
    layer = TileLayer(name='l', width=1, height=1, opacity=0.5)
    inner = LayerGroup(name='inner', opacity=0.5, layers=[layer])
    outer = LayerGroup(name='outer', opacity=0.8, layers=[inner])
    tmx_map = TiledMap(layers=[ObjectGroup(name='spawns'), outer])

    (state,) = tmx_map.tile_layer_states()

    assert state.layer is layer
    assert state.visible is True
    assert state.opacity == pytest.approx(0.2)
