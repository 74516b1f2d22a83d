"""
In-memory model of Tiled maps and a reader for TMX/TSX files.

=============================================================================
WHAT THE RENDERER NEEDS FROM A MAP
=============================================================================

A TMX file is XML:

    <map orientation="orthogonal" renderorder="right-down"
         width="2" height="2" tilewidth="16" tileheight="16">

        <tileset firstgid="1" name="terrain" tilewidth="16" tileheight="16"
                 tilecount="4" columns="4">
            <image source="terrain.png" width="64" height="16"/>
            <tile id="1" type="water">
                <animation>
                    <frame tileid="1" duration="100"/>
                    <frame tileid="2" duration="100"/>
                </animation>
            </tile>
            <tile id="3">
                <objectgroup>
                    <object id="1" x="4" y="4" width="4" height="4"/>
                </objectgroup>
            </tile>
        </tileset>

        <layer name="Ground" width="2" height="2" opacity="0.5">
            <data encoding="csv">1,2,3,0</data>
        </layer>
    </map>

The classes below mirror that structure one to one. The renderer only
reads them; it never modifies the map.

=============================================================================
GLOBAL TILE IDs (GIDs) AND FLIP FLAGS
=============================================================================

Layer cells store 32-bit unsigned values. The three high bits are
orientation flags, the rest is the GID:

    bit 31  horizontal flip
    bit 30  vertical flip
    bit 29  diagonal flip (swap x/y axes)

    gid = value & ~(H | V | D)

GID 0 is the empty cell. Otherwise the owning tileset is the one with the
largest firstgid <= gid, and local tile id = gid - tileset.firstgid.

=============================================================================
"""

import array
import base64
import gzip
import logging
import sys
import xml.etree.ElementTree as ET
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Union

from ..errors import InvalidTileGIDError
from ..geometry import Rect
from .filesystem import LocalFileSystem

logger = logging.getLogger(__name__)


FLIPPED_HORIZONTALLY_FLAG = 0x80000000
FLIPPED_VERTICALLY_FLAG = 0x40000000
FLIPPED_DIAGONALLY_FLAG = 0x20000000
GID_FLAGS_MASK = (FLIPPED_HORIZONTALLY_FLAG | FLIPPED_VERTICALLY_FLAG
                  | FLIPPED_DIAGONALLY_FLAG)


def _parse_properties(elem: ET.Element) -> Dict[str, 'Property']:
    properties = {}
    props_elem = elem.find('properties')
    if props_elem is not None:
        for prop_elem in props_elem.findall('property'):
            prop = Property.from_xml(prop_elem)
            properties[prop.name] = prop
    return properties


def _class_of(elem: ET.Element) -> str:
    # Tiled 1.9 renamed the "type" attribute to "class"
    return elem.get('type') or elem.get('class', '')


# =============================================================================
# PROPERTIES AND IMAGES
# =============================================================================

@dataclass
class Property:
    """Custom key/value attached to a map, tileset, tile, layer or object."""
    name: str
    type: str = "string"
    value: Any = None

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Property':
        prop_type = elem.get('type', 'string')
        # Multi-line strings are stored as element text
        value = elem.get('value')
        if value is None:
            value = elem.text or ''

        if prop_type == 'int':
            value = int(value)
        elif prop_type == 'float':
            value = float(value)
        elif prop_type == 'bool':
            value = value.lower() == 'true'

        return cls(name=elem.get('name'), type=prop_type, value=value)


@dataclass
class ImageSource:
    """
    Reference to an image file, as found in <image> elements.

    Used once per tileset for atlas tilesets, and once per tile for image
    collection tilesets.

    trans is the colour key in RRGGBB hex ("ff00ff"); pixels of exactly that
    colour are made transparent when the image is decoded.
    """
    source: str
    width: Optional[int] = None
    height: Optional[int] = None
    trans: Optional[str] = None

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'ImageSource':
        return cls(
            source=elem.get('source', ''),
            width=int(elem.get('width')) if elem.get('width') else None,
            height=int(elem.get('height')) if elem.get('height') else None,
            trans=elem.get('trans')
        )

    def trans_rgb(self) -> Optional[tuple]:
        """Colour key as an (r, g, b) tuple, or None."""
        if not self.trans:
            return None
        value = self.trans.lstrip('#')
        return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))


# =============================================================================
# OBJECTS (used here for per-tile collision shapes)
# =============================================================================

@dataclass
class MapObject:
    """
    Vector object. Inside a <tile> it describes collision geometry in
    tile-local pixels; only rectangles (no polygon/ellipse/point child)
    become collision rectangles.
    """
    id: int
    name: str = ""
    type: str = ""
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    rotation: float = 0
    gid: Optional[int] = None
    visible: bool = True
    shape: str = "rectangle"
    properties: Dict[str, Property] = field(default_factory=dict)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'MapObject':
        obj = cls(
            id=int(elem.get('id', 0)),
            name=elem.get('name', ''),
            type=_class_of(elem),
            x=float(elem.get('x', 0)),
            y=float(elem.get('y', 0)),
            width=float(elem.get('width', 0)),
            height=float(elem.get('height', 0)),
            rotation=float(elem.get('rotation', 0)),
            visible=elem.get('visible', '1') == '1'
        )
        if elem.get('gid'):
            obj.gid = int(elem.get('gid'))
        for shape in ('ellipse', 'point', 'polygon', 'polyline', 'text'):
            if elem.find(shape) is not None:
                obj.shape = shape
                break
        obj.properties = _parse_properties(elem)
        return obj

    def bounds(self) -> Rect:
        """Pixel rectangle covered by the object (fractions truncated)."""
        return Rect(int(self.x), int(self.y),
                    int(self.x + self.width), int(self.y + self.height))


@dataclass
class ObjectGroup:
    """Object layer, or the collision shapes of a single tile."""
    name: str = ""
    id: int = 0
    visible: bool = True
    opacity: float = 1.0
    properties: Dict[str, Property] = field(default_factory=dict)
    objects: List[MapObject] = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'ObjectGroup':
        group = cls(
            name=elem.get('name', ''),
            id=int(elem.get('id', 0)),
            visible=elem.get('visible', '1') == '1',
            opacity=float(elem.get('opacity', 1.0)),
        )
        group.properties = _parse_properties(elem)
        group.objects = [MapObject.from_xml(e) for e in elem.findall('object')]
        return group


# =============================================================================
# TILES AND TILESETS
# =============================================================================

@dataclass
class Frame:
    """One step of a tile animation: show local tile `tileid` for `duration` ms."""
    tileid: int
    duration: int


@dataclass
class Tile:
    """
    Per-tile metadata inside a tileset.

    Only tiles that carry something (a class, properties, an animation,
    collision shapes or - for image collections - their own image) are
    listed in the TSX, so most local ids have no Tile object at all.
    """
    id: int
    type: str = ""
    properties: Dict[str, Property] = field(default_factory=dict)
    image: Optional[ImageSource] = None
    animation: List[Frame] = field(default_factory=list)
    objectgroup: Optional[ObjectGroup] = None

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'Tile':
        tile = cls(id=int(elem.get('id', 0)), type=_class_of(elem))
        tile.properties = _parse_properties(elem)

        img_elem = elem.find('image')
        if img_elem is not None:
            tile.image = ImageSource.from_xml(img_elem)

        anim_elem = elem.find('animation')
        if anim_elem is not None:
            tile.animation = [
                Frame(tileid=int(f.get('tileid', 0)),
                      duration=int(f.get('duration', 0)))
                for f in anim_elem.findall('frame')
            ]

        group_elem = elem.find('objectgroup')
        if group_elem is not None:
            tile.objectgroup = ObjectGroup.from_xml(group_elem)

        return tile

    def collision_rects(self) -> List[Rect]:
        """Rectangular collision shapes, in tile-local pixel space."""
        if self.objectgroup is None:
            return []
        return [obj.bounds() for obj in self.objectgroup.objects
                if obj.shape == 'rectangle']


@dataclass
class Tileset:
    """
    A collection of tile graphics, either sliced from one atlas image
    (`image` set) or made of individual images (`tiles[i].image` set).

    base_dir is the directory image paths are relative to: the TSX file's
    directory for external tilesets, the TMX file's directory otherwise.
    """
    firstgid: int
    name: str
    tilewidth: int
    tileheight: int
    tilecount: int = 0
    columns: int = 0
    spacing: int = 0
    margin: int = 0
    image: Optional[ImageSource] = None
    tiles: Dict[int, Tile] = field(default_factory=dict)
    properties: Dict[str, Property] = field(default_factory=dict)
    source: Optional[str] = None
    base_dir: str = ""

    @classmethod
    def from_xml(cls, elem: ET.Element, firstgid: int,
                 base_dir: str = "") -> 'Tileset':
        """
        Parse a <tileset> element.

        firstgid comes from the referencing TMX: an external TSX file does
        not know where in the map's GID space it was placed.
        """
        tileset = cls(
            firstgid=firstgid,
            name=elem.get('name', ''),
            tilewidth=int(elem.get('tilewidth', 0)),
            tileheight=int(elem.get('tileheight', 0)),
            tilecount=int(elem.get('tilecount', 0)),
            columns=int(elem.get('columns', 0)),
            spacing=int(elem.get('spacing', 0)),
            margin=int(elem.get('margin', 0)),
            source=elem.get('source'),
            base_dir=base_dir
        )
        tileset.properties = _parse_properties(elem)

        img_elem = elem.find('image')
        if img_elem is not None:
            tileset.image = ImageSource.from_xml(img_elem)

        for tile_elem in elem.findall('tile'):
            tile = Tile.from_xml(tile_elem)
            # first definition of a local id wins
            tileset.tiles.setdefault(tile.id, tile)

        return tileset

    def get_file_full_path(self, source: str) -> str:
        return str(Path(self.base_dir) / source) if self.base_dir else source

    def get_tile(self, local_id: int) -> Optional[Tile]:
        """Tile definition for a local id, or None when the tile has none."""
        return self.tiles.get(local_id)


@dataclass
class LayerTile:
    """
    A decoded layer cell: which tile to draw and how to orient it.

    The nil tile (GID 0) has no tileset and is never drawn.
    """
    id: int = 0
    tileset: Optional[Tileset] = None
    horizontal_flip: bool = False
    vertical_flip: bool = False
    diagonal_flip: bool = False

    def is_nil(self) -> bool:
        return self.tileset is None

    @property
    def gid(self) -> int:
        if self.tileset is None:
            return 0
        return self.tileset.firstgid + self.id

    @property
    def definition(self) -> Optional[Tile]:
        if self.tileset is None:
            return None
        return self.tileset.get_tile(self.id)


NIL_TILE = LayerTile()


# =============================================================================
# LAYERS
# =============================================================================

@dataclass
class LayerData:
    """
    Raw cell values of a tile layer, row-major: tiles[y * width + x].

    Supported encodings: csv, base64 (uncompressed, zlib, gzip, zstd) and
    the deprecated one-<tile>-element-per-cell XML form.
    """
    encoding: Optional[str] = None
    compression: Optional[str] = None
    tiles: array.array = field(default_factory=lambda: array.array('I'))

    def decode_data(self, data_elem: ET.Element):
        encoding = data_elem.get('encoding')
        compression = data_elem.get('compression')

        if encoding == 'csv':
            text = (data_elem.text or '').strip()
            gids = [int(x) for x in text.replace('\n', '').split(',')
                    if x.strip()]
            self.tiles = array.array('I', gids)

        elif encoding == 'base64':
            raw_data = base64.b64decode((data_elem.text or '').strip())

            if compression == 'zlib':
                raw_data = zlib.decompress(raw_data)
            elif compression == 'gzip':
                raw_data = gzip.decompress(raw_data)
            elif compression == 'zstd':
                try:
                    import zstandard
                except ImportError:
                    raise ImportError(
                        "zstandard library required for zstd compression. "
                        "Install with: pip install tmx-render[zstd]"
                    )
                raw_data = zstandard.ZstdDecompressor().decompress(raw_data)

            # Cells are little-endian uint32
            self.tiles = array.array('I')
            self.tiles.frombytes(raw_data)
            if sys.byteorder == 'big':
                self.tiles.byteswap()

        else:
            self.tiles = array.array(
                'I', [int(t.get('gid', 0)) for t in data_elem.findall('tile')]
            )

        self.encoding = encoding
        self.compression = compression


@dataclass
class TileLayer:
    """
    Grid of tile references with its own visibility and opacity
    (0.0 = invisible, 1.0 = opaque).
    """
    name: str
    width: int
    height: int
    id: int = 0
    visible: bool = True
    opacity: float = 1.0
    properties: Dict[str, Property] = field(default_factory=dict)
    data: LayerData = field(default_factory=LayerData)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'TileLayer':
        layer = cls(
            name=elem.get('name', ''),
            width=int(elem.get('width', 0)),
            height=int(elem.get('height', 0)),
            id=int(elem.get('id', 0)),
            visible=elem.get('visible', '1') == '1',
            opacity=float(elem.get('opacity', 1.0)),
        )
        layer.properties = _parse_properties(elem)

        data_elem = elem.find('data')
        if data_elem is not None:
            layer.data.decode_data(data_elem)

        return layer


@dataclass
class LayerGroup:
    """
    Folder of layers. Children are flattened by TiledMap.tile_layers; a
    hidden group hides them and its opacity multiplies into theirs.
    """
    name: str
    id: int = 0
    visible: bool = True
    opacity: float = 1.0
    properties: Dict[str, Property] = field(default_factory=dict)
    layers: List[Union[TileLayer, ObjectGroup, 'LayerGroup']] = field(default_factory=list)

    @classmethod
    def from_xml(cls, elem: ET.Element) -> 'LayerGroup':
        group = cls(
            name=elem.get('name', ''),
            id=int(elem.get('id', 0)),
            visible=elem.get('visible', '1') == '1',
            opacity=float(elem.get('opacity', 1.0)),
        )
        group.properties = _parse_properties(elem)
        group.layers = _parse_layers(elem)
        return group


def _parse_layers(parent: ET.Element) -> list:
    layers = []
    for elem in parent:
        if elem.tag == 'layer':
            layers.append(TileLayer.from_xml(elem))
        elif elem.tag == 'objectgroup':
            layers.append(ObjectGroup.from_xml(elem))
        elif elem.tag == 'group':
            layers.append(LayerGroup.from_xml(elem))
    return layers


class LayerState(NamedTuple):
    """A tile layer with the visibility and opacity its parent groups give it."""
    layer: TileLayer
    visible: bool
    opacity: float


# =============================================================================
# MAP
# =============================================================================

@dataclass
class TiledMap:
    """
    Root of a Tiled map.

    Orientation and render order are kept as plain strings: the loader
    accepts anything Tiled writes, and the renderer decides what it can
    draw (orthogonal, right-down).

    Usage:
        tmx_map = TiledMap.load("level1.tmx")
        renderer = Renderer(tmx_map)
        renderer.render_visible_layers()
    """
    version: str = "1.10"
    orientation: str = "orthogonal"
    renderorder: str = "right-down"
    width: int = 0
    height: int = 0
    tilewidth: int = 0
    tileheight: int = 0
    infinite: bool = False
    properties: Dict[str, Property] = field(default_factory=dict)
    tilesets: List[Tileset] = field(default_factory=list)
    layers: List[Union[TileLayer, ObjectGroup, LayerGroup]] = field(default_factory=list)
    # How tileset images are opened; None means the local disk
    filesystem: Any = field(default=None, repr=False, compare=False)

    @classmethod
    def load(cls, filepath: Union[str, Path], filesystem=None) -> 'TiledMap':
        """
        Load a TMX file and any external TSX files it references.

        Parameters:
        -----------
        filepath : str or Path
            Path to the .tmx file, as understood by `filesystem`
        filesystem : object with open(path), optional
            Where map, tilesets and images are read from.
            Defaults to LocalFileSystem.

        Raises:
        -------
        FileNotFoundError : If the TMX or a TSX file doesn't exist
        xml.etree.ElementTree.ParseError : If XML is malformed
        """
        filesystem = filesystem or LocalFileSystem()
        filepath = Path(filepath)
        map_dir = filepath.parent

        with filesystem.open(filepath) as f:
            root = ET.parse(f).getroot()

        map_obj = cls(
            version=root.get('version', '1.0'),
            orientation=root.get('orientation', 'orthogonal'),
            renderorder=root.get('renderorder', 'right-down'),
            width=int(root.get('width', 0)),
            height=int(root.get('height', 0)),
            tilewidth=int(root.get('tilewidth', 0)),
            tileheight=int(root.get('tileheight', 0)),
            infinite=root.get('infinite', '0') == '1',
            filesystem=filesystem
        )
        map_obj.properties = _parse_properties(root)

        for tileset_elem in root.findall('tileset'):
            firstgid = int(tileset_elem.get('firstgid', 1))
            source = tileset_elem.get('source')

            if source:
                tsx_path = map_dir / source
                with filesystem.open(tsx_path) as f:
                    tsx_root = ET.parse(f).getroot()
                tileset = Tileset.from_xml(tsx_root, firstgid,
                                           base_dir=str(tsx_path.parent))
                tileset.source = source
            else:
                tileset = Tileset.from_xml(tileset_elem, firstgid,
                                           base_dir=str(map_dir))

            map_obj.tilesets.append(tileset)

        # get_tileset_for_gid relies on ascending firstgid
        map_obj.tilesets.sort(key=lambda ts: ts.firstgid)
        map_obj.layers = _parse_layers(root)

        logger.debug("Loaded map %s: %dx%d, %d tilesets, %d layers",
                     filepath, map_obj.width, map_obj.height,
                     len(map_obj.tilesets), len(map_obj.layers))
        return map_obj

    def get_tileset_for_gid(self, gid: int) -> Optional[Tileset]:
        """
        Find which tileset contains a given GID.

        A GID belongs to the tileset with the largest firstgid <= gid:

            Tileset A: firstgid=1
            Tileset B: firstgid=101

            GID 50  -> A
            GID 150 -> B

        There is no upper bound check; a GID past the last tile of its
        tileset still resolves here and fails later, at image lookup.
        """
        for tileset in reversed(self.tilesets):
            if gid >= tileset.firstgid:
                return tileset
        return None

    def tile_gid_to_tile(self, gid: int) -> LayerTile:
        """
        Decode a raw cell value into a LayerTile.

        Raises InvalidTileGIDError when no tileset owns the GID.
        """
        clean_gid = gid & ~GID_FLAGS_MASK
        if clean_gid == 0:
            return NIL_TILE

        tileset = self.get_tileset_for_gid(clean_gid)
        if tileset is None:
            raise InvalidTileGIDError(clean_gid)

        return LayerTile(
            id=clean_gid - tileset.firstgid,
            tileset=tileset,
            horizontal_flip=bool(gid & FLIPPED_HORIZONTALLY_FLAG),
            vertical_flip=bool(gid & FLIPPED_VERTICALLY_FLAG),
            diagonal_flip=bool(gid & FLIPPED_DIAGONALLY_FLAG),
        )

    @property
    def tile_layers(self) -> List[TileLayer]:
        """Tile layers in declaration order; the indices used by the renderer."""
        return [state.layer for state in self.tile_layer_states()]

    def tile_layer_states(self) -> List[LayerState]:
        """
        Tile layers in declaration order with their effective state.

        A layer is visible only if it and every enclosing group are
        visible; its opacity is its own times that of every enclosing group.

            group (visible=0)          layer A: visible=False
              layer A (visible=1)      layer B: opacity 0.5 * 0.5 = 0.25
            group (opacity=0.5)
              layer B (opacity=0.5)
        """
        result = []

        def walk(layers, visible, opacity):
            for layer in layers:
                if isinstance(layer, LayerGroup):
                    walk(layer.layers, visible and layer.visible,
                         opacity * layer.opacity)
                elif isinstance(layer, TileLayer):
                    result.append(LayerState(layer, visible and layer.visible,
                                             opacity * layer.opacity))

        walk(self.layers, True, 1.0)
        return result
