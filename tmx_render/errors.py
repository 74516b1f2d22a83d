"""
Exceptions raised by the TMX renderer.

Two families of errors reach the caller:

- Configuration rejections (orientation, render order) raised eagerly,
  before anything is drawn.
- Lookup failures for tiles that the map references but cannot provide.

I/O errors (OSError) and image decode errors (PIL.UnidentifiedImageError)
are not wrapped: they propagate exactly as Pillow or the filesystem raised
them.
"""


class RenderError(Exception):
    """Base class for every error raised by tmx_render."""


class UnsupportedOrientationError(RenderError):
    """The map orientation has no rendering engine (only orthogonal does)."""

    def __init__(self, orientation: str):
        super().__init__(f"tiled/render: unsupported orientation '{orientation}'")
        self.orientation = orientation


class UnsupportedRenderOrderError(RenderError):
    """The map render order is not the default right-down traversal."""

    def __init__(self, renderorder: str):
        super().__init__(f"tiled/render: unsupported render order '{renderorder}'")
        self.renderorder = renderorder


class InvalidTileGIDError(RenderError):
    """No tileset of the map owns the requested global tile id."""

    def __init__(self, gid: int):
        super().__init__(f"tiled/render: no tileset contains gid {gid}")
        self.gid = gid


class MissingTileImageError(RenderError):
    """The tileset was loaded but produced no image for this gid."""

    def __init__(self, gid: int, tileset_name: str = ""):
        super().__init__(
            f"tiled/render: tileset '{tileset_name}' has no image for gid {gid}"
        )
        self.gid = gid
        self.tileset_name = tileset_name
