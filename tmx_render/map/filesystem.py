"""
File access used to read maps, external tilesets and tile images.

=============================================================================
WHY AN ABSTRACTION?
=============================================================================

TMX files reference everything else with RELATIVE paths:

    maps/level1.tmx
      -> tilesets/terrain.tsx       (relative to the .tmx)
           -> ../images/terrain.png (relative to the .tsx!)

Most of the time these files live on disk, but games often ship their
assets packed in a single archive. Loader and renderer only ever need one
operation - "open this path for binary reading" - so anything that provides
open(path) can serve the assets:

    LocalFileSystem   plain files on disk (the default)
    ZipFileSystem     members of a .zip archive

=============================================================================
"""

import io
import os
import posixpath
import zipfile
from pathlib import Path
from typing import BinaryIO, Union


class LocalFileSystem:
    """Opens files from the local disk."""

    def open(self, path: Union[str, Path]) -> BinaryIO:
        return open(path, 'rb')

    def __repr__(self):
        return "LocalFileSystem()"


class ZipFileSystem:
    """
    Opens members of a zip archive.

    Paths are normalised before lookup so that the relative paths produced
    by tileset resolution ("maps/../images/terrain.png") match archive
    member names ("images/terrain.png").

    Parameters:
    -----------
    archive : str, Path or zipfile.ZipFile
        Archive to read from. A path is opened here and owned by this
        object (see close()).
    """

    def __init__(self, archive: Union[str, Path, zipfile.ZipFile]):
        if isinstance(archive, zipfile.ZipFile):
            self._zip = archive
            self._owned = False
        else:
            self._zip = zipfile.ZipFile(archive)
            self._owned = True

    @staticmethod
    def normalize(path: Union[str, Path]) -> str:
        """Convert a path into the form used by zip member names."""
        name = str(path).replace(os.sep, '/').replace('\\', '/')
        name = posixpath.normpath(name)
        # normpath keeps a leading "./" away but not a leading "/"
        return name.lstrip('/')

    def open(self, path: Union[str, Path]) -> BinaryIO:
        name = self.normalize(path)
        try:
            data = self._zip.read(name)
        except KeyError:
            raise FileNotFoundError(f"'{name}' not found in archive") from None
        # Pillow and ElementTree both want a seekable stream
        return io.BytesIO(data)

    def close(self):
        if self._owned:
            self._zip.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __repr__(self):
        return f"ZipFileSystem({self._zip.filename!r})"
