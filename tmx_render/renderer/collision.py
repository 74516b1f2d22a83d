"""
Sparse pixel collision maps built from per-tile collision rectangles.

=============================================================================
LAYOUT
=============================================================================

Every solid pixel (x, y) is stored twice, once per axis:

    x[x] -> [y, y, ...]     solid rows in column x
    y[y] -> [x, x, ...]     solid columns in row y

so a sweep along either axis is a single dict lookup:

    collision.y[120]  -> every solid x on the line y = 120

Both views always agree:  y in x[x]  <=>  x in y[y].

Rectangles are expanded INCLUSIVE of both edges, so a tile-local rectangle
(4,4)-(8,8) marks 5x5 pixels. Overlapping rectangles append again rather
than de-duplicating: a pixel covered by two tiles appears twice.

=============================================================================
"""

from collections import defaultdict
from typing import DefaultDict, Iterator, List, Tuple

import numpy as np

from ..geometry import Rect


class CollisionMap:
    """Append-only two-way multimap of solid pixel coordinates."""

    def __init__(self):
        self.x: DefaultDict[int, List[int]] = defaultdict(list)
        self.y: DefaultDict[int, List[int]] = defaultdict(list)

    def add_point(self, x: int, y: int):
        self.x[x].append(y)
        self.y[y].append(x)

    def add_rect(self, rect: Rect):
        """Mark every integer point of rect, edges included."""
        xs = np.arange(rect.min_x, rect.max_x + 1).tolist()
        ys = np.arange(rect.min_y, rect.max_y + 1).tolist()
        for py in ys:
            self.y[py].extend(xs)
        for px in xs:
            self.x[px].extend(ys)

    def merge(self, other: 'CollisionMap'):
        """Concatenate other's lists onto ours, key by key."""
        for key, values in other.x.items():
            self.x[key].extend(values)
        for key, values in other.y.items():
            self.y[key].extend(values)

    def contains(self, x: int, y: int) -> bool:
        # .get so that queries don't grow the defaultdict
        return x in self.y.get(y, ())

    def points(self) -> Iterator[Tuple[int, int]]:
        for py, xs in self.y.items():
            for px in xs:
                yield px, py

    def __len__(self):
        return sum(len(xs) for xs in self.y.values())

    def __bool__(self):
        return bool(self.y)

    def __repr__(self):
        return f"CollisionMap(points={len(self)}, rows={len(self.y)}, columns={len(self.x)})"
