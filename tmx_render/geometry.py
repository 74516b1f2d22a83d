"""Integer pixel rectangles shared by the map model and the renderer."""

from typing import NamedTuple, Optional, Tuple


class Rect(NamedTuple):
    """
    Axis-aligned rectangle [min_x, max_x) x [min_y, max_y).

    Coordinates may be negative: a tile taller than the grid cell placed on
    the first row starts above the canvas.
    """
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def translate(self, dx: int, dy: int) -> 'Rect':
        return Rect(self.min_x + dx, self.min_y + dy,
                    self.max_x + dx, self.max_y + dy)

    def intersect(self, other: 'Rect') -> Optional['Rect']:
        """Overlap of both rectangles, or None when they don't overlap."""
        rect = Rect(max(self.min_x, other.min_x), max(self.min_y, other.min_y),
                    min(self.max_x, other.max_x), min(self.max_y, other.max_y))
        return None if rect.empty else rect

    def as_box(self) -> Tuple[int, int, int, int]:
        """(left, upper, right, lower), the box form Pillow uses."""
        return (self.min_x, self.min_y, self.max_x, self.max_y)
