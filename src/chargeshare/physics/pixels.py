from __future__ import annotations
from dataclasses import dataclass
import numpy as np

from chargeshare.geometry.grid import PixelGrid


@dataclass(frozen=True, slots=True)
class PixelMapping:
    """
    Nearest pixel for a hit.

    delta_x / delta_y follow the (x_pixel - x_true) convention. distance is
    always filled, also for pixel hits. When in_grid is False the indices
    lie outside the detector and the classification flags are meaningless.
    """
    i: int
    j: int
    center_x: float
    center_y: float
    delta_x: float
    delta_y: float
    distance: float
    in_grid: bool
    on_pad: bool
    within_d0: bool

    @property
    def is_pixel_hit(self) -> bool:
        return self.in_grid and (self.on_pad or self.within_d0)


class PixelMapper:
    """Nearest-pixel lookup and pixel / non-pixel classification."""

    def __init__(self, grid: PixelGrid, d0_mm: float):
        self.grid = grid
        self.d0_mm = float(d0_mm)
        self.half_size = grid.pixel_size / 2.0

    def calc_nearest_pixel(self, pos) -> PixelMapping:
        p = np.asarray(pos, dtype=np.float64)
        x, y = float(p[0]), float(p[1])
        i, j = self.grid.index_of(x, y)
        cx, cy = self.grid.center(i, j)
        dx = cx - x
        dy = cy - y
        distance = float(np.hypot(dx, dy))
        return PixelMapping(
            i=i,
            j=j,
            center_x=cx,
            center_y=cy,
            delta_x=dx,
            delta_y=dy,
            distance=distance,
            in_grid=bool(self.grid.in_grid(i, j)),
            on_pad=(abs(dx) <= self.half_size) and (abs(dy) <= self.half_size),
            within_d0=distance <= self.d0_mm,
        )
