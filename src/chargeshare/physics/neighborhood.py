# src/chargeshare/physics/neighborhood.py
from __future__ import annotations
from dataclasses import dataclass
import numpy as np

from chargeshare.geometry.grid import PixelGrid


@dataclass(slots=True)
class GeometryRecord:
    """
    Hit-to-pixel geometry over a (2r+1)x(2r+1) neighborhood.

    All arrays are flat with (2r+1)^2 entries, row-major over (di, dj) with
    di the outer (x) offset. Pixels outside the detector keep their indices
    but have valid=False and NaN in every float column.

    angle_deg: direction hit -> pixel center, [0, 360)
    distance_mm: hit -> pixel center
    alpha_deg: angle subtended by the pixel pad as seen from the hit
    """
    radius: int
    hit_i: int
    hit_j: int
    di: np.ndarray
    dj: np.ndarray
    pixel_i: np.ndarray
    pixel_j: np.ndarray
    valid: np.ndarray
    center_x: np.ndarray
    center_y: np.ndarray
    angle_deg: np.ndarray
    distance_mm: np.ndarray
    alpha_deg: np.ndarray

    @property
    def size(self) -> int:
        return (2 * self.radius + 1) ** 2

    @property
    def n_valid(self) -> int:
        return int(np.count_nonzero(self.valid))

    def index_of_offset(self, di: int, dj: int) -> int:
        side = 2 * self.radius + 1
        return (di + self.radius) * side + (dj + self.radius)

    @property
    def center_index(self) -> int:
        return self.index_of_offset(0, 0)


def _wrap360(deg):
    out = np.mod(deg, 360.0)
    # np.mod(-1e-15, 360.0) rounds up to exactly 360.0
    return np.where(out >= 360.0, 0.0, out)


def subtended_alpha_deg(hit_x, hit_y, center_x, center_y, width, height):
    """
    Vectorized corner-difference angle subtended by a rectangle.

    The four corner directions are taken with atan2 and sorted; the pad
    spans everything except the largest gap between consecutive directions,
    so alpha = 360 - max_gap. A hit on or inside the rectangle sees 360.
    """
    hx = np.asarray(hit_x, dtype=np.float64)
    hy = np.asarray(hit_y, dtype=np.float64)
    cx = np.asarray(center_x, dtype=np.float64)
    cy = np.asarray(center_y, dtype=np.float64)
    hw = np.asarray(width, dtype=np.float64) / 2.0
    hh = np.asarray(height, dtype=np.float64) / 2.0

    # corners: bottom-left, bottom-right, top-right, top-left
    corner_x = np.stack([cx - hw, cx + hw, cx + hw, cx - hw], axis=-1)
    corner_y = np.stack([cy - hh, cy - hh, cy + hh, cy + hh], axis=-1)
    ang = np.arctan2(corner_y - hy[..., None], corner_x - hx[..., None])
    ang = np.sort(ang, axis=-1)

    gaps = np.diff(ang, axis=-1)
    wrap_gap = ang[..., :1] - ang[..., -1:] + 2.0 * np.pi
    max_gap = np.max(np.concatenate([gaps, wrap_gap], axis=-1), axis=-1)
    alpha = np.degrees(2.0 * np.pi - max_gap)

    inside = (np.abs(hx - cx) <= hw) & (np.abs(hy - cy) <= hh)
    return np.where(inside, 360.0, alpha)


class NeighborhoodGeometry:
    """
    Geometry of the pixels around a hit pixel.

    One instance per worker; the radius is fixed at construction but every
    call may override it (used by the radius search).
    """

    def __init__(self, grid: PixelGrid, radius: int = 4):
        if radius < 0:
            raise ValueError(f"Neighborhood radius must be >= 0, got {radius}")
        self.grid = grid
        self.radius = int(radius)

    def calc_pixel_alpha(self, hit_pos, pixel_i: int, pixel_j: int) -> float:
        """Direction from the hit to the center of pixel (i, j) in degrees, [0, 360)."""
        cx, cy = self.grid.center(pixel_i, pixel_j)
        p = np.asarray(hit_pos, dtype=np.float64)
        deg = np.degrees(np.arctan2(cy - p[1], cx - p[0]))
        return float(_wrap360(deg))

    @staticmethod
    def calc_pixel_alpha_subtended(hit_x, hit_y, pixel_center_x, pixel_center_y, pixel_width, pixel_height) -> float:
        return float(subtended_alpha_deg(hit_x, hit_y, pixel_center_x, pixel_center_y, pixel_width, pixel_height))

    def calc_neighborhood_grid_angles(self, hit_pos, hit_i: int, hit_j: int, radius: int | None = None) -> GeometryRecord:
        r = self.radius if radius is None else int(radius)
        if r < 0:
            raise ValueError(f"Neighborhood radius must be >= 0, got {r}")

        offsets = np.arange(-r, r + 1, dtype=np.int64)
        DI, DJ = np.meshgrid(offsets, offsets, indexing="ij")
        di = DI.ravel()
        dj = DJ.ravel()
        pi = hit_i + di
        pj = hit_j + dj
        valid = np.asarray(self.grid.in_grid(pi, pj), dtype=bool)

        p = np.asarray(hit_pos, dtype=np.float64)
        hx, hy = float(p[0]), float(p[1])
        cx, cy = self.grid.centers(pi, pj)
        dx = cx - hx
        dy = cy - hy

        angle = _wrap360(np.degrees(np.arctan2(dy, dx)))
        dist = np.hypot(dx, dy)
        size = self.grid.pixel_size
        alpha = subtended_alpha_deg(hx, hy, cx, cy, size, size)

        nan = np.nan
        return GeometryRecord(
            radius=r,
            hit_i=int(hit_i),
            hit_j=int(hit_j),
            di=di,
            dj=dj,
            pixel_i=pi,
            pixel_j=pj,
            valid=valid,
            center_x=np.where(valid, cx, nan),
            center_y=np.where(valid, cy, nan),
            angle_deg=np.where(valid, angle, nan),
            distance_mm=np.where(valid, dist, nan),
            alpha_deg=np.where(valid, alpha, nan),
        )
