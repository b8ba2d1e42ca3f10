from __future__ import annotations
from dataclasses import dataclass
import numpy as np

@dataclass(frozen=True)
class PixelGrid:
    """
    Regular square grid of pixel pads on the sensor face (lengths in mm).

    Pixel (i, j) has its center at (x0 + i*spacing, y0 + j*spacing) with
    x0 = y0 = -det_size/2 + corner_offset + pixel_size/2. Centers are derived
    on demand; nothing per-pixel is stored.
    """
    pixel_size: float
    pixel_spacing: float
    corner_offset: float
    det_size: float
    n_side: int

    @classmethod
    def from_cfg(cls, pixel_size, pixel_spacing, corner_offset, det_size, num_blocks_per_side=0):
        pixel_size = float(pixel_size)
        pixel_spacing = float(pixel_spacing)
        corner_offset = float(corner_offset)
        det_size = float(det_size)

        usable = det_size - 2.0 * corner_offset - pixel_size
        if usable < 0:
            raise ValueError(
                f"Detector of size {det_size} mm cannot hold a single pixel of "
                f"size {pixel_size} mm with corner offset {corner_offset} mm."
            )
        n_fit = int(np.floor(usable / pixel_spacing + 1e-9)) + 1

        n_side = int(num_blocks_per_side) if num_blocks_per_side else n_fit
        if n_side > n_fit:
            raise ValueError(
                f"num_blocks_per_side={n_side} does not fit the detector: "
                f"at most {n_fit} pixels of spacing {pixel_spacing} mm fit in {det_size} mm."
            )
        return cls(pixel_size, pixel_spacing, corner_offset, det_size, n_side)

    @classmethod
    def from_detector_cfg(cls, det) -> "PixelGrid":
        return cls.from_cfg(
            det.pixel_size_mm,
            det.pixel_spacing_mm,
            det.pixel_corner_offset_mm,
            det.det_size_mm,
            det.num_blocks_per_side,
        )

    @property
    def first_center(self) -> float:
        return -self.det_size / 2.0 + self.corner_offset + self.pixel_size / 2.0

    @property
    def n_pixels(self) -> int:
        return self.n_side * self.n_side

    def center(self, i, j) -> tuple[float, float]:
        x0 = self.first_center
        return x0 + i * self.pixel_spacing, x0 + j * self.pixel_spacing

    def centers(self, i: np.ndarray, j: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Vectorized center(); returns float64 arrays shaped like i / j."""
        x0 = self.first_center
        i = np.asarray(i, dtype=np.float64)
        j = np.asarray(j, dtype=np.float64)
        return x0 + i * self.pixel_spacing, x0 + j * self.pixel_spacing

    def index_of(self, x: float, y: float) -> tuple[int, int]:
        """
        Nearest pixel index by inverse grid arithmetic.

        Midpoints between two centers round up; the 1e-9 guard keeps an exact
        half-spacing offset from landing a hair below .5 in floating point.
        Indices are not clamped, see in_grid().
        """
        x0 = self.first_center
        i = int(np.floor((x - x0) / self.pixel_spacing + 0.5 + 1e-9))
        j = int(np.floor((y - x0) / self.pixel_spacing + 0.5 + 1e-9))
        return i, j

    def in_grid(self, i, j):
        return (i >= 0) & (i < self.n_side) & (j >= 0) & (j < self.n_side)

    def neighborhood_margin(self, radius: int) -> float:
        """Distance from a detector edge a hit must keep so its (2r+1)^2 grid is complete."""
        return self.corner_offset + self.pixel_size / 2.0 + radius * self.pixel_spacing

    def check_neighborhood_fits(self, radius: int) -> float:
        """
        Raise ValueError when a radius-r neighborhood cannot fit inside the
        detector. Returns the margin otherwise.
        """
        margin = self.neighborhood_margin(radius)
        if margin >= self.det_size / 2.0:
            raise ValueError(
                f"Neighborhood radius {radius} larger than detector allows: "
                f"margin {margin:.4f} mm >= half detector size {self.det_size / 2.0:.4f} mm."
            )
        return margin
