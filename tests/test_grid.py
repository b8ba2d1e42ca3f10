from chargeshare.geometry.grid import PixelGrid
from chargeshare.physics.pixels import PixelMapper
import numpy as np
import pytest

def _grid():
    return PixelGrid.from_cfg(0.1, 0.15, 0.05, 3.0)

def test_grid_counts_and_centers():
    g = _grid()
    assert g.n_side == 19   # (3.0 - 2*0.05 - 0.1) / 0.15 + 1
    assert np.isclose(g.first_center, -1.4)
    x, y = g.center(18, 0)
    assert np.isclose(x, 1.3) and np.isclose(y, -1.4)
    xs, ys = g.centers(np.array([0, 1]), np.array([2, 3]))
    assert np.allclose(xs, [-1.4, -1.25]) and np.allclose(ys, [-1.1, -0.95])

def test_explicit_block_count_must_fit():
    assert PixelGrid.from_cfg(0.1, 0.15, 0.05, 3.0, num_blocks_per_side=10).n_side == 10
    with pytest.raises(ValueError):
        PixelGrid.from_cfg(0.1, 0.15, 0.05, 3.0, num_blocks_per_side=20)

def test_hit_at_pixel_center_is_pixel_hit():
    g = _grid()
    m = PixelMapper(g, d0_mm=0.01)
    cx, cy = g.center(7, 11)
    px = m.calc_nearest_pixel([cx, cy, 0.0])
    assert (px.i, px.j) == (7, 11)
    assert px.distance == 0.0
    assert px.in_grid and px.on_pad and px.within_d0
    assert px.is_pixel_hit

def test_half_spacing_offset_rounds_to_adjacent_pixel():
    g = _grid()
    m = PixelMapper(g, d0_mm=0.01)
    cx, cy = g.center(5, 5)
    px = m.calc_nearest_pixel([cx + g.pixel_spacing / 2.0, cy, 0.0])
    assert (px.i, px.j) == (6, 5)
    px = m.calc_nearest_pixel([cx + 0.99 * g.pixel_spacing / 2.0, cy, 0.0])
    assert (px.i, px.j) == (5, 5)

def test_distance_always_filled_and_deltas_signed():
    g = _grid()
    m = PixelMapper(g, d0_mm=0.01)
    cx, cy = g.center(3, 4)
    px = m.calc_nearest_pixel([cx + 0.03, cy - 0.04, 0.2])
    assert np.isclose(px.distance, 0.05)
    assert np.isclose(px.delta_x, -0.03) and np.isclose(px.delta_y, 0.04)
    # on the pad edge -> still a pixel hit although far beyond D0
    assert px.on_pad and not px.within_d0 and px.is_pixel_hit

def test_off_pad_beyond_d0_is_non_pixel():
    g = _grid()
    m = PixelMapper(g, d0_mm=0.01)
    cx, cy = g.center(9, 9)
    px = m.calc_nearest_pixel([cx + 0.06, cy + 0.06, 0.0])
    assert (px.i, px.j) == (9, 9)
    assert not px.on_pad and not px.within_d0
    assert not px.is_pixel_hit

def test_outside_detector_is_flagged_not_clamped():
    g = _grid()
    m = PixelMapper(g, d0_mm=0.01)
    px = m.calc_nearest_pixel([1.45, 0.0, 0.0])
    assert px.i == 19 and not px.in_grid
    assert not px.is_pixel_hit

def test_neighborhood_margin_check():
    g = _grid()
    assert np.isclose(g.check_neighborhood_fits(4), 0.7)
    with pytest.raises(ValueError):
        PixelGrid.from_cfg(0.1, 0.15, 0.05, 1.0).check_neighborhood_fits(4)
