from chargeshare.geometry.grid import PixelGrid
from chargeshare.physics.neighborhood import NeighborhoodGeometry
import numpy as np

def _grid():
    return PixelGrid.from_cfg(0.1, 0.15, 0.05, 3.0)

def test_pixel_alpha_quadrants():
    g = _grid()
    nb = NeighborhoodGeometry(g, radius=4)
    cx, cy = g.center(9, 9)
    hit = [cx, cy, 0.0]
    assert np.isclose(nb.calc_pixel_alpha(hit, 10, 9), 0.0)
    assert np.isclose(nb.calc_pixel_alpha(hit, 9, 10), 90.0)
    assert np.isclose(nb.calc_pixel_alpha(hit, 8, 9), 180.0)
    assert np.isclose(nb.calc_pixel_alpha(hit, 9, 8), 270.0)
    a = nb.calc_pixel_alpha(hit, 8, 8)
    assert 0.0 <= a < 360.0 and np.isclose(a, 225.0)

def test_pixel_alpha_is_pure():
    g = _grid()
    nb = NeighborhoodGeometry(g, radius=4)
    hit = np.array([0.0123, -0.0456, 0.0])
    before = hit.copy()
    vals = [nb.calc_pixel_alpha(hit, 7, 12) for _ in range(5)]
    assert len(set(vals)) == 1
    np.testing.assert_array_equal(hit, before)

def test_subtended_angle_matches_corner_formula():
    # pad of width 0.2 centered 1.0 to the right: spanned by its two near corners
    alpha = NeighborhoodGeometry.calc_pixel_alpha_subtended(0.0, 0.0, 1.0, 0.0, 0.2, 0.2)
    assert np.isclose(alpha, 2.0 * np.degrees(np.arctan(0.1 / 0.9)))
    # same pad to the left straddles the +-180 deg cut
    alpha_left = NeighborhoodGeometry.calc_pixel_alpha_subtended(0.0, 0.0, -1.0, 0.0, 0.2, 0.2)
    assert np.isclose(alpha_left, alpha)
    # hit inside the pad sees it all around
    assert NeighborhoodGeometry.calc_pixel_alpha_subtended(0.01, 0.0, 0.0, 0.0, 0.1, 0.1) == 360.0

def test_subtended_angle_shrinks_with_distance():
    near = NeighborhoodGeometry.calc_pixel_alpha_subtended(0.0, 0.0, 0.3, 0.2, 0.1, 0.1)
    far = NeighborhoodGeometry.calc_pixel_alpha_subtended(0.0, 0.0, 0.9, 0.6, 0.1, 0.1)
    assert 0.0 < far < near < 180.0

def test_full_grid_has_all_entries():
    g = _grid()
    nb = NeighborhoodGeometry(g, radius=4)
    cx, cy = g.center(9, 9)
    geom = nb.calc_neighborhood_grid_angles([cx + 0.03, cy - 0.02, 0.0], 9, 9)
    assert geom.size == 81 and geom.di.shape == (81,)
    assert geom.n_valid == 81
    assert geom.di[geom.center_index] == 0 and geom.dj[geom.center_index] == 0
    k = geom.index_of_offset(2, -3)
    assert (geom.pixel_i[k], geom.pixel_j[k]) == (11, 6)
    assert np.isclose(geom.distance_mm[geom.center_index], np.hypot(0.03, 0.02))
    assert np.all((geom.angle_deg >= 0.0) & (geom.angle_deg < 360.0))

def test_edge_neighborhood_marks_outside_pixels_invalid():
    g = _grid()
    nb = NeighborhoodGeometry(g, radius=4)
    cx, cy = g.center(0, 0)
    geom = nb.calc_neighborhood_grid_angles([cx, cy, 0.0], 0, 0)
    assert geom.size == 81
    assert geom.n_valid == 25
    bad = ~geom.valid
    assert np.all(np.isnan(geom.angle_deg[bad]))
    assert np.all(np.isnan(geom.distance_mm[bad]))
    assert np.all(np.isfinite(geom.distance_mm[geom.valid]))

def test_radius_override_and_zero_radius():
    g = _grid()
    nb = NeighborhoodGeometry(g, radius=4)
    cx, cy = g.center(9, 9)
    assert nb.calc_neighborhood_grid_angles([cx, cy, 0.0], 9, 9, radius=2).size == 25
    geom0 = nb.calc_neighborhood_grid_angles([cx, cy, 0.0], 9, 9, radius=0)
    assert geom0.size == 1 and geom0.center_index == 0
