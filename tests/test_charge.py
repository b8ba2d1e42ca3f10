from chargeshare.geometry.grid import PixelGrid
from chargeshare.physics.charge import ChargeSharingModel, PhysicsParameters, make_sharing_law
from chargeshare.physics.neighborhood import NeighborhoodGeometry
import numpy as np
import pytest

def _setup(model="log_alpha"):
    g = PixelGrid.from_cfg(0.1, 0.15, 0.05, 3.0)
    params = PhysicsParameters(sharing_model=model)
    return g, NeighborhoodGeometry(g, radius=4), ChargeSharingModel(params, g.pixel_size)

def test_total_charge_units():
    p = PhysicsParameters(ionization_energy_eV=3.6, amplification_factor=20.0,
                          elementary_charge_C=1.602176634e-19)
    # 3.6 keV -> 1000 pairs -> x20 gain
    assert np.isclose(p.total_charge_C(3.6e-3), 1000 * 20 * 1.602176634e-19)
    assert np.isclose(p.d0_mm, 0.01)

@pytest.mark.parametrize("model", ["log_alpha", "log_subtended"])
def test_fractions_sum_to_one_interior(model):
    g, nb, cm = _setup(model)
    cx, cy = g.center(9, 9)
    hit = [cx + 0.061, cy - 0.047, 0.0]
    geom = nb.calc_neighborhood_grid_angles(hit, 9, 9)
    ch = cm.calc_neighborhood_charge_sharing(geom, 0.02)
    assert abs(np.sum(ch.fraction) - 1.0) < 1e-6
    assert np.all(ch.fraction > 0)
    np.testing.assert_allclose(ch.charge_C, ch.fraction * ch.total_charge_C)

def test_fractions_normalized_over_valid_pixels_at_edge():
    g, nb, cm = _setup()
    cx, cy = g.center(1, 0)
    geom = nb.calc_neighborhood_grid_angles([cx + 0.07, cy + 0.06, 0.0], 1, 0)
    ch = cm.calc_neighborhood_charge_sharing(geom, 0.02)
    assert np.all(np.isnan(ch.fraction[~geom.valid]))
    assert abs(np.nansum(ch.fraction) - 1.0) < 1e-6

def test_log_alpha_fraction_decreases_with_distance():
    g, nb, cm = _setup()
    cx, cy = g.center(9, 9)
    geom = nb.calc_neighborhood_grid_angles([cx + 0.052, cy + 0.031, 0.0], 9, 9)
    ch = cm.calc_neighborhood_charge_sharing(geom, 0.02)
    order = np.argsort(geom.distance_mm)
    d = geom.distance_mm[order]
    f = ch.fraction[order]
    distinct = np.diff(d) > 1e-12
    assert np.all(np.diff(f)[distinct] < 0)

def test_pixel_hit_takes_all_charge():
    g, nb, cm = _setup()
    cx, cy = g.center(9, 9)
    geom = nb.calc_neighborhood_grid_angles([cx + 0.01, cy, 0.0], 9, 9)
    ch = cm.calc_neighborhood_charge_sharing(geom, 0.02, pixel_hit=True)
    assert ch.fraction[geom.center_index] == 1.0
    assert np.count_nonzero(ch.fraction) == 1
    assert np.isclose(ch.charge_C[geom.center_index], ch.total_charge_C)

def test_amplification_scales_charge_not_fractions():
    g = PixelGrid.from_cfg(0.1, 0.15, 0.05, 3.0)
    nb = NeighborhoodGeometry(g, radius=3)
    cx, cy = g.center(9, 9)
    geom = nb.calc_neighborhood_grid_angles([cx + 0.06, cy + 0.06, 0.0], 9, 9)
    lo = ChargeSharingModel(PhysicsParameters(amplification_factor=10.0), g.pixel_size)
    hi = ChargeSharingModel(PhysicsParameters(amplification_factor=30.0), g.pixel_size)
    a = lo.calc_neighborhood_charge_sharing(geom, 0.02)
    b = hi.calc_neighborhood_charge_sharing(geom, 0.02)
    np.testing.assert_array_equal(a.fraction, b.fraction)
    assert np.isclose(b.total_charge_C, 3.0 * a.total_charge_C)

def test_unknown_sharing_model():
    with pytest.raises(ValueError):
        make_sharing_law("exponential")
