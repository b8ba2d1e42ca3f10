import numpy as np
import pytest

from chargeshare.geometry.grid import PixelGrid
from chargeshare.io.store import write_init, write_events
from chargeshare.physics.charge import PhysicsParameters
from chargeshare.pipelines.event import EventProcessor, SimEvent
from chargeshare.vis.hdf import mean_fraction_map, save_fraction_map_png

GRID = PixelGrid.from_cfg(0.1, 0.15, 0.05, 3.0)

def _write(path, sims, radius=2):
    params = PhysicsParameters()
    records = EventProcessor(GRID, params, radius).process_many(sims)
    f = write_init(str(path), "", GRID, params)
    write_events(f, records)
    f.close()

def test_fraction_map_of_shared_hits(tmp_path):
    cx, cy = GRID.center(9, 9)
    sims = [
        SimEvent(0, np.array([0.01]), np.array([[cx + 0.07, cy + 0.0, 0.0]])),
        SimEvent(1, np.array([0.01]), np.array([[cx, cy, 0.0]])),  # pixel hit, excluded
    ]
    h5 = tmp_path / "run.h5"
    _write(h5, sims)
    img = mean_fraction_map(str(h5))
    assert img.shape == (5, 5)
    assert np.isclose(np.nansum(img), 1.0)
    # hit sits toward +x, so the +di column outweighs the -di column
    assert img[2, 3] > img[2, 1]

    out = save_fraction_map_png(str(h5))
    assert out.endswith(".png")

def test_fraction_map_needs_shared_hits(tmp_path):
    cx, cy = GRID.center(9, 9)
    h5 = tmp_path / "run.h5"
    _write(h5, [SimEvent(0, np.array([0.01]), np.array([[cx, cy, 0.0]]))])
    with pytest.raises(ValueError):
        mean_fraction_map(str(h5))
