from chargeshare.geometry.grid import PixelGrid
from chargeshare.io.store import STATUS_CODES, write_init, write_events, read_events
from chargeshare.physics.charge import PhysicsParameters
from chargeshare.pipelines.event import EventProcessor, SimEvent
from chargeshare.reco.fits import FitQuality, FitResult
import h5py
import json
import numpy as np


class FixedFit:
    def evaluate(self, radius, geometry, charge):
        fit = FitResult("gauss", "row", 0.1, 0.2, 0.3, 0.0, 1.0 + radius, 5)
        return FitQuality(score=float(radius), fits=[fit])


def test_hdf5_write_read(tmp_path):
    grid = PixelGrid.from_cfg(0.1, 0.15, 0.05, 3.0)
    params = PhysicsParameters()
    proc = EventProcessor(grid, params, 3, auto_radius=True, min_radius=2, max_radius=3,
                          evaluator=FixedFit())
    cx, cy = grid.center(9, 9)
    sims = [
        SimEvent(0, np.array([0.01]), np.array([[cx + 0.01, cy, 0.0]])),           # pixel hit
        SimEvent(1, np.array([0.01]), np.array([[cx + 0.065, cy + 0.06, 0.0]])),   # shared
        SimEvent(2, np.array([0.0]), np.array([[cx, cy, 0.0]])),                   # no hit
        SimEvent(3, np.array([0.01]), np.array([[1.45, 0.0, 0.0]])),               # off grid
    ]
    records = proc.process_many(sims)

    path = tmp_path / "records.h5"
    f = write_init(str(path), "# config\n", grid, params)
    write_events(f, records)
    f.close()

    with h5py.File(path, "r") as f:
        assert f.attrs["format_version"] == "1.0"
        assert f["meta"].attrs["grid.n_side"] == 19
        assert json.loads(f["meta"].attrs["physics"])["d0_um"] == 10.0

    data = read_events(str(path))
    assert data["events/status"].tolist() == [
        STATUS_CODES["ok"], STATUS_CODES["ok"], STATUS_CODES["no_hit"], STATUS_CODES["out_of_grid"]
    ]
    assert data["events/is_pixel_hit"].tolist() == [True, False, False, False]
    assert data["events/radius"].tolist() == [3, 2, -1, -1]
    assert data["events/pixel_i"][3] == 19
    assert np.isnan(data["events/pixel_distance_mm"][2])

    ptr = data["neighborhood/event_ptr"]
    assert ptr.tolist() == [0, 49, 74, 74, 74]
    assert data["neighborhood/di"].shape == (74,)

    chi2 = data["fits/gauss/row/chi2red"]
    assert np.isnan(chi2[0]) and chi2[1] == 3.0
    assert data["fits/gauss/row/ndf"].tolist() == [-1, 5, -1, -1]
