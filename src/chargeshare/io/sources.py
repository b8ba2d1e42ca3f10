"""
chargeshare.io.sources

Deposit sources: turn a primary generator or an external step dump into
SimEvent objects (one per primary) for the per-event processor.

Design goals
------------
- Keep I/O concerns isolated from the per-event physics.
- Normalize units on ingest: positions -> mm, energies -> MeV.
- Stream events; nothing downstream needs the whole run in memory.

Entry points
------------
- class GunSource: uniform primaries over the area that guarantees a full
  neighborhood, with a short track of step deposits through the sensor.
- class TableSource: step tables (CSV, Parquet or HDF5 columns) grouped by event id.
- function make_source(cfg): factory from the [io] / [gun] TOML sections.

Config (example)
----------------
[io]
input_format = "table"
input_path = "steps.csv"      # .csv | .parquet | .h5

[io.adapter]
event_col = "event"
edep_col = "edep_MeV"
pos_cols = ["x", "y", "z"]
pos_units = "mm"              # "mm" | "cm" | "um"
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import h5py
import numpy as np
import pandas as pd

from chargeshare.config.schemas import Config
from chargeshare.geometry.grid import PixelGrid
from chargeshare.pipelines.event import SimEvent

_POS_TO_MM = {"mm": 1.0, "cm": 10.0, "um": 1e-3}


class BaseSource:
    """
    Minimal interface for deposit sources.
    """
    def iter_events(self) -> Iterator[SimEvent]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Built-in particle gun
# ---------------------------------------------------------------------------

class GunSource(BaseSource):
    """
    Primaries fired along -z at uniform (x, y) inside the reduced square
    |x|, |y| <= det/2 - margin, where margin keeps the largest neighborhood
    fully on the detector. Each primary leaves n_steps deposits along the
    sensor thickness with exponential step energies and gaussian lateral
    scatter around the entry point.
    """

    def __init__(
        self,
        grid: PixelGrid,
        radius: int,
        n_events: int,
        *,
        energy_MeV: float = 0.1,
        z_mm: float = 0.025,
        n_steps: int = 10,
        edep_per_step_MeV: float = 0.002,
        lateral_sigma_um: float = 2.0,
        seed: Optional[int] = None,
    ):
        self.margin = grid.check_neighborhood_fits(radius)
        self.half_range = grid.det_size / 2.0 - self.margin
        self.n_events = int(n_events)
        self.energy_MeV = float(energy_MeV)
        self.z_mm = float(z_mm)
        self.n_steps = int(n_steps)
        self.edep_per_step_MeV = float(edep_per_step_MeV)
        self.lateral_sigma_mm = float(lateral_sigma_um) * 1e-3
        self.seed = seed

    def iter_events(self) -> Iterator[SimEvent]:
        rng = np.random.default_rng(self.seed)
        for ev_id in range(self.n_events):
            x0, y0 = rng.uniform(-self.half_range, self.half_range, size=2)
            start = np.array([x0, y0, self.z_mm], dtype=np.float64)

            n = self.n_steps
            edep = rng.exponential(self.edep_per_step_MeV, size=n) if n > 0 else np.zeros(0)
            pos = np.empty((n, 3), dtype=np.float64)
            pos[:, 0] = x0 + rng.normal(0.0, self.lateral_sigma_mm, size=n)
            pos[:, 1] = y0 + rng.normal(0.0, self.lateral_sigma_mm, size=n)
            # sensor centered on z = 0: steps run from the entry face z down toward -z
            pos[:, 2] = self.z_mm - np.linspace(0.0, 2.0 * self.z_mm, n, endpoint=False)

            yield SimEvent(
                event_id=ev_id,
                edep_MeV=edep,
                pos_mm=pos,
                initial_pos=start,
                initial_energy_MeV=self.energy_MeV,
            )


# ---------------------------------------------------------------------------
# Step tables from an external transport engine
# ---------------------------------------------------------------------------

def _read_h5_table(path: Path, group: str) -> pd.DataFrame:
    with h5py.File(path, "r") as f:
        g = f[group] if group else f
        cols = {k: np.asarray(g[k]) for k in g.keys() if isinstance(g[k], h5py.Dataset)}
    return pd.DataFrame(cols)


class TableSource(BaseSource):
    """
    One row per step. Rows of an event need not be contiguous; events come
    out sorted by event id. Optional initial-position columns are read from
    the first row of each event.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        event_col: str = "event",
        edep_col: str = "edep_MeV",
        pos_cols: List[str] | None = None,
        pos_units: str = "mm",
        initial_pos_cols: List[str] | None = None,
        h5_group: str = "steps",
        max_events: Optional[int] = None,
    ):
        self.path = Path(path)
        self.event_col = event_col
        self.edep_col = edep_col
        self.pos_cols = list(pos_cols or ["x", "y", "z"])
        if pos_units not in _POS_TO_MM:
            raise ValueError(f"pos_units must be one of {sorted(_POS_TO_MM)}, got {pos_units!r}")
        self.pos_scale = _POS_TO_MM[pos_units]
        self.initial_pos_cols = list(initial_pos_cols) if initial_pos_cols else None
        self.h5_group = h5_group
        self.max_events = max_events

    def _read_table(self) -> pd.DataFrame:
        suf = self.path.suffix.lower()
        if suf in (".h5", ".hdf5"):
            df = _read_h5_table(self.path, self.h5_group)
        elif suf in (".parquet", ".pq"):
            df = pd.read_parquet(self.path)
        elif suf in (".csv", ".txt"):
            df = pd.read_csv(self.path)
        else:
            raise ValueError(f"Unsupported step table format: {self.path.suffix}")

        needed = [self.event_col, self.edep_col, *self.pos_cols, *(self.initial_pos_cols or [])]
        missing = [c for c in needed if c not in df.columns]
        if missing:
            raise KeyError(f"Step table {self.path} lacks columns {missing}")
        return df

    def iter_events(self) -> Iterator[SimEvent]:
        df = self._read_table()
        for n, (ev_id, grp) in enumerate(df.groupby(self.event_col, sort=True)):
            if self.max_events is not None and n >= self.max_events:
                break
            init = None
            if self.initial_pos_cols:
                init = grp[self.initial_pos_cols].iloc[0].to_numpy(dtype=np.float64) * self.pos_scale
            yield SimEvent(
                event_id=int(ev_id),
                edep_MeV=grp[self.edep_col].to_numpy(dtype=np.float64),
                pos_mm=grp[self.pos_cols].to_numpy(dtype=np.float64) * self.pos_scale,
                initial_pos=init,
            )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def make_source(cfg: Config, grid: PixelGrid) -> BaseSource:
    """
    Create a deposit source from the [io] (and [gun]) sections.

    input_format = "gun"   -> GunSource with cfg.run.n_events primaries
                              (1000 when unset)
    input_format = "table" -> TableSource over cfg.io.input_path, keyword
                              options taken from [io.adapter]; reads every
                              event unless cfg.run.n_events is set
    """
    fmt = cfg.io.input_format
    if fmt == "gun":
        g = cfg.gun
        return GunSource(
            grid,
            cfg.neighborhood.largest_radius,
            cfg.run.n_events if cfg.run.n_events is not None else 1000,
            energy_MeV=g.energy_MeV,
            z_mm=g.z_mm,
            n_steps=g.n_steps,
            edep_per_step_MeV=g.edep_per_step_MeV,
            lateral_sigma_um=g.lateral_sigma_um,
            seed=cfg.run.seed,
        )

    if fmt == "table":
        if not cfg.io.input_path:
            raise ValueError("[io].input_path is required for input_format = 'table'")
        ad: Dict[str, Any] = dict(cfg.io.adapter)
        return TableSource(
            cfg.io.input_path,
            event_col=ad.get("event_col", "event"),
            edep_col=ad.get("edep_col", "edep_MeV"),
            pos_cols=ad.get("pos_cols"),
            pos_units=ad.get("pos_units", "mm"),
            initial_pos_cols=ad.get("initial_pos_cols"),
            h5_group=ad.get("h5_group", "steps"),
            max_events=cfg.run.n_events,
        )

    raise ValueError(f"Unknown input format: {fmt}")
