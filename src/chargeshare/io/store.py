from __future__ import annotations
from dataclasses import asdict
from typing import Dict, Sequence, Tuple
import h5py
import numpy as np
from datetime import datetime, timezone
from chargeshare.config.load import json_dumps
from chargeshare.geometry.grid import PixelGrid
from chargeshare.physics.charge import PhysicsParameters
from chargeshare.pipelines.event import EventRecord

FORMAT_VERSION = "1.0"

STATUS_CODES = {"ok": 0, "no_hit": 1, "out_of_grid": 2}

_FIT_FIELDS = ("center", "width", "amplitude", "offset", "chi2red")


def write_init(path: str, config_text: str, grid: PixelGrid, params: PhysicsParameters) -> h5py.File:
    f = h5py.File(path, "w")
    # Root attrs
    f.attrs["format_version"] = FORMAT_VERSION
    f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
    f.attrs["software"] = "chargeshare 0.1.0"
    f.attrs["config_text"] = config_text

    # /meta
    meta = f.create_group("meta")
    meta.attrs["grid.pixel_size_mm"] = grid.pixel_size
    meta.attrs["grid.pixel_spacing_mm"] = grid.pixel_spacing
    meta.attrs["grid.corner_offset_mm"] = grid.corner_offset
    meta.attrs["grid.det_size_mm"] = grid.det_size
    meta.attrs["grid.n_side"] = grid.n_side
    meta.attrs["grid.first_center_mm"] = grid.first_center
    meta.attrs["physics"] = json_dumps(asdict(params))
    return f


def _replace_or_create(grp: h5py.Group, name: str, data: np.ndarray) -> None:
    if name in grp:
        del grp[name]
    grp.create_dataset(name, data=data, compression="gzip")


def _event_columns(records: Sequence[EventRecord]) -> Dict[str, np.ndarray]:
    """
    Flatten per-event scalars into fixed-length columns.

    Marker records (no_hit / out_of_grid) keep NaN / -1 in every field they
    do not own; out_of_grid still reports the offending pixel indices.
    """
    N = len(records)
    f64 = lambda: np.full(N, np.nan, dtype=np.float64)  # noqa: E731
    i32 = lambda: np.full(N, -1, dtype=np.int32)  # noqa: E731
    b = lambda: np.zeros(N, dtype=bool)  # noqa: E731

    cols: Dict[str, np.ndarray] = {
        "event_id": np.zeros(N, dtype=np.int64),
        "status": np.zeros(N, dtype=np.uint8),
        "has_hit": b(),
        "is_pixel_hit": b(),
        "on_pad": b(),
        "within_d0": b(),
        "edep_MeV": np.zeros(N, dtype=np.float64),
        "pos_mm": np.full((N, 3), np.nan, dtype=np.float64),
        "initial_pos_mm": np.full((N, 3), np.nan, dtype=np.float64),
        "initial_energy_MeV": f64(),
        "n_steps": np.zeros(N, dtype=np.int32),
        "pixel_i": i32(),
        "pixel_j": i32(),
        "pixel_x_mm": f64(),
        "pixel_y_mm": f64(),
        "delta_x_mm": f64(),
        "delta_y_mm": f64(),
        "pixel_distance_mm": f64(),
        "radius": i32(),
        "selected_quality": f64(),
        "low_confidence": b(),
        "total_charge_C": f64(),
    }

    for k, rec in enumerate(records):
        ev = rec.event
        cols["event_id"][k] = rec.event_id
        cols["status"][k] = STATUS_CODES[rec.status]
        cols["has_hit"][k] = rec.has_hit
        cols["edep_MeV"][k] = ev.edep_MeV
        cols["pos_mm"][k] = ev.pos
        cols["initial_pos_mm"][k] = ev.initial_pos
        cols["initial_energy_MeV"][k] = ev.initial_energy_MeV
        cols["n_steps"][k] = ev.n_steps

        px = rec.pixel
        if px is not None:
            cols["pixel_i"][k] = px.i
            cols["pixel_j"][k] = px.j
        if px is None or rec.status != "ok":
            continue

        cols["is_pixel_hit"][k] = px.is_pixel_hit
        cols["on_pad"][k] = px.on_pad
        cols["within_d0"][k] = px.within_d0
        cols["pixel_x_mm"][k] = px.center_x
        cols["pixel_y_mm"][k] = px.center_y
        cols["delta_x_mm"][k] = px.delta_x
        cols["delta_y_mm"][k] = px.delta_y
        cols["pixel_distance_mm"][k] = px.distance
        cols["radius"][k] = rec.radius
        if rec.charge is not None:
            cols["total_charge_C"][k] = rec.charge.total_charge_C
        if rec.selection is not None:
            cols["selected_quality"][k] = rec.selection.quality
            cols["low_confidence"][k] = rec.selection.low_confidence
    return cols


def _flatten_neighborhoods(records: Sequence[EventRecord]) -> Tuple[np.ndarray, Dict[str, np.ndarray]]:
    """
    Concatenate per-event neighborhood arrays into ragged columns.

    Returns:
      event_ptr: (N_events+1,) int64, CSR-style pointers; marker records
                 contribute zero entries.
      cols: dict of 1D arrays over all neighborhood entries.
    """
    n_events = len(records)
    ptr = np.zeros(n_events + 1, dtype=np.int64)
    for k, rec in enumerate(records):
        n = rec.geometry.size if rec.geometry is not None else 0
        ptr[k + 1] = ptr[k] + n

    keys_geom = ("di", "dj", "valid", "angle_deg", "distance_mm", "alpha_deg")
    parts: Dict[str, list] = {k: [] for k in (*keys_geom, "fraction", "charge_C")}
    for rec in records:
        if rec.geometry is None:
            continue
        for k in keys_geom:
            parts[k].append(getattr(rec.geometry, k))
        parts["fraction"].append(rec.charge.fraction)
        parts["charge_C"].append(rec.charge.charge_C)

    dtypes = {"di": np.int16, "dj": np.int16, "valid": bool}
    cols = {}
    for k, chunks in parts.items():
        dt = dtypes.get(k, np.float64)
        cols[k] = np.concatenate(chunks).astype(dt) if chunks else np.zeros(0, dtype=dt)
    return ptr, cols


def _fit_columns(records: Sequence[EventRecord]) -> Dict[str, np.ndarray]:
    """Columns keyed '<model>/<orientation>/<field>', one entry per event."""
    N = len(records)
    cols: Dict[str, np.ndarray] = {}
    for k, rec in enumerate(records):
        for fit in rec.fits:
            base = f"{fit.model}/{fit.orientation}"
            if f"{base}/ndf" not in cols:
                for name in _FIT_FIELDS:
                    cols[f"{base}/{name}"] = np.full(N, np.nan, dtype=np.float64)
                cols[f"{base}/ndf"] = np.full(N, -1, dtype=np.int32)
            for name in _FIT_FIELDS:
                cols[f"{base}/{name}"][k] = getattr(fit, name)
            cols[f"{base}/ndf"][k] = fit.ndf
    return cols


def write_events(f: h5py.File, records: Sequence[EventRecord]) -> None:
    """
    Store one row per event under /events, the ragged neighborhood arrays
    under /neighborhood (with /neighborhood/event_ptr) and any fit results
    under /fits/<model>/<orientation>.
    """
    g_ev = f.require_group("events")
    for key, arr in _event_columns(records).items():
        _replace_or_create(g_ev, key, arr)

    g_nb = f.require_group("neighborhood")
    event_ptr, cols = _flatten_neighborhoods(records)
    _replace_or_create(g_nb, "event_ptr", event_ptr)
    for key, arr in cols.items():
        _replace_or_create(g_nb, key, arr)

    fit_cols = _fit_columns(records)
    if fit_cols:
        g_fit = f.require_group("fits")
        for key, arr in fit_cols.items():
            model, orientation, name = key.split("/")
            _replace_or_create(g_fit.require_group(model).require_group(orientation), name, arr)


def read_events(path: str) -> Dict[str, np.ndarray]:
    """
    Load every dataset under /events, /neighborhood and /fits into a flat
    dict keyed by its path without the leading slash.
    """
    out: Dict[str, np.ndarray] = {}
    with h5py.File(str(path), "r") as f:
        def _grab(name, obj):
            if isinstance(obj, h5py.Dataset):
                out[name] = np.asarray(obj[...])
        for top in ("events", "neighborhood", "fits"):
            if top in f:
                f[top].visititems(lambda n, o, top=top: _grab(f"{top}/{n}", o))
    return out
