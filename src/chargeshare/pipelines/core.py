from __future__ import annotations

import os
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence
import typer

import numpy as np

try:
    from tqdm import tqdm  # optional, for progress bars
except Exception:
    tqdm = None  # noqa

from chargeshare.config.load import load_config, snapshot_config_toml
from chargeshare.config.schemas import Config
from chargeshare.geometry.grid import PixelGrid
from chargeshare.io.sources import make_source
from chargeshare.io.store import write_init, write_events
from chargeshare.physics.charge import PhysicsParameters
from chargeshare.pipelines.event import EventProcessor, EventRecord, SimEvent
from chargeshare.pipelines.sync import RunBarrier
from chargeshare.vis.hdf import save_fraction_map_png


def _resolve_workers(workers: int | str) -> int:
    if workers == "auto":
        return max(1, os.cpu_count() or 1)
    if isinstance(workers, int):
        return max(0, workers)
    raise ValueError("workers must be int or 'auto'")


def _auto_chunk_size(n_events: int, workers: int) -> int:
    # a few chunks per worker keeps the pool busy without tiny tasks
    return max(100, min(5000, n_events // max(1, 4 * workers) or 1))


def _worker(cfg: Config, chunk: Sequence[SimEvent]) -> List[EventRecord]:
    """Process one chunk in a worker process with a private EventProcessor."""
    proc = EventProcessor.from_config(cfg)
    return proc.process_many(chunk)


def process_events(cfg: Config, events: Sequence[SimEvent]) -> List[EventRecord]:
    """
    Run every event through its own processor instance set.

    workers == 0, or small runs, use the single-process path. Otherwise the
    events are chunked over a process pool; each chunk gets its own
    EventProcessor. Every finished chunk checks in at a RunBarrier from the
    parent and the merge waits on it. Records come back ordered by event id
    either way.
    """
    N = len(events)
    if N == 0:
        return []
    workers = _resolve_workers(cfg.run.workers)
    progress = cfg.run.progress and tqdm is not None

    if workers == 0 or N < 500:
        proc = EventProcessor.from_config(cfg)
        it = tqdm(events, desc="events", unit="ev") if progress else events
        return [proc.process(ev) for ev in it]

    if cfg.run.chunk_events == "auto":
        chunk_events = _auto_chunk_size(N, workers)
    else:
        chunk_events = int(cfg.run.chunk_events)
    chunks = [events[i:i + chunk_events] for i in range(0, N, chunk_events)]

    barrier = RunBarrier(len(chunks))
    pbar = tqdm(total=len(chunks), desc=f"events x{workers}", unit="chunk") if progress else None

    def _done(_fut):
        barrier.arrive()
        if pbar:
            pbar.update(1)

    # Use spawn-friendly ProcessPoolExecutor
    with ProcessPoolExecutor(max_workers=workers) as ex:
        futs = [ex.submit(_worker, cfg, ch) for ch in chunks]
        for fut in futs:
            fut.add_done_callback(_done)
        barrier.wait()
        records: List[EventRecord] = []
        for fut in futs:
            records.extend(fut.result())
    if pbar:
        pbar.close()

    records.sort(key=lambda r: r.event_id)
    return records


def summarize(records: Sequence[EventRecord]) -> Dict[str, int]:
    counts = {"events": len(records), "ok": 0, "no_hit": 0, "out_of_grid": 0,
              "pixel_hit": 0, "non_pixel_hit": 0, "low_confidence": 0}
    for rec in records:
        counts[rec.status] += 1
        if rec.status != "ok":
            continue
        if rec.is_pixel_hit:
            counts["pixel_hit"] += 1
        else:
            counts["non_pixel_hit"] += 1
        if rec.selection is not None and rec.selection.low_confidence:
            counts["low_confidence"] += 1
    return counts


def run_pipeline(
    cfg_path: str,
    *,
    auto_radius: Optional[bool] = None,
    workers: Optional[int] = None,
    n_events: Optional[int] = None,
) -> Path:
    """
    Orchestrate the full run from a TOML config file.

    CLI flags (--auto-radius/--fixed-radius, --workers, --n-events) override
    the corresponding config fields when not None. Configuration errors
    (including a neighborhood that does not fit the detector) are raised
    here, before any event is processed.

    Returns
    -------
    Path to written HDF5 file.
    """
    cfg = load_config(cfg_path)

    # ---- apply CLI overrides on top of TOML ----
    if auto_radius is not None:
        cfg.neighborhood.auto_radius = auto_radius
    if workers is not None:
        cfg.run.workers = workers
    if n_events is not None:
        cfg.run.n_events = n_events

    diag_level = cfg.run.diagnostics_level
    nb = cfg.neighborhood

    grid = PixelGrid.from_detector_cfg(cfg.detector)
    params = PhysicsParameters.from_cfg(cfg.physics)
    margin = grid.check_neighborhood_fits(nb.largest_radius)
    # radius-search settings that contradict the evaluator fail here, before any event is read
    EventProcessor.from_config(cfg)

    if diag_level >= 1:
        print(f"[run] config = {cfg_path}")
        print(f"[run] grid {grid.n_side}x{grid.n_side} pixels, size={grid.pixel_size} mm, "
              f"spacing={grid.pixel_spacing} mm, det={grid.det_size} mm")
        side = 2 * nb.largest_radius + 1
        print(f"[run] neighborhood up to {side}x{side}, margin={margin:.4f} mm, "
              f"auto_radius={nb.auto_radius}"
              + (f" [{nb.min_radius}, {nb.max_radius}]" if nb.auto_radius else f" radius={nb.radius}"))
        print(f"[run] input={cfg.io.input_format} -> output={cfg.io.output_path}")

    # Events
    events = list(make_source(cfg, grid).iter_events())
    if diag_level >= 1:
        print(f"[events] Got {len(events)} events")

    records = process_events(cfg, events)

    counts = summarize(records)
    if diag_level >= 1:
        print(f"[pipeline] ok={counts['ok']} (pixel={counts['pixel_hit']}, "
              f"non-pixel={counts['non_pixel_hit']}) no_hit={counts['no_hit']} "
              f"out_of_grid={counts['out_of_grid']}")
        if nb.auto_radius:
            radii = [r.radius for r in records if r.selection is not None]
            if radii:
                vals, n = np.unique(radii, return_counts=True)
                print("[radius] selected:", dict(zip(vals.tolist(), n.tolist())),
                      f"low_confidence={counts['low_confidence']}")
    if diag_level >= 2:
        for rec in records[:5]:
            if rec.status == "ok":
                print(f"[pipeline] event {rec.event_id}: pixel=({rec.pixel.i},{rec.pixel.j}) "
                      f"d={rec.pixel.distance:.5f} mm pixel_hit={rec.is_pixel_hit} r={rec.radius}")

    # HDF5 output
    out_path = Path(cfg.io.output_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    f = write_init(str(out_path), snapshot_config_toml(cfg_path), grid, params)
    write_events(f, records)
    f.close()
    if diag_level >= 1:
        print(f"[store] Wrote {len(records)} records to {out_path}")

    # Optional PNG export
    if cfg.vis.export_png_on_write and counts["non_pixel_hit"]:
        try:
            out_png = save_fraction_map_png(str(out_path))
            if diag_level >= 1:
                print(f"[pipeline] Wrote PNG {out_png}")
        except Exception as e:
            if diag_level >= 1:
                print(f"[pipeline] PNG export failed: {e!r}")

    return out_path


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="AC-LGAD charge-sharing pipeline (chargeshare.pipelines.core)")


@app.command()
def main(
    cfg_path: str = typer.Argument(
        ...,
        help="Path to TOML config file",
    ),
    auto_radius: Optional[bool] = typer.Option(
        None,
        "--auto-radius / --fixed-radius",
        help="Enable or disable the radius search; overrides [neighborhood].auto_radius when set",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-j",
        help="Override [run].workers (0 = single-process)",
    ),
    n_events: Optional[int] = typer.Option(
        None,
        "--n-events",
        "-n",
        help="Override [run].n_events",
    ),
):
    """
    Run the charge-sharing pipeline for a single config.
    """
    out_path = run_pipeline(
        cfg_path,
        auto_radius=auto_radius,
        workers=workers,
        n_events=n_events,
    )
    typer.echo(str(out_path))


if __name__ == "__main__":
    app()
