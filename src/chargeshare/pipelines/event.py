# src/chargeshare/pipelines/event.py
"""
Per-event processing: deposits -> weighted hit -> nearest pixel ->
neighborhood geometry -> charge sharing -> (optional) radius search.

An EventProcessor owns one instance of every stage and is used by exactly
one worker. It only reads the shared PixelGrid and PhysicsParameters.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterable, List, Literal, Optional

import numpy as np

from chargeshare.config.schemas import Config
from chargeshare.geometry.grid import PixelGrid
from chargeshare.physics.charge import ChargeRecord, ChargeSharingModel, PhysicsParameters
from chargeshare.physics.deposits import EventAccumulator, FinalizedEvent
from chargeshare.physics.neighborhood import GeometryRecord, NeighborhoodGeometry
from chargeshare.physics.pixels import PixelMapper, PixelMapping
from chargeshare.reco.fits import FitResult, GaussRowColEvaluator
from chargeshare.reco.radius import FitQualityEvaluator, RadiusSelection, RadiusSelector

Status = Literal["ok", "no_hit", "out_of_grid"]


@dataclass(slots=True)
class SimEvent:
    """
    Raw input of one event as delivered by a deposit source.

    edep_MeV: (n_steps,) step deposits
    pos_mm: (n_steps, 3) step positions
    """
    event_id: int
    edep_MeV: np.ndarray
    pos_mm: np.ndarray
    initial_pos: Optional[np.ndarray] = None
    initial_energy_MeV: float = float("nan")


@dataclass(slots=True)
class EventRecord:
    """
    Everything published for one event.

    A record is either complete (status "ok") or an explicit marker
    ("no_hit", "out_of_grid") whose pixel/neighborhood fields stay None.
    """
    event_id: int
    status: Status
    event: FinalizedEvent
    pixel: Optional[PixelMapping] = None
    geometry: Optional[GeometryRecord] = None
    charge: Optional[ChargeRecord] = None
    selection: Optional[RadiusSelection] = None
    fits: List[FitResult] = field(default_factory=list)

    @property
    def has_hit(self) -> bool:
        return self.status == "ok"

    @property
    def is_pixel_hit(self) -> bool:
        return self.pixel is not None and self.status == "ok" and self.pixel.is_pixel_hit

    @property
    def radius(self) -> int:
        return -1 if self.geometry is None else self.geometry.radius


class EventProcessor:
    """
    One worker's instance set of the per-event stages.

    With an evaluator and auto_radius=True, non-pixel hits go through the
    radius search; otherwise the fixed radius is used unconditionally.
    """

    def __init__(
        self,
        grid: PixelGrid,
        params: PhysicsParameters,
        radius: int = 4,
        *,
        auto_radius: bool = False,
        min_radius: int = 2,
        max_radius: int = 6,
        evaluator: Optional[FitQualityEvaluator] = None,
        quality_direction: Optional[str] = None,
        diagnostics_level: int = 0,
    ):
        # pixel hits keep the fixed radius even in auto mode
        largest = max(radius, max_radius) if auto_radius else radius
        grid.check_neighborhood_fits(largest)

        self.grid = grid
        self.params = params
        self.accumulator = EventAccumulator()
        self.mapper = PixelMapper(grid, params.d0_mm)
        self.geometry = NeighborhoodGeometry(grid, radius)
        self.charge_model = ChargeSharingModel(params, grid.pixel_size)
        self.selector: Optional[RadiusSelector] = None
        if auto_radius:
            if evaluator is None:
                raise ValueError("auto_radius requires a fit-quality evaluator")
            self.selector = RadiusSelector(
                evaluator, min_radius, max_radius, quality_direction, diagnostics_level
            )

    @classmethod
    def from_config(cls, cfg: Config, evaluator: Optional[FitQualityEvaluator] = None) -> "EventProcessor":
        nb = cfg.neighborhood
        if nb.auto_radius and evaluator is None:
            evaluator = GaussRowColEvaluator(error_fraction=nb.fit_error_fraction)
        return cls(
            PixelGrid.from_detector_cfg(cfg.detector),
            PhysicsParameters.from_cfg(cfg.physics),
            nb.radius,
            auto_radius=nb.auto_radius,
            min_radius=nb.min_radius,
            max_radius=nb.max_radius,
            evaluator=evaluator,
            quality_direction=nb.quality_direction,
            diagnostics_level=cfg.run.diagnostics_level,
        )

    # --- event lifecycle -----------------------------------------------------

    def begin_event(self, initial_pos=None, initial_energy_MeV: Optional[float] = None) -> None:
        self.accumulator.reset()
        if initial_pos is not None:
            self.accumulator.set_initial_pos(initial_pos)
        if initial_energy_MeV is not None:
            self.accumulator.set_initial_energy(initial_energy_MeV)

    def add_edep(self, edep: float, pos) -> None:
        self.accumulator.add_edep(edep, pos)

    def end_event(self, event_id: int) -> EventRecord:
        ev = self.accumulator.finalize()
        if not ev.has_hit:
            return EventRecord(event_id=event_id, status="no_hit", event=ev)

        pixel = self.mapper.calc_nearest_pixel(ev.pos)
        if not pixel.in_grid:
            return EventRecord(event_id=event_id, status="out_of_grid", event=ev, pixel=pixel)

        if pixel.is_pixel_hit or self.selector is None:
            geom = self.geometry.calc_neighborhood_grid_angles(ev.pos, pixel.i, pixel.j)
            charge = self.charge_model.calc_neighborhood_charge_sharing(
                geom, ev.edep_MeV, pixel_hit=pixel.is_pixel_hit
            )
            return EventRecord(
                event_id=event_id, status="ok", event=ev, pixel=pixel, geometry=geom, charge=charge
            )

        def build(r: int):
            g = self.geometry.calc_neighborhood_grid_angles(ev.pos, pixel.i, pixel.j, radius=r)
            return g, self.charge_model.calc_neighborhood_charge_sharing(g, ev.edep_MeV)

        self.selector.reset()
        sel = self.selector.select(build)
        return EventRecord(
            event_id=event_id,
            status="ok",
            event=ev,
            pixel=pixel,
            geometry=sel.geometry,
            charge=sel.charge,
            selection=sel,
            fits=sel.fits,
        )

    def process(self, sim: SimEvent) -> EventRecord:
        self.begin_event(sim.initial_pos, sim.initial_energy_MeV)
        edeps = np.asarray(sim.edep_MeV, dtype=np.float64).ravel()
        positions = np.asarray(sim.pos_mm, dtype=np.float64).reshape(-1, 3)
        for edep, pos in zip(edeps, positions):
            self.add_edep(edep, pos)
        return self.end_event(sim.event_id)

    def process_many(self, events: Iterable[SimEvent]) -> List[EventRecord]:
        return [self.process(ev) for ev in events]
