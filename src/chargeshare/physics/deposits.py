# src/chargeshare/physics/deposits.py
from __future__ import annotations
from dataclasses import dataclass

import numpy as np

@dataclass(slots=True)
class FinalizedEvent:
    """
    One event after all deposits have been accumulated.

    edep_MeV: total deposited energy
    pos: energy-weighted hit position [mm], shape (3,); NaN when has_hit is False
    initial_pos: primary vertex [mm], shape (3,); NaN when never set
    """
    has_hit: bool
    edep_MeV: float
    pos: np.ndarray
    initial_pos: np.ndarray
    initial_energy_MeV: float = float("nan")
    n_steps: int = 0


def _nan3() -> np.ndarray:
    return np.full(3, np.nan, dtype=np.float64)


class EventAccumulator:
    """
    Per-worker accumulator of step deposits into one weighted hit per event.

    Call reset() at event start, add_edep() for every step, finalize() at
    event end. Zero-energy steps are ignored; they neither move the weighted
    position nor mark the event as hit.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self._edep = 0.0
        self._weighted_pos = np.zeros(3, dtype=np.float64)
        self._initial_pos = _nan3()
        self._initial_energy = float("nan")
        self._has_hit = False
        self._n_steps = 0

    def set_initial_pos(self, pos) -> None:
        self._initial_pos = np.asarray(pos, dtype=np.float64).reshape(3).copy()

    def set_initial_energy(self, energy_MeV: float) -> None:
        self._initial_energy = float(energy_MeV)

    @property
    def has_hit(self) -> bool:
        return self._has_hit

    def add_edep(self, edep: float, pos) -> None:
        edep = float(edep)
        if edep < 0:
            raise ValueError(f"Negative energy deposit {edep} MeV")
        if edep == 0.0:
            return
        self._edep += edep
        self._weighted_pos += edep * np.asarray(pos, dtype=np.float64).reshape(3)
        self._has_hit = True
        self._n_steps += 1

    def finalize(self) -> FinalizedEvent:
        if not self._has_hit:
            return FinalizedEvent(
                has_hit=False,
                edep_MeV=0.0,
                pos=_nan3(),
                initial_pos=self._initial_pos.copy(),
                initial_energy_MeV=self._initial_energy,
                n_steps=0,
            )
        return FinalizedEvent(
            has_hit=True,
            edep_MeV=self._edep,
            pos=self._weighted_pos / self._edep,
            initial_pos=self._initial_pos.copy(),
            initial_energy_MeV=self._initial_energy,
            n_steps=self._n_steps,
        )
