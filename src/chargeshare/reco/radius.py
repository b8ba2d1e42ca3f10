from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Literal, Optional, Protocol

import numpy as np

from chargeshare.physics.charge import ChargeRecord
from chargeshare.physics.neighborhood import GeometryRecord
from .fits import FitFailure, FitQuality, FitResult

Direction = Literal["lower", "higher"]
SelectorState = Literal["idle", "searching", "selected"]


class FitQualityEvaluator(Protocol):
    """
    Scores one candidate radius. An evaluator may also carry a class-level
    `direction` ("lower" or "higher") that the RadiusSelector adopts.
    """

    def evaluate(self, radius: int, geometry: GeometryRecord, charge: ChargeRecord) -> Optional[FitQuality]:
        """Return a quality for this candidate, or None when it cannot be scored."""


@dataclass(slots=True)
class RadiusSelection:
    """
    Outcome of one radius search.

    scores holds every candidate that produced a usable quality. When none
    did, radius is the configured minimum and low_confidence is True.
    """
    radius: int
    quality: float
    low_confidence: bool = False
    scores: Dict[int, float] = field(default_factory=dict)
    geometry: Optional[GeometryRecord] = None
    charge: Optional[ChargeRecord] = None
    fits: List[FitResult] = field(default_factory=list)


# builds (geometry, charge) for one candidate radius
CandidateBuilder = Callable[[int], "tuple[GeometryRecord, ChargeRecord]"]


class RadiusSelector:
    """
    Exhaustive search of [min_radius, max_radius] for the best fit quality.

    idle -> searching -> selected. Candidates whose evaluation returns
    None, raises or gives a non-finite score are dropped. Exact ties go to
    the smaller radius.

    direction=None follows the evaluator's own `direction` attribute when it
    declares one ("lower" otherwise); an explicit direction that contradicts
    the evaluator is rejected.
    """

    def __init__(
        self,
        evaluator: FitQualityEvaluator,
        min_radius: int,
        max_radius: int,
        direction: Optional[Direction] = None,
        diagnostics_level: int = 0,
    ):
        if min_radius < 0 or min_radius > max_radius:
            raise ValueError(f"Invalid radius range [{min_radius}, {max_radius}]")
        declared = getattr(evaluator, "direction", None)
        if direction is None:
            direction = declared or "lower"
        if direction not in ("lower", "higher"):
            raise ValueError(f"direction must be 'lower' or 'higher', got {direction!r}")
        if declared is not None and declared != direction:
            raise ValueError(
                f"quality direction {direction!r} contradicts {type(evaluator).__name__} "
                f"(scores are better when {declared})"
            )
        self.evaluator = evaluator
        self.min_radius = int(min_radius)
        self.max_radius = int(max_radius)
        self.direction = direction
        self.diagnostics_level = diagnostics_level
        self.state: SelectorState = "idle"

    def _better(self, score: float, best: float) -> bool:
        if self.direction == "lower":
            return score < best
        return score > best

    def select(self, build: CandidateBuilder) -> RadiusSelection:
        self.state = "searching"
        best: Optional[RadiusSelection] = None
        scores: Dict[int, float] = {}

        # ascending order + strict comparison keeps the smallest radius on ties
        for r in range(self.min_radius, self.max_radius + 1):
            geometry, charge = build(r)
            try:
                quality = self.evaluator.evaluate(r, geometry, charge)
            except FitFailure:
                quality = None
            except Exception as e:
                if self.diagnostics_level >= 1:
                    print(f"[radius] evaluator raised at r={r}: {e!r}; candidate dropped")
                quality = None
            if quality is None or not np.isfinite(quality.score):
                continue
            score = float(quality.score)
            scores[r] = score
            if best is None or self._better(score, best.quality):
                best = RadiusSelection(
                    radius=r,
                    quality=score,
                    geometry=geometry,
                    charge=charge,
                    fits=list(quality.fits),
                )

        if best is None:
            geometry, charge = build(self.min_radius)
            best = RadiusSelection(
                radius=self.min_radius,
                quality=float("nan"),
                low_confidence=True,
                geometry=geometry,
                charge=charge,
            )
        best.scores = scores
        self.state = "selected"
        return best

    def reset(self) -> None:
        self.state = "idle"
