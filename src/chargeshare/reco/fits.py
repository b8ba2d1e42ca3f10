# src/chargeshare/reco/fits.py
"""
Fit results and the default fit-quality evaluator.

Every fit, whatever the model or the line through the neighborhood it was
made on, is reported as one FitResult keyed by (model, orientation). The
radius search only looks at FitQuality.score.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Literal, Optional

import numpy as np
from scipy.optimize import curve_fit

from chargeshare.physics.charge import ChargeRecord
from chargeshare.physics.neighborhood import GeometryRecord

FitModel = Literal["gauss", "lorentz", "power_lorentz"]
Orientation = Literal["row", "col", "main_diag", "sec_diag", "3d"]


@dataclass(frozen=True, slots=True)
class FitResult:
    """
    One fit of the charge-fraction profile.

    center/width are in mm along the fitted line (x for rows, y for
    columns); width is sigma for gauss and gamma for the Lorentz families.
    """
    model: FitModel
    orientation: Orientation
    center: float
    width: float
    amplitude: float
    offset: float
    chi2red: float
    ndf: int


@dataclass(frozen=True, slots=True)
class FitQuality:
    score: float
    fits: List[FitResult] = field(default_factory=list)


class FitFailure(RuntimeError):
    """Raised by an evaluator that cannot score a candidate radius."""


def gauss_1d(x, amp, mu, sigma, offset):
    return amp * np.exp(-0.5 * ((x - mu) / sigma) ** 2) + offset


def fit_gauss_1d(
    x: np.ndarray,
    y: np.ndarray,
    orientation: Orientation,
    error_fraction: float = 0.05,
) -> Optional[FitResult]:
    """
    Least-squares gaussian + offset to one line of charge fractions.

    Uncertainties are a flat error_fraction of the largest fraction on the
    line. Returns None with 4 points or fewer (no degree of freedom left)
    or when the minimizer does not converge.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.size <= 4:
        return None

    y_max = float(np.max(y))
    if not np.isfinite(y_max) or y_max <= 0:
        return None
    sigma_y = np.full_like(y, max(error_fraction * y_max, 1e-12))

    mu0 = float(x[np.argmax(y)])
    spread = float(np.ptp(x)) or 1.0
    p0 = [y_max - float(np.min(y)), mu0, spread / 4.0, float(np.min(y))]
    try:
        popt, _ = curve_fit(gauss_1d, x, y, p0=p0, sigma=sigma_y, absolute_sigma=True, maxfev=2000)
    except (RuntimeError, ValueError):
        return None

    resid = (y - gauss_1d(x, *popt)) / sigma_y
    ndf = int(x.size - len(popt))
    chi2red = float(np.sum(resid ** 2) / ndf)
    if not np.isfinite(chi2red):
        return None
    return FitResult(
        model="gauss",
        orientation=orientation,
        center=float(popt[1]),
        width=float(abs(popt[2])),
        amplitude=float(popt[0]),
        offset=float(popt[3]),
        chi2red=chi2red,
        ndf=ndf,
    )


class GaussRowColEvaluator:
    """
    Score a neighborhood by gaussian fits along the row and the column
    through the hit pixel. score = mean reduced chi-square, hence
    direction = "lower" for the radius search.
    """

    direction = "lower"

    def __init__(self, error_fraction: float = 0.05):
        self.error_fraction = float(error_fraction)

    def evaluate(self, radius: int, geometry: GeometryRecord, charge: ChargeRecord) -> Optional[FitQuality]:
        ok = geometry.valid & np.isfinite(charge.fraction)
        row = ok & (geometry.dj == 0)
        col = ok & (geometry.di == 0)

        fit_row = fit_gauss_1d(geometry.center_x[row], charge.fraction[row], "row", self.error_fraction)
        fit_col = fit_gauss_1d(geometry.center_y[col], charge.fraction[col], "col", self.error_fraction)
        if fit_row is None or fit_col is None:
            return None
        score = 0.5 * (fit_row.chi2red + fit_col.chi2red)
        return FitQuality(score=score, fits=[fit_row, fit_col])
