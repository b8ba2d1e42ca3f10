from __future__ import annotations
from dataclasses import dataclass
import numpy as np

from .neighborhood import GeometryRecord

# --- Parameters -------------------------------------------------------------

@dataclass(frozen=True)
class PhysicsParameters:
    """
    Process-wide charge-transport constants (read-only once built).

    ionization_energy_eV: mean energy per electron-hole pair
    amplification_factor: gain of the AC-LGAD multiplication layer
    d0_um: reference distance of the logarithmic sharing law
    elementary_charge_C: charge per carrier
    """
    ionization_energy_eV: float = 3.6
    amplification_factor: float = 20.0
    d0_um: float = 10.0
    elementary_charge_C: float = 1.602176634e-19
    sharing_model: str = "log_alpha"

    @classmethod
    def from_cfg(cls, cfg_physics) -> "PhysicsParameters":
        return cls(
            ionization_energy_eV=cfg_physics.ionization_energy_eV,
            amplification_factor=cfg_physics.amplification_factor,
            d0_um=cfg_physics.d0_um,
            elementary_charge_C=cfg_physics.elementary_charge_C,
            sharing_model=cfg_physics.sharing_model,
        )

    @property
    def d0_mm(self) -> float:
        return self.d0_um * 1e-3

    def total_charge_C(self, edep_MeV: float) -> float:
        """Induced charge after gain for a deposit of edep_MeV."""
        n_pairs = edep_MeV * 1e6 / self.ionization_energy_eV
        return n_pairs * self.amplification_factor * self.elementary_charge_C


@dataclass(slots=True)
class ChargeRecord:
    """
    Per-pixel charge over a neighborhood, aligned with GeometryRecord.

    fraction sums to 1 over valid pixels; invalid pixels carry NaN.
    """
    fraction: np.ndarray
    charge_C: np.ndarray
    total_charge_C: float

# --- Sharing laws -----------------------------------------------------------

class SharingLaw:
    """Base protocol: raw (un-normalized) weight per neighborhood pixel."""
    name: str

    def weights(self, geom: GeometryRecord, d0_mm: float, pixel_size: float) -> np.ndarray:
        raise NotImplementedError

def _log_term(distance_mm: np.ndarray, d0_mm: float) -> np.ndarray:
    # ln(d/d0) must stay positive; d is pushed just above d0
    d = np.maximum(distance_mm, d0_mm * (1.0 + 1e-9))
    return np.log(d / d0_mm)

class LogAlphaSharing(SharingLaw):
    """
    w = alpha(d) / ln(d/d0) with the analytic pad angle
    alpha(d) = atan( (l/2*sqrt2) / (l/2*sqrt2 + d) ).

    Both factors fall with d, so weights strictly decrease with distance.
    """
    name = "log_alpha"

    def weights(self, geom, d0_mm, pixel_size):
        half_diag = (pixel_size / 2.0) * np.sqrt(2.0)
        alpha = np.arctan(half_diag / (half_diag + geom.distance_mm))
        return alpha / _log_term(geom.distance_mm, d0_mm)

class LogSubtendedSharing(SharingLaw):
    """w = alpha_subtended / ln(d/d0), using the corner-difference pad angle."""
    name = "log_subtended"

    def weights(self, geom, d0_mm, pixel_size):
        alpha = np.radians(geom.alpha_deg)
        return alpha / _log_term(geom.distance_mm, d0_mm)

_LAWS = {
    LogAlphaSharing.name: LogAlphaSharing,
    LogSubtendedSharing.name: LogSubtendedSharing,
}

def make_sharing_law(name: str) -> SharingLaw:
    try:
        return _LAWS[name]()
    except KeyError:
        raise ValueError(f"Unknown sharing model {name!r}; expected one of {sorted(_LAWS)}") from None

# --- Model ------------------------------------------------------------------

class ChargeSharingModel:
    """
    Split the induced charge of one event over its neighborhood.

    Non-pixel hits use the configured sharing law normalized over valid
    pixels. Pixel hits put everything on the struck (center) pixel.
    """

    def __init__(self, params: PhysicsParameters, pixel_size: float):
        self.params = params
        self.pixel_size = float(pixel_size)
        self.law = make_sharing_law(params.sharing_model)

    def calc_neighborhood_charge_sharing(
        self,
        geom: GeometryRecord,
        edep_MeV: float,
        pixel_hit: bool = False,
    ) -> ChargeRecord:
        total = self.params.total_charge_C(edep_MeV)
        fraction = np.full(geom.size, np.nan, dtype=np.float64)

        if pixel_hit:
            fraction[geom.valid] = 0.0
            fraction[geom.center_index] = 1.0
        else:
            w = self.law.weights(geom, self.params.d0_mm, self.pixel_size)
            w_valid = w[geom.valid]
            norm = float(np.sum(w_valid))
            if norm > 0 and np.isfinite(norm):
                fraction[geom.valid] = w_valid / norm
            else:
                fraction[geom.valid] = 0.0

        return ChargeRecord(
            fraction=fraction,
            charge_C=fraction * total,
            total_charge_C=total,
        )
