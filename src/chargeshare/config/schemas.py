from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Literal, Optional, Dict, Union, Any

class RunCfg(BaseModel):
    """
    Global run controls.
    """

    # Primaries to generate (gun source, 1000 when unset) or upper bound on
    # events read from a step table (every event when unset)
    n_events: Optional[int] = None

    # Performance / execution
    workers: Union[int, Literal["auto"]] = "auto"
    chunk_events: Union[int, Literal["auto"]] = "auto"
    progress: bool = True

    # Reproducibility of the gun source
    seed: Optional[int] = None

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

    @field_validator("n_events")
    def _n_events_nonneg(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("n_events must be >= 0")
        return v

    @field_validator("chunk_events")
    def _chunk_positive(cls, v):
        if v != "auto" and v <= 0:
            raise ValueError("chunk_events must be > 0 or 'auto'")
        return v

class IOCfg(BaseModel):
    """
    I/O paths and deposit source description.

    TOML:

    [io]
    input_format = "gun"           # "gun" | "table"
    input_path   = "steps.csv"     # only read for input_format = "table"
    output_path  = "out/run.h5"

    [io.adapter]
    event_col = "event"
    edep_col  = "edep_MeV"
    """

    input_format: Literal["gun", "table"] = "gun"
    input_path: str = ""
    output_path: str

    # Adapter-specific sub-config, e.g. [io.adapter]
    adapter: Dict[str, Any] = Field(default_factory=dict)

class DetectorCfg(BaseModel):
    """
    Static pixel grid of the sensor. All lengths in mm.

    The first pixel center sits at -det_size/2 + corner_offset + pixel_size/2
    on both axes; num_blocks_per_side = 0 derives the count from the sizes.
    """

    pixel_size_mm: float = 0.1
    pixel_spacing_mm: float = 0.5
    pixel_corner_offset_mm: float = 0.1
    det_size_mm: float = 30.0
    num_blocks_per_side: int = 0

    @field_validator("pixel_size_mm", "pixel_spacing_mm", "det_size_mm")
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("detector lengths must be > 0")
        return v

    @field_validator("pixel_corner_offset_mm")
    def _offset_nonneg(cls, v: float) -> float:
        if v < 0:
            raise ValueError("pixel_corner_offset_mm must be >= 0")
        return v

    @model_validator(mode="after")
    def _spacing_holds_pixel(self) -> "DetectorCfg":
        if self.pixel_spacing_mm < self.pixel_size_mm:
            raise ValueError(
                f"pixel_spacing_mm={self.pixel_spacing_mm} is smaller than "
                f"pixel_size_mm={self.pixel_size_mm}; pads would overlap"
            )
        if self.num_blocks_per_side < 0:
            raise ValueError("num_blocks_per_side must be >= 0 (0 = derive)")
        return self

class NeighborhoodCfg(BaseModel):
    """
    Neighborhood radius and automatic radius search.

    radius = 4 is a 9x9 grid. With auto_radius = true every candidate in
    [min_radius, max_radius] is scored by the fit-quality evaluator.
    """

    radius: int = 4
    auto_radius: bool = False
    min_radius: int = 2
    max_radius: int = 6
    # None follows the evaluator (chi2-based scores are better when lower)
    quality_direction: Optional[Literal["lower", "higher"]] = None
    fit_error_fraction: float = 0.05

    @field_validator("radius", "min_radius", "max_radius")
    def _radius_nonneg(cls, v: int) -> int:
        if v < 0:
            raise ValueError("neighborhood radii must be >= 0")
        return v

    @model_validator(mode="after")
    def _range_ordered(self) -> "NeighborhoodCfg":
        if self.min_radius > self.max_radius:
            raise ValueError(
                f"min_radius={self.min_radius} > max_radius={self.max_radius}"
            )
        return self

    @property
    def largest_radius(self) -> int:
        """Radius that bounds the neighborhood for this configuration."""
        # pixel hits keep the fixed radius in auto mode
        return max(self.radius, self.max_radius) if self.auto_radius else self.radius

class PhysicsCfg(BaseModel):
    ionization_energy_eV: float = 3.6     # eV per e-h pair in silicon
    amplification_factor: float = 20.0   # AC-LGAD gain
    d0_um: float = 10.0                  # reference distance for charge sharing
    elementary_charge_C: float = 1.602176634e-19
    sharing_model: Literal["log_alpha", "log_subtended"] = "log_alpha"

    @field_validator("ionization_energy_eV", "amplification_factor", "d0_um", "elementary_charge_C")
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("physics constants must be > 0")
        return v

class GunCfg(BaseModel):
    """
    Built-in primary generator used when [io].input_format = "gun".
    """

    energy_MeV: float = 0.1
    z_mm: float = 0.025
    n_steps: int = 10
    edep_per_step_MeV: float = 0.002
    lateral_sigma_um: float = 2.0

class VisCfg(BaseModel):
    export_png_on_write: bool = True


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg
    detector: DetectorCfg = Field(default_factory=DetectorCfg)
    neighborhood: NeighborhoodCfg = Field(default_factory=NeighborhoodCfg)
    physics: PhysicsCfg = Field(default_factory=PhysicsCfg)
    gun: GunCfg = Field(default_factory=GunCfg)
    vis: VisCfg = Field(default_factory=VisCfg)
