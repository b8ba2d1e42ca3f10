from __future__ import annotations
from .schemas import Config
from pathlib import Path
import json

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

def load_config(path: str | Path) -> Config:
    """
    Parse a TOML run card into a validated Config.

    Relative [io] paths are resolved against the directory of the TOML file,
    so a run card can be launched from anywhere.
    """
    p = Path(path)
    cfg = parse_config_text(p.read_text())
    base = p.resolve().parent
    if cfg.io.input_path and not Path(cfg.io.input_path).is_absolute():
        cfg.io.input_path = str(base / cfg.io.input_path)
    if not Path(cfg.io.output_path).is_absolute():
        cfg.io.output_path = str(base / cfg.io.output_path)
    return cfg

def parse_config_text(text: str) -> Config:
    return Config(**tomllib.loads(text))

def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()

def json_dumps(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
