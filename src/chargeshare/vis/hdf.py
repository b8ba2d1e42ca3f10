import h5py
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from pathlib import Path

from chargeshare.io.store import STATUS_CODES


def mean_fraction_map(h5_path: str) -> np.ndarray:
    """
    Mean charge fraction per (di, dj) offset over all non-pixel events.

    Returns a (2R+1, 2R+1) array indexed [dj + R, di + R] where R is the
    largest radius in the file; offsets never populated stay NaN.
    """
    with h5py.File(str(h5_path), "r") as f:
        status = np.asarray(f["events/status"])
        pix = np.asarray(f["events/is_pixel_hit"])
        ptr = np.asarray(f["neighborhood/event_ptr"])
        di = np.asarray(f["neighborhood/di"], dtype=np.int64)
        dj = np.asarray(f["neighborhood/dj"], dtype=np.int64)
        frac = np.asarray(f["neighborhood/fraction"])

    keep_ev = (status == STATUS_CODES["ok"]) & ~pix
    keep = np.repeat(keep_ev, np.diff(ptr)) & np.isfinite(frac)
    if not np.any(keep):
        raise ValueError(f"No non-pixel neighborhoods in {h5_path}")

    R = int(max(np.abs(di[keep]).max(), np.abs(dj[keep]).max()))
    side = 2 * R + 1
    sums = np.zeros((side, side), dtype=np.float64)
    counts = np.zeros((side, side), dtype=np.int64)
    np.add.at(sums, (dj[keep] + R, di[keep] + R), frac[keep])
    np.add.at(counts, (dj[keep] + R, di[keep] + R), 1)
    with np.errstate(invalid="ignore", divide="ignore"):
        return np.where(counts > 0, sums / counts, np.nan)


def save_fraction_map_png(h5_path: str, out_png: str | None = None, log: bool = False):
    h5_path = str(h5_path)
    img = mean_fraction_map(h5_path)
    R = (img.shape[0] - 1) // 2

    if out_png is None:
        out_png = str(Path(h5_path).with_suffix(".png"))

    plt.figure()
    data = np.log10(img) if log else img
    plt.imshow(data, origin="lower", extent=(-R - 0.5, R + 0.5, -R - 0.5, R + 0.5))
    plt.colorbar(label="log10 mean fraction" if log else "mean fraction")
    plt.xlabel("di")
    plt.ylabel("dj")
    plt.title(Path(h5_path).name + " : neighborhood charge fraction")
    plt.tight_layout()
    plt.savefig(out_png, dpi=150)
    plt.close()
    return out_png
