from __future__ import annotations

import typer
from typing import Optional

from chargeshare.vis.hdf import save_fraction_map_png

app = typer.Typer(help="chargeshare visualization tools")

@app.command("h5-to-png")
def h5_to_png(
    h5_path: str = typer.Argument(..., help="Path to a chargeshare HDF5 result file"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Output PNG path (defaults to file.png)"),
    log: bool = typer.Option(False, "--log", help="Color scale in log10 of the fraction"),
):
    """Render the mean neighborhood charge-fraction map of non-pixel hits to a PNG."""
    out_png = save_fraction_map_png(h5_path, out_png=out, log=log)
    typer.echo(f"Wrote {out_png}")

if __name__ == "__main__":
    app()
