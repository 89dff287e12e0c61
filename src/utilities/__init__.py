"""Cross-project utilities (simulation I/O, MLflow tracking)."""

# Keep __init__ lightweight to avoid circular imports during Hydra startup.
from utilities.io import load_simulation_data, save_simulation_data, ensure_output_dir  # noqa: F401

__all__ = [
    "load_simulation_data",
    "save_simulation_data",
    "ensure_output_dir",
]
