from .variant import NavierStokesVariant

__all__ = ["NavierStokesVariant"]
