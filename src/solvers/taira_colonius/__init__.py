from .variant import TairaColoniusVariant

__all__ = ["TairaColoniusVariant"]
