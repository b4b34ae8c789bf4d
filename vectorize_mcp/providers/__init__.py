from .vectorize import VectorizeClient

__all__ = ["VectorizeClient"]
