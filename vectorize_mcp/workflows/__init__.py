from .polling import poll_until_ready

__all__ = ["poll_until_ready"]
