from . import reaper

__all__ = ["reaper"]
