"""Bounded-lifetime reaper for leftover Kubernetes scan Jobs."""

__version__ = "0.1.0"
