"""Evolving B-spline planets under a self-gravity fitness."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("evoplanets")
except PackageNotFoundError:  # pragma: no cover - source checkout without install
    __version__ = "unknown"
