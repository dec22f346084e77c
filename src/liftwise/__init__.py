"""Liftwise - progress tracking and load autoregulation for strength training."""

import importlib.metadata

try:
    __version__ = importlib.metadata.version("liftwise")
except importlib.metadata.PackageNotFoundError:
    __version__ = "unknown"
