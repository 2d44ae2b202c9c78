"""Matrix file I/O."""

from .matrices import load_matrix, save_matrix

__all__ = ["load_matrix", "save_matrix"]
