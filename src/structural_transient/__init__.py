"""
Structural transient dynamics package.

The __init__ stays lightweight so that `import structural_transient` and
`transient-sim --help` do not pull in scipy's sparse machinery.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("structural-transient")
except PackageNotFoundError:  # during editable installs
    __version__ = "0.0.0"

__all__ = ["__version__"]
