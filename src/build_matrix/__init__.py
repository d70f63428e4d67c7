"""build-matrix: trigger compatibility builds for package versions with CI capacity in mind."""

__version__ = "0.1.0"

__all__ = ["__version__"]
