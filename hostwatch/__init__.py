"""hostwatch — autonomous host-monitoring daemon."""

__version__ = "0.1.0"
