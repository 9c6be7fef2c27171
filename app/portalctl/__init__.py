"""portalctl - Import, sign and distribute application packages."""

__version__ = "0.1.0"
