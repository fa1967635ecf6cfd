"""Key-level cloud synchronization for localization resource files."""

__version__ = "0.4.0"
