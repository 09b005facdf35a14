"""vsrkit - drive the Versionr command line tool from Python."""

__version__ = "0.1.0"
