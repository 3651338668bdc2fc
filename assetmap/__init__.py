# assetmap/__init__.py
# Spreadsheet-backed station, lookup and repair store with an optional database mirror.

__version__ = "0.4.0"
