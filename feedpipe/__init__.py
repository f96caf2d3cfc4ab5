"""
feedpipe - resiliente Content-Acquisition für Feed-Routen
"""

__version__ = "1.0.0"
