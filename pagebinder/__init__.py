"""
PageBinder: render an ordered list of web pages into one merged PDF.
"""

__version__ = "1.0.0"
