"""
consultslot - availability and booking conflict engine for consulting services.
"""

__version__ = "0.1.0"
