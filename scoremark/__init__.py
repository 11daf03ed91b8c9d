"""
Scoremark - collaborative score annotation engine.
"""

__version__ = "0.4.0"
