"""
Hybrid node bootstrap tooling.
"""

__version__ = '0.1.0'
