"""Resilient loader for Bureau of Labor Statistics flat files"""

__version__ = "0.1.0"
