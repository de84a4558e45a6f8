"""Listing alert engine: matches new marketplace listings against standing user criteria."""

__version__ = "0.1.0"
