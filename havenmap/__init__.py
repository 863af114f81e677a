"""Safer-ground suggestions ranked from OpenStreetMap features."""

__version__ = "0.1.0"
