"""Toolwright - adaptive learning core for tool automation."""

__version__ = "0.4.0"
