"""
Reel Flow development collector.

Provides a Flask app that receives analytics batches.

Usage:
    python -m reel_flow collector
"""
from .app import app

__all__ = ["app"]
