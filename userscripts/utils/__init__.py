"""Utility helpers for the userscript stack."""

from .run_logger import RunLogger

__all__ = [
    'RunLogger',
]
