"""
Pipeline Module
===============
Background jobs over the content processor: prefetch and auto-generate.
"""

from .prefetch import PrefetchReport, PrefetchScheduler, prefetch_window
from .autogen import AutoGenerateService, AutoGenerateStats

__all__ = [
    "AutoGenerateService",
    "AutoGenerateStats",
    "PrefetchReport",
    "PrefetchScheduler",
    "prefetch_window",
]
