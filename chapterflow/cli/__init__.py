"""
CLI Module
==========
Command-line entry point for the chapter pipeline.
"""

from .main import build_parser, main

__all__ = ["build_parser", "main"]
