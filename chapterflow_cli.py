#!/usr/bin/env python3
"""
Project-level CLI launcher.

Usage:
    python chapterflow_cli.py <command> [options]
"""

from chapterflow.cli.main import main


if __name__ == "__main__":
    raise SystemExit(main())
