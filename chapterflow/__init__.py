"""
chapterflow
===========
Chapter content pipeline for a novel reader: cached AI processing,
prefetching and streaming text-to-speech.
"""

__version__ = "0.1.0"
