"""
TTS Module
==========
Sentence segmentation, websocket synthesis, audio cache and chapter audio.
"""

from .segmenter import SegmentConfig, SentenceSegmenter, split_sentences
from .capcut import CapcutSynthesizer, build_start_task
from .cache import AudioCache
from .converter import ConversionRun, ConvertOptions, TTSConverter
from .service import ChapterAudioService, task_prefix

__all__ = [
    "AudioCache",
    "CapcutSynthesizer",
    "ChapterAudioService",
    "ConversionRun",
    "ConvertOptions",
    "SegmentConfig",
    "SentenceSegmenter",
    "TTSConverter",
    "build_start_task",
    "split_sentences",
    "task_prefix",
]
