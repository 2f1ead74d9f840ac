"""
Sentence Segmenter
==================
Splits chapter text into short utterances for streaming synthesis.
Splits at sentence-terminal punctuation first, then breaks long sentences
at clause boundaries (commas, semicolons, colons, opening quotes).
"""

import re
from dataclasses import dataclass

from chapterflow.content.markup import html_to_lines


_TERMINALS = ".!?…。！？"
_CLOSERS = "\"”’'»)\\]"


@dataclass
class SegmentConfig:
    """Configuration for sentence segmentation."""
    max_chars: int = 100
    min_chars: int = 5


class SentenceSegmenter:
    """
    Utterance splitter for TTS.

    Fragments whose trimmed length is at most ``min_chars`` (or that carry no
    letters or digits) are dropped.
    """

    def __init__(self, config: SegmentConfig | None = None):
        self.config = config or SegmentConfig()
        self._sentence = re.compile(
            rf"[^{_TERMINALS}]+(?:[{_TERMINALS}]+[{_CLOSERS}]*)?|[{_TERMINALS}]+[{_CLOSERS}]*"
        )
        self._clause_break = re.compile(r"(?<=[,;:，；：])\s+|\s+(?=[“\"])")

    def split(self, text: str) -> list[str]:
        """
        Split text (HTML or plain) into utterances.

        Args:
            text: Chapter content

        Returns:
            Ordered list of trimmed utterances
        """
        if not text:
            return []

        utterances: list[str] = []
        for line in html_to_lines(text).split("\n"):
            for match in self._sentence.finditer(line):
                sentence = match.group(0).strip()
                if not sentence:
                    continue
                if len(sentence) > self.config.max_chars:
                    utterances.extend(self._split_clauses(sentence))
                else:
                    utterances.append(sentence)

        return [u for u in utterances if self._keep(u)]

    def _keep(self, fragment: str) -> bool:
        stripped = fragment.strip()
        return len(stripped) > self.config.min_chars and any(ch.isalnum() for ch in stripped)

    def _split_clauses(self, sentence: str) -> list[str]:
        pieces = [p.strip() for p in self._clause_break.split(sentence) if p.strip()]
        if len(pieces) <= 1:
            return [sentence]

        merged: list[str] = []
        buffer = ""
        for piece in pieces:
            if not buffer:
                buffer = piece
            elif (
                len(buffer) + 1 + len(piece) <= self.config.max_chars
                or len(buffer) <= self.config.min_chars
            ):
                buffer = f"{buffer} {piece}"
            else:
                merged.append(buffer)
                buffer = piece

        if buffer:
            if len(buffer) <= self.config.min_chars and merged:
                merged[-1] = f"{merged[-1]} {buffer}"
            else:
                merged.append(buffer)
        return merged


def split_sentences(text: str, max_chars: int = 100) -> list[str]:
    """Convenience wrapper around SentenceSegmenter."""
    return SentenceSegmenter(SegmentConfig(max_chars=max_chars)).split(text)
