"""Paragraph-aware chunking engine with overlap between neighbouring chunks."""
import logging
import math
import re
import time
from typing import Any, Dict, List, Optional, Tuple

from config import (
    CHARS_PER_TOKEN,
    CHUNK_COMBINE_THRESHOLD,
    CHUNK_MAX_TOKENS,
    CHUNK_MIN_TOKENS,
    CHUNK_OVERLAP_TOKENS,
)
from errors import InvalidInputError
from models.chunk import (
    Chunk,
    ChunkNavigation,
    OverlapInfo,
    Paragraph,
    SegmentationResult,
    SegmentationStats,
    SourceMetadata,
)

logger = logging.getLogger(__name__)

_BLANK_LINE_SPLIT = re.compile(r"\n\s*\n")
# Runs ending in terminal punctuation, plus any unterminated tail
_SENTENCE_PATTERN = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")
_SENTENCE_END = re.compile(r"[.!?]\s*$")
_UPPERCASE_START = re.compile(r"^[A-Z]")
_WORD = re.compile(r"\S+")

MAX_OVERLAP_WORDS = 30
MIN_OVERLAP_CHARS = 10
MIN_PARAGRAPH_LINE_LENGTH = 20

STRATEGY_BLANK_LINES = "blank_lines"
STRATEGY_LINE_HEURISTIC = "line_heuristic"
STRATEGY_SENTENCES = "sentences"


def estimate_tokens(text: str, chars_per_token: int = CHARS_PER_TOKEN) -> int:
    """Approximate token count as ceil(characters / chars_per_token)."""
    return math.ceil(len(text) / chars_per_token)


def chunk_id_for(index: int) -> str:
    return f"chunk_{index}"


class ChunkingEngine:
    """Segments document text into bounded, overlap-linked chunks."""

    def __init__(
        self,
        max_tokens: int = CHUNK_MAX_TOKENS,
        min_tokens: int = CHUNK_MIN_TOKENS,
        overlap_tokens: int = CHUNK_OVERLAP_TOKENS,
        combine_threshold: int = CHUNK_COMBINE_THRESHOLD,
        chars_per_token: int = CHARS_PER_TOKEN
    ):
        """
        Initialize ChunkingEngine.

        Args:
            max_tokens: Paragraphs above this estimate are split at sentence boundaries
            min_tokens: Paragraphs below this estimate absorb their successors
            overlap_tokens: Upper bound for text carried over from the previous chunk
            combine_threshold: Target size when grouping sentences into paragraphs
            chars_per_token: Characters per estimated token

        Raises:
            ValueError: If the thresholds are inconsistent
        """
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if min_tokens < 0 or min_tokens > max_tokens:
            raise ValueError("min_tokens must be between 0 and max_tokens")
        if overlap_tokens < 0:
            raise ValueError("overlap_tokens cannot be negative")
        if combine_threshold <= 0:
            raise ValueError("combine_threshold must be positive")
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")

        self.max_tokens = max_tokens
        self.min_tokens = min_tokens
        self.overlap_tokens = overlap_tokens
        self.combine_threshold = combine_threshold
        self.chars_per_token = chars_per_token

    def segment(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> SegmentationResult:
        """
        Split document text into chunks.

        Steps: normalize, extract paragraphs, split/combine paragraphs to fit
        the token bounds, prepend overlap from the previous chunk, and link the
        chunks together.

        Args:
            text: Raw document text
            metadata: Caller metadata merged onto every chunk

        Returns:
            SegmentationResult with ordered chunks and processing stats

        Raises:
            InvalidInputError: If text is not a non-empty string
        """
        if not isinstance(text, str) or not text:
            raise InvalidInputError("Valid text string is required")

        start_time = time.perf_counter()

        cleaned = self._normalize(text)
        if not cleaned:
            raise InvalidInputError("Text contains no content after normalization")

        paragraphs, strategy = self._extract_paragraphs(cleaned)
        optimized = self._optimize_paragraphs(paragraphs)
        drafts = self._build_chunks(optimized)

        global_metadata: Dict[str, Any] = dict(metadata or {})
        global_metadata.update({
            "strategy": "paragraph",
            "extractionStrategy": strategy,
            "originalLength": len(text),
            "cleanedLength": len(cleaned),
            "paragraphCount": len(paragraphs),
        })
        chunks = self._package(drafts, global_metadata)

        stats = SegmentationStats(
            original_length=len(text),
            cleaned_length=len(cleaned),
            paragraph_count=len(paragraphs),
            chunk_count=len(chunks),
            extraction_strategy=strategy,
            processing_time_ms=int((time.perf_counter() - start_time) * 1000)
        )

        logger.info(
            f"Segmented {len(text)} chars into {len(chunks)} chunks "
            f"({len(paragraphs)} paragraphs via {strategy})"
        )
        return SegmentationResult(chunks=chunks, stats=stats)

    def _estimate(self, text: str) -> int:
        return estimate_tokens(text, self.chars_per_token)

    @staticmethod
    def _normalize(text: str) -> str:
        """Unify line endings, collapse spaces, cap blank lines at one."""
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = re.sub(r"[ \t]+", " ", text)
        text = re.sub(r"\n +", "\n", text)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    @staticmethod
    def _split_sentences(text: str) -> List[str]:
        sentences = [s.strip() for s in _SENTENCE_PATTERN.findall(text)]
        sentences = [s for s in sentences if s]
        return sentences or [text]

    def _extract_paragraphs(self, text: str) -> Tuple[List[Paragraph], str]:
        """Try blank-line blocks, then line heuristics, then sentence grouping."""
        blocks = [block.strip() for block in _BLANK_LINE_SPLIT.split(text)]
        blocks = [block for block in blocks if block]
        strategy = STRATEGY_BLANK_LINES

        if len(blocks) <= 1:
            blocks = self._split_by_single_newlines(text)
            strategy = STRATEGY_LINE_HEURISTIC

        if len(blocks) <= 1:
            blocks = self._group_sentences(text)
            strategy = STRATEGY_SENTENCES

        paragraphs = [
            Paragraph(
                id=f"para_{index}",
                text=block,
                token_estimate=self._estimate(block),
                source_index=index
            )
            for index, block in enumerate(blocks)
        ]
        return paragraphs, strategy

    @staticmethod
    def _split_by_single_newlines(text: str) -> List[str]:
        lines = [line.strip() for line in text.split("\n")]
        lines = [line for line in lines if line]

        paragraphs = []
        current = ""
        for line in lines:
            starts_paragraph = (
                _UPPERCASE_START.match(line)
                and _SENTENCE_END.search(current)
                and len(line) > MIN_PARAGRAPH_LINE_LENGTH
            )
            if starts_paragraph and current:
                paragraphs.append(current.strip())
                current = line
            else:
                current = f"{current} {line}" if current else line

        if current:
            paragraphs.append(current.strip())
        return paragraphs

    def _group_sentences(self, text: str) -> List[str]:
        paragraphs = []
        current = ""
        for sentence in self._split_sentences(text):
            combined = f"{current} {sentence}" if current else sentence
            if current and self._estimate(combined) > self.combine_threshold:
                paragraphs.append(current)
                current = sentence
            else:
                current = combined

        if current:
            paragraphs.append(current)
        return paragraphs

    def _optimize_paragraphs(self, paragraphs: List[Paragraph]) -> List[Paragraph]:
        """Split paragraphs above max_tokens, absorb neighbours into ones below min_tokens."""
        optimized: List[Paragraph] = []
        i = 0
        while i < len(paragraphs):
            paragraph = paragraphs[i]

            if paragraph.token_estimate > self.max_tokens:
                optimized.extend(self._split_large_paragraph(paragraph))
                i += 1
            elif paragraph.token_estimate < self.min_tokens and i < len(paragraphs) - 1:
                combined, i = self._combine_consecutive(paragraphs, i)
                optimized.append(combined)
            else:
                optimized.append(paragraph)
                i += 1

        return optimized

    def _split_large_paragraph(self, paragraph: Paragraph) -> List[Paragraph]:
        parts: List[str] = []
        current = ""
        for sentence in self._split_sentences(paragraph.text):
            combined = f"{current} {sentence}" if current else sentence
            if current and self._estimate(combined) > self.max_tokens:
                parts.append(current)
                current = sentence
            else:
                current = combined

        if current:
            parts.append(current)

        logger.debug(f"Split {paragraph.id} ({paragraph.token_estimate} tokens) into {len(parts)} parts")
        return [
            Paragraph(
                id=f"{paragraph.id}_split_{n}",
                text=part,
                token_estimate=self._estimate(part),
                source_index=paragraph.source_index,
                is_split=True,
                split_part=n + 1
            )
            for n, part in enumerate(parts)
        ]

    def _combine_consecutive(self, paragraphs: List[Paragraph], start: int) -> Tuple[Paragraph, int]:
        """
        Greedily absorb paragraphs after ``start``.

        Stops once the combined estimate reaches min_tokens or when the next
        paragraph would push it over max_tokens.

        Returns:
            The combined paragraph and the index of the first unconsumed paragraph
        """
        text = paragraphs[start].text
        tokens = paragraphs[start].token_estimate
        end = start
        combined_ids = [paragraphs[start].id]

        for j in range(start + 1, len(paragraphs)):
            candidate = f"{text}\n\n{paragraphs[j].text}"
            candidate_tokens = self._estimate(candidate)
            if candidate_tokens > self.max_tokens:
                break

            text = candidate
            tokens = candidate_tokens
            end = j
            combined_ids.append(paragraphs[j].id)
            if tokens >= self.min_tokens:
                break

        if end == start:
            return paragraphs[start], start + 1

        combined = Paragraph(
            id="combined_" + "_".join(combined_ids),
            text=text,
            token_estimate=tokens,
            source_index=paragraphs[start].source_index,
            is_combined=True,
            combined_count=end - start + 1
        )
        return combined, end + 1

    def _build_chunks(self, paragraphs: List[Paragraph]) -> List[Tuple[Paragraph, str, Optional[OverlapInfo]]]:
        """Prepend overlap drawn from the previous chunk's final text."""
        drafts: List[Tuple[Paragraph, str, Optional[OverlapInfo]]] = []

        for index, paragraph in enumerate(paragraphs):
            final_text = paragraph.text
            overlap_info = None

            if drafts and self.overlap_tokens > 0:
                previous_text = drafts[-1][1]
                overlap_text = self._extract_overlap(previous_text)
                if overlap_text:
                    final_text = f"{overlap_text}\n\n{paragraph.text}"
                    overlap_info = OverlapInfo(
                        text=overlap_text,
                        token_estimate=self._estimate(overlap_text),
                        from_chunk_id=chunk_id_for(index - 1)
                    )

            drafts.append((paragraph, final_text, overlap_info))

        return drafts

    def _extract_overlap(self, previous_text: str) -> str:
        """
        Take the tail of the previous chunk as overlap.

        The result is an exact substring of ``previous_text`` that starts on a
        word boundary and whose token estimate does not exceed overlap_tokens.
        """
        words = list(_WORD.finditer(previous_text))
        target = min(
            int(self.overlap_tokens * 0.75),
            int(len(words) * 0.2),
            MAX_OVERLAP_WORDS
        )
        if target <= 0:
            return ""

        start = len(words) - target
        overlap = previous_text[words[start].start():]
        while self._estimate(overlap) > self.overlap_tokens and start < len(words) - 1:
            start += 1
            overlap = previous_text[words[start].start():]
        if self._estimate(overlap) > self.overlap_tokens:
            return ""

        # End at a sentence boundary when one falls in the back half
        last_end = max(overlap.rfind("."), overlap.rfind("!"), overlap.rfind("?"))
        if last_end > len(overlap) * 0.5:
            overlap = overlap[:last_end + 1]

        if len(overlap) < MIN_OVERLAP_CHARS:
            return ""
        return overlap

    def _package(
        self,
        drafts: List[Tuple[Paragraph, str, Optional[OverlapInfo]]],
        global_metadata: Dict[str, Any]
    ) -> List[Chunk]:
        """Assign sequential ids and navigation links."""
        chunks = []
        last = len(drafts) - 1

        for index, (paragraph, final_text, overlap_info) in enumerate(drafts):
            navigation = ChunkNavigation(
                is_first=index == 0,
                is_last=index == last,
                previous_chunk_id=chunk_id_for(index - 1) if index > 0 else None,
                next_chunk_id=chunk_id_for(index + 1) if index < last else None
            )
            source_metadata = SourceMetadata(
                original_index=paragraph.source_index,
                is_split=paragraph.is_split,
                is_combined=paragraph.is_combined,
                split_part=paragraph.split_part,
                combined_count=paragraph.combined_count
            )
            chunks.append(Chunk(
                id=chunk_id_for(index),
                chunk_index=index,
                text=final_text,
                token_estimate=self._estimate(final_text),
                original_token_estimate=paragraph.token_estimate,
                navigation=navigation,
                source_metadata=source_metadata,
                overlap_info=overlap_info,
                global_metadata=dict(global_metadata)
            ))

        return chunks
