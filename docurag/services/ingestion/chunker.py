"""Character-budget text chunking with overlapping, boundary-aligned windows.

Splits extracted document text into segments of at most ``chunk_size``
characters.  Consecutive segments share up to ``overlap`` characters so a
statement that straddles a boundary still appears whole in one of them.

Boundaries are chosen from the coarsest level that works:

1. paragraph breaks (blank lines)
2. line breaks
3. sentence ends (``.``, ``!``, ``?`` followed by whitespace), ignoring
   periods after common abbreviations such as "Dr." or "etc."
4. whitespace between words
5. a hard cut at ``chunk_size`` characters

The text is first cut into *atoms*, contiguous spans no longer than
``chunk_size`` that tile the input exactly.  Atoms are then packed greedily
into windows; the next window restarts on the trailing atoms of the
previous one that fit inside ``overlap``.  Every segment is an exact
substring of the input (``text[start:end]``) trimmed of surrounding
whitespace, so offsets can always be mapped back to the source.
"""

from __future__ import annotations

import re

import structlog

logger = structlog.get_logger(logger_name=__name__)

# Common abbreviations that should NOT end a sentence.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Ave",
        "Blvd",
        "Vol",
        "No",
        "vs",
        "etc",
        "approx",
        "dept",
        "est",
        "govt",
        "inc",
        "ltd",
        "co",
        "ft",
        "e.g",
        "i.e",
    }
)

_ABBREVIATION_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True)) + r")\."
)

# Separator levels, coarsest first.  A boundary is placed at the end of
# each match, so the separator stays with the text before it.
_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_LINE_RE = re.compile(r"\n")
_SENTENCE_RE = re.compile(r"[.!?](?:\s+|$)")
_WORD_RE = re.compile(r"\s+")

_LEVELS: tuple[re.Pattern[str], ...] = (_PARAGRAPH_RE, _LINE_RE, _SENTENCE_RE, _WORD_RE)

Span = tuple[int, int]


class TextChunker:
    """Splits text into overlapping segments bounded by a character budget.

    Parameters
    ----------
    chunk_size:
        Maximum segment length in characters (default 1000).
    overlap:
        Maximum number of characters shared by consecutive segments
        (default 200).  Must satisfy ``0 <= overlap < chunk_size``.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError(
                f"overlap must satisfy 0 <= overlap < chunk_size, got "
                f"overlap={overlap}, chunk_size={chunk_size}"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[str]:
        """Split *text* into ordered segments.

        Empty or whitespace-only input returns an empty list.
        """
        return [text[start:end] for start, end in self.chunk_spans(text)]

    def chunk_spans(self, text: str) -> list[Span]:
        """Return ``(start, end)`` offsets of each segment within *text*.

        Spans are ordered, with strictly increasing ends.  None exceeds
        ``chunk_size`` characters or covers only whitespace, and any
        character outside every span is whitespace.
        """
        if not text or not text.strip():
            return []

        masked = _mask_abbreviations(text)
        atoms = self._split(text, masked, 0, len(text), 0)
        spans = self._merge(text, atoms)

        logger.debug(
            "chunking_complete",
            num_chunks=len(spans),
            text_length=len(text),
            avg_chars=sum(e - s for s, e in spans) // len(spans) if spans else 0,
        )
        return spans

    # ------------------------------------------------------------------
    # Atom splitting
    # ------------------------------------------------------------------

    def _split(self, text: str, masked: str, start: int, end: int, level: int) -> list[Span]:
        """Cut ``text[start:end]`` into contiguous atoms of at most chunk_size."""
        if end - start <= self._chunk_size:
            return [(start, end)]

        if level >= len(_LEVELS):
            return [
                (pos, min(pos + self._chunk_size, end))
                for pos in range(start, end, self._chunk_size)
            ]

        # The sentence level searches the masked copy so abbreviation
        # periods are invisible; the copy has the same length as text.
        haystack = masked if _LEVELS[level] is _SENTENCE_RE else text
        cuts = [
            m.end()
            for m in _LEVELS[level].finditer(haystack, start, end)
            if start < m.end() < end
        ]
        if not cuts:
            return self._split(text, masked, start, end, level + 1)

        atoms: list[Span] = []
        piece_start = start
        for cut in [*cuts, end]:
            atoms.extend(self._split(text, masked, piece_start, cut, level + 1))
            piece_start = cut
        return atoms

    # ------------------------------------------------------------------
    # Window packing
    # ------------------------------------------------------------------

    def _merge(self, text: str, atoms: list[Span]) -> list[Span]:
        """Pack atoms into overlapping windows and trim their whitespace."""
        spans: list[Span] = []
        count = len(atoms)
        first = 0
        while first < count:
            window_start = atoms[first][0]
            last = first
            while last + 1 < count and atoms[last + 1][1] - window_start <= self._chunk_size:
                last += 1

            span = _trim(text, window_start, atoms[last][1])
            # A window whose new material is only whitespace trims down to
            # something the previous span already covers.
            if span is not None and (not spans or span[1] > spans[-1][1]):
                spans.append(span)

            if last == count - 1:
                break

            # Step back over trailing atoms while they fit in the overlap
            # budget and still leave room for the next unseen atom.
            window_end = atoms[last][1]
            next_end = atoms[last + 1][1]
            nxt = last + 1
            while (
                nxt - 1 > first
                and window_end - atoms[nxt - 1][0] <= self._overlap
                and next_end - atoms[nxt - 1][0] <= self._chunk_size
            ):
                nxt -= 1
            first = nxt
        return spans


def _mask_abbreviations(text: str) -> str:
    """Replace periods that close an abbreviation with NUL, keeping offsets."""
    return _ABBREVIATION_RE.sub(lambda m: m.group(0)[:-1] + "\x00", text)


def _trim(text: str, start: int, end: int) -> Span | None:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return (start, end) if start < end else None
