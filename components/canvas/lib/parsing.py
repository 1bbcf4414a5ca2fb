"""
Parsing for prompt canvas files.

A canvas file starts with an optional file-level comment

    <!-- prompt-canvas: {"version":"2.0"} -->

followed by a body in one of three on-disk formats:

    v2.0  # Set / ## Session / ### Prompt headings, each followed by a
          <!-- {...} --> metadata comment on the next line
    v1.1  <!-- set: {...} --> and <!-- prompt: {...} --> comments
    v1.0  flat prompts separated by --- lines, each optionally led by a
          <!-- prompt: {...} --> comment; legacy "group" fields

Every format is read into the same PromptDocument. Reading never fails:
malformed metadata degrades to defaults for that one entity and the rest of
the file is parsed normally.

The body is first turned into a flat token stream (one token per line) by
tokenize(); detect_format() and the format parsers only look at tokens.

Contents:
    - split_file_metadata(): Separate the file-level comment from the body
    - tokenize(): Classify body lines (headings, comments, separators, text)
    - detect_format(): Pick v2.0 / v1.1 / v1.0 for a body
    - detect_file_format(): Same, for a whole file (None when empty)
    - PromptAccumulator: Shared buffer/flush logic for prompt bodies
    - HeadingFormatParser / SetCommentFormatParser / SeparatorFormatParser
    - parse(): Text -> PromptDocument
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .content import demote_headings
from .models import (
    FORMAT_V1_0, FORMAT_V1_1, FORMAT_V2_0, LATEST_VERSION,
    Clock, FileMetadata, IdFactory, Prompt, PromptDocument, PromptMetadata,
    PromptSet, Session, generate_id, utc_now,
)

# File-level metadata, only recognised at the very start of the file
FILE_META_PATTERN = re.compile(r'^<!--\s*prompt-canvas:\s*(\{.*?\})\s*-->')

# Structural headings. A bare "#" counts as an (unnamed) heading.
HEADING_PATTERN = re.compile(r'^(#{1,3})(?:[ \t]+(.*?))?[ \t]*$')

# Comments are matched against the stripped line
METADATA_COMMENT_PATTERN = re.compile(r'^<!--\s*(\{.*\})\s*-->$')
SET_COMMENT_PATTERN = re.compile(r'^<!--\s*set:\s*(\{.*\})\s*-->$')
PROMPT_COMMENT_PATTERN = re.compile(r'^<!--\s*prompt:\s*(\{.*\})\s*-->$')
SEPARATOR_PATTERN = re.compile(r'^-{3,}$')

# Literal marker of a v1.1 set comment
SET_COMMENT_MARKER = '<!-- set:'

# Token kinds
HEADING1 = 'heading1'
HEADING2 = 'heading2'
HEADING3 = 'heading3'
METADATA_COMMENT = 'metadata'        # <!-- {...} -->
SET_COMMENT = 'set_comment'          # <!-- set: {...} -->
PROMPT_COMMENT = 'prompt_comment'    # <!-- prompt: {...} -->
SEPARATOR = 'separator'              # ---
TEXT = 'text'

HEADING_KINDS = {1: HEADING1, 2: HEADING2, 3: HEADING3}


@dataclass
class Token:
    """One classified line of a canvas body."""
    kind: str
    raw: str  # the line exactly as it appeared
    text: str = ''  # heading text, or the JSON payload of a comment


def split_file_metadata(text: str) -> Tuple[FileMetadata, str]:
    """
    Separate the file-level metadata comment from the body.

    A missing or unparseable comment yields the v1.0 default. The comment is
    stripped in both cases, along with the newlines that follow it.

    Returns:
        Tuple of (file_metadata, body)
    """
    match = FILE_META_PATTERN.match(text)
    if not match:
        return FileMetadata(), text

    data = load_metadata(match.group(1))
    file_metadata = FileMetadata.from_dict(data) if data is not None else FileMetadata()
    body = text[match.end():].lstrip('\n')
    return file_metadata, body


def load_metadata(payload: str) -> Optional[Dict[str, Any]]:
    """Decode a metadata comment payload. Returns None unless it is a JSON object."""
    try:
        data = json.loads(payload)
    except (ValueError, RecursionError):
        return None
    return data if isinstance(data, dict) else None


def tokenize(body: str) -> List[Token]:
    """
    Split a canvas body into line tokens.

    Headings must start at column 0. Comments and separators may carry
    surrounding whitespace.
    """
    tokens = []
    for line in body.split('\n'):
        stripped = line.strip()

        heading = HEADING_PATTERN.match(line.rstrip())
        if heading:
            kind = HEADING_KINDS[len(heading.group(1))]
            tokens.append(Token(kind, line, heading.group(2) or ''))
            continue

        for kind, pattern in (
            (SET_COMMENT, SET_COMMENT_PATTERN),
            (PROMPT_COMMENT, PROMPT_COMMENT_PATTERN),
            (METADATA_COMMENT, METADATA_COMMENT_PATTERN),
        ):
            match = pattern.match(stripped)
            if match:
                tokens.append(Token(kind, line, match.group(1)))
                break
        else:
            if SEPARATOR_PATTERN.match(stripped):
                tokens.append(Token(SEPARATOR, line))
            else:
                tokens.append(Token(TEXT, line))

    return tokens


def detect_format(body: str, tokens: Optional[List[Token]] = None) -> str:
    """
    Detect the on-disk format of a canvas body.

    v2.0 is checked first: any H1-H3 heading whose next line is a
    <!-- {...} --> comment. This is a heuristic; a v1.x file containing
    prose shaped like that will be read as v2.0.

    Returns:
        FORMAT_V2_0, FORMAT_V1_1 or FORMAT_V1_0
    """
    if tokens is None:
        tokens = tokenize(body)

    for current, following in zip(tokens, tokens[1:]):
        if current.kind in HEADING_KINDS.values() and following.kind == METADATA_COMMENT:
            return FORMAT_V2_0

    if SET_COMMENT_MARKER in body:
        return FORMAT_V1_1

    return FORMAT_V1_0


def detect_file_format(text: str) -> Optional[str]:
    """Detect the format of a whole file. Returns None for an empty file."""
    _, body = split_file_metadata(text)
    if not body.strip():
        return None
    return detect_format(body)


def _trim_blank_lines(lines: List[str]) -> List[str]:
    start = 0
    end = len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def ensure_single_active(sets: List[PromptSet]) -> None:
    """Leave exactly one active set: the first active one, else the first set."""
    active = [s for s in sets if s.active]
    if not active:
        if sets:
            sets[0].active = True
        return
    for extra in active[1:]:
        extra.active = False


class PromptAccumulator:
    """
    Buffer for the prompt currently being read.

    All three format parsers open a prompt when they see its boundary, feed
    it body lines, and flush it at the next boundary or end of input.
    Flushing trims leading/trailing blank lines and, for v2.0 bodies,
    demotes headings.
    """

    def __init__(self, demote: bool = False):
        self.prompts: List[Prompt] = []
        self._demote = demote
        self._metadata: Optional[PromptMetadata] = None
        self._lines: List[str] = []

    @property
    def is_open(self) -> bool:
        return self._metadata is not None

    def open(self, metadata: PromptMetadata, lines: Optional[List[str]] = None) -> None:
        """Start a new prompt, committing any prompt still open."""
        self.flush()
        self._metadata = metadata
        self._lines = list(lines or [])

    def add(self, line: str) -> None:
        """Append a body line. Lines outside any prompt are dropped."""
        if self._metadata is not None:
            self._lines.append(line)

    def flush(self) -> Optional[Prompt]:
        """Commit the open prompt, if any, and return it."""
        metadata = self._metadata
        lines = self._lines
        self._metadata = None
        self._lines = []

        if metadata is None or not metadata.id:
            return None

        content = '\n'.join(_trim_blank_lines(lines))
        if self._demote:
            content = demote_headings(content)

        prompt = Prompt(id=metadata.id, content=content, metadata=metadata)
        self.prompts.append(prompt)
        return prompt


class FormatParser:
    """
    Base class for the per-format body parsers.

    Subclasses decide what counts as an entity boundary and which defaults
    apply; the prompt buffering is shared through PromptAccumulator.
    """
    version = ''
    demote = False

    def __init__(
        self,
        new_id: IdFactory = generate_id,
        now: Clock = utc_now,
        logger: Optional[logging.Logger] = None
    ):
        self.new_id = new_id
        self.now = now
        self.logger = logger or logging.getLogger(__name__)

    def parse(
        self,
        tokens: List[Token],
        file_metadata: FileMetadata
    ) -> Tuple[List[PromptSet], List[Session], List[Prompt]]:
        """Return (sets, sessions, prompts) for a tokenized body."""
        raise NotImplementedError

    def _new_set(self, data: Dict[str, Any], default_active: bool) -> PromptSet:
        return PromptSet.from_dict(data, self.new_id, self.now, default_active=default_active)

    def _implicit_set(self, sets: List[PromptSet]) -> PromptSet:
        prompt_set = PromptSet(id=self.new_id(), active=False, created=self.now())
        sets.append(prompt_set)
        self.logger.debug(f"Created implicit set {prompt_set.id} for content before any set heading")
        return prompt_set

    def _prompt_metadata(self, data: Optional[Dict[str, Any]]) -> PromptMetadata:
        if data is None:
            return PromptMetadata.default(self.new_id, self.now)
        return PromptMetadata.from_dict(data, self.new_id, self.now)


class HeadingFormatParser(FormatParser):
    """
    v2.0: H1 sets, H2 sessions, H3 prompts.

    Each heading may be followed on the very next line by a <!-- {...} -->
    metadata comment. Membership in a set or session comes from position in
    the file, not from the metadata.
    """
    version = FORMAT_V2_0
    demote = True

    def parse(self, tokens, file_metadata):
        sets: List[PromptSet] = []
        sessions: List[Session] = []
        accumulator = PromptAccumulator(demote=self.demote)
        current_set: Optional[PromptSet] = None
        current_session: Optional[Session] = None

        i = 0
        while i < len(tokens):
            token = tokens[i]

            if token.kind not in (HEADING1, HEADING2, HEADING3):
                # Separators are cosmetic; everything else is body text
                if token.kind != SEPARATOR:
                    accumulator.add(token.raw)
                i += 1
                continue

            data, consumed = self._metadata_after(tokens, i)
            accumulator.flush()

            if token.kind == HEADING1:
                # Sets are inactive unless marked; ensure_single_active() falls
                # back to the first set, so an explicit flag anywhere wins
                current_set = self._new_set(data or {}, default_active=False)
                current_set.name = token.text or current_set.name
                sets.append(current_set)
                current_session = None

            elif token.kind == HEADING2:
                if current_set is None:
                    current_set = self._implicit_set(sets)
                current_session = Session.from_dict(data or {}, current_set.id, self.new_id)
                current_session.name = token.text or current_session.name
                sessions.append(current_session)

            else:
                if current_set is None:
                    current_set = self._implicit_set(sets)
                metadata = self._prompt_metadata(data)
                metadata.name = token.text or metadata.name
                metadata.set_id = current_set.id
                metadata.session_id = current_session.id if current_session else None
                accumulator.open(metadata)

            i += 1 + consumed

        accumulator.flush()
        ensure_single_active(sets)
        return sets, sessions, accumulator.prompts

    def _metadata_after(self, tokens: List[Token], index: int) -> Tuple[Optional[Dict[str, Any]], int]:
        """
        Read the metadata comment on the line after a heading.

        Returns (data, lines_consumed). A comment with malformed JSON is
        still consumed, and its entity falls back to defaults.
        """
        if index + 1 >= len(tokens) or tokens[index + 1].kind != METADATA_COMMENT:
            return None, 0
        data = load_metadata(tokens[index + 1].text)
        if data is None:
            self.logger.debug(f"Malformed metadata after heading {tokens[index].raw!r}, using defaults")
        return data, 1


class SetCommentFormatParser(FormatParser):
    """
    v1.1: <!-- set: {...} --> opens a set, <!-- prompt: {...} --> a prompt.

    No sessions. A set with malformed metadata is skipped. A prompt with
    malformed metadata keeps its raw comment line as content and gets
    synthesized defaults. Prompts without a setId join the latest set.
    """
    version = FORMAT_V1_1

    def parse(self, tokens, file_metadata):
        sets: List[PromptSet] = []
        accumulator = PromptAccumulator(demote=self.demote)
        current_set: Optional[PromptSet] = None

        for token in tokens:
            if token.kind == SET_COMMENT:
                accumulator.flush()
                data = load_metadata(token.text)
                if data is None:
                    self.logger.debug(f"Skipping set with malformed metadata: {token.raw.strip()}")
                    current_set = None
                    continue
                current_set = self._new_set(data, default_active=False)
                sets.append(current_set)

            elif token.kind == PROMPT_COMMENT:
                data = load_metadata(token.text)
                metadata = self._prompt_metadata(data)
                if data is None:
                    self.logger.debug(f"Malformed prompt metadata, keeping it as content: {token.raw.strip()}")
                    accumulator.open(metadata, [token.raw])
                else:
                    accumulator.open(metadata)
                if not metadata.set_id and current_set is not None:
                    metadata.set_id = current_set.id

            elif token.kind != SEPARATOR:
                accumulator.add(token.raw)

        accumulator.flush()
        ensure_single_active(sets)
        return sets, [], accumulator.prompts


class SeparatorFormatParser(FormatParser):
    """
    v1.0 / legacy: prompts separated by --- lines.

    Every prompt lands in a synthetic default set unless its metadata
    carries a legacy "group", which is migrated to a set of its own (one
    set per distinct group). The default set is dropped if nothing ends up
    in it.
    """
    version = FORMAT_V1_0

    def parse(self, tokens, file_metadata):
        default_set = PromptSet(id=self.new_id(), active=True, created=self.now())
        sets = [default_set]
        group_sets: Dict[str, PromptSet] = {}
        accumulator = PromptAccumulator(demote=self.demote)

        for segment in self._segments(tokens):
            head = segment[0]
            data = load_metadata(head.text) if head.kind == PROMPT_COMMENT else None
            metadata = self._prompt_metadata(data)
            body = segment[1:] if data is not None else segment
            if head.kind == PROMPT_COMMENT and data is None:
                self.logger.debug(f"Malformed prompt metadata, keeping segment as content: {head.raw.strip()}")

            if metadata.group:
                target = group_sets.get(metadata.group)
                if target is None:
                    target = self._group_set(metadata.group, file_metadata)
                    group_sets[metadata.group] = target
                    sets.append(target)
                metadata.set_id = target.id
            else:
                metadata.set_id = default_set.id

            accumulator.open(metadata, [t.raw for t in body])
            accumulator.flush()

        prompts = accumulator.prompts
        if not any(p.metadata.set_id == default_set.id for p in prompts):
            sets.remove(default_set)

        ensure_single_active(sets)
        return sets, [], prompts

    def _segments(self, tokens: List[Token]) -> List[List[Token]]:
        """Split tokens on separator lines, trimming blank lines and dropping empty segments."""
        segments = []
        current: List[Token] = []
        for token in tokens + [Token(SEPARATOR, '---')]:
            if token.kind == SEPARATOR:
                while current and not current[0].raw.strip():
                    current.pop(0)
                while current and not current[-1].raw.strip():
                    current.pop()
                if current:
                    segments.append(current)
                current = []
            else:
                current.append(token)
        return segments

    def _group_set(self, group: str, file_metadata: FileMetadata) -> PromptSet:
        legacy = file_metadata.groups.get(group)
        self.logger.debug(f"Migrating legacy group {group!r} to a set")
        return PromptSet(
            id=self.new_id(),
            name=(legacy.name if legacy and legacy.name else group),
            active=False,
            collapsed=legacy.collapsed if legacy else False,
            created=self.now(),
        )


FORMAT_PARSERS = {
    FORMAT_V2_0: HeadingFormatParser,
    FORMAT_V1_1: SetCommentFormatParser,
    FORMAT_V1_0: SeparatorFormatParser,
}


def parse(
    text: str,
    new_id: Optional[IdFactory] = None,
    now: Optional[Clock] = None,
    logger: Optional[logging.Logger] = None
) -> PromptDocument:
    """
    Parse a canvas file into a PromptDocument.

    Any supported format is accepted and migrated; the returned document is
    always at the latest version. This never raises: malformed metadata
    degrades to defaults for the affected entity only.

    Args:
        text: Full file content
        new_id: Id factory for entities that have no id (default: random)
        now: Clock for missing timestamps (default: current UTC time)
        logger: Optional logger

    Returns:
        PromptDocument
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    new_id = new_id or generate_id
    now = now or utc_now

    file_metadata, body = split_file_metadata(text)
    file_metadata.version = LATEST_VERSION
    trailing_newline = text.endswith('\n')

    if not body.strip():
        return PromptDocument(file_metadata=file_metadata, trailing_newline=trailing_newline)

    tokens = tokenize(body)
    version = detect_format(body, tokens)
    logger.info(f"Detected canvas format v{version}")

    parser = FORMAT_PARSERS[version](new_id, now, logger)
    sets, sessions, prompts = parser.parse(tokens, file_metadata)

    known_set_ids = {s.id for s in sets}
    dangling = [p.id for p in prompts if p.metadata.set_id not in known_set_ids]
    if dangling:
        logger.debug(f"{len(dangling)} prompt(s) reference no known set: {', '.join(dangling)}")

    return PromptDocument(
        file_metadata=file_metadata,
        sets=sets,
        sessions=sessions,
        prompts=prompts,
        trailing_newline=trailing_newline,
    )
