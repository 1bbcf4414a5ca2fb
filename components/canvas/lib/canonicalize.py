"""
Canonicalize module for prompt canvas files.

Writing always produces the canonical v2.0 format, whatever format the
document was read from (upgrade on save; there is no way to write v1.x):

    <!-- prompt-canvas: {"version":"2.0"} -->

    # Set name
    <!-- {"id":"...","active":true,"created":"..."} -->

    ### Prompt name
    <!-- {"id":"...","status":"queue","created":"..."} -->
    Prompt body, headings promoted

    ## Session name
    <!-- {"id":"..."} -->

    ### ...

Within a set, prompts that belong to no session come first, then each
session in document order. Sets and sessions without prompts are not
written. Prompt order is exactly list order.

Prompts whose set is missing ("orphans") are moved to one synthesized set.
The input document is never modified: the normalized document and the
prompt -> set assignments are returned alongside the text.

Contents:
    - assign_orphans(): Give every orphan prompt a real set
    - serialize_document(): PromptDocument -> SerializeResult
    - serialize(): PromptDocument -> text
    - canonicalize_from_content(): Any-format text -> canonical text
    - canonicalize(): Same, reading from a file
"""

import json
import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .content import promote_headings
from .models import (
    LATEST_VERSION, Clock, IdFactory, Prompt, PromptDocument, PromptSet,
    generate_id, utc_now,
)
from .parsing import parse


@dataclass
class SerializeResult:
    """Output of serialize_document()."""
    content: str
    document: PromptDocument  # normalized: orphans assigned to a set
    assignments: Dict[str, str] = field(default_factory=dict)  # prompt id -> synthesized set id


# Lone surrogates survive json.loads() but cannot be encoded as UTF-8
SURROGATE_PATTERN = re.compile(r'[\ud800-\udfff]')


def _to_json(data: Dict[str, Any]) -> str:
    """
    Compact JSON, matching what the metadata comments have always used.

    Non-ASCII text is written as-is, except lone surrogates, which are
    escaped as \\uXXXX so the comment always encodes as UTF-8.
    """
    text = json.dumps(data, separators=(',', ':'), ensure_ascii=False)
    return SURROGATE_PATTERN.sub(lambda m: f'\\u{ord(m.group(0)):04x}', text)


def generate_file_header() -> str:
    """File-level metadata comment. Legacy groups are never written."""
    return f'<!-- prompt-canvas: {_to_json({"version": LATEST_VERSION})} -->'


def _heading(level: int, name: Optional[str]) -> str:
    marker = '#' * level
    # A heading is a single line
    title = (name or '').replace('\r', ' ').replace('\n', ' ').strip()
    return f'{marker} {title}' if title else marker


def _metadata_comment(data: Dict[str, Any]) -> str:
    return f'<!-- {_to_json(data)} -->'


def _prompt_block(prompt: Prompt) -> str:
    lines = [
        _heading(3, prompt.metadata.name),
        _metadata_comment(prompt.metadata.to_dict(include_structure=False)),
    ]
    if prompt.content:
        lines.append(promote_headings(prompt.content))
    return '\n'.join(lines)


def assign_orphans(
    document: PromptDocument,
    new_id: IdFactory = generate_id,
    now: Clock = utc_now,
    logger: Optional[logging.Logger] = None
) -> Tuple[PromptDocument, Dict[str, str]]:
    """
    Move prompts without a valid set into one synthesized set.

    A prompt is an orphan when it has no set id or its set id does not match
    any set in the document. The synthesized set is active only when the
    document has no other sets.

    Returns:
        Tuple of (normalized_document, assignments). When there are no
        orphans the original document is returned with empty assignments.
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    known_set_ids = {s.id for s in document.sets}
    orphan_ids = {p.id for p in document.prompts if p.metadata.set_id not in known_set_ids}
    if not orphan_ids:
        return document, {}

    default_set = PromptSet(id=new_id(), active=not document.sets, created=now())
    logger.debug(f"Assigning {len(orphan_ids)} orphan prompt(s) to new set {default_set.id}")

    prompts = []
    for prompt in document.prompts:
        if prompt.id in orphan_ids:
            metadata = replace(prompt.metadata, set_id=default_set.id, session_id=None)
            prompt = replace(prompt, metadata=metadata)
        prompts.append(prompt)

    normalized = replace(document, sets=document.sets + [default_set], prompts=prompts)
    return normalized, {prompt_id: default_set.id for prompt_id in orphan_ids}


def serialize_document(
    document: PromptDocument,
    new_id: Optional[IdFactory] = None,
    now: Optional[Clock] = None,
    logger: Optional[logging.Logger] = None
) -> SerializeResult:
    """
    Convert a document to canonical v2.0 text.

    Args:
        document: Document to write (not modified)
        new_id: Id factory for a synthesized orphan set
        now: Clock for a synthesized orphan set
        logger: Optional logger

    Returns:
        SerializeResult with the text, the normalized document and the
        orphan assignments that callers may apply to their own copy
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    normalized, assignments = assign_orphans(
        document, new_id or generate_id, now or utc_now, logger
    )

    prompts_by_set: Dict[str, List[Prompt]] = {}
    for prompt in normalized.prompts:
        prompts_by_set.setdefault(prompt.metadata.set_id, []).append(prompt)

    blocks: List[str] = []
    written_sets = set()
    for prompt_set in normalized.sets:
        set_prompts = prompts_by_set.get(prompt_set.id, [])
        if prompt_set.id in written_sets:
            continue
        if not set_prompts:
            logger.debug(f"Skipping empty set {prompt_set.id}")
            continue
        written_sets.add(prompt_set.id)

        blocks.append('\n'.join([
            _heading(1, prompt_set.name),
            _metadata_comment(prompt_set.to_dict(include_name=False)),
        ]))

        sessions = []
        for session in normalized.sessions:
            if session.set_id == prompt_set.id and session.id not in {s.id for s in sessions}:
                sessions.append(session)
        session_ids = {s.id for s in sessions}

        # Prompts outside any session of this set must precede the first H2
        for prompt in set_prompts:
            if prompt.metadata.session_id not in session_ids:
                blocks.append(_prompt_block(prompt))

        for session in sessions:
            session_prompts = [p for p in set_prompts if p.metadata.session_id == session.id]
            if not session_prompts:
                continue
            blocks.append('\n'.join([
                _heading(2, session.name),
                _metadata_comment(session.to_dict(include_structure=False)),
            ]))
            blocks.extend(_prompt_block(p) for p in session_prompts)

    content = generate_file_header()
    if blocks:
        content += '\n\n' + '\n\n'.join(blocks)
    if document.trailing_newline or normalized.prompts:
        content += '\n'

    return SerializeResult(content=content, document=normalized, assignments=assignments)


def serialize(
    document: PromptDocument,
    new_id: Optional[IdFactory] = None,
    now: Optional[Clock] = None
) -> str:
    """Convert a document to canonical v2.0 text."""
    return serialize_document(document, new_id, now).content


def canonicalize_from_content(
    content: str,
    new_id: Optional[IdFactory] = None,
    now: Optional[Clock] = None,
    logger: Optional[logging.Logger] = None
) -> Tuple[str, PromptDocument]:
    """
    Upgrade canvas text in any supported format to canonical v2.0.

    Returns:
        Tuple of (canonical_content, normalized_document)
    """
    document = parse(content, new_id=new_id, now=now, logger=logger)
    result = serialize_document(document, new_id=new_id, now=now, logger=logger)
    return result.content, result.document


def canonicalize(
    input_path: Path,
    logger: Optional[logging.Logger] = None
) -> Tuple[str, PromptDocument]:
    """
    Upgrade a canvas file to canonical v2.0.

    Same as canonicalize_from_content() but reads the file. The file itself
    is not written.
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    content = input_path.read_text(encoding='utf-8')
    logger.info(f"Canonicalizing {input_path}")
    return canonicalize_from_content(content, logger=logger)
