"""
Editing operations on a PromptDocument.

These are the edits an editing host performs between loading and saving a
canvas: adding, removing and moving prompts, managing sets and sessions,
and linking prompts to an external session log. Every function returns a
new document and leaves its input untouched, so callers can keep the old
value for undo. Unknown ids leave the document unchanged.

Contents:
    - Prompts: update_prompt_content, set_prompt_status, create_prompt,
      delete_prompt, reorder_prompts, move_prompt_to_set
    - Sets: create_set, delete_set, set_active_set, toggle_set_collapse,
      rename_set, get_active_set_id
    - Sessions: create_session, rename_session, toggle_session_collapse
    - Session log: link_prompt_to_session, unlink_prompt_from_session
    - autolink_folders
"""

from dataclasses import replace
from typing import List, Optional, Tuple

from .content import detect_folder_link
from .models import (
    STATUS_QUEUE, Clock, IdFactory, Prompt, PromptDocument, PromptMetadata,
    PromptSet, Session, generate_id, utc_now,
)
from .parsing import ensure_single_active


def _update_metadata(document: PromptDocument, prompt_id: str, **changes) -> PromptDocument:
    """Return a document where one prompt's metadata has the given changes."""
    if document.get_prompt(prompt_id) is None:
        return document
    prompts = [
        replace(p, metadata=replace(p.metadata, **changes)) if p.id == prompt_id else p
        for p in document.prompts
    ]
    return replace(document, prompts=prompts)


def _without_empty_sets(document: PromptDocument) -> PromptDocument:
    """Drop sets (and their sessions) that no longer hold prompts; keep one active."""
    used = {p.metadata.set_id for p in document.prompts}
    sets = [replace(s) for s in document.sets if s.id in used]
    ensure_single_active(sets)
    kept = {s.id for s in sets}
    sessions = [s for s in document.sessions if s.set_id in kept]
    return replace(document, sets=sets, sessions=sessions)


def _insert_after(items: list, item, after_id: Optional[str]) -> list:
    result = list(items)
    for index, existing in enumerate(result):
        if after_id is not None and existing.id == after_id:
            result.insert(index + 1, item)
            return result
    result.append(item)
    return result


# =============================================================================
# Prompts
# =============================================================================

def update_prompt_content(
    document: PromptDocument,
    prompt_id: str,
    content: str,
    now: Clock = utc_now
) -> PromptDocument:
    """Replace a prompt's body and stamp its `updated` time."""
    if document.get_prompt(prompt_id) is None:
        return document
    prompts = [
        replace(p, content=content, metadata=replace(p.metadata, updated=now()))
        if p.id == prompt_id else p
        for p in document.prompts
    ]
    return replace(document, prompts=prompts)


def set_prompt_status(document: PromptDocument, prompt_id: str, status: str) -> PromptDocument:
    return _update_metadata(document, prompt_id, status=status)


def create_prompt(
    document: PromptDocument,
    after_id: Optional[str] = None,
    set_id: Optional[str] = None,
    new_id: IdFactory = generate_id,
    now: Clock = utc_now
) -> Tuple[PromptDocument, str]:
    """
    Add an empty prompt.

    The target set is, in order: `set_id`, the set of the prompt at
    `after_id`, the active set, or a new active set created for it. The
    prompt is inserted right after `after_id` when that prompt exists,
    otherwise appended.

    Returns:
        Tuple of (new_document, prompt_id)
    """
    after = document.get_prompt(after_id)
    target_set_id = set_id
    if target_set_id is None and after is not None:
        target_set_id = after.metadata.set_id
    if target_set_id is None:
        target_set_id = get_active_set_id(document)

    sets = list(document.sets)
    if target_set_id is None:
        target_set_id = new_id()
        sets.append(PromptSet(id=target_set_id, active=True, created=now()))

    session_id = None
    if after is not None and after.metadata.set_id == target_set_id:
        session_id = after.metadata.session_id

    prompt_id = new_id()
    prompt = Prompt(
        id=prompt_id,
        content='',
        metadata=PromptMetadata(
            id=prompt_id,
            set_id=target_set_id,
            session_id=session_id,
            status=STATUS_QUEUE,
            created=now(),
        ),
    )
    prompts = _insert_after(document.prompts, prompt, after_id)
    return replace(document, sets=sets, prompts=prompts), prompt_id


def delete_prompt(document: PromptDocument, prompt_id: str) -> PromptDocument:
    """Remove a prompt. Sets left without prompts are removed too."""
    if document.get_prompt(prompt_id) is None:
        return document
    prompts = [p for p in document.prompts if p.id != prompt_id]
    return _without_empty_sets(replace(document, prompts=prompts))


def reorder_prompts(document: PromptDocument, ordered_ids: List[str]) -> PromptDocument:
    """
    Put prompts in the given order.

    Unknown ids are ignored. Prompts missing from `ordered_ids` keep their
    relative order after the listed ones rather than being dropped.
    """
    by_id = {p.id: p for p in document.prompts}
    ordered = []
    seen = set()
    for prompt_id in ordered_ids:
        if prompt_id in by_id and prompt_id not in seen:
            ordered.append(by_id[prompt_id])
            seen.add(prompt_id)
    ordered.extend(p for p in document.prompts if p.id not in seen)
    return replace(document, prompts=ordered)


def move_prompt_to_set(document: PromptDocument, prompt_id: str, set_id: str) -> PromptDocument:
    """Move a prompt to another set, leaving any session that belongs elsewhere."""
    prompt = document.get_prompt(prompt_id)
    if prompt is None or document.get_set(set_id) is None:
        return document
    session = document.get_session(prompt.metadata.session_id)
    session_id = session.id if session is not None and session.set_id == set_id else None
    return _update_metadata(document, prompt_id, set_id=set_id, session_id=session_id)


# =============================================================================
# Sets
# =============================================================================

def get_active_set_id(document: PromptDocument) -> Optional[str]:
    """Id of the active set, falling back to the first set."""
    for prompt_set in document.sets:
        if prompt_set.active:
            return prompt_set.id
    return document.sets[0].id if document.sets else None


def create_set(
    document: PromptDocument,
    after_set_id: Optional[str] = None,
    new_id: IdFactory = generate_id,
    now: Clock = utc_now
) -> Tuple[PromptDocument, str]:
    """
    Add a new set holding one empty prompt.

    The new set becomes the only active one. It is placed after
    `after_set_id` when given, otherwise last.

    Returns:
        Tuple of (new_document, set_id)
    """
    set_id = new_id()
    created = now()
    new_set = PromptSet(id=set_id, active=True, created=created)
    sets = _insert_after([replace(s, active=False) for s in document.sets], new_set, after_set_id)

    prompt_id = new_id()
    prompt = Prompt(
        id=prompt_id,
        content='',
        metadata=PromptMetadata(id=prompt_id, set_id=set_id, status=STATUS_QUEUE, created=created),
    )
    return replace(document, sets=sets, prompts=document.prompts + [prompt]), set_id


def delete_set(document: PromptDocument, set_id: str) -> PromptDocument:
    """Remove a set together with its prompts and sessions."""
    if document.get_set(set_id) is None:
        return document
    sets = [replace(s) for s in document.sets if s.id != set_id]
    ensure_single_active(sets)
    return replace(
        document,
        sets=sets,
        sessions=[s for s in document.sessions if s.set_id != set_id],
        prompts=[p for p in document.prompts if p.metadata.set_id != set_id],
    )


def set_active_set(document: PromptDocument, set_id: str) -> PromptDocument:
    if document.get_set(set_id) is None:
        return document
    sets = [replace(s, active=(s.id == set_id)) for s in document.sets]
    return replace(document, sets=sets)


def toggle_set_collapse(document: PromptDocument, set_id: str) -> PromptDocument:
    sets = [replace(s, collapsed=not s.collapsed) if s.id == set_id else s for s in document.sets]
    return replace(document, sets=sets)


def rename_set(document: PromptDocument, set_id: str, name: str) -> PromptDocument:
    sets = [replace(s, name=name or None) if s.id == set_id else s for s in document.sets]
    return replace(document, sets=sets)


# =============================================================================
# Sessions
# =============================================================================

def create_session(
    document: PromptDocument,
    set_id: str,
    after_session_id: Optional[str] = None,
    new_id: IdFactory = generate_id
) -> Tuple[PromptDocument, Optional[str]]:
    """
    Add an (empty) session to a set.

    Returns:
        Tuple of (new_document, session_id); session_id is None when the set
        does not exist
    """
    if document.get_set(set_id) is None:
        return document, None
    session = Session(id=new_id(), set_id=set_id)
    sessions = _insert_after(document.sessions, session, after_session_id)
    return replace(document, sessions=sessions), session.id


def rename_session(document: PromptDocument, session_id: str, name: str) -> PromptDocument:
    sessions = [replace(s, name=name or None) if s.id == session_id else s for s in document.sessions]
    return replace(document, sessions=sessions)


def toggle_session_collapse(document: PromptDocument, session_id: str) -> PromptDocument:
    sessions = [
        replace(s, collapsed=not s.collapsed) if s.id == session_id else s
        for s in document.sessions
    ]
    return replace(document, sessions=sessions)


# =============================================================================
# Session log links
# =============================================================================

def link_prompt_to_session(
    document: PromptDocument,
    prompt_id: str,
    claude_session_id: str,
    now: Clock = utc_now
) -> PromptDocument:
    """Record that a prompt was executed in an external session."""
    return _update_metadata(
        document, prompt_id, claude_session_id=claude_session_id, executed_at=now()
    )


def unlink_prompt_from_session(document: PromptDocument, prompt_id: str) -> PromptDocument:
    return _update_metadata(
        document,
        prompt_id,
        claude_session_id=None,
        claude_message_id=None,
        executed_at=None,
        response_preview=None,
    )


def autolink_folders(document: PromptDocument) -> PromptDocument:
    """Fill in `folder_link` for prompts whose content mentions an investigation folder."""
    prompts = []
    for prompt in document.prompts:
        if not prompt.metadata.folder_link:
            link = detect_folder_link(prompt.content)
            if link:
                prompt = replace(prompt, metadata=replace(prompt.metadata, folder_link=link))
        prompts.append(prompt)
    return replace(document, prompts=prompts)
