"""
Data classes for the prompt canvas document model.

This module defines the canonical in-memory structure that every format
parser produces and the serializer consumes. A canvas file is a plain
markdown file; these types are what it means once read.

Document Types:
    - PromptDocument: Root of a parsed canvas file
    - PromptSet: Top-level (H1) grouping of prompts
    - Session: Optional (H2) grouping of prompts within a set
    - Prompt: A single (H3) unit of text with a lifecycle status
    - PromptMetadata: Everything stored in a prompt's metadata comment

Legacy Types (read compatibility only):
    - GroupMetadata: v1.0 named group, migrated to a PromptSet on read
    - FileMetadata: File-level comment (version + legacy groups)

Wire keys in metadata comments are camelCase (setId, folderLink, ...);
attribute names here are snake_case. The *_KEYS tables below are the single
place where the two are mapped.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple


# Format versions, oldest first
FORMAT_V1_0 = "1.0"  # flat prompts separated by ---
FORMAT_V1_1 = "1.1"  # <!-- set: --> / <!-- prompt: --> comments
FORMAT_V2_0 = "2.0"  # H1 sets, H2 sessions, H3 prompts
LATEST_VERSION = FORMAT_V2_0

# Prompt lifecycle status (wire-exact)
STATUS_QUEUE = "queue"
STATUS_ACTIVE = "active"
STATUS_DONE = "done"
STATUS_TRASH = "trash"
PROMPT_STATUSES = (STATUS_QUEUE, STATUS_ACTIVE, STATUS_DONE, STATUS_TRASH)

IdFactory = Callable[[], str]
Clock = Callable[[], str]


def generate_id() -> str:
    """Return a fresh random id for a set, session or prompt."""
    return uuid.uuid4().hex


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _opt_str(value: Any) -> Optional[str]:
    """Coerce a JSON scalar to an optional string."""
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return None
    return str(value)


def _as_bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _split_known(data: Dict[str, Any], known: Tuple[str, ...]) -> Dict[str, Any]:
    """Return the entries of *data* whose keys are not in *known*."""
    return {k: v for k, v in data.items() if k not in known}


# =============================================================================
# Legacy Types
# =============================================================================

@dataclass
class GroupMetadata:
    """A v1.0 group declared in the file-level metadata comment."""
    name: Optional[str] = None
    collapsed: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> 'GroupMetadata':
        if not isinstance(data, dict):
            return cls()
        return cls(
            name=_opt_str(data.get("name")),
            collapsed=_as_bool(data.get("collapsed"), False),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.name is not None:
            result["name"] = self.name
        result["collapsed"] = self.collapsed
        return result


@dataclass
class FileMetadata:
    """
    Parsed <!-- prompt-canvas: {...} --> comment.

    `groups` is kept for v1.0 read compatibility only and is never written.
    """
    version: str = FORMAT_V1_0
    groups: Dict[str, GroupMetadata] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> 'FileMetadata':
        if not isinstance(data, dict):
            return cls()
        raw_groups = data.get("groups")
        groups = {}
        if isinstance(raw_groups, dict):
            groups = {str(key): GroupMetadata.from_dict(value) for key, value in raw_groups.items()}
        return cls(
            version=_opt_str(data.get("version")) or FORMAT_V1_0,
            groups=groups,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "groups": {key: group.to_dict() for key, group in self.groups.items()},
        }


# =============================================================================
# Document Types
# =============================================================================

SET_KEYS = ("id", "name", "active", "collapsed", "created", "folderLink")


@dataclass
class PromptSet:
    """
    Top-level grouping of prompts (a project or topic).

    Exactly one non-empty set is expected to be active at a time.
    """
    id: str
    name: Optional[str] = None
    active: bool = False
    collapsed: bool = False
    created: str = ""
    folder_link: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)  # unknown keys, written back as-is

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        new_id: IdFactory = generate_id,
        now: Clock = utc_now,
        default_active: bool = False
    ) -> 'PromptSet':
        """Build a set from a metadata comment, filling in missing fields."""
        return cls(
            id=_opt_str(data.get("id")) or new_id(),
            name=_opt_str(data.get("name")) or None,
            active=_as_bool(data.get("active"), default_active),
            collapsed=_as_bool(data.get("collapsed"), False),
            created=_opt_str(data.get("created")) or now(),
            folder_link=_opt_str(data.get("folderLink")),
            extra=_split_known(data, SET_KEYS),
        )

    def to_dict(self, include_name: bool = True) -> Dict[str, Any]:
        """Wire representation. Optional fields are only present when set."""
        result: Dict[str, Any] = {"id": self.id}
        if include_name and self.name:
            result["name"] = self.name
        result["active"] = self.active
        if self.collapsed:
            result["collapsed"] = True
        if self.folder_link:
            result["folderLink"] = self.folder_link
        if self.created:
            result["created"] = self.created
        result.update(self.extra)
        return result


SESSION_KEYS = ("id", "name", "setId", "collapsed")


@dataclass
class Session:
    """A work session (H2) inside a set. Always belongs to exactly one set."""
    id: str
    set_id: str
    name: Optional[str] = None
    collapsed: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        set_id: str,
        new_id: IdFactory = generate_id
    ) -> 'Session':
        return cls(
            id=_opt_str(data.get("id")) or new_id(),
            set_id=set_id,
            name=_opt_str(data.get("name")) or None,
            collapsed=_as_bool(data.get("collapsed"), False),
            extra=_split_known(data, SESSION_KEYS),
        )

    def to_dict(self, include_structure: bool = True) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id}
        if include_structure:
            if self.name:
                result["name"] = self.name
            result["setId"] = self.set_id
        if self.collapsed:
            result["collapsed"] = True
        result.update(self.extra)
        return result


# (wire key, attribute) for the optional string fields of a prompt, in the
# order they are written
PROMPT_OPTIONAL_FIELDS = (
    ("updated", "updated"),
    ("folderLink", "folder_link"),
    ("claudeSessionId", "claude_session_id"),
    ("claudeMessageId", "claude_message_id"),
    ("executedAt", "executed_at"),
    ("responsePreview", "response_preview"),
)

# Fields whose value is encoded by the document structure in v2.0
PROMPT_STRUCTURAL_FIELDS = (
    ("name", "name"),
    ("setId", "set_id"),
    ("sessionId", "session_id"),
    ("group", "group"),
)

PROMPT_KEYS = ("id", "status", "created") + tuple(
    key for key, _ in PROMPT_OPTIONAL_FIELDS + PROMPT_STRUCTURAL_FIELDS
)


@dataclass
class PromptMetadata:
    """
    Everything stored in a prompt's metadata comment.

    `status` is normally one of PROMPT_STATUSES, but unrecognized values are
    kept verbatim so a newer file never loses data when read here.
    """
    id: str
    status: str = STATUS_QUEUE
    created: str = ""
    name: Optional[str] = None
    set_id: Optional[str] = None
    session_id: Optional[str] = None
    group: Optional[str] = None  # v1.0 legacy, never written
    updated: Optional[str] = None
    folder_link: Optional[str] = None
    claude_session_id: Optional[str] = None
    claude_message_id: Optional[str] = None
    executed_at: Optional[str] = None
    response_preview: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        new_id: IdFactory = generate_id,
        now: Clock = utc_now
    ) -> 'PromptMetadata':
        """Build metadata from a parsed comment, applying defaults for missing fields."""
        status = data.get("status")
        metadata = cls(
            id=_opt_str(data.get("id")) or new_id(),
            status=status if isinstance(status, str) and status else STATUS_QUEUE,
            created=_opt_str(data.get("created")) or now(),
            extra=_split_known(data, PROMPT_KEYS),
        )
        for key, attr in PROMPT_OPTIONAL_FIELDS + PROMPT_STRUCTURAL_FIELDS:
            setattr(metadata, attr, _opt_str(data.get(key)))
        if not metadata.name:
            metadata.name = None
        return metadata

    @classmethod
    def default(cls, new_id: IdFactory = generate_id, now: Clock = utc_now) -> 'PromptMetadata':
        """Synthesized metadata for a prompt that had none (or had malformed JSON)."""
        return cls(id=new_id(), status=STATUS_QUEUE, created=now())

    def to_dict(self, include_structure: bool = True) -> Dict[str, Any]:
        """
        Wire representation.

        With include_structure=False the fields that v2.0 encodes through
        headings (name, setId, sessionId) and the legacy group are left out.
        """
        result: Dict[str, Any] = {"id": self.id}
        if include_structure:
            for key, attr in PROMPT_STRUCTURAL_FIELDS:
                value = getattr(self, attr)
                if value is not None:
                    result[key] = value
        result["status"] = self.status
        if self.created:
            result["created"] = self.created
        for key, attr in PROMPT_OPTIONAL_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                result[key] = value
        result.update(self.extra)
        return result


@dataclass
class Prompt:
    """A single prompt. `content` is the raw body with headings demoted."""
    id: str
    content: str
    metadata: PromptMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "metadata": self.metadata.to_dict(),
        }


@dataclass
class PromptDocument:
    """
    Root of a parsed canvas file.

    List order is meaningful everywhere: `sets` is file order, and `prompts`
    is the display/serialization order within each set and session.
    """
    file_metadata: FileMetadata = field(default_factory=lambda: FileMetadata(version=LATEST_VERSION))
    sets: List[PromptSet] = field(default_factory=list)
    sessions: List[Session] = field(default_factory=list)
    prompts: List[Prompt] = field(default_factory=list)
    trailing_newline: bool = True

    def get_set(self, set_id: Optional[str]) -> Optional[PromptSet]:
        for prompt_set in self.sets:
            if prompt_set.id == set_id:
                return prompt_set
        return None

    def get_session(self, session_id: Optional[str]) -> Optional[Session]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def get_prompt(self, prompt_id: Optional[str]) -> Optional[Prompt]:
        for prompt in self.prompts:
            if prompt.id == prompt_id:
                return prompt
        return None

    def prompts_in_set(self, set_id: str) -> List[Prompt]:
        return [p for p in self.prompts if p.metadata.set_id == set_id]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly dump (used by the CLI's --json output)."""
        return {
            "fileMetadata": self.file_metadata.to_dict(),
            "sets": [s.to_dict() for s in self.sets],
            "sessions": [s.to_dict() for s in self.sessions],
            "prompts": [p.to_dict() for p in self.prompts],
            "trailingNewline": self.trailing_newline,
        }
