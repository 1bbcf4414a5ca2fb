"""
Canvas - Markdown prompt canvas files.

A canvas is a single markdown file holding an ordered collection of
prompts, grouped into sets (H1) and optional sessions (H2). It is both
human-editable and the only storage for a prompt-queue editor.

Read/write pipeline:
1. parsing: any on-disk format (v1.0, v1.1, v2.0) -> PromptDocument
2. operations: pure edits on a PromptDocument
3. canonicalize: PromptDocument -> canonical v2.0 text

Core modules:
- models: Data classes for the document model
- parsing: Tokenizer, format detection and per-format parsers
- canonicalize: Serialization and orphan handling
- operations: Editing operations used between load and save
- content: Heading shifting and pasted-text cleanup
- output: File load/save with external change detection
- config: canvas.yaml settings for the CLI
"""

__version__ = "2.0.0"

# Read / write
from .parsing import parse, detect_format, detect_file_format, tokenize, split_file_metadata
from .canonicalize import (
    serialize,
    serialize_document,
    canonicalize,
    canonicalize_from_content,
    SerializeResult,
)

# Data structures
from .models import (
    PromptDocument,
    PromptSet,
    Session,
    Prompt,
    PromptMetadata,
    FileMetadata,
    GroupMetadata,
    FORMAT_V1_0,
    FORMAT_V1_1,
    FORMAT_V2_0,
    LATEST_VERSION,
    PROMPT_STATUSES,
    generate_id,
    utc_now,
)

# Content utilities
from .content import (
    promote_headings,
    demote_headings,
    detect_folder_link,
    clean_tui_artifacts,
)

# Files
from .output import CanvasFile, CanvasFileError, ExternalChangeError, write_if_changed

__all__ = [
    # Read / write
    "parse",
    "detect_format",
    "detect_file_format",
    "tokenize",
    "split_file_metadata",
    "serialize",
    "serialize_document",
    "canonicalize",
    "canonicalize_from_content",
    "SerializeResult",
    # Data structures
    "PromptDocument",
    "PromptSet",
    "Session",
    "Prompt",
    "PromptMetadata",
    "FileMetadata",
    "GroupMetadata",
    "FORMAT_V1_0",
    "FORMAT_V1_1",
    "FORMAT_V2_0",
    "LATEST_VERSION",
    "PROMPT_STATUSES",
    "generate_id",
    "utc_now",
    # Content utilities
    "promote_headings",
    "demote_headings",
    "detect_folder_link",
    "clean_tui_artifacts",
    # Files
    "CanvasFile",
    "CanvasFileError",
    "ExternalChangeError",
    "write_if_changed",
]
