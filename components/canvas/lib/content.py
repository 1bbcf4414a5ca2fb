"""
Content manipulation for prompt bodies.

Prompt bodies are free markdown, but H1-H3 are structural in a canvas file
(sets, sessions, prompts). Body headings are therefore shifted down three
levels on write and back up on read:

    # Step 1      <->  #### Step 1
    ## Sub-step   <->  ##### Sub-step
    ### Notes     <->  ###### Notes

Headings at levels 4-6 typed directly into a prompt cannot be told apart from
shifted ones and come back three levels higher after a round trip. That is a
known limitation of the format, not something this module tries to guess
around.

Contents:
    - promote_headings(): Body -> file (H1-H3 become H4-H6)
    - demote_headings(): File -> body (H4-H6 become H1-H3)
    - detect_folder_link(): Find an investigation folder path in a prompt
    - looks_like_tui(): Detect text pasted from a terminal UI
    - clean_tui_artifacts(): Strip box-drawing borders from pasted text
"""

import re
from typing import Optional

PROMOTE_OFFSET = 3

# Line-anchored heading markers. A marker must be followed by whitespace
# (including the \r of a CRLF line) or end the line, so "#hashtag" is left
# alone. Any line the tokenizer would read as a structural heading is
# therefore shifted. The quantifier is greedy, which makes the longest prefix
# win ("###" is never read as "#" + "##").
BODY_HEADING_PATTERN = re.compile(r'^(#{1,3})(?=\s|$)', re.MULTILINE)
SHIFTED_HEADING_PATTERN = re.compile(r'^(#{4,6})(?=\s|$)', re.MULTILINE)

# Investigation folders: scratch/YYYY-MM-DD-name/
FOLDER_LINK_PATTERN = re.compile(r'scratch/\d{4}-\d{2}-\d{2}-[\w-]+/?')

# Terminal UI paste artifacts
BOX_CHARS = '┌┐└┘├┤┬┴┼╔╗╚╝╠╣╦╩╬'
BOX_CHAR_PATTERN = re.compile(f'[│┃{BOX_CHARS}]')
LEADING_PIPE_PATTERN = re.compile(r'^[│|]')
TUI_PATTERNS = [
    (re.compile(f'^[{BOX_CHARS}─═]+$', re.MULTILINE), ''),  # lines made only of box drawing
    (re.compile(r'^[│┃|]\s*', re.MULTILINE), ''),           # leading vertical bars
    (re.compile(r'\s*[│┃|]$', re.MULTILINE), ''),           # trailing vertical bars
    (re.compile(r'^\s{4,}(?=\S)', re.MULTILINE), ''),       # deep indentation from the frame
]


def promote_headings(content: str) -> str:
    """
    Shift body headings H1-H3 down to H4-H6 for writing into a canvas file.

    Args:
        content: Prompt body as the user wrote it

    Returns:
        Body safe to place under an H3 prompt heading
    """
    return BODY_HEADING_PATTERN.sub(lambda m: m.group(1) + '#' * PROMOTE_OFFSET, content)


def demote_headings(content: str) -> str:
    """
    Inverse of promote_headings(): H4-H6 back to H1-H3.

    demote_headings(promote_headings(x)) == x whenever x only uses
    heading levels 1-3.
    """
    return SHIFTED_HEADING_PATTERN.sub(lambda m: m.group(1)[PROMOTE_OFFSET:], content)


def detect_folder_link(content: str) -> Optional[str]:
    """Return the first scratch/YYYY-MM-DD-name/ path in content, if any."""
    match = FOLDER_LINK_PATTERN.search(content)
    return match.group(0) if match else None


def looks_like_tui(text: str) -> bool:
    """Check whether text looks like it was copied out of a terminal UI frame."""
    if BOX_CHAR_PATTERN.search(text):
        return True
    leading_pipes = sum(1 for line in text.split('\n') if LEADING_PIPE_PATTERN.match(line.strip()))
    return leading_pipes >= 2


def clean_tui_artifacts(text: str) -> str:
    """
    Remove terminal UI framing from pasted text.

    Text that does not look like a TUI paste is returned unchanged.
    """
    if not looks_like_tui(text):
        return text

    cleaned = text
    for pattern, replacement in TUI_PATTERNS:
        cleaned = pattern.sub(replacement, cleaned)

    # Collapse blank runs left behind by removed border lines
    cleaned = re.sub(r'\n{3,}', '\n\n', cleaned)

    return cleaned.strip()
