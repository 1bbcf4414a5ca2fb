#!/usr/bin/env python3
"""
Tests for prompt body content utilities.

These tests verify:
- Heading promotion/demotion between prompt bodies and canvas files
- Investigation folder detection
- Cleanup of text pasted from a terminal UI

Run with:
    python tests/run_tests.py test_content
    python -m pytest tests/test_content.py -v
"""

import sys
from pathlib import Path

TOOL_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(TOOL_ROOT))

from components.canvas.lib.content import (
    promote_headings,
    demote_headings,
    detect_folder_link,
    looks_like_tui,
    clean_tui_artifacts,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# =============================================================================
# Heading promotion
# =============================================================================

def test_promote_each_level():
    assert promote_headings("# One") == "#### One"
    assert promote_headings("## Two") == "##### Two"
    assert promote_headings("### Three") == "###### Three"


def test_promote_mixed_levels_does_not_double_shift():
    """Every heading moves exactly three levels, whatever its neighbours are."""
    content = "# A\ntext\n## B\n### C\n# D"
    assert promote_headings(content) == "#### A\ntext\n##### B\n###### C\n#### D"


def test_promote_leaves_non_headings_alone():
    content = "#hashtag\nnot # a heading\n  # indented\n#### already deep"
    assert promote_headings(content) == content


def test_promote_bare_marker():
    assert promote_headings("#\nbody") == "####\nbody"


def test_bare_marker_before_carriage_return():
    assert promote_headings("step\r\n#\r\nmore") == "step\r\n####\r\nmore"
    assert demote_headings("step\r\n####\r\nmore") == "step\r\n#\r\nmore"


def test_demote_each_level():
    assert demote_headings("#### One") == "# One"
    assert demote_headings("##### Two") == "## Two"
    assert demote_headings("###### Three") == "### Three"


def test_demote_leaves_shallow_and_deep_headings_alone():
    content = "# Top\n### Three\n####### Seven"
    assert demote_headings(content) == content


def test_promote_then_demote_restores_body():
    content = "# Step 1\nDo X\n\n## Detail\n- item\n### Note\nend"
    assert demote_headings(promote_headings(content)) == content


def test_step_heading_example():
    assert promote_headings("# Step 1\nDo X") == "#### Step 1\nDo X"
    assert demote_headings("#### Step 1\nDo X") == "# Step 1\nDo X"


# =============================================================================
# Folder links
# =============================================================================

def test_detect_folder_link():
    content = "See scratch/2026-01-15-auth-bug/ for the logs"
    assert detect_folder_link(content) == "scratch/2026-01-15-auth-bug/"


def test_detect_folder_link_without_trailing_slash():
    assert detect_folder_link("open scratch/2026-02-01-notes") == "scratch/2026-02-01-notes"


def test_detect_folder_link_first_match_wins():
    content = "scratch/2026-01-01-first/ and scratch/2026-01-02-second/"
    assert detect_folder_link(content) == "scratch/2026-01-01-first/"


def test_detect_folder_link_none():
    assert detect_folder_link("scratch/notes/ and 2026-01-01") is None
    assert detect_folder_link("") is None


# =============================================================================
# TUI paste cleanup
# =============================================================================

def test_looks_like_tui():
    assert looks_like_tui("│ boxed │")
    assert looks_like_tui("| one\n| two")
    assert not looks_like_tui("plain text\n| only one pipe")


def test_clean_tui_fixture():
    text = (FIXTURES_DIR / "tui-paste.txt").read_text(encoding="utf-8")
    assert clean_tui_artifacts(text) == "Refactor the parser module\nand keep the tests green"


def test_clean_plain_text_unchanged():
    text = "Just a prompt\n\nwith two paragraphs\n"
    assert clean_tui_artifacts(text) == text


if __name__ == "__main__":
    import pytest
    pytest.main([__file__, "-v"])
