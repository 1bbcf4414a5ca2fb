#!/usr/bin/env python3
"""
Tests for canonical v2.0 serialization.

These tests verify:
- Round trips of canonical files are byte-identical
- Migration from v1.0/v1.1 is idempotent
- Body headings are promoted on write and demoted on read
- Empty sets and sessions are not written
- Orphan prompts get a synthesized set without touching the input

Run with:
    python tests/run_tests.py test_canonicalize
    python -m pytest tests/test_canonicalize.py -v
"""

import itertools
import sys
from pathlib import Path

TOOL_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(TOOL_ROOT))

from components.canvas.lib.canonicalize import (
    serialize,
    serialize_document,
    canonicalize,
    canonicalize_from_content,
    generate_file_header,
)
from components.canvas.lib.models import (
    Prompt,
    PromptDocument,
    PromptMetadata,
    PromptSet,
    Session,
)
from components.canvas.lib.parsing import parse

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FIXED_NOW = "2026-01-01T00:00:00.000Z"
HEADER = '<!-- prompt-canvas: {"version":"2.0"} -->'


def make_ids(prefix: str = "id"):
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


def fixed_now() -> str:
    return FIXED_NOW


def make_prompt(prompt_id, content="", set_id=None, session_id=None, name=None):
    return Prompt(
        id=prompt_id,
        content=content,
        metadata=PromptMetadata(
            id=prompt_id,
            created=FIXED_NOW,
            name=name,
            set_id=set_id,
            session_id=session_id,
        ),
    )


def load_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


# =============================================================================
# Round trips
# =============================================================================

def test_canonical_fixture_round_trips_exactly():
    text = load_fixture("v2_0-canonical.queue.md")
    assert serialize(parse(text)) == text


def test_file_header():
    assert generate_file_header() == HEADER


def test_empty_document():
    assert serialize(PromptDocument()) == HEADER + "\n"
    assert serialize(parse("")) == HEADER


def test_v1_1_migration_output():
    text, _ = canonicalize_from_content(
        load_fixture("v1_1-sets.queue.md"), new_id=make_ids(), now=fixed_now
    )
    expected = "\n".join([
        HEADER,
        "",
        "# Alpha",
        '<!-- {"id":"s1","active":true,"created":"2026-01-01T00:00:00.000Z"} -->',
        "",
        "###",
        '<!-- {"id":"p1","status":"queue","created":"2026-01-01T00:00:00.000Z"} -->',
        "First prompt",
        "",
        "###",
        '<!-- {"id":"p2","status":"active","created":"2026-01-01T00:00:00.000Z"} -->',
        "Second prompt",
        "",
        "# Beta",
        '<!-- {"id":"s2","active":false,"created":"2026-01-02T00:00:00.000Z"} -->',
        "",
        "###",
        '<!-- {"id":"p3","status":"done","created":"2026-01-02T00:00:00.000Z"} -->',
        "Third prompt",
        "",
    ])
    assert text == expected


def test_migration_is_idempotent():
    for name in ("v1_0-grouped.queue.md", "v1_1-sets.queue.md", "v2_0-canonical.queue.md"):
        first, _ = canonicalize_from_content(load_fixture(name), new_id=make_ids(), now=fixed_now)
        second, _ = canonicalize_from_content(first, new_id=make_ids("other"), now=fixed_now)
        assert first == second, name


def test_migration_keeps_every_prompt():
    text = load_fixture("v1_0-grouped.queue.md")
    before = parse(text, new_id=make_ids(), now=fixed_now)
    migrated, _ = canonicalize_from_content(text, new_id=make_ids(), now=fixed_now)
    after = parse(migrated)
    # Prompts are regrouped by set, so compare by id
    assert {p.id: p.content for p in after.prompts} == {p.id: p.content for p in before.prompts}


def test_legacy_groups_not_written():
    migrated, _ = canonicalize_from_content(load_fixture("v1_0-grouped.queue.md"))
    assert migrated.startswith(HEADER + "\n")
    assert "groups" not in migrated
    assert "# Ideas" in migrated
    assert '"group"' not in migrated


# =============================================================================
# Headings
# =============================================================================

def test_body_headings_promoted_and_restored():
    doc = PromptDocument(
        sets=[PromptSet(id="s", active=True, created=FIXED_NOW)],
        prompts=[make_prompt("p", "# Step 1\nDo X", set_id="s")],
    )
    text = serialize(doc)
    assert "\n#### Step 1\nDo X\n" in text
    assert parse(text).prompts[0].content == "# Step 1\nDo X"


def test_bare_marker_before_crlf_stays_in_body():
    doc = PromptDocument(
        sets=[PromptSet(id="s", active=True, created=FIXED_NOW)],
        prompts=[make_prompt("p", "step\r\n#\r\nmore", set_id="s")],
    )
    reparsed = parse(serialize(doc))
    assert [s.id for s in reparsed.sets] == ["s"]
    assert reparsed.prompts[0].content == "step\r\n#\r\nmore"


def test_unnamed_and_multiline_names():
    doc = PromptDocument(
        sets=[PromptSet(id="s", name="Line one\nline two", active=True, created=FIXED_NOW)],
        prompts=[make_prompt("p", "body", set_id="s")],
    )
    text = serialize(doc)
    assert "\n# Line one line two\n" in text
    assert "\n###\n" in text


def test_prompt_name_written_in_heading_not_metadata():
    doc = PromptDocument(
        sets=[PromptSet(id="s", active=True, created=FIXED_NOW)],
        prompts=[make_prompt("p", "body", set_id="s", name="Named")],
    )
    text = serialize(doc)
    assert "\n### Named\n" in text
    assert '"name"' not in text
    assert '"setId"' not in text


# =============================================================================
# Structure
# =============================================================================

def test_empty_sets_are_not_written():
    doc = PromptDocument(
        sets=[
            PromptSet(id="empty", name="Empty", active=True, created=FIXED_NOW),
            PromptSet(id="full", name="Full", created=FIXED_NOW),
        ],
        prompts=[make_prompt("p", "x", set_id="full")],
    )
    text = serialize(doc)
    assert "# Empty" not in text
    assert "# Full" in text


def test_empty_sessions_are_not_written():
    doc = PromptDocument(
        sets=[PromptSet(id="s", active=True, created=FIXED_NOW)],
        sessions=[Session(id="idle", set_id="s", name="Idle")],
        prompts=[make_prompt("p", "x", set_id="s")],
    )
    assert "## Idle" not in serialize(doc)


def test_loose_prompts_precede_sessions():
    doc = PromptDocument(
        sets=[PromptSet(id="s", active=True, created=FIXED_NOW)],
        sessions=[Session(id="sess", set_id="s", name="Work")],
        prompts=[
            make_prompt("in-session", "a", set_id="s", session_id="sess"),
            make_prompt("loose", "b", set_id="s"),
        ],
    )
    text = serialize(doc)
    assert text.index('"id":"loose"') < text.index("## Work") < text.index('"id":"in-session"')

    reparsed = parse(text)
    by_id = {p.id: p for p in reparsed.prompts}
    assert by_id["loose"].metadata.session_id is None
    assert by_id["in-session"].metadata.session_id == "sess"


def test_prompt_with_unknown_session_written_without_session():
    doc = PromptDocument(
        sets=[PromptSet(id="s", active=True, created=FIXED_NOW)],
        prompts=[make_prompt("p", "x", set_id="s", session_id="gone")],
    )
    text = serialize(doc)
    assert not any(line.split(" ")[0] == "##" for line in text.split("\n"))
    assert parse(text).prompts[0].metadata.session_id is None


def test_trailing_newline_follows_document():
    doc = PromptDocument(trailing_newline=False)
    assert serialize(doc) == HEADER
    doc = PromptDocument(
        sets=[PromptSet(id="s", active=True, created=FIXED_NOW)],
        prompts=[make_prompt("p", "x", set_id="s")],
        trailing_newline=False,
    )
    assert serialize(doc).endswith("x\n")


# =============================================================================
# Orphans
# =============================================================================

def test_orphans_get_synthesized_set():
    orphan = make_prompt("p", "alone", set_id=None)
    doc = PromptDocument(prompts=[orphan])

    result = serialize_document(doc, new_id=make_ids("set"), now=fixed_now)

    assert result.assignments == {"p": "set-1"}
    assert [s.id for s in result.document.sets] == ["set-1"]
    assert result.document.sets[0].active
    assert result.document.prompts[0].metadata.set_id == "set-1"
    assert "# \n" not in result.content
    assert "alone" in result.content


def test_orphans_do_not_mutate_input():
    orphan = make_prompt("p", "alone", set_id="missing-set")
    doc = PromptDocument(
        sets=[PromptSet(id="s", active=True, created=FIXED_NOW)],
        prompts=[make_prompt("q", "kept", set_id="s"), orphan],
    )

    result = serialize_document(doc, new_id=make_ids("set"), now=fixed_now)

    assert orphan.metadata.set_id == "missing-set"
    assert len(doc.sets) == 1
    assert result.assignments == {"p": "set-1"}
    # Synthesized set goes last and does not steal the active flag
    assert [s.id for s in result.document.sets] == ["s", "set-1"]
    assert [s.active for s in result.document.sets] == [True, False]


def test_no_orphans_no_assignments():
    doc = PromptDocument(
        sets=[PromptSet(id="s", active=True, created=FIXED_NOW)],
        prompts=[make_prompt("p", "x", set_id="s")],
    )
    result = serialize_document(doc)
    assert result.assignments == {}
    assert result.document is doc


# =============================================================================
# Files
# =============================================================================

def test_canonicalize_file():
    text, doc = canonicalize(FIXTURES_DIR / "v1_1-sets.queue.md")
    assert text.startswith(HEADER)
    assert [s.id for s in doc.sets] == ["s1", "s2"]
    assert len(doc.prompts) == 3


def run_all_tests():
    """Run all tests and report results."""
    tests = [name for name in sorted(globals()) if name.startswith("test_")]
    passed = 0
    failed = 0
    for name in tests:
        try:
            globals()[name]()
            print(f"✓ {name}")
            passed += 1
        except AssertionError as e:
            print(f"✗ {name}: {e}")
            failed += 1

    print(f"\n{passed} passed, {failed} failed")
    return failed == 0


if __name__ == '__main__':
    success = run_all_tests()
    sys.exit(0 if success else 1)
