#!/usr/bin/env python3
"""
Canvas CLI - Inspect and migrate prompt canvas files.

Usage:
    python -m components.canvas.lib.cli detect <files>...
    python -m components.canvas.lib.cli parse <file> [--json]
    python -m components.canvas.lib.cli migrate <paths>... [-o OUTPUT] [--check] [--backup] [--autolink]
    python -m components.canvas.lib.cli clean-paste [file]
    python -m components.canvas.lib.cli --help

Commands:
    detect       Show the on-disk format (v1.0, v1.1, v2.0) of each file
    parse        Debug: show the sets, sessions and prompts read from a file
    migrate      Rewrite files in the canonical v2.0 format
    clean-paste  Strip terminal UI framing from pasted text

Settings are read from canvas.yaml in the working directory, or from the
file given with --config.
"""

import argparse
import json
import logging
import shutil
import sys
from pathlib import Path
from typing import List

from .config import CanvasConfig, load_config


def _expand_paths(paths: List[str], pattern: str) -> List[Path]:
    """Expand directories to the canvas files they contain."""
    expanded = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            expanded.extend(sorted(path.glob(pattern)))
        else:
            expanded.append(path)
    return expanded


def _first_line(content: str, width: int = 60) -> str:
    line = content.strip().split('\n', 1)[0] if content.strip() else '(empty)'
    return line if len(line) <= width else line[:width - 3] + '...'


def cmd_detect(args):
    """Print the detected format of each file."""
    from .parsing import detect_file_format

    failures = 0
    for path in _expand_paths(args.files, args.settings.file_pattern):
        try:
            text = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            print(f"{path}: Error: {e}")
            failures += 1
            continue

        version = detect_file_format(text)
        print(f"{path}: {'v' + version if version else 'empty'}")

    return 1 if failures else 0


def cmd_parse(args):
    """Show the document read from a file."""
    from .parsing import parse, detect_file_format

    path = Path(args.file)
    try:
        text = path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: {e}")
        return 1

    document = parse(text, logger=logging.getLogger(__name__))

    if args.json:
        print(json.dumps(document.to_dict(), indent=2, ensure_ascii=False))
        return 0

    version = detect_file_format(text)
    print(f"File: {path}")
    print(f"Format: {'v' + version if version else 'empty'} (read as v{document.file_metadata.version})")
    print(f"Sets: {len(document.sets)}, Sessions: {len(document.sessions)}, Prompts: {len(document.prompts)}")

    session_names = {s.id: s.name or '(unnamed session)' for s in document.sessions}
    for prompt_set in document.sets:
        set_prompts = document.prompts_in_set(prompt_set.id)
        flags = []
        if prompt_set.active:
            flags.append('active')
        if prompt_set.collapsed:
            flags.append('collapsed')
        flag_str = f" [{', '.join(flags)}]" if flags else ''
        print(f"\n# {prompt_set.name or '(unnamed set)'} ({prompt_set.id}){flag_str} - {len(set_prompts)} prompt(s)")
        if prompt_set.folder_link:
            print(f"  folder: {prompt_set.folder_link}")

        for prompt in set_prompts:
            session = prompt.metadata.session_id
            where = f" @{session_names.get(session, session)}" if session else ''
            title = prompt.metadata.name or _first_line(prompt.content)
            print(f"  - [{prompt.metadata.status}] {prompt.id}{where}: {title}")

    return 0


def cmd_migrate(args):
    """Rewrite files in canonical v2.0 format."""
    from .canonicalize import serialize_document
    from .operations import autolink_folders
    from .output import write_if_changed
    from .parsing import parse, detect_file_format

    settings = args.settings
    logger = logging.getLogger(__name__)
    autolink = args.autolink or settings.autolink_folders
    backup = args.backup or settings.backup

    output_dir = Path(args.output) if args.output else None
    if output_dir and not args.check:
        output_dir.mkdir(parents=True, exist_ok=True)

    changed = 0
    failures = 0
    paths = _expand_paths(args.paths, settings.file_pattern)

    for path in paths:
        try:
            text = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            print(f"{path}: Error: {e}")
            failures += 1
            continue

        document = parse(text, logger=logger)
        if autolink:
            document = autolink_folders(document)
        result = serialize_document(document, logger=logger)

        reparsed = parse(result.content, logger=logger)
        if len(reparsed.prompts) < len(document.prompts):
            print(f"{path}: Warning: {len(document.prompts)} prompt(s) before, "
                  f"{len(reparsed.prompts)} after migration")

        if result.content == text:
            if args.verbose:
                print(f"{path}: already canonical")
            continue

        changed += 1
        version = detect_file_format(text)
        if args.check:
            print(f"{path}: would migrate from {'v' + version if version else 'empty'}")
            continue

        print(f"Migrating: {path.name} ({'v' + version if version else 'empty'} -> v{document.file_metadata.version})")
        out_path = output_dir / path.name if output_dir else path
        try:
            if backup and out_path == path:
                backup_path = path.with_name(path.name + '.bak')
                shutil.copy2(path, backup_path)
                print(f"  backup: {backup_path}")
            if write_if_changed(out_path, result.content):
                print(f"  -> {out_path}")
        except (OSError, UnicodeEncodeError) as e:
            print(f"  Error: {e}")
            failures += 1

    if args.check:
        print(f"\n{changed}/{len(paths)} file(s) need migration")
        return 1 if changed or failures else 0

    print(f"\nMigrated: {changed}/{len(paths)} file(s)")
    return 1 if failures else 0


def cmd_clean_paste(args):
    """Strip terminal UI framing from a file or stdin."""
    from .content import clean_tui_artifacts

    if args.file:
        try:
            text = Path(args.file).read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        text = sys.stdin.read()

    cleaned = clean_tui_artifacts(text)
    sys.stdout.write(cleaned)
    if cleaned and not cleaned.endswith('\n'):
        sys.stdout.write('\n')
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Prompt Canvas - inspect and migrate canvas files"
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show detailed output'
    )
    parser.add_argument(
        '--config', '-c',
        help='Path to canvas.yaml (default: ./canvas.yaml)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # detect command
    detect_parser = subparsers.add_parser(
        'detect',
        help='Show the on-disk format of each file'
    )
    detect_parser.add_argument(
        'files',
        nargs='+',
        help='Canvas files or directories'
    )
    detect_parser.set_defaults(func=cmd_detect)

    # parse command (debug)
    parse_parser = subparsers.add_parser(
        'parse',
        help='Debug: show the parsed document'
    )
    parse_parser.add_argument(
        'file',
        help='File to parse'
    )
    parse_parser.add_argument(
        '--json',
        action='store_true',
        help='Print the document as JSON'
    )
    parse_parser.set_defaults(func=cmd_parse)

    # migrate command
    migrate_parser = subparsers.add_parser(
        'migrate',
        help='Rewrite files in the canonical v2.0 format'
    )
    migrate_parser.add_argument(
        'paths',
        nargs='+',
        help='Canvas files or directories'
    )
    migrate_parser.add_argument(
        '--output', '-o',
        help='Output directory (default: rewrite in place)'
    )
    migrate_parser.add_argument(
        '--check',
        action='store_true',
        help='Only report files that are not canonical; exit 1 if any'
    )
    migrate_parser.add_argument(
        '--backup',
        action='store_true',
        help='Keep <file>.bak when rewriting in place'
    )
    migrate_parser.add_argument(
        '--autolink',
        action='store_true',
        help='Fill folderLink from scratch/YYYY-MM-DD-name/ paths in prompt content'
    )
    migrate_parser.set_defaults(func=cmd_migrate)

    # clean-paste command
    clean_parser = subparsers.add_parser(
        'clean-paste',
        help='Strip terminal UI framing from pasted text'
    )
    clean_parser.add_argument(
        'file',
        nargs='?',
        help='File to clean (default: stdin)'
    )
    clean_parser.set_defaults(func=cmd_clean_paste)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    settings: CanvasConfig = load_config(Path(args.config) if args.config else None)
    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level)
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')
    args.settings = settings

    sys.exit(args.func(args))


if __name__ == '__main__':
    main()
