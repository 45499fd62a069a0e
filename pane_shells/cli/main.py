import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from ..config import load_config
from ..history import HistoryStore
from ..probe import probe_git_status
from ..store import HistoryPaths


def _project_path(raw: Optional[str]) -> str:
    return str(Path(os.path.expanduser(raw or os.getcwd())).resolve())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pane-shells", description="Browse pane transcript history")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--base-dir", default=None, help="History base directory (overrides config)")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # pane-shells project [path]
    project_parser = subparsers.add_parser("project", help="Print (or create) the project id for a directory")
    project_parser.add_argument("path", nargs="?", default=None, help="Project directory (default: cwd)")
    project_parser.add_argument("--no-create", action="store_true", help="Only look up an existing id")

    # pane-shells sessions [path]
    sessions_parser = subparsers.add_parser("sessions", help="List recorded days for a project")
    sessions_parser.add_argument("path", nargs="?", default=None, help="Project directory (default: cwd)")

    # pane-shells show <date> [path]
    show_parser = subparsers.add_parser("show", help="Print one day's transcript")
    show_parser.add_argument("date", help="Day (YYYY-MM-DD)")
    show_parser.add_argument("path", nargs="?", default=None, help="Project directory (default: cwd)")
    show_parser.add_argument("--json", action="store_true", help="Print parsed exchanges as JSON")

    # pane-shells search <query> [path]
    search_parser = subparsers.add_parser("search", help="Search a project's history")
    search_parser.add_argument("query", help="Case-insensitive text to find")
    search_parser.add_argument("path", nargs="?", default=None, help="Project directory (default: cwd)")
    search_parser.add_argument("--limit", type=int, default=50, help="Maximum matches (default: 50)")

    # pane-shells delete <date> [path]
    delete_parser = subparsers.add_parser("delete", help="Delete one day of history")
    delete_parser.add_argument("date", help="Day (YYYY-MM-DD)")
    delete_parser.add_argument("path", nargs="?", default=None, help="Project directory (default: cwd)")

    # pane-shells git [path]
    git_parser = subparsers.add_parser("git", help="Show the git status probe result for a directory")
    git_parser.add_argument("path", nargs="?", default=None, help="Directory (default: cwd)")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        return asyncio.run(run_async(args))
    except KeyboardInterrupt:
        return 130


async def run_async(args) -> int:
    config = load_config(args.config)
    paths = HistoryPaths(Path(args.base_dir) if args.base_dir else None, config=config)
    store = HistoryStore(paths, config=config)
    project_path = _project_path(getattr(args, "path", None))

    if args.command == "git":
        status = await probe_git_status(project_path, timeout=config.git_timeout)
        print(json.dumps(status.to_dict(), indent=2))
        return 0

    if args.command == "project":
        if args.no_create:
            project_id = await store.find_project_id(project_path)
            if not project_id:
                print(f"No project id recorded for {project_path}", file=sys.stderr)
                return 1
        else:
            project_id = await store.get_or_create_project_id(project_path)
        print(project_id)
        return 0

    project_id = await store.find_project_id(project_path)
    if not project_id:
        print(f"No history recorded for {project_path}", file=sys.stderr)
        return 1

    if args.command == "sessions":
        sessions = await store.get_sessions(project_id)
        if not sessions:
            print("No sessions")
            return 0
        for s in sessions:
            print(f"{s.date}  {s.exchange_count:>5} exchanges  {s.size:>9} bytes  {s.preview}")
        return 0

    if args.command == "show":
        if args.json:
            exchanges = await store.get_day_exchanges(project_id, args.date)
            print(json.dumps([e.to_dict() for e in exchanges], indent=2))
            return 0
        content = await store.get_day_content(project_id, args.date)
        if not content:
            print(f"No history for {args.date}", file=sys.stderr)
            return 1
        sys.stdout.write(content)
        return 0

    if args.command == "search":
        results = await store.search(project_id, args.query, args.limit)
        for result in results:
            for block in result["matches"]:
                print(f"== {result['date']}")
                print(block)
                print()
        return 0 if results else 1

    if args.command == "delete":
        existed = await store.delete_day(project_id, args.date)
        print("deleted" if existed else "not found")
        return 0 if existed else 1

    return 1


if __name__ == "__main__":
    sys.exit(main())
