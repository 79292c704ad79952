"""Command line interface for declarative target projects."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Any, Iterable, List, Mapping
import sys

from .command_runner import CommandRunner, RecordingCommandRunner, SubprocessCommandRunner
from .config_loader import load_config_file, normalize_string_list
from .console import Console
from .dispatcher import REQUESTS
from .errors import TargetError
from .project import Project
from .settings import ProjectSettings

_DECLARATIONS = {
    "executable": Project.add_executable,
    "library": Project.add_library,
    "script": Project.add_script,
}


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="targetkit", description="Declare, finalize and build project targets")
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Print the execution graph of a project")
    plan_parser.add_argument("project_file", help="Project configuration file")
    plan_parser.add_argument("--verbose", action="store_true", help="Enable verbose output")

    build_parser = subparsers.add_parser("build", help="Run the synthesized script build steps")
    build_parser.add_argument("project_file", help="Project configuration file")
    build_parser.add_argument("--dry-run", action="store_true", help="Print commands without executing them")
    build_parser.add_argument("--verbose", action="store_true", help="Enable verbose output")

    exports_parser = subparsers.add_parser("exports", help="Print the exported targets")
    exports_parser.add_argument("project_file", help="Project configuration file")
    exports_parser.add_argument("--verbose", action="store_true", help="Enable verbose output")

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(argv if argv is not None else sys.argv[1:])
    handlers = {"plan": _handle_plan, "build": _handle_build, "exports": _handle_exports}
    handler = handlers.get(args.command)
    if handler is None:
        raise ValueError(f"Unknown command: {args.command}")
    console = Console("debug" if args.verbose else "info")
    try:
        return handler(args, console)
    except TargetError as exc:
        console.error(str(exc))
        return 1
    except (ValueError, TypeError, OSError) as exc:
        console.error(f"Invalid project configuration {args.project_file}: {exc}")
        return 1


def load_project(path: Path, console: Console, *, runner: CommandRunner | None = None) -> Project:
    """Load ``path``, declare its ``[[targets]]`` and finalize the project."""

    data = load_config_file(path)
    settings = ProjectSettings.from_mapping(data, base_dir=path.resolve().parent)
    if console.level_name == "info" and settings.log_level != "info":
        console = Console(settings.log_level)
    project = Project(settings, console=console, runner=runner)

    entries = data.get("targets", [])
    if not isinstance(entries, list):
        raise TypeError("[[targets]] must be an array of tables")
    declared: List[tuple[str, Mapping[str, Any]]] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise TypeError("[[targets]] entries must be tables")
        name, request, sources, options = _target_entry(entry)
        with project.subdirectory(entry.get("directory", ".")):
            target = _DECLARATIONS[request](project, name, *sources, **options)
        declared.append((target.uid, entry))

    for uid, entry in declared:
        dependencies = normalize_string_list(entry.get("dependencies"), field_name="dependencies")
        if dependencies:
            project.add_dependencies(f".{uid}", *dependencies)
        link = normalize_string_list(entry.get("link"), field_name="link")
        if link:
            project.target_link_libraries(f".{uid}", *link)

    project.finalize()
    return project


def _target_entry(entry: Mapping[str, Any]) -> tuple[str, str, List[str], dict[str, Any]]:
    name = entry.get("name")
    if not name:
        raise ValueError("Target entries require a name")
    request = str(entry.get("type", "executable")).lower()
    if request not in REQUESTS:
        raise ValueError(f"Target '{name}' has unknown type '{request}'. Supported: {', '.join(REQUESTS)}")
    sources = normalize_string_list(entry.get("sources"), field_name="sources")
    options = {
        key: value
        for key, value in entry.items()
        if key not in {"name", "type", "sources", "dependencies", "link", "directory"}
    }
    return str(name), request, sources, options


def _handle_plan(args: Namespace, console: Console) -> int:
    project = load_project(Path(args.project_file), console, runner=RecordingCommandRunner())
    print(project.engine.serialize())
    return 0


def _handle_build(args: Namespace, console: Console) -> int:
    runner: SubprocessCommandRunner | RecordingCommandRunner
    if args.dry_run:
        runner = RecordingCommandRunner()
    else:
        runner = SubprocessCommandRunner()

    project = load_project(Path(args.project_file), console, runner=runner)
    executed = project.build(runner)
    console.info(f"Executed {len(executed)} build step(s)")

    if args.dry_run and isinstance(runner, RecordingCommandRunner):
        for line in runner.iter_formatted():
            print(line)
    return 0


def _handle_exports(args: Namespace, console: Console) -> int:
    project = load_project(Path(args.project_file), console, runner=RecordingCommandRunner())
    print(project.exports().serialize())
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
