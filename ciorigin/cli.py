"""ciorigin command line interface."""

from __future__ import annotations

import argparse
import json
from typing import Any

from .environment import EnvironmentSnapshot
from .errors import NonZeroExitError, ProvenanceError, SpawnError, UsageError
from .loader import resolve_provenance
from .logging_setup import configure_logging
from .schema import export_provenance
from .settings import Settings
from .spawn import run_checked, run_to_file
from .tags import provenance_tags


def _print_output(payload: dict[str, Any], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, sort_keys=True))
        return

    if "ok" in payload:
        print(f"ok: {payload['ok']}")
    provenance = payload.get("provenance")
    if isinstance(provenance, dict):
        for key in ("provider", "repository", "commit", "branch", "tag", "workspace_path"):
            if provenance.get(key) is not None:
                print(f"{key}: {provenance[key]}")
        for group in ("pipeline", "job", "author", "committer"):
            for key, value in sorted(provenance.get(group, {}).items()):
                if value is not None:
                    print(f"{group}.{key}: {value}")
    if payload.get("branch_excluded"):
        print("branch_excluded: True")
    tags = payload.get("tags")
    if isinstance(tags, dict):
        for key in sorted(tags):
            print(f"{key}: {tags[key]}")
    if payload.get("output"):
        print(payload["output"], end="" if payload["output"].endswith("\n") else "\n")
    if "exit_status" in payload and payload["exit_status"] is not None:
        print(f"exit_status: {payload['exit_status']}")

    diagnostics = payload.get("diagnostics")
    if isinstance(diagnostics, list) and diagnostics:
        print("diagnostics:")
        for item in diagnostics:
            print(f"  - {item['code']}: {item['message']}")

    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        print("errors:")
        for item in errors:
            print(f"  - {item.get('code', '<unknown>')}: {item.get('message', '')}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ciorigin")
    subparsers = parser.add_subparsers(dest="command", required=True)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve build provenance")
    resolve_parser.add_argument("--path", help="Start repository discovery here")
    resolve_parser.add_argument("--json", action="store_true", help="Emit JSON output")

    tags_parser = subparsers.add_parser("tags", help="Print telemetry tags")
    tags_parser.add_argument("--path", help="Start repository discovery here")
    tags_parser.add_argument("--json", action="store_true", help="Emit JSON output")

    exec_parser = subparsers.add_parser("exec", help="Run a shell command")
    exec_parser.add_argument("shell_command", metavar="COMMAND", help="Command passed to /bin/sh -c")
    exec_parser.add_argument("--output", help="Write combined output to this file")
    exec_parser.add_argument("--timeout", type=float, help="Seconds before the command is killed")
    exec_parser.add_argument("--json", action="store_true", help="Emit JSON output")

    return parser


def _run(args: argparse.Namespace, env: EnvironmentSnapshot) -> int:
    if args.command == "resolve":
        provenance = resolve_provenance(env, start_path=args.path)
        exported = export_provenance(provenance)
        payload = {
            "ok": True,
            "provenance": exported,
            "branch_excluded": Settings.from_env(env).is_branch_excluded(provenance.branch),
            "diagnostics": exported["diagnostics"],
        }
        _print_output(payload, as_json=bool(args.json))
        return 0

    if args.command == "tags":
        provenance = resolve_provenance(env, start_path=args.path)
        tags = provenance_tags(provenance, Settings.from_env(env), env)
        _print_output({"ok": True, "tags": tags}, as_json=bool(args.json))
        return 0

    if args.command == "exec":
        if args.output is not None:
            status = run_to_file(args.shell_command, args.output)
            if status is None:
                raise SpawnError(args.shell_command, f"could not run with output to {args.output}")
            _print_output({"ok": status == 0, "exit_status": status}, as_json=bool(args.json))
            return 0 if status == 0 else 1
        try:
            result = run_checked(args.shell_command, timeout=args.timeout)
        except NonZeroExitError as exc:
            payload = {"ok": False, "exit_status": exc.exit_status, "output": exc.output}
            _print_output(payload, as_json=bool(args.json))
            return 1
        payload = {"ok": True, "exit_status": result.exit_status, "output": result.captured_output}
        _print_output(payload, as_json=bool(args.json))
        return 0

    raise UsageError(f"Unsupported command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    env = EnvironmentSnapshot.capture()
    configure_logging(env)
    try:
        return _run(args, env)
    except ProvenanceError as exc:
        payload = {"ok": False, "errors": [exc.to_dict()]}
        _print_output(payload, as_json=bool(getattr(args, "json", False)))
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
