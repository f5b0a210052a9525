#!/usr/bin/env python3
"""trunkflow CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from trunkflow.commands import release_changes as cmd_changes_module
from trunkflow.commands import release_cherry_pick as cmd_cherry_pick_module
from trunkflow.commands import release_deploy as cmd_deploy_module
from trunkflow.commands import release_notes as cmd_notes_module
from trunkflow.commands import release_stage as cmd_stage_module
from trunkflow.commands import release_start as cmd_start_module
from trunkflow.git.runner import repository_root
from trunkflow.lib.config import load_config
from trunkflow.lib.constants import (
    EXIT_CANCELED,
    EXIT_CONFIG,
    EXIT_ERROR,
    EXIT_ROLLBACK_FAILED,
)
from trunkflow.lib.errors import (
    ConfigError,
    GitCommandError,
    OperationCanceled,
    RollbackError,
    TaskError,
    TrunkflowError,
)
from trunkflow.lib.validate import ValidationError

logger = logging.getLogger(__name__)


def exit_code_for(error: BaseException) -> int:
    """Map a failure onto the process exit code."""
    if isinstance(error.__cause__, RollbackError):
        return EXIT_ROLLBACK_FAILED
    cause = error.root_cause() if isinstance(error, TaskError) else error
    if isinstance(cause, RollbackError):
        return EXIT_ROLLBACK_FAILED
    if isinstance(cause, OperationCanceled):
        return EXIT_CANCELED
    if isinstance(cause, ConfigError):
        return EXIT_CONFIG
    return EXIT_ERROR


def print_error(error: TrunkflowError) -> None:
    if isinstance(error, ValidationError):
        print("ERROR: Schema validation failed while loading the configuration", file=sys.stderr)
        print(f"  Schema: {error.schema_name}", file=sys.stderr)
        print(f"  Error: {error}", file=sys.stderr)
        return

    print(f"\nERROR: {error}", file=sys.stderr)
    hint = error.hint if isinstance(error, TaskError) else ""
    if hint:
        print(f"\n{hint.rstrip()}\n", file=sys.stderr)
    if isinstance(error.__cause__, RollbackError):
        print("\nRollback failed, the repository needs to be cleaned up manually:", file=sys.stderr)
        for label, exc in error.__cause__.failures:
            print(f"  {label}: {exc}", file=sys.stderr)


def resolve_repo(path: Path | None) -> Path:
    """Root of the git working tree containing path (default: cwd)."""
    path = path or Path.cwd()
    try:
        return repository_root(path)
    except GitCommandError as e:
        raise ConfigError(f"{path} is not inside a git working tree: {e}") from None


def run_command(func, args) -> int:
    try:
        args.repo = resolve_repo(args.repo)
        config = load_config(args.repo)
        return func(args, config)
    except OperationCanceled:
        print("\nOperation canceled. You are free to try again later.", file=sys.stderr)
        return EXIT_CANCELED
    except TaskError as e:
        if isinstance(e.root_cause(), OperationCanceled) and not isinstance(e.__cause__, RollbackError):
            print("\nOperation canceled. You are free to try again later.", file=sys.stderr)
        else:
            print_error(e)
        return exit_code_for(e)
    except TrunkflowError as e:
        print_error(e)
        return exit_code_for(e)


def cmd_release_start(args):
    return run_command(cmd_start_module.cmd_release_start, args)


def cmd_release_stage(args):
    return run_command(cmd_stage_module.cmd_release_stage, args)


def cmd_release_deploy(args):
    return run_command(cmd_deploy_module.cmd_release_deploy, args)


def cmd_release_cherry_pick(args):
    return run_command(cmd_cherry_pick_module.cmd_release_cherry_pick, args)


def cmd_release_changes(args):
    return run_command(cmd_changes_module.cmd_release_changes, args)


def cmd_release_notes(args):
    return run_command(cmd_notes_module.cmd_release_notes, args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='tflow', description='Trunk-based release workflow CLI')
    parser.add_argument('--repo', '-C', type=Path, help='Any path inside the repository (default: cwd)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # tflow release
    p_release = subparsers.add_parser('release', help='Release management')
    release_sub = p_release.add_subparsers(dest='release_command', required=True)

    # tflow release start
    p_start = release_sub.add_parser('start', help='Start a new release')
    p_start.add_argument('--next-trunk-version', help='Version to bump trunk to (default: next minor)')
    p_start.add_argument('--no-fetch', action='store_true', help='Do not fetch the remote repository')
    p_start.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')
    p_start.set_defaults(func=cmd_release_start)

    # tflow release stage
    p_stage = release_sub.add_parser('stage', help='Stage the running release')
    p_stage.add_argument('--no-fetch', action='store_true', help='Do not fetch the remote repository')
    p_stage.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')
    p_stage.set_defaults(func=cmd_release_stage)

    # tflow release deploy
    p_deploy = release_sub.add_parser('deploy', help='Deploy a release into production')
    p_deploy.add_argument('--release', help='Version to deploy, skipping all checks')
    p_deploy.set_defaults(func=cmd_release_deploy)

    # tflow release cherry-pick
    p_cherry_pick = release_sub.add_parser('cherry-pick', help='Cherry-pick missing changes into the release')
    p_cherry_pick.add_argument('--no-fetch', action='store_true', help='Do not fetch the remote repository')
    p_cherry_pick.add_argument('--yes', '-y', action='store_true', help='Do not ask for confirmation')
    p_cherry_pick.set_defaults(func=cmd_release_cherry_pick)

    # tflow release changes
    p_changes = release_sub.add_parser('changes', help='List the changes of the running release')
    p_changes.add_argument('--porcelain', action='store_true', help='Script-friendly output')
    p_changes.add_argument('--to-cherry-pick', action='store_true',
                           help='Only list changes missing from the release branch')
    p_changes.add_argument('--include-source', action='append', metavar='REGEXP',
                           help='Only list changes with a commit source matching REGEXP')
    p_changes.add_argument('--exclude-source', action='append', metavar='REGEXP',
                           help='Skip changes with a commit source matching REGEXP')
    p_changes.set_defaults(func=cmd_release_changes)

    # tflow release notes
    p_notes = release_sub.add_parser('notes', help='Print release notes')
    p_notes.add_argument('version', help='Release version (X.Y.Z)')
    p_notes.add_argument('--format', choices=cmd_notes_module.FORMATS, default='json', help='Output format')
    p_notes.add_argument('--pretty', action='store_true', help='Pretty-print JSON output')
    p_notes.set_defaults(func=cmd_release_notes)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s: %(message)s',
    )
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
