"""Argument parsing for crate-edit."""

import argparse

from constants import Constants, PinStyles
from versioning.requirement import BUMP_LEVELS

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _add_common(parser, exclude_flag="--exclude"):
    """Options shared by every sub-command."""
    parser.add_argument("--manifest-path",
                        dest="MANIFEST_PATH",
                        help=f"Path to {Constants.MANIFEST_FILE}",
                        action="store",
                        type=str)
    parser.add_argument("-p", "--package",
                        dest="PACKAGES",
                        help="Package to modify (can be used multiple times)",
                        action="append",
                        type=str,
                        default=[])
    parser.add_argument("--workspace",
                        dest="WORKSPACE",
                        help="Modify all packages in the workspace",
                        action="store_true")
    parser.add_argument(exclude_flag,
                        dest="EXCLUDE_PACKAGES",
                        help="Package to skip when modifying the workspace (can be used multiple times)",
                        action="append",
                        type=str,
                        default=[])
    parser.add_argument("-n", "--dry-run",
                        dest="DRY_RUN",
                        help="Show what would change without writing any manifest",
                        action="store_true")
    parser.add_argument("--offline",
                        dest="OFFLINE",
                        help="Only use the local registry cache",
                        action="store_true")
    parser.add_argument("--pin-style",
                        dest="PIN_STYLE",
                        help="Style for newly written requirements (default: caret)",
                        action="store",
                        type=str.lower,
                        choices=[p.value for p in PinStyles])
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=LOG_LEVELS)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Only print errors",
                        action="store_true")


def _add_kind(parser):
    kind = parser.add_mutually_exclusive_group()
    kind.add_argument("--dev",
                      dest="DEV",
                      help="Use [dev-dependencies]",
                      action="store_true")
    kind.add_argument("--build",
                      dest="BUILD",
                      help="Use [build-dependencies]",
                      action="store_true")
    parser.add_argument("--target",
                        dest="TARGET",
                        help="Use the dependency table for a target platform, e.g. 'cfg(unix)'",
                        action="store",
                        type=str)
    parser.add_argument("--workspace-table",
                        dest="WORKSPACE_TABLE",
                        help="Use [workspace.dependencies] of the root manifest",
                        action="store_true")


def build_parser():
    """Build the top-level parser with one sub-parser per command."""
    parser = argparse.ArgumentParser(
        prog="crate-edit",
        description="Add, remove and upgrade dependencies in Cargo manifests",
        add_help=True,
    )
    sub = parser.add_subparsers(dest="action", metavar="<command>")
    sub.required = True

    add = sub.add_parser("add", help="Add dependencies to a manifest")
    add.add_argument("DEPENDENCIES",
                     help="Dependencies to add, as NAME or NAME@REQUIREMENT",
                     nargs="+",
                     metavar="DEP")
    add.add_argument("-F", "--features",
                     dest="FEATURES",
                     help="Features to enable (comma or space separated, can be used multiple times)",
                     action="append",
                     type=str,
                     default=[])
    defaults = add.add_mutually_exclusive_group()
    defaults.add_argument("--no-default-features",
                          dest="DEFAULT_FEATURES",
                          help="Disable the default features",
                          action="store_false",
                          default=None)
    defaults.add_argument("--default-features",
                          dest="DEFAULT_FEATURES",
                          help="Re-enable the default features",
                          action="store_true",
                          default=None)
    optional = add.add_mutually_exclusive_group()
    optional.add_argument("--optional",
                          dest="OPTIONAL",
                          help="Mark the dependency as optional",
                          action="store_true",
                          default=None)
    optional.add_argument("--no-optional",
                          dest="OPTIONAL",
                          help="Mark the dependency as required",
                          action="store_false",
                          default=None)
    add.add_argument("--rename",
                     dest="RENAME",
                     help="Rename the dependency (the registry name goes into `package`)",
                     action="store",
                     type=str)
    add.add_argument("--registry",
                     dest="REGISTRY",
                     help="Alternative registry name",
                     action="store",
                     type=str)
    add.add_argument("--path",
                     dest="PATH",
                     help="Filesystem path to a local crate",
                     action="store",
                     type=str)
    add.add_argument("--git",
                     dest="GIT",
                     help="Git repository URL",
                     action="store",
                     type=str)
    git_ref = add.add_mutually_exclusive_group()
    git_ref.add_argument("--branch", dest="BRANCH", help="Git branch", action="store", type=str)
    git_ref.add_argument("--tag", dest="TAG", help="Git tag", action="store", type=str)
    git_ref.add_argument("--rev", dest="REV", help="Git revision", action="store", type=str)
    add.add_argument("--allow-prerelease",
                     dest="ALLOW_PRERELEASE",
                     help="Consider pre-release versions when picking the latest version",
                     action="store_true")
    _add_kind(add)
    _add_common(add)

    rm = sub.add_parser("rm", aliases=["remove"], help="Remove dependencies from a manifest")
    rm.add_argument("DEPENDENCIES",
                    help="Dependencies to remove",
                    nargs="+",
                    metavar="DEP")
    _add_kind(rm)
    _add_common(rm)

    upgrade = sub.add_parser("upgrade", help="Upgrade dependency version requirements")
    upgrade.add_argument("DEPENDENCIES",
                         help="Dependencies to upgrade, as NAME or NAME@REQUIREMENT (default: all)",
                         nargs="*",
                         metavar="DEP")
    upgrade.add_argument("-i", "--incompatible",
                         dest="INCOMPATIBLE",
                         help="Upgrade to the latest version even if it is not compatible",
                         action="store_true")
    upgrade.add_argument("--pinned",
                         dest="PINNED",
                         help="Also upgrade exact (=x.y.z) requirements",
                         action="store_true")
    upgrade.add_argument("--allow-prerelease",
                         dest="ALLOW_PRERELEASE",
                         help="Consider pre-release versions",
                         action="store_true")
    upgrade.add_argument("--exclude",
                         dest="EXCLUDE",
                         help="Dependency to leave untouched (can be used multiple times)",
                         action="append",
                         type=str,
                         default=[])
    _add_common(upgrade, exclude_flag="--exclude-package")

    set_version = sub.add_parser("set-version", help="Change a package's own version")
    set_version.add_argument("VALUE",
                             help="New version",
                             nargs="?")
    set_version.add_argument("--bump",
                             dest="BUMP",
                             help="Increment the version by the given level",
                             action="store",
                             type=str.lower,
                             choices=BUMP_LEVELS)
    set_version.add_argument("--allow-downgrade",
                             dest="ALLOW_DOWNGRADE",
                             help="Allow setting a lower version than the current one",
                             action="store_true")
    _add_common(set_version)

    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.action == "remove":
        args.action = "rm"
    if args.action == "set-version":
        if (args.VALUE is None) == (args.BUMP is None):
            parser.error("set-version needs exactly one of VALUE or --bump")
    if args.action == "add":
        if args.PATH and args.GIT:
            parser.error("--path and --git cannot be combined")
        if (args.BRANCH or args.TAG or args.REV) and not args.GIT:
            parser.error("--branch, --tag and --rev require --git")
        if args.RENAME and len(args.DEPENDENCIES) > 1:
            parser.error("--rename can only be used with a single dependency")
    return args
