"""crate-edit: edit Cargo manifests from the command line.

    Adds, removes and upgrades dependencies and sets package versions while
    keeping the rest of each manifest byte for byte.
"""

import logging
import sys

from args import parse_args
from cli_add import run_add
from cli_config import apply_cli_overrides
from cli_rm import run_rm
from cli_set_version import run_set_version
from cli_upgrade import run_upgrade
from common.errors import CrateEditError, PartialCommit
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import ExitCodes, apply_config

HANDLERS = {
    "add": run_add,
    "rm": run_rm,
    "upgrade": run_upgrade,
    "set-version": run_set_version,
}


def run(args) -> ExitCodes:
    """Dispatch a parsed command line and map failures to exit codes."""
    logger = logging.getLogger(__name__)
    handler = HANDLERS[args.action]
    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.action)
        )
    try:
        return handler(args)
    except PartialCommit as exc:
        logger.error("%s", exc)
        logger.error("Written: %s", ", ".join(exc.written) or "none")
        logger.error("Not written: %s", ", ".join(exc.pending) or "none")
        if isinstance(exc.__cause__, KeyboardInterrupt):
            return ExitCodes.INTERRUPTED
        return exc.category.exit_code
    except CrateEditError as exc:
        logger.error("%s [%s]", exc, exc.kind)
        return exc.category.exit_code
    except KeyboardInterrupt:
        logger.error("Interrupted; no manifest was written")
        return ExitCodes.INTERRUPTED


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE, args.QUIET)
    apply_config(args.CONFIG)
    apply_cli_overrides(args)
    sys.exit(run(args).value)


if __name__ == "__main__":
    main()
