#!/usr/bin/env python3

"""
davit: safe Kubernetes deployments

Commands report their outcome through the exit code; see `davit --help`.
"""

import sys
import traceback

from davit.core.colors import Colors
from davit.core.decorators import Command
from davit.core.errors import ExitCode
from davit.core.logger import Logger

# Registers the subcommands
from davit import commands  # noqa: F401


def main(argv=None):
    args = Command.parse_args(argv)

    if args.no_color:
        Colors.disable()
    Logger.verbose = args.verbose

    command_class = Command.get_command(args.command) if args.command else None
    if command_class is None:
        Command.parser.print_help()
        sys.exit(ExitCode.SUCCESS if not args.command else ExitCode.FAILED)

    try:
        command_class().execute(args)
    except KeyboardInterrupt:
        print(file=sys.stderr)
        Logger.warn("Interrupted by user")
        sys.exit(ExitCode.ABORTED)
    except Exception as e:
        Logger.error(f"{args.command} failed: {e}")
        if args.verbose:
            traceback.print_exc()
        sys.exit(ExitCode.FAILED)


if __name__ == "__main__":
    main()
