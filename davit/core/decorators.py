"""Subcommand registry: classes register themselves with their argparse flags"""

import argparse
from typing import Callable, Optional

EXIT_CODES_HELP = """\
exit codes:
  0  success (including a dry run)
  1  aborted by the user
  2  deployment failed, local changes already reverted
  3  revert failed, manual recovery required
"""

ArgAdder = Callable[[argparse.ArgumentParser], argparse.Action]


def arg(*flags: str, **options) -> ArgAdder:
    """Defer one add_argument() call until the subparser exists"""
    return lambda parser: parser.add_argument(*flags, **options)


def _root_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="davit",
        description="Resolve, patch, roll out and verify one service image, "
                    "reverting the manifest when anything goes wrong",
        epilog=EXIT_CODES_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Echo every external command and phase change")
    return parser


class Command:
    """Holds the parser and maps every command name and alias to its class"""
    _commands: dict[str, type] = {}
    parser: Optional[argparse.ArgumentParser] = None
    subparsers = None

    @classmethod
    def _ensure_parser(cls):
        if cls.parser is None:
            cls.parser = _root_parser()
            cls.subparsers = cls.parser.add_subparsers(dest="command", metavar="COMMAND")

    @classmethod
    def register(cls, name: str, help: str, args: Optional[list[ArgAdder]] = None,
                 aliases: Optional[list[str]] = None):
        names = [name, *(aliases or [])]
        taken = [n for n in names if n in cls._commands]
        if taken:
            raise ValueError(f"Command name already registered: {', '.join(taken)}")

        def decorator(command_cls):
            cls._ensure_parser()
            sub = cls.subparsers.add_parser(
                name, aliases=aliases or [], help=help, description=help,
                epilog=EXIT_CODES_HELP, formatter_class=argparse.RawDescriptionHelpFormatter)
            for add in args or []:
                add(sub)
            cls._commands.update(dict.fromkeys(names, command_cls))
            return command_cls
        return decorator

    @classmethod
    def get_command(cls, name: str):
        return cls._commands.get(name)

    @classmethod
    def parse_args(cls, argv: Optional[list[str]] = None) -> argparse.Namespace:
        cls._ensure_parser()
        return cls.parser.parse_args(argv)
