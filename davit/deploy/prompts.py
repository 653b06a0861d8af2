"""Interactive prompts for the deploy wizard"""
from typing import Callable, List, Optional

from davit.core.colors import Colors

Reader = Callable[[str], str]


class Prompter:
    """Line-based questions on the terminal"""

    def __init__(self, reader: Reader = input):
        self.reader = reader

    def ask(self, prompt: str) -> Optional[str]:
        try:
            return self.reader(prompt)
        except EOFError:
            return None

    def confirm(self, question: str) -> bool:
        response = self.ask(f"{question} [y/N]: ")
        return (response or "").strip().lower() in ("y", "yes")

    def choose(self, title: str, options: List[str]) -> Optional[int]:
        """Numbered menu; returns the chosen index or None to cancel"""
        print(f"\n{Colors.BOLD}{title}{Colors.RESET}")
        for i, option in enumerate(options, 1):
            print(f"  {Colors.CYAN}{i:>3}{Colors.RESET}) {option}")

        while True:
            response = self.ask(f"Select 1-{len(options)} (q to cancel): ")
            if response is None:
                return None
            response = response.strip().lower()
            if response in ("q", "quit", ""):
                return None
            if response.isdigit() and 1 <= int(response) <= len(options):
                return int(response) - 1
            print(f"{Colors.YELLOW}Invalid selection '{response}'{Colors.RESET}")

    def typed_confirmation(self, expected: str) -> bool:
        """The user must type expected exactly (case-sensitive)"""
        response = self.ask(
            f"{Colors.RED}{Colors.BOLD}Protected environment.{Colors.RESET} "
            f"Type '{expected}' to continue: ")
        # input() already drops the newline; anything else must match
        return response is not None and response.rstrip("\r\n") == expected
