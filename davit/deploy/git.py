"""Record a successful deployment in version control"""
import subprocess
from pathlib import Path
from typing import Callable, List

from davit.core.errors import AuditError
from davit.core.logger import Logger

Runner = Callable[..., subprocess.CompletedProcess]


class GitFinalizer:
    """git add / commit / push of the deployed manifest"""

    def __init__(self, runner: Runner = subprocess.run):
        self.runner = runner

    def git(self, repo_root: Path, args: List[str]) -> subprocess.CompletedProcess:
        cmd = ["git", "-C", str(repo_root)] + args
        Logger.verbose_log(f"Running: {' '.join(cmd)}")
        try:
            return self.runner(cmd, capture_output=True, text=True, check=False)
        except FileNotFoundError as e:
            raise AuditError("git not found. Is it installed and in PATH?") from e

    def is_repo(self, path: Path) -> bool:
        """Checks if the given directory is inside a git work tree"""
        result = self.git(path, ["rev-parse", "--is-inside-work-tree"])
        return result.returncode == 0 and result.stdout.strip() == "true"

    def commit_and_push(self, repo_root: Path, message: str, file: Path):
        """Adds, commits and pushes the change"""
        if not self.is_repo(repo_root):
            raise AuditError(f"Not a git repository: {repo_root}")

        for step in (["add", str(file)], ["commit", "-m", message], ["push"]):
            result = self.git(repo_root, step)
            if result.returncode != 0:
                detail = (result.stderr or result.stdout).strip()
                raise AuditError(f"git {step[0]} failed: {detail}")

        Logger.success(f"Committed and pushed: {message}")
