# git.py
# Small wrapper around the Git CLI, used to fill in event fields
# (branch, sha) when the caller does not pass them explicitly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "HEAD"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError if git exits non-zero,
        FileNotFoundError if git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """Full SHA of HEAD."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def current_branch(cwd: Optional[str | Path] = None) -> Optional[str]:
    """
    Name of the checked-out branch, or None on a detached HEAD.

    `git rev-parse --abbrev-ref HEAD` prints the literal "HEAD" when detached.
    """
    name = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    return None if name == "HEAD" else name


def local_facts(cwd: Optional[str | Path] = None) -> tuple[Optional[str], Optional[str]]:
    """
    (branch, sha) of the repository at `cwd`, each None when unavailable
    (not a repository, no commits yet, git missing).
    """
    try:
        branch = current_branch(cwd)
    except (subprocess.CalledProcessError, FileNotFoundError):
        branch = None
    try:
        sha = head_sha(cwd)
    except (subprocess.CalledProcessError, FileNotFoundError):
        sha = None
    return branch, sha
