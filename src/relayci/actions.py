# actions.py
from __future__ import annotations

import shlex
from typing import Any, Callable, Dict, List, Mapping, Optional

# A builder turns a step's `with:` mapping into one shell command line.
ActionBuilder = Callable[[Mapping[str, Any]], str]

_REGISTRY: Dict[str, ActionBuilder] = {}


TOOL_HINTS = {
    "cargo": "Install Rust via rustup (https://rustup.rs) or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "rustc": "Install Rust via rustup (https://rustup.rs) or fix PATH.",
    "git": "Install Git or fix PATH.",
    "sudo": "sudo is not available; run the step without it or as root.",
    "apt-get": "apt-get only exists on Debian/Ubuntu hosts.",
    "python3": "Install Python 3 or fix PATH (python3).",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "docker": "Install Docker and ensure the daemon is running.",
}


class UnknownAction(ValueError):
    def __init__(self, uses: str):
        super().__init__(f"unknown action '{uses}'")
        self.uses = uses


def action_name(uses: str) -> str:
    """'actions/checkout@v4' -> 'actions/checkout'"""
    return uses.split("@", 1)[0].strip()


def register_action(name: str) -> Callable[[ActionBuilder], ActionBuilder]:
    """Register a builder for a named action (without the @version suffix)."""
    def deco(fn: ActionBuilder) -> ActionBuilder:
        _REGISTRY[name] = fn
        return fn
    return deco


def known_actions() -> List[str]:
    return sorted(_REGISTRY)


def resolve_action(uses: str, with_: Mapping[str, Any] | None = None) -> str:
    """
    Resolve a `uses:` step into the command line that performs it.

    Raises:
      UnknownAction if nothing is registered under the action's name.
    """
    builder = _REGISTRY.get(action_name(uses))
    if builder is None:
        raise UnknownAction(uses)
    return builder(dict(with_ or {}))


def tool_of(cmd: str) -> Optional[str]:
    """First executable of a command line, skipping `sudo` and env assignments."""
    try:
        parts = shlex.split(cmd)
    except ValueError:
        parts = cmd.split()
    for p in parts:
        if "=" in p and not p.startswith("-"):
            continue
        if p == "sudo" or p.startswith("-"):
            continue
        return p
    return None


def tool_hint(cmd: str) -> Optional[str]:
    tool = tool_of(cmd)
    if tool is None:
        return None
    return TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")


def _csv(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [v.strip() for v in str(value).split(",") if v.strip()]


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------
# Built-in actions
# ---------------------------------------------------------------------

@register_action("actions/checkout")
def _checkout(with_: Mapping[str, Any]) -> str:
    # The source is checked out by the host; only move to a ref when asked.
    ref = with_.get("ref")
    if ref:
        return f"git checkout --quiet {shlex.quote(str(ref))}"
    return "git rev-parse --is-inside-work-tree"


@register_action("actions-rs/toolchain")
def _rust_toolchain(with_: Mapping[str, Any]) -> str:
    toolchain = str(with_.get("toolchain") or "stable")
    cmd = ["rustup", "toolchain", "install", toolchain]
    profile = with_.get("profile")
    if profile:
        cmd += ["--profile", str(profile)]
    for c in _csv(with_.get("components")):
        cmd += ["--component", c]
    for t in _csv(with_.get("target")):
        cmd += ["--target", t]

    line = " ".join(shlex.quote(p) for p in cmd)
    if _truthy(with_.get("override", False)):
        line += f" && rustup override set {shlex.quote(toolchain)}"
    elif _truthy(with_.get("default", False)):
        line += f" && rustup default {shlex.quote(toolchain)}"
    return line


@register_action("dtolnay/rust-toolchain")
def _dtolnay_toolchain(with_: Mapping[str, Any]) -> str:
    # Same shape, but this one always becomes the override for the workspace.
    return _rust_toolchain({**with_, "override": True})
