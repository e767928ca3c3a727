from __future__ import annotations

import io
import threading
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Tuple

import pytest

from relayci.runner import ProcessOutcome
from relayci.ui.console import Console, set_console


# Same shape as the hosted workflow this tool was first pointed at:
# a single lint job and a three-toolchain integration matrix.
RUST_PIPELINE = """\
name: CI

on:
  pull_request:
    types: [opened, synchronize, reopened]
  merge_group:
  push:
    branches:
      - base

jobs:
  lint:
    name: lint
    runs-on: ubuntu-latest

    steps:
    - uses: actions/checkout@v4

    - name: Install Rust nightly
      uses: actions-rs/toolchain@v1
      with:
          toolchain: nightly
          override: true
          components: rustfmt, clippy

    - name: Check fmt
      run: cargo fmt -- --check

    - name: Check clippy
      run: cargo clippy -- -D warnings

  integ:
    name: integ
    runs-on: ubuntu-latest
    strategy:
      fail-fast: false
      matrix:
        include:
          - rust_version: "stable"
          - rust_version: "beta"
          - rust_version: "nightly"

    steps:
    - uses: actions/checkout@v4

    - name: Install Rust ${{ matrix.rust_version }}
      uses: actions-rs/toolchain@v1
      with:
          toolchain: ${{ matrix.rust_version }}
          override: true
          components: rustfmt

    - name: Update repositories
      run: sudo apt-get -y update

    - name: Build
      run: cargo build --verbose --all

    - name: Run cargo tests
      run: cargo test -- --show-output
"""


Call = Tuple[str, Optional[str], Mapping[str, str]]


class FakeExecutor:
    """
    Stands in for process execution.

    `fail_when(cmd, env)` returns an exit code to fail the call, or None to
    succeed. `on_call(cmd, env)` runs before the outcome is decided.
    """

    def __init__(
        self,
        fail_when: Callable[[str, Mapping[str, str]], Optional[int]] | None = None,
        on_call: Callable[[str, Mapping[str, str]], None] | None = None,
    ):
        self.fail_when = fail_when or (lambda cmd, env: None)
        self.on_call = on_call
        self.calls: List[Call] = []
        self._lock = threading.Lock()

    def execute(self, cmd: str, *, cwd: Path, env: Mapping[str, str]) -> ProcessOutcome:
        with self._lock:
            self.calls.append((cmd, env.get("RELAYCI_JOB"), dict(env)))
        if self.on_call is not None:
            self.on_call(cmd, env)
        code = self.fail_when(cmd, env)
        if code:
            return ProcessOutcome(exit_code=code, output=f"boom: {cmd}")
        return ProcessOutcome(exit_code=0, output=f"ok: {cmd}")

    def commands_for(self, job: str) -> List[str]:
        return [c for c, j, _ in self.calls if j == job]


@pytest.fixture(autouse=True)
def quiet_console():
    """Route console output into a buffer so tests can inspect it."""
    buf = io.StringIO()
    console = Console(stream=buf)
    set_console(console)
    yield buf
    set_console(Console())


@pytest.fixture
def rust_pipeline_text() -> str:
    return RUST_PIPELINE


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()
