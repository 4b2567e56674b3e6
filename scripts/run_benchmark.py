#!/usr/bin/env python3
"""Run a ribobench benchmark from a JSON config."""

from __future__ import annotations

from ribobench.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
