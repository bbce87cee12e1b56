"""Child-process entry point that defines function source read from stdin.

Exits 0 when the definitions complete and 1 with the reason on stderr when
they are rejected or raise. The parent kills the process at its timeout.
"""

from __future__ import annotations

import sys

from rulescope.sandbox.executor import Sandbox, SandboxError, compile_source


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    filename = args[0] if args else "functions.py"
    source = sys.stdin.read()
    # No in-thread deadline here; the parent owns the hard limit.
    sandbox = Sandbox(timeout_seconds=float("inf"), filename=filename)
    try:
        sandbox.execute(compile_source(source, filename))
    except SandboxError as exc:
        sys.stderr.write(f"{exc}\n")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
