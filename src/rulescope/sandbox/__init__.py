"""Isolated execution of externally authored function source."""

from rulescope.sandbox.executor import Sandbox, SandboxError, SandboxTimeoutError
from rulescope.sandbox.stubs import build_stub_globals

__all__ = ["Sandbox", "SandboxError", "SandboxTimeoutError", "build_stub_globals"]
