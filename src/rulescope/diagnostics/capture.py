"""Buffering of runtime diagnostics emitted while a form bootstraps."""

from __future__ import annotations

import logging

DATA_REF_MARKER = "Error parsing dataRef"
TYPE_CONFLICT_MARKER = "Type conflict detected"


class DiagnosticBuffer(logging.Handler):
    """Keeps the messages of diagnostic records without formatting or emitting them.

    Passed to :func:`rulescope.runtime.create_form_instance`, which hands it
    every binding diagnostic directly. Logger levels, ``logging.disable`` and
    the handlers configured by the caller do not affect what it receives.
    """

    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.data_ref_messages: list[str] = []
        self.type_conflict_messages: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        message = record.getMessage()
        if DATA_REF_MARKER in message:
            self.data_ref_messages.append(message)
        elif TYPE_CONFLICT_MARKER in message:
            self.type_conflict_messages.append(message)

    def __len__(self) -> int:
        return len(self.data_ref_messages) + len(self.type_conflict_messages)


__all__ = ["DATA_REF_MARKER", "TYPE_CONFLICT_MARKER", "DiagnosticBuffer"]
