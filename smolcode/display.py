"""Terminal output for chat roles, prompts and errors, plain or rendered as Markdown."""

from __future__ import annotations

import re
import sys
from typing import Any, Optional, Protocol, TextIO, runtime_checkable

from rich.console import Console
from rich.markdown import Markdown

_VERB_RE = re.compile(r"%([-+ #0]*\d*(?:\.\d+)?)([vq])")


def _format(fmt: str, args: tuple[Any, ...]) -> str:
    """Apply printf-style arguments; %v and %q are taken as %s and %r."""
    if not args:
        return fmt
    template = _VERB_RE.sub(
        lambda m: "%" + m.group(1) + ("s" if m.group(2) == "v" else "r"), fmt
    )
    try:
        return template % args
    except (TypeError, ValueError):
        return fmt + " " + " ".join(str(arg) for arg in args)


def _role_prefix(role: str, color_code: str, history_count: int) -> str:
    if history_count >= 0:
        return f"\u001b[{color_code}m{role} [{history_count}]\u001b[0m: "
    return f"\u001b[{color_code}m{role}\u001b[0m: "


@runtime_checkable
class TextDisplayer(Protocol):
    """Something that shows text, prompts, errors and role messages to the user."""

    def display(self, content: str) -> None:
        """Show a block of content."""

    def display_prompt(self, fmt: str, *args: Any) -> None:
        """Show an inline prompt without a trailing newline."""

    def display_error(self, fmt: str, *args: Any) -> None:
        """Show an error message."""

    def display_message(
        self, role: str, color_code: str, history_count: int, fmt: str, *args: Any
    ) -> None:
        """Show a message attributed to a role."""


class RawTextDisplay:
    """Writes text unchanged to a stream (standard output by default)."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()

    def display_prompt(self, fmt: str, *args: Any) -> None:
        """Write a formatted prompt with no trailing newline."""
        self._write(_format(fmt, args))

    def display(self, content: str) -> None:
        """Write the content followed by a newline."""
        self._write(content + "\n")

    def display_error(self, fmt: str, *args: Any) -> None:
        """Write a formatted error prefixed with a red 'Error' label."""
        self._write("\u001b[91mError\u001b[0m: " + _format(fmt, args) + "\n")

    def display_message(
        self, role: str, color_code: str, history_count: int, fmt: str, *args: Any
    ) -> None:
        """Write a formatted message behind a coloured role label.

        The history count is shown in the label unless it is negative.
        """
        self._write(
            _role_prefix(role, color_code, history_count) + _format(fmt, args) + "\n"
        )


class GlamourousTextDisplay(RawTextDisplay):
    """Renders content as Markdown, falling back to raw output when rendering fails."""

    def _render(self, content: str) -> str:
        console = Console(file=None, record=True, highlight=False)
        with console.capture() as capture:
            console.print(Markdown(content))
        return capture.get()

    def display(self, content: str) -> None:
        """Render content as Markdown and write it."""
        try:
            rendered = self._render(content)
        except Exception as exc:  # rendering must never break output
            sys.stderr.write(
                f"Markdown rendering failed: {exc}. Falling back to raw display.\n"
            )
            super().display(content)
            return
        self._write(rendered)

    def display_message(
        self, role: str, color_code: str, history_count: int, fmt: str, *args: Any
    ) -> None:
        """Write the raw role label followed by the Markdown-rendered message."""
        core = _format(fmt, args)
        try:
            rendered = self._render(core)
        except Exception as exc:  # rendering must never break output
            sys.stderr.write(
                f"Markdown rendering failed for message: {exc}. "
                "Falling back to raw display for the entire message.\n"
            )
            super().display_message(role, color_code, history_count, fmt, *args)
            return
        self._write(_role_prefix(role, color_code, history_count) + rendered)