"""Conversation history, code generation and terminal display for a coding assistant."""

__version__ = "0.1.0"
__all__ = ["cli", "codegen", "display", "history", "loader", "schema", "tarfs"]