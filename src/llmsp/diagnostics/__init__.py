"""Diagnostics parsed from model suggestions."""

from .parser import DiagnosticPublisher, Suggestion, parse_suggestions, to_diagnostics

__all__ = [
    "DiagnosticPublisher",
    "Suggestion",
    "parse_suggestions",
    "to_diagnostics",
]
