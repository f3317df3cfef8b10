"""
Error hierarchy for the Ruby to Solidity transpiler.

ParseError aborts the pipeline on malformed source, CompilationError carries
every message that caused a compile to fail, and ValidationError is only
raised by callers that choose to promote validator findings.
"""

from typing import List, Optional, Sequence


class SolidRailError(Exception):
    """Base class for all transpiler errors."""
    pass


class ParseError(SolidRailError):
    """Raised when Ruby source is lexically or grammatically invalid."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.line = line
        self.column = column
        if line is not None:
            message = f'{message} at line {line}, column {column}'
        super().__init__(message)


class CompilationError(SolidRailError):
    """Raised when source validation fails or a construct cannot be translated."""

    def __init__(self, messages):
        if isinstance(messages, str):
            messages = [messages]
        self.messages: List[str] = list(messages)
        super().__init__('\n'.join(self.messages))


class ValidationError(SolidRailError):
    """Raised when a caller promotes error-severity validator findings."""

    def __init__(self, findings: Sequence):
        self.findings = list(findings)
        super().__init__('\n'.join(str(f) for f in self.findings))
