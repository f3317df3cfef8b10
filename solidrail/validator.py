"""
Pattern-based validation of Ruby input and generated Solidity.

Both validators return Diagnostic records and never raise; the compiler
decides which findings abort a compile. String literals and comments are
blanked out before the Ruby source is scanned, so a message such as
'system paused' is not mistaken for a system call; code interpolated into a
double-quoted string is still scanned.
"""

import re
from typing import Iterable, List, Optional

from .codegen.diagnostics import Diagnostic, DiagnosticSeverity
from .errors import ValidationError

# String literals and comments, blanked before scanning Ruby source; the code
# inside `#{...}` of a double-quoted string is kept and scanned
NOISE_PATTERN = re.compile(
    r"'(?:\\.|[^'\\])*'"
    r'|"(?:\\.|#\{[^}]*\}|[^"\\])*"'
    r'|#[^\n]*'
)
INTERPOLATION_PATTERN = re.compile(r'#\{([^}]*)\}')

CLASS_PATTERN = re.compile(r'^\s*class\s+[A-Z]', re.MULTILINE)
INITIALIZE_PATTERN = re.compile(r'\bdef\s+initialize\b')
EVAL_PATTERN = re.compile(
    r'\b(?P<name>eval|instance_eval|class_eval|module_eval|instance_exec|class_exec)\b')
# Bare calls, Kernel. calls and symbols passed to send/method; other receivers
# (@runner.exec) are ordinary methods
SYSTEM_PATTERN = re.compile(
    r'(?P<name>\bIO\.popen\b|\bOpen3\b|\bProcess\.spawn\b|'
    r'\bKernel\.(?:system|exec|spawn|fork)\b|'
    r'(?<![.\w@])(?:system|exec|spawn|fork)\b|`|%x[({\[<|!/])'
)

PRAGMA_PATTERN = re.compile(r'^\s*pragma\s+solidity\b', re.MULTILINE)
CONTRACT_PATTERN = re.compile(r'^\s*(?:abstract\s+)?contract\s+\w+', re.MULTILINE)
TX_ORIGIN_PATTERN = re.compile(r'\btx\.origin\b')
TIMESTAMP_PATTERN = re.compile(r'\bblock\.timestamp\b')


def _blank(match) -> str:
    text = match.group()
    blanked = re.sub(r'[^\n]', ' ', text)
    if not text.startswith('"'):
        return blanked
    for inner in INTERPOLATION_PATTERN.finditer(text):
        start, end = inner.span(1)
        blanked = blanked[:start] + _scrub(inner.group(1)) + blanked[end:]
    return blanked


def _scrub(source: str) -> str:
    """Replace string literals and comments with spaces, keeping offsets."""
    return NOISE_PATTERN.sub(_blank, source)


def _line_of(text: str, offset: int) -> int:
    return text.count('\n', 0, offset) + 1


def _finding(
    severity: DiagnosticSeverity,
    code: str,
    message: str,
    construct: str,
    line: Optional[int] = None,
) -> Diagnostic:
    return Diagnostic(severity=severity, code=code, message=message, line=line, construct=construct)


# =============================================================================
# RUBY SOURCE
# =============================================================================

def validate_source(source: str) -> List[Diagnostic]:
    """
    Check Ruby source for the shape of a contract and forbidden constructs.

    Returns:
        Error-severity findings for a missing class, a missing initialize
        method, dynamic code evaluation and OS process invocation
    """
    code = _scrub(source)
    findings = []

    if not CLASS_PATTERN.search(code):
        findings.append(_finding(DiagnosticSeverity.ERROR, 'E001', 'No contract class found', 'class'))
    if not INITIALIZE_PATTERN.search(code):
        findings.append(_finding(
            DiagnosticSeverity.ERROR, 'E002', 'Contract should have an initialize method', 'initialize'))

    for match in EVAL_PATTERN.finditer(code):
        findings.append(_finding(
            DiagnosticSeverity.ERROR, 'E003',
            f'Use of {match.group("name")} is not allowed in smart contracts',
            'eval', _line_of(code, match.start()),
        ))
    for match in SYSTEM_PATTERN.finditer(code):
        findings.append(_finding(
            DiagnosticSeverity.ERROR, 'E004', 'System calls are not allowed in smart contracts',
            'system', _line_of(code, match.start()),
        ))
    return findings


# =============================================================================
# GENERATED SOLIDITY
# =============================================================================

def validate_generated(code: str) -> List[Diagnostic]:
    """
    Check generated Solidity for required declarations and risky globals.

    Returns:
        Errors for a missing pragma or contract; warnings for tx.origin and
        block.timestamp
    """
    findings = []
    if not PRAGMA_PATTERN.search(code):
        findings.append(_finding(
            DiagnosticSeverity.ERROR, 'E101', 'Missing pragma solidity directive', 'pragma'))
    if not CONTRACT_PATTERN.search(code):
        findings.append(_finding(
            DiagnosticSeverity.ERROR, 'E102', 'No contract definition found', 'contract'))

    match = TX_ORIGIN_PATTERN.search(code)
    if match is not None:
        findings.append(_finding(
            DiagnosticSeverity.WARNING, 'W101', 'Use of tx.origin may be unsafe',
            'tx.origin', _line_of(code, match.start()),
        ))
    match = TIMESTAMP_PATTERN.search(code)
    if match is not None:
        findings.append(_finding(
            DiagnosticSeverity.WARNING, 'W102', 'Use of block.timestamp for randomness is unsafe',
            'block.timestamp', _line_of(code, match.start()),
        ))
    return findings


def raise_for_findings(findings: Iterable[Diagnostic]) -> None:
    """Raise ValidationError when any finding is an error."""
    errors = [finding for finding in findings if finding.is_error]
    if errors:
        raise ValidationError(errors)
