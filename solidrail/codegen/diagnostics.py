"""
Diagnostic/warning system for the transpiler.

Collects and reports findings produced while translating Ruby to Solidity:
constructs that were skipped or degraded by the code generator, rewrites the
optimizer declined to make, and the results of source/output validation.
"""

import sys
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, TextIO


class DiagnosticSeverity(Enum):
    """Severity levels for transpiler diagnostics."""
    ERROR = 'error'
    WARNING = 'warning'
    INFO = 'info'


@dataclass
class Diagnostic:
    """A single diagnostic message."""
    severity: DiagnosticSeverity
    code: str
    message: str
    file_path: str = ''
    line: Optional[int] = None
    construct: str = ''  # e.g., 'eval', 'reentrancy', 'state variable'

    @property
    def is_error(self) -> bool:
        return self.severity == DiagnosticSeverity.ERROR

    def __str__(self) -> str:
        location = self.file_path
        if self.line:
            location = f'{location}:{self.line}' if location else f'line {self.line}'
        if location:
            return f'[{self.severity.value}] {location}: {self.message} ({self.code})'
        return f'[{self.severity.value}] {self.message} ({self.code})'


class TranspilerDiagnostics:
    """
    Collects transpiler warnings/diagnostics during code generation.

    Usage:
        diag = TranspilerDiagnostics()
        diag.warn_undeclared_field("balances", line=12)
        # ... after transpilation ...
        diag.print_summary()
    """

    def __init__(self, verbose: bool = False, file_path: str = ''):
        self._diagnostics: List[Diagnostic] = []
        self._verbose = verbose
        self._file_path = file_path

    @property
    def diagnostics(self) -> List[Diagnostic]:
        """Get all collected diagnostics."""
        return list(self._diagnostics)

    @property
    def errors(self) -> List[Diagnostic]:
        """Get only error-level diagnostics."""
        return [d for d in self._diagnostics if d.severity == DiagnosticSeverity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        """Get only warning-level diagnostics."""
        return [d for d in self._diagnostics if d.severity == DiagnosticSeverity.WARNING]

    @property
    def count(self) -> int:
        """Get total diagnostic count."""
        return len(self._diagnostics)

    def clear(self) -> None:
        """Clear all diagnostics."""
        self._diagnostics.clear()

    def add(self, diagnostic: Diagnostic) -> None:
        if not diagnostic.file_path:
            diagnostic.file_path = self._file_path
        self._diagnostics.append(diagnostic)

    def extend(self, diagnostics: List[Diagnostic]) -> None:
        for diagnostic in diagnostics:
            self.add(diagnostic)

    # =========================================================================
    # SPECIFIC WARNING METHODS
    # =========================================================================

    def warn_undeclared_field(
        self,
        field_name: str,
        default_type: str,
        line: Optional[int] = None,
    ) -> None:
        """Warn that a field is read but never assigned."""
        self.add(Diagnostic(
            severity=DiagnosticSeverity.WARNING,
            code='W001',
            message=f'Instance variable "@{field_name}" is never assigned; '
                    f'declared as {default_type}.',
            line=line,
            construct='state variable',
        ))

    def warn_statement_skipped(
        self,
        construct: str,
        detail: str = '',
        line: Optional[int] = None,
    ) -> None:
        """Warn that a statement with no Solidity counterpart was dropped."""
        msg = f'{construct} was skipped'
        if detail:
            msg += f' ({detail})'
        self.add(Diagnostic(
            severity=DiagnosticSeverity.WARNING,
            code='W002',
            message=msg,
            line=line,
            construct=construct,
        ))

    def warn_reentrancy(
        self,
        function_name: str,
        detail: str,
    ) -> None:
        """Warn that state is mutated after an external call and was left as is."""
        self.add(Diagnostic(
            severity=DiagnosticSeverity.WARNING,
            code='W003',
            message=f'Function "{function_name}" mutates state after an external call '
                    f'and could not be reordered: {detail}',
            construct='reentrancy',
        ))

    def warn_unsupported_construct(
        self,
        construct: str,
        detail: str = '',
        line: Optional[int] = None,
    ) -> None:
        """Generic warning for unsupported constructs."""
        msg = f'Unsupported construct: {construct}'
        if detail:
            msg += f' ({detail})'
        self.add(Diagnostic(
            severity=DiagnosticSeverity.WARNING,
            code='W099',
            message=msg,
            line=line,
            construct=construct,
        ))

    def info_reordered(self, function_name: str) -> None:
        """Info that external calls were moved after state mutations."""
        self.add(Diagnostic(
            severity=DiagnosticSeverity.INFO,
            code='I001',
            message=f'Moved state updates before external calls in "{function_name}"',
            construct='reentrancy',
        ))

    def info_safe_math(self) -> None:
        """Info that arithmetic was rewritten to SafeMath calls."""
        self.add(Diagnostic(
            severity=DiagnosticSeverity.INFO,
            code='I002',
            message='State arithmetic rewritten to SafeMath for pre-0.8 compilers',
            construct='arithmetic',
        ))

    # =========================================================================
    # REPORTING
    # =========================================================================

    def _counts_by_construct(self, diagnostics: List[Diagnostic]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for d in diagnostics:
            counts[d.construct or 'other'] = counts.get(d.construct or 'other', 0) + 1
        return counts

    def print_summary(self, file: Optional[TextIO] = None) -> None:
        """Print errors and warnings (and, when verbose, infos) to stderr or file."""
        out = file if file is not None else sys.stderr
        sections = [('errors', self.errors), ('warnings', self.warnings)]
        if self._verbose:
            sections.append(('notes', [d for d in self._diagnostics
                                       if d.severity == DiagnosticSeverity.INFO]))

        for title, diagnostics in sections:
            if not diagnostics:
                continue
            print(f'\nsolidrail {title} ({len(diagnostics)}):', file=out)
            for d in diagnostics:
                print(f'  {d}', file=out)

    def get_summary(self) -> str:
        """One line counting errors and warnings per construct."""
        counts = self._counts_by_construct(self.errors + self.warnings)
        if not counts:
            return 'No transpiler warnings.'
        return 'Transpiler warnings: ' + ', '.join(
            f'{count} {construct}' for construct, count in sorted(counts.items()))
