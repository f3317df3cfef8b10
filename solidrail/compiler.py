"""
Compiler pipeline.

Orchestrates one compile: validate the Ruby source, parse it, generate
Solidity, optimize it, validate the output and optionally write it to disk.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .codegen import SolidityCodeGenerator, TranspilerDiagnostics
from .config import Configuration, get_configuration
from .errors import CompilationError
from .optimizer import Optimizer
from .parser import ASTNode, parse
from .validator import validate_generated, validate_source


@dataclass
class CompileResult:
    """The outcome of one compile; also readable as result['code']."""
    code: str
    ast: ASTNode
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def __getitem__(self, key: str) -> Any:
        if key not in ('code', 'ast', 'errors', 'warnings'):
            raise KeyError(key)
        return getattr(self, key)


class Compiler:
    """
    Ruby to Solidity compiler.

    Usage:
        result = Compiler().compile(source)
        print(result.code)
    """

    def __init__(self, config: Optional[Configuration] = None):
        self._config = config

    def compile(self, source: str, output_target: Optional[Union[str, Path]] = None) -> CompileResult:
        """
        Compile Ruby source to Solidity.

        Args:
            source: Ruby source text
            output_target: Optional path the generated code is written to

        Returns:
            The CompileResult

        Raises:
            CompilationError: when source validation fails or a construct
                cannot be translated
            ParseError: when the source is not valid in the supported subset
        """
        config = self._config or get_configuration()

        findings = validate_source(source)
        errors = [finding for finding in findings if finding.is_error]
        if errors:
            raise CompilationError(['Ruby validation failed:'] + [
                f'{finding.message} (line {finding.line})' if finding.line else finding.message
                for finding in errors
            ])

        ast = parse(source)
        diagnostics = TranspilerDiagnostics()
        code = SolidityCodeGenerator(config, diagnostics).generate(ast)
        code = Optimizer(config, diagnostics).optimize(code)

        warnings = [str(diagnostic) for diagnostic in diagnostics.warnings]
        warnings.extend(str(finding) for finding in validate_generated(code))

        if output_target is not None:
            path = Path(output_target)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(code, encoding='utf-8')

        return CompileResult(code=code, ast=ast, errors=[], warnings=warnings)

    def compile_file(
        self,
        input_path: Union[str, Path],
        output_path: Optional[Union[str, Path]] = None,
    ) -> CompileResult:
        """Compile a .rb file; the output defaults to the same path with a .sol suffix."""
        input_path = Path(input_path)
        if output_path is None:
            output_path = input_path.with_suffix('.sol')
        source = input_path.read_text(encoding='utf-8')
        return self.compile(source, output_path)

    def compile_many(
        self,
        paths: Iterable[Union[str, Path]],
        max_workers: Optional[int] = None,
        output_dir: Optional[Union[str, Path]] = None,
        root: Optional[Union[str, Path]] = None,
    ) -> Dict[str, Union[CompileResult, Exception]]:
        """
        Compile independent files concurrently.

        Each file is compiled with compile_file, next to its source or into
        output_dir; a failure is returned in place of its result rather than
        raised. With root, outputs keep their path relative to root inside
        output_dir. A file whose output path is already taken by an earlier
        file is not compiled and gets a CompilationError.
        """
        results: Dict[str, Union[CompileResult, Exception]] = {}
        claimed: Dict[Path, str] = {}
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {}
            for path in paths:
                target = None
                if output_dir is not None:
                    target = Path(output_dir) / self.output_name(path, root)
                    if target in claimed:
                        results[str(path)] = CompilationError(
                            f'Output {target} is already written by {claimed[target]}')
                        continue
                    claimed[target] = str(path)
                futures[executor.submit(self.compile_file, path, target)] = str(path)
            for future in as_completed(futures):
                path = futures[future]
                try:
                    results[path] = future.result()
                except Exception as e:
                    results[path] = e
        return results

    @staticmethod
    def output_name(path: Union[str, Path], root: Optional[Union[str, Path]] = None) -> Path:
        """`contracts/a/token.rb` relative to `contracts` -> `a/token.sol`."""
        path = Path(path)
        if root is not None:
            return path.relative_to(root).with_suffix('.sol')
        return Path(path.with_suffix('.sol').name)
