"""
Solidity code generator.

This is the entry point of code generation: it wires the specialized
generators around one shared CodeGenerationContext, lowers every top-level
class into a ContractSpec and renders the complete Solidity source file.
"""

from pathlib import PurePosixPath
from typing import List, Optional

from .context import CodeGenerationContext
from .contract import ContractGenerator
from .contract_spec import ContractSpec
from .diagnostics import TranspilerDiagnostics
from .expression import ExpressionGenerator
from .function import FunctionGenerator
from .statement import StatementGenerator
from ..config import Configuration, get_configuration
from ..parser.ast_nodes import ASTNode, NodeKind

LICENSE_HEADER = '// SPDX-License-Identifier: MIT'


class SolidityCodeGenerator:
    """
    Generates a Solidity source file from a Ruby PROGRAM node.

    Usage:
        generator = SolidityCodeGenerator(config)
        code = generator.generate(parse(source))
    """

    def __init__(
        self,
        config: Optional[Configuration] = None,
        diagnostics: Optional[TranspilerDiagnostics] = None,
    ):
        self._config = config or get_configuration()
        self._ctx = CodeGenerationContext(
            config=self._config,
            _diagnostics=diagnostics or TranspilerDiagnostics(),
        )
        self._expr = ExpressionGenerator(self._ctx)
        self._stmt = StatementGenerator(self._ctx, self._expr)
        self._func = FunctionGenerator(self._ctx, self._expr, self._stmt)
        self._contract = ContractGenerator(self._ctx, self._expr, self._stmt, self._func)

    @property
    def diagnostics(self) -> TranspilerDiagnostics:
        return self._ctx.diagnostics

    @property
    def context(self) -> CodeGenerationContext:
        return self._ctx

    def generate(self, ast: ASTNode) -> str:
        """Lower and render a whole program."""
        return self.render(self.build(ast), self.collect_imports(ast))

    def build(self, ast: ASTNode) -> List[ContractSpec]:
        """Lower every top-level class and module, in declaration order."""
        specs = []
        for node in ast.children:
            if node.kind in (NodeKind.CLASS, NodeKind.MODULE):
                specs.append(self._contract.build(node))
            elif node.kind != NodeKind.IMPORT:
                self.diagnostics.warn_statement_skipped(
                    node.kind.value, 'only classes, modules and requires are allowed at top level',
                    line=node.line)
        return specs

    def collect_imports(self, ast: ASTNode) -> List[str]:
        """Render `require`/`require_relative` lines as Solidity imports."""
        imports = []
        for node in ast.find_nodes(NodeKind.IMPORT):
            line = self.import_line(node.value, node.children[0].value)
            if line not in imports:
                imports.append(line)
        return imports

    @staticmethod
    def import_line(keyword: str, path: str) -> str:
        """`require_relative 'token'` -> `import "./token.sol";`"""
        pure = PurePosixPath(path)
        if pure.suffix == '.rb':
            path = str(pure.with_suffix(''))
        if not path.endswith('.sol'):
            path += '.sol'
        if keyword == 'require_relative' and not path.startswith(('./', '../', '/')):
            path = f'./{path}'
        return f'import "{path}";'

    def header(self) -> str:
        return f'{LICENSE_HEADER}\npragma solidity {self._config.solidity_version};'

    def render(self, specs: List[ContractSpec], imports: Optional[List[str]] = None) -> str:
        """
        Render the output file: header, import block, then one block per
        contract, separated by single blank lines.
        """
        self._ctx.indent_level = 0
        blocks = [self.header()]
        if imports:
            blocks.append('\n'.join(imports))
        for spec in specs:
            blocks.append('\n'.join(self._contract.render(spec)))
        return '\n\n'.join(blocks) + '\n'
