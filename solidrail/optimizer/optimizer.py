"""
Optimizer for generated Solidity.

Runs the rewrite passes in a fixed order over rendered source. Every pass
is idempotent and is skipped when its configuration flag is off; nothing
runs when optimization is disabled.
"""

from typing import List, Optional

from .arithmetic import SafeMathPass
from .layout import StorageLayoutPass
from .reentrancy import ReentrancyPass
from ..codegen.diagnostics import TranspilerDiagnostics
from ..config import Configuration, get_configuration


class Optimizer:
    """
    Applies the enabled passes to generated Solidity.

    Usage:
        optimizer = Optimizer(config, diagnostics)
        code = optimizer.optimize(code)
    """

    def __init__(
        self,
        config: Optional[Configuration] = None,
        diagnostics: Optional[TranspilerDiagnostics] = None,
    ):
        self._config = config or get_configuration()
        self._diagnostics = diagnostics or TranspilerDiagnostics()

    @property
    def diagnostics(self) -> TranspilerDiagnostics:
        return self._diagnostics

    def passes(self) -> List:
        """The passes enabled by the configuration, in application order."""
        config = self._config
        if not config.optimization_enabled:
            return []
        passes = []
        if config.gas_optimization:
            passes.append(StorageLayoutPass())
        if config.security_checks:
            passes.append(SafeMathPass(self._diagnostics))
            passes.append(ReentrancyPass(self._diagnostics))
        return passes

    def optimize(self, code: str) -> str:
        for optimization in self.passes():
            code = optimization.apply(code)
        return code
