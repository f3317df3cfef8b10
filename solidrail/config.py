"""
Transpiler configuration.

The Configuration is an immutable value. A process-wide default exists for
convenience; every compile reads it exactly once so that a concurrent
configure() call can never be observed half-way through a compile.
"""

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Configuration:
    """Options that control code generation and optimization."""
    solidity_version: str = '^0.8.30'
    optimization_enabled: bool = True
    gas_optimization: bool = True
    security_checks: bool = True


_default = Configuration()


def get_configuration() -> Configuration:
    """Return the current process-wide default configuration."""
    return _default


def configure(**changes) -> Configuration:
    """Replace fields of the default configuration and return the new value.

    Example:
        configure(solidity_version='^0.8.20', gas_optimization=False)
    """
    global _default
    _default = replace(_default, **changes)
    return _default


def reset_configuration() -> Configuration:
    """Restore the built-in defaults."""
    global _default
    _default = Configuration()
    return _default
