"""
Optimizer module for the Ruby to Solidity transpiler.

Semantics-preserving rewrites of generated Solidity: storage packing,
SafeMath for pre-0.8 compilers and checks-effects-interactions ordering.
"""

from .optimizer import Optimizer
from .layout import StorageLayoutPass, pack_declarations
from .arithmetic import SafeMathPass, has_checked_arithmetic, minimum_version
from .reentrancy import ReentrancyPass

__all__ = [
    'Optimizer',
    'StorageLayoutPass',
    'pack_declarations',
    'SafeMathPass',
    'has_checked_arithmetic',
    'minimum_version',
    'ReentrancyPass',
]
