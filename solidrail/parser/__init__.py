"""
Parser module for the Ruby to Solidity transpiler.

This module provides AST node definitions and the parser implementation.
"""

from .ast_nodes import (
    ASTNode,
    NodeKind,
    LEAF_KINDS,
    class_name,
    class_parent,
    class_body,
    method_name,
    method_params,
    method_body,
    method_markers,
    param_name,
    param_default,
    call_receiver,
    call_args,
    call_block,
    conditional_branches,
    loop_parts,
)
from .parser import Parser, parse

__all__ = [
    # Nodes
    'ASTNode',
    'NodeKind',
    'LEAF_KINDS',
    # Shape accessors
    'class_name',
    'class_parent',
    'class_body',
    'method_name',
    'method_params',
    'method_body',
    'method_markers',
    'param_name',
    'param_default',
    'call_receiver',
    'call_args',
    'call_block',
    'conditional_branches',
    'loop_parts',
    # Parser
    'Parser',
    'parse',
]
