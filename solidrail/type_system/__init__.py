"""
Types module for the Ruby to Solidity transpiler.

This module provides the static type model and type mapping utilities.
"""

from .mappings import (
    StaticType,
    UINT256,
    INT256,
    STRING,
    ADDRESS,
    BOOL,
    DEFAULT_ARRAY,
    DEFAULT_MAPPING,
    array_of,
    mapping_of,
    enum_type,
    map_type,
    map_visibility,
    map_mutability,
    infer_name_type,
    zero_value,
    storage_width_of,
    to_camel_case,
    safe_identifier,
    RUBY_TO_SOLIDITY_MAP,
    SOLIDITY_RESERVED,
)

__all__ = [
    'StaticType',
    'UINT256',
    'INT256',
    'STRING',
    'ADDRESS',
    'BOOL',
    'DEFAULT_ARRAY',
    'DEFAULT_MAPPING',
    'array_of',
    'mapping_of',
    'enum_type',
    'map_type',
    'map_visibility',
    'map_mutability',
    'infer_name_type',
    'zero_value',
    'storage_width_of',
    'to_camel_case',
    'safe_identifier',
    'RUBY_TO_SOLIDITY_MAP',
    'SOLIDITY_RESERVED',
]
