#!/usr/bin/env python3
"""
Unit tests for type mapping and Solidity code generation.

Run with: python3 -m pytest solidrail/test_codegen.py
   or: python3 solidrail/test_codegen.py
"""

import sys
import os
# Add parent directory to path so the package imports when run as a script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest
from solidrail.config import Configuration
from solidrail.errors import CompilationError
from solidrail.parser import NodeKind, parse
from solidrail.codegen import (
    CodeGenerationContext,
    ExpressionGenerator,
    FieldAnalyzer,
    SolidityCodeGenerator,
    StatementGenerator,
)
from solidrail.type_system import (
    ADDRESS, BOOL, DEFAULT_ARRAY, INT256, STRING, UINT256,
    infer_name_type, map_mutability, map_type, map_visibility, safe_identifier,
    storage_width_of, to_camel_case, zero_value,
)


TOKEN_SOURCE = '''
class Token < ERC20
  def initialize(name, symbol)
    @name = name
    @symbol = symbol
    @total_supply = 1_000_000
    @balances = {}
    @allowances = {}
  end

  def transfer(to, amount)
    require(balance_of(msg.sender) >= amount, 'Insufficient balance')
    @balances[msg.sender] -= amount
    @balances[to] += amount
    emit Transfer(msg.sender, to, amount)
    true
  end

  def balance_of(owner)
    @balances[owner] || 0
  end

  def approve(spender, amount)
    @allowances[msg.sender][spender] = amount
    true
  end
end
'''


def generate(source, **config):
    generator = SolidityCodeGenerator(Configuration(**config))
    return generator.generate(parse(source))


class TestTypeMapping(unittest.TestCase):
    """Test Ruby value and type name mapping."""

    def test_ruby_type_names(self):
        self.assertEqual(map_type('Integer'), UINT256)
        self.assertEqual(map_type('String'), STRING)
        self.assertEqual(map_type('Array'), DEFAULT_ARRAY)
        self.assertIsNone(map_type('Float'))
        self.assertIsNone(map_type('NilClass'))

    def test_python_values(self):
        self.assertEqual(map_type(5), UINT256)
        self.assertEqual(map_type(-1), INT256)
        self.assertEqual(map_type(True), BOOL)
        self.assertEqual(map_type('hello'), STRING)
        self.assertIsNone(map_type(None))
        self.assertIsNone(map_type(1.5))

    def test_collections(self):
        self.assertEqual(map_type([]).render(), 'uint256[]')
        self.assertEqual(map_type([True]).render(), 'bool[]')
        self.assertEqual(map_type({}).render(), 'mapping(address => uint256)')
        self.assertEqual(map_type({'a': 1}).render(), 'mapping(string => uint256)')

    def test_symbol_maps_to_enum_member_type(self):
        node = parse('class A\n  def x\n    :open\n  end\nend\n').find_nodes(NodeKind.SYMBOL)[0]
        self.assertEqual(map_type(node, {'Status': ['open', 'closed']}).render(), 'Status')
        self.assertEqual(map_type(node), STRING)

    def test_visibility(self):
        self.assertEqual(map_visibility(None), 'public')
        self.assertEqual(map_visibility('private'), 'private')
        self.assertEqual(map_visibility('protected'), 'internal')

    def test_mutability_precedence(self):
        self.assertEqual(map_mutability(['view', 'pure']), 'pure')
        self.assertEqual(map_mutability(['payable']), 'payable')
        self.assertEqual(map_mutability([]), '')

    def test_name_lexicon(self):
        self.assertEqual(infer_name_type('owner'), ADDRESS)
        self.assertEqual(infer_name_type('token_name'), STRING)
        self.assertEqual(infer_name_type('is_open'), BOOL)
        self.assertEqual(infer_name_type('amount'), UINT256)

    def test_zero_values(self):
        self.assertEqual(zero_value(ADDRESS), 'address(0)')
        self.assertEqual(zero_value(UINT256), '0')
        self.assertIsNone(zero_value(DEFAULT_ARRAY))

    def test_storage_widths(self):
        self.assertEqual(storage_width_of('bool'), 1)
        self.assertEqual(storage_width_of('address'), 20)
        self.assertEqual(storage_width_of('uint8'), 1)
        self.assertEqual(storage_width_of('uint256[]'), 32)
        self.assertEqual(storage_width_of('Status', ['Status']), 1)
        self.assertEqual(storage_width_of('IERC20'), 20)


class TestNaming(unittest.TestCase):
    """Test method and identifier naming."""

    def test_camel_case(self):
        self.assertEqual(to_camel_case('balance_of'), 'balanceOf')
        self.assertEqual(to_camel_case('transfer'), 'transfer')
        self.assertEqual(to_camel_case('_internal_helper'), '_internalHelper')

    def test_predicate_bang_and_setter_names(self):
        self.assertEqual(to_camel_case('paused?'), 'isPaused')
        self.assertEqual(to_camel_case('is_active?'), 'isActive')
        self.assertEqual(to_camel_case('burn!'), 'burn')
        self.assertEqual(to_camel_case('owner='), 'setOwner')

    def test_reserved_words(self):
        self.assertEqual(safe_identifier('address'), 'address_')
        self.assertEqual(safe_identifier('balance'), 'balance')


class TestTokenGeneration(unittest.TestCase):
    """Test the complete lowering of an ERC20-style token."""

    @classmethod
    def setUpClass(cls):
        cls.output = generate(TOKEN_SOURCE)

    def test_file_header(self):
        lines = self.output.split('\n')
        self.assertEqual(lines[0], '// SPDX-License-Identifier: MIT')
        self.assertEqual(lines[1], 'pragma solidity ^0.8.30;')
        self.assertTrue(self.output.endswith('}\n'))

    def test_contract_header(self):
        self.assertIn('contract Token is ERC20 {', self.output)

    def test_state_variables(self):
        self.assertIn('    string public name;', self.output)
        self.assertIn('    string public symbol;', self.output)
        self.assertIn('    uint256 public total_supply = 1000000;', self.output)
        self.assertIn('    mapping(address => uint256) public balances;', self.output)
        self.assertIn('    mapping(address => mapping(address => uint256)) public allowances;', self.output)

    def test_constructor(self):
        self.assertIn('    constructor(string memory _name, string memory _symbol) {', self.output)
        self.assertIn('        name = _name;', self.output)
        self.assertIn('        symbol = _symbol;', self.output)
        # Literal and empty collection initializers move out of the constructor
        self.assertEqual(self.output.count('total_supply'), 1)
        self.assertNotIn('balances = ', self.output)

    def test_functions(self):
        self.assertIn('    function transfer(address to, uint256 amount) public returns (bool) {', self.output)
        self.assertIn('    function balanceOf(address owner) public returns (uint256) {', self.output)
        self.assertIn('    function approve(address spender, uint256 amount) public returns (bool) {', self.output)
        self.assertIn('        return balances[owner];', self.output)
        self.assertIn('        return true;', self.output)

    def test_function_bodies(self):
        self.assertIn('        require(balanceOf(msg.sender) >= amount, "Insufficient balance");', self.output)
        self.assertIn('        balances[msg.sender] -= amount;', self.output)
        self.assertIn('        balances[to] += amount;', self.output)
        self.assertIn('        allowances[msg.sender][spender] = amount;', self.output)

    def test_event_declared_and_emitted(self):
        self.assertIn('    event Transfer(address sender, address to, uint256 amount);', self.output)
        self.assertIn('        emit Transfer(msg.sender, to, amount);', self.output)

    def test_functions_keep_declaration_order(self):
        self.assertLess(self.output.index('function transfer'), self.output.index('function balanceOf'))
        self.assertLess(self.output.index('function balanceOf'), self.output.index('function approve'))

    def test_sections_in_order(self):
        event = self.output.index('event Transfer')
        state = self.output.index('string public name')
        constructor = self.output.index('constructor(')
        self.assertLess(event, state)
        self.assertLess(state, constructor)


class TestStateVariables(unittest.TestCase):
    """Test field discovery, typing and visibility."""

    def test_underscore_field_is_private(self):
        output = generate('class Vault\n  def initialize\n    @_secret = 42\n    @owner = msg.sender\n  end\nend\n')
        self.assertIn('    uint256 private _secret = 42;', output)
        self.assertIn('    address public owner;', output)
        self.assertIn('        owner = msg.sender;', output)

    def test_attr_reader_limits_public_fields(self):
        source = '''
class Settings
  attr_reader :owner

  def initialize
    @owner = msg.sender
    @fee = 10
  end
end
'''
        output = generate(source)
        self.assertIn('    address public owner;', output)
        self.assertIn('    uint256 internal fee = 10;', output)

    def test_attr_accessor_generates_setter(self):
        source = '''
class Settings
  attr_accessor :fee

  def initialize
    @fee = 10
  end
end
'''
        output = generate(source)
        self.assertIn('    uint256 public fee = 10;', output)
        self.assertIn('    function setFee(uint256 _fee) public {', output)
        self.assertIn('        fee = _fee;', output)

    def test_never_assigned_field_warns(self):
        source = 'class Reader\n  def initialize\n  end\n\n  def value\n    @stored\n  end\nend\n'
        generator = SolidityCodeGenerator(Configuration())
        output = generator.generate(parse(source))
        self.assertIn('    uint256 public stored;', output)
        self.assertIn('W001', [d.code for d in generator.diagnostics.warnings])

    def test_nil_initializer_fails(self):
        with self.assertRaises(CompilationError) as caught:
            generate('class A\n  def initialize\n    @owner = nil\n  end\nend\n')
        self.assertIn('nil', str(caught.exception))

    def test_float_initializer_fails(self):
        with self.assertRaises(CompilationError):
            generate('class A\n  def initialize\n    @rate = 1.5\n  end\nend\n')

    def test_constant_declaration(self):
        output = generate('class A\n  FEE = 5\n\n  def initialize\n  end\nend\n')
        self.assertIn('    uint256 public constant FEE = 5;', output)

    def test_field_analyzer_discovers_mapping_depth(self):
        ast = parse(TOKEN_SOURCE)
        usages = FieldAnalyzer().analyze(ast.find_nodes(NodeKind.METHOD_DEF))
        self.assertEqual(list(usages)[:5], ['name', 'symbol', 'total_supply', 'balances', 'allowances'])
        self.assertTrue(usages['allowances'].is_mapping)
        self.assertEqual(usages['allowances'].index_depth, 2)
        self.assertFalse(usages['name'].is_array)


class TestEnums(unittest.TestCase):
    """Test symbol arrays declared as enums."""

    SOURCE = '''
class Auction
  Status = [:open, :closed]

  def initialize
    @status = :open
  end

  def close
    @status = :closed
  end
end
'''

    def test_enum_declaration_and_members(self):
        output = generate(self.SOURCE)
        self.assertIn('    enum Status { Open, Closed }', output)
        self.assertIn('    Status public status = Status.Open;', output)
        self.assertIn('        status = Status.Closed;', output)


class TestLoops(unittest.TestCase):
    """Test loop lowering."""

    SOURCE = '''
class Airdrop
  def initialize
    @recipients = []
    @total = 0
  end

  def distribute(amount)
    @recipients.each do |recipient|
      @balances[recipient] += amount
      @total += @recipients.length
    end
  end
end
'''

    def test_each_reads_length_once(self):
        output = generate(self.SOURCE)
        self.assertIn('    address[] public recipients;', output)
        self.assertIn('        uint256 recipientsLength = recipients.length;', output)
        self.assertIn('        for (uint256 i = 0; i < recipientsLength; i++) {', output)
        self.assertIn('            address recipient = recipients[i];', output)
        self.assertIn('            total += recipientsLength;', output)
        self.assertEqual(output.count('recipients.length'), 1)

    def test_times_loop(self):
        source = 'class A\n  def initialize\n    @count = 0\n  end\n\n  def bump(n)\n    n.times do\n      @count += 1\n    end\n  end\nend\n'
        output = generate(source)
        self.assertIn('        for (uint256 i = 0; i < n; i++) {', output)
        self.assertIn('            count += 1;', output)


class TestInheritanceAndImports(unittest.TestCase):
    """Test parents, mixins, modules and requires."""

    def test_super_in_initialize_calls_base_constructor(self):
        source = '''
class MyToken < Token
  def initialize(name, symbol)
    super(name, symbol)
  end
end
'''
        output = generate(source)
        self.assertIn('contract MyToken is Token {', output)
        self.assertIn('    constructor(string memory name, string memory symbol) Token(name, symbol) {', output)

    def test_include_adds_parent(self):
        output = generate('class Vault < Base\n  include Ownable\n\n  def initialize\n  end\nend\n')
        self.assertIn('contract Vault is Base, Ownable {', output)

    def test_module_is_abstract(self):
        output = generate('module Pausable\n  def pause\n    @paused = true\n  end\nend\n')
        self.assertIn('abstract contract Pausable {', output)
        self.assertIn('    bool public paused;', output)

    def test_requires_become_imports(self):
        output = generate("require_relative 'ownable'\n\nclass A\n  def initialize\n  end\nend\n")
        self.assertIn('import "./ownable.sol";', output)

    def test_repeated_requires_import_once(self):
        output = generate("require 'ownable'\nrequire 'ownable.sol'\n\nclass A\n  def initialize\n  end\nend\n")
        self.assertEqual(output.count('import "ownable.sol";'), 1)

    def test_events_follow_first_emit_including_nested(self):
        output = generate('''
class Vault
  def initialize
    @total = 0
  end

  def deposit(amount)
    if amount > 0
      emit Deposit(msg.sender, amount)
    end
    emit Logged(amount)
  end
end
''')
        self.assertLess(output.index('event Deposit('), output.index('event Logged('))

    def test_import_line(self):
        self.assertEqual(SolidityCodeGenerator.import_line('require', 'openzeppelin/ERC20.sol'),
                         'import "openzeppelin/ERC20.sol";')
        self.assertEqual(SolidityCodeGenerator.import_line('require_relative', '../lib/token.rb'),
                         'import "../lib/token.sol";')


class TestExpressions(unittest.TestCase):
    """Test expression translation."""

    def test_string_comparison_uses_hashes(self):
        source = '''
class Named
  def initialize(name)
    @name = name
  end

  def same?(other_name)
    @name == other_name
  end
end
'''
        output = generate(source)
        self.assertIn('    function isSame(string memory other_name) public returns (bool) {', output)
        self.assertIn('        return keccak256(bytes(name)) == keccak256(bytes(other_name));', output)

    def test_interpolation_fails(self):
        source = 'class A\n  def initialize\n  end\n\n  def greet(who)\n    require(false, "hi #{who}")\n  end\nend\n'
        with self.assertRaises(CompilationError):
            generate(source)


class TestDispatchTables(unittest.TestCase):
    """Every node kind has a handler in both generators."""

    def test_expression_generator_is_exhaustive(self):
        ctx = CodeGenerationContext()
        self.assertEqual(ExpressionGenerator(ctx).handled_kinds, frozenset(NodeKind))

    def test_statement_generator_is_exhaustive(self):
        ctx = CodeGenerationContext()
        self.assertEqual(StatementGenerator(ctx, ExpressionGenerator(ctx)).handled_kinds, frozenset(NodeKind))


class TestDiagnostics(unittest.TestCase):
    """Test the diagnostics/warning system."""

    def test_diagnostics_collect_warnings(self):
        from solidrail.codegen.diagnostics import TranspilerDiagnostics
        diag = TranspilerDiagnostics()
        diag.warn_undeclared_field('balances', 'uint256', line=10)
        diag.warn_statement_skipped('puts', 'console output', line=20)

        self.assertEqual(diag.count, 2)
        self.assertEqual(len(diag.warnings), 2)

    def test_diagnostics_summary(self):
        from solidrail.codegen.diagnostics import TranspilerDiagnostics
        diag = TranspilerDiagnostics()
        diag.warn_undeclared_field('a', 'uint256')
        diag.warn_reentrancy('withdraw', 'the external call reads balances')

        summary = diag.get_summary()
        self.assertIn('state variable', summary)
        self.assertIn('reentrancy', summary)

    def test_diagnostics_clear(self):
        from solidrail.codegen.diagnostics import TranspilerDiagnostics
        diag = TranspilerDiagnostics()
        diag.warn_unsupported_construct('super')
        self.assertEqual(diag.count, 1)
        diag.clear()
        self.assertEqual(diag.count, 0)

    def test_diagnostics_no_warnings(self):
        from solidrail.codegen.diagnostics import TranspilerDiagnostics
        diag = TranspilerDiagnostics()
        self.assertIn('No transpiler warnings', diag.get_summary())

    def test_print_summary(self):
        import io
        from solidrail.codegen.diagnostics import TranspilerDiagnostics
        diag = TranspilerDiagnostics(verbose=True, file_path='token.rb')
        diag.warn_undeclared_field('fee', 'uint256', line=4)
        diag.info_safe_math()
        out = io.StringIO()
        diag.print_summary(out)
        text = out.getvalue()
        self.assertIn('solidrail warnings (1):', text)
        self.assertIn('[warning] token.rb:4:', text)
        self.assertIn('solidrail notes (1):', text)

    def test_diagnostics_severity_levels(self):
        from solidrail.codegen.diagnostics import TranspilerDiagnostics, DiagnosticSeverity
        diag = TranspilerDiagnostics()
        diag.warn_statement_skipped('puts')
        diag.info_reordered('withdraw')

        warnings = [d for d in diag.diagnostics if d.severity == DiagnosticSeverity.WARNING]
        infos = [d for d in diag.diagnostics if d.severity == DiagnosticSeverity.INFO]
        self.assertEqual(len(warnings), 1)
        self.assertEqual(len(infos), 1)

    def test_console_output_is_skipped_with_warning(self):
        source = "class A\n  def initialize\n  end\n\n  def log\n    puts 'hello'\n  end\nend\n"
        generator = SolidityCodeGenerator(Configuration())
        output = generator.generate(parse(source))
        self.assertNotIn('hello', output)
        self.assertIn('W002', [d.code for d in generator.diagnostics.warnings])


if __name__ == '__main__':
    unittest.main(verbosity=2)
