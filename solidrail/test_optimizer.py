#!/usr/bin/env python3
"""
Unit tests for the Solidity optimizer passes.

Run with: python3 -m pytest solidrail/test_optimizer.py
   or: python3 solidrail/test_optimizer.py
"""

import sys
import os
# Add parent directory to path so the package imports when run as a script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest
from solidrail.config import Configuration
from solidrail.codegen.diagnostics import TranspilerDiagnostics
from solidrail.optimizer import (
    Optimizer,
    ReentrancyPass,
    SafeMathPass,
    StorageLayoutPass,
    has_checked_arithmetic,
    minimum_version,
    pack_declarations,
)
from solidrail.optimizer.declarations import function_spans, parse_state_variable, state_variables


UNPACKED = '''// SPDX-License-Identifier: MIT
pragma solidity ^0.8.30;

contract Packed {
    uint256 public a;
    bool public flag;
    uint256 public b;
    address public owner;

    function touch() public {
        a = 1;
    }
}
'''

LEGACY_COUNTER = '''// SPDX-License-Identifier: MIT
pragma solidity ^0.7.6;

contract Counter {
    uint256 public count;
    int256 public delta;

    function increment(uint256 step) public {
        count += step;
        delta -= 1;
        count++;
    }
}
'''

BANK = '''// SPDX-License-Identifier: MIT
pragma solidity ^0.8.30;

contract Bank {
    mapping(address => uint256) public balances;

    function withdraw(uint256 amount) public {
        require(balances[msg.sender] >= amount);
        payable(msg.sender).transfer(amount);
        balances[msg.sender] -= amount;
    }
}
'''

BANK_READS_AFTER_CALL = '''// SPDX-License-Identifier: MIT
pragma solidity ^0.8.30;

contract Bank {
    mapping(address => uint256) public balances;

    function withdrawAll() public {
        payable(msg.sender).transfer(balances[msg.sender]);
        balances[msg.sender] = 0;
    }
}
'''

BANK_EARLY_RETURN = '''// SPDX-License-Identifier: MIT
pragma solidity ^0.8.30;

contract Bank {
    mapping(address => uint256) public balances;

    function pay(address to, uint256 amount, bool flag) public {
        payable(to).transfer(amount);
        if (flag) {
            return;
        }
        balances[to] = 0;
    }
}
'''

BANK_NESTED_UPDATE = '''// SPDX-License-Identifier: MIT
pragma solidity ^0.8.30;

contract Bank {
    mapping(address => uint256) public balances;

    function pay(address to, uint256 amount, bool flag) public {
        payable(to).transfer(amount);
        if (flag) {
            balances[to] = 0;
        }
    }
}
'''


def state_names(code):
    return [parse_state_variable(line).name for line in code.split('\n') if parse_state_variable(line)]


class TestDeclarations(unittest.TestCase):
    """Test recognition of rendered declarations."""

    def test_state_variable_line(self):
        declaration = parse_state_variable('    uint256 public constant FEE = 5;', 3)
        self.assertEqual((declaration.index, declaration.name, declaration.type_text), (3, 'FEE', 'uint256'))
        self.assertTrue(declaration.constant)

    def test_mapping_type_text(self):
        found = state_variables(BANK.split('\n'))
        self.assertEqual(found, {'balances': 'mapping(address => uint256)'})

    def test_locals_are_not_state_variables(self):
        self.assertIsNone(parse_state_variable('        uint256 total = 0;'))

    def test_function_spans(self):
        lines = BANK.split('\n')
        spans = list(function_spans(lines))
        self.assertEqual(len(spans), 1)
        name, header, closing = spans[0]
        self.assertEqual(name, 'withdraw')
        self.assertEqual(lines[closing], '    }')


class TestStorageLayout(unittest.TestCase):
    """Test state variable packing."""

    def test_narrow_types_share_a_slot(self):
        output = StorageLayoutPass().apply(UNPACKED)
        self.assertEqual(state_names(output), ['a', 'b', 'owner', 'flag'])
        self.assertIn('        a = 1;', output)

    def test_packing_is_idempotent(self):
        once = StorageLayoutPass().apply(UNPACKED)
        self.assertEqual(StorageLayoutPass().apply(once), once)

    def test_constants_stay_first(self):
        code = ('contract C {\n    bool public flag;\n    uint256 public constant FEE = 5;\n'
                '    uint256 public a;\n}\n')
        self.assertEqual(state_names(StorageLayoutPass().apply(code)), ['FEE', 'a', 'flag'])

    def test_enum_is_one_byte(self):
        code = ('contract C {\n    enum Status { Open, Closed }\n\n    Status public status;\n'
                '    uint256 public a;\n    address public owner;\n}\n')
        self.assertEqual(state_names(StorageLayoutPass().apply(code)), ['a', 'owner', 'status'])

    def test_pack_declarations_keeps_equal_widths_in_order(self):
        lines = ['    uint256 public x;', '    uint256 public y;', '    uint256 public z;']
        declarations = [parse_state_variable(line, index) for index, line in enumerate(lines)]
        self.assertEqual([d.name for d in pack_declarations(declarations)], ['x', 'y', 'z'])


class TestSafeMath(unittest.TestCase):
    """Test arithmetic rewriting for pre-0.8 compilers."""

    def test_minimum_version(self):
        self.assertEqual(minimum_version(LEGACY_COUNTER), (0, 7))
        self.assertFalse(has_checked_arithmetic(LEGACY_COUNTER))
        self.assertTrue(has_checked_arithmetic(UNPACKED))
        self.assertTrue(has_checked_arithmetic('contract C {\n}\n'))

    def test_unsigned_state_arithmetic_rewritten(self):
        output = SafeMathPass().apply(LEGACY_COUNTER)
        self.assertIn('        count = count.add(step);', output)
        self.assertIn('        count = count.add(1);', output)
        # Signed values are left alone
        self.assertIn('        delta -= 1;', output)

    def test_library_imported_and_attached(self):
        output = SafeMathPass().apply(LEGACY_COUNTER)
        lines = output.split('\n')
        self.assertEqual(lines[2:5], ['', 'import "@openzeppelin/contracts/utils/math/SafeMath.sol";', ''])
        header = lines.index('contract Counter {')
        self.assertEqual(lines[header + 1], '    using SafeMath for uint256;')
        self.assertEqual(lines[header + 2], '')

    def test_rewrite_is_idempotent(self):
        once = SafeMathPass().apply(LEGACY_COUNTER)
        self.assertEqual(SafeMathPass().apply(once), once)

    def test_checked_compiler_unchanged(self):
        code = LEGACY_COUNTER.replace('^0.7.6', '^0.8.30')
        self.assertEqual(SafeMathPass().apply(code), code)

    def test_reports_rewrite(self):
        diagnostics = TranspilerDiagnostics()
        SafeMathPass(diagnostics).apply(LEGACY_COUNTER)
        self.assertEqual([d.code for d in diagnostics.diagnostics], ['I002'])


class TestReentrancy(unittest.TestCase):
    """Test checks-effects-interactions ordering."""

    def test_mapping_update_moves_before_transfer(self):
        diagnostics = TranspilerDiagnostics()
        output = ReentrancyPass(diagnostics).apply(BANK)
        self.assertLess(output.index('balances[msg.sender] -= amount;'),
                        output.index('payable(msg.sender).transfer(amount);'))
        self.assertLess(output.index('require(balances[msg.sender] >= amount);'),
                        output.index('balances[msg.sender] -= amount;'))
        self.assertEqual([d.code for d in diagnostics.diagnostics], ['I001'])

    def test_reordering_is_idempotent(self):
        once = ReentrancyPass().apply(BANK)
        self.assertEqual(ReentrancyPass().apply(once), once)

    def test_dependent_update_is_reported_not_moved(self):
        diagnostics = TranspilerDiagnostics()
        output = ReentrancyPass(diagnostics).apply(BANK_READS_AFTER_CALL)
        self.assertEqual(output, BANK_READS_AFTER_CALL)
        self.assertEqual([d.code for d in diagnostics.warnings], ['W003'])
        self.assertIn('withdrawAll', diagnostics.warnings[0].message)

    def test_update_after_early_return_is_not_moved(self):
        diagnostics = TranspilerDiagnostics()
        output = ReentrancyPass(diagnostics).apply(BANK_EARLY_RETURN)
        self.assertEqual(output, BANK_EARLY_RETURN)
        self.assertEqual([d.code for d in diagnostics.diagnostics], ['W003'])
        self.assertIn('can return before balances', diagnostics.warnings[0].message)

    def test_revert_and_break_block_reordering(self):
        for exit_line in ('revert("closed");', 'break;', 'continue;'):
            code = BANK_EARLY_RETURN.replace('return;', exit_line)
            self.assertEqual(ReentrancyPass().apply(code), code, exit_line)

    def test_exit_words_inside_strings_do_not_block(self):
        code = BANK.replace('payable(msg.sender).transfer(amount);',
                            'payable(msg.sender).transfer(amount);\n        emit Paid("no return");')
        output = ReentrancyPass().apply(code)
        self.assertLess(output.index('balances[msg.sender] -= amount;'),
                        output.index('payable(msg.sender).transfer(amount);'))

    def test_nested_update_after_call_is_reported(self):
        diagnostics = TranspilerDiagnostics()
        output = ReentrancyPass(diagnostics).apply(BANK_NESTED_UPDATE)
        self.assertEqual(output, BANK_NESTED_UPDATE)
        self.assertEqual([d.code for d in diagnostics.warnings], ['W003'])
        self.assertIn('balances is inside a conditional or loop', diagnostics.warnings[0].message)

    def test_no_mappings_no_change(self):
        self.assertEqual(ReentrancyPass().apply(UNPACKED), UNPACKED)


class TestOptimizer(unittest.TestCase):
    """Test pass selection from the configuration."""

    def test_all_passes_by_default(self):
        names = [p.name for p in Optimizer(Configuration()).passes()]
        self.assertEqual(names, ['layout', 'arithmetic', 'reentrancy'])

    def test_disabled_optimizer_runs_nothing(self):
        optimizer = Optimizer(Configuration(optimization_enabled=False))
        self.assertEqual(optimizer.passes(), [])
        self.assertEqual(optimizer.optimize(UNPACKED), UNPACKED)

    def test_gas_and_security_flags(self):
        names = [p.name for p in Optimizer(Configuration(gas_optimization=False)).passes()]
        self.assertEqual(names, ['arithmetic', 'reentrancy'])
        names = [p.name for p in Optimizer(Configuration(security_checks=False)).passes()]
        self.assertEqual(names, ['layout'])

    def test_optimize_is_idempotent(self):
        optimizer = Optimizer(Configuration())
        once = optimizer.optimize(BANK)
        self.assertEqual(optimizer.optimize(once), once)


if __name__ == '__main__':
    unittest.main(verbosity=2)
