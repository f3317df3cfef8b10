#!/usr/bin/env python3
"""
Unit tests for validation, the compiler pipeline, configuration and the CLI.

Run with: python3 -m pytest solidrail/test_compiler.py
   or: python3 solidrail/test_compiler.py
"""

import sys
import os
# Add parent directory to path so the package imports when run as a script
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import dataclasses
import io
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

from solidrail import __version__
from solidrail.cli import main
from solidrail.compiler import CompileResult, Compiler
from solidrail.config import Configuration, configure, get_configuration, reset_configuration
from solidrail.errors import CompilationError, ParseError, SolidRailError, ValidationError
from solidrail.validator import raise_for_findings, validate_generated, validate_source


TOKEN_SOURCE = '''
class Token < ERC20
  def initialize(name, symbol)
    @name = name
    @symbol = symbol
    @total_supply = 1_000_000
    @balances = {}
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
end
'''

COUNTER_SOURCE = '''
class Counter
  def initialize
    @count = 0
  end

  def increment
    @count += 1
  end
end
'''

NO_INITIALIZE_SOURCE = '''
class Broken
  def run
    1
  end
end
'''


def codes(findings):
    return [finding.code for finding in findings]


class TestSourceValidation(unittest.TestCase):
    """Test checks on Ruby input."""

    def test_valid_contract_has_no_findings(self):
        self.assertEqual(validate_source(TOKEN_SOURCE), [])

    def test_missing_class(self):
        self.assertEqual(codes(validate_source('def initialize\nend\n')), ['E001'])

    def test_missing_initialize(self):
        findings = validate_source(NO_INITIALIZE_SOURCE)
        self.assertEqual(codes(findings), ['E002'])
        self.assertEqual(findings[0].message, 'Contract should have an initialize method')

    def test_eval_rejected_with_line(self):
        source = "class A\n  def initialize\n    eval('1 + 1')\n  end\nend\n"
        findings = validate_source(source)
        self.assertEqual(codes(findings), ['E003'])
        self.assertEqual(findings[0].message, 'Use of eval is not allowed in smart contracts')
        self.assertEqual(findings[0].line, 3)

    def test_instance_eval_rejected(self):
        source = "class A\n  def initialize\n    instance_eval('x')\n  end\nend\n"
        self.assertEqual(validate_source(source)[0].message,
                         'Use of instance_eval is not allowed in smart contracts')

    def test_system_calls_rejected(self):
        for call in ("system('ls')", '`ls`', "IO.popen('ls')", "Process.spawn('ls')", 'fork'):
            source = f'class A\n  def initialize\n    {call}\n  end\nend\n'
            self.assertEqual(set(codes(validate_source(source))), {'E004'}, call)

    def test_kernel_receiver_and_symbols_rejected(self):
        for call in ('Kernel.system("ls")', "Kernel.exec('ls')", "Kernel.send(:system, 'ls')",
                     "method(:exec).call('ls')"):
            source = f'class A\n  def initialize\n    {call}\n  end\nend\n'
            findings = validate_source(source)
            self.assertEqual(codes(findings), ['E004'], call)
            self.assertEqual(findings[0].line, 3)

    def test_interpolated_code_is_scanned(self):
        source = 'class A\n  def initialize\n    @name = "#{system(\'ls\')}"\n  end\nend\n'
        self.assertEqual(codes(validate_source(source)), ['E004'])
        source = 'class A\n  def initialize\n    @name = "#{eval("1")}"\n  end\nend\n'
        self.assertEqual(codes(validate_source(source)), ['E003'])

    def test_interpolated_system_fails_compile(self):
        source = 'class A\n  def initialize\n    @name = "run #{system(\'ls\')}"\n  end\nend\n'
        with self.assertRaises(CompilationError) as caught:
            Compiler().compile(source)
        self.assertIn('System calls are not allowed in smart contracts (line 3)', caught.exception.messages)

    def test_plain_double_quoted_text_is_not_scanned(self):
        source = 'class A\n  def initialize\n    require(true, "system #{1} paused")\n  end\nend\n'
        self.assertEqual(validate_source(source), [])

    def test_strings_and_comments_are_not_scanned(self):
        source = ("class A\n  # never eval input\n  def initialize\n"
                  "    require(true, 'system paused')\n  end\nend\n")
        self.assertEqual(validate_source(source), [])

    def test_similar_names_are_allowed(self):
        source = 'class A\n  def initialize\n    @system_fee = 1\n    @runner.exec\n  end\nend\n'
        self.assertEqual(validate_source(source), [])


class TestGeneratedValidation(unittest.TestCase):
    """Test checks on generated Solidity."""

    VALID = 'pragma solidity ^0.8.30;\n\ncontract A {\n}\n'

    def test_valid_output(self):
        self.assertEqual(validate_generated(self.VALID), [])

    def test_missing_pragma_and_contract(self):
        self.assertEqual(codes(validate_generated('contract A {\n}\n')), ['E101'])
        self.assertEqual(codes(validate_generated('pragma solidity ^0.8.30;\n')), ['E102'])

    def test_risky_globals_are_warnings(self):
        code = self.VALID.replace('}\n', '    address a = tx.origin;\n    uint256 t = block.timestamp;\n}\n')
        findings = validate_generated(code)
        self.assertEqual(codes(findings), ['W101', 'W102'])
        self.assertFalse(any(finding.is_error for finding in findings))
        self.assertEqual(findings[0].line, 4)

    def test_raise_for_findings(self):
        raise_for_findings(validate_generated(self.VALID.replace('}\n', '    address a = tx.origin;\n}\n')))
        with self.assertRaises(ValidationError) as caught:
            raise_for_findings(validate_generated('contract A {\n}\n'))
        self.assertEqual(len(caught.exception.findings), 1)


class TestCompiler(unittest.TestCase):
    """Test the end-to-end pipeline."""

    def test_compile_token(self):
        result = Compiler().compile(TOKEN_SOURCE)
        self.assertIsInstance(result, CompileResult)
        self.assertIn('contract Token is ERC20 {', result.code)
        self.assertEqual(result['code'], result.code)
        self.assertEqual(result.errors, [])
        self.assertEqual(result.warnings, [])
        self.assertEqual(result.ast.kind.value, 'program')

    def test_result_rejects_unknown_keys(self):
        result = Compiler().compile(TOKEN_SOURCE)
        with self.assertRaises(KeyError):
            result['bytecode']

    def test_validation_failure_stops_before_parsing(self):
        # The source is also syntactically broken; validation reports first
        with self.assertRaises(CompilationError) as caught:
            Compiler().compile('class Broken\n  def run(\nend\n')
        self.assertEqual(caught.exception.messages[0], 'Ruby validation failed:')
        self.assertIn('Contract should have an initialize method', caught.exception.messages)

    def test_validation_messages_carry_lines(self):
        source = "class A\n  def initialize\n    eval('x')\n  end\nend\n"
        with self.assertRaises(CompilationError) as caught:
            Compiler().compile(source)
        self.assertIn('Use of eval is not allowed in smart contracts (line 3)', caught.exception.messages)

    def test_parse_errors_propagate(self):
        source = 'class A\n  def initialize\n    begin\n    end\n  end\nend\n'
        with self.assertRaises(ParseError):
            Compiler().compile(source)

    def test_output_validation_warnings(self):
        source = 'class Guard\n  def initialize\n    @owner = tx.origin\n  end\nend\n'
        result = Compiler().compile(source)
        self.assertIn('        owner = tx.origin;', result.code)
        self.assertTrue(any('tx.origin' in warning for warning in result.warnings))
        self.assertEqual(result.errors, [])

    def test_configured_version_and_safe_math(self):
        result = Compiler(Configuration(solidity_version='^0.7.6')).compile(COUNTER_SOURCE)
        self.assertIn('pragma solidity ^0.7.6;', result.code)
        self.assertIn('import "@openzeppelin/contracts/utils/math/SafeMath.sol";', result.code)
        self.assertIn('    using SafeMath for uint256;', result.code)
        self.assertIn('        count = count.add(1);', result.code)

    def test_no_optimize_leaves_arithmetic(self):
        config = Configuration(solidity_version='^0.7.6', optimization_enabled=False)
        result = Compiler(config).compile(COUNTER_SOURCE)
        self.assertIn('        count += 1;', result.code)
        self.assertNotIn('SafeMath', result.code)

    def test_compile_writes_output_target(self):
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / 'build' / 'Token.sol'
            result = Compiler().compile(TOKEN_SOURCE, target)
            self.assertEqual(target.read_text(encoding='utf-8'), result.code)

    def test_compile_file_defaults_to_sol_suffix(self):
        with tempfile.TemporaryDirectory() as tmp:
            source = Path(tmp) / 'token.rb'
            source.write_text(TOKEN_SOURCE, encoding='utf-8')
            Compiler().compile_file(source)
            self.assertTrue((Path(tmp) / 'token.sol').exists())

    def test_compile_many_returns_failures_as_values(self):
        with tempfile.TemporaryDirectory() as tmp:
            good = Path(tmp) / 'token.rb'
            bad = Path(tmp) / 'broken.rb'
            good.write_text(TOKEN_SOURCE, encoding='utf-8')
            bad.write_text(NO_INITIALIZE_SOURCE, encoding='utf-8')
            out = Path(tmp) / 'out'

            results = Compiler().compile_many([good, bad], max_workers=2, output_dir=out)

            self.assertIsInstance(results[str(good)], CompileResult)
            self.assertIsInstance(results[str(bad)], CompilationError)
            self.assertTrue((out / 'token.sol').exists())
            self.assertFalse((out / 'broken.sol').exists())

    def test_compile_many_keeps_relative_paths_under_root(self):
        with tempfile.TemporaryDirectory() as tmp:
            paths = []
            for folder in ('a', 'b'):
                (Path(tmp) / folder).mkdir()
                path = Path(tmp) / folder / 'token.rb'
                path.write_text(TOKEN_SOURCE, encoding='utf-8')
                paths.append(path)
            out = Path(tmp) / 'out'

            results = Compiler().compile_many(paths, output_dir=out, root=tmp)

            self.assertTrue(all(isinstance(r, CompileResult) for r in results.values()))
            self.assertEqual(sorted(p.relative_to(out).as_posix() for p in out.rglob('*.sol')),
                             ['a/token.sol', 'b/token.sol'])

    def test_compile_many_reports_output_collisions(self):
        with tempfile.TemporaryDirectory() as tmp:
            paths = []
            for folder in ('a', 'b'):
                (Path(tmp) / folder).mkdir()
                path = Path(tmp) / folder / 'token.rb'
                path.write_text(TOKEN_SOURCE, encoding='utf-8')
                paths.append(path)

            results = Compiler().compile_many(paths, output_dir=Path(tmp) / 'out')

            self.assertIsInstance(results[str(paths[0])], CompileResult)
            self.assertIsInstance(results[str(paths[1])], CompilationError)
            self.assertIn(str(paths[0]), str(results[str(paths[1])]))

    def test_output_name(self):
        self.assertEqual(Compiler.output_name('contracts/a/token.rb', 'contracts'), Path('a/token.sol'))
        self.assertEqual(Compiler.output_name('contracts/a/token.rb'), Path('token.sol'))

    def test_early_return_keeps_update_after_call(self):
        source = ('class Bank\n  def initialize\n    @balances = {}\n  end\n\n'
                  '  def pay(to, amount, flag)\n    to.transfer(amount)\n    if flag\n      return\n    end\n'
                  '    @balances[to] = 0\n  end\nend\n')
        result = Compiler().compile(source)
        self.assertLess(result.code.index('.transfer(amount);'), result.code.index('balances[to] = 0;'))
        self.assertTrue(any('mutates state after an external call' in w for w in result.warnings))

    def test_nested_update_after_call_is_warned(self):
        source = ('class Bank\n  def initialize\n    @balances = {}\n  end\n\n'
                  '  def pay(to, amount, flag)\n    to.transfer(amount)\n    if flag\n      @balances[to] = 0\n'
                  '    end\n  end\nend\n')
        result = Compiler().compile(source)
        self.assertTrue(any('inside a conditional or loop' in w for w in result.warnings))


class TestConfiguration(unittest.TestCase):
    """Test the process-wide default configuration."""

    def tearDown(self):
        reset_configuration()

    def test_defaults(self):
        config = reset_configuration()
        self.assertEqual(config.solidity_version, '^0.8.30')
        self.assertTrue(config.optimization_enabled)
        self.assertTrue(config.gas_optimization)
        self.assertTrue(config.security_checks)

    def test_configuration_is_immutable(self):
        with self.assertRaises(dataclasses.FrozenInstanceError):
            get_configuration().solidity_version = '0.4.0'

    def test_configure_changes_default(self):
        configure(solidity_version='^0.8.24')
        self.assertEqual(get_configuration().solidity_version, '^0.8.24')
        self.assertIn('pragma solidity ^0.8.24;', Compiler().compile(TOKEN_SOURCE).code)

    def test_explicit_configuration_wins(self):
        configure(solidity_version='^0.8.24')
        result = Compiler(Configuration(solidity_version='^0.8.20')).compile(TOKEN_SOURCE)
        self.assertIn('pragma solidity ^0.8.20;', result.code)

    def test_reset(self):
        configure(gas_optimization=False)
        self.assertEqual(reset_configuration(), Configuration())


class TestErrors(unittest.TestCase):
    """Test the error hierarchy."""

    def test_hierarchy(self):
        for error in (ParseError, CompilationError, ValidationError):
            self.assertTrue(issubclass(error, SolidRailError))

    def test_parse_error_position(self):
        error = ParseError('Unexpected token', 2, 5)
        self.assertEqual(str(error), 'Unexpected token at line 2, column 5')
        self.assertEqual((error.line, error.column), (2, 5))

    def test_compilation_error_messages(self):
        self.assertEqual(CompilationError('single').messages, ['single'])
        self.assertEqual(str(CompilationError(['first', 'second'])), 'first\nsecond')


class TestCli(unittest.TestCase):
    """Test the solidrail command."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.token = self.tmp / 'token.rb'
        self.token.write_text(TOKEN_SOURCE, encoding='utf-8')
        self.broken = self.tmp / 'broken.rb'
        self.broken.write_text(NO_INITIALIZE_SOURCE, encoding='utf-8')

    def tearDown(self):
        self._tmp.cleanup()

    def run_cli(self, *argv):
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(list(argv))
        return code, stdout.getvalue(), stderr.getvalue()

    def test_version(self):
        code, out, _ = self.run_cli('version')
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), f'solidrail {__version__}')

    def test_no_command_prints_help(self):
        code, out, _ = self.run_cli()
        self.assertEqual(code, 1)
        self.assertIn('usage', out)

    def test_compile_to_stdout(self):
        code, out, _ = self.run_cli('compile', str(self.token), '--stdout')
        self.assertEqual(code, 0)
        self.assertIn('contract Token is ERC20 {', out)
        self.assertFalse((self.tmp / 'token.sol').exists())

    def test_compile_to_file(self):
        target = self.tmp / 'build' / 'Token.sol'
        code, out, _ = self.run_cli('compile', str(self.token), '-o', str(target))
        self.assertEqual(code, 0)
        self.assertIn('Written:', out)
        self.assertTrue(target.exists())

    def test_compile_with_version_option(self):
        _, out, _ = self.run_cli('compile', str(self.token), '--stdout', '--solidity-version', '^0.8.20')
        self.assertIn('pragma solidity ^0.8.20;', out)

    def test_compile_failure_exit_code(self):
        code, _, err = self.run_cli('compile', str(self.broken), '--stdout')
        self.assertEqual(code, 1)
        self.assertIn('Ruby validation failed:', err)

    def test_compile_directory(self):
        self.broken.unlink()
        out_dir = self.tmp / 'out'
        code, out, _ = self.run_cli('compile', str(self.tmp), '-o', str(out_dir))
        self.assertEqual(code, 0)
        self.assertIn('Compiled:', out)
        self.assertTrue((out_dir / 'token.sol').exists())

    def test_compile_nested_directories(self):
        self.broken.unlink()
        (self.tmp / 'nested').mkdir()
        (self.tmp / 'nested' / 'token.rb').write_text(TOKEN_SOURCE, encoding='utf-8')
        out_dir = self.tmp / 'out'
        code, _, _ = self.run_cli('compile', str(self.tmp), '-o', str(out_dir))
        self.assertEqual(code, 0)
        self.assertTrue((out_dir / 'token.sol').exists())
        self.assertTrue((out_dir / 'nested' / 'token.sol').exists())

    def test_stdout_rejected_for_directory(self):
        code, out, err = self.run_cli('compile', str(self.tmp), '--stdout')
        self.assertEqual(code, 1)
        self.assertIn('--stdout needs a single input file', err)
        self.assertEqual(out, '')

    def test_compile_directory_reports_failures(self):
        code, _, err = self.run_cli('compile', str(self.tmp), '-o', str(self.tmp / 'out'), '-j', '2')
        self.assertEqual(code, 1)
        self.assertIn('broken.rb', err)

    def test_missing_input(self):
        code, _, err = self.run_cli('compile', str(self.tmp / 'missing.rb'))
        self.assertEqual(code, 1)
        self.assertIn('not a valid file or directory', err)

    def test_validate(self):
        code, out, _ = self.run_cli('validate', str(self.token))
        self.assertEqual(code, 0)
        self.assertIn('No issues found.', out)
        code, out, _ = self.run_cli('validate', str(self.broken))
        self.assertEqual(code, 1)
        self.assertIn('E002', out)

    def test_parse(self):
        code, out, _ = self.run_cli('parse', str(self.token))
        self.assertEqual(code, 0)
        self.assertTrue(out.startswith('program'))


if __name__ == '__main__':
    unittest.main(verbosity=2)
