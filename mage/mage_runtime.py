"""
The Mage runtime: `ScriptRunner` executes programs against a persistent
session and reports each run as an `ExecutionResult`.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from mage.mage_builtins import Builtins
from mage.mage_config import MageConfig, resolve_shell_override
from mage.mage_datatypes import Scope, Program, Node, FatalExit, UncaughtError
from mage.mage_interpreter import Evaluator
from mage.mage_output import OutputSink
from mage.mage_transformer import MageTransformer


@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    error_message: Optional[str] = None
    error_token: Optional[Dict[str, Any]] = None
    exit_code: int = 0
    stdout: List[str] = field(default_factory=list)
    stderr: List[str] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and 'line' in self.error_token:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            col_info = f", col {col}" if col is not None else ""
            return f"Error on line {line}{col_info}: {msg}"
        return msg


class ScriptRunner:
    """Transforms and executes Mage programs.

    Variables and user functions persist between `handle_script` calls, the
    way an interactive session keeps them.
    """

    def __init__(self, shell_override: Optional[str] = None, fail_on_command_error: bool = False,
                 buffered: bool = True, builtins: Optional[Builtins] = None,
                 config: Optional[MageConfig] = None, discover_config: bool = True):
        if config is None and discover_config:
            config = MageConfig.find_config()
        self.config = config
        self.cli_shell = shell_override
        self.output = OutputSink.buffered() if buffered else OutputSink.direct()
        self.transformer = MageTransformer()
        self.root_scope = Scope()
        self.evaluator = Evaluator(
            output=self.output,
            builtins=builtins,
            shell_override=shell_override,
            fail_on_command_error=fail_on_command_error,
        )

    @property
    def functions(self):
        return self.evaluator.functions

    def reset(self):
        """Forgets all variables and user functions."""
        self.root_scope = Scope()
        self.evaluator.functions.clear()

    def _to_program(self, ast) -> Program:
        if isinstance(ast, Program):
            return ast
        if isinstance(ast, list) and all(isinstance(n, Node) for n in ast):
            return Program(ast)
        transformed = self.transformer.transform(ast)
        if isinstance(transformed, Program):
            return transformed
        if isinstance(transformed, list):
            return Program(transformed)
        return Program([transformed])

    def _result(self, status, **kwargs) -> ExecutionResult:
        return ExecutionResult(
            status=status,
            stdout=self.output.take_stdout(),
            stderr=self.output.take_stderr(),
            **kwargs,
        )

    def handle_script(self, ast, source: Optional[str] = None) -> ExecutionResult:
        """The main entry point to execute a program.

        `ast` is the raw parser tree, or an already transformed `Program`.
        When the script `source` is given, its `#!shell:` line is honoured.
        """
        self.evaluator.shell_override = resolve_shell_override(self.cli_shell, source, self.config)
        self.evaluator._dbg("run", "shell:", self.evaluator.shell_override)

        try:
            program = self._to_program(ast)
        except (NotImplementedError, ValueError, KeyError, TypeError) as e:
            msg = f"InternalError: transform failed: {e}"
            self.output.eprintln(msg)
            return self._result('error', error_message=msg, exit_code=1)

        try:
            self.evaluator.interpret(program, self.root_scope)
        except FatalExit as e:
            # curse already reported itself
            return self._result('error', error_message=str(e), exit_code=e.exit_code,
                                error_token=self._error_token())
        except UncaughtError as e:
            self.output.eprintln(str(e))
            return self._result('error', error_message=str(e), exit_code=e.exit_code,
                                error_token=self._error_token())
        return self._result('success')

    def _error_token(self) -> Optional[Dict[str, Any]]:
        node = self.evaluator.current_node
        return getattr(node, 'loc', None) if node is not None else None
