"""
The core Mage interpreter: a tree-walking Evaluator over the semantic AST.

Statements return a `Signal` that tells the enclosing construct how to
continue. Expressions return plain values.
"""
import os
import sys
from typing import Any, Dict, List, Optional

from mage.mage_builtins import Builtins
from mage.mage_datatypes import (
    Scope, FunctionDef, Signal, NORMAL, BREAK, CONTINUE,
    BuiltinError, CatchableError, FatalExit, UncaughtError,
    Node, Program, Str, Num, Bool, ListLit, MapLit, Ident, BinOp, Call, MethodCall, Imbue,
    Condition, Conjure, Incant, Curse, Evoke, ScryChain, Loop, Channel, Chant, Recite,
    Invoke, Summon, Enchant, Cast, Bestow, Dispel, Portal
)
from mage.mage_interpolate import interpolate, process_escape_sequences
from mage.mage_output import OutputSink
from mage.mage_printer import display
from mage.mage_shell import run_command
from mage.mage_values import (
    add_values, mul_values, compare, call_method, to_loop_int, iteration_items,
    ADDITIVE_OPS
)


FIXED_LOOP_ITERATIONS = 3
CHANNEL_ITERATION_LIMIT = 10
EXIT_VAR = "_exit"


def is_return(sig) -> bool:
    return isinstance(sig, Signal) and sig.status == Signal.RETURN


def is_error(sig) -> bool:
    return isinstance(sig, Signal) and sig.status == Signal.ERROR


def builtin_to_value(result: Any) -> Any:
    """Converts a builtin's result into a Mage value."""
    match result:
        case None:
            return ""
        case bool() | str():
            return result
        case int() | float():
            return float(result)
        case list() | tuple():
            return [str(item) for item in result]
    raise TypeError(f"Builtin returned an unsupported value: {result!r}")


class Evaluator:
    """The Mage execution engine.

    Owns the function table, which persists across `interpret` calls.
    Variables live in the `Scope` passed to each call.
    """
    def __init__(self, output: Optional[OutputSink] = None, builtins: Optional[Builtins] = None,
                 shell_override: Optional[str] = None, fail_on_command_error: bool = False):
        self.output = output if output is not None else OutputSink.direct()
        self.builtins = builtins if builtins is not None else Builtins()
        self.functions: Dict[str, FunctionDef] = {}
        self.shell_override = shell_override
        # When set, a non-zero `evoke` exit raises a catchable error.
        self.fail_on_command_error = fail_on_command_error
        self.current_node: Optional[Node] = None

    def _dbg(self, *parts):
        if os.environ.get("MAGE_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    # ---------------------------------------------------------------
    # Program
    # ---------------------------------------------------------------

    def interpret(self, program, scope: Scope) -> None:
        """Runs a program's statements in order.

        An error signal that reaches the top raises `UncaughtError`; a curse
        raises `FatalExit`. Stray return/break/continue signals at the top
        level are ignored.
        """
        statements = program.statements if isinstance(program, Program) else program
        for stmt in statements:
            sig = self.execute(stmt, scope)
            if is_error(sig):
                self._dbg("uncaught error", sig.value)
                raise UncaughtError(sig.value)

    # ---------------------------------------------------------------
    # Statements
    # ---------------------------------------------------------------

    def execute_block(self, statements: List[Node], scope: Scope) -> Signal:
        """Runs statements until one yields a signal other than normal."""
        for stmt in statements:
            sig = self.execute(stmt, scope)
            if not sig.is_normal:
                return sig
        return NORMAL

    def execute(self, node: Node, scope: Scope) -> Signal:
        self.current_node = node
        try:
            return self._execute(node, scope)
        except CatchableError as e:
            return Signal.error(e.message)

    def _execute(self, node: Node, scope: Scope) -> Signal:
        self._dbg("exec", type(node).__name__)
        match node:
            case Conjure():
                scope.declare(node.name, self.evaluate(node.expr, scope))
                return NORMAL
            case Incant():
                return self._incant(node, scope)
            case Curse():
                self.output.eprintln(f"CURSE: {node.message}")
                raise FatalExit(node.message)
            case Evoke():
                return self._evoke(node, scope)
            case ScryChain():
                return self._scry(node, scope)
            case Loop():
                return self._loop(node, scope)
            case Channel():
                return self._channel(node, scope)
            case Chant():
                return self._chant(node, scope)
            case Recite():
                return self._recite(node, scope)
            case Invoke():
                return self._invoke(node, scope)
            case Summon():
                return Signal.error(display(self.evaluate(node.expr, scope)))
            case Enchant():
                self.functions[node.name] = FunctionDef(node.name, node.params, node.body)
                return NORMAL
            case Cast():
                return self._cast(node, scope)
            case Bestow():
                return Signal.ret(self.evaluate(node.expr, scope))
            case Dispel():
                return BREAK
            case Portal():
                return CONTINUE
        raise TypeError(f"Cannot execute node: {node!r}")

    def _incant(self, node: Incant, scope: Scope) -> Signal:
        value = self.evaluate(node.expr, scope)
        text = interpolate(value, scope) if isinstance(value, str) else display(value)
        self.output.println(text)
        return NORMAL

    def _evoke(self, node: Evoke, scope: Scope) -> Signal:
        command = interpolate(node.command, scope)
        self._dbg("evoke", repr(command), "shell:", self.shell_override)
        try:
            result = run_command(command, self.shell_override)
        except OSError as e:
            self.output.eprintln(f"Failed to evoke command: {e}")
            return Signal.error(f"Command error: {e}")

        scope.declare(EXIT_VAR, float(result.exit_code))
        if result.stdout:
            self.output.print(result.stdout)
        if result.stderr:
            self.output.eprint(result.stderr)
        if not result.success:
            message = f"Command failed with exit code {result.exit_code}"
            self.output.eprintln(message)
            if self.fail_on_command_error:
                return Signal.error(message)
        return NORMAL

    def _scry(self, node: ScryChain, scope: Scope) -> Signal:
        if self.eval_condition(node.condition, scope):
            return self.execute_block(node.body, scope)
        for condition, body in node.morphs:
            if self.eval_condition(condition, scope):
                return self.execute_block(body, scope)
        if node.lest is not None:
            return self.execute_block(node.lest, scope)
        return NORMAL

    def _loop_body(self, body: List[Node], scope: Scope) -> Optional[Signal]:
        """Runs one iteration. None means keep looping; BREAK means stop;
        any other signal must propagate."""
        sig = self.execute_block(body, scope)
        if sig.status in (Signal.NORMAL, Signal.CONTINUE):
            return None
        if sig.status == Signal.BREAK:
            return BREAK
        return sig

    def _loop(self, node: Loop, scope: Scope) -> Signal:
        for _ in range(FIXED_LOOP_ITERATIONS):
            outcome = self._loop_body(node.body, scope)
            if outcome is BREAK:
                break
            if outcome is not None:
                return outcome
        return NORMAL

    def _channel(self, node: Channel, scope: Scope) -> Signal:
        iterations = 0
        while self.eval_condition(node.condition, scope):
            iterations += 1
            if iterations > CHANNEL_ITERATION_LIMIT:
                self.output.eprintln(
                    f"Channel loop exceeded {CHANNEL_ITERATION_LIMIT} iterations, "
                    "breaking to prevent infinite loop"
                )
                break
            outcome = self._loop_body(node.body, scope)
            if outcome is BREAK:
                break
            if outcome is not None:
                return outcome
        return NORMAL

    def _chant(self, node: Chant, scope: Scope) -> Signal:
        start = to_loop_int(self.evaluate(node.start, scope), "Start", self.output)
        if start is None:
            return NORMAL
        end = to_loop_int(self.evaluate(node.end, scope), "End", self.output)
        if end is None:
            return NORMAL
        step = 1
        if node.step is not None:
            step = to_loop_int(self.evaluate(node.step, scope), "Step", self.output)
            if step is None:
                return NORMAL
        if step == 0:
            self.output.eprintln("Step cannot be zero")
            return NORMAL

        current = start
        while (current < end) if step > 0 else (current > end):
            scope.declare(node.var, float(current))
            outcome = self._loop_body(node.body, scope)
            if outcome is BREAK:
                break
            if outcome is not None:
                return outcome
            current += step
        return NORMAL

    def _recite(self, node: Recite, scope: Scope) -> Signal:
        items = iteration_items(self.evaluate(node.iterable, scope))
        for item in items:
            scope.declare(node.var, item)
            outcome = self._loop_body(node.body, scope)
            if outcome is BREAK:
                break
            if outcome is not None:
                return outcome
        return NORMAL

    def _invoke(self, node: Invoke, scope: Scope) -> Signal:
        sig = self.execute_block(node.body, scope)
        if not is_error(sig):
            return sig
        self._dbg("seal", sig.value)
        if node.error_var:
            scope.declare(node.error_var, sig.value)
        return self.execute_block(node.handler, scope)

    def _cast(self, node: Cast, scope: Scope) -> Signal:
        args = [self.evaluate(arg, scope) for arg in node.args]
        if self.builtins.is_builtin(node.name):
            try:
                result = self.builtins.call(node.name, [display(a) for a in args])
            except BuiltinError as e:
                self.output.eprintln(f"Error calling {node.name}: {e.message}")
                return NORMAL
            if result is not None and result is not True:
                self.output.println(display(builtin_to_value(result)))
            return NORMAL

        func = self.functions.get(node.name)
        if func is None:
            self.output.eprintln(f"Unknown function: {node.name}")
            return NORMAL
        sig = self.call_function(func, args, scope)
        return sig if is_error(sig) else NORMAL

    def call_function(self, func: FunctionDef, args: List[Any], scope: Scope) -> Signal:
        """Runs a user function on a copy of the caller's scope."""
        self._dbg("call", func.name, args)
        local = scope.clone()
        for param, value in zip(func.params, args):
            local.declare(param, value)
        return self.execute_block(func.body, local)

    # ---------------------------------------------------------------
    # Expressions
    # ---------------------------------------------------------------

    def eval_condition(self, cond: Condition, scope: Scope) -> bool:
        left = self.evaluate(cond.left, scope)
        right = self.evaluate(cond.right, scope)
        return compare(left, cond.op, right)

    def evaluate(self, node: Node, scope: Scope) -> Any:
        match node:
            case Str():
                return process_escape_sequences(node.text)
            case Num():
                return node.value
            case Bool():
                return node.value
            case Ident():
                return scope.lookup(node.name)
            case BinOp():
                left = self.evaluate(node.left, scope)
                right = self.evaluate(node.right, scope)
                if node.op in ADDITIVE_OPS:
                    return add_values(left, node.op, right, self.output)
                return mul_values(left, node.op, right, self.output)
            case ListLit():
                return [self.evaluate(item, scope) for item in node.items]
            case MapLit():
                return {key: self.evaluate(value, scope) for key, value in node.entries}
            case Call():
                return self._call(node, scope)
            case MethodCall():
                return self._method_call(node, scope)
            case Imbue():
                return self._imbue(node, scope)
            case Condition():
                return self.eval_condition(node, scope)
        raise TypeError(f"Cannot evaluate node: {node!r}")

    def _call(self, node: Call, scope: Scope) -> Any:
        args = [self.evaluate(arg, scope) for arg in node.args]
        if self.builtins.is_builtin(node.name):
            try:
                return builtin_to_value(self.builtins.call(node.name, [display(a) for a in args]))
            except BuiltinError as e:
                self.output.eprintln(f"Error calling {node.name}: {e.message}")
                return ""

        func = self.functions.get(node.name)
        if func is None:
            self.output.eprintln(f"Unknown function: {node.name}")
            return ""
        sig = self.call_function(func, args, scope)
        if is_return(sig):
            return sig.value
        if is_error(sig):
            raise CatchableError(sig.value)
        return ""

    def _method_call(self, node: MethodCall, scope: Scope) -> Any:
        if isinstance(node.receiver, Ident):
            name = node.receiver.name
            if name in scope:
                receiver = scope[name]
            else:
                self.output.eprintln(f"Unknown variable: {name}")
                receiver = ""
        else:
            receiver = self.evaluate(node.receiver, scope)
        args = [self.evaluate(arg, scope) for arg in node.args]
        return call_method(receiver, node.method, args, self.output)

    def _imbue(self, node: Imbue, scope: Scope) -> str:
        command = interpolate(node.command, scope)
        self._dbg("imbue", repr(command))
        try:
            result = run_command(command, self.shell_override)
        except OSError as e:
            self.output.eprintln(f"Failed to imbue command: {e}")
            raise CatchableError(f"Command error: {e}") from e
        return result.stdout.strip()
