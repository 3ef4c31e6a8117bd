"""
Defines the core data types for the Mage language runtime.

This module provides the semantic AST node classes produced by the
transformer and executed by the evaluator, the flat variable `Scope`,
user function definitions, the control-flow `Signal`, and the exception
hierarchy used for fatal and catchable failures.

Runtime values are plain Python objects: `str`, `float`, `bool`, `list`
and `dict`. They are not wrapped.
"""

from abc import ABC
from typing import List, Dict, Any, Optional, Tuple


# =================================================================
# Exceptions
# =================================================================

class MageError(Exception):
    """Base class for all errors raised by the Mage runtime."""
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FatalExit(MageError):
    """Raised by `curse`. Escapes every invoke/seal and ends the run."""
    exit_code = 1

    def __str__(self) -> str:
        return f"CURSE: {self.message}"


class UncaughtError(MageError):
    """An error signal that reached the top of the program."""
    exit_code = 1

    def __str__(self) -> str:
        return f"CURSE: {self.message}"


class CatchableError(MageError):
    """A failure inside an expression.

    The statement evaluating the expression converts it into an error
    signal so the nearest invoke/seal can handle it.
    """
    pass


class BuiltinError(MageError):
    """A builtin function rejected its arguments or failed."""
    pass


# =================================================================
# Runtime Types
# =================================================================

class Scope:
    """A flat, mutable mapping of variable names to values.

    There is no parent chain: a function call runs on a `clone()` of
    the caller's scope, so nothing the callee binds is visible afterwards.
    """
    def __init__(self, bindings: Optional[Dict[str, Any]] = None):
        self.bindings: Dict[str, Any] = dict(bindings or {})

    def declare(self, name: str, value: Any):
        self.bindings[name] = value

    def lookup(self, name: str) -> Any:
        """Returns the bound value, or the placeholder `${name}` when unbound."""
        if name in self.bindings:
            return self.bindings[name]
        return f"${{{name}}}"

    def get(self, name: str, default: Any = None) -> Any:
        return self.bindings.get(name, default)

    def clone(self) -> 'Scope':
        return Scope(self.bindings)

    def __contains__(self, name: str) -> bool:
        return name in self.bindings

    def __getitem__(self, name: str) -> Any:
        return self.bindings[name]

    def __len__(self) -> int:
        return len(self.bindings)

    def __repr__(self) -> str:
        return f"<Scope bindings={sorted(self.bindings)!r}>"


class FunctionDef:
    """A user function: parameter names and a body. Not a closure."""
    def __init__(self, name: str, params: List[str], body: List['Node']):
        self.name = name
        self.params = list(params)
        self.body = list(body)

    def __repr__(self) -> str:
        return f"<FunctionDef {self.name}({', '.join(self.params)})>"

    def __eq__(self, other):
        if not isinstance(other, FunctionDef):
            return NotImplemented
        return (self.name, self.params, self.body) == (other.name, other.params, other.body)


class Signal:
    """The outcome of executing one statement.

    `status` is one of NORMAL, RETURN, BREAK, CONTINUE or ERROR. RETURN
    carries the returned value and ERROR carries the message.
    """
    NORMAL = 'normal'
    RETURN = 'return'
    BREAK = 'break'
    CONTINUE = 'continue'
    ERROR = 'error'

    def __init__(self, status: str, value: Any = None):
        self.status = status
        self.value = value

    @classmethod
    def ret(cls, value: Any) -> 'Signal':
        return cls(cls.RETURN, value)

    @classmethod
    def error(cls, message: str) -> 'Signal':
        return cls(cls.ERROR, message)

    @property
    def is_normal(self) -> bool:
        return self.status == Signal.NORMAL

    def __repr__(self) -> str:
        if self.status in (Signal.RETURN, Signal.ERROR):
            return f"<Signal {self.status} {self.value!r}>"
        return f"<Signal {self.status}>"

    def __eq__(self, other):
        if not isinstance(other, Signal):
            return NotImplemented
        return self.status == other.status and self.value == other.value


NORMAL = Signal(Signal.NORMAL)
BREAK = Signal(Signal.BREAK)
CONTINUE = Signal(Signal.CONTINUE)


# =================================================================
# AST Nodes
# =================================================================

class Node(ABC):
    """Base class for all AST nodes.

    Equality is structural and ignores the source location in `loc`.
    """
    loc: Optional[Dict[str, Any]] = None

    def _fields(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if k != 'loc'}

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return self._fields() == other._fields()

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self._fields().items())
        return f"{type(self).__name__}({args})"


# --- Expressions ---

class Str(Node):
    """A string literal. `text` is raw; escapes are processed on evaluation."""
    def __init__(self, text: str):
        self.text = text


class Num(Node):
    def __init__(self, value: float):
        self.value = float(value)


class Bool(Node):
    def __init__(self, value: bool):
        self.value = bool(value)


class ListLit(Node):
    def __init__(self, items: List[Node]):
        self.items = list(items)


class MapLit(Node):
    """A map literal. Later entries win on duplicate keys."""
    def __init__(self, entries: List[Tuple[str, Node]]):
        self.entries = list(entries)


class Ident(Node):
    def __init__(self, name: str):
        self.name = name


class BinOp(Node):
    """A binary operation at the additive (`+ -`) or multiplicative (`* / %`) level."""
    def __init__(self, left: Node, op: str, right: Node):
        self.left = left
        self.op = op
        self.right = right


class Call(Node):
    """A function call in expression position."""
    def __init__(self, name: str, args: List[Node]):
        self.name = name
        self.args = list(args)


class MethodCall(Node):
    def __init__(self, receiver: Node, method: str, args: List[Node]):
        self.receiver = receiver
        self.method = method
        self.args = list(args)


class Imbue(Node):
    """Runs a shell command and evaluates to its trimmed standard output."""
    def __init__(self, command: str):
        self.command = command


class Condition(Node):
    def __init__(self, left: Node, op: str, right: Node):
        self.left = left
        self.op = op
        self.right = right


# --- Statements ---

class Conjure(Node):
    """Variable declaration: `conjure name = expr`."""
    def __init__(self, name: str, expr: Node):
        self.name = name
        self.expr = expr


class Incant(Node):
    """Print: `incant expr`."""
    def __init__(self, expr: Node):
        self.expr = expr


class Curse(Node):
    """Fatal exit: `curse "message"`."""
    def __init__(self, message: str):
        self.message = message


class Evoke(Node):
    """Shell statement: `evoke "command"`."""
    def __init__(self, command: str):
        self.command = command


class ScryChain(Node):
    """`scry cond { } morph cond { } ... lest { }`."""
    def __init__(self, condition: Condition, body: List[Node],
                 morphs: Optional[List[Tuple[Condition, List[Node]]]] = None,
                 lest: Optional[List[Node]] = None):
        self.condition = condition
        self.body = list(body)
        self.morphs = list(morphs or [])
        self.lest = list(lest) if lest is not None else None


class Loop(Node):
    """Fixed three-iteration loop."""
    def __init__(self, body: List[Node]):
        self.body = list(body)


class Channel(Node):
    """Conditional loop, capped at ten iterations."""
    def __init__(self, condition: Condition, body: List[Node]):
        self.condition = condition
        self.body = list(body)


class Chant(Node):
    """Counted range loop: `chant var from start to end step n { }`."""
    def __init__(self, var: str, start: Node, end: Node, step: Optional[Node], body: List[Node]):
        self.var = var
        self.start = start
        self.end = end
        self.step = step
        self.body = list(body)


class Recite(Node):
    """Iteration loop: `recite var from iterable { }`."""
    def __init__(self, var: str, iterable: Node, body: List[Node]):
        self.var = var
        self.iterable = iterable
        self.body = list(body)


class Invoke(Node):
    """Try/catch: `invoke { } seal (err) { }`."""
    def __init__(self, body: List[Node], error_var: Optional[str], handler: List[Node]):
        self.body = list(body)
        self.error_var = error_var
        self.handler = list(handler)


class Summon(Node):
    """Raise a catchable error with the display of a value."""
    def __init__(self, expr: Node):
        self.expr = expr


class Enchant(Node):
    """Function definition."""
    def __init__(self, name: str, params: List[str], body: List[Node]):
        self.name = name
        self.params = list(params)
        self.body = list(body)


class Cast(Node):
    """Function call in statement position."""
    def __init__(self, name: str, args: List[Node]):
        self.name = name
        self.args = list(args)


class Bestow(Node):
    """Return a value. `bestow` and `yield` are synonyms."""
    def __init__(self, expr: Node, keyword: str = 'bestow'):
        self.expr = expr
        self.keyword = keyword

    def _fields(self) -> Dict[str, Any]:
        return {'expr': self.expr}


class Dispel(Node):
    """Break out of the innermost loop."""
    pass


class Portal(Node):
    """Skip to the next iteration of the innermost loop."""
    pass


class Program(Node):
    def __init__(self, statements: List[Node]):
        self.statements = list(statements)

    def __iter__(self):
        return iter(self.statements)

    def __len__(self) -> int:
        return len(self.statements)
