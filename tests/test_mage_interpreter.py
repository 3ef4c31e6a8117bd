import pytest

from mage.mage_interpreter import Evaluator, builtin_to_value
from mage.mage_output import OutputSink
from mage.mage_datatypes import (
    Scope, Signal, NORMAL, BREAK, CONTINUE, FatalExit, UncaughtError,
    Program, Str, Num, Bool, ListLit, MapLit, Ident, BinOp, Call, MethodCall,
    Condition, Conjure, Incant, Curse, Summon, Enchant, Cast, Bestow, Dispel, Portal,
    ScryChain, Invoke
)


@pytest.fixture
def evaluator():
    """Returns a new Evaluator with buffered output for each test."""
    return Evaluator(output=OutputSink.buffered())


@pytest.fixture
def scope():
    return Scope()


def run(evaluator, scope, *statements):
    evaluator.interpret(Program(list(statements)), scope)
    return evaluator.output.take_stdout()


# --- expressions ---

def test_literals(evaluator, scope):
    assert evaluator.evaluate(Num(2), scope) == 2.0
    assert evaluator.evaluate(Bool(True), scope) is True
    assert evaluator.evaluate(Str(r"a\tb"), scope) == "a\tb"
    assert evaluator.evaluate(ListLit([Num(1), Str("x")]), scope) == [1.0, "x"]


def test_map_literal_last_duplicate_wins(evaluator, scope):
    node = MapLit([("k", Num(1)), ("j", Num(2)), ("k", Num(3))])
    assert evaluator.evaluate(node, scope) == {"k": 3.0, "j": 2.0}


def test_unbound_identifier_is_placeholder(evaluator, scope):
    assert evaluator.evaluate(Ident("ghost"), scope) == "${ghost}"


def test_binop_precedence_is_in_the_tree(evaluator, scope):
    # 2 + 3 * 4
    node = BinOp(Num(2), '+', BinOp(Num(3), '*', Num(4)))
    assert evaluator.evaluate(node, scope) == 14.0


def test_left_associative_subtraction(evaluator, scope):
    node = BinOp(BinOp(Num(10), '-', Num(3)), '-', Num(2))
    assert evaluator.evaluate(node, scope) == 5.0


def test_method_call_on_variable(evaluator, scope):
    scope.declare("s", "a,b")
    assert evaluator.evaluate(MethodCall(Ident("s"), "split", [Str(",")]), scope) == ["a", "b"]


def test_method_call_on_unknown_variable(evaluator, scope):
    assert evaluator.evaluate(MethodCall(Ident("nope"), "upper", []), scope) == ""
    assert evaluator.output.take_stderr() == ["Unknown variable: nope"]


def test_method_call_on_literal(evaluator, scope):
    assert evaluator.evaluate(MethodCall(Str("abc"), "upper", []), scope) == "ABC"


def test_condition_evaluates_to_bool(evaluator, scope):
    assert evaluator.evaluate(Condition(Num(1), '<', Num(2)), scope) is True


# --- statements ---

def test_greeting_interpolation(evaluator, scope):
    out = run(evaluator, scope,
              Conjure("name", Str("Mage")),
              Incant(Str("Hello, $name!")))
    assert out == ["Hello, Mage!"]


def test_incant_non_string_uses_display(evaluator, scope):
    out = run(evaluator, scope,
              Incant(Num(5)),
              Incant(BinOp(Num(1), '/', Num(4))),
              Incant(ListLit([Str("a"), Bool(False)])),
              Incant(MapLit([("k", Num(1))])))
    assert out == ["5", "0.25", "[a, false]", "{k: 1}"]


def test_incant_reinterpolates_variable_values(evaluator, scope):
    out = run(evaluator, scope,
              Conjure("who", Str("world")),
              Conjure("msg", Str("hi ${who}")),
              Incant(Ident("msg")))
    assert out == ["hi world"]


def test_conjure_overwrites(evaluator, scope):
    run(evaluator, scope, Conjure("x", Num(1)), Conjure("x", Str("two")))
    assert scope["x"] == "two"


def test_scry_chain_picks_first_true(evaluator, scope):
    chain = ScryChain(
        Condition(Ident("x"), '>', Num(10)), [Incant(Str("big"))],
        morphs=[
            (Condition(Ident("x"), '>', Num(5)), [Incant(Str("medium"))]),
            (Condition(Ident("x"), '>', Num(1)), [Incant(Str("small"))]),
        ],
        lest=[Incant(Str("tiny"))],
    )
    scope.declare("x", 7.0)
    assert run(evaluator, scope, chain) == ["medium"]
    scope.declare("x", 0.0)
    assert run(evaluator, scope, chain) == ["tiny"]
    scope.declare("x", 50.0)
    assert run(evaluator, scope, chain) == ["big"]


def test_scry_without_lest_does_nothing(evaluator, scope):
    chain = ScryChain(Condition(Num(1), '==', Num(2)), [Incant(Str("no"))])
    assert run(evaluator, scope, chain) == []


def test_curse_is_fatal(evaluator, scope):
    with pytest.raises(FatalExit) as excinfo:
        run(evaluator, scope, Curse("out of mana"), Incant(Str("unreachable")))
    assert str(excinfo.value) == "CURSE: out of mana"
    assert evaluator.output.take_stderr() == ["CURSE: out of mana"]
    assert evaluator.output.take_stdout() == []


def test_curse_is_not_catchable(evaluator, scope):
    block = Invoke([Curse("boom")], "e", [Incant(Str("caught"))])
    with pytest.raises(FatalExit):
        run(evaluator, scope, block)
    assert evaluator.output.take_stdout() == []


def test_uncaught_summon_ends_the_run(evaluator, scope):
    with pytest.raises(UncaughtError) as excinfo:
        run(evaluator, scope, Summon(Str("bad")), Incant(Str("after")))
    assert excinfo.value.message == "bad"
    assert str(excinfo.value) == "CURSE: bad"
    assert evaluator.output.take_stdout() == []


def test_stray_top_level_signals_are_ignored(evaluator, scope):
    out = run(evaluator, scope, Dispel(), Portal(), Bestow(Num(1)), Incant(Str("still here")))
    assert out == ["still here"]


def test_execute_returns_signals(evaluator, scope):
    assert evaluator.execute(Dispel(), scope) == BREAK
    assert evaluator.execute(Portal(), scope) == CONTINUE
    assert evaluator.execute(Bestow(Num(3), 'yield'), scope) == Signal.ret(3.0)
    assert evaluator.execute(Summon(Num(4)), scope) == Signal.error("4")
    assert evaluator.execute(Conjure("a", Num(1)), scope) == NORMAL


def test_block_stops_at_first_signal(evaluator, scope):
    sig = evaluator.execute_block([Incant(Str("one")), Dispel(), Incant(Str("two"))], scope)
    assert sig == BREAK
    assert evaluator.output.take_stdout() == ["one"]


# --- builtins through the evaluator ---

def test_builtin_call_expression(evaluator, scope, monkeypatch):
    monkeypatch.setenv("MAGE_TEST_VAR", "wand")
    assert evaluator.evaluate(Call("env_var", [Str("MAGE_TEST_VAR")]), scope) == "wand"


def test_builtin_args_use_display(evaluator, scope, monkeypatch):
    monkeypatch.delenv("MAGE_MISSING_VAR", raising=False)
    assert evaluator.evaluate(Call("env_var", [Str("MAGE_MISSING_VAR"), Num(7)]), scope) == "7"


def test_builtin_error_in_expression(evaluator, scope):
    assert evaluator.evaluate(Call("file_exists", []), scope) == ""
    assert evaluator.output.take_stderr() == [
        "Error calling file_exists: file_exists() requires exactly 1 argument: path"
    ]


def test_cast_builtin_prints_result(evaluator, scope, monkeypatch):
    monkeypatch.setenv("MAGE_TEST_VAR", "staff")
    out = run(evaluator, scope, Cast("env_var", [Str("MAGE_TEST_VAR")]))
    assert out == ["staff"]


def test_cast_builtin_true_is_silent(evaluator, scope, tmp_path):
    target = tmp_path / "spell.txt"
    out = run(evaluator, scope, Cast("write_file", [Str(str(target)), Str("abra")]))
    assert out == []
    assert target.read_text() == "abra"


def test_cast_builtin_false_is_printed(evaluator, scope, tmp_path):
    out = run(evaluator, scope, Cast("file_exists", [Str(str(tmp_path / "nope"))]))
    assert out == ["false"]


def test_cast_builtin_error(evaluator, scope):
    run(evaluator, scope, Cast("copy_file", [Str("only-one")]))
    assert evaluator.output.take_stderr() == [
        "Error calling copy_file: copy_file() requires exactly 2 arguments: source, destination"
    ]


def test_unknown_function(evaluator, scope):
    assert evaluator.evaluate(Call("nothing", []), scope) == ""
    run(evaluator, scope, Cast("nothing", [Num(1)]))
    assert evaluator.output.take_stderr() == ["Unknown function: nothing", "Unknown function: nothing"]


def test_user_function_cannot_shadow_builtin(evaluator, scope, monkeypatch):
    monkeypatch.setenv("MAGE_TEST_VAR", "builtin")
    run(evaluator, scope, Enchant("env_var", ["n"], [Bestow(Str("user"))]))
    assert evaluator.evaluate(Call("env_var", [Str("MAGE_TEST_VAR")]), scope) == "builtin"


@pytest.mark.parametrize("result, expected", [
    (None, ""),
    ("s", "s"),
    (3, 3.0),
    (True, True),
    (["apt", "pip"], ["apt", "pip"]),
])
def test_builtin_to_value(result, expected):
    assert builtin_to_value(result) == expected


def test_debug_output(evaluator, scope, monkeypatch, capsys):
    monkeypatch.setenv("MAGE_DEBUG", "1")
    evaluator.execute(Conjure("x", Num(1)), scope)
    assert "[DBG] exec Conjure" in capsys.readouterr().err
