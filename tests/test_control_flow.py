import pytest

from mage.mage_interpreter import Evaluator
from mage.mage_output import OutputSink
from mage.mage_datatypes import (
    Scope, Signal, NORMAL, UncaughtError,
    Program, Str, Num, Bool, ListLit, MapLit, Ident, BinOp,
    Condition, Conjure, Incant, Summon, Bestow, Dispel, Portal,
    ScryChain, Loop, Channel, Chant, Recite, Invoke
)


@pytest.fixture
def evaluator():
    return Evaluator(output=OutputSink.buffered())


@pytest.fixture
def scope():
    return Scope()


def run(evaluator, scope, *statements):
    evaluator.interpret(Program(list(statements)), scope)
    return evaluator.output.take_stdout()


def when(var, op, value, *body):
    return ScryChain(Condition(Ident(var), op, Num(value)), list(body))


# --- loop ---

def test_loop_runs_three_times(evaluator, scope):
    out = run(evaluator, scope, Loop([Incant(Str("tick"))]))
    assert out == ["tick", "tick", "tick"]


def test_loop_break(evaluator, scope):
    out = run(evaluator, scope,
              Conjure("n", Num(0)),
              Loop([
                  Conjure("n", BinOp(Ident("n"), '+', Num(1))),
                  when("n", '==', 2, Dispel()),
                  Incant(Ident("n")),
              ]))
    assert out == ["1"]


# --- chant ---

def test_chant_counts_up(evaluator, scope):
    out = run(evaluator, scope, Chant("i", Num(0), Num(3), None, [Incant(Ident("i"))]))
    assert out == ["0", "1", "2"]


def test_chant_negative_step(evaluator, scope):
    out = run(evaluator, scope, Chant("i", Num(5), Num(0), Num(-2), [Incant(Ident("i"))]))
    assert out == ["5", "3", "1"]


def test_chant_binds_floats(evaluator, scope):
    run(evaluator, scope, Chant("i", Num(0), Num(2), None, []))
    assert scope["i"] == 1.0
    assert isinstance(scope["i"], float)


def test_chant_coerces_bounds(evaluator, scope):
    out = run(evaluator, scope,
              Chant("i", Str("1"), ListLit([Str("a"), Str("b"), Str("c")]), None, [Incant(Ident("i"))]))
    assert out == ["1", "2"]


def test_chant_empty_range(evaluator, scope):
    out = run(evaluator, scope, Chant("i", Num(3), Num(3), None, [Incant(Ident("i"))]))
    assert out == []


def test_chant_zero_step(evaluator, scope):
    out = run(evaluator, scope, Chant("i", Num(0), Num(3), Num(0), [Incant(Ident("i"))]))
    assert out == []
    assert evaluator.output.take_stderr() == ["Step cannot be zero"]


@pytest.mark.parametrize("start, end, message", [
    (Str("one"), Num(3), "Start value must be a number, got string: one"),
    (Num(0), Bool(True), "End value must be a number"),
])
def test_chant_bad_bounds(evaluator, scope, start, end, message):
    out = run(evaluator, scope, Chant("i", start, end, None, [Incant(Ident("i"))]))
    assert out == []
    assert evaluator.output.take_stderr() == [message]


def test_chant_continue_and_break(evaluator, scope):
    out = run(evaluator, scope,
              Chant("i", Num(0), Num(10), None, [
                  when("i", '==', 1, Portal()),
                  when("i", '==', 4, Dispel()),
                  Incant(Ident("i")),
              ]))
    assert out == ["0", "2", "3"]


# --- recite ---

def test_recite_over_comma_string(evaluator, scope):
    out = run(evaluator, scope, Recite("x", Str("a, b, ,c"), [Incant(Ident("x"))]))
    assert out == ["a", "b", "c"]


def test_recite_over_number(evaluator, scope):
    out = run(evaluator, scope, Recite("x", Num(3), [Incant(Ident("x"))]))
    assert out == ["0", "1", "2"]


def test_recite_over_bool_runs_once(evaluator, scope):
    out = run(evaluator, scope, Recite("x", Bool(False), [Incant(Ident("x"))]))
    assert out == ["0"]


def test_recite_over_list(evaluator, scope):
    out = run(evaluator, scope,
              Recite("x", ListLit([Str("fire"), Num(2), ListLit([Str("ice")])]), [Incant(Ident("x"))]))
    assert out == ["fire", "2", "[ice]"]


def test_recite_over_map_keys(evaluator, scope):
    out = run(evaluator, scope,
              Recite("k", MapLit([("hp", Num(10)), ("mp", Num(5))]), [Incant(Ident("k"))]))
    assert out == ["hp", "mp"]


def test_recite_blank_string(evaluator, scope):
    assert run(evaluator, scope, Recite("x", Str("  "), [Incant(Ident("x"))])) == []


# --- channel ---

def test_channel_counts_down(evaluator, scope):
    out = run(evaluator, scope,
              Conjure("n", Num(3)),
              Channel(Condition(Ident("n"), '>', Num(0)), [
                  Incant(Ident("n")),
                  Conjure("n", BinOp(Ident("n"), '-', Num(1))),
              ]))
    assert out == ["3", "2", "1"]
    assert evaluator.output.take_stderr() == []


def test_channel_is_capped(evaluator, scope):
    out = run(evaluator, scope,
              Channel(Condition(Num(1), '==', Num(1)), [Incant(Str("again"))]))
    assert out == ["again"] * 10
    assert evaluator.output.take_stderr() == [
        "Channel loop exceeded 10 iterations, breaking to prevent infinite loop"
    ]


def test_channel_break(evaluator, scope):
    out = run(evaluator, scope,
              Conjure("n", Num(0)),
              Channel(Condition(Bool(True), '==', Bool(True)), [
                  Conjure("n", BinOp(Ident("n"), '+', Num(1))),
                  when("n", '>', 2, Dispel()),
                  Incant(Ident("n")),
              ]))
    assert out == ["1", "2"]
    assert evaluator.output.take_stderr() == []


# --- signals crossing loops ---

def test_return_propagates_out_of_loop(evaluator, scope):
    sig = evaluator.execute(Loop([Bestow(Str("early"))]), scope)
    assert sig == Signal.ret("early")


def test_error_propagates_out_of_loop(evaluator, scope):
    sig = evaluator.execute(Recite("x", Num(5), [Summon(Ident("x"))]), scope)
    assert sig == Signal.error("0")


def test_break_only_leaves_inner_loop(evaluator, scope):
    out = run(evaluator, scope,
              Chant("i", Num(0), Num(2), None, [
                  Loop([Incant(Ident("i")), Dispel()]),
              ]))
    assert out == ["0", "1"]


# --- invoke / seal ---

def test_invoke_catches_summon(evaluator, scope):
    out = run(evaluator, scope,
              Invoke(
                  [Incant(Str("before")), Summon(Str("bad")), Incant(Str("skipped"))],
                  "e",
                  [Incant(Str("caught: $e"))]))
    assert out == ["before", "caught: bad"]
    assert scope["e"] == "bad"


def test_seal_variable_is_display_of_value(evaluator, scope):
    run(evaluator, scope, Invoke([Summon(ListLit([Num(1), Num(2)]))], "err", []))
    assert scope["err"] == "[1, 2]"


def test_seal_without_variable(evaluator, scope):
    out = run(evaluator, scope, Invoke([Summon(Str("x"))], None, [Incant(Str("handled"))]))
    assert out == ["handled"]
    assert "x" not in scope


def test_invoke_without_error_skips_seal(evaluator, scope):
    out = run(evaluator, scope, Invoke([Incant(Str("fine"))], "e", [Incant(Str("nope"))]))
    assert out == ["fine"]


def test_error_inside_seal_propagates(evaluator, scope):
    with pytest.raises(UncaughtError) as excinfo:
        run(evaluator, scope, Invoke([Summon(Str("first"))], "e", [Summon(Str("second"))]))
    assert excinfo.value.message == "second"


def test_nested_invoke_catches_innermost(evaluator, scope):
    out = run(evaluator, scope,
              Invoke([
                  Invoke([Summon(Str("inner"))], "e", [Incant(Str("inner caught $e"))]),
                  Incant(Str("continuing")),
              ], "e", [Incant(Str("outer caught $e"))]))
    assert out == ["inner caught inner", "continuing"]


def test_summon_from_loop_caught_by_invoke(evaluator, scope):
    out = run(evaluator, scope,
              Invoke([
                  Chant("i", Num(0), Num(5), None, [
                      when("i", '==', 2, Summon(Str("stopped at $i"))),
                      Incant(Ident("i")),
                  ]),
              ], "e", [Incant(Ident("e"))]))
    assert out == ["0", "1", "stopped at 2"]


def test_break_passes_through_invoke(evaluator, scope):
    out = run(evaluator, scope,
              Loop([
                  Invoke([Dispel()], "e", [Incant(Str("not an error"))]),
                  Incant(Str("unreachable")),
              ]))
    assert out == []


def test_invoke_returns_normal_after_handling(evaluator, scope):
    sig = evaluator.execute(Invoke([Summon(Str("x"))], "e", []), scope)
    assert sig == NORMAL
