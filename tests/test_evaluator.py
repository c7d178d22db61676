"""Tests for constant condition folding."""

import math

import pytest

from modsplit.core.evaluator import (
    NULL,
    binary_operation,
    evaluate,
    evaluate_condition,
    fold_conditions,
    js_pow,
    number_to_string,
    to_number,
    unary_operation,
)
from modsplit.core.parser import parse_javascript
from modsplit.core.rewriter import apply_replacements
from modsplit.core.scope import LiteralBinding, MathRef


def fold(code: str) -> str:
    """Fold a snippet and return the rewritten text."""
    return apply_replacements(code, fold_conditions(parse_javascript(code)))


def expression(code: str):
    return parse_javascript(f"({code});").program.body[0].expression


class TestCoercions:
    """Tests for JavaScript value coercions."""

    @pytest.mark.parametrize("value,expected", [
        ("", 0.0),
        ("  42 ", 42.0),
        ("0x1f", 31.0),
        ("1e3", 1000.0),
        (".5", 0.5),
        ("-Infinity", -math.inf),
        (True, 1.0),
        (NULL, 0.0),
    ])
    def test_to_number(self, value, expected):
        """Strings, booleans and null convert like Number()."""
        assert to_number(value) == expected

    def test_to_number_nan(self):
        """Garbage strings are NaN."""
        assert math.isnan(to_number("12px"))

    @pytest.mark.parametrize("value,expected", [
        (3.0, "3"),
        (-0.5, "-0.5"),
        (math.nan, "NaN"),
        (math.inf, "Infinity"),
        (1e-7, "1e-7"),
        (0.00001, "0.00001"),
        (0.000001, "0.000001"),
        (123.456, "123.456"),
        (100.0, "100"),
        (1e21, "1e+21"),
        (1.5e300, "1.5e+300"),
    ])
    def test_number_to_string(self, value, expected):
        """Numbers print like String()."""
        assert number_to_string(value) == expected


class TestOperators:
    """Tests for operator semantics."""

    def test_addition_concatenates_strings(self):
        """`+` with a string operand concatenates."""
        assert binary_operation("+", "a", 1.0) == "a1"
        assert binary_operation("+", 1.0, 2.0) == 3.0

    def test_loose_and_strict_equality(self):
        """`==` coerces, `===` does not."""
        assert binary_operation("==", "1", 1.0) is True
        assert binary_operation("===", "1", 1.0) is False
        assert binary_operation("==", NULL, 0.0) is False
        assert binary_operation("!==", NULL, NULL) is False

    def test_nan_comparisons(self):
        """Every comparison with NaN is false."""
        assert binary_operation("<", math.nan, 1.0) is False
        assert binary_operation(">=", math.nan, 1.0) is False

    def test_division_by_zero(self):
        """Division follows IEEE rules."""
        assert binary_operation("/", 1.0, 0.0) == math.inf
        assert binary_operation("/", -1.0, 0.0) == -math.inf
        assert math.isnan(binary_operation("/", 0.0, 0.0))

    def test_modulo_sign(self):
        """Remainder takes the sign of the dividend."""
        assert binary_operation("%", -7.0, 3.0) == -1.0

    def test_bitwise(self):
        """Bitwise operators work on 32-bit integers."""
        assert binary_operation("|", 2 ** 32 + 5.0, 0.0) == 5.0
        assert binary_operation(">>>", -1.0, 0.0) == 4294967295.0
        assert binary_operation("<<", 1.0, 31.0) == -2147483648.0
        assert binary_operation("&", 6.0, 3.0) == 2.0
        assert binary_operation("^", 5.0, 1.0) == 4.0
        assert binary_operation("|", -1.0, 0.0) == -1.0
        assert binary_operation("<<", 3.0, 31.0) == -2147483648.0

    @pytest.mark.parametrize("test", [
        "(5 | 0) > 3",
        "6 & 3",
        "(5 ^ 1) === 4",
        "(1 << 2) === 4",
    ])
    def test_bitwise_conditions_fold(self, test):
        """Conditions built from 32-bit operators fold."""
        assert fold(f"if ({test}) {{ a(); }}") == "if (true) { a(); }"

    def test_unary(self):
        """Unary operators coerce their operand."""
        assert unary_operation("!", "") is True
        assert unary_operation("-", "3") == -3.0
        assert unary_operation("~", 0.0) == -1.0
        assert unary_operation("typeof", NULL) == "object"

    def test_pow_edge_cases(self):
        """Exponentiation corner cases do not raise."""
        assert js_pow(2.0, 10.0) == 1024.0
        assert js_pow(0.0, -1.0) == math.inf
        assert math.isnan(js_pow(1.0, math.inf))
        assert js_pow(10.0, 400.0) == math.inf


class TestEvaluate:
    """Tests for evaluate and evaluate_condition."""

    def test_literal_arithmetic(self):
        """Pure literal expressions evaluate."""
        assert evaluate(expression("2 + 2 * 3"), {}) == 8.0

    def test_bound_identifier(self):
        """Literal bindings resolve."""
        scope = {"x": LiteralBinding(5.0)}

        assert evaluate_condition(expression("x > 3"), scope) is True

    def test_unbound_identifier(self):
        """Unknown names make the condition undecidable."""
        assert evaluate_condition(expression("x > 3"), {}) is None

    def test_math_alias_call(self):
        """Calls through MathRef bindings use the whitelist."""
        scope = {"a": MathRef("Math.log")}

        assert evaluate_condition(expression("a(100) > a(1)"), scope) is True

    def test_direct_math_member(self):
        """`Math.fn(...)` and `Math.CONST` resolve without an alias."""
        assert evaluate_condition(expression("Math.floor(Math.PI) === 3"), {}) is True

    def test_shadowed_math_not_resolved(self):
        """A local binding named like the namespace hides it."""
        scope = {"Math": LiteralBinding(1.0)}

        assert evaluate_condition(expression("Math.floor(2) === 2"), scope) is None

    def test_unknown_math_member(self):
        """Members outside the whitelist are not called."""
        assert evaluate_condition(expression("Math.random() < 2"), {}) is None

    def test_numeric_result_is_positive_check(self):
        """Numbers decide by being strictly positive."""
        assert evaluate_condition(expression("5 - 2"), {}) is True
        assert evaluate_condition(expression("2 - 5"), {}) is False
        assert evaluate_condition(expression("0"), {}) is False

    def test_non_boolean_result_cancels(self):
        """Strings and null do not decide a branch."""
        assert evaluate_condition(expression("'yes'"), {}) is None
        assert evaluate_condition(expression("null"), {}) is None

    def test_logical_operators(self):
        """Logical operators return operand values."""
        assert evaluate(expression("0 || 'b'"), {}) == "b"
        assert evaluate(expression("1 && 2"), {}) == 2.0
        assert evaluate(expression("null || 3"), {}) == 3.0

    def test_regex_literal_rejected(self):
        """Regular expression literals are not primitives."""
        assert evaluate_condition(expression("/a/ == 1"), {}) is None


class TestFoldConditions:
    """Tests for fold_conditions function."""

    def test_literal_condition(self):
        """`if (2 + 2 > 3)` becomes `if (true)`."""
        assert fold("if (2 + 2 > 3) { go(); }") == "if (true) { go(); }"

    def test_unbound_condition_untouched(self):
        """`if (x > 3)` with unbound x is left alone."""
        code = "if (x > 3) { go(); }"

        assert fold(code) == code

    def test_math_alias(self):
        """`var a = Math.log` resolves calls through the alias."""
        code = "var a = Math.log;\nif (a(100) > a(1)) {\n  go();\n}"

        assert fold(code) == "var a = Math.log;\nif (true) {\n  go();\n}"

    def test_literal_binding(self):
        """Literal declarations feed later tests."""
        code = "var level = 3;\nif (level === 4) { a(); } else { b(); }"

        assert fold(code) == "var level = 3;\nif (false) { a(); } else { b(); }"

    def test_reassigned_name_not_bound(self):
        """Names written anywhere are never trusted."""
        code = "var n = 1;\nif (n > 0) { a(); }\nn = -1;"

        assert fold(code) == code

    def test_updated_name_not_bound(self):
        """Update expressions count as writes."""
        code = "var n = 1;\nn++;\nif (n > 0) { a(); }"

        assert fold(code) == code

    def test_destructured_name_not_bound(self):
        """Names written through a destructuring pattern are never trusted."""
        for write in ("[a] = [5];", "({ a } = { a: 5 });", "({ k: [, a] } = o);"):
            code = "var a = 1;\n" + write + "\nif (a > 3) { b(); }"

            assert fold(code) == code

    def test_loop_head_name_not_bound(self):
        """A bare for-in or for-of target counts as a write."""
        for head in ("for (a of [5]) {}", "for (a in o) {}"):
            code = "var a = 1;\n" + head + "\nif (a > 3) { b(); }"

            assert fold(code) == code

    def test_member_write_keeps_binding(self):
        """Writing a property of a name does not reassign the name."""
        code = "var a = 1;\no.a = 5;\nif (a > 3) { b(); }"

        assert fold(code) == "var a = 1;\no.a = 5;\nif (false) { b(); }"

    def test_number_concatenation(self):
        """Small numbers concatenate in positional notation."""
        assert fold('if ("" + 0.00001 == "0.00001") {}') == "if (true) {}"

    def test_ternary(self):
        """Conditional expression tests fold too."""
        assert fold("var v = 1 > 2 ? a : b;") == "var v = false ? a : b;"

    def test_nested_conditions(self):
        """Conditions inside folded branches are folded as well."""
        code = "if (1) { if (0 > 1) { a(); } }"

        assert fold(code) == "if (true) { if (false) { a(); } }"

    def test_block_scoped_binding(self):
        """A declaration in a block does not leak into sibling blocks."""
        code = "{ let k = 1; }\nif (k > 0) { a(); }"

        assert fold(code) == code

    def test_inner_declaration_shadows(self):
        """A non-constant declaration hides an outer constant."""
        code = "var k = 1;\nfunction f(y) { var k = y; if (k > 0) { a(); } }"

        assert fold(code) == code

    def test_parameter_shadows(self):
        """A parameter named like an outer constant hides it."""
        code = "var k = 1;\nfunction f(k) { if (k > 0) { a(); } }\nif (k > 0) { b(); }"

        assert fold(code) == "var k = 1;\nfunction f(k) { if (k > 0) { a(); } }\nif (true) { b(); }"

    def test_condition_with_call_untouched(self):
        """Calls to non-Math functions are never evaluated."""
        code = "if (check() > 0) { a(); }"

        assert fold(code) == code

    def test_boolean_literal_test_untouched(self):
        """Tests that are already `true` or `false` yield no replacement."""
        assert fold_conditions(parse_javascript("if (true) { a(); } else if (false) { b(); }")) == []

    def test_no_conditions(self):
        """Code without branches yields no replacements."""
        assert fold_conditions(parse_javascript("var a = 1; a + 2;")) == []
