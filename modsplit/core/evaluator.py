"""Constant condition folding.

Branch tests built only from literals, literal-bound identifiers, operators
and pure `Math` functions are evaluated with JavaScript semantics and
replaced by `true` or `false`. The evaluator walks the expression node
directly; no source text is ever built or executed, and only a fixed
whitelist of `Math` members is reachable.
"""

import math
import re
from decimal import Decimal
from typing import Any, Callable, Optional

from modsplit.debug import debug_log
from modsplit.core.parser import ParseResult, is_identifier, iter_child_nodes, node_type, span_of, walk
from modsplit.core.rewriter import Replacement
from modsplit.core.scope import LiteralBinding, MathRef, Scope

# Node types whose child statements share one scope copy
STATEMENT_LIST_TYPES = frozenset({"Program", "BlockStatement", "SwitchCase"})
FUNCTION_TYPES = frozenset({"FunctionDeclaration", "FunctionExpression", "ArrowFunctionExpression"})

_JS_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*(e[+-]?\d+)?|\.\d+(e[+-]?\d+)?)$", re.IGNORECASE)
_JS_WHITESPACE = " \t\n\r\v\f\u00a0\u1680\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a\u2028\u2029\u202f\u205f\u3000\ufeff"


class NotConstant(Exception):
    """The expression cannot be resolved statically."""


class JSNull:
    """The JavaScript `null` value."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "null"


NULL = JSNull()


# ---------------------------------------------------------------------------
# Coercions


def js_typeof(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if value is NULL:
        return "object"
    raise NotConstant(f"unsupported value {value!r}")


def to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return not (value == 0 or math.isnan(value))
    if isinstance(value, str):
        return value != ""
    if value is NULL:
        return False
    raise NotConstant(f"unsupported value {value!r}")


def _string_to_number(text: str) -> float:
    text = text.strip(_JS_WHITESPACE)
    if not text:
        return 0.0
    lowered = text.lower()
    for prefix, base in (("0x", 16), ("0o", 8), ("0b", 2)):
        if lowered.startswith(prefix):
            try:
                return float(int(text[2:], base))
            except ValueError:
                return math.nan
    if text in ("Infinity", "+Infinity"):
        return math.inf
    if text == "-Infinity":
        return -math.inf
    if _JS_NUMBER_RE.match(text):
        return float(text)
    return math.nan


def to_number(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, float):
        return value
    if isinstance(value, str):
        return _string_to_number(value)
    if value is NULL:
        return 0.0
    raise NotConstant(f"unsupported value {value!r}")


def number_to_string(value: float) -> str:
    """Format a number the way `String(value)` does.

    `repr` yields the same shortest round-trip digits; only the placement
    of the decimal point and the switch to exponent form differ.
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    if value < 0:
        return "-" + number_to_string(-value)

    _sign, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    stripped = digits.rstrip("0")
    exponent += len(digits) - len(stripped)
    digits = stripped
    k = len(digits)
    # value == digits * 10 ** (n - k)
    n = exponent + k

    if k <= n <= 21:
        return digits + "0" * (n - k)
    if 0 < n <= 21:
        return digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return "0." + "0" * -n + digits
    e = n - 1
    mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
    return f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"


def to_js_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return number_to_string(value)
    if isinstance(value, str):
        return value
    if value is NULL:
        return "null"
    raise NotConstant(f"unsupported value {value!r}")


def to_uint32(value: Any) -> int:
    number = to_number(value)
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(number) % 2 ** 32


def _wrap_int32(n: int) -> int:
    n &= 0xFFFFFFFF
    return n - 2 ** 32 if n >= 2 ** 31 else n


def to_int32(value: Any) -> int:
    return _wrap_int32(to_uint32(value))


# ---------------------------------------------------------------------------
# Math whitelist


def _num_args(args: tuple, count: int) -> list[float]:
    return [to_number(args[i]) if i < len(args) else math.nan for i in range(count)]


def _unary(fn: Callable[[float], float]) -> Callable[..., float]:
    def call(*args: Any) -> float:
        (x,) = _num_args(args, 1)
        if math.isnan(x):
            return math.nan
        try:
            return float(fn(x))
        except ValueError:
            return math.nan
        except OverflowError:
            return math.inf
    return call


def _logarithm(fn: Callable[[float], float]) -> Callable[[float], float]:
    def log(x: float) -> float:
        if x == 0:
            return -math.inf
        if x < 0:
            return math.nan
        if math.isinf(x):
            return math.inf
        return fn(x)
    return log


def _log1p(x: float) -> float:
    if x == -1:
        return -math.inf
    return math.log1p(x)


def _finite_only(fn: Callable[[float], float]) -> Callable[[float], float]:
    def wrapped(x: float) -> float:
        return x if math.isinf(x) else float(fn(x))
    return wrapped


def _js_round(x: float) -> float:
    if math.isinf(x) or x == 0:
        return x
    return float(math.floor(x + 0.5))


def _sign(x: float) -> float:
    return x if x == 0 else math.copysign(1.0, x)


def _cbrt(x: float) -> float:
    root = abs(x) ** (1.0 / 3.0)
    nearest = round(root)
    if nearest ** 3 == abs(x):
        root = float(nearest)
    return math.copysign(root, x)


def _sinh(x: float) -> float:
    try:
        return math.sinh(x)
    except OverflowError:
        return math.copysign(math.inf, x)


def _atanh(x: float) -> float:
    if abs(x) == 1:
        return math.copysign(math.inf, x)
    return math.atanh(x)


def _is_odd_integer(x: float) -> bool:
    return math.isfinite(x) and x == int(x) and int(x) % 2 == 1


def js_pow(base: float, exponent: float) -> float:
    if math.isnan(exponent):
        return math.nan
    if exponent == 0:
        return 1.0
    if math.isnan(base):
        return math.nan
    if abs(base) == 1 and math.isinf(exponent):
        return math.nan
    if base == 0 and exponent < 0:
        return math.copysign(math.inf, base) if _is_odd_integer(exponent) else math.inf
    try:
        return math.pow(base, exponent)
    except ValueError:
        return math.nan
    except OverflowError:
        return -math.inf if base < 0 and _is_odd_integer(exponent) else math.inf


def _atan2(*args: Any) -> float:
    y, x = _num_args(args, 2)
    return math.atan2(y, x)


def _pow(*args: Any) -> float:
    return js_pow(*_num_args(args, 2))


def _max(*args: Any) -> float:
    values = [to_number(a) for a in args]
    if any(math.isnan(v) for v in values):
        return math.nan
    return max(values, default=-math.inf)


def _min(*args: Any) -> float:
    values = [to_number(a) for a in args]
    if any(math.isnan(v) for v in values):
        return math.nan
    return min(values, default=math.inf)


def _hypot(*args: Any) -> float:
    values = [to_number(a) for a in args]
    if any(math.isinf(v) for v in values):
        return math.inf
    return math.hypot(*values) if values else 0.0


MATH_FUNCTIONS: dict[str, Callable[..., float]] = {
    "abs": _unary(math.fabs),
    "acos": _unary(math.acos),
    "acosh": _unary(math.acosh),
    "asin": _unary(math.asin),
    "asinh": _unary(math.asinh),
    "atan": _unary(math.atan),
    "atanh": _unary(_atanh),
    "atan2": _atan2,
    "cbrt": _unary(_cbrt),
    "ceil": _unary(_finite_only(math.ceil)),
    "cos": _unary(math.cos),
    "cosh": _unary(math.cosh),
    "exp": _unary(math.exp),
    "expm1": _unary(math.expm1),
    "floor": _unary(_finite_only(math.floor)),
    "hypot": _hypot,
    "log": _unary(_logarithm(math.log)),
    "log10": _unary(_logarithm(math.log10)),
    "log1p": _unary(_log1p),
    "log2": _unary(_logarithm(math.log2)),
    "max": _max,
    "min": _min,
    "pow": _pow,
    "round": _unary(_js_round),
    "sign": _unary(_sign),
    "sin": _unary(math.sin),
    "sinh": _unary(_sinh),
    "sqrt": _unary(math.sqrt),
    "tan": _unary(math.tan),
    "tanh": _unary(math.tanh),
    "trunc": _unary(_finite_only(math.trunc)),
}

MATH_CONSTANTS: dict[str, float] = {
    "E": math.e,
    "LN10": math.log(10),
    "LN2": math.log(2),
    "LOG10E": math.log10(math.e),
    "LOG2E": math.log2(math.e),
    "PI": math.pi,
    "SQRT1_2": math.sqrt(0.5),
    "SQRT2": math.sqrt(2),
}


# ---------------------------------------------------------------------------
# Operators


def _loose_equals(a: Any, b: Any) -> bool:
    type_a, type_b = js_typeof(a), js_typeof(b)
    if type_a == type_b:
        return _strict_equals(a, b)
    if a is NULL or b is NULL:
        return False
    return to_number(a) == to_number(b)


def _strict_equals(a: Any, b: Any) -> bool:
    if js_typeof(a) != js_typeof(b):
        return False
    if a is NULL:
        return True
    return a == b


def _compare(a: Any, b: Any, op: Callable[[Any, Any], bool]) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return op(a, b)
    x, y = to_number(a), to_number(b)
    if math.isnan(x) or math.isnan(y):
        return False
    return op(x, y)


def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _modulo(a: float, b: float) -> float:
    if math.isnan(a) or math.isnan(b) or math.isinf(a) or b == 0:
        return math.nan
    if math.isinf(b):
        return a
    return math.fmod(a, b)


def _add(a: Any, b: Any) -> Any:
    if isinstance(a, str) or isinstance(b, str):
        return to_js_string(a) + to_js_string(b)
    return to_number(a) + to_number(b)


_ARITHMETIC: dict[str, Callable[[float, float], float]] = {
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _divide,
    "%": _modulo,
    "**": js_pow,
}

_BITWISE: dict[str, Callable[[Any, Any], float]] = {
    "&": lambda a, b: float(to_int32(a) & to_int32(b)),
    "|": lambda a, b: float(to_int32(a) | to_int32(b)),
    "^": lambda a, b: float(to_int32(a) ^ to_int32(b)),
    "<<": lambda a, b: float(_wrap_int32(to_int32(a) << (to_uint32(b) & 31))),
    ">>": lambda a, b: float(to_int32(a) >> (to_uint32(b) & 31)),
    ">>>": lambda a, b: float(to_uint32(a) >> (to_uint32(b) & 31)),
}

_RELATIONAL: dict[str, Callable[[Any, Any], bool]] = {
    "<": lambda a, b: _compare(a, b, lambda x, y: x < y),
    ">": lambda a, b: _compare(a, b, lambda x, y: x > y),
    "<=": lambda a, b: _compare(a, b, lambda x, y: x <= y),
    ">=": lambda a, b: _compare(a, b, lambda x, y: x >= y),
    "==": _loose_equals,
    "!=": lambda a, b: not _loose_equals(a, b),
    "===": _strict_equals,
    "!==": lambda a, b: not _strict_equals(a, b),
}


def binary_operation(operator: str, a: Any, b: Any) -> Any:
    """Apply a JavaScript binary operator to two primitive values."""
    if operator == "+":
        return _add(a, b)
    if operator in _ARITHMETIC:
        return _ARITHMETIC[operator](to_number(a), to_number(b))
    if operator in _BITWISE:
        return _BITWISE[operator](a, b)
    if operator in _RELATIONAL:
        return _RELATIONAL[operator](a, b)
    raise NotConstant(f"unsupported operator {operator}")


def unary_operation(operator: str, value: Any) -> Any:
    """Apply a JavaScript unary operator to a primitive value."""
    if operator == "!":
        return not to_boolean(value)
    if operator == "-":
        return -to_number(value)
    if operator == "+":
        return to_number(value)
    if operator == "~":
        return float(~to_int32(value))
    if operator == "typeof":
        return js_typeof(value)
    raise NotConstant(f"unsupported operator {operator}")


# ---------------------------------------------------------------------------
# Expression evaluation


def literal_value(node: Any) -> Any:
    """Primitive value of a Literal node."""
    if getattr(node, "regex", None) is not None:
        raise NotConstant("regular expression literal")
    value = node.value
    if value is None:
        return NULL
    if isinstance(value, bool) or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return float(value)
    raise NotConstant(f"unsupported literal {node.raw!r}")


def _math_member(node: Any, scope: Scope, math_namespace: str) -> Optional[str]:
    """Name of the Math member a callee or operand refers to, if any."""
    if is_identifier(node):
        binding = scope.get(node.name)
        return binding.member if isinstance(binding, MathRef) else None
    if (
        node_type(node) == "MemberExpression"
        and not node.computed
        and is_identifier(node.object, math_namespace)
        and is_identifier(node.property)
        and math_namespace not in scope
    ):
        return node.property.name
    return None


def evaluate(node: Any, scope: Scope, math_namespace: str = "Math") -> Any:
    """Evaluate an expression node to a primitive value.

    Raises:
        NotConstant: for unresolved identifiers and unsupported node shapes
    """
    kind = node_type(node)

    if kind == "Literal":
        return literal_value(node)

    if kind == "Identifier":
        binding = scope.get(node.name)
        if isinstance(binding, LiteralBinding):
            return binding.value
        if isinstance(binding, MathRef) and binding.member in MATH_CONSTANTS:
            return MATH_CONSTANTS[binding.member]
        raise NotConstant(f"unresolved identifier {node.name}")

    if kind == "MemberExpression":
        member = _math_member(node, scope, math_namespace)
        if member in MATH_CONSTANTS:
            return MATH_CONSTANTS[member]
        raise NotConstant("unsupported member access")

    if kind == "UnaryExpression":
        return unary_operation(node.operator, evaluate(node.argument, scope, math_namespace))

    if kind == "BinaryExpression":
        left = evaluate(node.left, scope, math_namespace)
        right = evaluate(node.right, scope, math_namespace)
        return binary_operation(node.operator, left, right)

    if kind == "LogicalExpression":
        left = evaluate(node.left, scope, math_namespace)
        right = evaluate(node.right, scope, math_namespace)
        if node.operator == "&&":
            return right if to_boolean(left) else left
        if node.operator == "||":
            return left if to_boolean(left) else right
        raise NotConstant(f"unsupported operator {node.operator}")

    if kind == "CallExpression":
        member = _math_member(node.callee, scope, math_namespace)
        function = MATH_FUNCTIONS.get(member) if member else None
        if function is None:
            raise NotConstant("call to unknown function")
        args = [evaluate(arg, scope, math_namespace) for arg in node.arguments]
        return function(*args)

    raise NotConstant(f"unsupported node {kind}")


def evaluate_condition(node: Any, scope: Scope, math_namespace: str = "Math") -> Optional[bool]:
    """Decide a branch test statically.

    Returns:
        The truth value, or None when the test is not fully resolvable or
        evaluates to something other than a boolean or a number
    """
    try:
        value = evaluate(node, scope, math_namespace)
    except (NotConstant, ArithmeticError, ValueError, TypeError):
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return value > 0
    return None


# ---------------------------------------------------------------------------
# Traversal


def pattern_names(target: Any) -> list[str]:
    """Identifiers bound by an assignment target or destructuring pattern.

    Member expression targets bind no name.
    """
    kind = node_type(target)
    if kind == "Identifier":
        return [target.name]
    if kind == "ArrayPattern":
        return [name for element in target.elements if element is not None for name in pattern_names(element)]
    if kind == "ObjectPattern":
        names = []
        for prop in target.properties:
            names.extend(pattern_names(prop.value if node_type(prop) == "Property" else prop))
        return names
    if kind == "AssignmentPattern":
        return pattern_names(target.left)
    if kind == "RestElement":
        return pattern_names(target.argument)
    if kind == "VariableDeclaration":
        return [name for d in target.declarations for name in pattern_names(d.id)]
    return []


def collect_assigned_names(program: Any) -> set[str]:
    """Names written by an assignment, update or for-in/of head anywhere in the program."""
    names: set[str] = set()
    for node in walk(program):
        kind = node_type(node)
        if kind == "AssignmentExpression":
            names.update(pattern_names(node.left))
        elif kind == "UpdateExpression":
            names.update(pattern_names(node.argument))
        elif kind in ("ForInStatement", "ForOfStatement"):
            names.update(pattern_names(node.left))
    return names


def bind_constant_declarator(declarator: Any, scope: Scope, math_namespace: str, assigned: set[str]) -> None:
    """Record a literal or Math-member initializer in the scope."""
    if not is_identifier(declarator.id):
        return
    name = declarator.id.name
    init = declarator.init
    if init is None:
        return
    scope.pop(name, None)
    if name in assigned:
        return
    if node_type(init) == "Literal":
        try:
            scope[name] = LiteralBinding(literal_value(init))
        except NotConstant:
            pass
    elif (
        node_type(init) == "MemberExpression"
        and not init.computed
        and is_identifier(init.object, math_namespace)
        and is_identifier(init.property)
    ):
        scope[name] = MathRef(f"{math_namespace}.{init.property.name}")


def shadow_parameters(node: Any, scope: Scope) -> None:
    """Drop bindings hidden by the parameters of a function or catch clause."""
    params = node.params if node_type(node) in FUNCTION_TYPES else [node.param]
    for param in params:
        if param is None:
            continue
        for inner in walk(param):
            if is_identifier(inner):
                scope.pop(inner.name, None)


def _fold_test(test: Any, scope: Scope, math_namespace: str, out: list[Replacement]) -> bool:
    if node_type(test) == "Literal" and isinstance(test.value, bool):
        return False
    outcome = evaluate_condition(test, scope, math_namespace)
    if outcome is None:
        return False
    span = span_of(test)
    out.append(Replacement(span.start, span.end, "true" if outcome else "false"))
    return True


def _visit(node: Any, scope: Scope, math_namespace: str, assigned: set[str], out: list[Replacement]) -> None:
    kind = node_type(node)

    if kind in STATEMENT_LIST_TYPES:
        scope = dict(scope)
    elif kind in FUNCTION_TYPES or kind == "CatchClause":
        scope = dict(scope)
        shadow_parameters(node, scope)

    if kind == "VariableDeclaration":
        for declarator in node.declarations:
            if declarator.init is not None:
                _visit(declarator.init, scope, math_namespace, assigned, out)
            bind_constant_declarator(declarator, scope, math_namespace, assigned)
        return

    if kind in ("IfStatement", "ConditionalExpression"):
        folded = _fold_test(node.test, scope, math_namespace, out)
        for child in iter_child_nodes(node):
            if folded and child is node.test:
                continue
            _visit(child, scope, math_namespace, assigned, out)
        return

    for child in iter_child_nodes(node):
        _visit(child, scope, math_namespace, assigned, out)


def fold_conditions(parse_result: ParseResult, math_namespace: str = "Math") -> list[Replacement]:
    """Compute replacements for every statically decidable branch test.

    Args:
        parse_result: Parsed source snapshot
        math_namespace: Global identifier of the math namespace

    Returns:
        Replacements of branch tests by `true` / `false`
    """
    program = parse_result.program
    assigned = collect_assigned_names(program)
    replacements: list[Replacement] = []
    _visit(program, {}, math_namespace, assigned, replacements)
    debug_log("info", "Constant folding finished", {"conditions_folded": len(replacements)})
    return replacements
