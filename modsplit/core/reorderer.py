"""Array-permutation switch reordering.

Obfuscators flatten straight-line code into a loop over an index array
whose body dispatches on the current element:

    var order = [2, 0, 1, 3];
    function swap(a, i, j) { var t = a[i]; a[i] = a[j]; a[j] = t; }
    swap(order, 0, 3);
    for (const step of order) {
        switch (step) {
            case 0: first(); break;
            ...
        }
    }

The array is modeled at analysis time, recognized swap calls are replayed
against the model, and the loop is replaced by the case bodies in the
order the loop would have visited them.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional

from rich.console import Console

from modsplit.debug import debug_log
from modsplit.core.evaluator import (
    FUNCTION_TYPES,
    NotConstant,
    STATEMENT_LIST_TYPES,
    bind_constant_declarator,
    collect_assigned_names,
    evaluate,
    literal_value,
    number_to_string,
    shadow_parameters,
)
from modsplit.core.parser import (
    ParseResult,
    is_identifier,
    is_static_member,
    iter_child_nodes,
    iter_fields,
    node_type,
    source_of,
    span_of,
)
from modsplit.core.rewriter import Replacement
from modsplit.core.scope import ArrayBinding, Scope, SwapFunctionMarker

console = Console()

LOOP_TYPES = frozenset({"ForStatement", "ForInStatement", "ForOfStatement", "WhileStatement", "DoWhileStatement"})

MUTATING_ARRAY_METHODS = frozenset({
    "copyWithin", "fill", "pop", "push", "reverse", "shift", "sort", "splice", "unshift",
})


@dataclass
class _WalkState:
    """Accumulators threaded through one reordering traversal."""
    source_code: str
    assigned: set[str]
    math_namespace: str
    replacements: list[Replacement] = field(default_factory=list)
    # Region ids: code in one region runs once per run of its enclosing region
    regions: int = 0

    def new_region(self) -> int:
        self.regions += 1
        return self.regions


# ---------------------------------------------------------------------------
# Pattern recognition


def _is_indexed_access(node: Any, target: str) -> bool:
    return (
        node_type(node) == "MemberExpression"
        and bool(node.computed)
        and is_identifier(node.object, target)
    )


def _assignments_in(statement: Any) -> list[Any]:
    expression = statement.expression
    if node_type(expression) == "SequenceExpression":
        candidates = expression.expressions
    else:
        candidates = [expression]
    return [e for e in candidates if node_type(e) == "AssignmentExpression" and e.operator == "="]


def is_swap_function(function: Any) -> bool:
    """Whether a function structurally exchanges two elements of its first parameter.

    The body must capture an element into a local and assign at least two
    indexed elements of the first parameter.
    """
    if node_type(function) not in FUNCTION_TYPES:
        return False
    params = function.params or []
    if len(params) != 3 or not all(is_identifier(p) for p in params):
        return False
    if node_type(function.body) != "BlockStatement":
        return False

    target = params[0].name
    temp_captures = 0
    indexed_assignments = 0
    for statement in function.body.body:
        kind = node_type(statement)
        if kind == "VariableDeclaration":
            temp_captures += sum(
                1 for d in statement.declarations
                if is_identifier(d.id) and _is_indexed_access(d.init, target)
            )
        elif kind == "ExpressionStatement":
            indexed_assignments += sum(
                1 for a in _assignments_in(statement) if _is_indexed_access(a.left, target)
            )
    return temp_captures >= 1 and indexed_assignments >= 2


def integer_array_values(node: Any) -> Optional[list[int]]:
    """Values of an array literal made only of integer literals."""
    if node_type(node) != "ArrayExpression":
        return None
    values = []
    for element in node.elements:
        if node_type(element) != "Literal":
            return None
        try:
            value = literal_value(element)
        except NotConstant:
            return None
        if not isinstance(value, float) or value != int(value):
            return None
        values.append(int(value))
    return values


def constant_index(node: Any, scope: Scope, math_namespace: str = "Math") -> Optional[int]:
    """Resolve a swap index argument to a non-negative integer."""
    try:
        value = evaluate(node, scope, math_namespace)
    except (NotConstant, ArithmeticError, ValueError):
        return None
    if isinstance(value, bool) or not isinstance(value, float):
        return None
    if not math.isfinite(value) or value != int(value) or value < 0:
        return None
    return int(value)


def _sole_statement(statements: list[Any]) -> Optional[Any]:
    meaningful = [s for s in statements if node_type(s) != "EmptyStatement"]
    return meaningful[0] if len(meaningful) == 1 else None


def find_dispatch_switch(body: Any, loop_variable: str) -> Optional[Any]:
    """Find `switch (<loop_variable>)` as the whole loop body, directly or one block deep."""
    candidate = body
    for _depth in range(2):
        kind = node_type(candidate)
        if kind == "SwitchStatement":
            return candidate if is_identifier(candidate.discriminant, loop_variable) else None
        if kind != "BlockStatement":
            return None
        candidate = _sole_statement(candidate.body)
    return None


def _case_value(test: Any) -> Optional[float]:
    """Numeric value of a case test, or None if it is not a numeric literal."""
    negate = False
    if node_type(test) == "UnaryExpression" and test.operator == "-":
        negate, test = True, test.argument
    if node_type(test) != "Literal":
        return None
    try:
        value = literal_value(test)
    except NotConstant:
        return None
    if isinstance(value, bool) or not isinstance(value, float):
        return None
    return -value if negate else value


def _is_trailing_exit(statement: Any, allow_return: bool) -> bool:
    kind = node_type(statement)
    if kind in ("BreakStatement", "ContinueStatement"):
        return getattr(statement, "label", None) is None
    if kind == "ReturnStatement" and allow_return:
        return getattr(statement, "argument", None) is None
    return False


def render_reordered_cases(
    switch: Any,
    order: list[int],
    source_code: str,
    allow_return: bool = False,
) -> Optional[str]:
    """Concatenate case bodies in the given dispatch order.

    Returns:
        Replacement text, or None when some case test is not a numeric literal
    """
    cases: dict[float, Any] = {}
    for case in switch.cases:
        if case.test is None:
            continue
        value = _case_value(case.test)
        if value is None:
            return None
        cases.setdefault(value, case)

    recovered = ", ".join(str(v) for v in order)
    fragments = [f"/* recovered order: {recovered} */"]
    for value in order:
        case = cases.get(float(value))
        if case is None:
            continue
        statements = list(case.consequent)
        if statements and _is_trailing_exit(statements[-1], allow_return):
            statements.pop()
        fragments.append(f"/* case {number_to_string(float(value))} */")
        fragments.extend(source_of(source_code, s) for s in statements)
    return "\n".join(fragments)


# ---------------------------------------------------------------------------
# Traversal


def _tracked_array(node: Any, scope: Scope) -> Optional[ArrayBinding]:
    if not is_identifier(node):
        return None
    binding = scope.get(node.name)
    return binding if isinstance(binding, ArrayBinding) else None


def _for_of_variable(left: Any) -> Optional[str]:
    if is_identifier(left):
        return left.name
    if node_type(left) == "VariableDeclaration" and len(left.declarations) == 1:
        declarator = left.declarations[0]
        if is_identifier(declarator.id) and declarator.init is None:
            return declarator.id.name
    return None


def _try_reorder(
    node: Any,
    array: Optional[ArrayBinding],
    variable: Optional[str],
    body: Any,
    allow_return: bool,
    region: int,
    state: _WalkState,
) -> bool:
    if array is None or variable is None:
        return False
    if array.poisoned or array.region != region:
        return False
    switch = find_dispatch_switch(body, variable)
    if switch is None:
        return False
    span = span_of(node)
    order = list(array.values)
    text = render_reordered_cases(switch, order, state.source_code, allow_return)
    if text is None:
        debug_log("info", "Switch has non-literal case tests; loop left untouched", {
            "span": [span.start, span.end],
        })
        return False
    state.replacements.append(Replacement(span.start, span.end, text))
    debug_log("info", "Reordered switch loop", {"span": [span.start, span.end], "order": order})
    return True


def _reorder_for_of(node: Any, scope: Scope, region: int, state: _WalkState) -> bool:
    return _try_reorder(
        node,
        _tracked_array(node.right, scope),
        _for_of_variable(node.left),
        node.body,
        False,
        region,
        state,
    )


def _reorder_for_each(node: Any, scope: Scope, region: int, state: _WalkState) -> bool:
    call = node.expression
    if node_type(call) != "CallExpression" or not is_static_member(call.callee, property_name="forEach"):
        return False
    arguments = call.arguments or []
    if len(arguments) != 1 or node_type(arguments[0]) not in ("FunctionExpression", "ArrowFunctionExpression"):
        return False
    callback = arguments[0]
    if not callback.params or not is_identifier(callback.params[0]):
        return False
    return _try_reorder(
        node,
        _tracked_array(call.callee.object, scope),
        callback.params[0].name,
        callback.body,
        True,
        region,
        state,
    )


def _apply_swap_call(node: Any, scope: Scope, region: int, state: _WalkState) -> None:
    if not is_identifier(node.callee) or not isinstance(scope.get(node.callee.name), SwapFunctionMarker):
        return
    arguments = node.arguments or []
    array = _tracked_array(arguments[0], scope) if arguments else None
    if array is None or array.poisoned:
        return
    if len(arguments) != 3 or array.region != region:
        array.poison()
        return
    i = constant_index(arguments[1], scope, state.math_namespace)
    j = constant_index(arguments[2], scope, state.math_namespace)
    if i is None or j is None or i >= len(array.values) or j >= len(array.values):
        debug_log("info", "Swap with non-constant index; array no longer modeled", {
            "call": source_of(state.source_code, node),
        })
        array.poison()
        return
    array.swap(i, j)


def _poison_on_write(node: Any, scope: Scope) -> None:
    kind = node_type(node)
    target = None
    if kind == "AssignmentExpression":
        target = node.left
    elif kind == "UpdateExpression" or (kind == "UnaryExpression" and node.operator == "delete"):
        target = node.argument
    elif kind == "CallExpression" and node_type(node.callee) == "MemberExpression":
        member = node.callee
        if not member.computed and is_identifier(member.property) and member.property.name in MUTATING_ARRAY_METHODS:
            target = member
    if node_type(target) == "MemberExpression":
        array = _tracked_array(target.object, scope)
        if array is not None:
            array.poison()


def _bind_declarator(declarator: Any, scope: Scope, region: int, state: _WalkState) -> None:
    if not is_identifier(declarator.id) or declarator.init is None:
        return
    name = declarator.id.name
    init = declarator.init
    values = integer_array_values(init)
    if values is not None and name not in state.assigned:
        scope[name] = ArrayBinding(values, region=region)
    elif is_swap_function(init) and name not in state.assigned:
        scope[name] = SwapFunctionMarker(name)
    else:
        bind_constant_declarator(declarator, scope, state.math_namespace, state.assigned)


def _statement_list(node: Any) -> list[Any]:
    if node_type(node) == "SwitchCase":
        return node.consequent
    return node.body


def _visit(node: Any, scope: Scope, region: int, state: _WalkState) -> None:
    kind = node_type(node)

    if kind in STATEMENT_LIST_TYPES:
        scope = dict(scope)
        # function declarations are hoisted
        for statement in _statement_list(node):
            if node_type(statement) == "FunctionDeclaration" and is_identifier(statement.id):
                if is_swap_function(statement) and statement.id.name not in state.assigned:
                    scope[statement.id.name] = SwapFunctionMarker(statement.id.name)

    if kind == "FunctionDeclaration" and is_swap_function(node):
        return
    if kind == "CatchClause":
        scope = dict(scope)
        shadow_parameters(node, scope)

    if kind == "VariableDeclaration":
        for declarator in node.declarations:
            if declarator.init is not None and not is_swap_function(declarator.init):
                _visit(declarator.init, scope, region, state)
            _bind_declarator(declarator, scope, region, state)
        return

    if kind == "ForOfStatement" and _reorder_for_of(node, scope, region, state):
        return
    if kind == "ExpressionStatement" and _reorder_for_each(node, scope, region, state):
        return

    _poison_on_write(node, scope)
    if kind == "CallExpression":
        # arguments are evaluated before the call runs
        for argument in node.arguments or []:
            _visit(argument, scope, region, state)
        if node_type(node.callee) in FUNCTION_TYPES:
            # immediately invoked: body runs once, in this region
            _visit_function(node.callee, scope, region, state)
        else:
            _visit(node.callee, scope, region, state)
            _apply_swap_call(node, scope, region, state)
        return

    if kind in FUNCTION_TYPES:
        _visit_function(node, scope, state.new_region(), state)
        return

    branch_fields = _branch_fields(node)
    for name, child in _named_children(node):
        child_region = state.new_region() if name in branch_fields else region
        _visit(child, scope, child_region, state)


def _visit_function(node: Any, scope: Scope, region: int, state: _WalkState) -> None:
    scope = dict(scope)
    shadow_parameters(node, scope)
    for child in iter_child_nodes(node):
        _visit(child, scope, region, state)


def _branch_fields(node: Any) -> frozenset:
    """Child fields that may run zero or many times per run of the node."""
    kind = node_type(node)
    if kind in ("IfStatement", "ConditionalExpression"):
        return frozenset({"consequent", "alternate"})
    if kind == "LogicalExpression":
        return frozenset({"right"})
    if kind in LOOP_TYPES:
        return frozenset({"test", "update", "body"})
    if kind == "SwitchStatement":
        return frozenset({"cases"})
    if kind == "TryStatement":
        return frozenset({"handler", "finalizer"})
    return frozenset()


def _named_children(node: Any):
    for name, value in iter_fields(node):
        if isinstance(value, list):
            for item in value:
                if node_type(item):
                    yield name, item
        elif node_type(value):
            yield name, value


def reorder_switches(parse_result: ParseResult, math_namespace: str = "Math") -> list[Replacement]:
    """Compute replacements unrolling array-permutation driven switch loops.

    Args:
        parse_result: Parsed source snapshot
        math_namespace: Global identifier of the math namespace, for index folding

    Returns:
        One replacement per recovered loop
    """
    program = parse_result.program
    state = _WalkState(
        source_code=parse_result.source_code,
        assigned=collect_assigned_names(program),
        math_namespace=math_namespace,
    )
    _visit(program, {}, state.new_region(), state)
    if state.replacements:
        console.print(f"[blue]Recovered {len(state.replacements)} reordered switch loop(s)[/blue]")
    return state.replacements
