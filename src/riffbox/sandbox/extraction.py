"""Structural scans of script source for registry tracking.

Declarations are read from the script text, not from interpreter state:
- ``name = Constructor(...)`` for instrument constructors
- ``name.target.seq(values, timings)`` for sequences

Anything built through indirection (helper functions, loops, containers) is
not seen. Tracking is best-effort metadata, so every scan returns an empty
result instead of raising.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import ast
import logging
import operator
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from riffbox.sandbox.capabilities import INSTRUMENT_CONSTRUCTORS

logger = logging.getLogger(__name__)

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


@dataclass(frozen=True)
class SequenceDeclaration:
    """A ``var.target.seq(...)`` call found in source."""

    var_name: str
    target: str
    values: Tuple[Any, ...] = ()
    timings: Tuple[float, ...] = ()
    line: Optional[int] = None


def _parse(source: str) -> Optional[ast.Module]:
    try:
        return ast.parse(source)
    except (SyntaxError, ValueError) as e:
        logger.debug(f"Declaration scan skipped, source does not parse: {e}")
        return None


def _in_source_order(nodes: List[ast.AST]) -> List[ast.AST]:
    return sorted(nodes, key=lambda n: (getattr(n, "lineno", 0), getattr(n, "col_offset", 0)))


def _constructor_of(node: ast.AST) -> Optional[str]:
    """Return the instrument constructor at the root of a call chain.

    ``Synth()`` and ``Synth("bass").connect(verb)`` both resolve to "Synth".
    """
    while isinstance(node, (ast.Call, ast.Attribute)):
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
            name = node.func.id
            return name if name in INSTRUMENT_CONSTRUCTORS else None
        node = node.func if isinstance(node, ast.Call) else node.value
    return None


def _literal(node: ast.AST) -> Any:
    """Evaluate a literal, allowing numeric arithmetic such as ``1/4``.

    Raises:
        ValueError: If the node is not a literal.
    """
    if isinstance(node, ast.Constant):
        return node.value
    if isinstance(node, (ast.List, ast.Tuple)):
        return [_literal(elt) for elt in node.elts]
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_literal(node.operand))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left, right = _literal(node.left), _literal(node.right)
        if not all(isinstance(v, (int, float)) for v in (left, right)):
            raise ValueError("arithmetic on non-numeric literal")
        try:
            return _BINARY_OPS[type(node.op)](left, right)
        except ZeroDivisionError:
            raise ValueError("division by zero in literal")
    raise ValueError(f"not a literal: {type(node).__name__}")


def _as_tuple(node: Optional[ast.AST]) -> Tuple[Any, ...]:
    if node is None:
        return ()
    try:
        value = _literal(node)
    except ValueError:
        return ()
    if isinstance(value, list):
        return tuple(value)
    return (value,)


def _as_timings(node: Optional[ast.AST]) -> Tuple[float, ...]:
    values = _as_tuple(node)
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
        return ()
    return tuple(float(v) for v in values)


def extract_instrument_declarations(source: str) -> Dict[str, str]:
    """Find ``name = Constructor(...)`` declarations.

    Args:
        source: Script text.

    Returns:
        Mapping of binding name to constructor name, in source order. A name
        bound twice keeps the last constructor.
    """
    tree = _parse(source)
    if tree is None:
        return {}

    declarations: Dict[str, str] = {}
    assigns = [n for n in ast.walk(tree) if isinstance(n, (ast.Assign, ast.AnnAssign))]
    for node in _in_source_order(assigns):
        if node.value is None:
            continue
        kind = _constructor_of(node.value)
        if kind is None:
            continue
        targets = node.targets if isinstance(node, ast.Assign) else [node.target]
        for target in targets:
            if isinstance(target, ast.Name):
                declarations[target.id] = kind
    return declarations


def extract_sequence_declarations(source: str) -> List[SequenceDeclaration]:
    """Find ``name.target.seq(values, timings)`` invocations.

    Literal values and timings are recovered. Non-literal arguments leave
    the corresponding field empty.
    """
    tree = _parse(source)
    if tree is None:
        return []

    calls = [n for n in ast.walk(tree) if isinstance(n, ast.Call)]
    sequences = []
    for call in _in_source_order(calls):
        func = call.func
        if not (isinstance(func, ast.Attribute) and func.attr == "seq"):
            continue
        prop = func.value
        if not (isinstance(prop, ast.Attribute) and isinstance(prop.value, ast.Name)):
            continue

        args = list(call.args)
        keywords = {kw.arg: kw.value for kw in call.keywords if kw.arg}
        values_node = args[0] if args else keywords.get("values")
        timings_node = args[1] if len(args) > 1 else keywords.get("timings")

        sequences.append(
            SequenceDeclaration(
                var_name=prop.value.id,
                target=prop.attr,
                values=_as_tuple(values_node),
                timings=_as_timings(timings_node),
                line=call.lineno,
            )
        )
    return sequences
