"""Restricted compilation policy and runtime guards for scripts.

Scripts are compiled through RestrictedPython's node transformer. It rejects
private and dunder names, frame and generator internals, and exec/eval
calls on the parsed tree, where identifiers are already normalized. It also
rewrites attribute, item and iteration access into calls to the guards
defined here. The only relaxation is top-level ``await``.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import ast
import operator
import re
import types
from typing import Any, Dict, List, Optional, Tuple

from RestrictedPython.transformer import RestrictingNodeTransformer
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safer_getattr,
)
from RestrictedPython.PrintCollector import PrintCollector

_LINE_PREFIX = re.compile(r"^Line (\d+): ")

_MISSING = object()

_INPLACE_OPS = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "^=": operator.ixor,
    "|=": operator.ior,
}

# Objects whose attributes a script may never assign.
_WRITE_PROTECTED = (
    type,
    types.ModuleType,
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
)


class ScriptPolicy(RestrictingNodeTransformer):
    """RestrictedPython policy that also allows ``await``."""

    def visit_Await(self, node: ast.Await) -> ast.AST:
        return self.node_contents_visit(node)


def restrict(tree: ast.Module) -> List[str]:
    """Apply ScriptPolicy to a parsed module in place.

    Returns:
        Policy violations as "Line N: message" strings. Empty when the tree
        may be compiled.
    """
    errors: List[str] = []
    ScriptPolicy(errors=errors, warnings=[], used_names={}).visit(tree)
    return errors


def policy_violations(source: str) -> List[Tuple[Optional[int], str]]:
    """Check source against the policy without compiling it.

    Raises:
        SyntaxError: If the source does not parse.
    """
    violations = []
    for error in restrict(ast.parse(source)):
        match = _LINE_PREFIX.match(error)
        if match:
            violations.append((int(match.group(1)), error[match.end():]))
        else:
            violations.append((None, error))
    return violations


# =============================================================================
# Runtime guards
# =============================================================================

def guarded_getattr(ob: Any, name: str) -> Any:
    """Attribute reads: no private names and no str formatting."""
    if isinstance(ob, str) and name in ("format", "format_map"):
        raise NotImplementedError("str.format() is not available to scripts")
    value = safer_getattr(ob, name, _MISSING)
    if value is _MISSING:
        raise AttributeError(f"{type(ob).__name__!r} object has no attribute {name!r}")
    return value


def guarded_write(ob: Any) -> Any:
    """Attribute and item writes: allowed on runtime objects and containers."""
    if isinstance(ob, _WRITE_PROTECTED):
        raise TypeError(f"cannot assign to attributes of {type(ob).__name__} objects")
    return ob


def guarded_inplacevar(op: str, x: Any, y: Any) -> Any:
    fn = _INPLACE_OPS.get(op)
    if fn is None:
        raise TypeError(f"unsupported in-place operator: {op}")
    return fn(x, y)


def guarded_apply(fn: Any, *args: Any, **kwargs: Any) -> Any:
    return fn(*args, **kwargs)


def guard_bindings() -> Dict[str, Any]:
    """The helper names restricted code is rewritten to call."""
    return {
        "_getattr_": guarded_getattr,
        "_getitem_": default_guarded_getitem,
        "_getiter_": default_guarded_getiter,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": guarded_write,
        "_inplacevar_": guarded_inplacevar,
        "_apply_": guarded_apply,
        "_print_": PrintCollector,
        "__metaclass__": type,
        "__name__": "script",
    }
