"""Template resolution for script configuration variables.

Two layers are involved when a script is configured:

* configuration values may reference each other with ``{{NAME}}``
  placeholders or compute values with ``[[ expression ]]``;
  :class:`TemplateResolver` resolves them against the merged variable mapping.
* the script text itself refers to resolved variables as ``@NAME@``;
  :func:`substitute_variables` replaces those references.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional
import ast
import operator
import os
import re


_PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")
_EXPRESSION_PATTERN = re.compile(r"^\s*\[\[(?P<expr>.*)\]\]\s*$", re.DOTALL)
_SINGLE_PLACEHOLDER_PATTERN = re.compile(r"^\s*\{\{([^{}]+)\}\}\s*$")
_AT_VARIABLE_PATTERN = re.compile(r"@([A-Za-z_][A-Za-z0-9_]*)@")

_ALLOWED_BIN_OPS: dict[type[ast.AST], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_ALLOWED_UNARY_OPS: dict[type[ast.AST], Any] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_ALLOWED_COMPARISONS: dict[type[ast.AST], Any] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}


@dataclass(frozen=True)
class _AllowedCallSpec:
    func: Callable[..., Any]
    min_args: int = 1
    max_args: Optional[int] = 1


_ALLOWED_CALLS: dict[str, _AllowedCallSpec] = {
    "str": _AllowedCallSpec(str),
    "int": _AllowedCallSpec(int),
    "bool": _AllowedCallSpec(bool),
    "len": _AllowedCallSpec(len),
    "lower": _AllowedCallSpec(str.lower),
    "upper": _AllowedCallSpec(str.upper),
    "min": _AllowedCallSpec(min, 1, None),
    "max": _AllowedCallSpec(max, 1, None),
}


class TemplateError(ValueError):
    """Raised when template resolution fails."""


@dataclass(slots=True)
class TemplateResolver:
    """Resolves placeholders and expressions using a nested mapping context."""

    context: Mapping[str, Any]
    _cache: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def resolve(self, value: Any) -> Any:
        return self._resolve_value(value, stack=[])

    def resolve_all(self) -> dict[str, Any]:
        """Return a copy of the context with every top-level entry resolved."""
        return {str(key): self._resolve_path(str(key), stack=[]) for key in self.context}

    def _resolve_value(self, value: Any, *, stack: list[str]) -> Any:
        if isinstance(value, str):
            return self._resolve_string(value, stack=stack)
        if isinstance(value, list):
            return [self._resolve_value(item, stack=list(stack)) for item in value]
        if isinstance(value, tuple):
            return tuple(self._resolve_value(item, stack=list(stack)) for item in value)
        if isinstance(value, dict):
            return {key: self._resolve_value(val, stack=list(stack)) for key, val in value.items()}
        return value

    def _resolve_string(self, value: str, *, stack: list[str]) -> Any:
        expression_match = _EXPRESSION_PATTERN.match(value)
        if expression_match:
            expr = self._substitute(expression_match.group("expr"), stack=stack, for_expression=True)
            return self._evaluate_expression(expr.strip())
        placeholder_match = _SINGLE_PLACEHOLDER_PATTERN.match(value)
        if placeholder_match:
            return self._resolve_path(placeholder_match.group(1).strip(), stack=stack)
        return self._substitute(value, stack=stack, for_expression=False)

    def _substitute(self, text: str, *, stack: list[str], for_expression: bool) -> str:
        def replacement(match: re.Match[str]) -> str:
            result = self._resolve_path(match.group(1).strip(), stack=stack)
            if for_expression or isinstance(result, (dict, list, tuple)):
                return repr(result)
            return str(result)

        return _PLACEHOLDER_PATTERN.sub(replacement, text)

    def _resolve_path(self, path: str, *, stack: list[str]) -> Any:
        if path in self._cache:
            return self._cache[path]
        if path in stack:
            cycle = " -> ".join(stack + [path])
            raise TemplateError(f"Circular dependency detected: {cycle}")

        raw_value = self._lookup_raw(path)
        stack.append(path)
        resolved = self._resolve_value(raw_value, stack=stack)
        stack.pop()
        self._cache[path] = resolved
        return resolved

    def _lookup_raw(self, path: str) -> Any:
        if path in self.context:
            return self.context[path]
        current: Any = self.context
        for part in path.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
                continue
            raise TemplateError(f"Cannot resolve variable '{path}'")
        return current

    def _evaluate_expression(self, expression: str) -> Any:
        try:
            node = ast.parse(expression, mode="eval")
        except SyntaxError as exc:
            raise TemplateError(f"Invalid expression syntax: {exc.msg}") from exc
        return _ExpressionEvaluator().visit(node)


class _ExpressionEvaluator(ast.NodeVisitor):
    def visit(self, node: ast.AST) -> Any:  # type: ignore[override]
        if isinstance(node, ast.Expression):
            return self.visit(node.body)
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, (ast.List, ast.Tuple)):
            items = [self.visit(element) for element in node.elts]
            return items if isinstance(node, ast.List) else tuple(items)
        if isinstance(node, ast.BinOp) and type(node.op) in _ALLOWED_BIN_OPS:
            return _ALLOWED_BIN_OPS[type(node.op)](self.visit(node.left), self.visit(node.right))
        if isinstance(node, ast.UnaryOp) and type(node.op) in _ALLOWED_UNARY_OPS:
            return _ALLOWED_UNARY_OPS[type(node.op)](self.visit(node.operand))
        if isinstance(node, ast.BoolOp):
            values = [bool(self.visit(value)) for value in node.values]
            return all(values) if isinstance(node.op, ast.And) else any(values)
        if isinstance(node, ast.Compare):
            left = self.visit(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                compare = _ALLOWED_COMPARISONS.get(type(op))
                if compare is None:
                    raise TemplateError(f"Comparison operator '{type(op).__name__}' is not allowed")
                right = self.visit(comparator)
                if not compare(left, right):
                    return False
                left = right
            return True
        if isinstance(node, ast.IfExp):
            return self.visit(node.body if self.visit(node.test) else node.orelse)
        if isinstance(node, ast.Call):
            return self._visit_call(node)
        raise TemplateError(f"Expression node '{type(node).__name__}' is not allowed")

    def _visit_call(self, node: ast.Call) -> Any:
        if not isinstance(node.func, ast.Name):
            raise TemplateError("Only simple function names are allowed in expressions")
        func_name = node.func.id
        spec = _ALLOWED_CALLS.get(func_name)
        if spec is None:
            raise TemplateError(f"Function '{func_name}' is not allowed in expressions")
        if node.keywords:
            raise TemplateError(f"Keyword arguments are not allowed for function '{func_name}'")
        args = [self.visit(arg) for arg in node.args]
        if len(args) < spec.min_args or (spec.max_args is not None and len(args) > spec.max_args):
            raise TemplateError(f"Function '{func_name}' called with {len(args)} arguments")
        try:
            return spec.func(*args)
        except (TypeError, ValueError) as exc:
            raise TemplateError(f"Function '{func_name}' could not convert value: {exc}") from exc


def format_variable(value: Any) -> str:
    """Render a resolved variable for insertion into script text.

    Sequences are joined with :data:`os.pathsep` so that lists of module
    directories can be used directly as search paths.
    """

    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, (list, tuple)):
        return os.pathsep.join(format_variable(item) for item in value)
    return str(value)


def substitute_variables(text: str, variables: Mapping[str, Any], *, strict: bool = False) -> str:
    """Replace ``@NAME@`` references in *text* by their values.

    Unknown names are left untouched unless *strict* is set, in which case a
    :class:`TemplateError` names the first undefined variable.
    """

    def replacement(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in variables:
            return format_variable(variables[name])
        if strict:
            raise TemplateError(f"Undefined script configuration variable '{name}'")
        return match.group(0)

    return _AT_VARIABLE_PATTERN.sub(replacement, text)


__all__ = [
    "TemplateError",
    "TemplateResolver",
    "format_variable",
    "substitute_variables",
]
