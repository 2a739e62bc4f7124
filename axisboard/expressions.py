"""
Compilation of user-supplied expressions (axis transforms, card styles,
whole-set filters).

Expressions are one-argument Python lambdas, for example::

    lambda v: v // 10 * 10
    lambda docs: [d for d in docs if d.get("priority", 0) > 2]

The default evaluator parses the text with ``ast`` and only accepts a small
set of expression nodes, then evaluates it against a restricted builtins
table. This narrows what a board block can do but is not a security sandbox:
board blocks are trusted user content.

Compilation yields one of three variants:

- ``Identity``: no expression configured
- ``Compiled``: a callable
- ``Invalid``: the text could not be compiled; applies as identity
"""

import ast
import logging
import math
from typing import Any, Callable, Optional, Protocol, Union

logger = logging.getLogger(__name__)


class ExpressionError(ValueError):
    """Expression text is not an acceptable one-argument function."""


# Builtins visible to expressions
SAFE_BUILTINS: dict[str, Any] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "enumerate": enumerate,
    "filter": filter,
    "float": float,
    "int": int,
    "isinstance": isinstance,
    "len": len,
    "list": list,
    "map": map,
    "max": max,
    "min": min,
    "range": range,
    "reversed": reversed,
    "round": round,
    "set": set,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "tuple": tuple,
    "zip": zip,
    "None": None,
    "True": True,
    "False": False,
}

_ALLOWED_NODES = (
    ast.Expression, ast.Lambda, ast.arguments, ast.arg,
    ast.BinOp, ast.UnaryOp, ast.BoolOp, ast.Compare, ast.IfExp,
    ast.Call, ast.keyword, ast.Name, ast.Constant, ast.Attribute,
    ast.Subscript, ast.Slice, ast.List, ast.Tuple, ast.Dict, ast.Set,
    ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp, ast.comprehension,
    ast.JoinedStr, ast.FormattedValue, ast.Starred,
    ast.operator, ast.unaryop, ast.cmpop, ast.boolop, ast.expr_context,
)


# Format strings can reach attributes the tree check never sees
_BLOCKED_ATTRIBUTES = frozenset({"format", "format_map"})


def _check_tree(tree: ast.AST) -> None:
    """Reject anything outside the whitelisted expression subset."""
    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise ExpressionError(f"Private attribute access not allowed: {node.attr}")
        if isinstance(node, ast.Attribute) and node.attr in _BLOCKED_ATTRIBUTES:
            raise ExpressionError(f"Attribute not allowed: {node.attr}")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise ExpressionError(f"Name not allowed: {node.id}")


def compile_lambda(text: str) -> Callable[[Any], Any]:
    """
    Compile a one-argument lambda with the restricted evaluator.

    Raises:
        ExpressionError: If the text is not a lambda, uses unsupported
            syntax, or does not evaluate to a callable
    """
    source = text.strip()
    if not source.startswith("lambda"):
        raise ExpressionError("Expression must be a lambda, e.g. lambda v: ...")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Syntax error: {e.msg}") from e

    body = tree.body
    if not isinstance(body, ast.Lambda):
        raise ExpressionError("Expression must be a single lambda")
    args = body.args
    if (len(args.args) + len(args.posonlyargs) != 1 or args.vararg or args.kwarg
            or args.kwonlyargs):
        raise ExpressionError("Lambda must take exactly one argument")
    _check_tree(tree)

    code = compile(tree, "<expression>", "eval")
    fn = eval(code, {"__builtins__": SAFE_BUILTINS, "math": math})
    if not callable(fn):
        raise ExpressionError("Expression did not evaluate to a function")
    return fn


class Evaluator(Protocol):
    """Turns expression text into a callable, raising ExpressionError if it can't."""

    def __call__(self, text: str) -> Callable[[Any], Any]: ...


class ExpressionRegistry:
    """
    Registry of expression evaluators, selected by name from engine settings.

    Example:
        registry = ExpressionRegistry()
        registry.register("lambda", compile_lambda)
        fn = registry.evaluator("lambda")("lambda v: v * 2")
    """

    def __init__(self):
        self._evaluators: dict[str, Evaluator] = {}

    def register(self, name: str, evaluator: Evaluator) -> None:
        """Register an evaluator under a name."""
        self._evaluators[name] = evaluator

    def evaluator(self, name: str) -> Evaluator:
        if name not in self._evaluators:
            available = ", ".join(self._evaluators.keys()) or "none"
            raise ValueError(
                f"Unknown expression evaluator: '{name}'. "
                f"Available evaluators: {available}."
            )
        return self._evaluators[name]

    def names(self) -> list[str]:
        return sorted(self._evaluators)


_registry: Optional[ExpressionRegistry] = None


def get_registry() -> ExpressionRegistry:
    """Get the default evaluator registry."""
    global _registry
    if _registry is None:
        _registry = ExpressionRegistry()
        _registry.register("lambda", compile_lambda)
    return _registry


# ---------------------------------------------------------------------------
# Compiled expression variants
# ---------------------------------------------------------------------------


class Identity:
    """No expression configured: values pass through unchanged."""

    active = False
    source: Optional[str] = None

    def apply(self, value: Any) -> Any:
        return value

    def __repr__(self) -> str:
        return "Identity()"


class Invalid:
    """An expression that failed to compile. Applies as identity."""

    active = False

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason

    def apply(self, value: Any) -> Any:
        return value

    def __repr__(self) -> str:
        return f"Invalid({self.reason!r})"


class Compiled:
    """A compiled one-argument function."""

    active = True

    def __init__(self, source: str, fn: Callable[[Any], Any]):
        self.source = source
        self.fn = fn

    def __call__(self, value: Any) -> Any:
        """Call the function, letting exceptions propagate."""
        return self.fn(value)

    def apply(self, value: Any) -> Any:
        """Apply the function to one value.

        A failure on this value returns the value unchanged and is logged;
        it never aborts the caller.
        """
        try:
            return self.fn(value)
        except Exception as e:
            logger.warning("Transform failed for value %r: %s", value, e)
            return value

    def __repr__(self) -> str:
        return f"Compiled({self.source!r})"


Expression = Union[Identity, Compiled, Invalid]

IDENTITY = Identity()


def compile_expression(
    text: Optional[str],
    *,
    evaluator: str = "lambda",
    registry: Optional[ExpressionRegistry] = None,
) -> Expression:
    """
    Compile expression text into an Identity, Compiled or Invalid variant.

    Empty or missing text yields Identity. Compile failures are logged and
    yield Invalid; they never raise.
    """
    if text is None or not text.strip():
        return IDENTITY
    compile_fn = (registry or get_registry()).evaluator(evaluator)
    try:
        fn = compile_fn(text)
    except Exception as e:
        logger.warning("Failed to compile expression %r: %s", text.strip(), e)
        return Invalid(text, str(e))
    return Compiled(text, fn)


def compile_transform(text: Optional[str], **kwargs) -> Expression:
    """Compile an axis transform. Alias of compile_expression."""
    return compile_expression(text, **kwargs)
