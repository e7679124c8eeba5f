"""Decision-tree evaluator for clinical scoring algorithms.

Algorithms are JSON documents shipped in ``bundle_engine/algorithms``::

    {
      "name": "...", "version": "1.0", "output_range": [0, 6],
      "computed_inputs": {"adl_total": {"formula": "C2a + C2b"}},
      "tree": {"condition": "adl_total >= 4",
               "true_branch": {"return": 3},
               "false_branch": {"return": 1}}
    }

Conditions and formulas use a small expression language: variables (unknown
names read as 0), integer/decimal/boolean literals, ``+ - * /``,
``== != >= <= > <``, ``&& || !``, parentheses and ``cond ? a : b``.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

from bundle_engine.exceptions import AlgorithmDefinitionError, ExpressionError

logger = logging.getLogger(__name__)

ALGORITHMS_DIR = Path(__file__).resolve().parent.parent / "algorithms"

_REQUIRED_FIELDS = ("name", "version", "output_range", "tree")

Evaluator = Callable[[Mapping[str, Any]], Any]


# ── Expression language ──

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<number>\d+(?:\.\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<op>==|!=|>=|<=|&&|\|\||[-+*/<>!?:()])"
    r")"
)

_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
}


def _tokenize(expression: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    expression = expression.rstrip()
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None or match.end() == pos:
            raise ExpressionError(f"Unexpected character at {pos} in {expression!r}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive-descent parser producing nested closures.

    Precedence, lowest first: ternary, ||, &&, comparison, + -, * /, unary !.
    """

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.pos = 0

    def parse(self) -> Evaluator:
        if not self.tokens:
            raise ExpressionError("Empty expression")
        node = self._ternary()
        if self.pos != len(self.tokens):
            raise ExpressionError(
                f"Unexpected token {self.tokens[self.pos][1]!r} in {self.expression!r}"
            )
        return node

    def _peek(self) -> str | None:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos][1]
        return None

    def _take(self, expected: str | None = None) -> tuple[str, str]:
        if self.pos >= len(self.tokens):
            raise ExpressionError(f"Unexpected end of expression {self.expression!r}")
        token = self.tokens[self.pos]
        if expected is not None and token[1] != expected:
            raise ExpressionError(f"Expected {expected!r} but found {token[1]!r}")
        self.pos += 1
        return token

    def _ternary(self) -> Evaluator:
        condition = self._or()
        if self._peek() != "?":
            return condition
        self._take("?")
        when_true = self._ternary()
        self._take(":")
        when_false = self._ternary()
        return lambda ctx: when_true(ctx) if condition(ctx) else when_false(ctx)

    def _or(self) -> Evaluator:
        operands = [self._and()]
        while self._peek() == "||":
            self._take()
            operands.append(self._and())
        if len(operands) == 1:
            return operands[0]
        return lambda ctx: any(operand(ctx) for operand in operands)

    def _and(self) -> Evaluator:
        operands = [self._comparison()]
        while self._peek() == "&&":
            self._take()
            operands.append(self._comparison())
        if len(operands) == 1:
            return operands[0]
        return lambda ctx: all(operand(ctx) for operand in operands)

    def _comparison(self) -> Evaluator:
        left = self._additive()
        op = self._peek()
        if op not in _COMPARISONS:
            return left
        self._take()
        right = self._additive()
        compare = _COMPARISONS[op]
        return lambda ctx: compare(left(ctx), right(ctx))

    def _additive(self) -> Evaluator:
        node = self._multiplicative()
        while self._peek() in ("+", "-"):
            op = self._take()[1]
            node = _binary(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Evaluator:
        node = self._unary()
        while self._peek() in ("*", "/"):
            op = self._take()[1]
            node = _binary(op, node, self._unary())
        return node

    def _unary(self) -> Evaluator:
        if self._peek() == "!":
            self._take()
            operand = self._unary()
            return lambda ctx: not operand(ctx)
        if self._peek() == "-":
            self._take()
            operand = self._unary()
            return lambda ctx: -operand(ctx)
        return self._primary()

    def _primary(self) -> Evaluator:
        kind, text = self._take()
        if text == "(":
            node = self._ternary()
            self._take(")")
            return node
        if kind == "number":
            value = float(text) if "." in text else int(text)
            return lambda ctx: value
        if kind == "name":
            if text == "true":
                return lambda ctx: True
            if text == "false":
                return lambda ctx: False
            return lambda ctx: _numeric(ctx.get(text, 0))
        raise ExpressionError(f"Unexpected token {text!r} in {self.expression!r}")


def _numeric(value: Any) -> Any:
    if value is None:
        return 0
    if isinstance(value, str):
        try:
            return float(value) if "." in value else int(value)
        except ValueError:
            return 0
    return value


def _binary(op: str, left: Evaluator, right: Evaluator) -> Evaluator:
    if op == "+":
        return lambda ctx: left(ctx) + right(ctx)
    if op == "-":
        return lambda ctx: left(ctx) - right(ctx)
    if op == "*":
        return lambda ctx: left(ctx) * right(ctx)

    def divide(ctx: Mapping[str, Any]) -> Any:
        denominator = right(ctx)
        if denominator == 0:
            raise ExpressionError("Division by zero")
        return left(ctx) / denominator

    return divide


@lru_cache(maxsize=512)
def compile_expression(expression: str) -> Evaluator:
    """Parse an expression once; the returned callable takes a variable mapping."""
    return _Parser(expression.strip()).parse()


def evaluate_expression(expression: str, context: Mapping[str, Any]) -> Any:
    return compile_expression(expression)(context)


# ── Engine ──


class DecisionTreeEngine:
    """Loads, validates, caches and runs algorithm definitions."""

    def __init__(self, algorithms_path: Path | str | None = None):
        self.algorithms_path = Path(algorithms_path) if algorithms_path else ALGORITHMS_DIR
        self._loaded: dict[str, dict[str, Any]] = {}

    def load_algorithm(self, name: str) -> dict[str, Any]:
        if name in self._loaded:
            return self._loaded[name]

        path = self.algorithms_path / f"{name}.json"
        if not path.is_file():
            raise AlgorithmDefinitionError(f"Algorithm file not found: {path.name}")
        try:
            definition = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise AlgorithmDefinitionError(f"Invalid JSON in algorithm {name}: {e}") from e

        self.validate_algorithm(definition)
        self._loaded[name] = definition
        return definition

    def register_algorithm(self, name: str, definition: dict[str, Any]) -> None:
        """Add an in-memory definition (validated like a file-backed one)."""
        self.validate_algorithm(definition)
        self._loaded[name] = definition

    def evaluate(self, name: str, inputs: Mapping[str, Any]) -> int | bool:
        algorithm = self.load_algorithm(name)
        context = dict(inputs)
        context.update(self._compute_inputs(algorithm.get("computed_inputs") or {}, inputs))
        return self._traverse(algorithm["tree"], context)

    def algorithm_meta(self, name: str) -> dict[str, Any]:
        algorithm = self.load_algorithm(name)
        return {
            "name": algorithm.get("name", name),
            "version": algorithm.get("version", "unknown"),
            "verification_status": algorithm.get("verification_status", "unverified"),
            "verification_source": algorithm.get("verification_source"),
            "output_range": algorithm.get("output_range", [0, 1]),
            "output_type": algorithm.get("output_type", "integer"),
            "description": algorithm.get("description", ""),
            "items_used": algorithm.get("items_used", []),
        }

    def available_algorithms(self) -> dict[str, dict[str, Any]]:
        algorithms: dict[str, dict[str, Any]] = {}
        for path in sorted(self.algorithms_path.glob("*.json")):
            try:
                algorithms[path.stem] = self.algorithm_meta(path.stem)
            except AlgorithmDefinitionError as e:
                logger.warning("Failed to load algorithm %s: %s", path.stem, e)
        return algorithms

    def validate_algorithm(self, definition: Any) -> None:
        if not isinstance(definition, dict):
            raise AlgorithmDefinitionError("Algorithm definition must be an object")
        for field in _REQUIRED_FIELDS:
            if field not in definition:
                raise AlgorithmDefinitionError(f"Algorithm missing required field: {field}")
        output_range = definition["output_range"]
        if not isinstance(output_range, list) or len(output_range) != 2:
            raise AlgorithmDefinitionError("output_range must be an array of [min, max]")
        self._validate_node(definition["tree"])

    def _validate_node(self, node: Any) -> None:
        if not isinstance(node, dict):
            raise AlgorithmDefinitionError("Tree node must be an object")
        if "return" in node:
            return
        for field in ("condition", "true_branch", "false_branch"):
            if field not in node:
                raise AlgorithmDefinitionError(f"Branch node must have '{field}'")
        self._validate_node(node["true_branch"])
        self._validate_node(node["false_branch"])

    def _compute_inputs(
        self, computed_inputs: Mapping[str, Any], inputs: Mapping[str, Any]
    ) -> dict[str, Any]:
        computed: dict[str, Any] = {}
        for name, definition in computed_inputs.items():
            formula = definition["formula"] if isinstance(definition, dict) else definition
            # Later formulas can reference earlier computed values
            computed[name] = evaluate_expression(formula, {**inputs, **computed})
        return computed

    def _traverse(self, node: Mapping[str, Any], context: Mapping[str, Any]) -> int | bool:
        while "return" not in node:
            branch = "true_branch" if evaluate_expression(node["condition"], context) else "false_branch"
            node = node[branch]
        return node["return"]
