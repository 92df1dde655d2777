"""Filter discovered units by tag and attribute predicates.

Two predicate forms are supported:

- expressions (``--select``) in Python boolean syntax, e.g.
  ``tag == "slow" and not network`` or ``priority >= 2``;
- attribute specs (``--attr``) in the nose style: comma-separated
  constraints that must all hold, e.g. ``slow,!network,speed=fast``.

Repeating either option gives alternatives, any of which may match. A name
that a unit does not define resolves to None, so it fails positive
predicates and satisfies negated ones. Selection never runs a unit and never
touches unit metadata.
"""

import ast
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from unitcheck.errors import SelectorError
from unitcheck.models.tree import DiscoveryResult, TestUnit, UnitMetadata

log = logging.getLogger(__name__)

type Predicate = Callable[[UnitMetadata], bool]

COLLECTIONS = (set, frozenset, list, tuple)


def values_equal(actual: Any, expected: Any) -> bool:
    """Case-insensitive equality; a collection equals any of its members."""
    if isinstance(actual, COLLECTIONS) and not isinstance(expected, COLLECTIONS):
        return any(values_equal(item, expected) for item in actual)
    if isinstance(actual, str) or isinstance(expected, str):
        if actual is None or expected is None:
            return False
        return str(actual).casefold() == str(expected).casefold()
    return actual == expected


def contains(container: Any, item: Any) -> bool:
    """Case-insensitive membership; nothing is contained in a missing value."""
    if container is None:
        return False
    if isinstance(container, str):
        return isinstance(item, str) and item.casefold() in container.casefold()
    if isinstance(container, COLLECTIONS):
        return any(values_equal(member, item) for member in container)
    return values_equal(container, item)


def _ordered(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(left: Any, right: Any) -> bool:
        if left is None or right is None:
            return False
        try:
            return op(left, right)
        except TypeError:
            return False

    return compare


COMPARATORS: dict[type[ast.cmpop], Callable[[Any, Any], bool]] = {
    ast.Eq: values_equal,
    ast.NotEq: lambda left, right: not values_equal(left, right),
    ast.In: lambda left, right: contains(right, left),
    ast.NotIn: lambda left, right: not contains(right, left),
    ast.Lt: _ordered(lambda left, right: left < right),
    ast.LtE: _ordered(lambda left, right: left <= right),
    ast.Gt: _ordered(lambda left, right: left > right),
    ast.GtE: _ordered(lambda left, right: left >= right),
}


def _validate(node: ast.AST, source: str) -> None:
    allowed = (
        ast.Expression,
        ast.BoolOp,
        ast.And,
        ast.Or,
        ast.UnaryOp,
        ast.Not,
        ast.USub,
        ast.Compare,
        ast.Name,
        ast.Load,
        ast.Constant,
        ast.Tuple,
        ast.List,
        ast.Set,
        *COMPARATORS,
    )
    for child in ast.walk(node):
        if not isinstance(child, allowed):
            raise SelectorError(
                f"Unsupported syntax in selection expression {source!r}: "
                f"{type(child).__name__}"
            )


def _evaluate(node: ast.AST, metadata: UnitMetadata) -> Any:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body, metadata)
    if isinstance(node, ast.BoolOp):
        if isinstance(node.op, ast.And):
            return all(_evaluate(value, metadata) for value in node.values)
        return any(_evaluate(value, metadata) for value in node.values)
    if isinstance(node, ast.UnaryOp):
        operand = _evaluate(node.operand, metadata)
        if isinstance(node.op, ast.Not):
            return not operand
        return -operand if isinstance(operand, (int, float)) else None
    if isinstance(node, ast.Compare):
        left = _evaluate(node.left, metadata)
        for op, comparator in zip(node.ops, node.comparators, strict=True):
            right = _evaluate(comparator, metadata)
            if not COMPARATORS[type(op)](left, right):
                return False
            left = right
        return True
    if isinstance(node, ast.Name):
        return metadata.lookup(node.id)
    if isinstance(node, ast.Constant):
        return node.value
    if isinstance(node, (ast.Tuple, ast.List, ast.Set)):
        return tuple(_evaluate(element, metadata) for element in node.elts)
    raise SelectorError(f"Unsupported node {type(node).__name__}")  # pragma: no cover


def compile_expression(source: str) -> Predicate:
    """Compile a selection expression into a predicate over unit metadata.

    Raises:
        SelectorError: If the expression is not valid or uses syntax outside
            boolean logic, comparisons, names and literals

    """
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as e:
        raise SelectorError(f"Invalid selection expression {source!r}: {e.msg}") from e
    _validate(tree, source)
    return lambda metadata: bool(_evaluate(tree, metadata))


def _parse_literal(text: str) -> Any:
    try:
        return ast.literal_eval(text)
    except (ValueError, SyntaxError):
        return text


def _compile_constraint(constraint: str) -> Predicate:
    negated = constraint.startswith("!")
    body = constraint[1:].strip() if negated else constraint
    value: str | None = None
    if "!=" in body:
        if negated:
            raise SelectorError(f"Double negation in constraint {constraint!r}")
        negated = True
        name, _, value = body.partition("!=")
    elif "=" in body:
        name, _, value = body.partition("=")
    else:
        name = body
    name = name.strip()
    if not name:
        raise SelectorError(f"Missing attribute name in constraint {constraint!r}")

    if value is None:

        def check(metadata: UnitMetadata) -> bool:
            return bool(metadata.lookup(name))

    else:
        expected = _parse_literal(value.strip())

        def check(metadata: UnitMetadata) -> bool:
            return values_equal(metadata.lookup(name), expected)

    if negated:
        return lambda metadata: not check(metadata)
    return check


def compile_attribute_spec(spec: str) -> Predicate:
    """Compile a nose-style attribute spec such as ``slow,!network,speed=fast``.

    Raises:
        SelectorError: If the spec has an empty or malformed constraint

    """
    checks: list[Predicate] = []
    for raw in spec.split(","):
        constraint = raw.strip()
        if not constraint.lstrip("!"):
            raise SelectorError(f"Empty constraint in attribute spec {spec!r}")
        checks.append(_compile_constraint(constraint))

    return lambda metadata: all(check(metadata) for check in checks)


@dataclass(frozen=True, kw_only=True)
class Selector:
    """A compiled filter over unit metadata.

    A unit is selected when it matches at least one expression (if any are
    given) and at least one attribute spec (if any are given).
    """

    expressions: Sequence[Predicate] = ()
    attribute_specs: Sequence[Predicate] = ()

    @classmethod
    def compile(
        cls, expressions: Sequence[str] = (), attribute_specs: Sequence[str] = ()
    ) -> "Selector":
        """Compile source strings into a selector."""
        return cls(
            expressions=tuple(compile_expression(e) for e in expressions),
            attribute_specs=tuple(compile_attribute_spec(s) for s in attribute_specs),
        )

    @property
    def is_empty(self) -> bool:
        """Whether this selector keeps every unit."""
        return not self.expressions and not self.attribute_specs

    def matches(self, unit: TestUnit) -> bool:
        """Whether ``unit`` is selected."""
        metadata = unit.metadata
        if self.expressions and not any(p(metadata) for p in self.expressions):
            return False
        if self.attribute_specs and not any(p(metadata) for p in self.attribute_specs):
            return False
        return True

    def select(self, discovered: DiscoveryResult) -> DiscoveryResult:
        """Return a new result holding only the selected units.

        Containers and modules left empty are dropped; load failures are
        always kept.
        """
        if self.is_empty:
            return discovered

        modules = []
        for module in discovered.modules:
            containers = tuple(
                container.with_units(units)
                for container in module.containers
                if (units := tuple(u for u in container.units if self.matches(u)))
            )
            if containers:
                modules.append(module.with_containers(containers))

        selected = DiscoveryResult(modules=tuple(modules), failures=discovered.failures)
        log.info(
            "Selected %d of %d unit(s)",
            sum(1 for _ in selected.iter_units()),
            sum(1 for _ in discovered.iter_units()),
        )
        return selected
