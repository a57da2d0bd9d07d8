"""Derived Field Service - dependency graph and computed field values

A derived field's value is computed from its parents' values by its formula.
Derived fields may depend on other derived fields; the graph over derived
edges must stay acyclic and is evaluated in topological order.
"""

from collections import deque
from datetime import datetime
from typing import Any, Iterable, Optional

from core.exceptions import SchemaIntegrityError
from core.logging_config import get_logger
from schemas.form import FormField
from services.formula_service import FormulaError, evaluate_formula

logger = get_logger(__name__)

# Written into form_data when a formula can not be evaluated
FORMULA_ERROR = "Error in formula"


def compute_derived(field: FormField, form_data: dict[str, Any], now: Optional[datetime] = None) -> Any:
    """Compute the value of a derived field.

    Returns None when the field is not derived, and FORMULA_ERROR when the
    formula fails. Formula failures never propagate past this function.
    """
    if not field.derived:
        return None

    try:
        return evaluate_formula(
            field.derived.formula,
            form_data,
            parent_ids=field.derived.parent_field_ids,
            now=now,
        )
    except FormulaError as e:
        logger.warning_ctx(
            "Error calculating derived value",
            field_id=field.id,
            formula=field.derived.formula,
            reason=e.reason,
        )
        return FORMULA_ERROR


class DependencyGraph:
    """Directed graph over field ids: parent -> derived child"""

    def __init__(self, field_ids: Iterable[str], parents: dict[str, list[str]]):
        self.field_ids = list(field_ids)
        self._position = {field_id: index for index, field_id in enumerate(self.field_ids)}
        self._parents = {child: list(dict.fromkeys(ids)) for child, ids in parents.items()}
        self._children: dict[str, list[str]] = {}
        for child, ids in self._parents.items():
            for parent in ids:
                self._children.setdefault(parent, []).append(child)

    @classmethod
    def from_fields(cls, fields: Iterable[FormField]) -> "DependencyGraph":
        fields = list(fields)
        parents = {f.id: list(f.derived.parent_field_ids) for f in fields if f.derived}
        return cls([f.id for f in fields], parents)

    @property
    def derived_ids(self) -> list[str]:
        return [field_id for field_id in self.field_ids if field_id in self._parents]

    def parents_of(self, field_id: str) -> list[str]:
        return list(self._parents.get(field_id, []))

    def children_of(self, field_id: str) -> list[str]:
        return list(self._children.get(field_id, []))

    def missing_parents(self) -> dict[str, list[str]]:
        known = set(self.field_ids)
        missing = {}
        for child, ids in self._parents.items():
            absent = [parent for parent in ids if parent not in known]
            if absent:
                missing[child] = absent
        return missing

    def find_cycle(self) -> Optional[list[str]]:
        """Return the ids along one cycle (first id repeated at the end), or None."""
        WHITE, GREY, BLACK = 0, 1, 2
        color = {field_id: WHITE for field_id in self._parents}
        stack_path: list[str] = []

        def visit(node: str) -> Optional[list[str]]:
            color[node] = GREY
            stack_path.append(node)
            for parent in self._parents.get(node, []):
                if parent not in self._parents:
                    continue
                if color[parent] == GREY:
                    start = stack_path.index(parent)
                    return stack_path[start:] + [parent]
                if color[parent] == WHITE:
                    cycle = visit(parent)
                    if cycle:
                        return cycle
            stack_path.pop()
            color[node] = BLACK
            return None

        for node in self.derived_ids + [n for n in self._parents if n not in self._position]:
            if color[node] == WHITE:
                cycle = visit(node)
                if cycle:
                    return list(reversed(cycle))
        return None

    def evaluation_order(self) -> list[str]:
        """Derived field ids in topological order, ties broken by field order.

        Raises:
            SchemaIntegrityError: If the derived edges contain a cycle
        """
        derived = set(self._parents)
        indegree = {
            child: sum(1 for parent in ids if parent in derived)
            for child, ids in self._parents.items()
        }
        ready = sorted(
            (child for child, degree in indegree.items() if degree == 0),
            key=self._sort_key,
        )
        queue = deque(ready)
        order = []

        while queue:
            node = queue.popleft()
            order.append(node)
            released = []
            for child in self._children.get(node, []):
                indegree[child] -= 1
                if indegree[child] == 0:
                    released.append(child)
            if released:
                queue = deque(sorted(list(queue) + released, key=self._sort_key))

        if len(order) != len(derived):
            cycle = self.find_cycle() or sorted(derived - set(order))
            raise SchemaIntegrityError(
                f"Derived fields form a dependency cycle: {' -> '.join(cycle)}",
                field_id=cycle[0] if cycle else None,
            )
        return order

    def descendants_of(self, field_id: str) -> list[str]:
        """All derived fields depending on field_id, directly or transitively, in evaluation order."""
        seen: set[str] = set()
        pending = list(self._children.get(field_id, []))
        while pending:
            node = pending.pop()
            if node in seen:
                continue
            seen.add(node)
            pending.extend(self._children.get(node, []))
        return [node for node in self.evaluation_order() if node in seen]

    def _sort_key(self, field_id: str) -> int:
        return self._position.get(field_id, len(self._position))


def check_integrity(fields: Iterable[FormField]) -> DependencyGraph:
    """Validate the derived-field structure of a field list.

    Raises:
        SchemaIntegrityError: On duplicate ids, self references, missing
            parents or dependency cycles
    """
    fields = list(fields)
    seen: set[str] = set()
    for field in fields:
        if field.id in seen:
            raise SchemaIntegrityError(f"Duplicate field id '{field.id}'", field_id=field.id)
        seen.add(field.id)
        if field.derived and field.id in field.derived.parent_field_ids:
            raise SchemaIntegrityError(
                f"Derived field '{field.id}' can not depend on itself", field_id=field.id
            )

    graph = DependencyGraph.from_fields(fields)
    missing = graph.missing_parents()
    if missing:
        child, absent = next(iter(missing.items()))
        raise SchemaIntegrityError(
            f"Derived field '{child}' references missing parent field(s): {', '.join(absent)}",
            field_id=child,
        )
    graph.evaluation_order()
    return graph


def recompute_all(fields: Iterable[FormField], form_data: dict[str, Any], now: Optional[datetime] = None) -> dict[str, Any]:
    """Write every derived value into form_data in topological order."""
    fields = list(fields)
    by_id = {f.id: f for f in fields}
    graph = DependencyGraph.from_fields(fields)
    for field_id in graph.evaluation_order():
        form_data[field_id] = compute_derived(by_id[field_id], form_data, now=now)
    return form_data


def recompute_descendants(
    fields: Iterable[FormField],
    form_data: dict[str, Any],
    changed_id: str,
    now: Optional[datetime] = None,
) -> list[str]:
    """Recompute every derived field depending on changed_id. Returns the recomputed ids."""
    fields = list(fields)
    by_id = {f.id: f for f in fields}
    graph = DependencyGraph.from_fields(fields)
    recomputed = graph.descendants_of(changed_id)
    for field_id in recomputed:
        form_data[field_id] = compute_derived(by_id[field_id], form_data, now=now)
    return recomputed
