"""Validated, read-only dependency graph of task definitions."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from taskrun.engine.models import TaskDefinition


class GraphError(ValueError):
    """Task definitions do not form a valid dependency graph."""


class DuplicateTask(GraphError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Task {name!r} is defined more than once.")
        self.name = name


class UnknownDependency(GraphError):
    def __init__(self, task: str, missing: str) -> None:
        super().__init__(f"Task {task!r} depends on unknown task {missing!r}.")
        self.task = task
        self.missing = missing


class CyclicDependency(GraphError):
    def __init__(self, cycle: tuple[str, ...]) -> None:
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = cycle


_VISITING = 1
_DONE = 2


class TaskGraph:
    """Tasks plus forward and reverse dependency edges.

    Instances are built through :meth:`build` which rejects duplicate names,
    dangling dependencies and cycles. The graph never changes afterwards.
    """

    __slots__ = ("_definitions", "_dependents", "_order")

    def __init__(
        self,
        definitions: dict[str, TaskDefinition],
        dependents: dict[str, frozenset[str]],
        order: tuple[str, ...],
    ) -> None:
        self._definitions = definitions
        self._dependents = dependents
        self._order = order

    @classmethod
    def build(cls, definitions: Iterable[TaskDefinition]) -> TaskGraph:
        by_name: dict[str, TaskDefinition] = {}
        for definition in definitions:
            if definition.name in by_name:
                raise DuplicateTask(definition.name)
            by_name[definition.name] = definition

        for definition in by_name.values():
            for dependency in sorted(definition.depends_on):
                if dependency not in by_name:
                    raise UnknownDependency(definition.name, dependency)

        order = _topological_order(by_name)

        reverse: dict[str, set[str]] = {name: set() for name in by_name}
        for definition in by_name.values():
            for dependency in definition.depends_on:
                reverse[dependency].add(definition.name)
        dependents = {name: frozenset(names) for name, names in reverse.items()}
        return cls(by_name, dependents, order)

    @classmethod
    def from_mapping(cls, definitions: Mapping[str, TaskDefinition]) -> TaskGraph:
        for name, definition in definitions.items():
            if name != definition.name:
                raise GraphError(
                    f"Task key {name!r} does not match definition name {definition.name!r}.",
                )
        return cls.build(definitions.values())

    @property
    def names(self) -> tuple[str, ...]:
        """Task names in definition order."""
        return tuple(self._definitions)

    @property
    def order(self) -> tuple[str, ...]:
        """Task names with every dependency before its dependents."""
        return self._order

    def definition(self, name: str) -> TaskDefinition:
        return self._definitions[name]

    def dependencies_of(self, name: str) -> frozenset[str]:
        return self._definitions[name].depends_on

    def dependents_of(self, name: str) -> frozenset[str]:
        return self._dependents[name]

    def exists(self, name: str) -> bool:
        return name in self._definitions

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __iter__(self) -> Iterator[TaskDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)


def _topological_order(definitions: dict[str, TaskDefinition]) -> tuple[str, ...]:
    # Iterative DFS; post-order emission puts dependencies first.
    marks: dict[str, int] = {}
    order: list[str] = []

    for root in definitions:
        if root in marks:
            continue
        marks[root] = _VISITING
        path = [root]
        stack = [iter(sorted(definitions[root].depends_on))]
        while stack:
            dependency = next(stack[-1], None)
            if dependency is None:
                stack.pop()
                finished = path.pop()
                marks[finished] = _DONE
                order.append(finished)
                continue
            mark = marks.get(dependency)
            if mark == _DONE:
                continue
            if mark == _VISITING:
                start = path.index(dependency)
                raise CyclicDependency((*path[start:], dependency))
            marks[dependency] = _VISITING
            path.append(dependency)
            stack.append(iter(sorted(definitions[dependency].depends_on)))

    return tuple(order)
