# dag.py
from __future__ import annotations

import heapq
from collections import deque
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Set, Tuple

from .errors import CycleError, DuplicateNameError, UnknownDependencyError
from .model import ServiceSpec


@dataclass(frozen=True)
class DependencyGraph:
    """
    Validated, immutable dependency graph over ServiceSpecs.

    Edges point from a dependency to its dependents ("db must be healthy
    before api"). `order` is the start sequence, `shutdown_order` its reverse.
    """
    specs: Mapping[str, ServiceSpec]
    order: Tuple[str, ...]
    _dependents: Mapping[str, FrozenSet[str]]

    def __len__(self) -> int:
        return len(self.order)

    def __iter__(self):
        return (self.specs[n] for n in self.order)

    def __contains__(self, name: object) -> bool:
        return name in self.specs

    @property
    def shutdown_order(self) -> Tuple[str, ...]:
        return tuple(reversed(self.order))

    def dependencies(self, name: str) -> Tuple[str, ...]:
        return self.specs[name].depends_on

    def dependents(self, name: str) -> List[str]:
        """Direct dependents, in start order."""
        deps = self._dependents[name]
        return [n for n in self.order if n in deps]

    def transitive_dependents(self, name: str) -> List[str]:
        seen: Set[str] = set()
        q = deque(self._dependents[name])
        while q:
            n = q.popleft()
            if n in seen:
                continue
            seen.add(n)
            q.extend(self._dependents[n])
        return [n for n in self.order if n in seen]

    def levels(self) -> List[List[str]]:
        """
        Group the start order into stages.
        Nodes in one stage have no dependency relation and start concurrently.
        """
        depth: Dict[str, int] = {}
        for name in self.order:
            deps = self.specs[name].depends_on
            depth[name] = 1 + max((depth[d] for d in deps), default=-1)

        levels: List[List[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for name in self.order:
            levels[depth[name]].append(name)
        return levels


def _check_names(specs: List[ServiceSpec]) -> None:
    names = [s.name for s in specs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise DuplicateNameError(dupes)

    name_set = set(names)
    for spec in specs:
        for dep in spec.depends_on:
            if dep not in name_set:
                raise UnknownDependencyError(spec.name, dep, sorted(name_set))


def _find_cycle(specs: List[ServiceSpec]) -> List[str] | None:
    """
    Depth-first search over depends_on edges with a recursion-stack marker.
    Returns the first cycle found as a node sequence, or None.
    """
    by_name = {s.name: s for s in specs}
    WHITE, GREY, BLACK = 0, 1, 2
    color: Dict[str, int] = {s.name: WHITE for s in specs}
    stack: List[str] = []

    def visit(name: str) -> List[str] | None:
        color[name] = GREY
        stack.append(name)
        for dep in by_name[name].depends_on:
            if color[dep] == GREY:
                return stack[stack.index(dep):]
            if color[dep] == WHITE:
                found = visit(dep)
                if found:
                    return found
        stack.pop()
        color[name] = BLACK
        return None

    for spec in specs:
        if color[spec.name] == WHITE:
            found = visit(spec.name)
            if found:
                return list(found)
    return None


def _topo_order(specs: List[ServiceSpec]) -> Tuple[Tuple[str, ...], Dict[str, Set[str]]]:
    """Kahn's algorithm; among ready nodes the earliest declared goes first."""
    index = {s.name: i for i, s in enumerate(specs)}
    adj: Dict[str, Set[str]] = {s.name: set() for s in specs}  # dep -> dependents
    indeg: Dict[str, int] = {s.name: 0 for s in specs}

    for spec in specs:
        for dep in set(spec.depends_on):
            adj[dep].add(spec.name)
            indeg[spec.name] += 1

    ready = [(index[n], n) for n, d in indeg.items() if d == 0]
    heapq.heapify(ready)
    order: List[str] = []

    while ready:
        _, node = heapq.heappop(ready)
        order.append(node)
        for child in adj[node]:
            indeg[child] -= 1
            if indeg[child] == 0:
                heapq.heappush(ready, (index[child], child))

    return tuple(order), adj


def build_graph(specs: Iterable[ServiceSpec]) -> DependencyGraph:
    """
    Validate specs and build the graph.

    Raises:
      DuplicateNameError: a name is declared twice
      UnknownDependencyError: depends_on names a service that is not declared
      CycleError: the dependency relation is cyclic
    """
    specs = list(specs)
    _check_names(specs)

    cycle = _find_cycle(specs)
    if cycle:
        raise CycleError(cycle)

    order, adj = _topo_order(specs)
    return DependencyGraph(
        specs=MappingProxyType({s.name: s for s in specs}),
        order=order,
        _dependents=MappingProxyType({n: frozenset(children) for n, children in adj.items()}),
    )
