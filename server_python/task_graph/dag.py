"""
Dependency graph for task coordination.
Tracks forward (dependency -> dependents) and backward (task -> dependencies)
edges between task ids and answers reachability questions over them.
"""

import logging
from collections import deque
from typing import Dict, Iterable, List, Mapping, Set, Tuple

logger = logging.getLogger(__name__)


class DependencyGraph:
    """
    Pure edge store between task ids.

    Edges are derived from the dependency sets of registered tasks. A
    dependency may name an id that is not registered yet (a forward
    reference); such ids appear only on the forward side until they are
    registered themselves.

    Example:
        graph = DependencyGraph()
        graph.add_task("parse", [])
        graph.add_task("analyze", ["parse"])

        graph.dependents_of("parse")                    # {"analyze"}
        graph.would_create_cycle("report", ["analyze"])  # False
        graph.would_create_cycle("report", ["report"])   # True
    """

    def __init__(self):
        self._dependencies: Dict[str, Set[str]] = {}
        self._dependents: Dict[str, Set[str]] = {}

    def add_task(self, task_id: str, dependencies: Iterable[str]) -> None:
        """Record a task node together with its backward edges."""
        self._dependencies.setdefault(task_id, set())
        for dep_id in dependencies:
            self.add_edge(dep_id, task_id)

    def add_edge(self, dependency_id: str, dependent_id: str) -> None:
        """Record that ``dependent_id`` requires ``dependency_id``."""
        self._dependencies.setdefault(dependent_id, set()).add(dependency_id)
        self._dependents.setdefault(dependency_id, set()).add(dependent_id)

    def remove_task(self, task_id: str) -> None:
        """
        Drop a task node and its own dependency edges.

        Edges from tasks that still declare ``task_id`` as a dependency are
        kept, the same way forward references to unregistered ids are.
        """
        for dep_id in self._dependencies.pop(task_id, set()):
            dependents = self._dependents.get(dep_id)
            if dependents is None:
                continue
            dependents.discard(task_id)
            if not dependents:
                del self._dependents[dep_id]
        logger.debug(f"Removed task {task_id} from dependency graph")

    def rebuild(self, dependencies: Mapping[str, Iterable[str]]) -> None:
        """Replace every edge with the ones derived from ``dependencies``."""
        self.clear()
        for task_id, deps in dependencies.items():
            self.add_task(task_id, deps)

    def dependents_of(self, task_id: str) -> Set[str]:
        return set(self._dependents.get(task_id, ()))

    def would_create_cycle(self, task_id: str, proposed_dependencies: Iterable[str]) -> bool:
        """
        Check whether giving ``task_id`` these dependencies would close a cycle.

        Walks the existing dependency chains from every proposed dependency
        with an explicit stack and a shared visited set, so the whole check
        is O(V + E). Unknown ids end the walk along their branch.

        Args:
            task_id: Task about to be registered
            proposed_dependencies: Dependencies it would declare

        Returns:
            True if ``task_id`` is reachable from any proposed dependency
            (a self reference is an immediate cycle)
        """
        proposed = set(proposed_dependencies)
        if task_id in proposed:
            return True

        visited: Set[str] = set()
        for start in proposed:
            stack = [start]
            while stack:
                current = stack.pop()
                if current == task_id:
                    return True
                if current in visited:
                    continue
                visited.add(current)
                for dep_id in self._dependencies.get(current, ()):
                    if dep_id not in visited:
                        stack.append(dep_id)

        return False

    def walk_dependencies(self, task_id: str, max_depth: int) -> List[Tuple[str, int]]:
        """
        Breadth-first walk from ``task_id`` towards its dependencies.

        Returns:
            ``(task_id, depth)`` pairs, the start at depth 0, each id once at
            its shortest distance, never deeper than ``max_depth``
        """
        order: List[Tuple[str, int]] = [(task_id, 0)]
        seen: Set[str] = {task_id}
        queue = deque(order)

        while queue:
            current, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for dep_id in sorted(self._dependencies.get(current, ())):
                if dep_id in seen:
                    continue
                seen.add(dep_id)
                order.append((dep_id, depth + 1))
                queue.append((dep_id, depth + 1))

        return order

    def __len__(self) -> int:
        """Number of ids that at least one task depends on."""
        return len(self._dependents)

    def clear(self) -> None:
        """Remove every node and edge."""
        self._dependencies.clear()
        self._dependents.clear()
