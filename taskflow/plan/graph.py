"""Dependency graph over plan tasks: Kahn ordering and critical path."""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterable, List, Sequence

from .schema import Dependency, Task, TaskPlan

LOGGER = logging.getLogger(__name__)


class DependencyGraph:
    """Directed graph ``prerequisite -> dependent`` keyed by task id.

    Edges come from both explicit Dependency records and each task's own
    ``dependencies`` list. Duplicate edges collapse, and edges that name a
    task outside the plan are dropped.
    """

    def __init__(self, task_ids: Sequence[str]):
        self._order: List[str] = list(task_ids)
        self._successors: Dict[str, List[str]] = {task_id: [] for task_id in self._order}
        self._predecessors: Dict[str, List[str]] = {task_id: [] for task_id in self._order}

    @classmethod
    def from_parts(cls, tasks: Iterable[Task], dependencies: Iterable[Dependency] = ()) -> "DependencyGraph":
        tasks = list(tasks)
        graph = cls([task.id for task in tasks])
        for dep in dependencies:
            graph.add_edge(dep.source, dep.target)
        for task in tasks:
            for prerequisite in task.dependencies:
                graph.add_edge(prerequisite, task.id)
        return graph

    @classmethod
    def from_plan(cls, plan: TaskPlan) -> "DependencyGraph":
        return cls.from_parts(plan.tasks, plan.dependencies)

    def add_edge(self, source: str, target: str) -> bool:
        if source not in self._successors or target not in self._successors:
            LOGGER.warning(f"Ignoring dependency {source} -> {target}: unknown task")
            return False
        if target in self._successors[source]:
            return False
        self._successors[source].append(target)
        self._predecessors[target].append(source)
        return True

    def predecessors(self, task_id: str) -> List[str]:
        return list(self._predecessors.get(task_id, ()))

    def successors(self, task_id: str) -> List[str]:
        return list(self._successors.get(task_id, ()))

    def topological_order(self) -> List[str]:
        """Kahn ordering; ties keep declaration order.

        The result is shorter than the task count when a cycle exists.
        """
        in_degree = {task_id: len(preds) for task_id, preds in self._predecessors.items()}
        queue = deque(task_id for task_id in self._order if in_degree[task_id] == 0)
        ordered: List[str] = []

        while queue:
            current = queue.popleft()
            ordered.append(current)
            for successor in self._successors[current]:
                in_degree[successor] -= 1
                if in_degree[successor] == 0:
                    queue.append(successor)

        return ordered

    def cyclic_tasks(self) -> List[str]:
        """Tasks that cannot be ordered (on or behind a cycle)."""
        ordered = set(self.topological_order())
        return [task_id for task_id in self._order if task_id not in ordered]

    def has_cycle(self) -> bool:
        return len(self.topological_order()) < len(self._order)

    def critical_path(self) -> List[str]:
        """Longest dependency chain that starts at a zero-indegree task."""
        memo: Dict[str, List[str]] = {}
        on_stack = set()

        def longest_from(task_id: str) -> List[str]:
            if task_id in memo:
                return memo[task_id]
            on_stack.add(task_id)
            best: List[str] = []
            for successor in self._successors[task_id]:
                if successor in on_stack:
                    continue
                candidate = longest_from(successor)
                if len(candidate) > len(best):
                    best = candidate
            on_stack.discard(task_id)
            memo[task_id] = [task_id] + best
            return memo[task_id]

        path: List[str] = []
        for task_id in self._order:
            if self._predecessors[task_id]:
                continue
            candidate = longest_from(task_id)
            if len(candidate) > len(path):
                path = candidate
        return path


__all__ = ["DependencyGraph"]
