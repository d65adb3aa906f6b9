# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, List, Sequence, Set, Tuple

from .errors import ValidationError
from .model import JobSpec


def build_dag(specs: Sequence[JobSpec]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build a DAG from the selected job specs.

    Edges come from `spec.needs` (names of jobs that must run BEFORE this
    job). Needs that point outside the selection are ignored: a pipeline
    only orders the jobs it was asked to run.
    """
    names = [s.name for s in specs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValidationError(f"Duplicate job names in pipeline: {dupes}")

    name_set = set(names)
    adj: Dict[str, Set[str]] = {n: set() for n in names}
    indeg: Dict[str, int] = {n: 0 for n in names}

    for spec in specs:
        for need in spec.needs:
            if need not in name_set:
                continue
            # Edge need -> spec.name (need must run before spec)
            if spec.name not in adj[need]:
                adj[need].add(spec.name)
                indeg[spec.name] += 1

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert DAG into topological "levels" (stages).
    Each stage can run in parallel.

    Level members keep the insertion order of `indeg` (the requested order).
    """
    indeg = dict(indeg)  # copy (we mutate it)
    order = {n: i for i, n in enumerate(indeg)}
    q = deque(n for n, d in indeg.items() if d == 0)

    levels: List[List[str]] = []
    processed = 0

    while q:
        level_size = len(q)
        level: List[str] = []

        for _ in range(level_size):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set()), key=order.__getitem__):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(sorted(level, key=order.__getitem__))

    if processed != len(indeg):
        remaining = [n for n, d in indeg.items() if d > 0]
        raise ValidationError(f"Job dependencies form a cycle. Stuck jobs: {remaining}")

    return levels
