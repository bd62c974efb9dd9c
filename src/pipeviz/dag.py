# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, List, Sequence, Set, Tuple

from .errors import NormalizationError


def build_dag(names: Sequence[str], needs: Dict[str, Sequence[str]]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build a DAG from job names and their `needs`.

    Requires:
      - names: unique job names
      - needs[name]: names of jobs that must run BEFORE `name`
    """
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if list(names).count(n) > 1})
        raise NormalizationError(f"duplicate job names: {dupes}")

    name_set = set(names)
    adj: Dict[str, Set[str]] = {n: set() for n in names}
    indeg: Dict[str, int] = {n: 0 for n in names}

    for name in names:
        for dep in needs.get(name, ()):
            if dep not in name_set:
                raise NormalizationError(
                    f"job '{name}' needs unknown job '{dep}'. Known jobs: {sorted(name_set)}"
                )
            # edge dep -> name (dep runs before name)
            if name not in adj[dep]:
                adj[dep].add(name)
                indeg[name] += 1

    return adj, indeg


def topo_levels(names: Sequence[str], adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert the DAG into topological levels.

    Jobs in one level only depend on earlier levels, so each level can run
    in parallel. Within a level the declaration order of `names` is kept.
    """
    order = {n: i for i, n in enumerate(names)}
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(n for n in names if indeg[n] == 0)

    levels: List[List[str]] = []
    processed = 0

    while q:
        level = sorted(q, key=order.__getitem__)
        q.clear()
        levels.append(level)
        processed += len(level)

        for node in level:
            for child in adj.get(node, set()):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

    if processed != len(indeg):
        stuck = [n for n in names if indeg[n] > 0]
        raise NormalizationError(f"cyclic job dependencies among {stuck}")

    return levels


def check_acyclic(names: Sequence[str], needs: Dict[str, Sequence[str]]) -> List[List[str]]:
    adj, indeg = build_dag(names, needs)
    return topo_levels(names, adj, indeg)
