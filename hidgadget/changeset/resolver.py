"""
Dependency resolution for a batch of file changes.

Changes form a DAG (`dependency -> dependent`) from their `depends_on` keys
plus the edges discovered while resolving. Changes marked
`when="beforeChange"` are conditional: they stay out of the graph until some
change that lists them in `before_change` resolves to a real action, at which
point they are promoted into the graph and ordered before that change.

Promotion changes the graph, so resolution is repeated until a pass neither
adds an edge nor promotes a change. Every repeat needs a promotion from the
previous pass, so the number of passes is bounded by the number of
conditional changes plus two.
"""
from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Tuple

import networkx as nx

from hidgadget.changeset.apply import apply_change
from hidgadget.changeset.model import Action, FileChange
from hidgadget.changeset.probe import resolve_action
from hidgadget.errors import ApplyError, ChangeSetError, CycleError, DuplicateChangeError
from hidgadget.util.log import get_logger

log = get_logger("hidgadget.changeset.resolver")


class ActionCache:
    """Resolved actions keyed by change key."""

    def __init__(self, resolve: Callable[[FileChange], Action] = resolve_action):
        self._resolve = resolve
        self._actions: Dict[str, Action] = {}

    def action(self, fc: FileChange) -> Action:
        key = fc.effective_key
        if key not in self._actions:
            self._actions[key] = self._resolve(fc)
        return self._actions[key]

    def reset(self, fc: FileChange) -> None:
        self._actions.pop(fc.effective_key, None)

    def clear(self) -> None:
        self._actions.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._actions


class ChangeSetResolver:
    def __init__(self, changes: Iterable[FileChange], cache: Optional[ActionCache] = None):
        self.changes = list(changes)
        self.cache = cache or ActionCache()

        self.changes_map: Dict[str, FileChange] = {}
        self.conditional_changes_map: Dict[str, FileChange] = {}

        self.graph = nx.DiGraph()
        self.ordered_keys: List[str] = []
        self.resolved_changes: List[FileChange] = []

    def _build_maps(self) -> None:
        changes_map: Dict[str, FileChange] = {}
        conditional: Dict[str, FileChange] = {}

        for change in self.changes:
            key = change.effective_key

            if change.when:
                conditional[key] = change
                continue

            existing = changes_map.get(key)
            if existing is not None:
                if existing.is_same(change):
                    continue
                raise DuplicateChangeError(
                    f"duplicate change: {key}, current: {existing}, requested: {change}"
                )

            changes_map[key] = change

        self.changes_map = changes_map
        self.conditional_changes_map = conditional

    def _to_ordered_changes(self) -> None:
        g = nx.DiGraph()
        g.add_nodes_from(self.changes_map)
        for key, change in self.changes_map.items():
            for dep in change.depends_on:
                g.add_edge(dep, key)
            for dep in change.resolved_deps:
                g.add_edge(dep, key)

        cycles = list(nx.simple_cycles(g))
        if cycles:
            raise CycleError(cycles)

        self.graph = g
        self.ordered_keys = list(nx.topological_sort(g))

    def _resolve_pass(self) -> bool:
        """Resolve every change in order. Returns True if the graph changed."""
        changed = False
        resolved: List[FileChange] = []

        for key in self.ordered_keys:
            change = self.changes_map.get(key)
            if change is None:
                log.error("file change %s not found", key)
                continue

            action = self.cache.action(change)
            resolved.append(change)

            # nothing will happen, so nothing needs to happen first
            if action is Action.DO_NOTHING or not change.before_change:
                continue

            for dep in change.before_change:
                if dep not in change.resolved_deps:
                    change.resolved_deps.append(dep)
                    changed = True

                if dep in self.changes_map:
                    continue

                dep_change = self.conditional_changes_map.get(dep)
                if dep_change is None:
                    raise ChangeSetError(f"dependency {dep} not found")

                log.debug("promoting %s, required before %s", dep, key)
                self.changes_map[dep] = dep_change
                changed = True

        self.resolved_changes = resolved
        return changed

    def resolve(self) -> List[FileChange]:
        self._build_maps()

        max_passes = len(self.conditional_changes_map) + 2
        for n in range(max_passes):
            self._to_ordered_changes()
            if n > 0:
                self.cache.clear()

            if not self._resolve_pass():
                for change in self.resolved_changes:
                    log.debug("resolved change: %s (%s)", change, self.cache.action(change))
                return self.resolved_changes

        raise ChangeSetError(f"change set did not settle after {max_passes} passes")

    def planned_actions(self) -> List[Tuple[FileChange, Action]]:
        return [(change, self.cache.action(change)) for change in self.resolved_changes]

    def apply_changes(self) -> None:
        for change in self.resolved_changes:
            # earlier changes in the batch may have touched this path
            self.cache.reset(change)
            action = self.cache.action(change)

            level = log.debug if action is Action.DO_NOTHING else log.info
            level("applying change: %s (%s)", change, action)

            try:
                apply_change(change, action)
            except OSError as e:
                if change.ignore_errors:
                    log.warning("ignoring error for %s: %s", change, e)
                    continue
                raise ApplyError(change, e) from e

    def apply(self) -> None:
        self.resolve()
        self.apply_changes()
