# src/smlm_viewer/reactive.py
"""
Explicit dependency graph for viewer state.

Every node gets a rank when it is created and may only read nodes of lower
rank, so creation order is a topological order. A write to a ``Cell`` marks
its dependents dirty; the graph then recomputes each dirty node once, lowest
rank first, before control returns to the caller. ``batch()`` groups the
writes of one external event into a single propagation.

Nodes
-----
Cell     settable value with optional validator and equality check
Derived  pure function of lower-ranked nodes (static or dynamic inputs)
Effect   side-effecting consumer (renderer publish, reactions that write cells)
"""

from __future__ import annotations
import heapq
import logging
from collections import Counter
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Union

import numpy as np

logger = logging.getLogger(__name__)

Inputs = Union[Sequence["Node"], Callable[[], Iterable["Node"]]]


def default_eq(a: Any, b: Any) -> bool:
    """Identity for arrays (buffers are replaced, never patched), ``==`` otherwise."""
    if a is b:
        return True
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        return False
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        return False


class Node:
    def __init__(self, graph: "StateGraph", name: Optional[str] = None):
        self.graph = graph
        self.rank = graph._register(self)
        self.name = name or f"{type(self).__name__.lower()}#{self.rank}"
        self._dependents: Set[Node] = set()
        self._listeners: List[Callable[[Any], None]] = []
        self._value: Any = None

    @property
    def value(self) -> Any:
        return self._value

    def get(self) -> Any:
        return self._value

    def subscribe(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """
        Call ``callback(new_value)`` after every event that changed this node.

        Listeners run once propagation has finished, never mid-event.
        Returns a function that removes the listener.
        """
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _run(self) -> bool:
        """Recompute; return True if dependents must be scheduled."""
        return False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} rank={self.rank}>"


class Cell(Node):
    """Settable state. A write equal to the current value is a no-op."""

    def __init__(
        self,
        graph: "StateGraph",
        value: Any,
        name: Optional[str] = None,
        validator: Optional[Callable[[Any], Any]] = None,
        eq: Callable[[Any, Any], bool] = default_eq,
    ):
        super().__init__(graph, name)
        self._validator = validator
        self._eq = eq
        self._value = validator(value) if validator is not None else value

    def set(self, value: Any) -> bool:
        """
        Validate and write ``value``.

        Returns False when the value is logically unchanged (nothing
        propagates). Validator errors leave the cell untouched.
        """
        if self._validator is not None:
            value = self._validator(value)
        if self._eq(self._value, value):
            return False
        self.graph._write(self, value)
        return True

    @Node.value.setter
    def value(self, value: Any) -> None:
        self.set(value)


class _Computed(Node):
    def __init__(self, graph: "StateGraph", inputs: Inputs, name: Optional[str] = None):
        super().__init__(graph, name)
        self._inputs_spec = inputs
        self._inputs: List[Node] = []
        self._wire()

    def _wire(self) -> None:
        spec = self._inputs_spec
        inputs = list(spec() if callable(spec) else spec)
        for node in inputs:
            if node.graph is not self.graph:
                raise ValueError(f"{self.name}: input {node.name} belongs to another graph")
            if node.rank >= self.rank:
                raise ValueError(
                    f"{self.name}: input {node.name} (rank {node.rank}) must be created "
                    f"before its consumer (rank {self.rank})"
                )
        for node in self._inputs:
            node._dependents.discard(self)
        for node in inputs:
            node._dependents.add(self)
        self._inputs = inputs

    @property
    def inputs(self) -> List[Node]:
        return list(self._inputs)


class Derived(_Computed):
    """
    Value computed from lower-ranked nodes.

    ``inputs`` is a list of nodes, or a callable returning one; the callable
    form is re-evaluated on every recompute so edges can depend on state.
    The value may be overridden with ``set``; the override holds until the
    next recompute.
    """

    def __init__(
        self,
        graph: "StateGraph",
        func: Callable[[], Any],
        inputs: Inputs,
        name: Optional[str] = None,
        eq: Callable[[Any, Any], bool] = default_eq,
        validator: Optional[Callable[[Any], Any]] = None,
    ):
        super().__init__(graph, inputs, name)
        self._func = func
        self._eq = eq
        self._validator = validator
        self._value = func()

    def _run(self) -> bool:
        if callable(self._inputs_spec):
            self._wire()
        new = self._func()
        if self._eq(self._value, new):
            return False
        self._value = new
        self.graph._changed.add(self)
        return True

    def set(self, value: Any) -> bool:
        if self._validator is not None:
            value = self._validator(value)
        if self._eq(self._value, value):
            return False
        self.graph._write(self, value)
        return True


class Effect(_Computed):
    """Side-effecting consumer; runs once at creation and after each input change."""

    def __init__(
        self,
        graph: "StateGraph",
        func: Callable[[], Any],
        inputs: Inputs,
        name: Optional[str] = None,
    ):
        super().__init__(graph, inputs, name)
        self._func = func
        graph._run_initial(self)

    def _run(self) -> bool:
        if callable(self._inputs_spec):
            self._wire()
        self._func()
        return False


class StateGraph:
    """
    Owner of nodes, the dirty queue and the per-event bookkeeping.

    Attributes
    ----------
    recompute_counts : collections.Counter
        Number of event-driven recomputes per node.
    on_flush : list of callables
        Called with no arguments after each event that ran at least one node.
    """

    def __init__(self):
        self._next_rank = 0
        self._heap: List[tuple] = []
        self._pending: Set[Node] = set()
        self._ran: Set[Node] = set()
        self._journals: List[Dict[Node, Any]] = []
        self._changed: Set[Node] = set()
        self._flushing = False
        self.recompute_counts: Counter = Counter()
        self.on_flush: List[Callable[[], None]] = []

    # -- construction ----------------------------------------------------------

    def _register(self, node: Node) -> int:
        rank = self._next_rank
        self._next_rank += 1
        return rank

    def cell(self, value: Any, name: Optional[str] = None, **kwargs) -> Cell:
        return Cell(self, value, name=name, **kwargs)

    def derived(self, func: Callable[[], Any], inputs: Inputs, name: Optional[str] = None, **kwargs) -> Derived:
        return Derived(self, func, inputs, name=name, **kwargs)

    def effect(self, func: Callable[[], Any], inputs: Inputs, name: Optional[str] = None) -> Effect:
        return Effect(self, func, inputs, name=name)

    def _run_initial(self, node: Node) -> None:
        if self._flushing or self._journals:
            self._schedule(node)
        else:
            node._run()

    # -- propagation -----------------------------------------------------------

    @property
    def in_batch(self) -> bool:
        return bool(self._journals) or self._flushing

    def reset_counts(self) -> None:
        self.recompute_counts.clear()

    def _schedule(self, node: Node) -> None:
        if self._flushing and node in self._ran:
            raise RuntimeError(
                f"{node.name} was scheduled again after it ran in the same update; "
                "a node wrote to an input of an already-processed consumer"
            )
        if node in self._pending:
            return
        self._pending.add(node)
        heapq.heappush(self._heap, (node.rank, id(node), node))

    def _schedule_dependents(self, node: Node) -> None:
        for dependent in sorted(node._dependents, key=lambda n: n.rank):
            self._schedule(dependent)

    def _write(self, node: Node, value: Any) -> None:
        if not self.in_batch:
            with self.batch():
                self._write(node, value)
            return
        if self._journals:
            self._journals[-1].setdefault(node, node._value)
        node._value = value
        self._changed.add(node)
        self._schedule_dependents(node)

    @contextmanager
    def batch(self):
        """
        Group writes into one propagation.

        If the body raises, every node written inside it is restored and
        the exception is re-raised. The outermost batch flushes on exit.
        """
        self._journals.append({})
        try:
            yield self
        except BaseException:
            journal = self._journals.pop()
            self._rollback(journal)
            if not self._journals and not self._flushing:
                self._discard_pending()
            raise
        journal = self._journals.pop()
        if self._journals:
            parent = self._journals[-1]
            for node, old in journal.items():
                parent.setdefault(node, old)
            return
        if self._flushing:
            return
        self._flush(journal)

    def _rollback(self, journal: Dict[Node, Any]) -> None:
        for node, old in journal.items():
            node._value = old
            self._changed.discard(node)

    def _discard_pending(self) -> None:
        self._heap.clear()
        self._pending.clear()

    def _flush(self, journal: Dict[Node, Any]) -> None:
        # Writes made by effects during the flush land in the same journal
        self._journals.append(journal)
        self._flushing = True
        self._ran = set()
        try:
            self._drain()
            ran_any = bool(self._ran)
        except BaseException:
            try:
                self._recover(journal)
            finally:
                self._discard_pending()
            raise
        finally:
            self._flushing = False
            self._ran = set()
            self._journals.pop()
        self._notify(ran_any)

    def _drain(self) -> None:
        while self._heap:
            _, _, node = heapq.heappop(self._heap)
            self._pending.discard(node)
            self._ran.add(node)
            self.recompute_counts[node] += 1
            if node._run():
                self._schedule_dependents(node)

    def _recover(self, journal: Dict[Node, Any]) -> None:
        """Restore pre-event cell values and recompute their consumers."""
        logger.debug("Update failed; restoring %d node(s)", len(journal))
        self._discard_pending()
        self._rollback(journal)
        self._ran = set()
        for node in journal:
            self._schedule_dependents(node)
        self._drain()
        self._changed.clear()

    def _notify(self, ran_any: bool) -> None:
        changed = sorted(self._changed, key=lambda n: n.rank)
        self._changed = set()
        for node in changed:
            for callback in list(node._listeners):
                callback(node._value)
        if ran_any:
            for hook in list(self.on_flush):
                hook()
