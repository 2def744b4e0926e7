"""
Variable-order transitions and context enumeration.

A context is the tuple of the most recent states (at most max_order of
them); the empty tuple is the start context. Each TransitionElement
lists the states that may follow its context together with a
categorical distribution over them.

The DP engine never sees context tuples. For every layer (number of
symbols consumed, capped at max_order) HigherOrderTransition enumerates
the contexts that can occur there, in an order where every silent move
goes from an earlier to a later context, and addresses them by their
position in that list.
"""

from collections import deque
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from hohmm.core.categorical import CategoricalParameters
from hohmm.core.errors import ModelConfigurationError

_NO_PARTIALS = (np.zeros(0, dtype=np.int64), np.zeros(0))


class TransitionElement:
    """
    Outgoing distribution of one context.

    Args:
        context: Previous states, oldest first (empty/None for the start)
        states: States reachable from this context
        hyper_parameters: Dirichlet hyper-parameters, one per child
        probabilities: Initial transition probabilities
    """

    def __init__(self, context: Optional[Sequence[int]], states: Sequence[int],
                 hyper_parameters: Optional[Sequence[float]] = None,
                 probabilities: Optional[Sequence[float]] = None):
        self.context = tuple(int(s) for s in (context or ()))
        self.states = tuple(int(s) for s in states)
        if len(set(self.states)) != len(self.states):
            raise ModelConfigurationError(
                f"Context {self.context} lists a child state twice: {self.states}"
            )
        if hyper_parameters is None:
            hyper_parameters = np.zeros(len(self.states))
        elif len(hyper_parameters) != len(self.states):
            raise ModelConfigurationError(
                f"Context {self.context}: {len(hyper_parameters)} hyper-parameters "
                f"for {len(self.states)} children"
            )
        self.parameters = CategoricalParameters(
            np.asarray(hyper_parameters, dtype=float),
            None if probabilities is None else np.asarray(probabilities, dtype=float)
        )

    @property
    def number_of_children(self) -> int:
        return len(self.states)

    @property
    def probabilities(self) -> np.ndarray:
        return self.parameters.probs

    def duplicate(self) -> 'TransitionElement':
        clone = TransitionElement.__new__(TransitionElement)
        clone.context = self.context
        clone.states = self.states
        clone.parameters = self.parameters.duplicate()
        return clone

    def to_dict(self) -> Dict[str, Any]:
        d = self.parameters.to_dict()
        d['context'] = list(self.context)
        d['states'] = list(self.states)
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'TransitionElement':
        return cls(d['context'], d['states'], d['hyper_parameters'], d['probabilities'])

    def __repr__(self) -> str:
        return f"TransitionElement({self.context} -> {self.states})"


class HigherOrderTransition:
    """
    Transition of a HigherOrderHMM with Markov order up to max_order.

    Construction validates the topology: duplicate contexts, contexts that
    can never be entered, silent states in an order-0 model and cycles of
    silent moves within a layer raise ModelConfigurationError. Contexts
    that are reachable but have no element get an element without
    children (a dead end unless its last state is final).
    """

    def __init__(self, is_silent: Sequence[bool], elements: Sequence[TransitionElement]):
        self.is_silent = tuple(bool(s) for s in is_silent)
        self.n_states = len(self.is_silent)
        elements = list(elements)

        for e in elements:
            bad = [s for s in e.context + e.states if not 0 <= s < self.n_states]
            if bad:
                raise ModelConfigurationError(f"{e} refers to unknown states {bad}")

        self.max_order = max((len(e.context) for e in elements), default=0)
        if self.max_order == 0 and any(self.is_silent):
            raise ModelConfigurationError("An order-0 transition cannot contain silent states")

        self._index: Dict[Tuple[int, ...], int] = {}
        for i, e in enumerate(elements):
            if e.context in self._index:
                raise ModelConfigurationError(f"Context {e.context} is defined twice")
            self._index[e.context] = i
        if () not in self._index:
            raise ModelConfigurationError("No transition element for the start context ()")

        # elements appended here have no children, so one pass suffices
        for e in list(elements):
            for s in e.states:
                d = self.descendant(e.context, s)
                if d not in self._index:
                    self._index[d] = len(elements)
                    elements.append(TransitionElement(d, ()))

        in_degree = np.zeros(len(elements), dtype=int)
        for e in elements:
            for s in e.states:
                in_degree[self._index[self.descendant(e.context, s)]] += 1
        for i, e in enumerate(elements):
            if e.context != () and in_degree[i] == 0:
                raise ModelConfigurationError(f"Context {e.context} can never be reached")

        self.elements = elements
        self._offsets = np.concatenate(
            [[0], np.cumsum([e.number_of_children for e in elements])]
        ).astype(int)

        self._layers = self._enumerate_layers()
        self.final_states = self._compute_final_states()
        self._build_tables()

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    def descendant(self, context: Tuple[int, ...], state: int) -> Tuple[int, ...]:
        """Context after visiting `state`; the oldest state drops out at full order."""
        if self.max_order == 0:
            return ()
        if len(context) < self.max_order:
            return context + (state,)
        return context[1:] + (state,)

    def _silent_closure(self, seeds: List[int]) -> List[int]:
        members = list(dict.fromkeys(seeds))
        seen = set(members)
        queue = deque(members)
        while queue:
            e = self.elements[queue.popleft()]
            for s in e.states:
                if self.is_silent[s]:
                    d = self._index[self.descendant(e.context, s)]
                    if d not in seen:
                        seen.add(d)
                        members.append(d)
                        queue.append(d)
        return members

    def _topological_sort(self, members: List[int], layer: int) -> List[int]:
        """Kahn's algorithm over the silent moves among `members`."""
        member_set = set(members)
        in_degree = {m: 0 for m in members}
        edges = {m: [] for m in members}
        for m in members:
            e = self.elements[m]
            for s in e.states:
                if self.is_silent[s]:
                    d = self._index[self.descendant(e.context, s)]
                    if d in member_set:
                        edges[m].append(d)
                        in_degree[d] += 1

        queue = deque(m for m in members if in_degree[m] == 0)
        order = []
        while queue:
            m = queue.popleft()
            order.append(m)
            for d in edges[m]:
                in_degree[d] -= 1
                if in_degree[d] == 0:
                    queue.append(d)

        if len(order) < len(members):
            cyclic = [self.elements[m].context for m in members if in_degree[m] > 0]
            raise ModelConfigurationError(
                f"Silent states form a cycle in layer {layer}; contexts involved: {cyclic}"
            )
        return order

    def _enumerate_layers(self) -> List[List[int]]:
        K = self.max_order
        layers = []
        for layer in range(K + 1):
            if layer == 0:
                seeds = [self._index[()]]
            elif layer < K:
                seeds = []
                for m in layers[layer - 1]:
                    e = self.elements[m]
                    for s in e.states:
                        if not self.is_silent[s]:
                            seeds.append(self._index[self.descendant(e.context, s)])
            else:
                seeds = [i for i, e in enumerate(self.elements)
                         if len(e.context) == K and not self.is_silent[e.context[-1]]]
            layers.append(self._topological_sort(self._silent_closure(seeds), layer))
        return layers

    def _compute_final_states(self) -> np.ndarray:
        continuing = {e.context[-1] for e in self.elements if e.context and e.states}
        final = np.array([s not in continuing for s in range(self.n_states)])
        if not final.any():
            final = ~np.array(self.is_silent, dtype=bool)
        return final

    def _build_tables(self):
        K = self.max_order
        self._position = [{m: c for c, m in enumerate(layer)} for layer in self._layers]
        self._children = []
        self._lookup = []
        self._last_state = []
        self._terminal = []

        for li, layer in enumerate(self._layers):
            children, lookup, last, terminal = [], [], [], []
            for m in layer:
                e = self.elements[m]
                kids = []
                for s in e.states:
                    advance = 0 if self.is_silent[s] else 1
                    target_layer = min(li + advance, K)
                    d = self._index[self.descendant(e.context, s)]
                    if d not in self._position[target_layer]:
                        raise ModelConfigurationError(
                            f"Context {self.elements[d].context} is not enumerated "
                            f"at layer {target_layer}"
                        )
                    kids.append((s, self._position[target_layer][d], advance))
                children.append(kids)
                lookup.append({s: i for i, s in enumerate(e.states)})
                last_state = e.context[-1] if e.context else -1
                last.append(last_state)
                terminal.append(K == 0 or (last_state >= 0 and bool(self.final_states[last_state])))
            self._children.append(children)
            self._lookup.append(lookup)
            self._last_state.append(last)
            self._terminal.append(terminal)

    # ------------------------------------------------------------------
    # Enumeration API (layer is the number of symbols consumed)
    # ------------------------------------------------------------------

    def _li(self, layer: int) -> int:
        return layer if layer < self.max_order else self.max_order

    def n_contexts(self, layer: int) -> int:
        return len(self._layers[self._li(layer)])

    def context(self, layer: int, ctx: int) -> Tuple[int, ...]:
        return self.elements[self._layers[self._li(layer)][ctx]].context

    def number_of_children(self, layer: int, ctx: int) -> int:
        return len(self._children[self._li(layer)][ctx])

    def children(self, layer: int, ctx: int) -> List[Tuple[int, int, int]]:
        """All (target_state, target_context, layer_advance) triples of a context."""
        return self._children[self._li(layer)][ctx]

    def fill_transition_information(self, layer: int, ctx: int, child: int) -> Tuple[int, int, int]:
        return self._children[self._li(layer)][ctx][child]

    def get_child_idx(self, layer: int, ctx: int, state: int) -> int:
        return self._lookup[self._li(layer)][ctx].get(state, -1)

    def get_last_context_state(self, layer: int, ctx: int) -> int:
        return self._last_state[self._li(layer)][ctx]

    def is_terminal(self, layer: int, ctx: int) -> bool:
        """Whether a path may end in this context."""
        return self._terminal[self._li(layer)][ctx]

    def _element(self, layer: int, ctx: int) -> int:
        return self._layers[self._li(layer)][ctx]

    def log_score(self, layer: int, ctx: int, child: int) -> float:
        return self.elements[self._element(layer, ctx)].parameters.log_probs[child]

    def log_score_and_partials(self, layer: int, ctx: int, child: int,
                               offset: int) -> Tuple[float, np.ndarray, np.ndarray]:
        m = self._element(layer, ctx)
        e = self.elements[m]
        score = e.parameters.log_probs[child]
        if e.number_of_children < 2:
            return score, _NO_PARTIALS[0], _NO_PARTIALS[1]
        indices, values = e.parameters.partials(child, offset + self._offsets[m])
        return score, indices, values

    def add_to_statistic(self, layer: int, ctx: int, child: int, weight: float):
        self.elements[self._element(layer, ctx)].parameters.add_to_statistic(child, weight)

    # ------------------------------------------------------------------
    # Training and parameters
    # ------------------------------------------------------------------

    @property
    def number_of_parameters(self) -> int:
        return int(self._offsets[-1])

    def reset_statistics(self):
        for e in self.elements:
            e.parameters.reset_statistic()

    def join_statistics(self, others: Sequence['HigherOrderTransition']):
        for i, e in enumerate(self.elements):
            e.parameters.join(o.elements[i].parameters for o in others)

    def estimate_from_statistics(self):
        for e in self.elements:
            e.parameters.estimate()

    def draw_parameters_from_statistics(self, rng: np.random.Generator):
        for e in self.elements:
            e.parameters.draw(rng)

    def initialize_randomly(self, rng: np.random.Generator):
        for e in self.elements:
            e.parameters.initialize_randomly(rng)

    def log_prior(self) -> float:
        return sum(e.parameters.log_prior() for e in self.elements)

    def log_gamma_score(self) -> float:
        return sum(e.parameters.log_gamma_score() for e in self.elements)

    def add_prior_gradient(self, grad: np.ndarray, offset: int):
        for i, e in enumerate(self.elements):
            e.parameters.add_prior_gradient(grad, offset + self._offsets[i])

    def get_parameters(self) -> np.ndarray:
        if not self.elements:
            return np.zeros(0)
        return np.concatenate([e.parameters.params for e in self.elements])

    def set_parameters(self, params: np.ndarray):
        if len(params) != self.number_of_parameters:
            raise ValueError(f"Expected {self.number_of_parameters} transition parameters, "
                             f"got {len(params)}")
        for i, e in enumerate(self.elements):
            e.parameters.set_log_parameters(params[self._offsets[i]:self._offsets[i + 1]])

    def copy_parameters_from(self, other: 'HigherOrderTransition'):
        for e, o in zip(self.elements, other.elements):
            e.parameters.copy_from(o.parameters)

    def duplicate(self) -> 'HigherOrderTransition':
        """Copy sharing the enumeration tables, with private parameters and statistics."""
        clone = HigherOrderTransition.__new__(HigherOrderTransition)
        clone.__dict__.update(self.__dict__)
        clone.elements = [e.duplicate() for e in self.elements]
        return clone

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_silent': list(self.is_silent),
            'elements': [e.to_dict() for e in self.elements],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'HigherOrderTransition':
        return cls(d['is_silent'], [TransitionElement.from_dict(e) for e in d['elements']])
