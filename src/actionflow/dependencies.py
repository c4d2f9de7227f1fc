"""Derive producer/consumer edges from ids referenced inside action payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .schemas import (
    Action,
    AddPlayerChoiceAction,
    CutsceneAction,
    PlayCutsceneAction,
    ShowModalAction,
    WhenThenAction,
)


def _cutscene_refs(action: CutsceneAction) -> List[str]:
    refs: List[str] = []
    for shot in action.shots:
        refs.append(shot.image_id)
        refs.append(shot.subtitle_id)
    return refs


def _play_cutscene_refs(action: PlayCutsceneAction) -> List[str]:
    return [action.cutscene_id]


def _show_modal_refs(action: ShowModalAction) -> List[str]:
    return [ref for ref in (action.image_id, action.subtitle_id) if ref]


def _when_then_refs(action: WhenThenAction) -> List[str]:
    return extract_references(action.action)


def _player_choice_refs(action: AddPlayerChoiceAction) -> List[str]:
    refs: List[str] = []
    for option in action.options:
        for reaction in option.reactions:
            refs.extend(extract_references(reaction))
    return refs


_REFERENCE_EXTRACTORS: Dict[str, Callable[..., List[str]]] = {
    "asset_cutscene": _cutscene_refs,
    "play_cutscene": _play_cutscene_refs,
    "show_modal": _show_modal_refs,
    "when_then": _when_then_refs,
    "add_player_choice": _player_choice_refs,
}


def extract_references(action: Action) -> List[str]:
    """Return ids referenced by ``action`` in first-seen order without duplicates."""

    extractor = _REFERENCE_EXTRACTORS.get(action.type)
    if extractor is None:
        return []
    return list(dict.fromkeys(extractor(action)))


@dataclass
class DependencyGraph:
    """Directed graph over action ids. An edge ``producer -> consumer`` means
    the consumer references an id the producer generates."""

    order: List[str]
    actions: Dict[str, Action]
    producers: Dict[str, List[str]] = field(default_factory=dict)
    consumers: Dict[str, List[str]] = field(default_factory=dict)

    def producers_of(self, action_id: str) -> List[str]:
        return list(self.producers.get(action_id, []))

    def consumers_of(self, action_id: str) -> List[str]:
        return list(self.consumers.get(action_id, []))

    def dependents_of(self, action_id: str) -> List[str]:
        """All transitive consumers of ``action_id`` in input order."""

        seen: set[str] = set()
        stack = list(self.consumers.get(action_id, []))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.consumers.get(current, []))
        return [aid for aid in self.order if aid in seen]

    def find_cycle(self) -> Optional[List[str]]:
        """Return one cycle as ``[a, b, ..., a]`` or None when the graph is acyclic."""

        white, grey, black = 0, 1, 2
        color = {aid: white for aid in self.order}
        parent: Dict[str, str] = {}

        for root in self.order:
            if color[root] != white:
                continue
            stack: List[tuple[str, Iterable[str]]] = [(root, iter(self.consumers.get(root, [])))]
            color[root] = grey
            while stack:
                node, children = stack[-1]
                advanced = False
                for child in children:
                    if color[child] == white:
                        parent[child] = node
                        color[child] = grey
                        stack.append((child, iter(self.consumers.get(child, []))))
                        advanced = True
                        break
                    if color[child] == grey:
                        path = [node]
                        while path[-1] != child:
                            path.append(parent[path[-1]])
                        path.reverse()
                        return path + [child]
                if not advanced:
                    color[node] = black
                    stack.pop()
        return None


def build_dependency_graph(actions: Sequence[Action]) -> DependencyGraph:
    """Build the graph for one parsed batch.

    References to ids outside the batch are not edges; the asset is assumed to
    exist already. Self references are ignored.
    """

    order = [action.id for action in actions]
    by_id = {action.id: action for action in actions}
    graph = DependencyGraph(order=order, actions=by_id)
    for action in actions:
        for ref in extract_references(action):
            if ref == action.id or ref not in by_id:
                continue
            graph.producers.setdefault(action.id, []).append(ref)
            graph.consumers.setdefault(ref, []).append(action.id)
    return graph


__all__ = ["DependencyGraph", "build_dependency_graph", "extract_references"]
