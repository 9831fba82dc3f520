"""Immutable snapshot of the tool dependency graph, with Mermaid rendering for diagnostics."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal, Mapping

Direction = Literal["TD", "TB", "BT", "RL", "LR"]

# Mermaid arrow per group rule: all is thick, any is dotted, sequence is plain
_ARROWS = {"all": "==>", "any": "-.->", "sequence": "-->"}

_NODE_CLASSES = {
    "root": "fill:#e1f5fe,stroke:#01579b,stroke-width:3px",
    "normal": "fill:#f3e5f5,stroke:#4a148c,stroke-width:2px",
    "leaf": "fill:#e8f5e8,stroke:#1b5e20,stroke-width:2px",
    "missing": "fill:#fff,stroke:#9e9e9e,stroke-dasharray:3 3",
}


def _node_id(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_]", "_", name)


def _label(name: str) -> str:
    return name.replace('"', "#quot;")


@dataclass(frozen=True, slots=True)
class DependencyGraph:
    """Dependency graph as seen at one moment.

    Attributes:
        nodes: Tool name -> the names it depends on (declaration order)
        edges: Dependency name -> names of tools depending on it
        root_nodes: Tools declaring no dependency groups
        leaf_nodes: Tools nothing depends on
        rules: (dependency, tool) -> group types linking them, in declaration order
    """

    nodes: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    edges: Mapping[str, frozenset[str]] = field(default_factory=lambda: MappingProxyType({}))
    root_nodes: frozenset[str] = frozenset()
    leaf_nodes: frozenset[str] = frozenset()
    rules: Mapping[tuple[str, str], tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(
        cls,
        dependencies: Mapping[str, list[str]],
        dependents: Mapping[str, list[str]],
        rules: Mapping[tuple[str, str], tuple[str, ...]] | None = None,
    ) -> DependencyGraph:
        """Build from per-tool dependency and dependent lists."""
        edges: dict[str, frozenset[str]] = {}
        for name, deps in dependencies.items():
            for dep in deps:
                edges[dep] = edges.get(dep, frozenset()) | {name}
        return cls(
            nodes=MappingProxyType({n: tuple(d) for n, d in dependencies.items()}),
            edges=MappingProxyType(edges),
            root_nodes=frozenset(n for n, d in dependencies.items() if not d),
            leaf_nodes=frozenset(n for n in dependencies if not dependents.get(n)),
            rules=MappingProxyType(dict(rules or {})),
        )

    def dependents_of(self, name: str) -> frozenset[str]:
        return self.edges.get(name, frozenset())

    def dependencies_of(self, name: str) -> tuple[str, ...]:
        return self.nodes.get(name, ())

    def path_to(self, target: str) -> list[str]:
        """First root-to-target path found by DFS along dependency -> dependent edges.

        Roots and successors are visited in sorted order so the answer is
        stable. Returns ``[]`` when the target is unknown or unreachable.
        """
        if target not in self.nodes:
            return []
        if target in self.root_nodes:
            return [target]

        visited: set[str] = set()

        def dfs(node: str, path: list[str]) -> list[str] | None:
            if node == target:
                return path
            visited.add(node)
            for nxt in sorted(self.dependents_of(node)):
                if nxt not in visited and (found := dfs(nxt, [*path, nxt])):
                    return found
            return None

        for root in sorted(self.root_nodes):
            if found := dfs(root, [root]):
                return found
        return []

    def to_dict(self) -> dict[str, object]:
        """JSON-friendly view."""
        return {
            "nodes": {k: list(v) for k, v in self.nodes.items()},
            "edges": {k: sorted(v) for k, v in self.edges.items()},
            "root_nodes": sorted(self.root_nodes),
            "leaf_nodes": sorted(self.leaf_nodes),
        }

    # ─────────────────────────────────────────────────────────────────
    # Mermaid
    # ─────────────────────────────────────────────────────────────────

    def to_mermaid(self, direction: Direction = "TD") -> str:
        """Whole graph as a Mermaid flowchart.

        Arrows follow the group rule (``==>`` all, ``-.->`` any, ``-->`` sequence)
        and are labelled with it. Dependencies that are not registered are drawn
        with the ``missing`` class.
        """
        names = list(self.nodes)
        for deps in self.nodes.values():
            names.extend(d for d in deps if d not in self.nodes and d not in names)
        links = [(dep, tool) for tool, deps in self.nodes.items() for dep in deps]
        return self._render(names, links, direction)

    def path_to_mermaid(self, target: str, direction: Direction = "TD") -> str:
        """Mermaid flowchart of ``target`` and everything it transitively depends on."""
        names: list[str] = []
        links: list[tuple[str, str]] = []

        def collect(name: str) -> None:
            if name in names:
                return
            names.append(name)
            for dep in self.dependencies_of(name):
                collect(dep)
                links.append((dep, name))

        collect(target)
        return self._render(names, links, direction)

    def to_markdown(self, title: str = "Tool dependency graph", direction: Direction = "TD") -> str:
        """Markdown document with a legend and the fenced Mermaid graph."""
        return "\n".join([
            f"# {title}",
            "",
            f"{len(self.nodes)} tools, {len(self.root_nodes)} roots, {len(self.leaf_nodes)} leaves.",
            "",
            "- `==>` all: every dependency in the group must have run",
            "- `-.->` any: one dependency in the group is enough",
            "- `-->` sequence: dependencies must have run in declaration order",
            "",
            "```mermaid",
            self.to_mermaid(direction),
            "```",
            "",
        ])

    def _node_class(self, name: str) -> str:
        if name not in self.nodes:
            return "missing"
        if name in self.root_nodes:
            return "root"
        return "leaf" if name in self.leaf_nodes else "normal"

    def _render(self, names: list[str], links: list[tuple[str, str]], direction: Direction) -> str:
        lines = [f"graph {direction}"]
        lines += [f'    {_node_id(n)}["{_label(n)}"]' for n in names]
        for dep, tool in links:
            kinds = self.rules.get((dep, tool), ())
            arrow = _ARROWS.get(kinds[0], "-->") if kinds else "-->"
            label = f"|{', '.join(kinds)}|" if kinds else ""
            lines.append(f"    {_node_id(dep)} {arrow}{label} {_node_id(tool)}")
        used = {self._node_class(n) for n in names}
        lines += [f"    classDef {cls} {style}" for cls, style in _NODE_CLASSES.items() if cls in used]
        for cls in _NODE_CLASSES:
            if members := [_node_id(n) for n in names if self._node_class(n) == cls]:
                lines.append(f"    class {','.join(members)} {cls}")
        return "\n".join(lines)
