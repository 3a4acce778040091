"""
In-memory resource graph and attribute resolution.

Builders declare nodes and wire them together with `AttributeRef`s, which
stand for values (ids, ARNs, endpoints) that only exist once the referenced
resource is created. Nothing is evaluated while the graph is built:
`ResourceGraph.resolve_all` checks every reference, orders the nodes and
renders the `Manifest`.
"""

import copy
import heapq
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set, Tuple

import pulumi

from .catalog import Category, ResourceType, lookup
from .errors import NamingCollision, OrderingCycle, UnresolvedReference
from .manifest import CONCAT_KEY, SECRET_PREFIX, Manifest, ManifestResource, ref_token


@dataclass(frozen=True)
class AttributeRef:
    source: str
    attribute: str

    @property
    def token(self) -> str:
        return ref_token(self.source, self.attribute)

    def __str__(self) -> str:
        return self.token


@dataclass(frozen=True)
class Template:
    """A string assembled from literals and attribute references."""

    parts: Tuple[Any, ...]

    @classmethod
    def of(cls, *parts: Any) -> "Template":
        return cls(tuple(parts))

    def refs(self) -> List[AttributeRef]:
        return [p for p in self.parts if isinstance(p, AttributeRef)]


@dataclass(frozen=True)
class SecretParam:
    """A secret the deployment engine reads from stack configuration."""

    key: str


@dataclass(frozen=True)
class NodeHandle:
    name: str
    kind: str

    def attr(self, attribute: str) -> AttributeRef:
        return AttributeRef(self.name, attribute)

    @property
    def id(self) -> AttributeRef:
        return self.attr("id")

    @property
    def arn(self) -> AttributeRef:
        return self.attr("arn")


@dataclass(frozen=True)
class ResourceNode:
    name: str
    kind: str
    category: Category
    token: str
    properties: Mapping[str, Any]

    def references(self) -> List[AttributeRef]:
        return list(_walk_refs(self.properties))


@dataclass(frozen=True)
class DependencyEdge:
    dependent: str
    dependency: str
    reason: str = ""


class ResourceGraph:
    """
    Owner of every node declared during one synthesis run.

    Nodes are kept in declaration order, which is also the tie-break used
    when ordering the manifest, so identical input yields identical output.
    """

    def __init__(self, tags: Optional[Dict[str, str]] = None):
        self.tags = dict(tags or {})
        self._kinds: Dict[str, str] = {}
        self._nodes: Dict[str, Optional[ResourceNode]] = {}
        self._edges: List[DependencyEdge] = []

    def declare(
        self,
        kind: str,
        name: str,
        properties: Optional[Dict[str, Any]] = None,
        tags: Optional[Dict[str, Any]] = None,
    ) -> NodeHandle:
        handle = self.reserve(kind, name)
        self.materialize(handle, properties, tags)
        return handle

    def reserve(self, kind: str, name: str) -> NodeHandle:
        """Register a name so it can be referenced before its properties are known."""
        lookup(kind)
        if name in self._kinds:
            raise NamingCollision(name, f"{self._kinds[name]} '{name}'", f"{kind} '{name}'")
        self._kinds[name] = kind
        self._nodes[name] = None
        return NodeHandle(name, kind)

    def materialize(
        self,
        handle: NodeHandle,
        properties: Optional[Dict[str, Any]] = None,
        tags: Optional[Dict[str, Any]] = None,
    ) -> ResourceNode:
        if handle.name not in self._nodes:
            raise KeyError(f"Resource '{handle.name}' was never declared.")
        if self._nodes[handle.name] is not None:
            raise NamingCollision(handle.name, f"{handle.kind} '{handle.name}'", "a second materialization")
        rtype = lookup(handle.kind)
        props = copy.deepcopy(dict(properties or {}))
        if rtype.taggable:
            merged = {"Name": handle.name}
            merged.update(self.tags)
            merged.update(tags or {})
            props["tags"] = merged
        node = ResourceNode(
            name=handle.name,
            kind=rtype.kind,
            category=rtype.category,
            token=rtype.token,
            properties=MappingProxyType(props),
        )
        self._nodes[handle.name] = node
        return node

    def depends(self, dependent: NodeHandle, dependency: NodeHandle, reason: str = "") -> DependencyEdge:
        """Record an ordering constraint that no attribute reference expresses."""
        edge = DependencyEdge(dependent.name, dependency.name, reason)
        self._edges.append(edge)
        return edge

    def reference(self, name: str, attribute: str = "id") -> AttributeRef:
        return AttributeRef(name, attribute)

    def attribute_of(self, handle: NodeHandle, attribute: str) -> AttributeRef:
        return handle.attr(attribute)

    def node(self, name: str) -> ResourceNode:
        node = self._nodes.get(name)
        if node is None:
            raise KeyError(name)
        return node

    @property
    def nodes(self) -> List[ResourceNode]:
        return [n for n in self._nodes.values() if n is not None]

    @property
    def edges(self) -> List[DependencyEdge]:
        return list(self._edges)

    def __contains__(self, name: str) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def resolve_all(
        self,
        name: str = "",
        account: str = "",
        region: str = "",
        outputs: Optional[Mapping[str, Any]] = None,
    ) -> Manifest:
        outputs = dict(outputs or {})
        deps = self._dependencies(outputs)
        order = self._order(deps)

        resources = []
        position = {n: i for i, n in enumerate(order)}
        for node_name in order:
            node = self._nodes[node_name]
            resources.append(
                ManifestResource(
                    name=node.name,
                    type=node.token,
                    category=node.category.value,
                    kind=node.kind,
                    properties=_render(node.properties),
                    depends_on=sorted(deps[node_name], key=position.__getitem__),
                )
            )
        pulumi.log.debug(f"Resolved {len(resources)} resources into manifest '{name}'")
        return Manifest(
            name=name,
            account=account,
            region=region,
            resources=resources,
            outputs={key: _render(value) for key, value in outputs.items()},
        )

    def _dependencies(self, outputs: Mapping[str, Any]) -> Dict[str, Set[str]]:
        deps: Dict[str, Set[str]] = {}
        for node_name, node in self._nodes.items():
            if node is None:
                continue
            deps[node_name] = set()
            for ref in node.references():
                self._check(node_name, ref)
                deps[node_name].add(ref.source)
        for key, value in outputs.items():
            for ref in _walk_refs(value):
                self._check(f"output:{key}", ref)
        for edge in self._edges:
            for end in (edge.dependent, edge.dependency):
                if self._nodes.get(end) is None:
                    other = edge.dependency if end == edge.dependent else edge.dependent
                    raise UnresolvedReference(
                        other, end, "*",
                        "explicit dependency on a resource that was never materialized",
                    )
            deps[edge.dependent].add(edge.dependency)
        for node_name, node in self._nodes.items():
            if node is None:
                raise UnresolvedReference(
                    node_name, node_name, "*", "reserved but never materialized"
                )
        return deps

    def _check(self, dependent: str, ref: AttributeRef) -> None:
        if ref.source not in self._nodes:
            raise UnresolvedReference(dependent, ref.source, ref.attribute, "source was never declared")
        source = self._nodes[ref.source]
        if source is None:
            raise UnresolvedReference(
                dependent, ref.source, ref.attribute, "source was declared but never materialized"
            )
        rtype: ResourceType = lookup(source.kind)
        if ref.attribute not in rtype.attributes:
            raise UnresolvedReference(
                dependent, ref.source, ref.attribute,
                f"{rtype.token} has no attribute '{ref.attribute}'",
            )

    def _order(self, deps: Dict[str, Set[str]]) -> List[str]:
        index = {n: i for i, n in enumerate(deps)}
        dependents: Dict[str, List[str]] = {n: [] for n in deps}
        remaining = {n: len(d) for n, d in deps.items()}
        for node_name, sources in deps.items():
            for source in sources:
                dependents[source].append(node_name)

        ready = [(index[n], n) for n, count in remaining.items() if count == 0]
        heapq.heapify(ready)
        order = []
        while ready:
            _, node_name = heapq.heappop(ready)
            order.append(node_name)
            for dependent in dependents[node_name]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, (index[dependent], dependent))

        if len(order) != len(deps):
            stuck = [n for n in deps if remaining[n] > 0]
            raise OrderingCycle(_find_cycle(stuck, deps))
        return order


def _find_cycle(stuck: List[str], deps: Dict[str, Set[str]]) -> List[str]:
    stuck_set = set(stuck)
    for start in stuck:
        path: List[str] = []
        on_path: Dict[str, int] = {}
        node = start
        while node not in on_path:
            on_path[node] = len(path)
            path.append(node)
            candidates = sorted(d for d in deps[node] if d in stuck_set)
            if not candidates:
                break
            node = candidates[0]
        else:
            cycle = path[on_path[node]:]
            return cycle + [cycle[0]]
    return stuck


def _walk_refs(value: Any) -> Iterator[AttributeRef]:
    if isinstance(value, AttributeRef):
        yield value
    elif isinstance(value, Template):
        yield from value.refs()
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _walk_refs(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _walk_refs(item)


def _render(value: Any) -> Any:
    if isinstance(value, AttributeRef):
        return value.token
    if isinstance(value, Template):
        return {CONCAT_KEY: [_render(p) for p in value.parts]}
    if isinstance(value, SecretParam):
        return f"{SECRET_PREFIX}{value.key}"
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _render(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_render(item) for item in value]
    return value
