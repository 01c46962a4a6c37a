"""
Message dependency analysis for one proto file.

Zod schemas are ``const`` bindings, so a schema must be defined before the
schemas that reference it directly. This module orders the messages of a file
accordingly and finds the messages that take part in reference cycles. Those
are emitted with ``z.lazy()`` and are referenced lazily, so they never have to
be defined before their referrers.

Only references between the given top-level messages of the file count.
References into other files are imports and can never form a cycle here.
"""

from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .zod_model import FieldShape, ProtoField, ProtoMessage


@dataclass
class DependencyAnalysis:
    """
    Attributes:
        sorted_messages: Every input message exactly once, in emission order
        recursive_types: Names of the messages that are reachable from
                         themselves, directly or through other messages
    """
    sorted_messages: List[ProtoMessage] = field(default_factory=list)
    recursive_types: Set[str] = field(default_factory=set)


def _referenced_message(proto_field: ProtoField) -> Optional[ProtoMessage]:
    if proto_field.shape in (FieldShape.MESSAGE, FieldShape.REPEATED_MESSAGE):
        return proto_field.message
    if proto_field.shape == FieldShape.MAP and proto_field.map_value_shape == FieldShape.MESSAGE:
        return proto_field.message
    return None


def build_dependency_graph(messages: List[ProtoMessage],
                           current_proto_path: str) -> 'OrderedDict[str, List[str]]':
    """
    Map each message name to the names of the same-file messages it references.

    Singular, repeated and map-valued message fields all count. The lists keep
    field order and hold no duplicates; a self-reference appears as an edge to
    the message itself.
    """
    members = set(id(m) for m in messages)
    graph = OrderedDict((m.name, []) for m in messages)

    for message in messages:
        deps = graph[message.name]
        for proto_field in message.fields:
            target = _referenced_message(proto_field)
            if target is None or id(target) not in members:
                continue
            if target.file != current_proto_path:
                continue
            if target.name not in deps:
                deps.append(target.name)

    return graph


def _find_cycle(root: str, graph: Dict[str, List[str]]) -> Optional[List[str]]:
    """
    Depth-first search for a path leading from ``root`` back to ``root``.

    Returns the messages on that path, or None if root is not reachable from
    itself.
    """
    path = []
    visited = set()

    def visit(node):
        path.append(node)
        visited.add(node)
        for dep in graph[node]:
            if dep == root:
                return True
            if dep not in visited and visit(dep):
                return True
        path.pop()
        return False

    if visit(root):
        return path
    return None


def find_recursive_types(graph: Dict[str, List[str]]) -> Set[str]:
    """
    Find every message that is reachable from itself.

    Examples:
        >>> sorted(find_recursive_types({'A': ['B'], 'B': ['C'], 'C': ['A'], 'D': ['A']}))
        ['A', 'B', 'C']
        >>> sorted(find_recursive_types({'Node': ['Node'], 'Tree': ['Node']}))
        ['Node']
    """
    recursive = set()
    for name, deps in graph.items():
        if name in deps:
            recursive.add(name)

    for name in graph:
        if name in recursive:
            continue
        cycle = _find_cycle(name, graph)
        if cycle:
            recursive.update(cycle)

    return recursive


def analyze_message_dependencies(messages: List[ProtoMessage],
                                 current_proto_path: str) -> DependencyAnalysis:
    """
    Compute the emission order and the recursive types of a file.

    Messages are scheduled once all their dependencies are scheduled, where
    self-references and references to recursive types do not count. Ties are
    broken by declaration order. Messages that are still unscheduled at the
    end are appended in declaration order.

    Args:
        messages: Top-level messages of the file, in declaration order
        current_proto_path: Logical path of the file

    Returns:
        DependencyAnalysis with every message exactly once.
    """
    graph = build_dependency_graph(messages, current_proto_path)
    recursive_types = find_recursive_types(graph)
    by_name = dict((m.name, m) for m in messages)

    blockers = {}
    for name, deps in graph.items():
        blockers[name] = set(d for d in deps if d != name and d not in recursive_types)

    scheduled = set()
    result = []
    queue = deque(m.name for m in messages if not blockers[m.name])

    while queue:
        name = queue.popleft()
        if name in scheduled:
            continue
        scheduled.add(name)
        result.append(by_name[name])

        for other, deps in graph.items():
            if other in scheduled or name not in deps:
                continue
            if blockers[other] <= scheduled:
                queue.append(other)

    for message in messages:
        if message.name not in scheduled:
            scheduled.add(message.name)
            result.append(message)

    return DependencyAnalysis(result, recursive_types)
