from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


class ValueKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"
    CODE = "code"
    URI = "uri"


# Contenedores que llevan su propia etiqueta como primer hijo
LABELS: Dict[str, str] = {"item": "linkId"}


def parse_segment(segment: str) -> Tuple[str, Optional[str]]:
    """'item#A10g' -> ('item', 'A10g'); 'birthDate' -> ('birthDate', None)."""
    if "#" in segment:
        tag, group = segment.split("#", 1)
        return tag, group
    return segment, None


def split_path(path: str) -> List[str]:
    return [s for s in path.split("/") if s]


@dataclass
class Node:
    key: str
    value: Optional[str] = None
    kind: Optional[ValueKind] = None
    group: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    children: List["Node"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return self.kind is not None

    def is_empty(self) -> bool:
        return self.value is None and not self.children

    def is_label(self, parent: "Node") -> bool:
        return LABELS.get(parent.key) == self.key

    def label(self) -> Optional[str]:
        name = LABELS.get(self.key)
        if not name:
            return None
        for c in self.children:
            if c.key == name:
                return c.value
        return None

    def add(self, child: "Node") -> "Node":
        self.children.append(child)
        return child

    def child(self, key: str, group: Optional[str] = None) -> Optional["Node"]:
        for c in self.children:
            if c.key != key:
                continue
            if group is None or c.group == group or (c.group is None and c.label() == group):
                return c
        return None

    def find(self, path: str) -> Optional["Node"]:
        node = self
        for segment in split_path(path):
            tag, group = parse_segment(segment)
            node = node.child(tag, group)
            if node is None:
                return None
        return node

    def find_all(self, key: str) -> List["Node"]:
        return [n for n in self.walk() if n.key == key]

    def walk(self) -> Iterator["Node"]:
        yield self
        for c in self.children:
            yield from c.walk()

    def set_child_value(self, key: str, value: str, kind: ValueKind = ValueKind.STRING, first=False):
        existing = self.child(key)
        if existing is not None:
            existing.value = value
            existing.kind = kind
            return existing
        node = Node(key=key, value=value, kind=kind)
        if first:
            self.children.insert(0, node)
        else:
            self.children.append(node)
        return node

    def to_dict(self) -> dict:
        out: dict = {"key": self.key}
        if self.value is not None:
            out["value"] = self.value
        if self.attributes:
            out["attributes"] = dict(self.attributes)
        if self.children:
            out["children"] = [c.to_dict() for c in self.children]
        return out


def new_container(segment: str) -> Node:
    tag, group = parse_segment(segment)
    node = Node(key=tag, group=group)
    label = LABELS.get(tag)
    if label and group:
        node.add(Node(key=label, value=group, kind=ValueKind.STRING))
    return node
