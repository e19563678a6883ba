import re
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Set

from ltcf_ingestor.commons.errors import FieldValueError
from ltcf_ingestor.parsers.base import is_blank
from ltcf_ingestor.parsers.models import ParsedRecord
from ltcf_ingestor.transformers.catalog import (
    DEFAULT_CATALOG,
    BuildContext,
    ContainerSpec,
    FieldCatalog,
    FieldSpec,
)
from ltcf_ingestor.transformers.entry import ResourceType
from ltcf_ingestor.transformers.tree import Node, ValueKind, new_container, split_path

_INT = re.compile(r"^[+-]?\d+$")
_COMPACT_DATE = re.compile(r"^\d{8}$")
_DATE_FORMATS = (
    (re.compile(r"^\d{4}-\d{2}-\d{2}$"), "%Y-%m-%d"),
    (re.compile(r"^\d{4}-\d{2}$"), "%Y-%m"),
    (re.compile(r"^\d{4}$"), "%Y"),
)


def coerce_value(kind: ValueKind, key: str, raw: str) -> str:
    value = raw.strip()
    if kind == ValueKind.INTEGER:
        if not _INT.match(value):
            raise FieldValueError(key, raw, kind.value)
        return str(int(value))
    if kind == ValueKind.DECIMAL:
        try:
            number = Decimal(value)
        except InvalidOperation:
            raise FieldValueError(key, raw, kind.value) from None
        if not number.is_finite():
            raise FieldValueError(key, raw, kind.value)
        return value
    if kind == ValueKind.DATE:
        return _coerce_date(key, raw, value)
    return value


def _coerce_date(key: str, raw: str, value: str) -> str:
    if _COMPACT_DATE.match(value):
        value = f"{value[:4]}-{value[4:6]}-{value[6:]}"
    for pattern, fmt in _DATE_FORMATS:
        if pattern.match(value):
            try:
                datetime.strptime(value, fmt)
            except ValueError:
                raise FieldValueError(key, raw, ValueKind.DATE.value) from None
            return value
    raise FieldValueError(key, raw, ValueKind.DATE.value)


def resolve_field(spec: FieldSpec, ctx: BuildContext) -> Optional[str]:
    if spec.when is not None and not spec.when(ctx):
        return None
    if spec.derive is not None:
        value = spec.derive(ctx)
    elif spec.key is not None:
        value = ctx.record.lookup(spec.section or "", spec.key)
    else:
        value = spec.value
    if is_blank(value):
        return None
    return value


def _prefixes(segments: List[str]) -> List[str]:
    return ["/".join(segments[: i + 1]) for i in range(len(segments))]


class _Containers:
    """Crea cada contenedor intermedio una sola vez por prefijo de ruta."""

    def __init__(self, root: Node, declared: Dict[str, ContainerSpec]):
        self.root = root
        self.declared = declared
        self.by_path: Dict[str, Node] = {"": root}

    def ensure(self, segments: List[str]) -> Node:
        parent = self.root
        for path, segment in zip(_prefixes(segments), segments):
            node = self.by_path.get(path)
            if node is None:
                node = new_container(segment)
                spec = self.declared.get(path)
                if spec is not None:
                    node.attributes.update(dict(spec.attributes))
                parent.add(node)
                self.by_path[path] = node
            parent = node
        return parent


def build_resource(
    record: ParsedRecord,
    resource_type,
    context: Optional[BuildContext] = None,
    catalog: FieldCatalog = DEFAULT_CATALOG,
) -> Node:
    """Construye el árbol de un recurso a partir del catálogo.

    Solo se crean hojas para los campos que resuelven a un valor; los contenedores se
    crean al vuelo y los comparten todos los campos que cuelgan de ellos. Los
    contenedores precreados (secciones del cuestionario) existen siempre y pueden quedar
    vacíos aquí: hay que podar antes de serializar.
    """
    if record is None:
        raise ValueError("record is required")
    rt = ResourceType.parse(resource_type)
    spec = catalog.get(rt)
    ctx = replace(context, record=record) if context is not None else BuildContext(record=record)

    values: Dict[int, Optional[str]] = {}
    live: Set[str] = {""}
    for i, entry in enumerate(spec.entries):
        if not isinstance(entry, FieldSpec):
            continue
        value = resolve_field(entry, ctx)
        values[i] = value
        if value is not None and entry.is_anchor:
            live.update(_prefixes(entry.segments))

    root = Node(key=rt.value)
    containers = _Containers(root, spec.containers)
    for i, entry in enumerate(spec.entries):
        if isinstance(entry, ContainerSpec):
            if entry.precreate:
                containers.ensure(split_path(entry.path))
            continue
        value = values[i]
        if value is None:
            continue
        if not entry.is_anchor and entry.gate_path not in live:
            continue
        segments = entry.segments
        parent = containers.ensure(segments[:-1])
        leaf_value = coerce_value(entry.kind, entry.key or entry.path, value)
        parent.add(Node(key=segments[-1], value=leaf_value, kind=entry.kind))
    return root
