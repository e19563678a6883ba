import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from ltcf_ingestor.commons.errors import UnsupportedResourceError
from ltcf_ingestor.parsers.base import is_blank
from ltcf_ingestor.parsers.models import Operation
from ltcf_ingestor.transformers.tree import Node

IdSource = Callable[[], str]


class ResourceType(str, Enum):
    PATIENT = "Patient"
    ENCOUNTER = "Encounter"
    QUESTIONNAIRE_RESPONSE = "QuestionnaireResponse"

    @classmethod
    def parse(cls, value: Union[str, "ResourceType"]) -> "ResourceType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedResourceError(value) from None


def new_id() -> str:
    return str(uuid.uuid4())


def resolve_id(existing: Optional[str], id_source: IdSource = new_id) -> str:
    if not is_blank(existing):
        return existing.strip()
    return id_source()


def full_url(resource_type, resource_id: str, operation: Optional[Operation] = None) -> str:
    rt = ResourceType.parse(resource_type)
    if operation == Operation.UPDATE:
        return f"{rt.value}/{resource_id}"
    return f"urn:uuid:{resource_id}"


def request_url(resource_type, resource_id: str, operation: Optional[Operation] = None) -> str:
    rt = ResourceType.parse(resource_type)
    if operation == Operation.UPDATE:
        return f"/{rt.value}/{resource_id}/$update"
    return f"urn:uuid:{resource_id}"


@dataclass
class Entry:
    resource_type: ResourceType
    resource_id: str
    full_url: str
    request_method: str
    request_url: str
    resource: Node

    def to_node(self) -> Node:
        entry = Node(key="entry")
        entry.add(Node(key="fullUrl", value=self.full_url))
        wrapper = entry.add(Node(key="resource"))
        wrapper.add(self.resource)
        request = entry.add(Node(key="request"))
        request.add(Node(key="method", value=self.request_method))
        request.add(Node(key="url", value=self.request_url))
        return entry


def wrap_entry(
    resource: Node,
    operation: Union[Operation, str, None] = None,
    existing_id: Optional[str] = None,
    id_source: IdSource = new_id,
) -> Entry:
    """Envuelve un recurso construido en su entrada de la transacción.

    UPDATE apunta al recurso existente (``POST /Type/id/$update``); el resto de
    operaciones van a ``urn:uuid:<id>``. El id elegido se escribe en el recurso.
    """
    if resource is None:
        raise ValueError("resource is required")
    rt = ResourceType.parse(resource.key)
    op = operation if isinstance(operation, Operation) else Operation.parse(operation)
    resource_id = resolve_id(existing_id, id_source)
    resource.set_child_value("id", resource_id, first=True)
    return Entry(
        resource_type=rt,
        resource_id=resource_id,
        full_url=full_url(rt, resource_id, op),
        request_method="POST",
        request_url=request_url(rt, resource_id, op),
        resource=resource,
    )
