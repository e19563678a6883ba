from ltcf_ingestor.parsers.base import is_blank
from ltcf_ingestor.transformers.tree import Node

CODED_WRAPPERS = ("valueCoding", "coding")


def _is_removable(node: Node, parent: Node) -> bool:
    if node.is_leaf or not node.children:
        # hoja sin valor
        if is_blank(node.value):
            return True
        return False
    if node.key in CODED_WRAPPERS and node.child("code") is None:
        return True
    # item que solo conserva su linkId
    return all(c.is_label(node) for c in node.children)


def _prune_once(node: Node) -> int:
    removed = 0
    kept = []
    for child in node.children:
        removed += _prune_once(child)
        if _is_removable(child, node):
            removed += 1
            continue
        kept.append(child)
    node.children = kept
    return removed


def prune(node: Node) -> Node:
    """Quita hojas en blanco y contenedores vacíos hasta que una pasada no quite nada.

    Modifica ``node`` en sitio y lo devuelve. La raíz nunca se elimina.
    """
    if node is None:
        raise ValueError("node is required")
    while _prune_once(node):
        pass
    return node


def has_empty_branch(node: Node) -> bool:
    for n in node.walk():
        if n is node:
            continue
        if n.is_empty():
            return True
        if n.key == "answer" and not n.children:
            return True
        if n.children and all(c.is_label(n) for c in n.children):
            return True
    return False
