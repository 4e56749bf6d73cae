"""Pure helpers that turn the flat adjacency list into nested views.

Nothing here touches the database: callers hand in the rows they loaded and
get plain schema objects back. Ids act as the pointers between nodes.
"""
from __future__ import annotations

from collections import defaultdict, deque
from typing import Iterable, Iterator, Optional

from catalog_admin.errors import CorruptHierarchy
from catalog_admin.schemas.categories import CategoryNode, CategoryTree


def sibling_sort_key(node: CategoryNode) -> tuple[int, str, str]:
    return (node.sort_order, node.name, node.id)


def index_by_id(nodes: Iterable[CategoryNode]) -> dict[str, CategoryNode]:
    return {node.id: node for node in nodes}


def group_by_parent(nodes: Iterable[CategoryNode]) -> dict[Optional[str], list[CategoryNode]]:
    """Map each parent id (``None`` for roots) to its ordered children."""
    children_of: dict[Optional[str], list[CategoryNode]] = defaultdict(list)
    for node in nodes:
        children_of[node.parent_id].append(node)
    for siblings in children_of.values():
        siblings.sort(key=sibling_sort_key)
    return children_of


def iter_ancestors(index: dict[str, CategoryNode], start_id: str) -> Iterator[CategoryNode]:
    """Yield the start node, then its parent, grandparent and so on up to a root.

    The walk is bounded by ``len(index)``; a longer chain can only mean a
    cycle, which is reported as ``CorruptHierarchy``. So is a parent id that
    points at nothing.
    """
    current = index.get(start_id)
    steps = 0
    while current is not None:
        steps += 1
        if steps > len(index):
            raise CorruptHierarchy(category_id=start_id, reason="cycle")
        yield current
        if current.parent_id is None:
            return
        parent = index.get(current.parent_id)
        if parent is None:
            raise CorruptHierarchy(category_id=current.id, parent_id=current.parent_id, reason="missing_parent")
        current = parent


def collect_descendant_ids(nodes: Iterable[CategoryNode], root_id: str) -> set[str]:
    """Ids of every node below ``root_id`` (the root itself excluded)."""
    children_of = group_by_parent(nodes)
    found: set[str] = set()
    queue = deque([root_id])
    while queue:
        for child in children_of.get(queue.popleft(), []):
            # Guard against stored cycles looping back into the subtree
            if child.id in found or child.id == root_id:
                continue
            found.add(child.id)
            queue.append(child.id)
    return found


def build_category_tree(
    nodes: Iterable[CategoryNode],
    include_inactive: bool = False,
) -> tuple[list[CategoryTree], dict[str, list[str]]]:
    """Assemble root-first nested trees from the flat node set.

    Returns the roots plus a report of visible nodes that could not be
    placed: ``orphans`` (parent id resolves to nothing) and ``unreachable``
    (stuck in a stored cycle or below an orphan). Nodes hidden only because
    an ancestor is inactive are left out of the report.
    """
    nodes = list(nodes)
    index = index_by_id(nodes)
    visible = [node for node in nodes if include_inactive or node.is_active]
    children_of = group_by_parent(visible)
    placed: set[str] = set()

    def assemble(node: CategoryNode, depth: int) -> CategoryTree:
        placed.add(node.id)
        return CategoryTree(
            **node.model_dump(),
            depth=depth,
            children=[assemble(child, depth + 1) for child in children_of.get(node.id, [])],
        )

    roots = [assemble(root, 0) for root in children_of.get(None, [])]

    report: dict[str, list[str]] = {"orphans": [], "unreachable": []}
    for node in visible:
        if node.id in placed:
            continue
        reason = _placement_failure(index, node, include_inactive)
        if reason is not None:
            report[reason].append(node.id)
    return roots, report


def _placement_failure(
    index: dict[str, CategoryNode], node: CategoryNode, include_inactive: bool
) -> Optional[str]:
    if node.parent_id not in index:
        return "orphans"
    seen = {node.id}
    current = index[node.parent_id]
    while True:
        if not include_inactive and not current.is_active:
            return None
        if current.id in seen:
            return "unreachable"
        seen.add(current.id)
        if current.parent_id is None:
            # Chain ends at a visible root
            return None
        if current.parent_id not in index:
            return "unreachable"
        current = index[current.parent_id]
