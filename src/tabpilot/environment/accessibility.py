"""
Accessibility tree formatting.

``Accessibility.getFullAXTree`` returns a flat list of nodes that reference
their children by id. :func:`format_accessibility_tree` turns that list into
an indented outline the reasoning model can read, e.g.::

    RootWebArea "Example Domain"
      heading "Example Domain"
      paragraph
        StaticText "This domain is for use in illustrative examples."
      link "More information..." (focused)
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

EMPTY_TREE_TEXT = "(empty accessibility tree)"

# Structural roles that add depth without information. Their children are
# rendered in their place.
SKIPPED_ROLES = frozenset({"generic", "none", "presentation", "InlineTextBox", "LineBreak"})

INDENT = "  "


def _ax_value(entry: Any) -> Any:
    """Unwrap a CDP ``AXValue`` (``{"type": ..., "value": ...}``)."""
    if isinstance(entry, dict):
        return entry.get("value")
    return entry


def _parse_props(properties: Optional[Iterable[Dict[str, Any]]]) -> Dict[str, Any]:
    """Flatten an AX node's property list into a simple dict."""
    out: Dict[str, Any] = {}
    for prop in properties or []:
        name = prop.get("name")
        if name:
            out[name] = _ax_value(prop.get("value"))
    return out


def _is_true(value: Any) -> bool:
    return value is True or value == "true"


def _is_hidden(node: Dict[str, Any], props: Dict[str, Any]) -> bool:
    return bool(node.get("ignored")) or _is_true(props.get("hidden"))


def _states(props: Dict[str, Any]) -> List[str]:
    states = []
    if _is_true(props.get("focused")):
        states.append("focused")
    if _is_true(props.get("disabled")):
        states.append("disabled")

    checked = props.get("checked")
    if checked is not None:
        if checked == "mixed":
            states.append("mixed")
        elif _is_true(checked):
            states.append("checked")
        else:
            states.append("unchecked")

    expanded = props.get("expanded")
    if expanded is not None:
        states.append("expanded" if _is_true(expanded) else "collapsed")

    if _is_true(props.get("selected")):
        states.append("selected")
    return states


def format_node(node: Dict[str, Any]) -> str:
    """Render a single visible node as ``role "name" (state,state)``."""
    role = _ax_value(node.get("role")) or "unknown"
    name = (_ax_value(node.get("name")) or "").strip()
    props = _parse_props(node.get("properties"))

    line = str(role)
    if name:
        line += f' "{name}"'
    states = _states(props)
    if states:
        line += f" ({','.join(states)})"
    return line


def format_accessibility_tree(nodes: List[Dict[str, Any]]) -> str:
    """
    Format a flat CDP accessibility node list as an indented outline.

    Roots are the nodes that no other node lists as a child, in document order.
    Hidden and ignored nodes are pruned together with their subtree. Nodes with
    a role in :data:`SKIPPED_ROLES` are not printed, but their children are
    visited at the same depth. Shared or cyclic child references are visited
    once.

    Args:
        nodes: The ``nodes`` array of an ``Accessibility.getFullAXTree`` result

    Returns:
        The outline, or ``EMPTY_TREE_TEXT`` if nothing is visible
    """
    if not nodes:
        return EMPTY_TREE_TEXT

    by_id: Dict[str, Dict[str, Any]] = {}
    parent_of: Dict[str, str] = {}
    for node in nodes:
        node_id = node.get("nodeId")
        if node_id is None:
            continue
        by_id[str(node_id)] = node
    for node_id, node in by_id.items():
        for child_id in node.get("childIds") or []:
            parent_of.setdefault(str(child_id), node_id)

    roots = [node_id for node_id in by_id if node_id not in parent_of]
    if not roots:
        # Every node is somebody's child; fall back to the first node.
        roots = [next(iter(by_id))]

    lines: List[str] = []
    visited: Set[str] = set()

    def walk(node_id: str, depth: int) -> None:
        if node_id in visited:
            return
        visited.add(node_id)

        node = by_id.get(node_id)
        if node is None:
            return

        props = _parse_props(node.get("properties"))
        if _is_hidden(node, props):
            return

        role = _ax_value(node.get("role"))
        child_depth = depth
        if role not in SKIPPED_ROLES:
            lines.append(f"{INDENT * depth}{format_node(node)}")
            child_depth = depth + 1

        for child_id in node.get("childIds") or []:
            walk(str(child_id), child_depth)

    for root_id in roots:
        walk(root_id, 0)

    if not lines:
        return EMPTY_TREE_TEXT

    logger.debug(f"Formatted accessibility tree: {len(lines)} of {len(by_id)} nodes visible")
    return "\n".join(lines)
