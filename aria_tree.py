"""Accessibility tree capture and rendering.

``build_tree`` walks a document (same-origin iframes inline, shadow roots and
slots included) into :class:`SemanticNode` objects. ``render_tree`` turns that
into the YAML-like snapshot handed to the model, allocating ``E1``, ``E2``...
refs for every visible node that receives pointer events and stamping them on
the captured elements.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set, Union

from dom import Box, Element, Node, ParentNode, TextNode, box, is_element_visible
from roles import (
    PRESENTATION_ROLES,
    Checked,
    RoleResolver,
    normalize_whitespace,
    supported_states,
)

REF_ATTRIBUTE = "data-pilot-ref"
ROLE_ATTRIBUTE = "data-pilot-role"
MAX_IFRAME_DEPTH = 5
MAX_NAME_LENGTH = 900

NON_TEXT_INPUT_TYPES = frozenset({"password", "checkbox", "radio", "file"})
SENSITIVE_AUTOCOMPLETE = frozenset(
    {
        "cc-number",
        "cc-name",
        "cc-csc",
        "cc-exp",
        "cc-exp-month",
        "cc-exp-year",
        "cc-type",
        "new-password",
        "current-password",
        "one-time-code",
    }
)


# ─────────────────────────────────────────────────────────────────────────────
# Data model
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(eq=False)
class SemanticNode:
    """One accessibility-relevant node of a capture."""

    role: str
    name: str = ""
    children: List[Union["SemanticNode", str]] = field(default_factory=list)
    props: Dict[str, str] = field(default_factory=dict)
    box: Box = field(default_factory=Box)
    receives_pointer_events: bool = True
    element_index: Optional[int] = None
    checked: Optional[Checked] = None
    disabled: Optional[bool] = None
    expanded: Optional[bool] = None
    level: Optional[int] = None
    pressed: Optional[Checked] = None
    selected: Optional[bool] = None
    arena: Optional["CaptureArena"] = field(default=None, repr=False)

    @property
    def is_interactable(self) -> bool:
        return self.box.visible and self.receives_pointer_events

    def walk(self) -> Iterator["SemanticNode"]:
        yield self
        for child in self.children:
            if isinstance(child, SemanticNode):
                yield from child.walk()


class CaptureArena:
    """Element table for one capture; tree nodes refer to elements by index."""

    def __init__(self):
        self._elements: List[Element] = []

    def add(self, element: Element) -> int:
        self._elements.append(element)
        return len(self._elements) - 1

    def __getitem__(self, index: int) -> Element:
        return self._elements[index]

    def __len__(self) -> int:
        return len(self._elements)


@dataclass
class RefCounter:
    """Ref sequence shared by every frame of a capture."""

    value: int = 0

    def next_ref(self) -> str:
        self.value += 1
        return f"E{self.value}"


@dataclass
class RenderedSnapshot:
    """Rendered tree text plus the ref table produced while rendering."""

    text: str
    refs: Dict[str, int] = field(default_factory=dict)
    roles: Dict[str, str] = field(default_factory=dict)
    arena: CaptureArena = field(default_factory=CaptureArena, repr=False)

    def element(self, ref: str) -> Optional[Element]:
        index = self.refs.get(ref)
        return None if index is None else self.arena[index]

    def node_ids(self) -> Dict[str, int]:
        """Map each ref to the page-side id of its element, where known."""
        result = {}
        for ref, index in self.refs.items():
            node_id = self.arena[index].node_id
            if node_id is not None:
                result[ref] = node_id
        return result


# ─────────────────────────────────────────────────────────────────────────────
# YAML escaping
# ─────────────────────────────────────────────────────────────────────────────

_CONTROL_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
_ESCAPED_IN_VALUE = re.compile('[\\\\"\x00-\x1f\x7f-\x9f]')
_JS_NUMBER = re.compile(
    r"^\s*(?:[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+|[+-]?Infinity)\s*$"
)
_RESERVED_WORDS = frozenset({"y", "n", "yes", "no", "true", "false", "on", "off", "null"})
_VALUE_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def yaml_needs_quotes(text: str) -> bool:
    if not text:
        return True
    if re.search(r"^\s|\s$", text):
        return True
    if _CONTROL_CHARS.search(text):
        return True
    if text.startswith("-"):
        return True
    if re.search(r"[\n:](\s|$)", text):
        return True
    if re.search(r"\s#", text):
        return True
    if "\n" in text or "\r" in text:
        return True
    if text[0] in "&*],?!>|@\"'#%[":
        return True
    if re.search(r"[{}`]", text):
        return True
    return bool(_JS_NUMBER.match(text)) or text.lower() in _RESERVED_WORDS


def yaml_escape_key(text: str) -> str:
    if not yaml_needs_quotes(text):
        return text
    return "'" + text.replace("'", "''") + "'"


def yaml_escape_value(text: str) -> str:
    if not yaml_needs_quotes(text):
        return text

    def escape(match: "re.Match[str]") -> str:
        char = match.group(0)
        return _VALUE_ESCAPES.get(char) or f"\\x{ord(char):02x}"

    return '"' + _ESCAPED_IN_VALUE.sub(escape, text) + '"'


# ─────────────────────────────────────────────────────────────────────────────
# Builder
# ─────────────────────────────────────────────────────────────────────────────


def iter_elements_deep(root: Element) -> Iterator[Element]:
    """The root and all descendant elements, shadow trees included."""
    yield root
    for child in root.children:
        if isinstance(child, Element):
            yield from iter_elements_deep(child)
    if root.shadow_root is not None:
        for child in root.shadow_root.children:
            if isinstance(child, Element):
                yield from iter_elements_deep(child)


def clear_refs(root: Element) -> None:
    for element in iter_elements_deep(root):
        element.remove_attribute(REF_ATTRIBUTE)
        element.remove_attribute(ROLE_ATTRIBUTE)


class TreeBuilder:
    """Builds semantic trees for one capture, sharing arena and caches across frames."""

    def __init__(self, arena: Optional[CaptureArena] = None, resolver: Optional[RoleResolver] = None):
        self.arena = arena if arena is not None else CaptureArena()
        self.resolver = resolver if resolver is not None else RoleResolver()

    def build(self, root: Element, iframe_depth: int = 0) -> SemanticNode:
        visited: Set[Node] = set()
        document = root.owner_document or root.root()
        fragment = SemanticNode(
            role="fragment",
            box=box(root),
            element_index=self.arena.add(root),
            arena=self.arena,
        )

        def visit(parent: SemanticNode, node: Node) -> None:
            if node in visited:
                return
            visited.add(node)

            if isinstance(node, TextNode):
                if node.text and parent.role != "textbox":
                    parent.children.append(node.text)
                return
            if not isinstance(node, Element):
                return

            element = node
            if self.resolver.is_hidden(element) and not is_element_visible(element):
                return

            owned: List[Element] = []
            if element.has_attribute("aria-owns") and isinstance(document, ParentNode):
                for element_id in (element.get_attribute("aria-owns") or "").split():
                    target = document.get_element_by_id(element_id)
                    if target is not None:
                        owned.append(target)

            if element.tag == "IFRAME":
                if iframe_depth >= MAX_IFRAME_DEPTH:
                    return
                content = element.content_document
                body = content.body if content is not None and not element.cross_origin else None
                if body is not None:
                    clear_refs(body)
                    subtree = self.build(body, iframe_depth + 1)
                    parent.children.extend(subtree.children)
                    return
                parent.children.append(
                    SemanticNode(
                        role="iframe",
                        box=box(element),
                        element_index=self.arena.add(element),
                    )
                )
                return

            semantic = self.to_semantic_node(element)
            if semantic is not None:
                parent.children.append(semantic)
            process(semantic or parent, element, owned)

        def process(target: SemanticNode, element: Element, owned: List[Element]) -> None:
            display = element.style.display if element.style else "inline"
            block_break = " " if display != "inline" or element.tag == "BR" else ""
            if block_break:
                target.children.append(block_break)

            target.children.append(self.resolver.css_content(element, "::before") or "")
            if element.tag == "SLOT" and element.assigned_nodes:
                for child in element.assigned_nodes:
                    visit(target, child)
            else:
                for child in element.children:
                    if child.assigned_slot is None:
                        visit(target, child)
                if element.shadow_root is not None:
                    for child in element.shadow_root.children:
                        visit(target, child)

            for child in owned:
                visit(target, child)

            target.children.append(self.resolver.css_content(element, "::after") or "")

            if block_break:
                target.children.append(block_break)

            if len(target.children) == 1 and target.name == target.children[0]:
                target.children = []

            if target.role == "link" and element.has_attribute("href"):
                target.props["url"] = element.get_attribute("href") or ""

        visit(fragment, root)
        normalize_string_children(fragment)
        normalize_generic_roles(fragment)
        return fragment

    def to_semantic_node(self, element: Element) -> Optional[SemanticNode]:
        role = self.resolver.role(element) or "generic"
        if role in PRESENTATION_ROLES:
            return None

        node = SemanticNode(
            role=role,
            name=normalize_whitespace(self.resolver.accessible_name(element)),
            box=box(element),
            receives_pointer_events=self.resolver.receives_pointer_events(element),
            element_index=self.arena.add(element),
        )
        for flag in supported_states(role):
            setattr(node, flag.attr, self.resolver.state(element, flag))

        if element.tag in ("INPUT", "TEXTAREA"):
            input_type = element.input_type if element.tag == "INPUT" else "textarea"
            autocomplete = element.get_attribute("autocomplete") or ""
            if input_type not in NON_TEXT_INPUT_TYPES and autocomplete not in SENSITIVE_AUTOCOMPLETE:
                node.children = [element.value]
        return node


def normalize_string_children(root: SemanticNode) -> None:
    """Merge adjacent text runs and drop a lone child that repeats the name."""

    def visit(node: SemanticNode) -> None:
        normalized: List[Union[SemanticNode, str]] = []
        buffer: List[str] = []

        def flush() -> None:
            if buffer:
                text = normalize_whitespace("".join(buffer))
                if text:
                    normalized.append(text)
                buffer.clear()

        for child in node.children:
            if isinstance(child, str):
                buffer.append(child)
            else:
                flush()
                visit(child)
                normalized.append(child)
        flush()
        node.children = normalized
        if len(node.children) == 1 and node.children[0] == node.name:
            node.children = []

    visit(root)


def normalize_generic_roles(root: SemanticNode) -> None:
    """Unwrap ``generic`` nodes that only wrap a single interactable node."""

    def normalize(node: SemanticNode) -> List[Union[SemanticNode, str]]:
        result: List[Union[SemanticNode, str]] = []
        for child in node.children:
            if isinstance(child, str):
                result.append(child)
            else:
                result.extend(normalize(child))
        remove_self = (
            node.role == "generic"
            and len(result) <= 1
            and all(isinstance(child, SemanticNode) and child.is_interactable for child in result)
        )
        if remove_self:
            return result
        node.children = result
        return [node]

    normalize(root)


def build_tree(root: Element) -> SemanticNode:
    """Build the semantic tree of ``root``; the returned fragment carries its element table."""
    return TreeBuilder().build(root)


# ─────────────────────────────────────────────────────────────────────────────
# Renderer
# ─────────────────────────────────────────────────────────────────────────────


def _node_key(node: SemanticNode) -> str:
    key = node.role
    if node.name:
        name = node.name
        if len(name) > MAX_NAME_LENGTH:
            name = name[:MAX_NAME_LENGTH] + "..."
        key += " " + json.dumps(name, ensure_ascii=False)
    if node.checked == "mixed":
        key += " [checked=mixed]"
    if node.checked is True:
        key += " [checked]"
    if node.disabled:
        key += " [disabled]"
    if node.expanded:
        key += " [expanded]"
    if node.level:
        key += f" [level={node.level}]"
    if node.pressed == "mixed":
        key += " [pressed=mixed]"
    if node.pressed is True:
        key += " [pressed]"
    if node.selected is True:
        key += " [selected]"
    return key


def render_tree(root: SemanticNode, counter: Optional[RefCounter] = None) -> RenderedSnapshot:
    """Serialize a tree, allocating refs from ``counter`` in document order.

    Refs are stamped onto elements through the element table of the fragment
    ``build_tree`` returned; a hand-built tree without one only gets text.
    """
    counter = counter if counter is not None else RefCounter()
    arena = root.arena if root.arena is not None else CaptureArena()
    snapshot = RenderedSnapshot(text="", arena=arena)
    lines: List[str] = []

    def visit(node: Union[SemanticNode, str], indent: str) -> None:
        if isinstance(node, str):
            text = yaml_escape_value(node)
            if text:
                lines.append(f"{indent}- text: {text}")
            return

        key = _node_key(node)
        if node.is_interactable:
            ref = counter.next_ref()
            key += f" [ref={ref}]"
            if node.box.cursor == "pointer":
                key += " [cursor=pointer]"
            if node.element_index is not None and node.element_index < len(arena):
                element = arena[node.element_index]
                element.set_attribute(REF_ATTRIBUTE, ref)
                element.set_attribute(ROLE_ATTRIBUTE, node.role)
                snapshot.refs[ref] = node.element_index
                snapshot.roles[ref] = node.role

        escaped_key = f"{indent}- {yaml_escape_key(key)}"
        if not node.children and not node.props:
            lines.append(escaped_key)
        elif len(node.children) == 1 and isinstance(node.children[0], str) and not node.props:
            text = node.children[0]
            lines.append(f"{escaped_key}: {yaml_escape_value(text)}" if text else escaped_key)
        else:
            lines.append(f"{escaped_key}:")
            for name, value in node.props.items():
                lines.append(f"{indent}  - /{name}: {yaml_escape_value(value)}")
            for child in node.children:
                visit(child, indent + "  ")

    if root.role == "fragment":
        for child in root.children:
            visit(child, "")
    else:
        visit(root, "")
    snapshot.text = "\n".join(lines)
    return snapshot


def generate_and_render(root: Element, counter: Optional[RefCounter] = None) -> RenderedSnapshot:
    """Capture ``root`` from scratch: clear old refs, build, render."""
    clear_refs(root)
    return render_tree(build_tree(root), counter)
