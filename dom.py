"""In-memory document model captured from a live page.

The browser serializes its DOM (frames, shadow roots, computed styles and form
state included) into plain JSON; :meth:`Document.from_dict` rebuilds it here so
the accessibility tree can be computed in Python.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Union


@dataclass
class ComputedStyle:
    """The subset of computed style the accessibility tree depends on."""

    display: str = "inline"
    visibility: str = "visible"
    pointer_events: str = "auto"
    cursor: str = "auto"
    content: str = "normal"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ComputedStyle"]:
        if data is None:
            return None
        return cls(
            display=data.get("display") or "inline",
            visibility=data.get("visibility") or "visible",
            pointer_events=data.get("pointerEvents") or "",
            cursor=data.get("cursor") or "auto",
            content=data.get("content") or "normal",
        )


@dataclass
class Rect:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(eq=False)
class Node:
    """Base for all tree nodes. Identity-hashed so nodes can key caches."""

    parent: Optional["ParentNode"] = field(default=None, repr=False)
    node_id: Optional[int] = None

    @property
    def parent_element(self) -> Optional["Element"]:
        return self.parent if isinstance(self.parent, Element) else None

    @property
    def assigned_slot(self) -> Optional["Element"]:
        return getattr(self, "_assigned_slot", None)

    @assigned_slot.setter
    def assigned_slot(self, slot: Optional["Element"]) -> None:
        self._assigned_slot = slot

    def root(self) -> "Node":
        node: Node = self
        while node.parent is not None:
            node = node.parent
        return node


@dataclass(eq=False)
class TextNode(Node):
    text: str = ""
    visible: bool = True

    @property
    def text_content(self) -> str:
        return self.text


@dataclass(eq=False)
class ParentNode(Node):
    children: List[Node] = field(default_factory=list, repr=False)

    def append(self, *nodes: Node) -> "ParentNode":
        for node in nodes:
            node.parent = self
            self.children.append(node)
        return self

    @property
    def element_children(self) -> List["Element"]:
        return [child for child in self.children if isinstance(child, Element)]

    def iter_elements(self) -> Iterator["Element"]:
        """Depth-first descendant elements, not crossing shadow boundaries."""
        for child in self.children:
            if isinstance(child, Element):
                yield child
                yield from child.iter_elements()

    def query_all(self, predicate: Callable[["Element"], bool]) -> List["Element"]:
        return [el for el in self.iter_elements() if predicate(el)]

    def get_element_by_id(self, element_id: str) -> Optional["Element"]:
        for element in self.iter_elements():
            if element.attributes.get("id") == element_id:
                return element
        return None

    def contains(self, node: Node) -> bool:
        current: Optional[Node] = node
        while current is not None:
            if current is self:
                return True
            current = current.parent
        return False

    @property
    def text_content(self) -> str:
        parts = []
        for child in self.children:
            parts.append(getattr(child, "text_content", ""))
        return "".join(parts)


@dataclass(eq=False)
class ShadowRoot(ParentNode):
    host: Optional["Element"] = field(default=None, repr=False)


@dataclass(eq=False)
class Document(ParentNode):
    url: str = ""

    @property
    def document_element(self) -> Optional["Element"]:
        elements = self.element_children
        return elements[0] if elements else None

    @property
    def body(self) -> Optional["Element"]:
        html = self.document_element
        if html is None:
            return None
        if html.tag == "BODY":
            return html
        for child in html.element_children:
            if child.tag == "BODY":
                return child
        return None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        """Rebuild a document from the JSON produced by the page serializer."""
        document = cls(url=data.get("url", ""))
        registry: Dict[int, Node] = {}
        slots: List[tuple] = []
        for child in data.get("children", []):
            document.append(_node_from_dict(child, document, registry, slots))
        for slot, assigned_ids in slots:
            for nid in assigned_ids:
                node = registry.get(nid)
                if node is not None:
                    slot.assigned_nodes.append(node)
                    node.assigned_slot = slot
        return document


@dataclass(eq=False)
class Element(ParentNode):
    tag: str = "DIV"
    attributes: Dict[str, str] = field(default_factory=dict)
    style: Optional[ComputedStyle] = field(default_factory=ComputedStyle)
    before: Optional[ComputedStyle] = None
    after: Optional[ComputedStyle] = None
    rect: Optional[Rect] = None
    check_visibility: bool = True
    shadow_root: Optional[ShadowRoot] = field(default=None, repr=False)
    assigned_nodes: List[Node] = field(default_factory=list, repr=False)
    owner_document: Optional[Document] = field(default=None, repr=False)

    # Form and widget state read from DOM properties rather than attributes
    value: str = ""
    input_type: str = "text"
    checked: bool = False
    indeterminate: bool = False
    selected: bool = False
    open: bool = False
    hidden: bool = False
    size: int = 0

    # Frames
    content_document: Optional[Document] = field(default=None, repr=False)
    cross_origin: bool = False

    def __post_init__(self) -> None:
        self.tag = self.tag.upper()

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def set_attribute(self, name: str, value: str) -> None:
        self.attributes[name] = value

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name, None)

    def attach_shadow(self, *nodes: Node) -> ShadowRoot:
        self.shadow_root = ShadowRoot(host=self)
        self.shadow_root.append(*nodes)
        return self.shadow_root

    def assign(self, *nodes: Node) -> "Element":
        """Assign light-DOM nodes to this slot element."""
        for node in nodes:
            self.assigned_nodes.append(node)
            node.assigned_slot = self
        return self

    @property
    def parent_element_or_shadow_host(self) -> Optional["Element"]:
        if isinstance(self.parent, Element):
            return self.parent
        if isinstance(self.parent, ShadowRoot):
            return self.parent.host
        return None

    def enclosing_root(self) -> Optional[ParentNode]:
        """The document or shadow root this element lives in."""
        node = self.root()
        if isinstance(node, (Document, ShadowRoot)):
            return node
        return None

    def closest(self, predicate: Callable[["Element"], bool]) -> Optional["Element"]:
        element: Optional[Element] = self
        while element is not None:
            if predicate(element):
                return element
            element = element.parent_element
        return None

    def closest_cross_shadow(self, predicate: Callable[["Element"], bool]) -> Optional["Element"]:
        element: Optional[Element] = self
        while element is not None:
            found = element.closest(predicate)
            if found is not None:
                return found
            while element.parent_element is not None:
                element = element.parent_element
            element = element.parent_element_or_shadow_host
        return None

    @property
    def labels(self) -> List["Element"]:
        """``<label>`` elements associated with a labelable control."""
        if self.tag not in LABELABLE_TAGS or (self.tag == "INPUT" and self.input_type == "hidden"):
            return []
        result: List[Element] = []
        ancestor = self.parent_element
        while ancestor is not None:
            if ancestor.tag == "LABEL" and not ancestor.has_attribute("for"):
                result.append(ancestor)
            ancestor = ancestor.parent_element
        element_id = self.get_attribute("id")
        root = self.enclosing_root()
        if element_id and root is not None:
            for label in root.query_all(lambda e: e.tag == "LABEL"):
                if label.get_attribute("for") == element_id and label not in result:
                    result.append(label)
        return result

    @property
    def options(self) -> List["Element"]:
        return self.query_all(lambda e: e.tag == "OPTION")

    @property
    def selected_options(self) -> List["Element"]:
        return [option for option in self.options if option.selected]


LABELABLE_TAGS = frozenset(
    {"BUTTON", "INPUT", "METER", "OUTPUT", "PROGRESS", "SELECT", "TEXTAREA"}
)

ParentLike = Union[Document, ShadowRoot, Element]


def _node_from_dict(
    data: Dict[str, Any],
    document: Document,
    registry: Dict[int, Node],
    slots: List[tuple],
) -> Node:
    nid = data.get("nid")
    if data.get("type") == "text":
        node: Node = TextNode(text=data.get("text", ""), visible=data.get("visible", True), node_id=nid)
    else:
        props = data.get("props") or {}
        rect = data.get("rect")
        element = Element(
            tag=data.get("tag", "DIV"),
            attributes=dict(data.get("attrs") or {}),
            style=ComputedStyle.from_dict(data.get("style")),
            before=ComputedStyle.from_dict(data.get("before")),
            after=ComputedStyle.from_dict(data.get("after")),
            rect=Rect(*rect) if rect else None,
            check_visibility=data.get("checkVisibility", True),
            owner_document=document,
            node_id=nid,
            value=props.get("value") or "",
            input_type=(props.get("type") or "text").lower(),
            checked=bool(props.get("checked")),
            indeterminate=bool(props.get("indeterminate")),
            selected=bool(props.get("selected")),
            open=bool(props.get("open")),
            hidden=bool(props.get("hidden")),
            size=int(props.get("size") or 0),
        )
        for child in data.get("children", []):
            element.append(_node_from_dict(child, document, registry, slots))
        shadow = data.get("shadow")
        if shadow is not None:
            element.attach_shadow(
                *(_node_from_dict(child, document, registry, slots) for child in shadow)
            )
        frame = data.get("frame")
        if frame is not None:
            if frame.get("crossOrigin"):
                element.cross_origin = True
            elif frame.get("document") is not None:
                element.content_document = Document.from_dict(frame["document"])
        if data.get("assigned"):
            slots.append((element, data["assigned"]))
        node = element
    if nid is not None:
        registry[nid] = node
    return node


# ─────────────────────────────────────────────────────────────────────────────
# Layout helpers
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class Box:
    """Layout summary of an element: whether it is visible and its cursor."""

    visible: bool = True
    cursor: Optional[str] = None


def is_style_visibility_visible(element: Element, style: Optional[ComputedStyle] = None) -> bool:
    style = style or element.style
    if style is None:
        return True
    if not element.check_visibility:
        return False
    return style.visibility == "visible"


def is_visible_text_node(node: TextNode) -> bool:
    return node.visible


def box(element: Element) -> Box:
    style = element.style
    if style is None:
        return Box(visible=True)
    if style.display == "contents":
        for child in element.children:
            if isinstance(child, Element) and is_element_visible(child):
                return Box(visible=True, cursor=style.cursor)
            if isinstance(child, TextNode) and is_visible_text_node(child):
                return Box(visible=True, cursor=style.cursor)
        return Box(visible=False, cursor=style.cursor)
    if not is_style_visibility_visible(element, style):
        return Box(visible=False, cursor=style.cursor)
    # Without layout information the element is assumed to be rendered
    if element.rect is None:
        return Box(visible=True, cursor=style.cursor)
    return Box(visible=not element.rect.is_empty, cursor=style.cursor)


def is_element_visible(element: Element) -> bool:
    return box(element).visible
