"""Unit tests for the captured document model."""
from __future__ import annotations

from dom import ComputedStyle, Document, Element, Rect, ShadowRoot, TextNode, box, is_element_visible


def serialized_page():
    return {
        "url": "https://example.com/",
        "children": [
            {
                "type": "element",
                "nid": 1,
                "tag": "html",
                "style": {"display": "block"},
                "children": [
                    {
                        "type": "element",
                        "nid": 2,
                        "tag": "body",
                        "style": {"display": "block"},
                        "children": [
                            {
                                "type": "element",
                                "nid": 3,
                                "tag": "input",
                                "attrs": {"id": "q", "name": "q"},
                                "style": {"display": "inline-block", "cursor": "text"},
                                "rect": [0, 0, 100, 20],
                                "props": {"value": "cats", "type": "Search"},
                            },
                            {
                                "type": "element",
                                "nid": 4,
                                "tag": "my-card",
                                "style": {"display": "block"},
                                "children": [
                                    {"type": "element", "nid": 5, "tag": "span", "style": {}, "children": [
                                        {"type": "text", "nid": 6, "text": "slotted"}
                                    ]},
                                ],
                                "shadow": [
                                    {"type": "element", "nid": 7, "tag": "slot", "style": {"display": "contents"},
                                     "assigned": [5]},
                                ],
                            },
                            {
                                "type": "element",
                                "nid": 8,
                                "tag": "iframe",
                                "style": {"display": "inline"},
                                "frame": {
                                    "document": {
                                        "url": "https://example.com/frame",
                                        "children": [
                                            {"type": "element", "nid": 1, "tag": "html", "style": {}, "children": [
                                                {"type": "element", "nid": 2, "tag": "body", "style": {}}
                                            ]}
                                        ],
                                    }
                                },
                            },
                            {
                                "type": "element",
                                "nid": 9,
                                "tag": "iframe",
                                "style": {},
                                "frame": {"crossOrigin": True},
                            },
                        ],
                    }
                ],
            }
        ],
    }


class TestFromDict:
    """Tests for rebuilding a document from the page serializer output."""

    def test_structure(self):
        document = Document.from_dict(serialized_page())
        assert document.url == "https://example.com/"
        assert document.document_element.tag == "HTML"
        assert document.body.tag == "BODY"
        assert document.body.node_id == 2

    def test_element_properties(self):
        document = Document.from_dict(serialized_page())
        search = document.get_element_by_id("q")
        assert search is not None
        assert search.value == "cats"
        assert search.input_type == "search"
        assert search.rect == Rect(0, 0, 100, 20)
        assert search.style.cursor == "text"
        assert search.owner_document is document

    def test_shadow_and_slots(self):
        document = Document.from_dict(serialized_page())
        host = document.body.element_children[1]
        assert isinstance(host.shadow_root, ShadowRoot)
        slot = host.shadow_root.element_children[0]
        span = host.element_children[0]
        assert slot.assigned_nodes == [span]
        assert span.assigned_slot is slot
        assert slot.parent_element_or_shadow_host is host

    def test_frames(self):
        document = Document.from_dict(serialized_page())
        same_origin, cross_origin = document.body.element_children[2:]
        assert same_origin.content_document is not None
        assert same_origin.content_document.url == "https://example.com/frame"
        assert same_origin.content_document.body is not None
        assert cross_origin.cross_origin is True
        assert cross_origin.content_document is None

    def test_missing_style_defaults(self):
        style = ComputedStyle.from_dict({})
        assert style.display == "inline"
        assert style.visibility == "visible"
        assert style.pointer_events == ""
        assert ComputedStyle.from_dict(None) is None


class TestElement:
    """Tests for element helpers."""

    def test_tag_uppercased(self):
        assert Element(tag="button").tag == "BUTTON"

    def test_labels(self, dom):
        field = dom.el("input", attrs={"id": "email"})
        wrapping = dom.el("label", dom.el("input"))
        body = dom.body(dom.el("label", "Email", attrs={"for": "email"}), field, wrapping)
        dom.document(body)
        assert [label.text_content for label in field.labels] == ["Email"]
        nested = wrapping.element_children[0]
        assert nested.labels == [wrapping]

    def test_hidden_input_has_no_labels(self, dom):
        field = dom.el("input", attrs={"id": "x"}, input_type="hidden")
        body = dom.body(dom.el("label", "X", attrs={"for": "x"}), field)
        dom.document(body)
        assert field.labels == []

    def test_selected_options(self, dom):
        first = dom.el("option", "One")
        second = dom.el("option", "Two", selected=True)
        select = dom.el("select", first, second)
        assert select.options == [first, second]
        assert select.selected_options == [second]

    def test_closest_cross_shadow(self, dom):
        inner = dom.el("td")
        host = dom.el("div")
        host.attach_shadow(inner)
        table = dom.el("table", host)
        assert inner.closest_cross_shadow(lambda e: e.tag == "TABLE") is table

    def test_text_content(self, dom):
        paragraph = dom.el("p", "Hello ", dom.el("b", "world"))
        assert paragraph.text_content == "Hello world"

    def test_contains(self, dom):
        child = dom.el("span")
        parent = dom.el("div", child)
        assert parent.contains(child)
        assert not child.contains(parent)


class TestBox:
    """Tests for visibility and layout."""

    def test_visible_without_rect(self, dom):
        assert is_element_visible(dom.el("div"))

    def test_empty_rect_invisible(self, dom):
        assert not is_element_visible(dom.el("div", rect=dom.empty_rect()))

    def test_visibility_hidden(self, dom):
        element = dom.el("div", style=ComputedStyle(visibility="hidden"))
        assert not is_element_visible(element)

    def test_display_contents_uses_children(self, dom):
        empty = dom.el("div", style=ComputedStyle(display="contents"))
        assert not box(empty).visible
        with_text = dom.el("div", "text", style=ComputedStyle(display="contents"))
        assert box(with_text).visible

    def test_cursor(self, dom):
        assert box(dom.el("a", style=ComputedStyle(cursor="pointer"))).cursor == "pointer"

    def test_text_node_visibility_flag(self):
        assert TextNode(text="x", visible=False).visible is False
