"""Unit tests for accessibility tree capture and rendering."""
from __future__ import annotations

import pytest

from aria_tree import (
    MAX_NAME_LENGTH,
    REF_ATTRIBUTE,
    ROLE_ATTRIBUTE,
    RefCounter,
    SemanticNode,
    build_tree,
    generate_and_render,
    render_tree,
    yaml_escape_key,
    yaml_escape_value,
    yaml_needs_quotes,
)
from dom import ComputedStyle


class TestYamlEscaping:
    """Tests for quoting of keys and values."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("", True),
            ("hello world", False),
            ("yes", True),
            ("Null", True),
            ("42", True),
            ("0x1f", True),
            ("- item", True),
            ("key: value", True),
            ("a #comment", True),
            ("[bracket", True),
            (" padded", True),
            ("with {brace}", True),
            ("price 10", False),
        ],
    )
    def test_needs_quotes(self, text, expected):
        assert yaml_needs_quotes(text) is expected

    def test_key_uses_single_quotes(self):
        assert yaml_escape_key("plain") == "plain"
        assert yaml_escape_key("it's: here") == "'it''s: here'"

    def test_value_uses_double_quotes(self):
        assert yaml_escape_value("plain") == "plain"
        assert yaml_escape_value('"quoted"') == '"\\"quoted\\""'
        assert yaml_escape_value("line\nbreak") == '"line\\nbreak"'
        assert yaml_escape_value("bell\x07") == '"bell\\x07"'


class TestRender:
    """Tests for the rendered snapshot text."""

    def test_single_button(self, dom):
        button = dom.el("button", "Submit")
        body = dom.body(button)
        dom.document(body)
        snapshot = generate_and_render(body)
        assert snapshot.text == '- button "Submit" [ref=E1]'
        assert snapshot.roles == {"E1": "button"}
        assert snapshot.element("E1") is button
        assert snapshot.element("E9") is None

    def test_generic_with_several_children_is_kept(self, dom):
        body = dom.body(dom.el("h1", "Title"), dom.block("p", "Hello world"))
        dom.document(body)
        snapshot = generate_and_render(body)
        assert snapshot.text == (
            "- generic [ref=E1]:\n"
            '  - heading "Title" [level=1] [ref=E2]\n'
            "  - paragraph [ref=E3]: Hello world"
        )

    def test_loose_text(self, dom):
        body = dom.body("Just text", dom.el("button", "A"))
        dom.document(body)
        assert generate_and_render(body).text == (
            "- generic [ref=E1]:\n"
            "  - text: Just text\n"
            '  - button "A" [ref=E2]'
        )

    def test_link_url_prop(self, dom):
        body = dom.body(dom.el("a", "Docs", attrs={"href": "/docs"}))
        dom.document(body)
        assert generate_and_render(body).text == '- link "Docs" [ref=E1]:\n  - /url: /docs'

    def test_textbox_value(self, dom):
        field = dom.el("input", attrs={"aria-label": "Search"}, value="cats")
        body = dom.body(field)
        dom.document(body)
        assert generate_and_render(body).text == '- textbox "Search" [ref=E1]: cats'

    def test_password_value_withheld(self, dom):
        field = dom.el("input", attrs={"aria-label": "Password"}, input_type="password", value="hunter2")
        body = dom.body(field)
        dom.document(body)
        text = generate_and_render(body).text
        assert text == '- textbox "Password" [ref=E1]'
        assert "hunter2" not in text

    def test_sensitive_autocomplete_withheld(self, dom):
        field = dom.el("input", attrs={"aria-label": "Card", "autocomplete": "cc-number"}, value="4111")
        body = dom.body(field)
        dom.document(body)
        assert "4111" not in generate_and_render(body).text

    def test_checkbox_state(self, dom):
        box = dom.el("input", attrs={"aria-label": "Agree"}, input_type="checkbox", checked=True)
        body = dom.body(box)
        dom.document(body)
        assert generate_and_render(body).text == '- checkbox "Agree" [checked] [ref=E1]'

    def test_cursor_pointer(self, dom):
        body = dom.body(dom.el("button", "Go", style=ComputedStyle(cursor="pointer")))
        dom.document(body)
        assert generate_and_render(body).text == '- button "Go" [ref=E1] [cursor=pointer]'

    def test_hidden_element_skipped(self, dom):
        hidden = dom.el("div", "secret", style=dom.hidden_style(), rect=dom.empty_rect())
        body = dom.body(dom.el("button", "A"), hidden)
        dom.document(body)
        text = generate_and_render(body).text
        assert text == '- button "A" [ref=E1]'
        assert "secret" not in text

    def test_no_ref_without_pointer_events(self, dom):
        blocked = dom.el("button", "B", style=ComputedStyle(pointer_events="none"))
        body = dom.body(dom.el("button", "A"), blocked)
        dom.document(body)
        snapshot = generate_and_render(body)
        assert snapshot.text == (
            "- generic [ref=E1]:\n"
            '  - button "A" [ref=E2]\n'
            '  - button "B"'
        )
        assert REF_ATTRIBUTE not in blocked.attributes

    def test_long_name_truncated(self, dom):
        body = dom.body(dom.el("button", attrs={"aria-label": "x" * (MAX_NAME_LENGTH + 50)}))
        dom.document(body)
        text = generate_and_render(body).text
        assert '"' + "x" * MAX_NAME_LENGTH + '..."' in text

    def test_render_plain_tree(self):
        root = SemanticNode(role="fragment", children=[SemanticNode(role="heading", name="Hi", level=2)])
        snapshot = render_tree(root)
        assert snapshot.text == '- heading "Hi" [level=2] [ref=E1]'
        assert snapshot.refs == {}


class TestRefs:
    """Tests for ref allocation and stamping."""

    def test_refs_stamped_on_elements(self, dom):
        button = dom.el("button", "Submit", node_id=42)
        body = dom.body(button)
        dom.document(body)
        snapshot = generate_and_render(body)
        assert button.get_attribute(REF_ATTRIBUTE) == "E1"
        assert button.get_attribute(ROLE_ATTRIBUTE) == "button"
        assert snapshot.node_ids() == {"E1": 42}

    def test_stale_refs_cleared(self, dom):
        stale = dom.el("div", attrs={REF_ATTRIBUTE: "E9"}, style=dom.hidden_style(), rect=dom.empty_rect())
        body = dom.body(dom.el("button", "A"), stale)
        dom.document(body)
        generate_and_render(body)
        assert REF_ATTRIBUTE not in stale.attributes

    def test_fresh_capture_restarts_numbering(self, dom):
        body = dom.body(dom.el("button", "A"))
        dom.document(body)
        generate_and_render(body)
        assert generate_and_render(body).text == '- button "A" [ref=E1]'

    def test_build_then_render_stamps_elements(self, dom):
        button = dom.el("button", "Go", node_id=7)
        body = dom.body(button)
        dom.document(body)
        snapshot = render_tree(build_tree(body), RefCounter())
        assert snapshot.text == '- button "Go" [ref=E1]'
        assert button.get_attribute(REF_ATTRIBUTE) == "E1"
        assert snapshot.element("E1") is button
        assert snapshot.node_ids() == {"E1": 7}

    def test_shared_counter_continues(self, dom):
        body = dom.body(dom.el("button", "A"))
        dom.document(body)
        counter = RefCounter()
        generate_and_render(body, counter)
        assert generate_and_render(body, counter).text == '- button "A" [ref=E2]'


class TestStructure:
    """Tests for frames, shadow trees and slots."""

    def test_same_origin_iframe_inlined(self, dom):
        frame = dom.document(dom.body(dom.el("button", "Framed")), url="https://example.com/frame")
        body = dom.body(dom.el("iframe", content_document=frame), dom.el("button", "Top"))
        dom.document(body)
        snapshot = generate_and_render(body)
        assert snapshot.text == (
            "- generic [ref=E1]:\n"
            '  - button "Framed" [ref=E2]\n'
            '  - button "Top" [ref=E3]'
        )
        assert snapshot.roles["E2"] == "button"

    def test_cross_origin_iframe_placeholder(self, dom):
        body = dom.body(dom.el("iframe", cross_origin=True), dom.el("button", "Top"))
        dom.document(body)
        assert generate_and_render(body).text == (
            "- generic [ref=E1]:\n"
            "  - iframe [ref=E2]\n"
            '  - button "Top" [ref=E3]'
        )

    def test_shadow_root_content(self, dom):
        host = dom.el("div")
        host.attach_shadow(dom.el("button", "Inner"))
        body = dom.body(host)
        dom.document(body)
        assert generate_and_render(body).text == '- button "Inner" [ref=E1]'

    def test_slotted_content(self, dom):
        light = dom.el("button", "Light")
        host = dom.el("div", light)
        slot = dom.el("slot", style=ComputedStyle(display="contents"))
        host.attach_shadow(slot)
        slot.assign(light)
        body = dom.body(host)
        dom.document(body)
        assert generate_and_render(body).text == '- button "Light" [ref=E1]'

    @pytest.mark.parametrize("role", ["presentation", "none"])
    def test_presentational_element_promotes_children(self, dom, role):
        wrapper = dom.el("div", dom.el("button", "A"), dom.el("button", "B"), attrs={"role": role})
        body = dom.body(wrapper)
        dom.document(body)
        snapshot = generate_and_render(body)
        assert snapshot.text == (
            "- generic [ref=E1]:\n"
            '  - button "A" [ref=E2]\n'
            '  - button "B" [ref=E3]'
        )
        assert REF_ATTRIBUTE not in wrapper.attributes

    def test_aria_owns_appends_owned_elements(self, dom):
        owner = dom.el(
            "div",
            dom.el("button", "Toggle"),
            attrs={"role": "group", "aria-label": "Menu", "aria-owns": "popup"},
        )
        popup = dom.el("button", "Owned", attrs={"id": "popup"})
        body = dom.body(owner, popup)
        dom.document(body)
        assert generate_and_render(body).text == (
            '- group "Menu" [ref=E1]:\n'
            '  - button "Toggle" [ref=E2]\n'
            '  - button "Owned" [ref=E3]'
        )

    def test_aria_owns_self_reference_ignored(self, dom):
        looped = dom.el(
            "div",
            dom.el("button", "Inside"),
            attrs={"id": "loop", "role": "group", "aria-label": "Loop", "aria-owns": "loop"},
        )
        body = dom.body(looped)
        dom.document(body)
        assert generate_and_render(body).text == '- group "Loop" [ref=E1]:\n  - button "Inside" [ref=E2]'

    def test_aria_owns_ancestor_cycle_ignored(self, dom):
        inner = dom.el(
            "div",
            dom.el("button", "Deep"),
            attrs={"role": "group", "aria-label": "Inner", "aria-owns": "outer"},
        )
        outer = dom.el("div", inner, attrs={"id": "outer", "role": "group", "aria-label": "Outer"})
        body = dom.body(outer)
        dom.document(body)
        assert generate_and_render(body).text == (
            '- group "Outer" [ref=E1]:\n'
            '  - group "Inner" [ref=E2]:\n'
            '    - button "Deep" [ref=E3]'
        )

    def test_iframe_nesting_capped(self, dom):
        document = dom.document(dom.body(dom.el("button", "Level 6")), url="https://example.com/6")
        for level in range(5, 0, -1):
            frame_body = dom.body(dom.el("button", f"Level {level}"), dom.el("iframe", content_document=document))
            document = dom.document(frame_body, url=f"https://example.com/{level}")
        body = dom.body(dom.el("iframe", content_document=document))
        dom.document(body)

        text = generate_and_render(body).text
        for level in range(1, 6):
            assert f'button "Level {level}"' in text
        assert "Level 6" not in text

    def test_generic_wrappers_around_one_control_collapse(self, dom):
        body = dom.body(dom.el("div", dom.el("div", dom.el("button", "Only"))))
        dom.document(body)
        assert generate_and_render(body).text == '- button "Only" [ref=E1]'

    def test_generic_kept_around_non_interactable_child(self, dom):
        blocked = dom.el("button", "Blocked", style=ComputedStyle(pointer_events="none"))
        body = dom.body(dom.el("div", blocked))
        dom.document(body)
        assert generate_and_render(body).text == '- generic [ref=E1]:\n  - button "Blocked"'

    def test_build_tree_walk(self, dom):
        body = dom.body(dom.el("h1", "Title"), dom.el("button", "Go"))
        dom.document(body)
        tree = build_tree(body)
        roles = [node.role for node in tree.walk()]
        assert roles == ["fragment", "generic", "heading", "button"]
