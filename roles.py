"""ARIA role, accessible name and state computation over the captured DOM.

Follows the WAI-ARIA 1.2 / HTML-AAM mappings and the accessible name
computation algorithm. Role lookups are pure functions; anything expensive
(hidden checks, names, generated content, pointer events) lives on
:class:`RoleResolver`, whose caches last for a single capture.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Set, Union

import css_tokenizer as css
from dom import (
    ComputedStyle,
    Element,
    Node,
    TextNode,
    is_style_visibility_visible,
    is_visible_text_node,
)

Checked = Union[bool, str]

PRESENTATION_ROLES = frozenset({"presentation", "none"})

VALID_ROLES = frozenset(
    {
        "alert", "alertdialog", "application", "article", "banner", "blockquote",
        "button", "caption", "cell", "checkbox", "code", "columnheader", "combobox",
        "complementary", "contentinfo", "definition", "deletion", "dialog",
        "directory", "document", "emphasis", "feed", "figure", "form", "generic",
        "grid", "gridcell", "group", "heading", "img", "insertion", "link", "list",
        "listbox", "listitem", "log", "main", "mark", "marquee", "math", "meter",
        "menu", "menubar", "menuitem", "menuitemcheckbox", "menuitemradio",
        "navigation", "none", "note", "option", "paragraph", "presentation",
        "progressbar", "radio", "radiogroup", "region", "row", "rowgroup",
        "rowheader", "scrollbar", "search", "searchbox", "separator", "slider",
        "spinbutton", "status", "strong", "subscript", "superscript", "switch",
        "tab", "table", "tablist", "tabpanel", "term", "textbox", "time", "timer",
        "toolbar", "tooltip", "tree", "treegrid", "treeitem",
    }
)

_NAMING_PROHIBITED_FOR = (
    "caption", "code", "deletion", "emphasis", "generic", "insertion",
    "paragraph", "presentation", "strong", "subscript", "superscript",
)

# attribute -> roles for which the attribute does not count as "global"
GLOBAL_ARIA_ATTRIBUTES: Dict[str, FrozenSet[str]] = {
    "aria-atomic": frozenset(),
    "aria-busy": frozenset(),
    "aria-controls": frozenset(),
    "aria-current": frozenset(),
    "aria-describedby": frozenset(),
    "aria-details": frozenset(),
    "aria-dropeffect": frozenset(),
    "aria-flowto": frozenset(),
    "aria-grabbed": frozenset(),
    "aria-hidden": frozenset(),
    "aria-keyshortcuts": frozenset(),
    "aria-label": frozenset(_NAMING_PROHIBITED_FOR),
    "aria-labelledby": frozenset(_NAMING_PROHIBITED_FOR),
    "aria-live": frozenset(),
    "aria-owns": frozenset(),
    "aria-relevant": frozenset(),
    "aria-roledescription": frozenset({"generic"}),
}

_LANDMARK_BLOCKING_TAGS = frozenset({"ARTICLE", "ASIDE", "MAIN", "NAV", "SECTION"})
_LANDMARK_BLOCKING_ROLES = frozenset({"article", "complementary", "main", "navigation", "region"})

_INPUT_TYPE_ROLES = {
    "button": "button",
    "checkbox": "checkbox",
    "image": "button",
    "number": "spinbutton",
    "radio": "radio",
    "range": "slider",
    "reset": "button",
    "submit": "button",
}

_PRESENTATION_INHERITANCE_PARENTS: Dict[str, FrozenSet[str]] = {
    "DD": frozenset({"DL", "DIV"}),
    "DIV": frozenset({"DL"}),
    "DT": frozenset({"DL", "DIV"}),
    "LI": frozenset({"OL", "UL"}),
    "TBODY": frozenset({"TABLE"}),
    "TD": frozenset({"TR"}),
    "TFOOT": frozenset({"TABLE"}),
    "TH": frozenset({"TR"}),
    "THEAD": frozenset({"TABLE"}),
    "TR": frozenset({"THEAD", "TBODY", "TFOOT", "TABLE"}),
}

_ALWAYS_NAME_FROM_CONTENT = frozenset(
    {
        "button", "cell", "checkbox", "columnheader", "gridcell", "heading", "link",
        "menuitem", "menuitemcheckbox", "menuitemradio", "option", "radio", "row",
        "rowheader", "switch", "tab", "tooltip", "treeitem",
    }
)

_DESCENDANT_NAME_FROM_CONTENT = frozenset(
    {
        "", "caption", "code", "contentinfo", "definition", "deletion", "emphasis",
        "insertion", "list", "listitem", "mark", "none", "paragraph", "presentation",
        "region", "row", "rowgroup", "section", "strong", "subscript", "superscript",
        "table", "term", "time",
    }
)

_NAMING_PROHIBITED_ROLES = frozenset(
    {
        "caption", "code", "definition", "deletion", "emphasis", "generic",
        "insertion", "mark", "paragraph", "presentation", "strong", "subscript",
        "suggestion", "superscript", "term", "time",
    }
)

_RANGE_ROLES = frozenset({"progressbar", "scrollbar", "slider", "spinbutton", "meter"})
_PLACEHOLDER_INPUT_TYPES = frozenset({"text", "password", "search", "tel", "email", "url"})
_NATIVE_FORM_CONTROLS = frozenset({"BUTTON", "INPUT", "SELECT", "TEXTAREA", "OPTION", "OPTGROUP"})
_HEADING_LEVELS = {"H1": 1, "H2": 2, "H3": 3, "H4": 4, "H5": 5, "H6": 6}


class StateFlag(Enum):
    """ARIA states a node may carry, each tied to the roles that support it."""

    CHECKED = (
        "checked",
        frozenset({"checkbox", "menuitemcheckbox", "option", "radio", "switch", "menuitemradio", "treeitem"}),
    )
    DISABLED = (
        "disabled",
        frozenset(
            {
                "application", "button", "composite", "gridcell", "group", "input",
                "link", "menuitem", "scrollbar", "separator", "tab", "checkbox",
                "columnheader", "combobox", "grid", "listbox", "menu", "menubar",
                "menuitemcheckbox", "menuitemradio", "option", "radio", "radiogroup",
                "row", "rowheader", "searchbox", "select", "slider", "spinbutton",
                "switch", "tablist", "textbox", "toolbar", "tree", "treegrid", "treeitem",
            }
        ),
    )
    EXPANDED = (
        "expanded",
        frozenset(
            {
                "application", "button", "checkbox", "combobox", "gridcell", "link",
                "listbox", "menuitem", "row", "rowheader", "tab", "treeitem",
                "columnheader", "menuitemcheckbox", "menuitemradio", "switch",
            }
        ),
    )
    LEVEL = ("level", frozenset({"heading", "listitem", "row", "treeitem"}))
    PRESSED = ("pressed", frozenset({"button"}))
    SELECTED = (
        "selected",
        frozenset({"gridcell", "option", "row", "tab", "rowheader", "columnheader", "treeitem"}),
    )

    def __init__(self, attr: str, roles: FrozenSet[str]):
        self.attr = attr
        self.roles = roles


def supported_states(role: str) -> List[StateFlag]:
    """States ``role`` supports, in rendering order."""
    return [flag for flag in StateFlag if role in flag.roles]


# ─────────────────────────────────────────────────────────────────────────────
# Text helpers
# ─────────────────────────────────────────────────────────────────────────────

_INVISIBLE_CHARS = re.compile("[\u200b\u00ad]")
_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RUN.sub(" ", _INVISIBLE_CHARS.sub("", text)).strip()


def as_flat_string(text: str) -> str:
    chunks = []
    for chunk in text.split("\u00a0"):
        chunk = chunk.replace("\r\n", "\n")
        chunk = _INVISIBLE_CHARS.sub("", chunk)
        chunks.append(re.sub(r"\s\s*", " ", chunk))
    return "\u00a0".join(chunks).strip()


def _aria_boolean(value: Optional[str]) -> Optional[bool]:
    return None if value is None else value.lower() == "true"


# ─────────────────────────────────────────────────────────────────────────────
# Roles
# ─────────────────────────────────────────────────────────────────────────────


def get_id_refs(element: Element, ref: Optional[str]) -> List[Element]:
    """Resolve a space-separated id list within the element's tree scope."""
    if not ref:
        return []
    root = element.enclosing_root()
    if root is None:
        return []
    result: List[Element] = []
    for element_id in ref.split():
        target = root.get_element_by_id(element_id)
        if target is not None and target not in result:
            result.append(target)
    return result


def has_explicit_accessible_name(element: Element) -> bool:
    return element.has_attribute("aria-label") or element.has_attribute("aria-labelledby")


def has_global_aria_attribute(element: Element, for_role: Optional[str] = None) -> bool:
    return any(
        (for_role or "") not in prohibited and element.has_attribute(attr)
        for attr, prohibited in GLOBAL_ARIA_ATTRIBUTES.items()
    )


def has_tab_index(element: Element) -> bool:
    value = element.get_attribute("tabindex")
    if value is None:
        return False
    try:
        float(value.strip() or "0")
    except ValueError:
        return False
    return True


def is_natively_focusable(element: Element) -> bool:
    if element.tag in ("BUTTON", "DETAILS", "SELECT", "TEXTAREA"):
        return True
    if element.tag in ("A", "AREA"):
        return element.has_attribute("href")
    if element.tag == "INPUT":
        return not element.hidden
    return False


def is_focusable(element: Element) -> bool:
    return not is_natively_disabled(element) and (is_natively_focusable(element) or has_tab_index(element))


def _blocks_landmark(element: Element) -> bool:
    if element.tag in _LANDMARK_BLOCKING_TAGS and not element.has_attribute("role"):
        return True
    return element.get_attribute("role") in _LANDMARK_BLOCKING_ROLES


def _table_cell_role(element: Element) -> str:
    table = element.closest_cross_shadow(lambda e: e.tag == "TABLE")
    role = get_explicit_role(table) if table is not None else None
    return "gridcell" if role in ("grid", "treegrid") else "cell"


def _input_role(element: Element) -> Optional[str]:
    input_type = element.input_type.lower()
    if input_type == "search":
        return "combobox" if element.has_attribute("list") else "searchbox"
    if input_type in ("email", "tel", "text", "url", ""):
        targets = get_id_refs(element, element.get_attribute("list"))
        return "combobox" if targets and targets[0].tag == "DATALIST" else "textbox"
    if input_type == "hidden":
        return None
    if input_type == "file":
        return "button"
    return _INPUT_TYPE_ROLES.get(input_type, "textbox")


def _img_role(element: Element) -> str:
    if (
        element.get_attribute("alt") == ""
        and not element.get_attribute("title")
        and not has_global_aria_attribute(element)
        and not has_tab_index(element)
    ):
        return "presentation"
    return "img"


def _th_role(element: Element) -> str:
    scope = element.get_attribute("scope")
    if scope == "col":
        return "columnheader"
    if scope == "row":
        return "rowheader"
    return _table_cell_role(element)


def _fixed(role: str) -> Callable[[Element], Optional[str]]:
    return lambda element: role


IMPLICIT_ROLES: Dict[str, Callable[[Element], Optional[str]]] = {
    "A": lambda e: "link" if e.has_attribute("href") else None,
    "AREA": lambda e: "link" if e.has_attribute("href") else None,
    "ARTICLE": _fixed("article"),
    "ASIDE": _fixed("complementary"),
    "BLOCKQUOTE": _fixed("blockquote"),
    "BUTTON": _fixed("button"),
    "CAPTION": _fixed("caption"),
    "CODE": _fixed("code"),
    "DATALIST": _fixed("listbox"),
    "DD": _fixed("definition"),
    "DEL": _fixed("deletion"),
    "DETAILS": _fixed("group"),
    "DFN": _fixed("term"),
    "DIALOG": _fixed("dialog"),
    "DT": _fixed("term"),
    "EM": _fixed("emphasis"),
    "FIELDSET": _fixed("group"),
    "FIGURE": _fixed("figure"),
    "FOOTER": lambda e: None if e.closest_cross_shadow(_blocks_landmark) else "contentinfo",
    "FORM": lambda e: "form" if has_explicit_accessible_name(e) else None,
    "H1": _fixed("heading"),
    "H2": _fixed("heading"),
    "H3": _fixed("heading"),
    "H4": _fixed("heading"),
    "H5": _fixed("heading"),
    "H6": _fixed("heading"),
    "HEADER": lambda e: None if e.closest_cross_shadow(_blocks_landmark) else "banner",
    "HR": _fixed("separator"),
    "HTML": _fixed("document"),
    "IMG": _img_role,
    "INPUT": _input_role,
    "INS": _fixed("insertion"),
    "LI": _fixed("listitem"),
    "MAIN": _fixed("main"),
    "MARK": _fixed("mark"),
    "MATH": _fixed("math"),
    "MENU": _fixed("list"),
    "METER": _fixed("meter"),
    "NAV": _fixed("navigation"),
    "OL": _fixed("list"),
    "OPTGROUP": _fixed("group"),
    "OPTION": _fixed("option"),
    "OUTPUT": _fixed("status"),
    "P": _fixed("paragraph"),
    "PROGRESS": _fixed("progressbar"),
    "SECTION": lambda e: "region" if has_explicit_accessible_name(e) else None,
    "SELECT": lambda e: "listbox" if e.has_attribute("multiple") or e.size > 1 else "combobox",
    "STRONG": _fixed("strong"),
    "SUB": _fixed("subscript"),
    "SUP": _fixed("superscript"),
    "SVG": _fixed("img"),
    "TABLE": _fixed("table"),
    "TBODY": _fixed("rowgroup"),
    "TD": _table_cell_role,
    "TEXTAREA": _fixed("textbox"),
    "TFOOT": _fixed("rowgroup"),
    "TH": _th_role,
    "THEAD": _fixed("rowgroup"),
    "TIME": _fixed("time"),
    "TR": _fixed("row"),
    "UL": _fixed("list"),
}


def get_explicit_role(element: Element) -> Optional[str]:
    """First valid token of the ``role`` attribute."""
    for token in (element.get_attribute("role") or "").split(" "):
        token = token.strip()
        if token in VALID_ROLES:
            return token
    return None


def has_presentation_conflict_resolution(element: Element, role: Optional[str]) -> bool:
    return has_global_aria_attribute(element, role) or is_focusable(element)


def get_implicit_role(element: Element) -> Optional[str]:
    factory = IMPLICIT_ROLES.get(element.tag)
    implicit = factory(element) if factory else None
    if not implicit:
        return None
    # Required-context children inherit presentation from their parent
    ancestor: Optional[Element] = element
    while ancestor is not None:
        parent = ancestor.parent_element_or_shadow_host
        allowed = _PRESENTATION_INHERITANCE_PARENTS.get(ancestor.tag)
        if not allowed or parent is None or parent.tag not in allowed:
            break
        parent_role = get_explicit_role(parent)
        if parent_role in PRESENTATION_ROLES and not has_presentation_conflict_resolution(parent, parent_role):
            return parent_role
        ancestor = parent
    return implicit


def get_aria_role(element: Element) -> Optional[str]:
    explicit = get_explicit_role(element)
    if not explicit:
        return get_implicit_role(element)
    if explicit in PRESENTATION_ROLES:
        implicit = get_implicit_role(element)
        if has_presentation_conflict_resolution(element, implicit):
            return implicit
    return explicit


def is_ignored_for_aria(element: Element) -> bool:
    return element.tag in ("STYLE", "SCRIPT", "NOSCRIPT", "TEMPLATE")


def is_natively_disabled(element: Element) -> bool:
    if element.tag not in _NATIVE_FORM_CONTROLS:
        return False
    return element.has_attribute("disabled") or _belongs_to_disabled_fieldset(element)


def _belongs_to_disabled_fieldset(element: Element) -> bool:
    fieldset = element.closest(lambda e: e.tag == "FIELDSET" and e.has_attribute("disabled"))
    if fieldset is None:
        return False
    legend = next((child for child in fieldset.element_children if child.tag == "LEGEND"), None)
    return legend is None or not legend.contains(element)


def _has_explicit_aria_disabled(element: Optional[Element], is_ancestor: bool = False) -> bool:
    if element is None:
        return False
    if is_ancestor or (get_aria_role(element) or "") in StateFlag.DISABLED.roles:
        attribute = (element.get_attribute("aria-disabled") or "").lower()
        if attribute == "true":
            return True
        if attribute == "false":
            return False
        return _has_explicit_aria_disabled(element.parent_element_or_shadow_host, True)
    return False


# ─────────────────────────────────────────────────────────────────────────────
# States
# ─────────────────────────────────────────────────────────────────────────────


def _checked(element: Element, allow_mixed: bool) -> Optional[Checked]:
    if allow_mixed and element.tag == "INPUT" and element.indeterminate:
        return "mixed"
    if element.tag == "INPUT" and element.input_type in ("checkbox", "radio"):
        return element.checked
    if (get_aria_role(element) or "") in StateFlag.CHECKED.roles:
        value = element.get_attribute("aria-checked")
        if value == "true":
            return True
        if allow_mixed and value == "mixed":
            return "mixed"
        return False
    return None


def get_aria_checked(element: Element) -> Checked:
    result = _checked(element, allow_mixed=True)
    return False if result is None else result


def get_aria_disabled(element: Element) -> bool:
    return is_natively_disabled(element) or _has_explicit_aria_disabled(element)


def get_aria_expanded(element: Element) -> Optional[bool]:
    if element.tag == "DETAILS":
        return element.open
    if (get_aria_role(element) or "") in StateFlag.EXPANDED.roles:
        value = element.get_attribute("aria-expanded")
        if value is None:
            return None
        return value == "true"
    return None


def get_aria_level(element: Element) -> int:
    native = _HEADING_LEVELS.get(element.tag)
    if native:
        return native
    if (get_aria_role(element) or "") in StateFlag.LEVEL.roles:
        try:
            value = int(element.get_attribute("aria-level") or "")
        except ValueError:
            return 0
        if value >= 1:
            return value
    return 0


def get_aria_pressed(element: Element) -> Checked:
    if (get_aria_role(element) or "") in StateFlag.PRESSED.roles:
        value = element.get_attribute("aria-pressed")
        if value == "true":
            return True
        if value == "mixed":
            return "mixed"
    return False


def get_aria_selected(element: Element) -> bool:
    if element.tag == "OPTION":
        return element.selected
    if (get_aria_role(element) or "") in StateFlag.SELECTED.roles:
        return _aria_boolean(element.get_attribute("aria-selected")) is True
    return False


_STATE_GETTERS: Dict[StateFlag, Callable[[Element], object]] = {
    StateFlag.CHECKED: get_aria_checked,
    StateFlag.DISABLED: get_aria_disabled,
    StateFlag.EXPANDED: get_aria_expanded,
    StateFlag.LEVEL: get_aria_level,
    StateFlag.PRESSED: get_aria_pressed,
    StateFlag.SELECTED: get_aria_selected,
}

assert set(_STATE_GETTERS) == set(StateFlag), "every StateFlag needs a getter"


def get_state(element: Element, flag: StateFlag) -> object:
    return _STATE_GETTERS[flag](element)


# ─────────────────────────────────────────────────────────────────────────────
# Per-capture resolver
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class _NameContext:
    """Traversal state for the accessible name computation.

    Each ``in_*`` field is ``None`` outside that kind of traversal, otherwise
    it records whether the referenced element was itself hidden.
    """

    visited: Set[Element]
    include_hidden: bool = False
    in_described_by: Optional[bool] = None
    in_labelled_by: Optional[bool] = None
    in_label: Optional[bool] = None
    in_native_text_alternative: Optional[bool] = None
    target: Optional[str] = None  # "self" | "descendant"

    def for_child(self) -> "_NameContext":
        return replace(self, target="descendant" if self.target == "self" else self.target)

    @property
    def in_hidden_reference(self) -> bool:
        return bool(
            self.in_labelled_by or self.in_described_by or self.in_native_text_alternative or self.in_label
        )


@dataclass
class RoleResolver:
    """Computes roles, names and visibility with caches scoped to one capture."""

    _hidden: Dict[Element, bool] = field(default_factory=dict)
    _names: Dict[Element, str] = field(default_factory=dict)
    _names_hidden: Dict[Element, str] = field(default_factory=dict)
    _content: Dict[tuple, Optional[str]] = field(default_factory=dict)
    _pointer_events: Dict[Element, bool] = field(default_factory=dict)

    role = staticmethod(get_aria_role)
    state = staticmethod(get_state)

    # -- visibility ----------------------------------------------------------

    def is_hidden(self, element: Element) -> bool:
        """Whether ``element`` is excluded from the accessibility tree."""
        if is_ignored_for_aria(element):
            return True
        style = element.style
        is_slot = element.tag == "SLOT"
        if style is not None and style.display == "contents" and not is_slot:
            for child in element.children:
                if isinstance(child, Element) and not self.is_hidden(child):
                    return False
                if isinstance(child, TextNode) and is_visible_text_node(child):
                    return False
            return True
        option_in_select = element.tag == "OPTION" and element.closest(lambda e: e.tag == "SELECT") is not None
        if not option_in_select and not is_slot and not is_style_visibility_visible(element, style):
            return True
        return self._hidden_by_ancestry(element)

    def _hidden_by_ancestry(self, element: Element) -> bool:
        cached = self._hidden.get(element)
        if cached is not None:
            return cached
        parent = element.parent_element
        hidden = parent is not None and parent.shadow_root is not None and element.assigned_slot is None
        if not hidden:
            style = element.style
            hidden = (
                style is None
                or style.display == "none"
                or _aria_boolean(element.get_attribute("aria-hidden")) is True
            )
        if not hidden:
            host = element.parent_element_or_shadow_host
            if host is not None:
                hidden = self._hidden_by_ancestry(host)
        self._hidden[element] = hidden
        return hidden

    def receives_pointer_events(self, element: Element) -> bool:
        current: Optional[Element] = element
        result: Optional[bool] = None
        walked: List[Element] = []
        while current is not None:
            cached = self._pointer_events.get(current)
            if cached is not None:
                result = cached
                break
            walked.append(current)
            style = current.style
            if style is None:
                result = True
                break
            if style.pointer_events:
                result = style.pointer_events != "none"
                break
            current = current.parent_element_or_shadow_host
        if result is None:
            result = True
        for item in walked:
            self._pointer_events[item] = result
        return result

    # -- generated content ---------------------------------------------------

    def css_content(self, element: Element, pseudo: Optional[str] = None) -> Optional[str]:
        """Text generated by CSS ``content`` for the element or a pseudo-element."""
        key = (element, pseudo)
        if key in self._content:
            return self._content[key]
        style: Optional[ComputedStyle]
        if pseudo == "::before":
            style = element.before
        elif pseudo == "::after":
            style = element.after
        else:
            style = element.style
        content: Optional[str] = None
        if style is not None and style.display != "none" and style.visibility != "hidden":
            content = parse_css_content(element, style.content, is_pseudo=pseudo is not None)
        if pseudo and content is not None and (style.display if style else "inline") != "inline":
            content = f" {content} "
        self._content[key] = content
        return content

    # -- accessible name -----------------------------------------------------

    def accessible_name(self, element: Element, include_hidden: bool = False) -> str:
        cache = self._names_hidden if include_hidden else self._names
        name = cache.get(element)
        if name is None:
            name = ""
            if (get_aria_role(element) or "") not in _NAMING_PROHIBITED_ROLES:
                context = _NameContext(visited=set(), include_hidden=include_hidden, target="self")
                name = as_flat_string(self._text_alternative(element, context))
            cache[element] = name
        return name

    def _labelled_by(self, element: Element) -> Optional[List[Element]]:
        ref = element.get_attribute("aria-labelledby")
        if ref is None:
            return None
        return get_id_refs(element, ref) or None

    def _names_from_labels(self, labels: List[Element], ctx: _NameContext) -> str:
        names = []
        for label in labels:
            name = self._text_alternative(
                label,
                replace(
                    ctx,
                    in_label=self.is_hidden(label),
                    in_native_text_alternative=None,
                    in_labelled_by=None,
                    in_described_by=None,
                    target=None,
                ),
            )
            if name:
                names.append(name)
        return " ".join(names)

    def _child_by_tag(self, element: Element, tag: str, ctx: _NameContext, svg_title: bool = False) -> Optional[str]:
        for child in element.element_children:
            if child.tag != tag:
                continue
            if svg_title:
                return self._text_alternative(
                    child, replace(ctx.for_child(), in_labelled_by=self.is_hidden(child))
                )
            return self._text_alternative(
                child, replace(ctx.for_child(), in_native_text_alternative=self.is_hidden(child))
            )
        return None

    def _text_alternative(self, element: Element, ctx: _NameContext) -> str:
        if element in ctx.visited:
            return ""
        child_ctx = ctx.for_child()

        if not ctx.include_hidden:
            if is_ignored_for_aria(element) or (not ctx.in_hidden_reference and self.is_hidden(element)):
                ctx.visited.add(element)
                return ""

        labelled_by = self._labelled_by(element)

        if ctx.in_labelled_by is None:
            parts = [
                self._text_alternative(
                    ref,
                    replace(
                        ctx,
                        in_labelled_by=self.is_hidden(ref),
                        in_described_by=None,
                        target=None,
                        in_label=None,
                        in_native_text_alternative=None,
                    ),
                )
                for ref in labelled_by or []
            ]
            joined = " ".join(parts)
            if joined:
                return joined

        role = get_aria_role(element) or ""
        tag = element.tag

        embedded = ctx.in_label is not None or ctx.in_labelled_by is not None or ctx.target == "descendant"
        if embedded and element not in (labelled_by or []):
            if role == "textbox":
                ctx.visited.add(element)
                if tag in ("INPUT", "TEXTAREA"):
                    return element.value
                return element.text_content
            if role in ("combobox", "listbox"):
                ctx.visited.add(element)
                return self._selected_options_text(element, role, child_ctx)
            if role in _RANGE_ROLES:
                ctx.visited.add(element)
                if element.has_attribute("aria-valuetext"):
                    return element.get_attribute("aria-valuetext") or ""
                if element.has_attribute("aria-valuenow"):
                    return element.get_attribute("aria-valuenow") or ""
                return element.get_attribute("value") or ""
            if role == "menu":
                ctx.visited.add(element)
                return ""

        aria_label = element.get_attribute("aria-label") or ""
        if aria_label.strip():
            ctx.visited.add(element)
            return aria_label

        if role not in PRESENTATION_ROLES:
            native = self._native_text_alternative(element, tag, labelled_by, ctx, child_ctx)
            if native is not None:
                return native

        name_from_summary = tag == "SUMMARY" and role not in PRESENTATION_ROLES
        if (
            _allows_name_from_content(role, ctx.target == "descendant")
            or name_from_summary
            or ctx.in_labelled_by is not None
            or ctx.in_described_by is not None
            or ctx.in_label is not None
            or ctx.in_native_text_alternative is not None
        ):
            ctx.visited.add(element)
            text = self._inner_text(element, child_ctx)
            if (text.strip() if ctx.target == "self" else text):
                return text

        if role not in PRESENTATION_ROLES or tag == "IFRAME":
            ctx.visited.add(element)
            title = element.get_attribute("title") or ""
            if title.strip():
                return title

        ctx.visited.add(element)
        return ""

    def _selected_options_text(self, element: Element, role: str, child_ctx: _NameContext) -> str:
        if element.tag == "SELECT":
            options = element.selected_options
            if not options and element.options:
                options = [element.options[0]]
        else:
            if role == "combobox":
                listbox = next(
                    (e for e in _query_in_aria_owned(element, lambda e: True) if get_aria_role(e) == "listbox"),
                    None,
                )
            else:
                listbox = element
            options = []
            if listbox is not None:
                options = [
                    e
                    for e in _query_in_aria_owned(listbox, lambda e: e.get_attribute("aria-selected") == "true")
                    if get_aria_role(e) == "option"
                ]
        if not options and element.tag == "INPUT":
            return element.value
        return " ".join(self._text_alternative(option, child_ctx) for option in options)

    def _native_text_alternative(
        self,
        element: Element,
        tag: str,
        labelled_by: Optional[List[Element]],
        ctx: _NameContext,
        child_ctx: _NameContext,
    ) -> Optional[str]:
        """Names from host-language features; ``None`` means fall through."""
        input_type = element.input_type if tag == "INPUT" else ""

        if tag == "INPUT" and input_type in ("button", "submit", "reset"):
            ctx.visited.add(element)
            if element.value.strip():
                return element.value
            if input_type == "submit":
                return "Submit"
            if input_type == "reset":
                return "Reset"
            return element.get_attribute("title") or ""

        if tag == "INPUT" and input_type == "file":
            ctx.visited.add(element)
            if element.labels and ctx.in_labelled_by is None:
                return self._names_from_labels(element.labels, ctx)
            return "Choose File"

        if tag == "INPUT" and input_type == "image":
            ctx.visited.add(element)
            if element.labels and ctx.in_labelled_by is None:
                return self._names_from_labels(element.labels, ctx)
            for attr in ("alt", "title"):
                value = element.get_attribute(attr) or ""
                if value.strip():
                    return value
            return "Submit"

        if labelled_by is None and tag == "BUTTON":
            ctx.visited.add(element)
            if element.labels:
                return self._names_from_labels(element.labels, ctx)

        if labelled_by is None and tag == "OUTPUT":
            ctx.visited.add(element)
            if element.labels:
                return self._names_from_labels(element.labels, ctx)
            return element.get_attribute("title") or ""

        if labelled_by is None and tag in ("TEXTAREA", "SELECT", "INPUT"):
            ctx.visited.add(element)
            if element.labels:
                return self._names_from_labels(element.labels, ctx)
            use_placeholder = (tag == "INPUT" and input_type in _PLACEHOLDER_INPUT_TYPES) or tag == "TEXTAREA"
            title = element.get_attribute("title") or ""
            if not use_placeholder or title:
                return title
            return element.get_attribute("placeholder") or ""

        if labelled_by is None and tag == "FIELDSET":
            ctx.visited.add(element)
            legend = self._child_by_tag(element, "LEGEND", ctx)
            return legend if legend is not None else element.get_attribute("title") or ""

        if labelled_by is None and tag == "FIGURE":
            ctx.visited.add(element)
            caption = self._child_by_tag(element, "FIGCAPTION", ctx)
            return caption if caption is not None else element.get_attribute("title") or ""

        if tag in ("IMG", "AREA"):
            ctx.visited.add(element)
            alt = element.get_attribute("alt") or ""
            if alt.strip():
                return alt
            return element.get_attribute("title") or ""

        if tag == "TABLE":
            ctx.visited.add(element)
            caption = self._child_by_tag(element, "CAPTION", ctx)
            if caption is not None:
                return caption
            summary = element.get_attribute("summary") or ""
            if summary:
                return summary

        in_svg = _inside_svg(element)
        if tag == "SVG" or in_svg:
            ctx.visited.add(element)
            for child in element.element_children:
                if child.tag == "TITLE":
                    return self._text_alternative(
                        child, replace(child_ctx, in_labelled_by=self.is_hidden(child))
                    )
        if in_svg and tag == "A":
            title = element.get_attribute("xlink:title") or ""
            if title.strip():
                ctx.visited.add(element)
                return title
        return None

    def _inner_text(self, element: Element, ctx: _NameContext) -> str:
        tokens: List[str] = []

        def visit(node: Node, skip_slotted: bool) -> None:
            if skip_slotted and node.assigned_slot is not None:
                return
            if isinstance(node, Element):
                display = node.style.display if node.style else "inline"
                token = self._text_alternative(node, ctx)
                if display != "inline" or node.tag == "BR":
                    token = f" {token} "
                tokens.append(token)
            elif isinstance(node, TextNode):
                tokens.append(node.text)

        tokens.append(self.css_content(element, "::before") or "")
        content = self.css_content(element)
        if content is not None:
            tokens.append(content)
        elif element.tag == "SLOT" and element.assigned_nodes:
            for child in element.assigned_nodes:
                visit(child, False)
        else:
            for child in element.children:
                visit(child, True)
            if element.shadow_root is not None:
                for child in element.shadow_root.children:
                    visit(child, True)
            for owned in get_id_refs(element, element.get_attribute("aria-owns")):
                visit(owned, True)
        tokens.append(self.css_content(element, "::after") or "")
        return "".join(tokens)


def _allows_name_from_content(role: str, target_descendant: bool) -> bool:
    if role in _ALWAYS_NAME_FROM_CONTENT:
        return True
    return target_descendant and role in _DESCENDANT_NAME_FROM_CONTENT


def _inside_svg(element: Element) -> bool:
    parent = element.parent_element
    return parent is not None and parent.closest(lambda e: e.tag == "SVG") is not None


def _query_in_aria_owned(element: Element, predicate: Callable[[Element], bool]) -> List[Element]:
    result = element.query_all(predicate)
    for owned in get_id_refs(element, element.get_attribute("aria-owns")):
        if predicate(owned):
            result.append(owned)
        result.extend(owned.query_all(predicate))
    return result


def parse_css_content(element: Element, content: str, is_pseudo: bool) -> Optional[str]:
    """Extract the text of a CSS ``content`` value.

    Only string and ``attr()`` parts are understood; anything else yields
    ``None``. For a real element only the alternative text after ``/`` counts.
    """
    if not content or content in ("none", "normal"):
        return None
    tokens = [token for token in css.tokenize(content) if not isinstance(token, css.WhitespaceToken)]
    delim = next(
        (i for i, token in enumerate(tokens) if isinstance(token, css.DelimToken) and token.value == "/"),
        None,
    )
    if delim is not None:
        tokens = tokens[delim + 1:]
    elif not is_pseudo:
        return None

    parts: List[str] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if isinstance(token, css.StringToken):
            parts.append(str(token.value))
            index += 1
        elif (
            index + 2 < len(tokens)
            and isinstance(token, css.FunctionToken)
            and token.value == "attr"
            and isinstance(tokens[index + 1], css.IdentToken)
            and isinstance(tokens[index + 2], css.CloseParenToken)
        ):
            parts.append(element.get_attribute(str(tokens[index + 1].value)) or "")
            index += 3
        else:
            return None
    return "".join(parts)
