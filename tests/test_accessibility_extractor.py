"""Accessibility tree extraction: pruning, promotion, depth bound and failure handling"""
from core.accessibility import AccessibilityExtractor, is_meaningful

from conftest import FakeAccessibilityBackend, FakeNode, make_window


def _extract(root, **kwargs):
    extractor = AccessibilityExtractor(FakeAccessibilityBackend(root), **kwargs)
    return extractor.capture_snapshot(make_window(1, "Mail", "Inbox"))


def test_container_without_content_is_elided_and_button_promoted():
    root = FakeNode("frame", title="Inbox", children=[
        FakeNode("AXGroup", children=[FakeNode("AXButton", title="OK")]),
    ])

    snapshot = _extract(root)

    assert len(snapshot.elements) == 1
    button = snapshot.elements[0]
    assert button.role == "AXButton"
    assert button.title == "OK"
    assert button.children is None


def test_promoted_children_keep_sibling_order():
    root = FakeNode("frame", children=[
        FakeNode("label", title="Subject"),
        FakeNode("panel", children=[
            FakeNode("panel", children=[FakeNode("link", title="Reply")]),
            FakeNode("link", title="Forward"),
        ]),
        FakeNode("label", title="Footer"),
    ])

    snapshot = _extract(root)

    assert [e.title for e in snapshot.elements] == ["Subject", "Reply", "Forward", "Footer"]


def test_meaningful_node_keeps_extracted_children():
    root = FakeNode("frame", children=[
        FakeNode("list", title="Messages", children=[
            FakeNode("filler", children=[FakeNode("list item", title="Hello")]),
        ]),
    ])

    snapshot = _extract(root)

    messages = snapshot.elements[0]
    assert messages.title == "Messages"
    assert [c.title for c in messages.children] == ["Hello"]


def test_interactive_roles_kept_without_content():
    assert is_meaningful("AXButton", None, None)
    assert is_meaningful("push button", None, None)
    assert is_meaningful("Edit", None, None)
    assert is_meaningful("AXStaticText", None, None)
    assert is_meaningful("entry", None, None)
    assert not is_meaningful("AXGroup", None, None)
    assert not is_meaningful("panel", "", None)


def test_depth_is_bounded_by_max_depth():
    node = FakeNode("label", title="level 5")
    for level in range(4, -1, -1):
        node = FakeNode("label", title=f"level {level}", children=[node])
    root = FakeNode("frame", children=[node])

    snapshot = _extract(root, max_depth=4)

    depth = 0
    elements = snapshot.elements
    while elements:
        depth += 1
        assert len(elements) == 1
        elements = elements[0].children
    assert depth == 4


def test_structured_value_preferred_over_text():
    field = FakeNode("entry", value="structured", text="from text")
    snapshot = _extract(FakeNode("frame", children=[field]))

    assert snapshot.elements[0].value == "structured"
    assert field.text_requests == []


def test_text_fallback_is_truncated():
    long_text = "x" * 1500
    field = FakeNode("document", text=long_text)
    snapshot = _extract(FakeNode("frame", children=[field]), max_text_length=1000)

    assert snapshot.elements[0].value == "x" * 1000
    assert field.text_requests == [1000]


def test_unreadable_subtree_counts_as_no_children():
    root = FakeNode("frame", children=[
        FakeNode("list", title="Broken", fail_children=True),
        FakeNode("panel", fail_children=True),
        FakeNode("AXButton", title="Send"),
    ])

    snapshot = _extract(root)

    assert [e.title for e in snapshot.elements] == ["Broken", "Send"]
    assert snapshot.elements[0].children is None


def test_unreadable_role_becomes_unknown():
    root = FakeNode("frame", children=[FakeNode("label", title="Name", fail_role=True)])

    snapshot = _extract(root)

    assert snapshot.elements[0].role == "Unknown"
    assert snapshot.elements[0].title == "Name"


def test_snapshot_carries_focused_app_and_window():
    root = FakeNode("frame", title="Inbox - Mail")
    snapshot = _extract(root)

    assert snapshot.focused_app == "Mail"
    assert snapshot.focused_window == "Inbox - Mail"
    assert snapshot.elements == []


def test_unavailable_backend_returns_none():
    extractor = AccessibilityExtractor(FakeAccessibilityBackend(FakeNode("frame"), available=False))
    assert extractor.capture_snapshot(make_window(1, "Mail", "Inbox")) is None

    assert AccessibilityExtractor(None).capture_snapshot() is None


def test_no_focused_element_returns_none():
    extractor = AccessibilityExtractor(FakeAccessibilityBackend(None))
    assert extractor.capture_snapshot(make_window(1, "Mail", "Inbox")) is None


def test_wire_format_uses_camel_case_keys():
    root = FakeNode("frame", title="Inbox", children=[FakeNode("AXButton", title="OK")])
    wire = _extract(root).to_wire()

    assert wire["focusedApp"] == "Mail"
    assert wire["focusedWindow"] == "Inbox"
    assert wire["elements"][0] == {
        "role": "AXButton",
        "title": "OK",
        "value": None,
        "frame": None,
        "children": None,
    }
