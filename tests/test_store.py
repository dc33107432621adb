"""Tests for the graph state store."""

import pytest

from codeflow.errors import (
    DanglingReferenceError,
    HandleNotFoundError,
    LineRangeError,
    NodeNotFoundError,
    ParentCycleError,
    ValidationError,
)
from codeflow.membership import Membership
from codeflow.models import Edge, HandleType, Node, NodeKind, Position
from codeflow.store import GraphStore, _validate, default_nodes

FOO_EDGE = "edge:1:function:foo->2:plain_import:foo"


def _names(node: Node):
    return [h.name for h in node.handles]


class TestNodes:
    """Adding, editing and removing nodes."""

    def test_add_editor_node_extracts_handles(self, store: GraphStore):
        node = store.add_editor_node("export function foo(){}\n", "./a.js", node_id="a")
        assert _names(node) == ["foo"]
        assert store.get_node("a") is node
        assert store.version == 1

    def test_default_file_name_and_id(self, store: GraphStore):
        node = store.add_editor_node()
        assert node.node_id == "1"
        assert node.file_name == "newFile-1.js"
        assert node.handles == ()

    def test_next_node_id_skips_taken_ids(self, store: GraphStore):
        store.add_editor_node(node_id="2")
        assert store.next_node_id() == "3"

    def test_duplicate_node_id_rejected(self, store: GraphStore):
        store.add_editor_node(node_id="a")
        with pytest.raises(ValidationError):
            store.add_editor_node(node_id="a")

    def test_group_nodes_carry_no_handles(self, add_group):
        group = add_group("G", 0, 0)
        assert group.handles == ()

    def test_parent_must_be_a_group(self, store: GraphStore):
        store.add_editor_node(node_id="a")
        with pytest.raises(ValidationError):
            store.add_editor_node(node_id="b", parent_id="a")
        with pytest.raises(NodeNotFoundError):
            store.add_editor_node(node_id="c", parent_id="missing")

    def test_update_text_replaces_handles(self, store: GraphStore):
        store.add_editor_node("function a() {}\n", node_id="n")
        node = store.update_node_text("n", "function a() {}\nfunction b() {}\n")
        assert _names(node) == ["a", "b"]
        assert node.source_text == "function a() {}\nfunction b() {}\n"

    def test_update_text_on_group_is_rejected(self, add_group, store: GraphStore):
        add_group("G", 0, 0)
        with pytest.raises(ValidationError):
            store.update_node_text("G", "x")

    def test_rename_to_other_language_reextracts(self, store: GraphStore):
        store.add_editor_node("def f():\n    pass\n", "a.js", node_id="n")
        node = store.rename_file("n", "a.py")
        assert _names(node) == ["f"]
        assert node.file_name == "a.py"

    def test_gutter_markers(self, store: GraphStore):
        store.add_editor_node("function a() {\n}\n", node_id="n")
        assert store.gutter_markers("n") == [
            {"handleId": "n:function:a", "handleType": "function", "startLine": 1, "endLine": 2},
        ]

    def test_update_settings_mirrors_on_settings_node(self, store: GraphStore):
        for node in default_nodes():
            store.add_node(node)
        store.update_settings({"theme": "dark"})
        assert store.settings == {"theme": "dark"}
        assert store.get_node("settings").data["settings"] == {"theme": "dark"}


class TestEdges:
    """Edge creation and reconciliation through the store."""

    def test_fixture_edge(self, exporter_and_importer):
        store, edge = exporter_and_importer
        assert edge.edge_id == FOO_EDGE
        assert store.edges == (edge,)

    def test_identity_carry_forward(self, exporter_and_importer):
        store, edge = exporter_and_importer
        node = store.update_node_text("1", "// header\n\nexport function foo() {\n  return 1;\n}\n")

        assert node.handle("1:function:foo").source_range == (3, 5)
        assert store.edges == (edge,)

    def test_rename_drops_edge(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        store.update_node_text("1", "export function bar() {}\n")
        assert store.edges == ()
        store.check_invariants()

    def test_unparseable_edit_keeps_last_known_handles(self, exporter_and_importer):
        store, edge = exporter_and_importer
        node = store.update_node_text("1", "export function foo( {\n")

        assert node.handle("1:function:foo") is not None
        assert store.edges == (edge,)

    def test_remove_node_removes_its_edges(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        store.remove_node("2")
        assert store.edges == ()
        assert not store.has_node("2")
        store.check_invariants()

    def test_unknown_handle_rejected(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        with pytest.raises(HandleNotFoundError):
            store.add_edge("1", "1:function:nope", "2", "2:plain_import:foo")

    def test_self_edge_rejected(self, store: GraphStore):
        store.add_editor_node("function a() {}\nfunction b() {}\n", node_id="n")
        with pytest.raises(ValidationError):
            store.add_edge("n", "n:function:a", "n", "n:function:b")

    def test_duplicate_edge_rejected(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        with pytest.raises(ValidationError):
            store.add_edge("1", "1:function:foo", "2", "2:plain_import:foo", edge_id="other")

    def test_remove_edge(self, exporter_and_importer):
        store, edge = exporter_and_importer
        assert store.remove_edge(edge.edge_id) == edge
        assert store.edges == ()
        with pytest.raises(ValidationError):
            store.remove_edge(edge.edge_id)

    def test_hidden_node_hides_edges_in_render(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        store.set_hidden("2", True)
        rendered = store.snapshot().to_render()
        assert rendered["edges"][0]["hidden"] is True
        assert [n["hidden"] for n in rendered["nodes"]] == [False, True]


class TestSelection:
    """The single selection handle of a node."""

    def test_set_and_clear(self, store: GraphStore):
        store.add_editor_node("a\nb\nc\n", node_id="n")
        node = store.set_selection("n", (2, 3))
        selection = node.handle("n:selection:selection")
        assert selection.handle_type is HandleType.SELECTION
        assert selection.source_range == (2, 3)

        node = store.set_selection("n", None)
        assert node.handle("n:selection:selection") is None

    @pytest.mark.parametrize("bad", [(0, 1), (2, 1), (1, 9)])
    def test_out_of_range_rejected(self, store: GraphStore, bad):
        store.add_editor_node("a\nb\nc\n", node_id="n")
        with pytest.raises(ValidationError):
            store.set_selection("n", bad)

    def test_selection_dropped_when_text_shrinks(self, store: GraphStore):
        store.add_editor_node("a\nb\nc\n", node_id="n")
        store.set_selection("n", (3, 3))
        node = store.update_node_text("n", "a\n")
        assert node.handle("n:selection:selection") is None


class TestGroups:
    """Parenting, dragging and group removal."""

    def test_child_absolute_position(self, store: GraphStore, add_group):
        add_group("G", 100, 100)
        store.add_editor_node(node_id="n", position=Position(10, 20), parent_id="G")
        assert store.absolute_position("n") == Position(110, 120)
        assert [c.node_id for c in store.children("G")] == ["n"]

    def test_drag_into_group(self, store: GraphStore, add_group):
        add_group("G", 100, 100)
        store.add_editor_node(node_id="n", position=Position(0, 0))
        node = store.drag_node("n", Position(150, 120), ["G"])

        assert node.parent_id == "G"
        assert node.position == Position(50, 20)

    def test_drag_out_of_group(self, store: GraphStore, add_group):
        add_group("G", 100, 100)
        store.add_editor_node(node_id="n", position=Position(10, 10), parent_id="G")
        node = store.drag_node("n", Position(500, 0), [])

        assert node.parent_id is None
        assert node.position == Position(600, 100)

    def test_drag_on_overlapping_groups_only_moves(self, store: GraphStore, add_group):
        add_group("G1", 0, 0)
        add_group("G2", 10, 10)
        store.add_editor_node(node_id="n", position=Position(0, 0))
        node = store.drag_node("n", Position(40, 40), ["G1", "G2"])

        assert node.parent_id is None
        assert node.position == Position(40, 40)

    def test_parents_precede_children(self, store: GraphStore, add_group):
        store.add_editor_node(node_id="n", position=Position(150, 150))
        add_group("G", 100, 100)
        store.drag_node("n", Position(150, 150), ["G"])

        order = [n.node_id for n in store.nodes]
        assert order.index("G") < order.index("n")

    def test_group_never_joins_its_descendant(self, store: GraphStore, add_group):
        add_group("outer", 0, 0)
        add_group("inner", 10, 10, parent_id="outer")
        node = store.drag_node("outer", Position(5, 5), ["inner"])

        assert node.parent_id is None
        with pytest.raises(ParentCycleError):
            store.set_parent("outer", Membership(parent_id="inner", position=Position(0, 0)))
        assert store.get_node("outer").parent_id is None

    def test_unchanged_membership_is_a_no_op(self, store: GraphStore):
        node = store.add_editor_node(node_id="n")
        version = store.version
        same = store.set_parent("n", Membership(None, Position(1, 1), changed=False))
        assert same is node
        assert store.version == version

    def test_removing_group_keeps_children_in_place(self, store: GraphStore, add_group):
        add_group("O", 100, 0)
        add_group("I", 50, 50, parent_id="O")
        store.add_editor_node(node_id="n", position=Position(1, 1), parent_id="I")

        store.remove_node("I")

        node = store.get_node("n")
        assert node.parent_id == "O"
        assert node.position == Position(51, 51)
        assert store.absolute_position("n") == Position(151, 51)


class TestSurgery:
    """Extracting and moving chunks between nodes."""

    def test_extract_function_to_new_node(self, store: GraphStore):
        store.add_editor_node("function a() {\n  return 1;\n}\n\nfunction b() {}\n", "./mod.js", node_id="1")
        created = store.extract_to_new_node("1", "1:function:a", Position(300, 0))

        assert created.node_id == "2"
        assert created.file_name == "./a.js"
        assert created.source_text == "export function a() {\n  return 1;\n}\n"
        assert [(h.name, h.exported) for h in created.handles] == [("a", True)]

        source = store.get_node("1")
        assert source.source_text == "\nfunction b() {}\n"
        assert [(h.name, h.source_range) for h in source.handles] == [("b", (2, 2))]

    def test_extract_after_form_feed_line(self, store: GraphStore):
        """Test a form feed in a comment does not shift the cut lines."""
        text = "const a = 1; // \x0c page\nexport function foo() {\n  return a;\n}\n"
        store.add_editor_node(text, "./mod.js", node_id="1")
        assert store.get_handle("1", "1:function:foo").source_range == (2, 4)

        created = store.extract_to_new_node("1", "1:function:foo", Position(300, 0))

        assert created.source_text == "export function foo() {\n  return a;\n}\n"
        assert [(h.name, h.source_range) for h in created.handles] == [("foo", (1, 3))]
        source = store.get_node("1")
        assert source.source_text == "const a = 1; // \x0c page\n"
        assert [(h.name, h.source_range) for h in source.handles] == [("a", (1, 1))]
        store.check_invariants()

    def test_edges_follow_extracted_symbol(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        created = store.extract_to_new_node("1", "1:function:foo", Position(0, 300))

        (edge,) = store.edges
        assert edge.source_node_id == created.node_id
        assert edge.source_handle_id == f"{created.node_id}:function:foo"
        assert store.get_node("1").handles == ()
        store.check_invariants()

    def test_extract_selection(self, store: GraphStore):
        store.add_editor_node("const x = 1;\nconst y = 2;\n", node_id="1")
        store.set_selection("1", (1, 1))
        created = store.extract_to_new_node("1", "1:selection:selection", Position(0, 0))

        assert created.file_name == "./extracted-2.js"
        assert created.source_text == "export const x = 1;\n"
        source = store.get_node("1")
        assert source.source_text == "const y = 2;\n"
        assert source.handle("1:selection:selection") is None

    def test_extract_import_handle_rejected(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        version = store.version
        with pytest.raises(ValidationError):
            store.extract_to_new_node("2", "2:plain_import:foo", Position(0, 0))
        assert store.version == version

    def test_move_chunk_between_nodes(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        store.add_editor_node("const z = 1;\n", "./other.js", node_id="3")

        target = store.move_chunk("1", "1:function:foo", "3", 2)

        assert target.source_text == "const z = 1;\nexport function foo() {}\n"
        assert store.get_node("1").source_text == ""
        (edge,) = store.edges
        assert (edge.source_node_id, edge.source_handle_id) == ("3", "3:function:foo")
        store.check_invariants()

    def test_move_into_importer_drops_self_edge(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        target = store.move_chunk("1", "1:function:foo", "2", 2)

        assert _names(target) == ["foo", "foo"]
        assert store.edges == ()

    def test_move_into_same_node_rejected(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        with pytest.raises(ValidationError):
            store.move_chunk("1", "1:function:foo", "1", 1)

    def test_bad_insert_line_leaves_store_untouched(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        before = store.snapshot()
        with pytest.raises(LineRangeError):
            store.move_chunk("1", "1:function:foo", "2", 0)
        assert store.snapshot() == before

    def test_create_import_node(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        importer = store.create_import_node("1", "1:function:foo", Position(0, 300))

        assert importer.node_id == "3"
        assert importer.file_name == "newFile-3.js"
        assert importer.source_text == "import { foo } from './utils.js';\n"
        assert any(
            e.source_handle_id == "1:function:foo" and e.target_handle_id == "3:plain_import:foo"
            for e in store.edges
        )

    def test_create_import_from_import_rejected(self, exporter_and_importer):
        store, _edge = exporter_and_importer
        with pytest.raises(ValidationError):
            store.create_import_node("2", "2:plain_import:foo", Position(0, 0))


class TestLoadAndPublish:
    """File load completions and snapshot listeners."""

    def test_load_file_adds_node(self, store: GraphStore):
        node = store.load_file("./utils.js", "export const A = 1;\n", position=Position(1, 2))
        assert node.file_name == "./utils.js"
        assert _names(node) == ["A"]

    def test_load_for_removed_origin_is_discarded(self, store: GraphStore):
        store.add_editor_node(node_id="origin")
        store.remove_node("origin")
        version = store.version

        assert store.load_file("./x.js", "const a = 1;\n", origin_node_id="origin") is None
        assert store.version == version
        assert store.nodes == ()

    def test_listeners_receive_snapshots(self, store: GraphStore):
        received = []
        unsubscribe = store.subscribe(received.append)
        store.add_editor_node(node_id="a")
        unsubscribe()
        store.add_editor_node(node_id="b")

        assert [s.version for s in received] == [1]
        assert [n.node_id for n in received[0].nodes] == ["a"]

    def test_failing_listener_does_not_break_store(self, store: GraphStore):
        def _boom(_snapshot):
            raise RuntimeError("listener failed")

        store.subscribe(_boom)
        node = store.add_editor_node(node_id="a")
        assert store.get_node("a") is node


class TestInvariants:
    """Invariant checks applied on every commit."""

    def test_dangling_edge_detected(self):
        node = Node(node_id="a", kind=NodeKind.EDITOR)
        edge = Edge("e", "a", "a:function:x", "b", "b:plain_import:x")
        with pytest.raises(DanglingReferenceError):
            _validate({"a": node}, {"e": edge})

    def test_parent_cycle_detected(self):
        g1 = Node(node_id="g1", kind=NodeKind.GROUP, parent_id="g2")
        g2 = Node(node_id="g2", kind=NodeKind.GROUP, parent_id="g1")
        with pytest.raises(ParentCycleError):
            _validate({"g1": g1, "g2": g2}, {})

    def test_missing_parent_detected(self):
        orphan = Node(node_id="n", kind=NodeKind.EDITOR, parent_id="gone")
        with pytest.raises(DanglingReferenceError):
            _validate({"n": orphan}, {})
