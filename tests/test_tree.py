from __future__ import annotations

import unittest

import orjson
import pytest

from formtree.exceptions import ConflictError
from formtree.tree import MAX_LEVEL, DataTree, FileTree
from formtree.uploads import Upload


class TestDataTree(unittest.TestCase):
    def setUp(self) -> None:
        self.t = DataTree()

    def test_scalar(self) -> None:
        self.t.push("full_name", ["Ada Lovelace"])
        self.assertEqual(self.t, {"full_name": "Ada Lovelace"})

    def test_last_value_wins(self) -> None:
        self.t.push("color", ["red", "green", "blue"])
        self.assertEqual(self.t, {"color": "blue"})

    def test_append(self) -> None:
        self.t.push("tags[]", ["a", "b"])
        self.assertEqual(self.t, {"tags": ["a", "b"]})

    def test_nested(self) -> None:
        self.t.push("nested[one]", ["1"])
        self.t.push("nested[two]", ["2"])
        self.assertEqual(self.t, {"nested": {"one": "1", "two": "2"}})
        self.assertIsInstance(self.t["nested"], DataTree)

    def test_deeply_nested_append(self) -> None:
        self.t.push("a[b][c][]", ["x", "y"])
        self.assertEqual(self.t, {"a": {"b": {"c": ["x", "y"]}}})

    def test_empty_values_at_leaf(self) -> None:
        self.t.push("a", [])
        self.assertEqual(self.t, {"a": []})

    def test_empty_string_value(self) -> None:
        self.t.push("a", [""])
        self.assertEqual(self.t, {"a": ""})

    def test_scalar_then_container_conflicts(self) -> None:
        self.t.push("a", ["1"])
        with self.assertRaises(ConflictError) as ctx:
            self.t.push("a[b]", ["2"])
        self.assertEqual(ctx.exception.key, "a")

    def test_container_then_scalar_conflicts(self) -> None:
        self.t.push("a[b]", ["2"])
        with self.assertRaises(ConflictError):
            self.t.push("a", ["1"])

    def test_container_then_append_conflicts(self) -> None:
        self.t.push("a[b]", ["2"])
        with self.assertRaises(ConflictError):
            self.t.push("a[]", ["1"])

    def test_empty_value_on_scalar_is_skipped(self) -> None:
        self.t.push("a", ["1"])
        self.t.push("a[b]", [""])
        self.assertEqual(self.t, {"a": "1"})

    def test_empty_value_on_container_is_skipped(self) -> None:
        self.t.push("a[b]", ["2"])
        self.t.push("a", [""])
        self.assertEqual(self.t, {"a": {"b": "2"}})

    def test_empty_scalar_becomes_container(self) -> None:
        self.t.push("a", [""])
        self.t.push("a[b]", ["2"])
        self.assertEqual(self.t, {"a": {"b": "2"}})

    def test_scalar_replaced_by_list(self) -> None:
        self.t.push("a", ["1"])
        self.t.push("a[]", ["2", "3"])
        self.assertEqual(self.t, {"a": ["2", "3"]})

    def test_conflict_deeper_in_the_tree(self) -> None:
        self.t.push("a[b]", ["1"])
        with self.assertRaises(ConflictError) as ctx:
            self.t.push("a[b][c]", ["2"])
        self.assertEqual(ctx.exception.key, "b")

    def test_empty_path(self) -> None:
        self.t.mount([], ["1"])
        self.assertEqual(self.t, {})

    def test_depth_limit(self) -> None:
        name = "a" + "[x]" * MAX_LEVEL
        self.assertFalse(self.t.push(name, ["deep"]))
        self.assertEqual(self.t, {})

    def test_depth_limit_boundary(self) -> None:
        name = "a" + "[x]" * (MAX_LEVEL - 1)
        self.assertTrue(self.t.push(name, ["deep"]))

        node = self.t
        for key in ["a"] + ["x"] * (MAX_LEVEL - 2):
            node = node[key]
        self.assertEqual(node, {"x": "deep"})

    def test_custom_depth_limit(self) -> None:
        t = DataTree(max_level=2)
        self.assertTrue(t.push("a[b]", ["1"]))
        self.assertFalse(t.push("a[b][c]", ["1"]))
        self.assertEqual(t, {"a": {"b": "1"}})
        self.assertEqual(t["a"].max_level, 2)


class TestEncoding(unittest.TestCase):
    def test_empty_tree(self) -> None:
        self.assertEqual(DataTree().encode(), b"{}")

    def test_insertion_order(self) -> None:
        t = DataTree()
        t.push("full_name", ["Ada Lovelace"])
        t.push("nested[one]", ["1"])
        t.push("tags[]", ["a", "b"])
        self.assertEqual(
            t.encode(),
            b'{"full_name":"Ada Lovelace","nested":{"one":"1"},"tags":["a","b"]}',
        )

    def test_unknown_leaf(self) -> None:
        t = DataTree()
        t["a"] = object()
        with self.assertRaises(orjson.JSONEncodeError):
            t.encode()


class TestFileTree(unittest.TestCase):
    def setUp(self) -> None:
        self.t = FileTree()
        self.first = Upload("first.txt", "text/plain")
        self.second = Upload("second.txt", "text/plain")

    def test_first_file_wins(self) -> None:
        self.t.push("file", [self.first, self.second])
        self.assertIs(self.t["file"], self.first)

    def test_append(self) -> None:
        self.t.push("files[]", [self.first, self.second])
        self.assertEqual(self.t["files"], [self.first, self.second])

    def test_nested(self) -> None:
        self.t.push("docs[cv]", [self.first])
        self.t.push("docs[letter]", [self.second])
        self.assertIs(self.t["docs"]["cv"], self.first)
        self.assertIsInstance(self.t["docs"], FileTree)

    def test_conflict(self) -> None:
        self.t.push("doc", [self.first])
        with self.assertRaises(ConflictError):
            self.t.push("doc[x]", [self.second])

    def test_empty_is_skipped(self) -> None:
        self.t.push("doc[x]", [self.first])
        self.t.push("doc", [None])
        self.assertEqual(list(self.t.leaves()), [self.first])

    def test_leaves(self) -> None:
        self.t.push("a", [self.first])
        self.t.push("b[c][]", [self.second])
        self.assertEqual(list(self.t.leaves()), [self.first, self.second])

    def test_encode(self) -> None:
        self.t.push("file", [self.first])
        self.assertEqual(
            orjson.loads(self.t.encode()),
            {"file": {"name": "first.txt", "mime": "text/plain", "size": 0, "error": 0, "tmpName": ""}},
        )


@pytest.mark.parametrize(
    "value, empty",
    [
        ("", True),
        ("x", False),
        ([], True),
        ([""], True),
        (["", ""], False),
        (["x"], False),
        (None, True),
    ],
)
def test_data_emptiness(value: object, empty: bool) -> None:
    assert DataTree.is_empty(value) is empty


def test_branch_is_never_empty() -> None:
    assert not DataTree.is_empty(DataTree())
    assert not FileTree.is_empty(FileTree())
