from __future__ import annotations

import unittest

import pytest

from formtree.keypath import format_key_path, parse_key_path


class TestParseKeyPath(unittest.TestCase):
    def test_bare_name(self) -> None:
        self.assertEqual(parse_key_path("full_name"), ["full_name"])

    def test_single_bracket(self) -> None:
        self.assertEqual(parse_key_path("meta[author]"), ["meta", "author"])

    def test_nested_brackets(self) -> None:
        self.assertEqual(parse_key_path("a[b][c]"), ["a", "b", "c"])

    def test_append(self) -> None:
        self.assertEqual(parse_key_path("tags[]"), ["tags", ""])

    def test_append_nested(self) -> None:
        self.assertEqual(parse_key_path("a[b][]"), ["a", "b", ""])

    def test_append_in_the_middle(self) -> None:
        self.assertEqual(parse_key_path("a[][b]"), ["a", "", "b"])

    def test_spaces_are_stripped(self) -> None:
        self.assertEqual(parse_key_path(" first name [ x ]"), ["firstname", "x"])

    def test_empty_name(self) -> None:
        self.assertEqual(parse_key_path(""), [""])

    def test_leading_bracket(self) -> None:
        self.assertEqual(parse_key_path("[a]"), ["", "a"])

    def test_unclosed_bracket(self) -> None:
        self.assertEqual(parse_key_path("a[b"), ["a", "b"])

    def test_stray_closing_bracket(self) -> None:
        self.assertEqual(parse_key_path("a]b"), ["a", "b"])

    def test_unicode(self) -> None:
        self.assertEqual(parse_key_path("größe[ä]"), ["größe", "ä"])


class TestFormatKeyPath(unittest.TestCase):
    def test_simple(self) -> None:
        self.assertEqual(format_key_path(["a"]), "a")

    def test_nested(self) -> None:
        self.assertEqual(format_key_path(["a", "b", ""]), "a[b][]")

    def test_empty(self) -> None:
        self.assertEqual(format_key_path([]), "")


@pytest.mark.parametrize(
    "name",
    ["a", "a[b]", "a[b][c]", "tags[]", "a[b][]", "a[][b]", "x[0][1][2]"],
)
def test_round_trip(name: str) -> None:
    assert format_key_path(parse_key_path(name)) == name


def test_round_trip_drops_spaces() -> None:
    path = parse_key_path("user name[first name]")
    assert format_key_path(path) == "username[firstname]"
    assert parse_key_path(format_key_path(path)) == path
