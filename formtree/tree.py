from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import orjson

from .exceptions import ConflictError
from .keypath import parse_key_path

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator, Sequence

    from .uploads import Upload

# Deepest key path accepted by Tree.push.  Deeper paths are dropped.
MAX_LEVEL = 127

logger = logging.getLogger(__name__)


class Tree(dict):
    """
    A node of the nested structure built from bracket-notation form fields.
    Every branch is an instance of the same class as its parent, and each
    node owns its children.

    The mount algorithm lives here and is shared by the two kinds of tree.
    Subclasses only describe their leaves, by overriding :meth:`is_empty`
    and :meth:`pick`.

    :param max_level: paths with more segments than this are dropped by
                      :meth:`push`
    """

    def __init__(self, max_level: int = MAX_LEVEL) -> None:
        super().__init__()
        self.max_level = max_level

    @staticmethod
    def is_empty(value: Any) -> bool:  # pragma: no cover
        raise NotImplementedError

    @staticmethod
    def pick(values: Sequence[Any]) -> Any:  # pragma: no cover
        raise NotImplementedError

    @staticmethod
    def encode_leaf(value: Any) -> Any:
        raise TypeError("Type is not JSON serializable: %s" % type(value).__name__)

    def branch(self) -> Tree:
        return type(self)(self.max_level)

    def encode(self) -> bytes:
        """Encodes the tree as JSON.  An empty tree gives ``b"{}"``."""
        return orjson.dumps(self, default=self.encode_leaf)

    def push(self, name: str, values: Sequence[Any]) -> bool:
        """
        Mounts all values sent under the raw field name ``name``.

        Returns False if the path was too deep and was dropped, in which
        case the tree is left untouched.
        """
        path = parse_key_path(name)
        if len(path) > self.max_level:
            logger.debug("Dropping field %r: %d levels (max %d)", name[:64], len(path), self.max_level)
            return False

        self.mount(path, values)
        return True

    def mount(self, path: Sequence[str], values: Sequence[Any]) -> None:
        """
        Inserts ``values`` at ``path``, following the PHP rules for repeated
        and bracketed keys.

        :raises ConflictError: when a key would be both a leaf and a branch
        """
        if not path:
            return

        key = path[0]
        if key not in self:
            self[key] = self.branch()
        else:
            current = self[key]
            incoming_empty = self.is_empty(values)

            if not isinstance(current, Tree):
                if not self.is_empty(current):
                    if incoming_empty:
                        return
                    if len(path) > 1 and path[1]:
                        raise ConflictError("Key %r is used both as a value and as a container" % key, key)
                elif not incoming_empty:
                    self[key] = self.branch()
            elif len(path) == 1 or (len(path) == 2 and not path[1]):
                if incoming_empty:
                    return
                raise ConflictError("Key %r is used both as a container and as a value" % key, key)

        if len(path) == 2 and not path[1]:
            self[key] = list(values)
        elif len(path) == 1:
            self[key] = self.pick(values) if values else list(values)
        else:
            node = self[key]
            if not isinstance(node, Tree):
                node = self[key] = self.branch()
            node.mount(path[1:], values)


class DataTree(Tree):
    """Tree of regular form values.  Leaves are strings or lists of
    strings, and a repeated bare key keeps its last value.
    """

    @staticmethod
    def is_empty(value: Any) -> bool:
        if isinstance(value, str):
            return not value
        if isinstance(value, (list, tuple)):
            return len(value) == 0 or (len(value) == 1 and not value[0])
        return value is None

    @staticmethod
    def pick(values: Sequence[str]) -> str:
        return values[-1]


class FileTree(Tree):
    """Tree of uploaded files.  Leaves are :class:`formtree.uploads.Upload`
    objects or lists of them, and a repeated bare key keeps its first file.
    """

    @staticmethod
    def is_empty(value: Any) -> bool:
        if isinstance(value, (list, tuple)):
            return len(value) == 0 or (len(value) == 1 and value[0] is None)
        return value is None

    @staticmethod
    def pick(values: Sequence[Upload]) -> Upload:
        return values[0]

    @staticmethod
    def encode_leaf(value: Any) -> Any:
        to_dict = getattr(value, "to_dict", None)
        if to_dict is None:
            raise TypeError("Type is not JSON serializable: %s" % type(value).__name__)
        return to_dict()

    def leaves(self) -> Iterator[Upload]:
        """Yields every upload reachable from this node, depth first."""
        for value in self.values():
            if isinstance(value, FileTree):
                yield from value.leaves()
            elif isinstance(value, (list, tuple)):
                for upload in value:
                    if upload is not None:
                        yield upload
            elif value is not None:
                yield value
