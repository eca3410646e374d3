import sys

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from formtree.exceptions import ConflictError
    from formtree.keypath import format_key_path, parse_key_path
    from formtree.tree import DataTree


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    tree = DataTree(max_level=8)

    for _ in range(fdp.ConsumeIntInRange(1, 8)):
        name = fdp.ConsumeKeyPath()
        path = parse_key_path(name)
        assert parse_key_path(format_key_path(path)) == path

        values = [fdp.PickValueInList(["", "x"]) for _ in range(fdp.ConsumeIntInRange(0, 2))]
        try:
            tree.push(name, values)
        except ConflictError:
            return

    tree.encode()


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
