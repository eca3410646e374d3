import sys
import tempfile

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from formtree.exceptions import FormTreeError
    from formtree.transform import BodyTransformer

transformer = BodyTransformer({"UPLOAD_DIR": tempfile.mkdtemp(), "MAX_LEVEL": 8})


def transform_stream(fdp: EnhancedDataProvider) -> None:
    header = {"Content-Type": "application/octet-stream"}
    transformer.transform("POST", header, fdp.ConsumeRandomBytes()).release()


def transform_form_urlencoded(fdp: EnhancedDataProvider) -> None:
    header = {"Content-Type": "application/x-www-form-urlencoded"}
    transformer.transform("POST", header, fdp.ConsumeRandomBytes()).release()


def transform_multipart_form_data(fdp: EnhancedDataProvider) -> None:
    boundary = "boundary"
    header = {"Content-Type": f"multipart/form-data; boundary={boundary}"}
    body = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{fdp.ConsumeKeyPath()}"; filename="a.txt"\r\n\r\n'
        f"{fdp.ConsumeRandomString()}\r\n"
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{fdp.ConsumeKeyPath()}"\r\n\r\n'
        f"{fdp.ConsumeRandomString()}\r\n"
        f"--{boundary}--\r\n"
    )
    transformer.transform("POST", header, body.encode("latin1", errors="ignore")).release()


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    targets = [transform_stream, transform_form_urlencoded, transform_multipart_form_data]
    target = fdp.PickValueInList(targets)

    try:
        target(fdp)
    except FormTreeError:
        return


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
