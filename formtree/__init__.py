__version__ = "0.1.0"

from .exceptions import ConflictError, DecodeError, FormTreeError, UploadError
from .keypath import format_key_path, parse_key_path
from .transform import BodyTransformer, ContentCategory, ParsedBody, classify, transform_body
from .tree import DataTree, FileTree
from .uploads import Upload, UploadErrorCode, Uploads

__all__ = (
    "BodyTransformer",
    "ConflictError",
    "ContentCategory",
    "DataTree",
    "DecodeError",
    "FileTree",
    "FormTreeError",
    "ParsedBody",
    "Upload",
    "UploadError",
    "UploadErrorCode",
    "Uploads",
    "classify",
    "format_key_path",
    "parse_key_path",
    "transform_body",
)
