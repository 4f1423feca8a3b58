"""Upload boundary, CSV parsing and template generation."""

from .reader import FileTooLarge, ParseError, UnsupportedFileType, check_upload, parse_csv, read_upload
from .template import generate_template, template_file_name

__all__ = [
    "FileTooLarge",
    "ParseError",
    "UnsupportedFileType",
    "check_upload",
    "generate_template",
    "parse_csv",
    "read_upload",
    "template_file_name",
]
