"""Pascal lexical scanning and include expansion."""

from .includes import resolve_include_path, with_include_bytes
from .lexer import (
    decode_source,
    is_ident_start,
    parse_include_directive,
    peek_ident,
    read_ident,
    read_ident_with_dots,
    read_string_literal,
    skip_brace_comment,
    skip_line_comment,
    skip_paren_comment,
    skip_string,
    skip_ws_and_comments,
)

__all__ = [
    "decode_source",
    "is_ident_start",
    "parse_include_directive",
    "peek_ident",
    "read_ident",
    "read_ident_with_dots",
    "read_string_literal",
    "resolve_include_path",
    "skip_brace_comment",
    "skip_line_comment",
    "skip_paren_comment",
    "skip_string",
    "skip_ws_and_comments",
    "with_include_bytes",
]
