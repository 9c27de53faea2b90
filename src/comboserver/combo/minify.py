"""
=============================================================================
MINIFICATION TRANSFORMS
=============================================================================

A transform is a plain function from bytes to bytes, one per MIME type:

    Transform = Callable[[bytes, MinifyOptions], bytes]

    TRANSFORMS = {
        MimeType.CSS: minify_css,
        MimeType.JS:  minify_js,
    }

Swapping in a different minifier means replacing one entry in the table;
nothing else in the pipeline knows which implementation runs.

=============================================================================
WHAT THE BUILT-IN TRANSFORMS DO
=============================================================================

Both are conservative: they only remove bytes that cannot change meaning.

    CSS                                  JS
    ─────────────────────────────────    ─────────────────────────────────
    drop /* comments */                  drop // and /* comments */
    keep /*! license */ comments         keep /*! license */ comments
    collapse whitespace                  collapse whitespace
    no spaces around { } ; , >           keep a newline where dropping it
    no space after :                     could change semicolon insertion
    drop ; before } (optional)           drop ; before } (optional)
    wrap after line_break columns        wrap after line_break columns
    strings left byte-for-byte           strings, templates and regex
                                         literals left byte-for-byte

Neither renames identifiers. MinifyOptions.munge is carried for transforms
that do; the built-ins ignore it.

Malformed input (an unterminated comment, string or regex) raises
MinificationError rather than emitting something half-processed.

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
import logging
import re

from ..http.mime_types import MimeType
from .errors import MinificationError


logger = logging.getLogger(__name__)

DEFAULT_OMIT_PATTERN = r".*\.min\.(js|css)$"


@dataclass(frozen=True)
class MinifyOptions:
    """
    Tunables handed to every transform.

    Attributes:
        line_break: Insert a newline after a rule/statement once the
            current line is longer than this many columns; -1 disables.
        preserve_semicolons: Keep the ";" before a closing "}".
        munge: Allow identifier renaming (not done by the built-ins).
        verbose: Log per-transform size statistics at INFO.
        omit_pattern: Files whose name matches this regex are combined
            but never minified.
    """

    line_break: int = -1
    preserve_semicolons: bool = False
    munge: bool = True
    verbose: bool = False
    omit_pattern: str = DEFAULT_OMIT_PATTERN


Transform = Callable[[bytes, MinifyOptions], bytes]


def _decode(source: bytes) -> str:
    # surrogateescape round-trips bytes that are not valid UTF-8
    return source.decode("utf-8", errors="surrogateescape")


def _encode(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


def _line_of(text: str, index: int) -> int:
    return text.count("\n", 0, index) + 1


def _wrap_after(text: str, marker: str, line_break: int) -> str:
    """Break the line after `marker` chars once it exceeds line_break columns."""
    if line_break < 0:
        return text
    out = []
    column = 0
    for ch in text:
        out.append(ch)
        column = 0 if ch == "\n" else column + 1
        if ch == marker and column > line_break:
            out.append("\n")
            column = 0
    return "".join(out)


def _report(kind: str, source: bytes, result: bytes, options: MinifyOptions) -> None:
    if options.verbose:
        saved = len(source) - len(result)
        logger.info(
            f"{kind} minified {len(source)} → {len(result)} bytes "
            f"({saved} saved)"
        )


# =============================================================================
# CSS
# =============================================================================

_PLACEHOLDER = "\x00{}\x00"
_PLACEHOLDER_RE = re.compile(r"\x00(\d+)\x00")

_CSS_WS_RE = re.compile(r"\s+")
_CSS_PUNCT_RE = re.compile(r" ?([{};,>]) ?")
_CSS_COLON_RE = re.compile(r": ")
_CSS_SEMI_RE = re.compile(r";+\}")


def _scan_css_string(text: str, start: int) -> int:
    """Index just past the string literal opening at start."""
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n":
            break
        i += 1
    raise MinificationError(
        f"Unterminated string in CSS at line {_line_of(text, start)}"
    )


def minify_css(source: bytes, options: MinifyOptions) -> bytes:
    """
    Strip comments and redundant whitespace from a stylesheet.

        .a  {  color : red ;  }  /* x */  .b > p { margin: 0 }
        → .a{color :red}.b>p{margin:0}

    Space before ":" is kept; ".a :hover" and ".a:hover" select different
    elements.
    """
    text = _decode(source)
    preserved: List[str] = []
    parts: List[str] = []
    i = 0
    start = 0

    while i < len(text):
        ch = text[i]
        if ch == "/" and text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise MinificationError(
                    f"Unterminated comment in CSS at line {_line_of(text, i)}"
                )
            parts.append(text[start:i])
            if text.startswith("/*!", i):
                parts.append(_PLACEHOLDER.format(len(preserved)))
                preserved.append(text[i:end + 2])
            else:
                # a removed comment still separates tokens
                parts.append(" ")
            i = start = end + 2
        elif ch in "\"'":
            end = _scan_css_string(text, i)
            parts.append(text[start:i])
            parts.append(_PLACEHOLDER.format(len(preserved)))
            preserved.append(text[i:end])
            i = start = end
        else:
            i += 1
    parts.append(text[start:])

    css = "".join(parts)
    css = _CSS_WS_RE.sub(" ", css).strip()
    css = _CSS_PUNCT_RE.sub(r"\1", css)
    css = _CSS_COLON_RE.sub(":", css)
    if not options.preserve_semicolons:
        css = _CSS_SEMI_RE.sub("}", css)
    css = _wrap_after(css, "}", options.line_break)
    css = _PLACEHOLDER_RE.sub(lambda m: preserved[int(m.group(1))], css)

    result = _encode(css)
    _report("CSS", source, result, options)
    return result


# =============================================================================
# JAVASCRIPT
# =============================================================================
#
# The script transform tokenizes just enough to know where whitespace can
# go: words (identifiers, keywords, numbers), single punctuation characters,
# and opaque literals (strings, templates, regexes, preserved comments).
# Original adjacency is kept; only the whitespace *between* tokens is
# rewritten, as "", " " or "\n".
#
# =============================================================================

WORD, PUNCT, LITERAL, COMMENT = "word", "punct", "literal", "comment"

Token = Tuple[str, str]

# After these keywords a "/" starts a regex literal, not a division
_REGEX_KEYWORDS = {
    "return", "typeof", "instanceof", "in", "of", "new", "delete", "void",
    "throw", "case", "do", "else", "yield", "await",
}

# A newline between these must survive or automatic semicolon insertion
# could change ("return\nx", "a\n++b", "x\n(y)")
_NEWLINE_AFTER = set(")]}+-")
_NEWLINE_BEFORE = set("([{+-!~")


def _is_word_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$\\" or ord(ch) > 127


def _scan_js_string(text: str, start: int) -> int:
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n":
            break
        i += 1
    raise MinificationError(
        f"Unterminated string in JS at line {_line_of(text, start)}"
    )


def _scan_js_template(text: str, start: int) -> int:
    """Index just past a template literal, including nested ${...} parts."""
    i = start + 1
    depth = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if depth == 0:
            if ch == "`":
                return i + 1
            if text.startswith("${", i):
                depth = 1
                i += 2
                continue
        else:
            if ch in "\"'":
                i = _scan_js_string(text, i)
                continue
            if ch == "`":
                i = _scan_js_template(text, i)
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
        i += 1
    raise MinificationError(
        f"Unterminated template literal in JS at line {_line_of(text, start)}"
    )


def _scan_js_regex(text: str, start: int) -> int:
    i = start + 1
    in_class = False
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "\n":
            break
        if in_class:
            if ch == "]":
                in_class = False
        elif ch == "[":
            in_class = True
        elif ch == "/":
            i += 1
            while i < len(text) and _is_word_char(text[i]):
                i += 1
            return i
        i += 1
    raise MinificationError(
        f"Unterminated regular expression in JS at line {_line_of(text, start)}"
    )


def _regex_allowed(previous: Optional[Token]) -> bool:
    if previous is None:
        return True
    kind, value = previous
    if kind == PUNCT:
        return value not in ")]}"
    if kind == WORD:
        return value in _REGEX_KEYWORDS
    return False


def _tokenize_js(text: str) -> List[Tuple[str, Token]]:
    """
    Split script source into (separator, token) pairs.

    separator is what stood between the previous token and this one after
    comments are discarded: "" (adjacent), " " (whitespace) or "\\n"
    (whitespace containing a line break).
    """
    tokens: List[Tuple[str, Token]] = []
    previous: Optional[Token] = None
    separator = ""
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch in " \t\r\f\v\ufeff\u00a0":
            separator = separator or " "
            i += 1
            continue
        if ch in "\n\u2028\u2029":
            separator = "\n"
            i += 1
            continue

        if ch == "/" and text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            separator = separator or " "
            continue

        if ch == "/" and text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise MinificationError(
                    f"Unterminated comment in JS at line {_line_of(text, i)}"
                )
            body = text[i:end + 2]
            i = end + 2
            if body.startswith("/*!"):
                tokens.append((separator, (COMMENT, body)))
                separator = "\n"
                continue
            separator = "\n" if "\n" in body else (separator or " ")
            continue

        if ch in "\"'":
            end = _scan_js_string(text, i)
            token = (LITERAL, text[i:end])
        elif ch == "`":
            end = _scan_js_template(text, i)
            token = (LITERAL, text[i:end])
        elif ch == "/" and _regex_allowed(previous):
            end = _scan_js_regex(text, i)
            token = (LITERAL, text[i:end])
        elif _is_word_char(ch):
            end = i + 1
            while end < n and _is_word_char(text[end]):
                end += 1
            token = (WORD, text[i:end])
        else:
            end = i + 1
            token = (PUNCT, ch)

        tokens.append((separator, token))
        previous = token
        separator = ""
        i = end

    return tokens


def _needs_space(left: Token, right: Token) -> bool:
    left_kind, left_value = left
    right_kind, right_value = right
    if left_kind == WORD and right_kind == WORD:
        return True
    if left_kind == WORD and left_value.isdigit() and right_value == ".":
        return True
    # "a + +b", "a - -b", "a / /re/"
    if left_kind == PUNCT and left_value in "+-/" and right_value[0] == left_value:
        return True
    if left_kind == LITERAL and right_kind == WORD:
        # a regex followed by a word would read the word as flags
        return left_value[:1] == "/"
    return False


def _keeps_newline(left: Token, right: Token) -> bool:
    left_kind, left_value = left
    right_kind, right_value = right
    left_ok = left_kind in (WORD, LITERAL) or left_value in _NEWLINE_AFTER
    right_ok = right_kind in (WORD, LITERAL) or right_value in _NEWLINE_BEFORE
    return left_ok and right_ok


def _drops_semicolon(tokens: List[Tuple[str, Token]], index: int) -> bool:
    """Whether the ";" at index can go because a "}" follows it."""
    if index + 1 >= len(tokens) or tokens[index + 1][1] != (PUNCT, "}"):
        return False
    if index == 0:
        return False
    kind, value = tokens[index - 1][1]
    # "if (x);}" and "else;}" need their empty statement
    if kind == PUNCT:
        return value in "]}"
    if kind == WORD:
        return value not in ("else", "do")
    return kind == LITERAL


def minify_js(source: bytes, options: MinifyOptions) -> bytes:
    """
    Strip comments and redundant whitespace from a script.

        function add(a, b) {   // sum
            return a + b;
        }
        → function add(a,b){return a+b}
    """
    text = _decode(source)
    tokens = _tokenize_js(text)

    out: List[str] = []
    column = 0
    previous: Optional[Token] = None
    fresh_line = False

    for index, (separator, token) in enumerate(tokens):
        if (
            token == (PUNCT, ";")
            and not options.preserve_semicolons
            and _drops_semicolon(tokens, index)
        ):
            continue

        gap = ""
        if previous is not None and not fresh_line:
            if previous[0] == COMMENT:
                gap = "\n"
            elif separator == "\n" and _keeps_newline(previous, token):
                gap = "\n"
            elif separator and _needs_space(previous, token):
                gap = " "

        piece = gap + token[1]
        out.append(piece)
        if "\n" in piece:
            column = len(piece) - piece.rfind("\n") - 1
        else:
            column += len(piece)

        previous = token
        if (
            options.line_break >= 0
            and token == (PUNCT, ";")
            and column > options.line_break
        ):
            out.append("\n")
            column = 0
            fresh_line = True
        else:
            fresh_line = False

    result = _encode("".join(out))
    _report("JS", source, result, options)
    return result


TRANSFORMS: Dict[MimeType, Transform] = {
    MimeType.CSS: minify_css,
    MimeType.JS: minify_js,
}


def get_transform(mime_type: MimeType) -> Transform:
    return TRANSFORMS[mime_type]
