"""PDF structure index.

Scans a PDF byte buffer once with :class:`~.lexer.PdfLexer` and records
where every ``N G obj ... endobj`` definition, trailer dictionary and
``startxref`` marker lives. Later definitions of the same object number
(from earlier incremental updates) override earlier ones, matching how
readers resolve the newest revision.

Objects stored inside compressed object streams (PDF 1.5+) are not
visible to the scanner. When the buffer has object streams, a lookup that
misses falls back to pikepdf, which decompresses them; the unparsed body
is lexed like any other object.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field

from ...errors import PDFError, PdfStructureNotRecognized
from .. import require_pikepdf as _require_pikepdf
from .lexer import PdfArray, PdfDict, PdfLexer, PdfRef, PdfSyntaxError, PdfValue, Token

__all__ = [
    "PdfIndex",
    "PdfObject",
    "find_pages",
    "index_pdf",
    "inherited_attribute",
    "resolve_page_index",
]

_logger = logging.getLogger(__name__)

_EOF_MARKER = b"%%EOF"
_MAX_PAGE_TREE_DEPTH = 64


@dataclass(frozen=True)
class PdfObject:
    """One indirect object definition found in the buffer.

    Attributes:
        num: Object number.
        gen: Generation number.
        start: Offset of the ``N G obj`` header.
        end: Offset just past ``endobj`` (or past the value if it is missing).
            Both offsets are -1 for objects read from an object stream.
        value: Parsed object value (stream objects keep only their dictionary).
        is_stream: True when the object carries a stream.
    """

    num: int
    gen: int
    start: int
    end: int
    value: PdfValue
    is_stream: bool = False

    @property
    def ref(self) -> PdfRef:
        return PdfRef(self.num, self.gen)


@dataclass
class PdfIndex:
    """Located markers and objects of a PDF buffer."""

    data: bytes
    objects: dict[int, PdfObject] = field(default_factory=dict)
    trailers: list[PdfDict] = field(default_factory=list)
    startxref: int = -1
    eof_offset: int = -1
    object_streams: int = 0
    compressed: dict[int, bytes] | None = field(default=None, repr=False)

    # ── Trailer access ──────────────────────────────────────────────

    def trailer_value(self, key: str) -> PdfValue:
        """Return ``key`` from the newest trailer that defines it, or None."""
        for trailer in reversed(self.trailers):
            if key in trailer:
                return trailer[key]
        return None

    @property
    def root_ref(self) -> PdfRef:
        root = self.trailer_value("/Root")
        if not isinstance(root, PdfRef):
            raise PdfStructureNotRecognized("Cannot find /Root reference in PDF trailer.")
        return root

    @property
    def max_object_number(self) -> int:
        return max(self.objects, default=0)

    def next_object_number(self) -> int:
        """First object number that is free in every revision."""
        size = self.trailer_value("/Size")
        highest = self.max_object_number
        if isinstance(size, int) and size - 1 > highest:
            highest = size - 1
        return highest + 1

    # ── Object access ───────────────────────────────────────────────

    def get(self, num: int) -> PdfObject:
        """Return the newest definition of object ``num``.

        Objects the scanner did not see are looked up in the compressed
        object streams, when the buffer has any.

        Raises:
            PdfStructureNotRecognized: If the object is not defined anywhere.
        """
        obj = self.objects.get(num)
        if obj is None and self.object_streams:
            obj = self._compressed_object(num)
        if obj is None:
            raise PdfStructureNotRecognized(f"Cannot locate object {num} in PDF.")
        return obj

    def _compressed_object(self, num: int) -> PdfObject | None:
        if self.compressed is None:
            self.compressed = _unparse_compressed_objects(self.data, set(self.objects))
        body = self.compressed.get(num)
        if body is None:
            return None
        try:
            value = PdfLexer(body).parse_object()
        except PdfSyntaxError as exc:
            raise PdfStructureNotRecognized(
                f"Object {num} from an object stream is unparseable: {exc}"
            ) from exc
        obj = PdfObject(num, 0, -1, -1, value)
        self.objects[num] = obj
        return obj

    def resolve(self, value: PdfValue) -> PdfValue:
        """Dereference ``value`` if it is an indirect reference."""
        seen: set[int] = set()
        while isinstance(value, PdfRef):
            if value.num in seen:
                raise PdfStructureNotRecognized(f"Reference cycle at object {value.num}.")
            seen.add(value.num)
            value = self.get(value.num).value
        return value

    def dict_object(self, num: int, what: str = "object") -> PdfDict:
        """Return the dictionary of object ``num``, failing if it is not one."""
        value = self.get(num).value
        if not isinstance(value, PdfDict):
            raise PdfStructureNotRecognized(f"{what.capitalize()} {num} is not a dictionary.")
        return value

    def raw(self, start: int, end: int) -> bytes:
        return self.data[start:end]

    @property
    def catalog(self) -> PdfDict:
        return self.dict_object(self.root_ref.num, "catalog")


def index_pdf(data: bytes) -> PdfIndex:
    """Scan ``data`` and return its structure index.

    Raises:
        PdfStructureNotRecognized: If ``%%EOF``, ``startxref`` or a trailer
            ``/Root`` cannot be located.
    """
    index = PdfIndex(data=data)
    index.eof_offset = data.rfind(_EOF_MARKER)
    if index.eof_offset == -1:
        raise PdfStructureNotRecognized("Cannot find %%EOF marker in PDF.")

    lexer = PdfLexer(data)
    window: list = []
    while True:
        try:
            tok = lexer.next_token()
        except PdfSyntaxError as exc:
            _logger.debug("Skipping unparseable bytes: %s", exc)
            lexer.pos = exc.offset + 1
            window.clear()
            continue
        if tok.kind == "eof":
            break

        if tok.kind == "keyword" and tok.value == "obj" and len(window) == 2:
            num_tok, gen_tok = window
            window.clear()
            _read_object(index, lexer, num_tok.value, gen_tok.value, num_tok.start)
            continue
        if tok.kind == "keyword" and tok.value == "trailer":
            window.clear()
            _read_trailer(index, lexer)
            continue
        if tok.kind == "keyword" and tok.value == "startxref":
            window.clear()
            nxt = _next_token_or_none(lexer)
            if nxt is not None and nxt.kind == "int":
                index.startxref = nxt.value  # type: ignore[assignment]
            continue

        if tok.kind == "int":
            window.append(tok)
            if len(window) > 2:
                del window[0]
        else:
            window.clear()

    if index.startxref < 0:
        raise PdfStructureNotRecognized("Cannot find startxref in PDF.")
    if not isinstance(index.trailer_value("/Root"), PdfRef):
        raise PdfStructureNotRecognized("Cannot find /Root reference in PDF trailer.")
    _logger.debug(
        "Indexed PDF: %d objects, %d trailer(s), startxref=%d, %%%%EOF at %d",
        len(index.objects),
        len(index.trailers),
        index.startxref,
        index.eof_offset,
    )
    return index


def _read_object(index: PdfIndex, lexer: PdfLexer, num: int, gen: int, start: int) -> None:
    data = lexer.data
    header_end = lexer.pos
    try:
        value = lexer.parse_object()
    except PdfSyntaxError as exc:
        _logger.debug("Object %d %d unparseable, skipped: %s", num, gen, exc)
        lexer.pos = header_end
        return

    is_stream = False
    body_end = lexer.pos
    tok = _next_token_or_none(lexer)
    if tok is not None and tok.kind == "keyword" and tok.value == "stream":
        is_stream = True
        body_end = lexer.pos = _skip_stream(data, tok.end, value)
        tok = _next_token_or_none(lexer)
    if tok is not None and tok.kind == "keyword" and tok.value == "endobj":
        end = tok.end
    else:
        # Missing endobj: keep the value, resume scanning after it.
        end = lexer.pos = body_end

    index.objects[num] = PdfObject(num, gen, start, end, value, is_stream)
    if isinstance(value, PdfDict):
        obj_type = value.get("/Type")
        if obj_type == "/XRef":
            index.trailers.append(value)
        elif obj_type == "/ObjStm":
            index.object_streams += 1


def _next_token_or_none(lexer: PdfLexer) -> Token | None:
    pos = lexer.pos
    try:
        return lexer.next_token()
    except PdfSyntaxError:
        lexer.pos = pos
        return None


def _skip_stream(data: bytes, keyword_end: int, value: PdfValue) -> int:
    """Return the offset just past ``endstream``."""
    pos = keyword_end
    if data[pos : pos + 2] == b"\r\n":
        pos += 2
    elif data[pos : pos + 1] in (b"\n", b"\r"):
        pos += 1

    length = value.get("/Length") if isinstance(value, PdfDict) else None
    if isinstance(length, int) and length >= 0:
        marker = data.find(b"endstream", pos + length)
        # A direct /Length must put endstream right after the data.
        if marker != -1 and not data[pos + length : marker].strip():
            return marker + len(b"endstream")

    found = data.find(b"endstream", pos)
    if found == -1:
        raise PdfStructureNotRecognized(f"Unterminated stream at offset {keyword_end}.")
    return found + len(b"endstream")


def _read_trailer(index: PdfIndex, lexer: PdfLexer) -> None:
    try:
        value = lexer.parse_object()
    except PdfSyntaxError as exc:
        _logger.debug("Unparseable trailer skipped: %s", exc)
        return
    if isinstance(value, PdfDict):
        index.trailers.append(value)


def _unparse_compressed_objects(data: bytes, known: set[int]) -> dict[int, bytes]:
    """Raw bodies of the objects missing from ``known``, read through pikepdf.

    References inside each body stay ``N G R``; only the top level is
    resolved. Streams cannot live in object streams and are skipped.
    """
    pikepdf = _require_pikepdf()
    bodies: dict[int, bytes] = {}
    try:
        with pikepdf.open(io.BytesIO(data)) as pdf:
            for obj in pdf.objects:
                if not isinstance(obj, pikepdf.Object) or isinstance(obj, pikepdf.Stream):
                    continue
                num, gen = obj.objgen
                if num in known or gen != 0:
                    continue
                bodies[num] = obj.unparse(resolved=True)
    except (ValueError, RuntimeError, OSError, pikepdf.PdfError) as exc:
        raise PdfStructureNotRecognized(f"Cannot read compressed object streams: {exc}") from exc
    _logger.debug("Read %d object(s) from compressed object streams", len(bodies))
    return bodies


# ── Page tree ─────────────────────────────────────────────────────────


def find_pages(index: PdfIndex) -> list[PdfRef]:
    """Return references to every page, in document order.

    Walks ``/Root -> /Pages -> /Kids`` through nested page-tree nodes.

    Raises:
        PdfStructureNotRecognized: If ``/Pages`` or ``/Kids`` is missing or
            the tree holds no pages.
    """
    pages_ref = index.catalog.get("/Pages")
    if not isinstance(pages_ref, PdfRef):
        raise PdfStructureNotRecognized("Cannot find /Pages reference in document catalog.")

    pages: list[PdfRef] = []
    visited: set[int] = set()

    def walk(ref: PdfRef, depth: int) -> None:
        if ref.num in visited or depth > _MAX_PAGE_TREE_DEPTH:
            _logger.warning("Page tree loop or excessive depth at object %d, skipped", ref.num)
            return
        visited.add(ref.num)
        node = index.dict_object(ref.num, "page tree node")
        node_type = node.get("/Type")
        if node_type == "/Page" or (node_type is None and "/Kids" not in node):
            pages.append(ref)
            return
        kids = index.resolve(node.get("/Kids"))
        if not isinstance(kids, PdfArray):
            raise PdfStructureNotRecognized(f"Cannot find /Kids array in pages node {ref.num}.")
        for kid in kids:
            if isinstance(kid, PdfRef):
                walk(kid, depth + 1)

    walk(pages_ref, 0)
    if not pages:
        raise PdfStructureNotRecognized("PDF page tree contains no pages.")
    return pages


def inherited_attribute(index: PdfIndex, page: PdfRef, key: str) -> PdfValue:
    """Look up an inheritable page attribute such as ``/MediaBox``."""
    node: PdfValue = index.dict_object(page.num, "page")
    hops = 0
    while isinstance(node, PdfDict) and hops <= _MAX_PAGE_TREE_DEPTH:
        if key in node:
            return index.resolve(node[key])
        node = index.resolve(node.get("/Parent"))
        hops += 1
    return None


def resolve_page_index(page_spec: int | str, total: int, *, clamp: bool = False) -> int:
    """Convert a page specifier to a 0-based index.

    Args:
        page_spec: ``"first"``, ``"last"``, a 0-based index, or a negative
            index counted from the end (``-1`` is the last page).
        total: Number of pages in the document.
        clamp: Map an index past the end to the last page instead of failing.

    Returns:
        int -- validated 0-based page index.

    Raises:
        PDFError: If the specifier is malformed or out of range.
    """
    if isinstance(page_spec, str):
        spec = page_spec.strip().lower()
        if spec == "first":
            return 0
        if spec == "last":
            return total - 1
        try:
            page_spec = int(spec)
        except ValueError as exc:
            raise PDFError(
                f"Invalid page: {page_spec!r}. Use 'first', 'last', or a 0-based number."
            ) from exc

    idx = int(page_spec)
    if idx < 0:
        idx += total
    if clamp and idx >= total > 0:
        _logger.warning("Page %s is past the end, using the last page (%d)", page_spec, total - 1)
        return total - 1
    if idx < 0 or idx >= total:
        raise PDFError(f"Page {page_spec} out of range (PDF has {total} page(s), 0-based).")
    return idx
