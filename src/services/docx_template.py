"""
Tag substitution for Word (.docx) templates.

Templates use single-brace tags typed directly into the document:

    {supplierName}                  value from the data map
    {#lineItems} ... {/lineItems}   repeated once per element of a list
    {^lineItems} ... {/lineItems}   rendered only when the value is empty

Inside a loop, names are looked up on the current element first and then on
the enclosing scopes, so ``{currency}`` still works inside ``{#lineItems}``.
``{.}`` is the current element itself.

What gets repeated depends on where the two loop tags sit:

- same paragraph: the runs between them
- different cells of the same table row: the whole row
- anywhere else: the paragraphs/tables between them. A paragraph holding a
  loop tag is split at the tag, so text before the opening tag and after the
  closing tag appears once; left empty, the split halves are dropped.

Word splits typed text into runs at arbitrary points (spell check, edits,
formatting), so every paragraph is first rewritten so that each tag lives in a
run of its own. Problems are collected over the whole document and raised
together as one TemplateError.
"""

import copy
import re
from dataclasses import dataclass
from io import BytesIO
from typing import Any

from docx import Document
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from loguru import logger

from .errors import TemplateError, TemplatePackageError

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

TAG_RE = re.compile(r"\{[^{}]*\}")
TAG_SPLIT_RE = re.compile(r"(\{[^{}]*\})")
NAME_RE = re.compile(r"^(?:\.|[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*)$")

W_P = qn("w:p")
W_R = qn("w:r")
W_TR = qn("w:tr")
W_PPR = qn("w:pPr")
# Children that do not make a paragraph visible on their own
INVISIBLE = {W_PPR, qn("w:proofErr"), qn("w:bookmarkStart"), qn("w:bookmarkEnd")}
BLANK_RUN_CHILDREN = {qn("w:rPr"), qn("w:t"), qn("w:tab")}
STORY_ROOTS = {qn("w:document"), qn("w:hdr"), qn("w:ftr")}

TAG_KINDS = {"#": "open", "^": "inverted", "/": "close"}

_MISSING = object()


@dataclass
class Tag:
    run: Any
    kind: str  # "value", "open", "inverted" or "close"
    name: str
    raw: str


def parse_tag(raw: str) -> tuple[str, str] | None:
    """Split "{#name}" into ("open", "name"); None when the tag is not well formed"""
    inner = raw[1:-1].strip()
    kind = "value"
    if inner[:1] in TAG_KINDS:
        kind = TAG_KINDS[inner[0]]
        inner = inner[1:].strip()
    if not NAME_RE.match(inner):
        return None
    return kind, inner


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def load_document(template: bytes):
    try:
        return Document(BytesIO(template))
    except Exception as e:
        raise TemplatePackageError(f"Template is not a valid Word document: {e}") from e


def story_roots(document) -> list:
    """Body plus every header and footer part of the document"""
    roots = [document.element.body]
    for rel in document.part.rels.values():
        if rel.is_external:
            continue
        if rel.reltype in (RT.HEADER, RT.FOOTER):
            roots.append(rel.target_part.element)
    return roots


def _run_index(starts: list[int], lengths: list[int], offset: int) -> int:
    for index, (start, length) in enumerate(zip(starts, lengths)):
        if start <= offset < start + length:
            return index
    raise IndexError(offset)


def _report_stray_braces(text: str, spans: list[tuple[int, int]], errors: list[str]) -> None:
    masked = list(text)
    for start, end in spans:
        masked[start:end] = " " * (end - start)
    for index, char in enumerate(masked):
        if char == "{":
            errors.append(f'Unclosed tag "{text[index:index + 20]}"')
        elif char == "}":
            errors.append(f'Unopened tag "{text[max(0, index - 19):index + 1]}"')


def _owner(run):
    """Nearest enclosing paragraph of a run (a text box paragraph for runs inside one)"""
    for ancestor in run.iterancestors(W_P):
        return ancestor
    return None


def paragraph_runs(paragraph) -> list:
    """
    Runs whose text belongs to this paragraph, in document order.

    Includes runs nested in hyperlinks, tracked insertions, content controls
    and smart tags; runs of text boxes anchored in the paragraph belong to
    the text box paragraphs instead.
    """
    return [run for run in paragraph.iter(W_R) if _owner(run) is paragraph]


def normalize_paragraph(paragraph, errors: list[str]) -> None:
    """Rewrite the paragraph's runs so each tag occupies exactly one run"""
    runs = paragraph_runs(paragraph)
    if not runs:
        return

    original = [run.text for run in runs]
    full = "".join(original)
    if "{" not in full and "}" not in full:
        return

    spans = [match.span() for match in TAG_RE.finditer(full)]
    _report_stray_braces(full, spans, errors)
    for start, end in spans:
        if parse_tag(full[start:end]) is None:
            errors.append(f'Invalid tag "{full[start:end]}"')

    lengths = [len(text) for text in original]
    starts = [sum(lengths[:index]) for index in range(len(lengths))]
    texts = list(original)

    # Right to left, so the offsets of earlier tags stay valid
    for start, end in reversed(spans):
        first = _run_index(starts, lengths, start)
        last = _run_index(starts, lengths, end - 1)
        if first == last:
            continue
        texts[first] = texts[first][: start - starts[first]] + full[start:end]
        for index in range(first + 1, last):
            texts[index] = ""
        texts[last] = texts[last][end - starts[last]:]

    for run, before, after in zip(runs, original, texts):
        if before != after:
            run.text = after

    for run in runs:
        text = run.text
        if not TAG_RE.search(text) or TAG_RE.fullmatch(text):
            continue
        for piece in TAG_SPLIT_RE.split(text):
            if not piece:
                continue
            clone = copy.deepcopy(run)
            clone.text = piece
            run.addprevious(clone)
        _remove(run)


def _remove(element) -> None:
    parent = element.getparent()
    if parent is not None:
        parent.remove(element)


def _attached(element) -> bool:
    top = element
    while top.getparent() is not None:
        top = top.getparent()
    return top.tag in STORY_ROOTS


def _is_blank(paragraph) -> bool:
    for child in paragraph:
        if child.tag in INVISIBLE:
            continue
        if child.tag == W_R and not child.text.strip() and all(g.tag in BLANK_RUN_CHILDREN for g in child):
            continue
        return False
    return True


def _split_paragraph(paragraph, run, keep: str):
    """
    Move the content on one side of ``run`` into a new, detached paragraph.

    ``keep`` is "after" or "before"; the run itself is dropped and the
    original paragraph keeps the other side.
    """
    boundary = run
    while boundary.getparent() is not paragraph:
        boundary = boundary.getparent()

    part = OxmlElement("w:p")
    if paragraph.pPr is not None:
        part.append(copy.deepcopy(paragraph.pPr))
    if keep == "after":
        moved = list(boundary.itersiblings())
    else:
        moved = [e for e in boundary.itersiblings(preceding=True) if e.tag != W_PPR][::-1]
    for element in moved:
        part.append(element)
    _remove(run)
    return part


def _resolve(name: str, scopes: list) -> Any:
    if name == ".":
        return scopes[-1]
    head, *rest = name.split(".")
    for scope in reversed(scopes):
        if isinstance(scope, dict) and head in scope:
            value = scope[head]
            for part in rest:
                if not isinstance(value, dict) or part not in value:
                    return _MISSING
                value = value[part]
            return value
    return _MISSING


class TemplateRenderer:
    """Renders tag runs in a set of elements against a stack of data scopes"""

    def __init__(self, errors: list[str] | None = None):
        self.errors = errors if errors is not None else []

    def render(self, elements: list, scopes: list) -> None:
        loops, values = self._structure(self._collect(elements))
        for tag in values:
            self._substitute(tag, scopes)
        for opening, closing in loops:
            self._expand(opening, closing, scopes)

    def _collect(self, elements: list) -> list[Tag]:
        tags = []
        for element in elements:
            for run in element.iter(W_R):
                if _owner(run) is None:
                    continue
                raw = run.text
                if not TAG_RE.fullmatch(raw):
                    continue
                parsed = parse_tag(raw)
                if parsed is None:
                    continue
                tags.append(Tag(run=run, kind=parsed[0], name=parsed[1], raw=raw))
        return tags

    def _structure(self, tags: list[Tag]) -> tuple[list[tuple[Tag, Tag]], list[Tag]]:
        """Pair the outermost loop tags; return them with the value tags outside any loop"""
        stack: list[Tag] = []
        loops = []
        values = []
        for tag in tags:
            if tag.kind in ("open", "inverted"):
                stack.append(tag)
            elif tag.kind == "close":
                if not stack:
                    self.errors.append(f'Unopened loop "{tag.raw}"')
                    continue
                opening = stack.pop()
                if opening.name != tag.name:
                    self.errors.append(f'Loop "{opening.raw}" is closed by "{tag.raw}"')
                if not stack:
                    loops.append((opening, tag))
            elif not stack:
                values.append(tag)
        for tag in stack:
            self.errors.append(f'Unclosed loop "{tag.raw}"')
        return loops, values

    def _substitute(self, tag: Tag, scopes: list) -> None:
        value = _resolve(tag.name, scopes)
        if value is _MISSING:
            self.errors.append(f'Unresolved tag "{tag.raw}"')
            return
        tag.run.text = to_text(value)

    def _iterations(self, tag: Tag, value: Any, scopes: list) -> list[list]:
        if tag.kind == "inverted":
            return [scopes] if not value else []
        if isinstance(value, (list, tuple)):
            return [scopes + [item] for item in value]
        if isinstance(value, dict):
            return [scopes + [value]]
        return [scopes] if value else []

    def _expand(self, opening: Tag, closing: Tag, scopes: list) -> None:
        # A loop nested in a table row that an earlier loop already repeated
        if not (_attached(opening.run) and _attached(closing.run)):
            return

        value = _resolve(opening.name, scopes)
        if value is _MISSING:
            self.errors.append(f'Unresolved loop "{opening.raw}"')
            value = None

        anchor, template, obsolete = self._loop_span(opening.run, closing.run)
        for chain in self._iterations(opening, value, scopes):
            copies = [copy.deepcopy(element) for element in template]
            for element in copies:
                anchor.addprevious(element)
            self.render(copies, chain)
        for element in obsolete:
            _remove(element)

    def _loop_span(self, open_run, close_run) -> tuple[Any, list, list]:
        """
        Work out what a loop repeats.

        Returns the element the copies go in front of, the elements to copy
        per iteration and the elements to drop afterwards. The loop tag runs
        themselves never end up in the repeated content.
        """
        open_chain = [open_run, *open_run.iterancestors()]
        close_chain = [close_run, *close_run.iterancestors()]
        common_index = next(i for i, element in enumerate(open_chain) if element in close_chain)
        common = open_chain[common_index]

        if _owner(open_run) is _owner(close_run):
            return self._inline_span(open_run, close_run, open_chain, close_chain, common_index)

        if common.tag == W_TR:
            _remove(open_run)
            _remove(close_run)
            return common, [common], [common]

        first = open_chain[common_index - 1]
        last = close_chain[close_chain.index(common) - 1]
        units = []
        element = first.getnext()
        while element is not None and element is not last:
            units.append(element)
            element = element.getnext()

        template = []
        obsolete = list(units)
        if first.tag == W_P:
            tail = _split_paragraph(first, open_run, keep="after")
            if not _is_blank(tail):
                template.append(tail)
            if _is_blank(first):
                obsolete.append(first)
        else:
            _remove(open_run)
            template.append(first)
            obsolete.append(first)

        template.extend(units)

        if last.tag == W_P:
            head = _split_paragraph(last, close_run, keep="before")
            if not _is_blank(head):
                template.append(head)
            if _is_blank(last):
                obsolete.append(last)
        else:
            _remove(close_run)
            template.append(last)
            obsolete.append(last)

        return last, template, obsolete

    def _inline_span(self, open_run, close_run, open_chain, close_chain, common_index):
        if open_run.getparent() is close_run.getparent():
            template = []
            element = open_run.getnext()
            while element is not None and element is not close_run:
                template.append(element)
                element = element.getnext()
            return open_run, template, [open_run, *template, close_run]

        # Tags in different containers of one paragraph, e.g. one inside a hyperlink
        first = open_chain[common_index - 1]
        last = close_chain[close_chain.index(open_chain[common_index]) - 1]
        _remove(open_run)
        _remove(close_run)
        units = []
        element = first
        while element is not None:
            units.append(element)
            if element is last:
                break
            element = element.getnext()
        return first, units, units


def render_docx(template: bytes, data: dict) -> bytes:
    """
    Fill the tags of a .docx template from ``data`` and return the new package.

    Raises TemplatePackageError when the bytes are not a Word document and
    TemplateError listing every tag problem found.
    """
    document = load_document(template)
    roots = story_roots(document)

    errors: list[str] = []
    for root in roots:
        for paragraph in list(root.iter(W_P)):
            normalize_paragraph(paragraph, errors)

    renderer = TemplateRenderer(errors)
    for root in roots:
        renderer.render([root], [data])

    if errors:
        unique = list(dict.fromkeys(errors))
        logger.warning("Template rendering failed", error_count=len(unique), errors=unique)
        raise TemplateError(unique)

    out = BytesIO()
    document.save(out)
    logger.debug("Template rendered", size_bytes=out.tell(), stories=len(roots))
    return out.getvalue()
