from __future__ import annotations

import io
import re
from typing import Any

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH, WD_TAB_ALIGNMENT
from docx.shared import Emu, Inches, Pt

import resume_formatter as fmt

FONT_NAME = "Times New Roman"
BODY_SIZE = 10.5
PAGE_WIDTH = Inches(8.5)
PAGE_HEIGHT = Inches(11)
SIDE_MARGIN = Inches(0.6)
RIGHT_TAB = Emu(PAGE_WIDTH - SIDE_MARGIN * 2)

# Word rejects XML control characters other than tab/newline/carriage return.
_XML_INVALID_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def _clean(text: Any) -> str:
    return _XML_INVALID_RE.sub("", "" if text is None else str(text))


def _tight(p, before: float = 0, after: float = 0) -> None:
    p.paragraph_format.space_before = Pt(before)
    p.paragraph_format.space_after = Pt(after)


def _run(p, text: str, size: float = BODY_SIZE, bold: bool = False, italic: bool = False, underline: bool = False):
    run = p.add_run(_clean(text))
    run.font.name = FONT_NAME
    run.font.size = Pt(size)
    run.bold = bold
    run.italic = italic
    run.underline = underline
    return run


def _new_document(title: str):
    doc = Document()
    for section in doc.sections:
        section.page_width = PAGE_WIDTH
        section.page_height = PAGE_HEIGHT
        section.top_margin = Inches(0.5)
        section.bottom_margin = Inches(0.5)
        section.left_margin = SIDE_MARGIN
        section.right_margin = SIDE_MARGIN
    doc.core_properties.title = _clean(title or "Resume")
    doc.core_properties.author = "ResumeAI"
    return doc


def _add_line(doc, line: fmt.ClassifiedLine) -> None:
    if line.tag == fmt.BLANK:
        _tight(doc.add_paragraph(), after=2)
        return

    p = doc.add_paragraph()
    if line.tag == fmt.NAME:
        _tight(p, after=2)
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        _run(p, line.text.upper(), size=20, bold=True)
    elif line.tag == fmt.CONTACT:
        _tight(p, after=4)
        p.alignment = WD_ALIGN_PARAGRAPH.CENTER
        for idx, token in enumerate(line.parts):
            if idx:
                _run(p, "  |  ", size=10)
            _run(p, token, size=10)
    elif line.tag == fmt.SECTION:
        _tight(p, before=6, after=2)
        _run(p, line.text.upper(), size=11, bold=True, underline=True)
    elif line.tag == fmt.COMPANY_DATE:
        left, right = (tuple(line.parts) + ("", ""))[:2]
        _tight(p, before=3)
        p.paragraph_format.tab_stops.add_tab_stop(RIGHT_TAB, WD_TAB_ALIGNMENT.RIGHT)
        _run(p, left, bold=True)
        if right:
            _run(p, "\t")
            _run(p, right, italic=True)
    elif line.tag == fmt.JOB_TITLE:
        _tight(p)
        _run(p, line.text, italic=True)
    elif line.tag == fmt.BULLET:
        _tight(p)
        p.paragraph_format.left_indent = Pt(18)
        p.paragraph_format.first_line_indent = Pt(-10)
        _run(p, "• ")
        _run(p, line.parts[0] if line.parts else line.text)
    elif line.tag == fmt.LABEL_VALUE:
        label, value = (tuple(line.parts) + ("", ""))[:2]
        _tight(p)
        _run(p, f"{label}: ", bold=True)
        _run(p, value)
    else:
        _tight(p, after=2)
        _run(p, line.text)


def build_docx(content: Any, title: str = "Resume", doc_type: str = "resume") -> bytes:
    """Render resume or cover-letter text into DOCX bytes."""
    doc = _new_document(title)
    if doc_type == "cover_letter":
        for paragraph in fmt.cover_letter_paragraphs(content):
            p = doc.add_paragraph()
            _tight(p, after=10)
            _run(p, paragraph, size=11)
    else:
        for line in fmt.classify_text(content):
            _add_line(doc, line)

    output = io.BytesIO()
    doc.save(output)
    return output.getvalue()
