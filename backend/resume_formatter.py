"""Resume and cover-letter formatting for print/PDF (HTML) and DOCX export.

Free-form text is classified line by line with an ordered rule table; each
rule is a pure predicate over the stripped line and a little carried state.
Structured profiles skip classification and emit the same line vocabulary
directly. Both paths feed one renderer, so formatting never raises: the
worst case for an odd line is plain body text.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

BLANK = "blank"
NAME = "name"
CONTACT = "contact"
SECTION = "section"
COMPANY_DATE = "company_date"
BULLET = "bullet"
LABEL_VALUE = "label_value"
JOB_TITLE = "job_title"
BODY = "body"

BULLET_MARKERS = ("•", "-", "*")
LABELS = ("Certifications", "Software", "Languages", "Honors", "Awards", "Skills", "Tools", "Interests")

PHONE_RE = re.compile(r"\+?\(?\d{3}\)?[\s.\-]?\d{3}[\s.\-]?\d{4}")
CONTACT_SPLIT_RE = re.compile(r"\s*\|\s*")
SECTION_CHARS_RE = re.compile(r"^[A-Za-z\s&/]+$")
COMPANY_DATE_RE = re.compile(r"^(?P<left>\S.{0,79}?)\s{2,}(?P<right>\S.*)$")
YEAR_OR_PRESENT_RE = re.compile(r"\b\d{4}\b|\bPresent\b")
YEAR_RE = re.compile(r"\b\d{4}\b")
BULLET_PREFIX_RE = re.compile(r"^[•\-*]\s*")
LABEL_VALUE_RE = re.compile(r"^(?P<label>" + "|".join(LABELS) + r")\s*:\s*(?P<value>.+)$", re.IGNORECASE)


def escape_html(value: Any) -> str:
    """Escape ``& < > " '`` for insertion into HTML text or attributes."""
    return html.escape("" if value is None else str(value), quote=True)


@dataclass(frozen=True)
class ClassifiedLine:
    tag: str
    text: str = ""
    parts: tuple[str, ...] = ()


@dataclass
class ClassifierState:
    non_blank_seen: int = 0
    contact_seen: bool = False
    list_open: bool = False
    previous_tag: str | None = None

    def advance(self, tag: str) -> None:
        if tag != BLANK:
            self.non_blank_seen += 1
        if tag == CONTACT:
            self.contact_seen = True
        self.list_open = tag == BULLET
        self.previous_tag = tag


Rule = Callable[[str, ClassifierState], "tuple[str, ...] | None"]


def match_blank(line: str, state: ClassifierState) -> tuple[str, ...] | None:
    return () if not line else None


def match_name(line: str, state: ClassifierState) -> tuple[str, ...] | None:
    return (line,) if state.non_blank_seen == 0 else None


def match_contact(line: str, state: ClassifierState) -> tuple[str, ...] | None:
    if state.non_blank_seen != 1 or state.contact_seen:
        return None
    if "@" not in line and "|" not in line and not PHONE_RE.search(line):
        return None
    return tuple(token for token in CONTACT_SPLIT_RE.split(line) if token)


def match_section(line: str, state: ClassifierState) -> tuple[str, ...] | None:
    if line != line.upper() or not 3 < len(line) < 60:
        return None
    return (line,) if SECTION_CHARS_RE.match(line) else None


def match_company_date(line: str, state: ClassifierState) -> tuple[str, ...] | None:
    if line.startswith(BULLET_MARKERS):
        return None
    match = COMPANY_DATE_RE.match(line)
    if not match or not YEAR_OR_PRESENT_RE.search(match.group("right")):
        return None
    return (match.group("left").strip(), match.group("right").strip())


def match_bullet(line: str, state: ClassifierState) -> tuple[str, ...] | None:
    if not line.startswith(BULLET_MARKERS):
        return None
    return (BULLET_PREFIX_RE.sub("", line).strip(),)


def match_label_value(line: str, state: ClassifierState) -> tuple[str, ...] | None:
    match = LABEL_VALUE_RE.match(line)
    if not match:
        return None
    return (match.group("label"), match.group("value").strip())


def match_job_title(line: str, state: ClassifierState) -> tuple[str, ...] | None:
    if state.previous_tag != COMPANY_DATE:
        return None
    if len(line) >= 80 or not line[0].isupper() or YEAR_RE.search(line):
        return None
    return (line,)


def match_body(line: str, state: ClassifierState) -> tuple[str, ...] | None:
    return (line,)


RULES: list[tuple[str, Rule]] = [
    (BLANK, match_blank),
    (NAME, match_name),
    (CONTACT, match_contact),
    (SECTION, match_section),
    (COMPANY_DATE, match_company_date),
    (BULLET, match_bullet),
    (LABEL_VALUE, match_label_value),
    (JOB_TITLE, match_job_title),
    (BODY, match_body),
]


def classify_line(line: str, state: ClassifierState) -> ClassifiedLine:
    stripped = line.strip()
    for tag, rule in RULES:
        parts = rule(stripped, state)
        if parts is not None:
            return ClassifiedLine(tag=tag, text=stripped, parts=parts)
    return ClassifiedLine(tag=BODY, text=stripped, parts=(stripped,))


def split_lines(text: Any) -> list[str]:
    return str(text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")


def classify_lines(lines: Iterable[str]) -> list[ClassifiedLine]:
    state = ClassifierState()
    classified: list[ClassifiedLine] = []
    for line in lines:
        item = classify_line(str(line or ""), state)
        state.advance(item.tag)
        classified.append(item)
    return classified


def classify_text(text: Any) -> list[ClassifiedLine]:
    return classify_lines(split_lines(text))


# Structured profiles


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _items(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _records(value: Any) -> list[dict[str, Any]]:
    return [item for item in _items(value) if isinstance(item, dict)]


def _strings(value: Any) -> list[str]:
    return [text for text in (_text(item) for item in _items(value)) if text]


def _date_range(start: str, end: str) -> str:
    if start and end:
        return f"{start} – {end}"
    return start or end


def _joined(*values: str, sep: str = ", ") -> str:
    return sep.join(value for value in values if value)


def _experience_lines(entries: list[dict[str, Any]]) -> list[ClassifiedLine]:
    lines: list[ClassifiedLine] = []
    for entry in entries:
        company = _joined(_text(entry.get("company")), _text(entry.get("location")))
        dates = _date_range(_text(entry.get("startDate")), _text(entry.get("endDate")))
        title = _text(entry.get("title"))
        if company or dates:
            lines.append(ClassifiedLine(COMPANY_DATE, company, (company, dates)))
        if title:
            lines.append(ClassifiedLine(JOB_TITLE, title, (title,)))
        for bullet in _strings(entry.get("bullets")):
            lines.append(ClassifiedLine(BULLET, bullet, (bullet,)))
        lines.append(ClassifiedLine(BLANK))
    return lines


def _education_lines(entries: list[dict[str, Any]]) -> list[ClassifiedLine]:
    lines: list[ClassifiedLine] = []
    for entry in entries:
        school = _text(entry.get("school"))
        year = _text(entry.get("year"))
        degree = _text(entry.get("degree"))
        gpa = _text(entry.get("gpa"))
        if school or year:
            lines.append(ClassifiedLine(COMPANY_DATE, school, (school, year)))
        if degree:
            title = f"{degree} (GPA {gpa})" if gpa else degree
            lines.append(ClassifiedLine(JOB_TITLE, title, (title,)))
        elif gpa:
            lines.append(ClassifiedLine(BODY, f"GPA {gpa}", (f"GPA {gpa}",)))
    return lines


def _publication_text(entry: dict[str, Any]) -> str:
    text = _joined(_text(entry.get("title")), _text(entry.get("authors")), _text(entry.get("journal")))
    date = _text(entry.get("startDate"))
    if date:
        text = f"{text} ({date})" if text else date
    doi = _text(entry.get("doi"))
    if doi:
        text = f"{text}. DOI: {doi}" if text else f"DOI: {doi}"
    return text


def _honor_text(entry: dict[str, Any]) -> str:
    text = _joined(_text(entry.get("title")), _text(entry.get("issuer")))
    date = _text(entry.get("dateReceived"))
    return f"{text} ({date})" if text and date else text or date


def _certification_text(entry: dict[str, Any]) -> str:
    text = _joined(_text(entry.get("title")), _text(entry.get("certOrg")))
    date = _text(entry.get("certDate"))
    return f"{text} ({date})" if text and date else text or date


def _project_lines(entries: list[dict[str, Any]]) -> list[ClassifiedLine]:
    lines: list[ClassifiedLine] = []
    for entry in entries:
        title = _text(entry.get("title"))
        technologies = _text(entry.get("technologies"))
        heading = f"{title} [{technologies}]" if title and technologies else title or technologies
        if heading:
            lines.append(ClassifiedLine(JOB_TITLE, heading, (heading,)))
        description = _text(entry.get("description"))
        if description:
            lines.append(ClassifiedLine(BULLET, description, (description,)))
        for bullet in _strings(entry.get("bullets")):
            lines.append(ClassifiedLine(BULLET, bullet, (bullet,)))
    return lines


def _section(title: str, body: list[ClassifiedLine]) -> list[ClassifiedLine]:
    body = list(body)
    while body and body[-1].tag == BLANK:
        body.pop()
    if not body:
        return []
    return [ClassifiedLine(SECTION, title, (title,)), *body, ClassifiedLine(BLANK)]


def _bullets(values: list[str]) -> list[ClassifiedLine]:
    return [ClassifiedLine(BULLET, value, (value,)) for value in values if value]


def structured_lines(profile: Any) -> list[ClassifiedLine]:
    """Emit the formatter vocabulary for a structured profile, sections in fixed order."""
    data = profile if isinstance(profile, dict) else {}
    experience = _records(data.get("experience"))

    def category(name: str) -> list[dict[str, Any]]:
        return [entry for entry in experience if (_text(entry.get("category")) or "professional") == name]

    name = _text(data.get("fullName")) or _text(data.get("name")) or "Your Name"
    lines = [ClassifiedLine(NAME, name, (name,))]

    contact = [
        _text(data.get(key))
        for key in ("email", "phone", "location", "linkedin")
        if _text(data.get(key))
    ]
    if contact:
        lines.append(ClassifiedLine(CONTACT, " | ".join(contact), tuple(contact)))
    lines.append(ClassifiedLine(BLANK))

    summary = _text(data.get("summary"))
    if summary:
        lines += _section("SUMMARY", [ClassifiedLine(BODY, summary, (summary,))])

    lines += _section("EXPERIENCE", _experience_lines(category("professional")))
    lines += _section("LEADERSHIP", _experience_lines(category("leadership")))
    lines += _section("EDUCATION", _education_lines(_records(data.get("education"))))
    lines += _section("PUBLICATIONS", _bullets([_publication_text(entry) for entry in category("publication")]))
    lines += _section("HONORS & AWARDS", _bullets([_honor_text(entry) for entry in category("honor")]))

    certifications = [_certification_text(entry) for entry in category("certification")]
    certifications += _strings(data.get("certifications"))
    skills = _strings(data.get("skills"))
    skill_lines: list[ClassifiedLine] = []
    if certifications:
        value = ", ".join(item for item in certifications if item)
        skill_lines.append(ClassifiedLine(LABEL_VALUE, value, ("Certifications", value)))
    if skills:
        value = ", ".join(skills)
        skill_lines.append(ClassifiedLine(LABEL_VALUE, value, ("Skills", value)))
    lines += _section("CERTIFICATIONS & SKILLS", skill_lines)

    lines += _section("PROJECTS", _project_lines(category("project")))
    for custom in _records(data.get("customSections")):
        title = _text(custom.get("title")).upper()
        if title:
            lines += _section(title, _bullets(_strings(custom.get("items"))))
    return lines


# HTML rendering

DOCUMENT_CSS = """
@page { size: letter; margin: 0.5in 0.6in; }
* { box-sizing: border-box; }
body { font-family: "Times New Roman", Georgia, serif; font-size: 10.5pt; line-height: 1.3; color: #111; margin: 0; }
.page { max-width: 7.3in; margin: 0 auto; padding: 0.25in 0; }
.name { font-size: 20pt; font-weight: bold; text-align: center; text-transform: uppercase; letter-spacing: 1px; margin-bottom: 2pt; }
.contact { text-align: center; font-size: 10pt; margin-bottom: 6pt; }
.contact .sep { margin: 0 6pt; color: #555; }
.section-header { font-weight: bold; text-decoration: underline; text-transform: uppercase; font-size: 11pt; margin: 8pt 0 3pt; }
.row { display: flex; justify-content: space-between; align-items: baseline; margin-top: 3pt; }
.row .company { font-weight: bold; }
.row .dates { font-style: italic; white-space: nowrap; margin-left: 12pt; }
.job-title { font-style: italic; margin-bottom: 1pt; }
ul { margin: 1pt 0 3pt 0; padding-left: 16pt; }
li { margin: 0 0 1pt 0; }
p { margin: 0 0 3pt 0; }
.label { font-weight: bold; }
.spacer { height: 4pt; }
.letter p { margin: 0 0 10pt 0; font-size: 11pt; line-height: 1.45; }
@media print { .page { padding: 0; } }
"""


def render_lines_html(lines: Iterable[ClassifiedLine]) -> str:
    out: list[str] = []
    list_open = False

    def close_list() -> None:
        nonlocal list_open
        if list_open:
            out.append("</ul>")
            list_open = False

    for line in lines:
        if line.tag == BULLET:
            if not list_open:
                out.append("<ul>")
                list_open = True
            out.append(f"<li>{escape_html(line.parts[0] if line.parts else line.text)}</li>")
            continue

        close_list()
        if line.tag == BLANK:
            out.append('<div class="spacer"></div>')
        elif line.tag == NAME:
            out.append(f'<div class="name">{escape_html(line.text.upper())}</div>')
        elif line.tag == CONTACT:
            tokens = '<span class="sep">|</span>'.join(escape_html(token) for token in line.parts)
            out.append(f'<div class="contact">{tokens}</div>')
        elif line.tag == SECTION:
            out.append(f'<div class="section-header">{escape_html(line.text.upper())}</div>')
        elif line.tag == COMPANY_DATE:
            left, right = (tuple(line.parts) + ("", ""))[:2]
            out.append(
                f'<div class="row"><span class="company">{escape_html(left)}</span>'
                f'<span class="dates">{escape_html(right)}</span></div>'
            )
        elif line.tag == JOB_TITLE:
            out.append(f'<div class="job-title">{escape_html(line.text)}</div>')
        elif line.tag == LABEL_VALUE:
            label, value = (tuple(line.parts) + ("", ""))[:2]
            out.append(f'<p><span class="label">{escape_html(label)}:</span> {escape_html(value)}</p>')
        else:
            out.append(f"<p>{escape_html(line.text)}</p>")
    close_list()
    return "\n".join(out)


def wrap_document(body: str, title: str, extra_class: str = "") -> str:
    page_class = f"page {extra_class}".strip()
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n<head>\n<meta charset="utf-8">\n'
        f"<title>{escape_html(title or 'Resume')}</title>\n"
        f"<style>{DOCUMENT_CSS}</style>\n</head>\n"
        f'<body>\n<div class="{page_class}">\n{body}\n</div>\n</body>\n</html>\n'
    )


def cover_letter_paragraphs(text: Any) -> list[str]:
    paragraphs: list[str] = []
    current: list[str] = []
    for line in split_lines(text):
        stripped = line.strip()
        if stripped:
            current.append(stripped)
        elif current:
            paragraphs.append(" ".join(current))
            current = []
    if current:
        paragraphs.append(" ".join(current))
    return paragraphs


def render_text_html(text: Any, title: str = "Resume", doc_type: str = "resume") -> str:
    if doc_type == "cover_letter":
        body = "\n".join(f"<p>{escape_html(paragraph)}</p>" for paragraph in cover_letter_paragraphs(text))
        return wrap_document(body, title, "letter")
    return wrap_document(render_lines_html(classify_text(text)), title)


def render_structured_html(profile: Any, title: str | None = None) -> str:
    lines = structured_lines(profile)
    return wrap_document(render_lines_html(lines), title or f"{lines[0].text} Resume")
