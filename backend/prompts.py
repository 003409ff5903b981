"""System prompts and user-message builders for every AI feature."""

from __future__ import annotations

from typing import Any


def cap_text(value: Any, limit: int) -> str:
    text = str(value or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip()


def _block(label: str, value: str) -> str:
    return f"{label}:\n---\n{value}\n---"


ATS_SCORE_SYSTEM = """You are an expert ATS (Applicant Tracking System) analyst.
Score the resume for how well it will pass automated screening and how well it fits the job description when one is given.
When no job description is given, score general ATS readiness (structure, section headers, keywords, quantified impact).

Respond with ONLY valid JSON in this exact structure:
{
  "score": <integer 0-100>,
  "summary": "<2-3 sentences explaining the score>",
  "matchedKeywords": [<keywords present in both resume and job description>],
  "missingKeywords": [<important job description keywords missing from the resume>],
  "strengths": [<3-5 specific strengths>],
  "improvements": [<3-5 specific, actionable fixes>],
  "formattingIssues": [<ATS formatting problems, empty list if none>]
}"""

TAILOR_RESUME_SYSTEM = """You are a senior resume writer who tailors resumes to a specific job.
Rewrite the resume so it targets the job description while staying strictly factual:
never invent employers, titles, dates, degrees, or metrics that are not in the original.
Use standard ALL-CAPS section headers (SUMMARY, EXPERIENCE, EDUCATION, SKILLS).
Put each company on its own line followed by two or more spaces and the date range, then the job title on the next line, then bullets starting with "• ".

Respond with ONLY valid JSON in this exact structure:
{
  "tailoredResume": "<the full tailored resume as plain text>",
  "changes": [<short descriptions of the main edits>],
  "keywordsAdded": [<job description keywords worked into the resume>],
  "matchScoreBefore": <integer 0-100>,
  "matchScoreAfter": <integer 0-100>
}"""

PARSE_RESUME_SYSTEM = """You extract structured data from resume text.
Only use information that is explicitly present. Never guess or fabricate: use null for missing single values and [] for missing lists.

Respond with ONLY valid JSON in this exact structure:
{
  "fullName": "<string>",
  "email": <string or null>,
  "phone": <string or null>,
  "location": <string or null>,
  "linkedin": <string or null>,
  "summary": <string or null>,
  "experience": [
    {"title": "<string>", "company": "<string>", "startDate": "<string>", "endDate": "<string>", "location": <string or null>, "bullets": [<strings>]}
  ],
  "education": [
    {"degree": "<string>", "school": "<string>", "year": "<string>", "gpa": <string or null>}
  ],
  "skills": [<strings>],
  "certifications": [<strings>]
}"""

ENHANCE_BULLET_SYSTEM = """You rewrite a single resume bullet point so it is stronger.
Lead with a strong action verb, keep it to one sentence under 30 words, and emphasise impact.
Keep every fact from the original; do not invent numbers, tools, or outcomes that are not stated.
Return ONLY the rewritten bullet as plain text, without quotes or a leading bullet symbol."""

GENERATE_RESUME_SYSTEM = """You write complete, ATS-friendly resumes as plain text.
Use only the facts provided; never invent employers, titles, dates, or metrics.
Layout rules:
- First line: the candidate's name (or "YOUR NAME" if not provided).
- Second line: contact details separated by " | " when provided.
- Section headers in ALL CAPS on their own line (SUMMARY, EXPERIENCE, EDUCATION, SKILLS, CERTIFICATIONS).
- Each role: company, two or more spaces, date range on one line; job title on the next line; bullets starting with "• ".
- Skill lines may use "Skills: ...", "Tools: ...", "Languages: ..." labels.
Return only the resume text."""

GENERATE_COVER_LETTER_SYSTEM = """You write concise, specific cover letters as plain text.
Use only the facts provided; never invent employers, titles, or achievements.
Three to four short paragraphs, a greeting line and a sign-off. Match the requested tone.
Return only the letter text."""

INTERVIEW_PREP_SYSTEM = """You are an experienced interview coach.
Prepare a candidate for an interview for the given role and company.

Respond with ONLY valid JSON in this exact structure:
{
  "companyBrief": {"overview": "<string>", "culture": "<string>", "recentNews": [<strings>]},
  "behavioral": [{"question": "<string>", "tip": "<string>", "sampleAnswer": "<string>"}],
  "technical": [{"question": "<string>", "tip": "<string>"}],
  "questionsToAsk": [<strings>],
  "formatTips": [<strings>],
  "salary": {"range": "<string>", "negotiationTips": [<strings>]}
}
If you do not know something about the company, say so rather than inventing facts."""


def ats_score_message(resume_content: str, job_description: str | None) -> str:
    parts = [_block("RESUME", cap_text(resume_content, 12000))]
    jd = cap_text(job_description, 6000)
    if jd:
        parts.append(_block("JOB DESCRIPTION", jd))
    else:
        parts.append("No job description provided. Score general ATS readiness.")
    return "\n\n".join(parts)


def tailor_resume_message(current_resume: str, job_description: str) -> str:
    return "\n\n".join(
        [
            _block("CURRENT RESUME", cap_text(current_resume, 12000)),
            _block("JOB DESCRIPTION", cap_text(job_description, 6000)),
        ]
    )


def parse_resume_message(resume_text: str) -> str:
    return _block("RESUME TEXT", cap_text(resume_text, 20000))


def enhance_bullet_message(
    bullet: str,
    job_title: str | None = None,
    company: str | None = None,
    target_role: str | None = None,
    all_bullets: list[str] | None = None,
) -> str:
    lines = [f"Bullet to improve: {cap_text(bullet, 500)}"]
    if job_title:
        lines.append(f"Role: {cap_text(job_title, 200)}")
    if company:
        lines.append(f"Company: {cap_text(company, 200)}")
    if target_role:
        lines.append(f"Target role: {cap_text(target_role, 200)}")
    others = [cap_text(item, 300) for item in (all_bullets or []) if str(item or "").strip()]
    if others:
        context = cap_text("\n".join(f"- {item}" for item in others), 2000)
        lines.append(f"Other bullets for this role (avoid repeating them):\n{context}")
    return "\n".join(lines)


GENERATE_FIELD_CAPS = [
    ("jobTitle", "Target job title", 200),
    ("company", "Target company", 200),
    ("industry", "Industry", 100),
    ("tone", "Tone", 50),
    ("jobDescription", "Job description", 6000),
    ("experience", "Experience", 8000),
    ("skills", "Skills", 2000),
    ("education", "Education", 2000),
    ("publications", "Publications", 3000),
    ("projects", "Projects", 3000),
    ("honors", "Honors and awards", 2000),
    ("certificationsList", "Certifications", 2000),
    ("highlights", "Highlights to emphasise", 2000),
]


def generate_message(fields: dict[str, Any]) -> str:
    sections: list[str] = []
    for key, label, limit in GENERATE_FIELD_CAPS:
        value = cap_text(fields.get(key), limit)
        if value:
            sections.append(f"{label}:\n{value}")
    return "\n\n".join(sections)


def interview_prep_message(job_title: str, company: str | None, job_description: str | None, mode: str) -> str:
    lines = [f"Role: {cap_text(job_title, 200)}"]
    if company:
        lines.append(f"Company: {cap_text(company, 200)}")
    jd = cap_text(job_description, 6000)
    if jd:
        lines.append(_block("JOB DESCRIPTION", jd))
    if mode == "quick":
        lines.append("Keep it brief: at most 3 behavioral and 3 technical questions.")
    else:
        lines.append("Be thorough: 6-8 behavioral and 6-8 technical questions.")
    return "\n\n".join(lines)
