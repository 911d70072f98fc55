from __future__ import annotations

from typing import Any, Mapping

DOCUMENT_SOURCE_MAX_CHARS = 20000
FREEFORM_MAX_COUNT = 5
FREEFORM_DEFAULT_COUNT = 3


def truncate_source_text(text: str, limit: int = DOCUMENT_SOURCE_MAX_CHARS) -> str:
    value = str(text or "")
    if len(value) <= limit:
        return value
    return value[:limit]


def clamp_question_count(value: Any, default: int = FREEFORM_DEFAULT_COUNT, upper: int = FREEFORM_MAX_COUNT) -> int:
    try:
        count = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        count = 0
    if count <= 0:
        count = default
    return max(1, min(upper, count))


def _meta_value(meta: Mapping[str, Any], key: str) -> str:
    return str(meta.get(key) or "").strip()


def build_document_prompt(
    text: str,
    meta: Mapping[str, Any],
    *,
    max_chars: int = DOCUMENT_SOURCE_MAX_CHARS,
) -> str:
    class_name = _meta_value(meta, "className")
    subject = _meta_value(meta, "subject")
    chapter = _meta_value(meta, "chapter")
    unit = _meta_value(meta, "unit")
    material = truncate_source_text(text, min(max_chars, DOCUMENT_SOURCE_MAX_CHARS))
    return (
        "You are an expert exam setter. Your goal is to generate high-quality exam questions "
        "based on the provided material.\n"
        "\n"
        "Context:\n"
        f"- Class: {class_name}\n"
        f"- Subject: {subject}\n"
        f"- Chapter: {chapter}\n"
        f"- Unit: {unit}\n"
        "\n"
        "Instructions:\n"
        '1. Analyze the "Raw Material" below.\n'
        "2. Extract concepts, definitions, and facts.\n"
        "3. Generate a set of questions (approx 5-10) covering these concepts.\n"
        "4. VARIETY: Generate a mix of 60% MCQs, 30% Short Answers, and 10% Long Answers.\n"
        "5. If the text is sparse or unclear, use the Chapter/Unit metadata to generate topically "
        "relevant questions. NEVER return an empty array.\n"
        "\n"
        "Output Format (Strict JSON array, no prose before or after it):\n"
        "[\n"
        "  {\n"
        '    "text": "Question content...",\n'
        '    "type": "MCQ | SHORT | LONG",\n'
        '    "options": ["A", "B", "C", "D"],\n'
        '    "answer": "Correct Answer",\n'
        f'    "className": "{class_name}",\n'
        f'    "subject": "{subject}",\n'
        f'    "chapter": "{chapter}",\n'
        f'    "unit": "{unit}"\n'
        "  }\n"
        "]\n"
        "Options are required for MCQs and must be an empty list for SHORT and LONG questions.\n"
        "\n"
        "Raw Material:\n"
        f"{material}\n"
    )


def build_freeform_prompt(class_name: str, subject: str, instruction: str, count: Any) -> str:
    requested = clamp_question_count(count)
    return (
        f"Generate exactly {requested} exam questions for Class {str(class_name or '').strip()} "
        f"{str(subject or '').strip()}.\n"
        f"Instructions: {str(instruction or '').strip()}\n"
        "\n"
        "IMPORTANT: Follow the instruction's requested question type (MCQ, Short, or Long).\n"
        "Respond ONLY with a valid JSON array of objects. No intro, no outro.\n"
        "Format:\n"
        "[\n"
        "  {\n"
        '    "type": "MCQ or SHORT or LONG",\n'
        '    "question": "Question text here",\n'
        '    "options": ["Option 1", "Option 2", "Option 3", "Option 4"],\n'
        '    "answer": "Option 1"\n'
        "  }\n"
        "]\n"
    )
