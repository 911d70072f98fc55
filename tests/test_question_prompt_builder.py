from exam_paper.api.question_prompt_builder import (
    build_document_prompt,
    build_freeform_prompt,
    clamp_question_count,
    truncate_source_text,
)

META = {"className": "10", "subject": "Physics", "chapter": "Motion", "unit": "Unit 2"}


def test_document_prompt_includes_at_most_20000_source_chars() -> None:
    text = "§" * 50000
    prompt = build_document_prompt(text, META)
    assert prompt.count("§") == 20000
    assert "- Class: 10" in prompt
    assert "- Unit: Unit 2" in prompt
    assert prompt.rstrip().endswith("§")


def test_document_prompt_respects_smaller_limit() -> None:
    prompt = build_document_prompt("§" * 500, META, max_chars=100)
    assert prompt.count("§") == 100


def test_truncate_source_text_short_input_unchanged() -> None:
    assert truncate_source_text("abc") == "abc"
    assert truncate_source_text("abcdef", 3) == "abc"
    assert truncate_source_text(None) == ""  # type: ignore[arg-type]


def test_clamp_question_count() -> None:
    assert clamp_question_count(None) == 3
    assert clamp_question_count("") == 3
    assert clamp_question_count("abc") == 3
    assert clamp_question_count(0) == 3
    assert clamp_question_count(-2) == 3
    assert clamp_question_count(1) == 1
    assert clamp_question_count("4") == 4
    assert clamp_question_count(12) == 5
    assert clamp_question_count(2.5) == 2
    assert clamp_question_count("inf") == 3


def test_freeform_prompt_carries_context_and_clamped_count() -> None:
    prompt = build_freeform_prompt(" 8 ", "Biology", "Two MCQs on cells", 9)
    assert prompt.startswith("Generate exactly 5 exam questions for Class 8 Biology.")
    assert "Instructions: Two MCQs on cells" in prompt
    assert '"question": "Question text here"' in prompt
