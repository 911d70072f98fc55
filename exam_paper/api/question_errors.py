from __future__ import annotations

from typing import Optional


class QuestionPipelineError(Exception):
    """Failure of the document or teacher-AI question pipeline.

    ``detail`` is always safe to show to the caller as-is.
    """

    status_code = 500
    default_detail = "question_pipeline_error"

    def __init__(self, detail: str = "", *, status_code: Optional[int] = None):
        text = str(detail or self.default_detail)
        super().__init__(text)
        self.detail = text
        if status_code is not None:
            self.status_code = int(status_code)


class InvalidQuestionRequestError(QuestionPipelineError):
    status_code = 400
    default_detail = "invalid_request"


class NoQuestionsExtractedError(QuestionPipelineError):
    status_code = 422
    default_detail = "AI returned 0 questions. The document might not contain enough relevant text."


class QuestionNotFoundError(QuestionPipelineError):
    status_code = 404
    default_detail = "Question not found"


class UnsupportedFormatError(QuestionPipelineError):
    status_code = 400
    default_detail = "Unsupported file type. Use PDF, DOCX, or TXT."


class ExtractionFailedError(QuestionPipelineError):
    default_detail = "Failed to extract text from the uploaded document."


class DocumentTooSparseError(QuestionPipelineError):
    default_detail = (
        "Document text is too short or empty. Use a text-based PDF/DOCX (not scanned images)."
    )


class MissingCredentialError(QuestionPipelineError):
    default_detail = "OpenRouter API Key is missing in environment variables."


class UpstreamError(QuestionPipelineError):
    status_code = 502
    default_detail = "AI Generation failed via OpenRouter."


class MalformedUpstreamResponseError(UpstreamError):
    default_detail = "Invalid response from OpenRouter."


class InvalidAIResponseError(QuestionPipelineError):
    status_code = 502
    default_detail = "Invalid JSON received from AI"


class GenerationFailedError(QuestionPipelineError):
    default_detail = "AI Generation Failed"


class DailyLimitExceededError(QuestionPipelineError):
    status_code = 429
    default_detail = "Daily AI generation limit reached. Please try again tomorrow."


class DuplicateQuestionError(QuestionPipelineError):
    status_code = 409
    default_detail = "question_already_exists"


__all__ = [
    "QuestionPipelineError",
    "InvalidQuestionRequestError",
    "NoQuestionsExtractedError",
    "QuestionNotFoundError",
    "UnsupportedFormatError",
    "ExtractionFailedError",
    "DocumentTooSparseError",
    "MissingCredentialError",
    "UpstreamError",
    "MalformedUpstreamResponseError",
    "InvalidAIResponseError",
    "GenerationFailedError",
    "DailyLimitExceededError",
    "DuplicateQuestionError",
]
