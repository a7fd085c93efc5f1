"""Input validation for chat and upload requests.

Everything here runs before any model call is made.
"""
import re
from pathlib import PurePath
from typing import Optional, Sequence

from docqa import config
from docqa.errors import ValidationError
from docqa.rag.models import UploadedDocument

UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')


def validate_chat_input(
    question: Optional[str],
    model: Optional[str] = None,
    valid_models: Sequence[str] = None,
    max_length: int = None,
) -> str:
    """Validate a chat question and model choice.

    Returns:
        The stripped question

    Raises:
        ValidationError: Naming the offending field
    """
    valid_models = valid_models or config.VALID_MODELS
    max_length = max_length or config.MAX_QUESTION_LENGTH

    if not isinstance(question, str) or not question.strip():
        raise ValidationError("Question is required", field="question")

    if len(question) > max_length:
        raise ValidationError(
            f"Question too long. Maximum {max_length} characters allowed.",
            field="question",
        )

    if model is not None and model not in valid_models:
        raise ValidationError("Invalid model selected", field="model")

    return question.strip()


def file_extension(file_name: str) -> str:
    return PurePath(file_name).suffix.lower()


def validate_file(document: UploadedDocument, max_size: int = None) -> None:
    max_size = max_size or config.MAX_FILE_SIZE

    if document.size > max_size:
        raise ValidationError(
            f'File "{document.file_name}" is too large. '
            f"Maximum size is {max_size // (1024 * 1024)}MB.",
            field="files",
        )

    if document.size == 0:
        raise ValidationError(f'File "{document.file_name}" is empty.', field="files")

    if file_extension(document.file_name) not in config.ALLOWED_EXTENSIONS:
        raise ValidationError(
            f'File "{document.file_name}" has an unsupported format. '
            "Allowed: PDF, DOCX, TXT, MD.",
            field="files",
        )


def validate_upload(documents: Sequence[UploadedDocument], max_files: int = None) -> None:
    """Validate a whole upload batch before anything is processed.

    Raises:
        ValidationError: On the first rejected file or a bad batch size
    """
    max_files = max_files or config.MAX_FILES_PER_UPLOAD

    if not documents:
        raise ValidationError("No files uploaded.", field="files")

    if len(documents) > max_files:
        raise ValidationError(
            f"Too many files. Maximum {max_files} files allowed per upload.",
            field="files",
        )

    seen = set()
    for document in documents:
        if document.file_name in seen:
            raise ValidationError(
                f'File "{document.file_name}" appears more than once in this upload.',
                field="files",
            )
        seen.add(document.file_name)
        validate_file(document)


def sanitize_file_name(file_name: str) -> str:
    """Replace path separators and other dangerous characters."""
    cleaned = UNSAFE_FILENAME_CHARS.sub("_", file_name)
    cleaned = cleaned.replace("..", "_")
    return cleaned[:255]
