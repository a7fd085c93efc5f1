"""Text extraction for uploaded documents.

Handles:
- Plain text decoding
- Markdown with YAML front matter
- PDF and DOCX text layers
- Whitespace normalization
"""
import io
import zipfile
import re
from typing import Any, Dict, Tuple

import docx
from docx.opc.exceptions import PackageNotFoundError
import yaml
from pypdf import PdfReader
from pypdf.errors import PdfReadError
import structlog

from docqa.errors import ValidationError
from docqa.validation import file_extension

logger = structlog.get_logger()

# YAML front matter must be at the very start of the file
FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)

WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Collapse every whitespace run to one space and trim."""
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def split_frontmatter(content: str) -> Tuple[Dict[str, Any], str]:
    """Extract YAML front matter from markdown content.

    Args:
        content: Full markdown content

    Returns:
        Tuple of (frontmatter_dict, content_without_frontmatter)
    """
    match = FRONTMATTER_PATTERN.match(content)

    if not match:
        return {}, content

    yaml_content = match.group(1)
    try:
        frontmatter = yaml.safe_load(yaml_content) or {}
    except yaml.YAMLError as e:
        logger.warning(
            "frontmatter_parse_error",
            error=str(e),
            yaml_preview=yaml_content[:100],
        )
        frontmatter = {}

    if not isinstance(frontmatter, dict):
        frontmatter = {}

    return frontmatter, content[match.end() :]


def _decode(file_name: str, data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        logger.error("text_decode_failed", file_name=file_name, error=str(e))
        raise ValidationError(
            f'File "{file_name}" is not valid UTF-8 text.', field="files"
        ) from e


def _extract_pdf(file_name: str, data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    except PdfReadError as e:
        logger.error("pdf_extraction_failed", file_name=file_name, error=str(e))
        raise ValidationError(
            f'File "{file_name}" could not be read as PDF.', field="files"
        ) from e


def _extract_docx(file_name: str, data: bytes) -> str:
    try:
        document = docx.Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        logger.error("docx_extraction_failed", file_name=file_name, error=str(e))
        raise ValidationError(
            f'File "{file_name}" could not be read as DOCX.', field="files"
        ) from e
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def extract_text(file_name: str, data: bytes) -> str:
    """Extract raw text from an uploaded file, dispatching on its extension.

    Raises:
        ValidationError: If the format is unsupported or the file is unreadable
    """
    extension = file_extension(file_name)

    if extension == ".pdf":
        text = _extract_pdf(file_name, data)
    elif extension == ".docx":
        text = _extract_docx(file_name, data)
    elif extension == ".md":
        frontmatter, text = split_frontmatter(_decode(file_name, data))
        if frontmatter:
            logger.debug(
                "frontmatter_stripped",
                file_name=file_name,
                fields=sorted(frontmatter),
            )
    elif extension == ".txt":
        text = _decode(file_name, data)
    else:
        raise ValidationError(
            f'File "{file_name}" has an unsupported format.', field="files"
        )

    logger.info(
        "text_extracted",
        file_name=file_name,
        file_type=extension,
        content_length=len(text),
    )

    return text
