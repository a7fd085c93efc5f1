"""Question answering over the document store.

`answer` runs strictly in sequence: validate, retrieve, assemble the
prompt, generate, record the turn. Validation happens before any model call.
"""
from typing import Any, Dict, List, Optional, Sequence
import structlog

from docqa import config
from docqa.llm_client import GenerationProvider
from docqa.memory.history import ConversationHistory
from docqa.rag.models import ConversationMessage, ScoredFragment
from docqa.rag.prompts import PROMPT_STYLES, build_prompt
from docqa.rag.retriever import Retriever, build_context
from docqa.validation import validate_chat_input

logger = structlog.get_logger()

NO_DOCUMENTS_ANSWER = (
    "I don't have any documents to reference. Please upload some documents first."
)
SIMILARITY_NOT_AVAILABLE = "N/A"


def format_similarity(similarity: Optional[float]) -> str:
    if similarity is None or similarity != similarity:  # None or NaN
        return SIMILARITY_NOT_AVAILABLE
    return f"{similarity:.3f}"


def preview(text: str, limit: int = None) -> str:
    limit = limit or config.SOURCE_PREVIEW_CHARS
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def format_sources(results: Sequence[ScoredFragment]) -> List[Dict[str, str]]:
    return [
        {
            "text": preview(result.fragment.text),
            "fileName": result.fragment.metadata.file_name,
            "similarity": format_similarity(result.similarity),
        }
        for result in results
    ]


class RetrievalOrchestrator:
    """Composes retrieval, prompting, generation and history."""

    def __init__(
        self,
        retriever: Retriever,
        generator: GenerationProvider,
        history: ConversationHistory,
        valid_models: Sequence[str] = None,
        default_model: str = None,
        prompt_style: str = None,
        history_messages: int = None,
    ):
        """Initialize the orchestrator.

        Args:
            retriever: Fragment retriever
            generator: Generation provider
            history: Process-wide conversation history
            valid_models: Allow-list of generation models (default from config)
            default_model: Model used when the caller names none (default from config)
            prompt_style: "full" or "basic" (default from config)
            history_messages: Prior messages rendered into the prompt (default from config)
        """
        self.retriever = retriever
        self.generator = generator
        self.history = history
        self.valid_models = list(valid_models or config.VALID_MODELS)
        self.default_model = default_model or config.CHAT_MODEL
        self.prompt_style = prompt_style or config.PROMPT_STYLE
        self.history_messages = (
            config.PROMPT_HISTORY_MESSAGES if history_messages is None else history_messages
        )

        if self.prompt_style not in PROMPT_STYLES:
            raise ValueError(f"Unknown prompt style '{self.prompt_style}'")

    async def answer(
        self,
        question: str,
        model: Optional[str] = None,
        prior_history: Optional[Sequence[ConversationMessage]] = None,
    ) -> Dict[str, Any]:
        """Answer a question from the stored documents.

        Args:
            question: The user's question
            model: Generation model (must be in the allow-list)
            prior_history: Prior turns supplied by the caller; None means
                "use the process-wide history"

        Returns:
            {"answer": str, "sources": [{"text", "fileName", "similarity"}]}

        Raises:
            ValidationError: For a bad question or model, before any model call
            ModelNotFoundError, ProviderTimeoutError, InternalError: From generation
        """
        model = model or self.default_model
        question = validate_chat_input(question, model, valid_models=self.valid_models)

        results = await self.retriever.retrieve(question)

        if prior_history is None:
            has_history = len(self.history) > 0
            recent = self.history.recent(self.history_messages)
        else:
            prior_history = list(prior_history)
            has_history = bool(prior_history)
            recent = prior_history[-self.history_messages :] if self.history_messages else []

        if not results and not has_history:
            logger.info("no_documents_short_circuit", question_length=len(question))
            return {"answer": NO_DOCUMENTS_ANSWER, "sources": []}

        prompt = build_prompt(
            question,
            build_context(results),
            history=recent,
            style=self.prompt_style,
        )

        logger.info(
            "generation_started",
            model=model,
            sources=len(results),
            history_messages=len(recent),
            prompt_length=len(prompt),
        )

        answer = await self.generator.generate(model, prompt)

        self.history.extend(
            [
                ConversationMessage(role="user", content=question),
                ConversationMessage(role="assistant", content=answer),
            ]
        )

        logger.info(
            "answer_completed",
            model=model,
            answer_length=len(answer),
            sources=len(results),
        )

        return {"answer": answer, "sources": format_sources(results)}
