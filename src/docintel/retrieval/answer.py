"""Answer composition - retrieval-augmented generation over the index.

Query flow:
1. Validate the question
2. Embed it and run a hybrid search
3. Keep hits at or above the similarity threshold
4. Build a source-labelled prompt and generate
5. Score confidence and format the cited sources

When nothing relevant survives the threshold a canned answer is returned
and the generation capability is never called.
"""

from typing import Optional

from docintel.config import settings
from docintel.errors import ValidationError
from docintel.logging_config import get_logger
from docintel.models import QueryResponse, SearchResult, Source
from docintel.pipeline.stage_embed import EmbeddingGateway
from docintel.retrieval.generation import GenerationCapability
from docintel.retrieval.search import RetrievalEngine

logger = get_logger(__name__)

NO_RESULTS_ANSWER = (
    "I could not find any relevant documents to answer your question. "
    "Please try rephrasing your question or ensure that relevant documents "
    "have been uploaded and processed."
)

INSUFFICIENT_SOURCES = (
    "The provided documents don't contain sufficient information to answer this question"
)

PROMPT_TEMPLATE = """You are a helpful AI assistant answering questions based on provided document excerpts.

Guidelines:
- Answer directly and concisely
- Use information ONLY from the provided sources
- Cite sources using [S1], [S2], etc.
- If the sources don't contain enough information, say "{insufficient}"
- Keep your answer under {max_words} words
- Be precise and factual

Sources:
{sources}

Question: {question}

Answer:"""


class AnswerComposer:
    """Stateless RAG pipeline: one call per question."""

    def __init__(
        self,
        embedder: EmbeddingGateway,
        retriever: RetrievalEngine,
        generator: GenerationCapability,
        top_k: Optional[int] = None,
        similarity_threshold: Optional[float] = None,
        max_question_length: Optional[int] = None,
        max_answer_words: Optional[int] = None,
        preview_chars: Optional[int] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        """Initialize composer.

        Args:
            embedder: Embeds the question.
            retriever: Searches the vector index.
            generator: Produces the answer text.
            top_k: Hits requested from the index.
            similarity_threshold: Minimum score for a hit to be used.
            max_question_length: Longest accepted question, in characters.
            max_answer_words: Length cap stated in the prompt.
            preview_chars: Length of each source's content preview.
            temperature: Generation temperature.
            max_tokens: Generation token cap.
        """
        self.embedder = embedder
        self.retriever = retriever
        self.generator = generator
        self.top_k = top_k or settings.search_top_k
        self.similarity_threshold = (
            settings.similarity_threshold
            if similarity_threshold is None
            else similarity_threshold
        )
        self.max_question_length = max_question_length or settings.max_question_length
        self.max_answer_words = max_answer_words or settings.max_answer_words
        self.preview_chars = preview_chars or settings.source_preview_chars
        self.temperature = (
            settings.generation_temperature if temperature is None else temperature
        )
        self.max_tokens = max_tokens or settings.generation_max_tokens

    def answer(self, question: str, document_id: Optional[str] = None) -> QueryResponse:
        """Answer a question from indexed documents.

        Args:
            question: Natural-language question.
            document_id: Restrict retrieval to one document.

        Returns:
            Answer with cited sources and a confidence in [0, 1].

        Raises:
            ValidationError: If the question is empty or too long.
            UpstreamUnavailable: If embedding or generation fails.
        """
        question = self.validate_question(question)
        log = logger.bind(document_id=document_id)

        vector = self.embedder.embed(question)

        filters = {"document_id": document_id} if document_id else None
        hits = self.retriever.hybrid_search(vector, question, self.top_k, filters=filters)
        if document_id:
            hits = [h for h in hits if h.document_id == document_id]

        relevant = [h for h in hits if h.similarity_score >= self.similarity_threshold]
        log.info(
            "query_retrieval_completed",
            retrieved=len(hits),
            relevant=len(relevant),
            threshold=self.similarity_threshold,
        )

        if not relevant:
            return QueryResponse(answer=NO_RESULTS_ANSWER, sources=[], confidence=0.0)

        prompt = self.build_prompt(question, relevant)
        answer = self.generator.generate(
            prompt, max_tokens=self.max_tokens, temperature=self.temperature
        )

        # Single best match; see DESIGN.md for the open question on blending
        confidence = min(max(h.similarity_score for h in relevant), 1.0)

        response = QueryResponse(
            answer=answer,
            sources=self.format_sources(relevant),
            confidence=confidence,
        )
        log.info("query_answered", sources=len(response.sources), confidence=confidence)
        return response

    def validate_question(self, question: Optional[str]) -> str:
        """Return the trimmed question or raise ValidationError."""
        if question is None or not question.strip():
            raise ValidationError("question", "Question is required")
        question = question.strip()
        if len(question) > self.max_question_length:
            raise ValidationError(
                "question",
                f"Question must be {self.max_question_length} characters or less",
            )
        return question

    def build_prompt(self, question: str, results: list[SearchResult]) -> str:
        """Build the generation prompt with sources labelled S1..Sn in order."""
        blocks = []
        for i, result in enumerate(results, start=1):
            page = result.page_number
            header = f"[S{i}] (Page {page})" if page is not None else f"[S{i}]"
            blocks.append(f"{header}: {result.content}")

        return PROMPT_TEMPLATE.format(
            insufficient=INSUFFICIENT_SOURCES,
            max_words=self.max_answer_words,
            sources="\n\n".join(blocks),
            question=question,
        )

    def format_sources(self, results: list[SearchResult]) -> list[Source]:
        return [
            Source(
                id=f"S{i}",
                similarity=round(result.similarity_score, 2),
                page_number=result.page_number,
                content=result.content[: self.preview_chars],
            )
            for i, result in enumerate(results, start=1)
        ]
