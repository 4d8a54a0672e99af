import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
import logging
import os
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

STORE_ASSISTANT_PROMPT = """You are a helpful assistant for Ghazal Library, an online store selling books and stationery supplies (pens, pencils, rulers, erasers, notebooks, etc.).

Your responsibilities:
- Help customers find products they're looking for
- Answer questions about books, stationery, and school supplies
- Provide recommendations based on customer needs
- Assist with general inquiries about the store
- Be friendly, professional, and concise

If asked about specific product availability or prices, suggest checking the Products page for current inventory. Keep responses brief and helpful."""

PDF_EXTRACTION_PROMPT = (
    "Extract and return ONLY the text content from this PDF document. "
    "Do not add any commentary, headers, or formatting. Just return the raw text "
    "content that would be suitable for converting to an audiobook. If you cannot "
    "read the document, return an error message starting with 'ERROR:'."
)

PDF_EXTRACTION_MAX_TOKENS = 16000


class AssistantError(Exception):
    """The language model could not produce an answer."""


class AssistantNotConfigured(AssistantError):
    pass


class AssistantRateLimited(AssistantError):
    pass


class AIAssistantService:
    def __init__(self, api_key: Optional[str] = None, model_name: str = GEMINI_MODEL):
        self.api_key = api_key or GEMINI_API_KEY
        self.model_name = model_name
        self.is_available = bool(self.api_key)
        if self.is_available:
            genai.configure(api_key=self.api_key)
        else:
            logger.warning("GEMINI_API_KEY is not configured; assistant features are disabled")

    def _model(self, system_instruction: Optional[str] = None):
        if not self.is_available:
            raise AssistantNotConfigured("GEMINI_API_KEY is not configured")
        return genai.GenerativeModel(self.model_name, system_instruction=system_instruction)

    @staticmethod
    def _to_contents(messages: List[Dict[str, str]]) -> List[Dict[str, Any]]:
        """Map chat-completions style roles onto Gemini's user/model roles."""
        return [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [m["content"]],
            }
            for m in messages
        ]

    def _generate(self, model, contents, **kwargs) -> str:
        try:
            response = model.generate_content(contents, **kwargs)
        except google_exceptions.ResourceExhausted as e:
            logger.warning("Gemini rate limit hit: %s", e)
            raise AssistantRateLimited(str(e)) from e
        except google_exceptions.GoogleAPIError as e:
            logger.error("Gemini API error: %s", e)
            raise AssistantError(str(e)) from e

        try:
            return (response.text or "").strip()
        except ValueError as e:
            # .text raises when the candidate was blocked or empty
            logger.error("Gemini returned no usable text: %s", e)
            raise AssistantError("The model returned no text") from e

    def chat(self, messages: List[Dict[str, str]]) -> str:
        """Answer a storefront conversation."""
        model = self._model(system_instruction=STORE_ASSISTANT_PROMPT)
        reply = self._generate(model, self._to_contents(messages))
        return reply or "I couldn't generate a response."

    def extract_pdf_text(self, pdf_bytes: bytes) -> str:
        """Read a PDF (including scanned pages) through the multimodal model."""
        model = self._model()
        logger.info("Sending %d byte PDF to %s for text extraction", len(pdf_bytes), self.model_name)
        text = self._generate(
            model,
            [{"mime_type": "application/pdf", "data": pdf_bytes}, PDF_EXTRACTION_PROMPT],
            generation_config={"max_output_tokens": PDF_EXTRACTION_MAX_TOKENS},
        )
        if text.startswith("ERROR:"):
            raise AssistantError(text)
        return text


# Global AI service instance
ai_service = AIAssistantService()
