"""
LLM utility.

Single chat-completion interface consumed by the analysis engine.
"""

import logging
from typing import Dict
import google.generativeai as genai

logger = logging.getLogger(__name__)


class ChatModel:
    """
    Chat-completion contract: system instruction + user prompt in, free text out.

    The returned text is expected, but not guaranteed, to be a JSON object.
    """

    model_name: str = "unknown"

    async def complete(
        self,
        system_instruction: str,
        prompt: str,
        temperature: float,
        max_tokens: int
    ) -> str:
        raise NotImplementedError


class GeminiChatModel(ChatModel):
    """
    Gemini-backed chat model.

    One GenerativeModel is kept per system instruction, since Gemini binds the
    instruction at model construction.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-1.5-flash",
        json_mode: bool = True
    ):
        """
        Initialize chat model.

        Args:
            api_key: Google API key
            model_name: Gemini model to use
            json_mode: Ask Gemini for application/json responses
        """
        self.model_name = model_name
        self.json_mode = json_mode
        self._models: Dict[str, genai.GenerativeModel] = {}

        # Configure Gemini
        genai.configure(api_key=api_key)

        logger.info(f"Initialized GeminiChatModel with model={model_name}, json_mode={json_mode}")

    def _model_for(self, system_instruction: str) -> genai.GenerativeModel:
        model = self._models.get(system_instruction)
        if model is None:
            model = genai.GenerativeModel(
                model_name=self.model_name,
                system_instruction=system_instruction
            )
            self._models[system_instruction] = model
        return model

    async def complete(
        self,
        system_instruction: str,
        prompt: str,
        temperature: float,
        max_tokens: int
    ) -> str:
        """
        Run one completion.

        Raises:
            ValueError: If Gemini returns no text (e.g. blocked response)
        """
        generation_config = {
            "temperature": temperature,
            "max_output_tokens": max_tokens,
        }
        if self.json_mode:
            generation_config["response_mime_type"] = "application/json"

        response = await self._model_for(system_instruction).generate_content_async(
            prompt,
            generation_config=generation_config
        )

        text = response.text
        if not text:
            raise ValueError("Empty response from Gemini")
        return text
