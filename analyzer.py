"""
analyzer.py - AI Analysis Module
Contains the NoduleAnalyzer class that sends CT scans and chat turns to Groq-hosted models
through the model cascade
"""

import base64
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from groq import AsyncGroq

from cascade import ModelCascade
from config import Settings
from report import parse_report

logger = logging.getLogger(__name__)

ANALYSIS_ENGINE = "Groq Vision AI"

VISION_PROMPT = """You are an AI medical imaging assistant specialized in pulmonary radiology.
Analyze this image and respond ONLY with a valid JSON object (no markdown, no extra text):

{
  "result": "<one of: 'Nodule Detected - Benign', 'Nodule Detected - Malignant', 'No Nodule Detected', 'Indeterminate - Further Evaluation Required'>",
  "confidence": <integer 60-98>,
  "riskLevel": "<one of: none, low, moderate, high>",
  "description": "<2-3 sentence clinical description>",
  "technicalDetails": {
    "noduleSize": "<e.g. '8.5 mm' or 'N/A'>",
    "location": "<e.g. 'Right Upper Lobe' or 'N/A'>",
    "shape": "<e.g. 'Round, well-defined' or 'N/A'>",
    "density": "<e.g. 'Solid', 'Ground-glass', 'Part-solid' or 'N/A'>"
  },
  "recommendations": ["<rec 1>","<rec 2>","<rec 3>","<rec 4>"],
  "imageQuality": "<one of: Good, Fair, Poor, Not a CT scan>",
  "findings": "<radiological findings 2-4 sentences based only on what is visible>"
}

If this is not a real CT scan (e.g., a regular photo or synthetic image), still analyze it fully and set imageQuality to 'Not a CT scan'."""

SYSTEM_INSTRUCTION = """You are a knowledgeable and empathetic medical information assistant for a Pulmonary Nodule Detection web application.

Help patients and healthcare professionals understand:
- Pulmonary (lung) nodules - what they are, types, causes
- The AI detection system and its limitations
- Medical terms in CT scan reports
- General lung health, prevention, lifestyle
- Next steps after nodule detection
- When to seek urgent medical care

Guidelines:
- Encourage consulting qualified medical professionals for actual diagnosis
- Never provide a personal diagnosis
- Be empathetic, clear, and use plain language (avoid jargon)
- Keep responses to 2-3 paragraphs max"""

# history roles accepted from the frontend, mapped to chat-completion roles
HISTORY_ROLES = {"user": "user", "assistant": "assistant", "model": "assistant"}


class AnalyzerNotConfigured(ValueError):
    """Raised when no usable Groq API key is configured."""


def image_mime_type(image_path: Path) -> str:
    return "image/png" if image_path.suffix.lower() == ".png" else "image/jpeg"


class NoduleAnalyzer:
    """
    Encapsulates all AI calls made by the service:
    1. CT scan analysis using a vision model cascade
    2. Chat replies using a chat model cascade
    """

    def __init__(self, settings: Settings, client=None):
        """
        Set up the Groq client and both model cascades

        Args:
            settings: Runtime settings (API key, model lists, timeout)
            client: Optional pre-built async client, used by tests

        Raises:
            AnalyzerNotConfigured: If no usable API key is configured
        """
        if client is None:
            if not settings.api_configured:
                raise AnalyzerNotConfigured(
                    "GROQ_API_KEY is not configured. Please add your API key to the .env file. "
                    "Get a FREE key at https://console.groq.com/keys"
                )
            try:
                # the cascade is the only retry policy, so the SDK must not retry 429s itself
                client = AsyncGroq(
                    api_key=settings.groq_api_key,
                    timeout=settings.request_timeout,
                    max_retries=0,
                )
            except Exception as e:
                raise AnalyzerNotConfigured(f"Failed to initialize Groq client: {e}")

        self.settings = settings
        self.client = client
        self.vision_cascade = ModelCascade(settings.vision_models)
        self.chat_cascade = ModelCascade(settings.chat_models)
        logger.info("Groq client initialized successfully")

    async def _get_groq_response(self, model: str, messages: list, temperature: float = 0.7, max_tokens: int = 1024) -> str:
        """Get a streamed response from one Groq model and join the chunks."""
        completion = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_completion_tokens=max_tokens,
            top_p=1,
            stream=True,
            stop=None,
        )
        response_text = ""
        async for chunk in completion:
            if not chunk.choices:
                continue
            content = getattr(chunk.choices[0].delta, "content", None)
            if content:
                response_text += content
        return response_text.strip()

    async def analyze_ct_scan(self, image_path) -> dict:
        """
        Analyze a CT scan image with the best available vision model

        Args:
            image_path: Path to the uploaded image

        Returns:
            Structured report from report.parse_report, plus processingTime,
            timestamp, modelVersion and analysisEngine

        Raises:
            CascadeExhaustedError: If every vision model was rate-limited or missing
            Exception: Any other Groq error, unmodified
        """
        start_time = time.perf_counter()
        image_path = Path(image_path)

        encoded = base64.b64encode(image_path.read_bytes()).decode("utf-8")
        data_url = f"data:{image_mime_type(image_path)};base64,{encoded}"
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": VISION_PROMPT},
                    {"type": "image_url", "image_url": {"url": data_url}},
                ],
            }
        ]

        logger.info("Starting vision analysis (cascade mode) for %s", image_path.name)

        async def generate(model: str) -> str:
            return await self._get_groq_response(model, messages, temperature=0.2, max_tokens=1024)

        text, model_name = await self.vision_cascade.invoke(generate)
        processing_time = round(time.perf_counter() - start_time, 2)
        logger.info("Analysis complete via %s (%.2fs)", model_name, processing_time)

        prediction = parse_report(text)
        prediction.update({
            "processingTime": processing_time,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "modelVersion": model_name,
            "analysisEngine": ANALYSIS_ENGINE,
        })
        return prediction

    async def get_chatbot_response(self, user_message: str, history: Optional[List[dict]] = None) -> str:
        """
        Get a chat reply from the best available chat model

        Args:
            user_message: The new question
            history: Prior turns as {"role": ..., "text": ...}; roles other than
                user/assistant/model are ignored

        Returns:
            Reply text
        """
        messages = [{"role": "system", "content": SYSTEM_INSTRUCTION}]
        for turn in history or []:
            role = HISTORY_ROLES.get(turn.get("role"))
            if role and turn.get("text"):
                messages.append({"role": role, "content": turn["text"]})
        messages.append({"role": "user", "content": user_message})

        async def chat(model: str) -> str:
            return await self._get_groq_response(model, messages, temperature=0.7, max_tokens=768)

        reply, model_name = await self.chat_cascade.invoke(chat)
        logger.info("Chatbot response via %s", model_name)
        return reply
