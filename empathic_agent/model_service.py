import logging
from typing import Any, Dict, List, Optional

import requests

from .errors import BackendCallFailure
from .models import ConversationMessage, EmotionContext

logger = logging.getLogger(__name__)

NO_SPEECH_MARKER = "[no speech detected]"


class ModelService:
    """Client of the speech-to-text model server."""

    def __init__(self, base_url: str, timeout: Optional[float] = 30.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def transcribe(self, audio_path: str, language: Optional[str] = None) -> str:
        """Transcribe a WAV file the server can read. Returns "" on failure."""
        payload = {"audio_path": audio_path}
        if language:
            payload["language"] = language.split("-")[0]
        try:
            response = requests.post(
                f"{self.base_url}/transcribe",
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            text = (response.json().get("text") or "").strip()
        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            return ""

        if text == NO_SPEECH_MARKER:
            return ""
        return text


def build_emotion_context(context: EmotionContext) -> Dict[str, Any]:
    facial = context.facial
    vocal = context.vocal
    return {
        "facial": (
            {"emotion": facial.label, "confidence": facial.confidence}
            if facial is not None else None
        ),
        "voice": (
            {
                "emotion": vocal.label,
                "confidence": vocal.confidence,
                "metrics": vocal.features.to_metrics(),
            }
            if vocal is not None else None
        ),
    }


class ChatBackendClient:
    """
    Client of the chat completion backend.

    The backend receives the user's text together with the current emotion
    context and the recent conversation, and answers with reply text.
    """

    def __init__(self, base_url: str, token: Optional[str] = None,
                 timeout: Optional[float] = None, endpoint: str = "chat-ai"):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the backend functions
            token: Optional bearer token
            timeout: Request timeout in seconds; None waits indefinitely
            endpoint: Path of the chat function
        """
        self.url = f"{base_url.rstrip('/')}/{endpoint}"
        self.token = token
        self.timeout = timeout

    def build_payload(self, message: str, emotion_context: EmotionContext,
                      history: List[ConversationMessage], provider: str,
                      model: str, system_prompt: Optional[str] = None) -> Dict[str, Any]:
        return {
            "message": message,
            "emotionContext": build_emotion_context(emotion_context),
            "conversationHistory": [
                {"role": m.role, "content": m.content} for m in history
            ],
            "provider": provider,
            "model": model,
            "systemPrompt": system_prompt,
        }

    def chat(self, message: str, emotion_context: EmotionContext,
             history: List[ConversationMessage], provider: str,
             model: str, system_prompt: Optional[str] = None) -> str:
        """
        Send one message and return the assistant's reply.

        Raises:
            BackendCallFailure: Transport error, error status or malformed reply
        """
        payload = self.build_payload(message, emotion_context, history,
                                     provider, model, system_prompt)
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = requests.post(self.url, json=payload, headers=headers,
                                     timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Chat backend request error: {e}")
            raise BackendCallFailure(f"Chat backend unreachable: {e}") from e

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error(f"Chat backend returned {response.status_code}: {detail}")
            raise BackendCallFailure(detail)

        try:
            data = response.json()
        except ValueError as e:
            raise BackendCallFailure(f"Invalid JSON response: {e}") from e

        if not isinstance(data, dict) or data.get("error"):
            raise BackendCallFailure(str(data.get("error") if isinstance(data, dict) else data))

        reply = data.get("response")
        if not isinstance(reply, str):
            raise BackendCallFailure("Response missing from chat backend reply")
        return reply


def _error_detail(response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or data)
    return str(data)
