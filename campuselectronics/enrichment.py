"""AI enrichment of listing drafts from a product photo.

The photo is sent together with a fixed instruction to the Gemini
``generateContent`` endpoint. The response is constrained to a JSON schema
with title, description, suggested price and category, which is validated
here before it reaches the draft. Any failure surfaces as
:class:`EnrichmentFailed`; callers keep the draft editable in that case.
"""

from __future__ import annotations

import json
import logging
import math
import os
from pathlib import Path
from typing import Any, Optional

import requests

from . import config
from .models import AIAnalysisResult, ImagePayload

logger = logging.getLogger(__name__)
io_logger = logging.getLogger(f"{__name__}.io")
io_logger.propagate = False

INSTRUCTION = (
    "Analyze this electronic item and provide a professional marketplace listing. "
    "Suggest a title, a detailed description for a college student buyer, a realistic "
    "suggested price in Indian Rupees (INR), and a category."
)

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "description": {"type": "STRING"},
        "suggestedPrice": {
            "type": "NUMBER",
            "description": "The suggested price for the item in Indian Rupees (INR).",
        },
        "category": {"type": "STRING"},
    },
    "required": ["title", "description", "suggestedPrice", "category"],
}


def configure_enrichment_logging(log_dir: str | Path) -> None:
    """Configure a dedicated log file for enrichment traffic."""

    log_path = Path(log_dir) / "enrichment.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)

    for handler in io_logger.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == log_path:
            return

    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    io_logger.addHandler(handler)
    io_logger.setLevel(logging.INFO)


class EnrichmentFailed(RuntimeError):
    """Raised when the enrichment service cannot return a valid analysis."""


def _resolve_api_key(api_key: Optional[str]) -> str:
    if api_key:
        return api_key
    for name in config.API_KEY_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    return ""


def _build_request_body(payload: ImagePayload, instruction: str = INSTRUCTION) -> dict[str, Any]:
    return {
        "contents": [
            {
                "parts": [
                    {"inline_data": {"mime_type": payload.mime_type, "data": payload.data}},
                    {"text": instruction},
                ]
            }
        ],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": RESPONSE_SCHEMA,
        },
    }


def _extract_text(data: dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""

    candidates = data.get("candidates") or []
    if not isinstance(candidates, list):
        raise EnrichmentFailed("Feld 'candidates' ist keine Liste.")
    if not candidates:
        feedback = data.get("promptFeedback") or {}
        reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        if reason:
            raise EnrichmentFailed(f"Anfrage vom Dienst abgelehnt ({reason}).")
        raise EnrichmentFailed("Antwort enthält keine Kandidaten.")

    candidate = candidates[0]
    content = candidate.get("content") if isinstance(candidate, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        raise EnrichmentFailed("Antwort hat kein gültiges Kandidatenformat.")
    text = "".join(
        part["text"] for part in parts if isinstance(part, dict) and isinstance(part.get("text"), str)
    )
    if not text.strip():
        raise EnrichmentFailed("Antwort enthält keinen Text.")
    return text


def _parse_analysis(raw_output: str) -> AIAnalysisResult:
    """Validate the JSON answer against the response schema."""

    try:
        data = json.loads(raw_output)
    except json.JSONDecodeError as exc:
        raise EnrichmentFailed("Antwort ist kein gültiges JSON.") from exc

    if not isinstance(data, dict):
        raise EnrichmentFailed("Antwort ist kein JSON-Objekt.")

    missing = [key for key in RESPONSE_SCHEMA["required"] if key not in data]
    if missing:
        raise EnrichmentFailed(f"Antwort unvollständig, es fehlen: {', '.join(missing)}")

    texts = {}
    for key in ("title", "description", "category"):
        value = data[key]
        if not isinstance(value, str) or not value.strip():
            raise EnrichmentFailed(f"Feld '{key}' ist kein nicht-leerer Text.")
        texts[key] = value.strip()

    price = data["suggestedPrice"]
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        raise EnrichmentFailed("Feld 'suggestedPrice' ist keine Zahl.")
    try:
        price = float(price)
    except OverflowError as exc:
        raise EnrichmentFailed("Preisvorschlag ist zu groß.") from exc
    if not math.isfinite(price) or price < 0:
        raise EnrichmentFailed(f"Ungültiger Preisvorschlag: {price}")

    return AIAnalysisResult(
        title=texts["title"],
        description=texts["description"],
        suggested_price=price,
        category=texts["category"],
    )


class EnrichmentClient:
    """Encapsulate enrichment requests including logging and configuration."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = config.ENRICHMENT_MODEL,
        endpoint: str = config.ENRICHMENT_ENDPOINT,
        timeout: float = config.ENRICHMENT_TIMEOUT,
        max_attempts: int = config.ENRICHMENT_MAX_ATTEMPTS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = _resolve_api_key(api_key)
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self._session = session

    @property
    def url(self) -> str:
        return self.endpoint.format(model=self.model)

    def _post(self, body: dict[str, Any]) -> requests.Response:
        sender = self._session or requests
        response = sender.post(
            self.url,
            json=body,
            headers={"x-goog-api-key": self.api_key},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response

    def enrich(self, payload: ImagePayload) -> AIAnalysisResult:
        """Send ``payload`` to the service and return the parsed analysis."""

        if payload is None or not payload.data:
            raise EnrichmentFailed("Kein Bild für die Analyse vorhanden.")
        if not self.api_key:
            logger.warning(
                "Kein API-Schlüssel gesetzt (%s) – Anfrage wird vermutlich abgelehnt.",
                "/".join(config.API_KEY_ENV_VARS),
            )

        body = _build_request_body(payload)
        logger.debug(
            "Sende Analyse-Anfrage: Modell='%s', Timeout=%.1fs, Bildgröße=%s Zeichen",
            self.model,
            self.timeout,
            len(payload.data),
        )
        io_logger.info(
            "→ Bildanalyse (Modell='%s', MIME='%s', %s Zeichen Base64)",
            self.model,
            payload.mime_type,
            len(payload.data),
        )

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self._post(body)
            except requests.exceptions.HTTPError as exc:
                status = exc.response.status_code if exc.response is not None else 0
                text = exc.response.text if exc.response is not None else "<no response>"
                logger.error(
                    "HTTP-Fehler (Status %s) bei der Bildanalyse mit Modell '%s': %s",
                    status,
                    self.model,
                    text,
                )
                if status >= 500 and attempt < self.max_attempts:
                    logger.info(
                        "Serverfehler – wiederhole Anfrage (%s/%s)", attempt + 1, self.max_attempts
                    )
                    continue
                raise EnrichmentFailed(f"Bildanalyse fehlgeschlagen (HTTP {status}).") from exc
            except requests.exceptions.RequestException as exc:
                logger.exception(
                    "Analysedienst nicht erreichbar: Modell='%s'", self.model
                )
                if attempt < self.max_attempts:
                    logger.info(
                        "Netzwerkfehler – wiederhole Anfrage (%s/%s)", attempt + 1, self.max_attempts
                    )
                    continue
                raise EnrichmentFailed(f"Analysedienst nicht erreichbar. Details: {exc}") from exc

            try:
                data = response.json()
            except ValueError as exc:
                raise EnrichmentFailed("Antwort des Dienstes ist kein JSON.") from exc
            if not isinstance(data, dict):
                raise EnrichmentFailed("Antwort des Dienstes ist kein JSON-Objekt.")

            raw_output = _extract_text(data)
            io_logger.info("← Antwort (Modell='%s'): %s", self.model, raw_output)
            result = _parse_analysis(raw_output)
            logger.info(
                "Bildanalyse abgeschlossen: '%s' (%s, ca. %s INR)",
                result.title,
                result.category,
                result.rounded_price,
            )
            return result

        raise EnrichmentFailed("Bildanalyse ohne Ergebnis beendet.")  # pragma: no cover


_default_client: EnrichmentClient | None = None


def analyze_product_image(
    payload: ImagePayload,
    *,
    model: str = config.ENRICHMENT_MODEL,
    endpoint: str = config.ENRICHMENT_ENDPOINT,
    timeout: float = config.ENRICHMENT_TIMEOUT,
) -> AIAnalysisResult:
    global _default_client

    if (model, endpoint, timeout) == (
        config.ENRICHMENT_MODEL,
        config.ENRICHMENT_ENDPOINT,
        config.ENRICHMENT_TIMEOUT,
    ):
        if _default_client is None:
            _default_client = EnrichmentClient()
        client = _default_client
    else:
        client = EnrichmentClient(model=model, endpoint=endpoint, timeout=timeout)
    return client.enrich(payload)
