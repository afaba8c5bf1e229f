"""
Gemini extraction client.

Wraps the google-genai File API and JSON-schema constrained generation:
upload a file and wait for it to become ACTIVE, extract structured data
(primary model, then the fallback model once), and delete the remote file.
"""
from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Type, TypeVar

from google import genai
from google.genai import types
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from spendscan.config import settings
from spendscan.exceptions import ConfigurationError, ExtractionError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _still_processing(status) -> bool:
    return status.state == types.FileState.PROCESSING


@dataclass(frozen=True)
class RemoteFile:
    """Handle on a file stored by the extraction service."""
    name: str
    uri: str
    mime_type: str


@dataclass(frozen=True)
class ModelFallbackPolicy:
    """Two-attempt policy: the requested model, then the fallback if distinct."""
    primary: str
    fallback: Optional[str] = None

    def attempts(self, model: Optional[str] = None) -> list[str]:
        first = model or self.primary
        if self.fallback and self.fallback != first:
            return [first, self.fallback]
        return [first]


class ExtractionClient:
    def __init__(
        self,
        client: Any = None,
        policy: Optional[ModelFallbackPolicy] = None,
        poll_interval: Optional[float] = None,
        max_poll_attempts: Optional[int] = None,
    ):
        self._client = client
        self.policy = policy or ModelFallbackPolicy(
            primary=settings.GEMINI_DEFAULT_MODEL,
            fallback=settings.GEMINI_FALLBACK_MODEL,
        )
        self.poll_interval = (
            settings.GEMINI_POLL_INTERVAL_SEC if poll_interval is None else poll_interval
        )
        self.max_poll_attempts = (
            settings.GEMINI_MAX_POLL_ATTEMPTS if max_poll_attempts is None else max_poll_attempts
        )

    @property
    def client(self):
        if self._client is None:
            if not settings.GEMINI_API_KEY:
                raise ConfigurationError(
                    "GEMINI_API_KEY is not configured",
                    details={"required_key": "GEMINI_API_KEY"},
                )
            self._client = genai.Client(api_key=settings.GEMINI_API_KEY)
            logger.info("Gemini client initialized (model=%s, fallback=%s)",
                        self.policy.primary, self.policy.fallback)
        return self._client

    # ── upload ─────────────────────────────────────────────────────────
    async def upload(
        self, path: str, mime_type: str, display_name: Optional[str] = None
    ) -> RemoteFile:
        """Upload *path* and block until the service reports it ready."""
        logger.info("Uploading file to Gemini: mime=%s name=%s", mime_type, display_name)
        try:
            uploaded = await self.client.aio.files.upload(
                file=path,
                config={"mime_type": mime_type, "display_name": display_name or "upload"},
            )
        except ConfigurationError:
            raise
        except Exception as e:
            raise ExtractionError("File upload failed", details={"error": str(e)}) from e

        remote = await self._wait_until_active(uploaded.name)
        return RemoteFile(
            name=remote.name,
            uri=remote.uri,
            mime_type=remote.mime_type or mime_type,
        )

    async def _wait_until_active(self, name: str):
        # one initial status check plus max_poll_attempts polls
        polling = AsyncRetrying(
            stop=stop_after_attempt(self.max_poll_attempts + 1),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(_still_processing),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
        )
        try:
            status = await polling(self.client.aio.files.get, name=name)
        except RetryError as e:
            attempts = e.last_attempt.attempt_number
            logger.warning("File %s still processing after %d checks", name, attempts)
            await self.release(RemoteFile(name=name, uri="", mime_type=""))
            raise ExtractionError(
                "File processing timeout after maximum retries",
                details={"file": name, "attempts": attempts},
            ) from e
        except Exception as e:
            await self.release(RemoteFile(name=name, uri="", mime_type=""))
            raise ExtractionError("File status check failed", details={"error": str(e)}) from e

        if status.state == types.FileState.FAILED:
            error = getattr(status, "error", None)
            await self.release(RemoteFile(name=name, uri="", mime_type=""))
            raise ExtractionError(
                "File processing failed",
                details={"file": name, "error": getattr(error, "message", None)},
            )

        logger.info("File %s ready: %s", name, status.uri)
        return status

    # ── extract ────────────────────────────────────────────────────────
    async def extract(
        self,
        remote: RemoteFile,
        prompt: str,
        json_schema: dict,
        response_model: Optional[Type[M]] = None,
        model: Optional[str] = None,
    ):
        """Schema-constrained extraction, retried once against the fallback model.

        Returns a *response_model* instance when one is given, else the parsed JSON.
        """
        last_error: Optional[Exception] = None
        for candidate in self.policy.attempts(model):
            try:
                return await self._generate(remote, prompt, json_schema, response_model, candidate)
            except Exception as e:
                last_error = e
                logger.error("Extraction with %s failed: %s", candidate, e)
        raise ExtractionError(
            "Extraction failed",
            details={"models": self.policy.attempts(model), "error": str(last_error)},
        ) from last_error

    async def _generate(self, remote, prompt, json_schema, response_model, model):
        logger.info("Extracting with %s (prompt %d chars)", model, len(prompt))
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=[
                types.Part.from_uri(file_uri=remote.uri, mime_type=remote.mime_type),
                prompt,
            ],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=json_schema,
            ),
        )
        text = (response.text or "").strip()
        if not text:
            raise ExtractionError("Empty response from Gemini", details={"model": model})
        try:
            payload = json.loads(text)
            if response_model is not None:
                return response_model.model_validate(payload)
            return payload
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise ExtractionError(
                "Unparseable response from Gemini", details={"model": model, "error": str(e)}
            ) from e

    # ── release ────────────────────────────────────────────────────────
    async def release(self, remote: RemoteFile) -> None:
        """Delete the remote file. Failures are logged, never raised."""
        try:
            await self.client.aio.files.delete(name=remote.name)
            logger.info("Deleted Gemini file %s", remote.name)
        except Exception as e:
            logger.warning("Failed to delete Gemini file %s: %s", remote.name, e)

    @asynccontextmanager
    async def uploaded(
        self, path: str, mime_type: str, display_name: Optional[str] = None
    ) -> AsyncIterator[RemoteFile]:
        """Upload for the duration of an ``async with`` block, released on exit."""
        remote = await self.upload(path, mime_type, display_name)
        try:
            yield remote
        finally:
            await self.release(remote)


_client: Optional[ExtractionClient] = None


def get_extraction_client() -> ExtractionClient:
    """FastAPI dependency returning the shared extraction client."""
    global _client
    if _client is None:
        _client = ExtractionClient()
    return _client
