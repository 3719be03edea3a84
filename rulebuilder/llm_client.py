# rulebuilder/llm_client.py

import asyncio
import logging
import random
import threading
import time
from typing import Any, Dict, Optional

from openai import OpenAI
from langchain_google_vertexai import VertexAI

from rulebuilder.exceptions import InvalidArgument, ProviderFailure
from rulebuilder.model_props import is_openai_model, parse_model_name
from rulebuilder import settings

logger = logging.getLogger("rulebuilder.llm_client")


# Global backoff state (shared across all clients)
_global_backoff_lock = threading.Lock()
_global_wait_until = 0.0
_global_backoff_seconds = 30.0
_GLOBAL_BACKOFF_MAX = 600.0


def _is_timeout_error(e: Exception) -> bool:
    if isinstance(e, (asyncio.TimeoutError, TimeoutError)):
        return True
    msg = repr(e)
    return "TimeoutError" in msg or "timed out" in msg.lower()


def _is_resource_exhausted_error(e: Exception) -> bool:
    msg = str(e)
    return (
        "429" in msg
        and (
            "RESOURCE_EXHAUSTED" in msg
            or "Resource has been exhausted" in msg
            or "Too Many Requests" in msg
        )
    )


def _respect_global_backoff() -> None:
    while True:
        with _global_backoff_lock:
            wait = _global_wait_until - time.monotonic()
        if wait <= 0:
            return
        time.sleep(min(wait, 1.0))


def _register_backoff() -> float:
    global _global_wait_until, _global_backoff_seconds

    with _global_backoff_lock:
        now = time.monotonic()
        base = _global_backoff_seconds
        delay = random.uniform(base * 0.95, base * 1.35)
        _global_backoff_seconds = min(_global_backoff_seconds * 2, _GLOBAL_BACKOFF_MAX)
        _global_wait_until = max(_global_wait_until, now + delay)
        return delay


def _reset_backoff_on_success() -> None:
    global _global_backoff_seconds
    with _global_backoff_lock:
        _global_backoff_seconds = max(1.0, _global_backoff_seconds * 0.5)


def call_once_with_backoff(fn, *, label: str = "LLM"):
    """
    Run a single sync LLM call behind the process-wide 429/timeout gate.

    A rate-limited or timed-out call opens a backoff window that later calls
    wait out; the failing call itself is not retried.
    """
    _respect_global_backoff()
    start_time = time.time()
    try:
        result = fn()
    except Exception as e:
        elapsed = time.time() - start_time
        if _is_resource_exhausted_error(e) or _is_timeout_error(e):
            delay = _register_backoff()
            logger.warning(f"[{label}] got 429/timeout after {elapsed:.2f}s, backing off ~{delay:.1f}s: {e}")
        else:
            logger.warning(f"[{label}] call failed after {elapsed:.2f}s: {e}")
        raise ProviderFailure(f"{label} call failed: {e}") from e
    _reset_backoff_on_success()
    return result


class LlmClient:
    """
    Minimal wrapper for "completion-style" use:

        text = llm.invoke("some prompt")

    Under the hood:
    - Vertex: VertexAI.invoke(prompt)
    - OpenAI: Responses API (client.responses.create)

    One instance is shared by every in-flight request; the underlying clients
    are thread-safe and usage accounting is guarded by a lock.
    """

    def __init__(
        self,
        model_name: str,
        *,
        vertex_project: str | None = None,
        vertex_region: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        self.provider = "openai" if is_openai_model(model_name) else "vertex"
        self._timeout = timeout
        self.model_name = model_name
        self.last_usage: Optional[Dict[str, int]] = None
        self._usage_lock = threading.Lock()
        self._openai_params: Dict[str, Any] = {}

        if self.provider == "vertex":
            self._vertex = VertexAI(
                project=vertex_project or settings.PROJECT_ID,
                location=vertex_region or settings.REGION,
                model_name=model_name,
                timeout=timeout,
            )
            self._client = None
        else:
            api_key = api_key or settings.OPENAI_API_KEY
            if not api_key:
                raise InvalidArgument(
                    "OPENAI_API_KEY is not set. Add it to .env or export it before running the API."
                )
            self._vertex = None
            self.model_name, self._openai_params = parse_model_name(self.model_name)
            client_kwargs: Dict[str, Any] = {"api_key": api_key, "max_retries": 0}
            if timeout is not None:
                client_kwargs["timeout"] = timeout

            self._client = OpenAI(**client_kwargs)

    def _merge_usage(self, inc: Dict[str, int]) -> None:
        with self._usage_lock:
            if self.last_usage is None:
                self.last_usage = dict(inc)
                return
            for k, v in inc.items():
                self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)

    def _merge_openai_usage(self, resp: Any) -> None:
        usage = getattr(resp, "usage", None)
        if usage is None:
            return
        self._merge_usage({
            "prompt_token_count": getattr(usage, "input_tokens", 0) or 0,
            "candidates_token_count": getattr(usage, "output_tokens", 0) or 0,
            "total_token_count": getattr(usage, "total_tokens", 0) or 0,
        })

    def _merge_vertex_usage(self, usage_metadata: Any) -> None:
        if not usage_metadata:
            return

        def get(k: str) -> int:
            if isinstance(usage_metadata, dict):
                return int(usage_metadata.get(k, 0) or 0)
            return int(getattr(usage_metadata, k, 0) or 0)

        self._merge_usage({
            "prompt_token_count": get("prompt_token_count"),
            "candidates_token_count": get("candidates_token_count"),
            "total_token_count": get("total_token_count"),
        })

    def _invoke_once(self, prompt: str) -> str:
        if self.provider == "vertex":
            resp = self._vertex.invoke(prompt)

            usage_md = getattr(resp, "usage_metadata", None)
            if usage_md is None:
                rm = getattr(resp, "response_metadata", None)
                if isinstance(rm, dict):
                    usage_md = rm.get("usage_metadata")
                elif rm is not None:
                    usage_md = getattr(rm, "usage_metadata", None)
            self._merge_vertex_usage(usage_md)

            if isinstance(resp, str):
                return resp
            # LangChain's Vertex types often have .content
            return getattr(resp, "content", str(resp))

        resp = self._client.responses.create(
            model=self.model_name,
            input=prompt,
            **self._openai_params,
        )
        self._merge_openai_usage(resp)

        text = getattr(resp, "output_text", "") or ""
        return text.strip()

    def invoke(self, prompt: str) -> str:
        return call_once_with_backoff(lambda: self._invoke_once(prompt), label=f"LLM {self.model_name}")


def build_llm_for_model(model_name: str | None = None, timeout: float | None = None) -> LlmClient:
    model_name = model_name or settings.DEFAULT_MODEL
    if not timeout:
        timeout = settings.LLM_TIMEOUT
    logger.info(f"Building LLM client for model {model_name} (timeout={timeout}s)")
    return LlmClient(
        model_name=model_name,
        vertex_project=settings.PROJECT_ID,
        vertex_region=settings.REGION,
        timeout=timeout,
    )
