from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import requests
import yaml

from exam_paper.api.question_errors import (
    MalformedUpstreamResponseError,
    MissingCredentialError,
    UpstreamError,
)

_log = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_REGISTRY_PATH = PROJECT_ROOT / "config" / "model_registry.yaml"

EXAMINER_SYSTEM_PROMPT = (
    "You are an expert academic examiner. Generate clear, high-quality school exam questions "
    "based on user instructions."
)


@dataclass
class UnifiedLLMRequest:
    messages: List[Dict[str, Any]] = field(default_factory=list)
    temperature: Optional[float] = 0.7
    max_tokens: Optional[int] = 1000
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UnifiedLLMResponse:
    text: str
    model: str = ""
    usage: Dict[str, Any] = field(default_factory=dict)
    finish_reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Target:
    provider: str
    mode: str
    model: str
    base_url: str
    endpoint: str
    headers: Dict[str, str]
    timeout_sec: Tuple[float, float]


def _load_registry(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Model registry not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@lru_cache(maxsize=8)
def _load_registry_cached(path_str: str) -> Dict[str, Any]:
    # Changes to the registry file need a process restart.
    return _load_registry(Path(path_str))


def _clamp_timeout_seconds(value: Any, *, default: float, min_value: float = 1.0, max_value: float = 300.0) -> float:
    try:
        parsed = float(value)
    except Exception:
        parsed = float(default)
    if parsed <= 0:
        parsed = float(default)
    return min(max_value, max(min_value, parsed))


def _build_timeout_pair(default_timeout_sec: Any, timeout_value: Any = None) -> Tuple[float, float]:
    read_timeout = _clamp_timeout_seconds(default_timeout_sec, default=60.0)
    text = str(timeout_value or "").strip().lower()
    if text and text not in {"0", "none", "inf", "infinite", "null"}:
        read_timeout = _clamp_timeout_seconds(text, default=read_timeout)
    return (min(10.0, read_timeout), read_timeout)


def _upstream_error_message(exc: requests.RequestException) -> str:
    resp = getattr(exc, "response", None)
    if resp is not None:
        try:
            data = resp.json()
        except Exception:
            data = None
        if isinstance(data, dict):
            err = data.get("error")
            if isinstance(err, dict) and err.get("message"):
                return str(err["message"])
            if data.get("message"):
                return str(data["message"])
    return ""


def _request_headers(prov_cfg: Dict[str, Any], api_key: str) -> Dict[str, str]:
    auth = prov_cfg.get("auth") or {}
    headers = {
        "Content-Type": "application/json",
        str(auth.get("header", "Authorization")): f"{auth.get('prefix', 'Bearer ')}{api_key}",
    }
    # OpenRouter attribution headers (HTTP-Referer, X-Title) come from the registry.
    headers.update({str(k): str(v) for k, v in (prov_cfg.get("extra_headers") or {}).items() if str(k).strip() and str(v).strip()})
    return headers


class OpenAIChatAdapter:
    def __init__(self, target: Target, session: requests.Session):
        self.target = target
        self.session = session

    def generate(self, req: UnifiedLLMRequest) -> UnifiedLLMResponse:
        payload: Dict[str, Any] = {
            "model": self.target.model,
            "messages": req.messages,
            "temperature": req.temperature,
        }
        if req.max_tokens is not None:
            payload["max_tokens"] = req.max_tokens

        try:
            resp = self.session.post(
                f"{self.target.base_url}{self.target.endpoint}",
                headers=self.target.headers,
                json=payload,
                timeout=self.target.timeout_sec,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            _log.warning("llm request failed provider=%s error=%s", self.target.provider, str(exc)[:200])
            raise UpstreamError(_upstream_error_message(exc)) from exc

        try:
            data = resp.json()
        except ValueError as exc:
            body = str(getattr(resp, "text", "") or "")[:500]
            raise MalformedUpstreamResponseError(f"Invalid response from OpenRouter: {body}") from exc

        choices = data.get("choices") if isinstance(data, dict) else None
        first = choices[0] if isinstance(choices, list) and choices else {}
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not content:
            raise MalformedUpstreamResponseError(
                "Invalid response from OpenRouter: " + json.dumps(data, ensure_ascii=False)[:2000]
            )
        return UnifiedLLMResponse(
            text=str(content),
            model=str(data.get("model") or self.target.model),
            usage=data.get("usage") or {},
            finish_reason=first.get("finish_reason"),
            raw=data,
        )


class LLMGateway:
    def __init__(self, registry_path: Optional[Path] = None, session: Optional[requests.Session] = None):
        path = Path(os.getenv("MODEL_REGISTRY_PATH") or registry_path or DEFAULT_REGISTRY_PATH)
        self.registry = _load_registry_cached(str(path))
        self._session = session or requests.Session()

    @property
    def defaults(self) -> Dict[str, Any]:
        value = self.registry.get("defaults")
        return value if isinstance(value, dict) else {}

    def _provider(self, provider: Optional[str] = None) -> Tuple[str, Dict[str, Any], str, Dict[str, Any]]:
        """Return (provider name, provider config, mode name, mode config)."""
        name = provider or os.getenv("LLM_PROVIDER") or self.defaults.get("provider") or "openrouter"
        prov_cfg = (self.registry.get("providers") or {}).get(name) or {}
        mode = str(prov_cfg.get("mode") or self.defaults.get("mode") or "openai-chat")
        return name, prov_cfg, mode, (prov_cfg.get("modes") or {}).get(mode) or {}

    @staticmethod
    def _api_key(prov_cfg: Dict[str, Any]) -> str:
        candidates = ["LLM_API_KEY", *(prov_cfg.get("api_key_envs") or [])]
        return next((v for v in (os.getenv(n, "").strip() for n in candidates) if v), "")

    @staticmethod
    def _configured_model(mode_cfg: Dict[str, Any]) -> str:
        return (
            os.getenv("LLM_MODEL")
            or os.getenv(mode_cfg.get("model_env") or "")
            or mode_cfg.get("default_model")
            or ""
        )

    def resolve_target(self, provider: Optional[str] = None, model: Optional[str] = None) -> Target:
        name, prov_cfg, mode, mode_cfg = self._provider(provider)

        # Credential first: nothing below may touch the network without it.
        api_key = self._api_key(prov_cfg)
        if not api_key:
            raise MissingCredentialError()

        model = model or self._configured_model(mode_cfg)
        base_url = os.getenv(prov_cfg.get("base_url_env") or "") or prov_cfg.get("base_url") or ""
        endpoint = mode_cfg.get("endpoint") or ""
        for label, value in (("Model", model), ("Base URL", base_url), ("Endpoint", endpoint)):
            if not value:
                raise ValueError(f"{label} not configured for provider={name} mode={mode}.")

        return Target(
            provider=name,
            mode=mode,
            model=model,
            base_url=base_url.rstrip("/"),
            endpoint=endpoint,
            headers=_request_headers(prov_cfg, api_key),
            timeout_sec=_build_timeout_pair(self.defaults.get("timeout_sec", 60), os.getenv("LLM_TIMEOUT_SEC")),
        )

    def generate(self, req: UnifiedLLMRequest, provider: Optional[str] = None, model: Optional[str] = None) -> UnifiedLLMResponse:
        target = self.resolve_target(provider, model)
        _log.info("llm.generate provider=%s model=%s kind=%s", target.provider, target.model, req.metadata.get("kind", ""))
        return OpenAIChatAdapter(target, self._session).generate(req)

    def generate_text(self, prompt: str, *, kind: str = "") -> str:
        req = UnifiedLLMRequest(
            messages=[
                {"role": "system", "content": EXAMINER_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=float(self.defaults.get("temperature", 0.7)),
            max_tokens=int(self.defaults.get("max_tokens", 1000)),
            metadata={"kind": kind},
        )
        return self.generate(req).text

    def model_label(self) -> str:
        _, _, _, mode_cfg = self._provider()
        return str(self._configured_model(mode_cfg)).split("/")[-1]


__all__ = [
    "UnifiedLLMRequest",
    "UnifiedLLMResponse",
    "LLMGateway",
    "EXAMINER_SYSTEM_PROMPT",
]
