import os
import json
import math
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from dotenv import load_dotenv
from openai import OpenAI, APIConnectionError, APIError, APIStatusError, APITimeoutError

load_dotenv()

logger = logging.getLogger(__name__)

# Public entrypoint:
# RemoteAnalyzer().analyze(system_prompt: str, user_json: dict) -> dict
#
# The returned dict has the report shape shared with the rules engine:
#   {
#     "humanSummary": str,
#     "json": {
#       "overlap": {"title": str, "reason": str, "what_to_verify": [str]},
#       "gap": {"title": str, "reason": str, "suggested_next_step": str},
#       "priority_review": [{"coverage": str, "why": str}, ...],
#       "assumptions": [str],
#       "not_validated": [str],
#       "disclaimer": str
#     }
#   }
# Every failure is raised as a RemoteAnalysisError subclass.


DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT_SECONDS = 30.0
SCHEMA_NAME = "PolicyPilotOutput"

# Error message fragments that mean the structured-output request itself was rejected
SCHEMA_REJECTION_MARKERS = ("json_schema", "text.format", "response_format")

JSON_ONLY_SUFFIX = "\n\nPlease respond with json only, no markdown or prose."
INPUT_LEAD = "Respond with json. User intake JSON follows.\n"


def _string_array() -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}}


REPORT_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "humanSummary": {"type": "string"},
        "json": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "overlap": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {
                        "title": {"type": "string"},
                        "reason": {"type": "string"},
                        "what_to_verify": _string_array(),
                    },
                    "required": ["title", "reason", "what_to_verify"],
                },
                "gap": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {
                        "title": {"type": "string"},
                        "reason": {"type": "string"},
                        "suggested_next_step": {"type": "string"},
                    },
                    "required": ["title", "reason", "suggested_next_step"],
                },
                "priority_review": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "additionalProperties": False,
                        "properties": {
                            "coverage": {"type": "string"},
                            "why": {"type": "string"},
                        },
                        "required": ["coverage", "why"],
                    },
                },
                "assumptions": _string_array(),
                "not_validated": _string_array(),
                "disclaimer": {"type": "string"},
            },
            "required": ["overlap", "gap", "priority_review", "assumptions", "not_validated", "disclaimer"],
        },
    },
    "required": ["humanSummary", "json"],
}


# ------------------------ Errors ------------------------ #

class RemoteAnalysisError(Exception):
    """Base class for every failure of the remote analysis path."""


class ConfigurationError(RemoteAnalysisError):
    """Credential missing; raised before any request is made."""


class TransportError(RemoteAnalysisError):
    """Service unreachable, timed out, or answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class SchemaError(RemoteAnalysisError):
    """Service answered, but the content is missing, unparseable or mis-shaped."""

    def __init__(self, message: str, content: Any = None):
        super().__init__(message)
        self.content = content


# ------------------------ Configuration ------------------------ #

def _env_flag(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() != "false"


def _env_temperature(name: str = "OPENAI_TEMPERATURE") -> Optional[float]:
    raw = os.getenv(name)
    if raw in (None, ""):
        return None
    try:
        t = float(raw)
    except (ValueError, TypeError):
        return None
    return t if math.isfinite(t) else None


def _env_timeout(name: str = "OPENAI_TIMEOUT_SECONDS") -> float:
    raw = os.getenv(name)
    try:
        t = float(raw) if raw not in (None, "") else DEFAULT_TIMEOUT_SECONDS
    except (ValueError, TypeError):
        return DEFAULT_TIMEOUT_SECONDS
    return t if math.isfinite(t) and t > 0 else DEFAULT_TIMEOUT_SECONDS


# ------------------------ Content Extraction ------------------------ #

def _field(obj: Any, name: str) -> Any:
    # SDK responses are objects, recorded/proxied ones are plain dicts
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _content_blocks(response: Any) -> List[Any]:
    blocks = []
    for item in _field(response, "output") or []:
        blocks.extend(_field(item, "content") or [])
    return blocks


def _from_output_text(response: Any) -> Any:
    text = _field(response, "output_text")
    return text or None


def _from_json_block(response: Any) -> Any:
    for block in _content_blocks(response):
        if _field(block, "type") == "json":
            value = _field(block, "json")
            if value is not None:
                return value
    return None


def _from_first_text_block(response: Any) -> Any:
    blocks = _content_blocks(response)
    for block in blocks:
        if _field(block, "type") in ("output_text", "text"):
            text = _field(block, "text")
            if text:
                return text
    if blocks:
        return _field(blocks[0], "text") or None
    return None


# Tried in order; a strategy succeeds only when the caller's check accepts
# what it found, otherwise the next one is tried
EXTRACTION_STRATEGIES: List[Callable[[Any], Any]] = [
    _from_output_text,
    _from_json_block,
    _from_first_text_block,
]


def extract_content(response: Any, accept: Optional[Callable[[Any], Any]] = None) -> Any:
    """
    Return the first strategy's content that `accept` takes, as transformed
    by `accept`. Without `accept` any non-empty content is taken as is.
    When every candidate is rejected, the highest-priority rejection is raised.
    """
    first_error: Optional[SchemaError] = None
    for strategy in EXTRACTION_STRATEGIES:
        content = strategy(response)
        if content is None:
            continue
        if accept is None:
            return content
        try:
            return accept(content)
        except SchemaError as e:
            logger.debug(f"{strategy.__name__} rejected: {e}")
            if first_error is None:
                first_error = e
    if first_error is not None:
        raise first_error
    raise SchemaError("OpenAI returned no content")


def parse_content(content: Any) -> Any:
    if not isinstance(content, str):
        return content
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise SchemaError(f"Invalid JSON from model: {e}", content=content) from e


# ------------------------ Shape Validation ------------------------ #

def _require_str(obj: Dict[str, Any], key: str, where: str):
    if not isinstance(obj.get(key), str):
        raise SchemaError(f"{where}.{key} must be a string")


def _require_str_list(obj: Dict[str, Any], key: str, where: str):
    value = obj.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise SchemaError(f"{where}.{key} must be a list of strings")


def coerce_report(data: Any) -> Dict[str, Any]:
    """
    Check the basic report shape and repair what can be repaired.
    Titles and reasons are passed through untouched.
    """
    if not isinstance(data, dict):
        raise SchemaError("Report must be a JSON object", content=data)
    data = dict(data)
    _require_str(data, "humanSummary", "report")

    body = data.get("json")
    if isinstance(body, str):
        body = parse_content(body)
    if not isinstance(body, dict):
        raise SchemaError("report.json must be an object", content=data)
    body = dict(body)

    overlap = body.get("overlap")
    if not isinstance(overlap, dict):
        raise SchemaError("json.overlap must be an object", content=data)
    _require_str(overlap, "title", "overlap")
    _require_str(overlap, "reason", "overlap")
    _require_str_list(overlap, "what_to_verify", "overlap")

    gap = body.get("gap")
    if not isinstance(gap, dict):
        raise SchemaError("json.gap must be an object", content=data)
    for key in ("title", "reason", "suggested_next_step"):
        _require_str(gap, key, "gap")

    priority_review = body.get("priority_review")
    if not isinstance(priority_review, list):
        raise SchemaError("json.priority_review must be a list", content=data)
    for item in priority_review:
        if not isinstance(item, dict):
            raise SchemaError("priority_review items must be objects", content=data)
        _require_str(item, "coverage", "priority_review")
        _require_str(item, "why", "priority_review")

    for key in ("assumptions", "not_validated"):
        if body.get(key) is None:
            body[key] = []
        _require_str_list(body, key, "json")
    _require_str(body, "disclaimer", "json")

    data["json"] = body
    return data


# ------------------------ LLM Client Wrapper ------------------------ #

class LLMClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        use_json_schema: Optional[bool] = None,
        temperature: Optional[float] = None,
        request_timeout: Optional[float] = None,
        client: Any = None,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ConfigurationError("Missing OPENAI_API_KEY")
        self.model = model or os.getenv("OPENAI_MODEL") or DEFAULT_MODEL
        self.use_json_schema = _env_flag("OPENAI_USE_JSON_SCHEMA") if use_json_schema is None else use_json_schema
        self.temperature = _env_temperature() if temperature is None else temperature
        self.request_timeout = request_timeout or _env_timeout()
        # SDK retries are off; the only retry is the relaxed-format one below
        self._client = client or OpenAI(api_key=self.api_key, timeout=self.request_timeout, max_retries=0)

    def _text_format(self, strict: bool) -> Dict[str, Any]:
        if strict:
            return {"type": "json_schema", "name": SCHEMA_NAME, "schema": REPORT_JSON_SCHEMA, "strict": True}
        return {"type": "json_object"}

    def build_request(self, system_prompt: str, user_json: Any, strict: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "instructions": f"{system_prompt}{JSON_ONLY_SUFFIX}",
            "input": f"{INPUT_LEAD}{json.dumps(user_json, ensure_ascii=False)}",
            "text": {"format": self._text_format(strict)},
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        return payload

    def _create(self, payload: Dict[str, Any]) -> Any:
        try:
            return self._client.responses.create(**payload)
        except (APITimeoutError, APIConnectionError) as e:
            raise TransportError(f"OpenAI request failed: {type(e).__name__}", details=str(e)) from e
        except APIStatusError:
            raise
        except APIError as e:
            raise TransportError(f"OpenAI request failed: {type(e).__name__}", details=str(e)) from e

    def complete_json(self, system_prompt: str, user_json: Any, validate: Optional[Callable[[Any], Any]] = None) -> Any:
        """
        One request, plus one relaxed json_object retry when the service
        rejects the json_schema format. Returns the parsed content of the
        first extraction strategy whose content parses and passes `validate`.
        """
        strict = self.use_json_schema
        try:
            response = self._create(self.build_request(system_prompt, user_json, strict))
        except APIStatusError as e:
            if not (strict and _is_schema_rejection(e)):
                raise TransportError("OpenAI error", status_code=e.status_code, details=_error_text(e)) from e
            logger.warning(f"Structured output rejected ({e.status_code}); retrying with json_object format")
            try:
                response = self._create(self.build_request(system_prompt, user_json, strict=False))
            except APIStatusError as e2:
                raise TransportError("OpenAI error", status_code=e2.status_code, details=_error_text(e2)) from e2

        def accept(content: Any) -> Any:
            data = parse_content(content)
            return validate(data) if validate is not None else data

        return extract_content(response, accept=accept)


def _error_text(e: APIStatusError) -> str:
    parts = [str(getattr(e, "message", "") or "")]
    body = getattr(e, "body", None)
    if body is not None:
        parts.append(json.dumps(body) if isinstance(body, (dict, list)) else str(body))
    return " ".join(p for p in parts if p)


def _is_schema_rejection(e: APIStatusError) -> bool:
    text = _error_text(e)
    return any(marker in text for marker in SCHEMA_REJECTION_MARKERS)


# ------------------------ Remote Analyzer ------------------------ #

class RemoteAnalyzer:
    """Remote half of the analysis: fixed prompt + intake in, report dict out."""

    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client or LLMClient()

    def analyze(self, system_prompt: str, user_json: Any) -> Dict[str, Any]:
        return self.client.complete_json(system_prompt, user_json, validate=coerce_report)


_shared_lock = threading.Lock()
_shared: Dict[str, RemoteAnalyzer] = {}


def get_remote_analyzer() -> RemoteAnalyzer:
    """
    Process-wide RemoteAnalyzer, built on first use so one OpenAI client
    and its connection pool serve every request. Rebuilt when
    OPENAI_API_KEY changes; a missing key raises ConfigurationError.
    """
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ConfigurationError("Missing OPENAI_API_KEY")
    with _shared_lock:
        analyzer = _shared.get(api_key)
        if analyzer is None:
            _shared.clear()
            analyzer = RemoteAnalyzer(LLMClient(api_key=api_key))
            _shared[api_key] = analyzer
        return analyzer
