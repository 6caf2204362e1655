"""
AromaChat - LLM call log.

Writes one JSON record per LLM call, named after the request trace id, so a
failed /api/recipe-wizard response can be matched with the prompt and the
model output behind it. Enabled via AROMACHAT_LOG_PROMPTS=1 or the
--log-prompts flag of `aromachat serve`.

Layout: <log_dir>/<YYYY-MM-DD>/<trace_id>.<prompt_name>.json
"""

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

LOG_PROMPTS = os.getenv("AROMACHAT_LOG_PROMPTS", "0") == "1"
LOG_DIR = Path("prompt_logs")


def enable_prompt_logging(enabled: bool = True, log_dir: Path | None = None) -> None:
    """Enable or disable the call log, optionally moving it to `log_dir`."""
    global LOG_PROMPTS, LOG_DIR
    LOG_PROMPTS = enabled
    if log_dir is not None:
        LOG_DIR = Path(log_dir)


def get_logging_status() -> dict:
    """Current call log configuration, for startup diagnostics."""
    return {
        "file_logging": LOG_PROMPTS,
        "log_dir": str(LOG_DIR),
        "env_AROMACHAT_LOG_PROMPTS": os.getenv("AROMACHAT_LOG_PROMPTS", "0"),
    }


def item_counts(response: Any) -> dict[str, int]:
    """Length of every list in a structured response, keyed by dotted path."""
    data = response.model_dump() if isinstance(response, BaseModel) else response
    counts: dict[str, int] = {}

    def walk(value: Any, path: str) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                walk(child, f"{path}.{key}" if path else key)
        elif isinstance(value, list):
            counts[path or "$"] = len(value)

    walk(data, "")
    return counts


def _validation_error(error: BaseException) -> ValidationError | None:
    # Instructor raises its own retry exception once max_retries is exhausted,
    # chained from the last schema failure
    while error is not None:
        if isinstance(error, ValidationError):
            return error
        error = error.__cause__
    return None


def describe_error(error: BaseException) -> dict[str, Any]:
    record: dict[str, Any] = {"type": type(error).__name__, "message": str(error)}
    attempts = getattr(error, "n_attempts", None)
    if attempts is not None:
        record["attempts"] = attempts

    invalid = _validation_error(error)
    if invalid is not None:
        record["validation_errors"] = [
            {"loc": ".".join(str(p) for p in e["loc"]), "msg": e["msg"], "type": e["type"]}
            for e in invalid.errors()
        ]
    return record


def log_llm_call(
    *,
    trace_id: str | None,
    prompt_name: str,
    model: str,
    system_prompt: str,
    user_prompt: str,
    response_model: str,
    duration_ms: int,
    config: dict | None = None,
    response: Any = None,
    error: BaseException | None = None,
) -> Path | None:
    """
    Record one LLM call.

    Status is "ok", "invalid_output" (the model never produced output matching
    the response model) or "error". Returns the record's path, or None when
    logging is disabled or the file cannot be written.
    """
    if not LOG_PROMPTS:
        return None

    trace_id = trace_id or f"untraced_{uuid.uuid4().hex[:13]}"
    now = datetime.now(timezone.utc)

    record: dict[str, Any] = {
        "trace_id": trace_id,
        "prompt_name": prompt_name,
        "timestamp": now.isoformat(),
        "model": model,
        "response_model": response_model,
        "config": config or {},
        "duration_ms": duration_ms,
        "system_prompt": system_prompt,
        "user_prompt": user_prompt,
    }
    if error is not None:
        described = describe_error(error)
        record["status"] = "invalid_output" if "validation_errors" in described else "error"
        record["error"] = described
    else:
        record["status"] = "ok"
        record["item_counts"] = item_counts(response)
        record["response"] = response.model_dump() if isinstance(response, BaseModel) else response

    path = LOG_DIR / now.strftime("%Y-%m-%d") / f"{trace_id}.{prompt_name}.json"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(record, indent=2, default=str), encoding="utf-8")
    except OSError as e:
        logger.warning(f"Could not write LLM call log {path}: {e}")
        return None
    return path
