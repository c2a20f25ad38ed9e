"""Load and validate test profile files (YAML or JSON)."""

import json
import os
from dataclasses import dataclass
from typing import Dict, List

import yaml

from loadtester import config
from loadtester.models import ExecutionConfig, RequestTemplate

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")


class ProfileValidationError(Exception):
    """Raised when a test profile fails validation."""


@dataclass(frozen=True)
class LoadProfile:
    template: RequestTemplate
    config: ExecutionConfig
    name: str = ""


def load_profile(path: str) -> LoadProfile:
    """Load a test profile from a YAML or JSON file.

    Args:
        path: Path to the profile file.

    Returns:
        A validated LoadProfile.

    Raises:
        ProfileValidationError: If the file is missing, unreadable, or invalid.
    """
    if not os.path.isfile(path):
        raise ProfileValidationError(f"profile file not found: {path}")

    ext = os.path.splitext(path)[1].lower()
    try:
        with open(path, "r") as f:
            if ext in (".yaml", ".yml"):
                raw = yaml.safe_load(f)
            elif ext == ".json":
                raw = json.load(f)
            else:
                raise ProfileValidationError(
                    f"unsupported file extension: {ext} (expected .yaml, .yml, or .json)"
                )
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ProfileValidationError(f"failed to parse {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ProfileValidationError("profile must be a mapping/object at the top level")

    return build_profile(raw)


def build_profile(raw: dict) -> LoadProfile:
    """Construct and validate a LoadProfile from a raw dict."""
    errors: List[str] = []

    request_raw = raw.get("request")
    if not isinstance(request_raw, dict):
        errors.append("'request' is required and must be a mapping")
        request_raw = {}
    template = _parse_request(request_raw, errors)

    run_raw = raw.get("run", {})
    if not isinstance(run_raw, dict):
        errors.append("'run' must be a mapping")
        run_raw = {}
    exec_config = _parse_run(run_raw, errors)

    if errors:
        raise ProfileValidationError(
            "profile validation failed:\n  - " + "\n  - ".join(errors)
        )

    return LoadProfile(
        template=template,
        config=exec_config,
        name=str(raw.get("name", "")),
    )


def parse_headers(raw, errors: List[str]) -> Dict[str, str]:
    """Accept a mapping or a list of {key, value} pairs; drop blank pairs."""
    pairs = []
    if isinstance(raw, dict):
        pairs = list(raw.items())
    elif isinstance(raw, list):
        for i, item in enumerate(raw):
            if not isinstance(item, dict):
                errors.append(f"request.headers[{i}] must be a mapping with key and value")
                continue
            pairs.append((item.get("key", ""), item.get("value", "")))
    elif raw is not None:
        errors.append("'request.headers' must be a mapping or a list")

    headers = {}
    for key, value in pairs:
        key = "" if key is None else str(key)
        value = "" if value is None else str(value)
        if key.strip() and value.strip():
            headers[key] = value
    return headers


def _parse_request(raw: dict, errors: List[str]) -> RequestTemplate:
    url = raw.get("url")
    if not url or not isinstance(url, str):
        errors.append("'request.url' is required and must be a non-empty string")
        url = ""

    method = str(raw.get("method", config.DEFAULT_METHOD)).upper()
    if method not in ALLOWED_METHODS:
        errors.append(f"'request.method' must be one of {', '.join(ALLOWED_METHODS)}")

    body = raw.get("body", "")
    if isinstance(body, (dict, list)):
        body = json.dumps(body, indent=2)
    elif body is None:
        body = ""
    elif not isinstance(body, str):
        errors.append("'request.body' must be a string or a JSON-compatible mapping/list")
        body = ""

    headers = parse_headers(raw.get("headers"), errors)
    return RequestTemplate(url=url, method=method, headers=headers, body=body)


def _parse_run(raw: dict, errors: List[str]) -> ExecutionConfig:
    values = {}
    defaults = {
        "repetitions": config.DEFAULT_REPETITIONS,
        "delay_ms": config.DEFAULT_DELAY_MS,
        "concurrency": config.DEFAULT_CONCURRENCY,
    }
    for name, default in defaults.items():
        value = raw.get(name, default)
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"'run.{name}' must be an integer")
            value = default
        values[name] = value
    return ExecutionConfig(**values)
