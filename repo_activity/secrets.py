"""Utilities for loading local (gitignored) credentials."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

DEFAULT_SECRETS_FILENAME = "local_secrets.json"


def _default_secrets_path() -> Path:
    root = Path(__file__).resolve().parents[1]
    return root / DEFAULT_SECRETS_FILENAME


def load_local_secrets(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """Load secrets from a JSON file; return {} when unavailable."""

    candidate = path or os.getenv("LOCAL_SECRETS_FILE") or _default_secrets_path()
    secrets_path = Path(candidate).expanduser()
    if not secrets_path.exists():
        return {}
    try:
        with secrets_path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def resolve_github_tokens(secrets: Optional[Dict[str, Any]] = None) -> List[str]:
    """Return configured tokens, falling back to GITHUB_TOKEN from the environment."""

    secrets = load_local_secrets() if secrets is None else secrets
    tokens = [t for t in (secrets.get("github_tokens") or []) if isinstance(t, str) and t]
    if tokens:
        return tokens
    env_token = os.getenv("GITHUB_TOKEN", "").strip()
    return [env_token] if env_token else []


__all__ = ["load_local_secrets", "resolve_github_tokens", "DEFAULT_SECRETS_FILENAME"]
