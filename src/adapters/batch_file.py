"""Carga de archivos de batch (JSON) para la CLI.

Formatos soportados:
- Lista simple: `[{"endpoint": "me"}, {"endpoint": "me/friends", "params": {"limit": 5}}]`
- Objeto: `{"timeout_millis": 5000, "requests": [...]}`
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from core.domain.models import HttpMethod


class BatchFileEntry(BaseModel):
    endpoint: str = Field(..., min_length=1)
    method: HttpMethod = Field(default=HttpMethod.GET)
    params: dict[str, Any] = Field(default_factory=dict)
    tag: str | None = None
    depends_on: str | None = None
    public: bool = False


class BatchFile(BaseModel):
    requests: list[BatchFileEntry] = Field(default_factory=list)
    timeout_millis: int = Field(default=0, ge=0)


def load_batch_file(path: Path) -> BatchFile:
    raw = path.read_text(encoding="utf-8")
    data = json.loads(raw)
    if isinstance(data, list):
        data = {"requests": data}
    return BatchFile.model_validate(data)
