"""Exportación JSON de envelopes.

Cada envelope se exporta junto con el endpoint/método que lo originó, para
poder auditar un batch sin re-ejecutarlo.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence

from core.domain.models import ResultEnvelope


def envelope_to_dict(envelope: ResultEnvelope) -> dict[str, Any]:
    payload = envelope.model_dump(mode="json")
    request = envelope.request
    if request is not None:
        payload["request"] = {
            "method": request.method.value,
            "endpoint": request.endpoint,
            "tag": request.tag,
        }
    return payload


def export_envelopes_json(*, envelopes: Sequence[ResultEnvelope], output_path: Path) -> Path:
    """Exporta los envelopes a JSON UTF-8 con formato estable."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = [envelope_to_dict(envelope) for envelope in envelopes]
    output_path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return output_path
