"""Navegación por páginas a partir de un envelope exitoso.

El bloque `paging` puede traer cursores (`cursors.after` / `cursors.before`)
y/o links absolutos (`next` / `previous`). Si hay links, mandan ellos: la API
omite `next` en la última página aunque siga enviando cursores.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from core.domain.models import PagingLinks, RequestDescriptor, ResultEnvelope
from core.services.serializer import ACCESS_TOKEN_PARAM, FORMAT_PARAM

_VERSION_SEGMENT_RE = re.compile(r"^v\d+(\.\d+)?$")
_LINK_PARAMS_TO_DROP = frozenset({ACCESS_TOKEN_PARAM, FORMAT_PARAM})


class PagingDirection(str, Enum):
    NEXT = "next"
    PREVIOUS = "previous"


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


class PagingNavigator:
    """Derive the request for the adjacent page of a result."""

    @staticmethod
    def extract(parsed_body: Any) -> PagingLinks | None:
        if not isinstance(parsed_body, dict):
            return None
        paging = parsed_body.get("paging")
        if not isinstance(paging, dict):
            return None
        cursors = paging.get("cursors") if isinstance(paging.get("cursors"), dict) else {}
        links = PagingLinks(
            after=_as_str(cursors.get("after")),
            before=_as_str(cursors.get("before")),
            next_url=_as_str(paging.get("next")),
            previous_url=_as_str(paging.get("previous")),
        )
        if not any((links.after, links.before, links.next_url, links.previous_url)):
            return None
        return links

    def next(self, envelope: ResultEnvelope, request: RequestDescriptor | None = None) -> RequestDescriptor | None:
        return self.request_for(envelope, PagingDirection.NEXT, request=request)

    def previous(
        self, envelope: ResultEnvelope, request: RequestDescriptor | None = None
    ) -> RequestDescriptor | None:
        return self.request_for(envelope, PagingDirection.PREVIOUS, request=request)

    def request_for(
        self,
        envelope: ResultEnvelope,
        direction: PagingDirection,
        *,
        request: RequestDescriptor | None = None,
    ) -> RequestDescriptor | None:
        """Return the descriptor for `direction`, or None when there is no such page.

        The derived descriptor keeps the method, credential, callback, version
        and tag of the original one.
        """

        original = request or envelope.request
        if original is None or envelope.error is not None:
            return None
        links = envelope.paging or self.extract(envelope.parsed_body)
        if links is None:
            return None

        if links.has_links:
            url = links.next_url if direction is PagingDirection.NEXT else links.previous_url
            if not url:
                return None
            derived = self._from_link(original, url)
        else:
            cursor = links.after if direction is PagingDirection.NEXT else links.before
            if not cursor:
                return None
            derived = self._from_cursor(original, direction, cursor)

        if derived.path == original.path and derived.parameters == original.parameters:
            return None
        return derived

    @staticmethod
    def _from_link(original: RequestDescriptor, url: str) -> RequestDescriptor:
        parts = urlsplit(url)
        segments = [s for s in parts.path.split("/") if s]
        version = original.version
        if segments and _VERSION_SEGMENT_RE.match(segments[0]):
            version = segments[0]
            segments = segments[1:]
        parameters = {
            key: value
            for key, value in parse_qsl(parts.query, keep_blank_values=True)
            if key not in _LINK_PARAMS_TO_DROP
        }
        return original.with_changes(endpoint="/".join(segments), parameters=parameters, version=version)

    @staticmethod
    def _from_cursor(original: RequestDescriptor, direction: PagingDirection, cursor: str) -> RequestDescriptor:
        parameters = dict(original.parameters)
        if direction is PagingDirection.NEXT:
            parameters.pop("before", None)
            parameters["after"] = cursor
        else:
            parameters.pop("after", None)
            parameters["before"] = cursor
        return original.with_changes(parameters=parameters)
