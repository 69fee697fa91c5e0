"""Contrato del transporte.

Por qué Protocol:
- El pipeline depende de esta abstracción y no de httpx; los tests pueden
  inyectar dobles que cumplan el contrato estructural.
"""

from __future__ import annotations

from concurrent.futures import Future
from typing import Callable, Protocol, runtime_checkable

from core.domain.models import WireResponse
from core.services.serializer import WirePayload


@runtime_checkable
class Transport(Protocol):
    """Ejecuta un intercambio físico por invocación, sin reintentos.

    Reglas de diseño:
    - Nunca lanza por fallos de red: los representa como `WireResponse`
      sin `http_status`.
    - Con `timeout_millis > 0` no entrega resultados más tarde que ese
      presupuesto.
    """

    def execute(self, payload: WirePayload, timeout_millis: int = 0) -> WireResponse:
        ...

    async def execute_async(self, payload: WirePayload, timeout_millis: int = 0) -> WireResponse:
        ...

    def submit(
        self,
        payload: WirePayload,
        timeout_millis: int,
        on_complete: Callable[[WireResponse], None],
    ) -> Future[WireResponse]:
        ...
