"""Modelos y entidades del dominio.

Aquí viven las estructuras de datos puras: descriptores de request, respuestas
crudas, envelopes clasificados y la taxonomía de errores. El dominio no conoce
httpx, ni la CLI.
"""
