"""Configuración del Core.

Responsabilidad:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Entrega a cada ejecución de batch un objeto inmutable: versión de API,
  credencial compartida, timeouts y tamaño del pool de workers.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (cross-platform, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "graph-batch"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "graph-batch"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "graph-batch"
    return Path.home() / ".config" / "graph-batch"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


_USER_ENV_HEADER = "# graph-batch user config (.env)"


def _read_env_file(path: Path) -> dict[str, str]:
    """Lee pares KEY=VALUE; ignora comentarios, líneas vacías y `export `."""

    if not path.is_file():
        return {}
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        values[key] = value.strip().strip("'\"")
    return values


def write_user_env_vars(values: dict[str, str | None], *, env_path: Path | None = None) -> Path:
    """Actualiza el .env del usuario; un valor None elimina la variable."""

    env_path = env_path or get_user_env_file()
    current = _read_env_file(env_path)
    for key, value in values.items():
        if value is None:
            current.pop(key, None)
        else:
            current[key] = value

    env_path.parent.mkdir(parents=True, exist_ok=True)
    body = [_USER_ENV_HEADER, *(f"{key}={current[key]}" for key in sorted(current))]
    env_path.write_text("\n".join(body) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Configuración central, inmutable una vez construida.

    Cada ejecución de batch recibe una instancia explícita; no hay estado
    global mutable compartido entre llamadas.
    """

    model_config = SettingsConfigDict(
        env_prefix="GRAPH_BATCH_",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    base_url: str = Field(
        default="https://graph.facebook.com",
        min_length=8,
        description="Host de la Graph API (sin versión ni barra final).",
    )
    api_version: str = Field(
        default="v2.3",
        min_length=1,
        description="Versión de API por defecto para requests sin versión explícita.",
    )
    access_token: str | None = Field(
        default=None,
        description="Token bearer compartido (proveedor de credenciales).",
    )
    http_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Timeout del transporte cuando el batch no define uno (segundos).",
    )
    user_agent: str = Field(
        default="graph-batch/0.1",
        min_length=1,
        description="User-Agent enviado en cada intercambio.",
    )
    gzip_requests: bool = Field(
        default=True,
        description="Comprimir con gzip los cuerpos url-encoded salientes.",
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Tamaño del pool de workers para ejecución no bloqueante.",
    )
    log_level: str = Field(
        default="WARNING",
        description="Nivel de logging para la CLI (DEBUG, INFO, WARNING...).",
    )

    def graph_url(self, version: str | None = None) -> str:
        """URL base versionada, p.ej. `https://graph.facebook.com/v2.3`."""

        return f"{self.base_url.rstrip('/')}/{version or self.api_version}"
