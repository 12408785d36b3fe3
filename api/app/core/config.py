"""
Configuracion central de la aplicacion.
Gestiona variables de entorno y configuraciones globales.
Soporta configuracion dinamica para desarrollo (ENVIRONMENT=development)
y produccion (ENVIRONMENT=production).
"""
import json
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.

    Sincronizacion Airtable:
    - AIRTABLE_ENABLE: apaga todo el servicio (sin pull, sin webhooks, sin escrituras)
    - AIRTABLE_ENABLE_SYNC: pull desde Airtable y escrituras hacia Airtable
    - AIRTABLE_ENABLE_UPDATE: updates hacia Airtable (los creates no dependen de este flag)
    - AIRTABLE_ENABLE_REALTIME: webhooks (deltas en tiempo real)
    - DATABASE_URL se puede especificar completa o por componentes
    """

    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="Sincronizacion Airtable - PostgreSQL")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuracion del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Base de datos - Componentes separados (recomendado para flexibilidad)
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="training_user")
    DATABASE_PASSWORD: str = Field(default="training_pass")
    DATABASE_NAME: str = Field(default="training_db")

    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DATABASE_SCHEMA: str = Field(default="public")

    # Airtable
    AIRTABLE_ENABLE: bool = Field(default=True)
    AIRTABLE_ENABLE_SYNC: bool = Field(default=True)
    AIRTABLE_ENABLE_UPDATE: bool = Field(default=True)
    AIRTABLE_ENABLE_REALTIME: bool = Field(default=True)
    AIRTABLE_TOKEN: str = Field(default="")
    AIRTABLE_BASE_ID: str = Field(default="")

    # Reportes: los errores de negocio se repiten cada REPORT_REMINDER_MINUTES
    REPORT_INTERVAL_MINUTES: float = Field(default=60)
    REPORT_REMINDER_MINUTES: float = Field(default=24 * 60)

    # Webhooks
    WEBHOOK_PUBLIC_URL: str = Field(default="http://localhost:8000")
    WEBHOOK_PATH: str = Field(default="/api/v1/webhooks/airtable")
    WEBHOOK_POLL_SECONDS: int = Field(default=5)
    # Red de seguridad: lectura forzada aunque no haya llegado notificacion
    WEBHOOK_SAFETY_POLL_SECONDS: int = Field(default=15 * 60)

    # Pull inicial: providers independientes en paralelo
    INITIAL_PULL_WORKERS: int = Field(default=4)

    # Telegram (reporte de sincronizacion)
    TELEGRAM_BOT_TOKEN: str = Field(default="")
    TELEGRAM_REPORT_CHAT_ID: str = Field(default="")

    # CORS (acepta lista JSON o "*" para todos los origenes)
    CORS_ORIGINS: str = Field(default="*")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL esta definida, la usa directamente.
        Si no, construye la URL desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    @computed_field
    @property
    def reminder_iterations(self) -> float:
        """Cantidad de reportes entre dos recordatorios del mismo error."""
        return self.REPORT_REMINDER_MINUTES / self.REPORT_INTERVAL_MINUTES

    @computed_field
    @property
    def is_development(self) -> bool:
        """Indica si el entorno es de desarrollo."""
        return self.ENVIRONMENT.lower() == "development"

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuracion de CORS.
    Acepta "*" para todos los origenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        # Si no es JSON valido, retornar como lista simple
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia global de configuración
settings = Settings()
