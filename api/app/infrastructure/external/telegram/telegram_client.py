"""
Cliente para interactuar con la API de Telegram.
"""
from typing import Optional

import httpx
from loguru import logger
from app.core.config import settings

# Límite de caracteres por mensaje de la Bot API
MAX_MESSAGE_LENGTH = 4096


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """
    Divide un texto largo en partes de a lo sumo `limit` caracteres,
    cortando por líneas (una línea más larga que el límite se corta a la fuerza).
    """
    parts: list[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                parts.append(current)
                current = ""
            parts.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            parts.append(current)
            current = line
        else:
            current = candidate
    if current:
        parts.append(current)
    return parts


class TelegramClient:
    """
    Cliente simple para enviar mensajes vía Telegram Bot API.
    """

    def __init__(self, bot_token: Optional[str] = None):
        self.bot_token = bot_token or settings.TELEGRAM_BOT_TOKEN
        self.base_url = f"https://api.telegram.org/bot{self.bot_token}"

    async def send_message(self, text: str, chat_id: str) -> bool:
        """
        Envía un mensaje de texto (HTML) a un chat específico.

        Args:
            text: Contenido del mensaje.
            chat_id: ID del chat de destino.
        """
        if not self.bot_token or not chat_id:
            logger.warning("Telegram Bot Token o Chat ID no proporcionados. Saltando notificación.")
            return False

        url = f"{self.base_url}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                for part in split_message(text):
                    payload = {
                        "chat_id": chat_id,
                        "text": part,
                        "parse_mode": "HTML",
                        "disable_web_page_preview": True,
                    }
                    response = await client.post(url, json=payload)
                    response.raise_for_status()
                return True
        except httpx.HTTPError as e:
            logger.error(f"Error al enviar mensaje de Telegram: {e}")
            return False
