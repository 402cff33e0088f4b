"""
Centraliza las llamadas al LLM (chat.completions).
OpenAI vía SDK; otros proveedores "tipo OpenAI" vía httpx.
"""
import asyncio
from typing import Any, Dict, List, Optional

import httpx
from openai import OpenAI

from utils.llm_config import get_llm_config, LLMProvider


def get_openai_client(tool: Optional[str] = None) -> OpenAI:
    """
    Obtiene un cliente de OpenAI configurado según el tool.
    """
    cfg = get_llm_config(tool)
    return OpenAI(api_key=cfg["api_key"], base_url=cfg["base_url"])


async def chat_completion(
    messages: List[Dict[str, Any]],
    *,
    tool: Optional[str] = None,
    timeout: float = 30.0,
    **params
) -> Dict[str, Any]:
    """
    Llamada tradicional a chat.completions.create (async)

    Args:
        messages: Lista de mensajes en formato OpenAI
        tool: Nombre del tool para configuración (ej: "PREAVISO")
        timeout: segundos máximos para la llamada HTTP
        **params: Parámetros adicionales (temperature, max_tokens, etc.)

    Returns:
        Dict con la respuesta completa del proveedor
    """
    cfg = get_llm_config(tool)

    body = {
        "model": cfg["model"],
        "messages": messages,
        **params
    }

    # OPENAI: usa sdk porque da manejo automático de reintentos
    if cfg["provider"] == LLMProvider.OPENAI:
        client = OpenAI(api_key=cfg["api_key"], base_url=cfg["base_url"], timeout=timeout)
        # El SDK es síncrono: se ejecuta en thread aparte para no bloquear el loop
        resp = await asyncio.to_thread(client.chat.completions.create, **body)
        return resp.model_dump()

    headers = {
        "Authorization": f"Bearer {cfg['api_key']}",
        "Content-Type": "application/json"
    }
    async with httpx.AsyncClient(timeout=timeout) as client:
        r = await client.post(f"{cfg['base_url']}/chat/completions",
                              headers=headers, json=body)
        r.raise_for_status()
        return r.json()


def extract_message_text(response: Dict[str, Any]) -> str:
    """Saca el texto del primer choice de una respuesta chat.completions."""
    choices = response.get("choices") or []
    if not choices:
        return ""
    message = choices[0].get("message") or {}
    return (message.get("content") or "").strip()
