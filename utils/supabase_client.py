# utils/supabase_client.py
# Cliente de Supabase compartido (lazy singleton)

import os
import logging
from typing import Optional

from dotenv import load_dotenv
from supabase import Client, create_client

load_dotenv()

logger = logging.getLogger(__name__)

_supabase_client: Optional[Client] = None


def get_supabase_client() -> Optional[Client]:
    """
    Obtiene o crea el cliente de Supabase (singleton).
    Regresa None si SUPABASE_URL / SUPABASE_KEY no están configurados,
    así los llamadores pueden operar en modo local.
    """
    global _supabase_client
    if _supabase_client is None:
        supabase_url = os.getenv("SUPABASE_URL")
        supabase_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY")

        if not supabase_url or not supabase_key:
            logger.warning("[Supabase] ⚠️ SUPABASE_URL o SUPABASE_KEY no configurados")
            return None

        _supabase_client = create_client(supabase_url, supabase_key)
        logger.info("[Supabase] ✅ Cliente inicializado")
    return _supabase_client


def require_supabase_client() -> Client:
    """Igual que get_supabase_client pero falla si no hay configuración."""
    client = get_supabase_client()
    if client is None:
        raise RuntimeError("Supabase no configurado (SUPABASE_URL / SUPABASE_KEY)")
    return client
