# utils/prompt_loader.py
# Carga la versión más reciente de un prompt: Prompts/{folder}/{pattern}_vN.txt

import os
import re
import logging
from typing import Optional

logger = logging.getLogger(__name__)

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
PROMPTS_DIR = os.getenv("PROMPTS_DIR", os.path.join(PROJECT_ROOT, "Prompts"))


def load_latest_prompt(tool_folder: str,
                       base_pattern: str,
                       with_filename: bool = False,
                       prompts_dir: Optional[str] = None):
    """
    Busca en Prompts/{tool_folder} el archivo {base_pattern}_vN.txt de mayor N.
    Si `with_filename=True` devuelve (contenido, nombre_de_archivo),
    de lo contrario solo el contenido.
    """
    folder_path = os.path.join(prompts_dir or PROMPTS_DIR, tool_folder)
    if not os.path.isdir(folder_path):
        logger.error(f"❌ Carpeta no existe: {folder_path}")
        if with_filename:
            return None, "N/A"
        return None

    # Regex para capturar la versión después de _v
    rgx = re.compile(rf"^{re.escape(base_pattern)}_v(\d+)\.txt$", re.IGNORECASE)
    candidates = []
    for fname in os.listdir(folder_path):
        m = rgx.match(fname)
        if m:
            version = int(m.group(1))
            candidates.append((version, fname))

    if not candidates:
        logger.error(f"⚠️ No hay prompts que cumplan patrón en {folder_path}")
        if with_filename:
            return None, "N/A"
        return None

    # Elige el mayor
    _, latest_file = max(candidates, key=lambda x: x[0])
    path = os.path.join(folder_path, latest_file)
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        logger.error(f"❌ Error leyendo prompt {path}: {e}")
        if with_filename:
            return None, latest_file
        return None

    if with_filename:
        return content, latest_file
    return content


def prompt_version_from_filename(filename: str) -> str:
    """'system_prompt_v3.txt' -> 'v3' (o el nombre tal cual si no trae versión)."""
    m = re.search(r"_(v\d+)\.txt$", filename or "", re.IGNORECASE)
    return m.group(1).lower() if m else (filename or "N/A")
