"""
Configuración y constantes del núcleo de preaviso
"""
import os

from dotenv import load_dotenv

load_dotenv()

# Variables de entorno
PREAVISO_DEBUG = os.getenv("PREAVISO_DEBUG", "0") == "1"
KNOWLEDGE_CHUNKS_TABLE = os.getenv("KNOWLEDGE_CHUNKS_TABLE", "knowledge_chunks")

# Trámite
TRAMITE_PREAVISO = "preaviso"
TRAMITE_NAME = "Preaviso de Compraventa"
SCOPE_CHAT_GENERATION = "chat_generation"

# Prompts (Prompts/Preaviso/system_prompt_vN.txt)
PROMPT_FOLDER = "Preaviso"
SYSTEM_PROMPT_PATTERN = "system_prompt"

# Constantes
MAX_HISTORY_MESSAGES = 10
MAX_DOCUMENT_SNIPPETS = 6
KNOWLEDGE_MAX_SELECTED = 8
KNOWLEDGE_TOP_FALLBACK = 5
KNOWLEDGE_SECTION_MARKER = "KNOWLEDGE OFICIAL (fuente versionada):"
