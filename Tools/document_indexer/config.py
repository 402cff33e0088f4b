# Tools/document_indexer/config.py
# Configuración y constantes para el indexador de documentos notariales

import os
import re
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    try:
        return float(raw) if raw not in (None, "") else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    try:
        return int(raw) if raw not in (None, "") else default
    except ValueError:
        return default


# ----------------------------
# Chunking profiles
# ----------------------------
# Cada versión fija sus parámetros para siempre: si cambian, es otra versión.
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class ChunkingProfile:
    version: str
    target_chars: int
    min_chars: int
    max_chars: int
    overlap_ratio: float
    split_pages: bool

    @property
    def overlap_chars(self) -> int:
        return max(1, int(self.target_chars * self.overlap_ratio))


CHUNKING_PROFILES = {
    p.version: p
    for p in (
        ChunkingProfile(
            version="v1_text_char_3600_overlap_12",
            target_chars=900 * CHARS_PER_TOKEN,
            min_chars=600 * CHARS_PER_TOKEN,
            max_chars=1200 * CHARS_PER_TOKEN,
            overlap_ratio=0.12,
            split_pages=False,
        ),
        ChunkingProfile(
            version="v2_page_char_3600_overlap_12",
            target_chars=900 * CHARS_PER_TOKEN,
            min_chars=600 * CHARS_PER_TOKEN,
            max_chars=1200 * CHARS_PER_TOKEN,
            overlap_ratio=0.12,
            split_pages=True,
        ),
    )
}

DEFAULT_CHUNKING_VERSION = os.getenv("CHUNKING_VERSION", "v1_text_char_3600_overlap_12")

# Límite duro del texto por chunk antes de persistir
MAX_CHUNK_TEXT_CHARS = 20000

# ----------------------------
# Embeddings
# ----------------------------
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIMENSIONS = _env_int("EMBEDDING_DIMENSIONS", 1536)
EMBEDDING_ENCODING = "cl100k_base"
EMBEDDING_MAX_INPUT_TOKENS = 8000

# ----------------------------
# Timeouts (segundos)
# ----------------------------
COLLABORATOR_TIMEOUT_SECONDS = _env_float("INDEXING_COLLABORATOR_TIMEOUT_SECONDS", 30.0)
INDEXING_TIMEOUT_SECONDS = _env_float("INDEXING_TIMEOUT_SECONDS", 300.0)

# ----------------------------
# Extracción de texto
# ----------------------------
MIN_USABLE_TEXT_CHARS = 80
MIN_ALNUM_RATIO = 0.55
ALNUM_RE = re.compile(r"[A-Za-z0-9\u00C0-\u017F]")
METADATA_TEXT_KEYS = ("rawText", "ocrText", "text", "textoCompleto")
S3_BUCKET = os.getenv("AWS_S3_BUCKET", "")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")

# ----------------------------
# Persistencia
# ----------------------------
CHUNKS_TABLE = os.getenv("DOCUMENT_CHUNKS_TABLE", "documento_text_chunks")
DOCUMENTOS_TABLE = "documentos"
TRAMITE_DOCUMENTOS_TABLE = "tramite_documentos"
CHUNKS_ON_CONFLICT = "documento_id,chunking_version,embedding_model,document_hash,page_number,chunk_index"
SEARCH_DEFAULT_LIMIT = 6
SEARCH_MAX_LIMIT = 20

# ----------------------------
# OCR cache
# ----------------------------
OCR_CACHE_PREFIX = "preaviso:ocr"
OCR_CACHE_DEFAULT_TTL_SECONDS = 7200
OCR_CACHE_MIN_TTL_SECONDS = 300
OCR_CACHE_MAX_TTL_SECONDS = 86400
OCR_CACHE_SCAN_COUNT = 200
OCR_CACHE_MAX_KEYS = 200
REDIS_URL = os.getenv("REDIS_URL", "")

# ----------------------------
# Regex patterns
# ----------------------------
BOUNDARY_RE = re.compile(r"[\n.!?;:]")
TRAILING_SPACES_RE = re.compile(r"[ \t]+\n")
MULTI_NEWLINE_RE = re.compile(r"\n{3,}")
PAGE_BREAK = "\f"
