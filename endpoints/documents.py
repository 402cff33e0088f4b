# endpoints/documents.py
# Indexado de documentos del expediente (chunking + embeddings)

import logging
import os
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from Tools.document_indexer.indexer import DocumentIndexingService, build_default_deps

logger = logging.getLogger(__name__)

router = APIRouter()


class IndexRequest(BaseModel):
    forceReindex: bool = False
    traceId: Optional[str] = None
    userId: Optional[str] = None


@lru_cache(maxsize=1)
def get_indexing_service() -> DocumentIndexingService:
    """Servicio compartido por el proceso (los locks por documento viven aquí)."""
    return DocumentIndexingService(build_default_deps(local_dir=os.getenv("INDEX_LOCAL_DIR") or None))


@router.post("/documents/{documento_id}/index")
def index_document(
    documento_id: str,
    body: Optional[IndexRequest] = None,
    service: DocumentIndexingService = Depends(get_indexing_service),
):
    body = body or IndexRequest()
    logger.info(f"[IndexEndpoint] 📄 documento={documento_id} force={body.forceReindex}")
    result = service.index_document(
        documento_id,
        force_reindex=body.forceReindex,
        trace_id=body.traceId,
        user_id=body.userId or "system",
    )
    return result.to_dict()
