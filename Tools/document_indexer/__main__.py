# Tools/document_indexer/__main__.py
# CLI entry point para el indexador de documentos
# Uso: python -m Tools.document_indexer --documento_id ... [--force] [--local_dir Data] [--text_file doc.txt]

import os
import json
import argparse

from utils.errors import NotFoundError
from utils.logging_config import setup_logging

from .config import DEFAULT_CHUNKING_VERSION, CHUNKING_PROFILES
from .indexer import DocumentIndexingService, build_default_deps
from .models import DocumentMeta


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--documento_id", required=True)
    p.add_argument("--force", action="store_true")
    p.add_argument("--chunking_version", default=DEFAULT_CHUNKING_VERSION, choices=sorted(CHUNKING_PROFILES))
    p.add_argument("--local_dir", default=None, help="Guarda chunks en JSONL local en lugar de Supabase")
    p.add_argument("--text_file", default=None, help="Indexa el texto de este archivo (sin consultar Supabase)")
    p.add_argument("--tramite_id", default=None)
    p.add_argument("--user_id", default="cli")
    args = p.parse_args()

    setup_logging()
    deps = build_default_deps(local_dir=args.local_dir)

    if args.text_file:
        with open(args.text_file, "r", encoding="utf-8") as f:
            text = f.read()
        doc = DocumentMeta(
            id=args.documento_id,
            nombre=os.path.basename(args.text_file),
            tipo="texto",
            metadata={"text": text},
        )
        deps.find_documento_by_id = lambda _id: doc
        deps.find_tramite_id_by_documento_id = lambda _id: args.tramite_id

    service = DocumentIndexingService(deps, chunking_version=args.chunking_version)
    try:
        res = service.index_document(args.documento_id, force_reindex=args.force, user_id=args.user_id).to_dict()
    except NotFoundError as e:
        res = {"status": "not_found", "error": str(e)}

    print(json.dumps(res, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
