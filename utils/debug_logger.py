# utils/debug_logger.py

import os
import json
import logging

# Setup debug log directory and file
LOGS_DIR = os.getenv("LOGS_DIR", "logs")
os.makedirs(LOGS_DIR, exist_ok=True)
DEBUG_LOG_FILE = os.path.join(LOGS_DIR, "debugging.log")

# Configure debug logger
debug_logger = logging.getLogger("debugging")
debug_logger.setLevel(logging.DEBUG)
debug_logger.propagate = False

if not debug_logger.handlers:
    handler = logging.FileHandler(DEBUG_LOG_FILE, encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    handler.setFormatter(formatter)
    debug_logger.addHandler(handler)


def log_debug_event(tool, trace_id, documento_id, step, input_data=None, output_data=None):
    """
    Log structured debugging info for internal dev use.
    """
    entry = {
        "tool": tool,
        "trace_id": trace_id,
        "documento_id": documento_id,
        "step": step,
        "input_data": input_data or {},
        "output_data": output_data or {},
    }

    try:
        debug_logger.info(json.dumps(entry, ensure_ascii=False, default=str))
    except (TypeError, ValueError, OSError) as e:
        logging.error(f"[DebugLogger] ❌ Failed to write debug entry: {str(e)}")
