from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from settings import DATA_DIR

logger = logging.getLogger(__name__)

EXPORT_DIR = DATA_DIR / "exports"


def export_filename(company_name: str, week_key: str) -> str:
    """``Acme Cafe`` + ``Aug-4-2025`` -> ``Acme-Cafe-roster-Aug-4-2025.json``."""
    company = re.sub(r"\s+", "-", (company_name or "").strip()) or "roster"
    return f"{company}-roster-{week_key}.json"


def write_export(payload: Dict[str, Any], company_name: str, week_key: str, directory: Optional[Path] = None) -> Path:
    target_dir = Path(directory) if directory is not None else EXPORT_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = target_dir / export_filename(company_name, week_key)
    filename.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("Exported roster data to %s", filename)
    return filename


def export_roster_data(session, directory: Optional[Path] = None) -> Path:
    """Write every loaded week, with employees, locations and holidays, to one JSON file."""
    return write_export(
        session.export_payload(),
        session.config.company_name,
        session.week_key,
        directory,
    )
