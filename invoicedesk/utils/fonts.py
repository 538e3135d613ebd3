from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from reportlab.lib.fonts import addMapping
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont, TTFError

logger = logging.getLogger(__name__)

BASE_FONT = "Helvetica"
BASE_FONT_BOLD = "Helvetica-Bold"

UNICODE_FAMILY = "NotoSansKannada"
UNICODE_VARIANTS = (
    ("NotoSansKannada", "NotoSansKannada-Regular.ttf", 0),
    ("NotoSansKannada-Bold", "NotoSansKannada-Bold.ttf", 1),
)


def register_unicode_fonts(font_dir: Optional[str]) -> set[str]:
    """Register the Kannada TTF family found in ``font_dir``.

    Returns the font names that were registered. Missing or unreadable
    files are logged and skipped so rendering falls back to Helvetica.
    """
    if not font_dir:
        return set()
    base = Path(font_dir)
    registered: set[str] = set()
    for font_name, filename, bold in UNICODE_VARIANTS:
        path = base / filename
        if not path.exists():
            logger.info("Unicode font %s not found in %s", filename, base)
            continue
        try:
            pdfmetrics.registerFont(TTFont(font_name, str(path)))
        except (TTFError, OSError) as exc:
            logger.error("Failed to register %s for PDF output: %s", filename, exc)
            continue
        addMapping(UNICODE_FAMILY, bold, 0, font_name)
        registered.add(font_name)
    return registered
