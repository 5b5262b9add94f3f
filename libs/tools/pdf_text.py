from __future__ import annotations

import io
import logging
import re

import pdfplumber

logging.getLogger("pdfminer").setLevel(logging.ERROR)

_CID_RE = re.compile(r"\(cid:\d+\)")


def extract_text(data: bytes) -> str:
    if not data:
        raise ValueError("Empty resume file")
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse PDF resume: {exc}") from exc
    return _CID_RE.sub("", "\n".join(pages)).strip()
