# backend/app/services/certificates.py
from __future__ import annotations

import re
import time
from typing import Callable, Optional, Protocol

from ..config import settings
from ..models import Inspection

_UNSAFE = re.compile(r"[^A-Za-z0-9_-]+")


class CertificateGenerator(Protocol):
    async def generate(self, inspection: Inspection) -> str:
        ...


def _sanitize(name: str) -> str:
    return _UNSAFE.sub("_", name or "")


class StoredCertificateGenerator:
    """
    Default generator: names the certificate the way the storage bucket does
    and returns its public URL. Rendering the PDF happens elsewhere.
    """

    def __init__(self, base_url: Optional[str] = None, clock: Callable[[], float] = time.time) -> None:
        self.base_url = (base_url or settings.certificate_base_url).rstrip("/")
        self.clock = clock

    async def generate(self, inspection: Inspection) -> str:
        stamp = int(self.clock() * 1000)
        return f"{self.base_url}/FSIC-{_sanitize(str(inspection.id))}-{stamp}.pdf"
