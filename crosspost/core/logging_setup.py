from __future__ import annotations

import logging

from crosspost.core.paths import DataPaths
from crosspost.core.redaction import RedactingFilter

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO", paths: DataPaths | None = None) -> None:
    root = logging.getLogger("crosspost")
    root.setLevel(level)
    if getattr(root, "_crosspost_configured", False):
        return

    redactor = RedactingFilter()
    formatter = logging.Formatter(LOG_FORMAT)

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    stream.addFilter(redactor)
    root.addHandler(stream)

    if paths is not None:
        paths.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(paths.log_dir / "crosspost.log", encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.addFilter(redactor)
        root.addHandler(file_handler)

    root._crosspost_configured = True  # type: ignore[attr-defined]
