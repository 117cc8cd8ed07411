from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class DataPaths:
    root: Path

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def log_dir(self) -> Path:
        return self.root / "logs"

    @property
    def connections_file(self) -> Path:
        return self.data_dir / "social_connections.jsonl"

    @property
    def llm_credentials_file(self) -> Path:
        return self.data_dir / "llm_credentials.jsonl"

    @property
    def campaigns_file(self) -> Path:
        return self.data_dir / "campaigns.jsonl"

    @property
    def drafts_file(self) -> Path:
        return self.data_dir / "platform_contents.jsonl"

    @property
    def events_file(self) -> Path:
        return self.data_dir / "events.jsonl"

    def all_files(self) -> list[Path]:
        return [
            self.connections_file,
            self.llm_credentials_file,
            self.campaigns_file,
            self.drafts_file,
            self.events_file,
        ]


def default_paths() -> DataPaths:
    return DataPaths(Path(os.environ.get("CROSSPOST_ROOT", Path.cwd() / ".crosspost")))


def ensure_directories(paths: DataPaths | None = None) -> DataPaths:
    paths = paths or default_paths()
    paths.data_dir.mkdir(parents=True, exist_ok=True)
    paths.log_dir.mkdir(parents=True, exist_ok=True)
    for file_path in paths.all_files():
        file_path.touch(exist_ok=True)
    return paths
