from __future__ import annotations

from pathlib import Path, PurePath


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def flow_output_dir(base_dir: Path, subdir: str | None = None) -> Path:
    out = base_dir / subdir if subdir else base_dir
    ensure_dir(out)
    return out.resolve()


def capture_path(base_dir: Path, file_name: str, subdir: str | None = None) -> Path:
    """Absolute path for a screenshot; ``file_name`` must be a bare name."""
    if not file_name or PurePath(file_name).name != file_name:
        raise ValueError(f"Capture file name must not contain directories: {file_name!r}")
    return flow_output_dir(base_dir, subdir) / file_name
