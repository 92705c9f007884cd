"""
batchcoder.scanner
~~~~~~~~~~~~~~~~~~
Pure path helpers: where an encode's output goes, and which files in a
folder are worth queueing. No Qt, no subprocess — easy to unit-test in
isolation.
"""

from __future__ import annotations

from pathlib import Path

# Extensions we consider as valid input files
MEDIA_EXTENSIONS: frozenset[str] = frozenset({
    ".mp4", ".mov", ".mxf", ".avi", ".mkv",
    ".m4v", ".wmv", ".flv", ".webm", ".ts",
    ".mpg", ".mpeg", ".m2t", ".m2ts", ".dv",
    ".mp3", ".wav", ".flac", ".aac", ".m4a", ".ogg", ".opus",
})

CONVERTED_SUFFIX = "_converted"


# ── Public API ────────────────────────────────────────────────────────────────

def build_output_path(
    input_file: Path | str,
    container: str,
    output_name: str | None = None,
) -> Path:
    """
    Given an input file, return where its converted output is written.

    A non-blank *output_name* is placed beside the input and only gets the
    container as extension when it has none of its own. Otherwise the whole
    input name (extension included) is kept and a suffix appended.

    Example:
        build_output_path("/a/b/clip.mov", "mp4", "name")  → /a/b/name.mp4
        build_output_path("/a/b/clip.mov", "mp4", None)    → /a/b/clip.mov_converted.mp4
    """
    input_file = Path(input_file)
    custom = output_name.strip() if output_name else ""

    if custom:
        output = input_file.parent / custom
        if not output.suffix:
            output = output.with_name(f"{output.name}.{container}")
        return output

    return input_file.with_name(f"{input_file.name}{CONVERTED_SUFFIX}.{container}")


def collect_media_files(folder: Path) -> list[Path]:
    """
    Return all media files directly inside *folder* (non-recursive), sorted.

    Outputs of earlier runs (``*_converted.<ext>``) are left out so a folder
    can be queued again without converting its own results.
    """
    if not folder.is_dir():
        return []
    return sorted(
        f for f in folder.iterdir()
        if f.is_file()
        and f.suffix.lower() in MEDIA_EXTENSIONS
        and not f.stem.endswith(CONVERTED_SUFFIX)
    )
