"""Formatting helpers for uploader log lines."""

SIZE_UNITS = ('B', 'KiB', 'MiB', 'GiB', 'TiB')


def format_file_size(size_bytes: int) -> str:
    """Render a byte count with a binary unit, e.g. ``512 B`` or ``1.5 MiB``."""
    size = float(size_bytes)
    for unit in SIZE_UNITS:
        if size < 1024 or unit == SIZE_UNITS[-1]:
            break
        size /= 1024
    if unit == 'B':
        return f"{size_bytes} B"
    return f"{size:.1f} {unit}"
