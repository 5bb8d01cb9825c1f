"""Snapshot exporters: JSON, CSV and Markdown."""
import csv
import io
import json
import os
import time

EXPORT_FIELDS = (
    "port", "protocol", "pid", "process_name", "local_address",
    "state", "memory_mb", "cpu_percent", "uptime_secs",
)

EXPORT_FORMATS = ("json", "csv", "md")

EXTENSIONS = {"json": "json", "csv": "csv", "md": "md"}


def entry_record(entry):
    """One exported record; keys in EXPORT_FIELDS order."""
    return {name: getattr(entry, name) for name in EXPORT_FIELDS}


def _entries(source):
    return list(getattr(source, "entries", source))


def to_json(source):
    return json.dumps([entry_record(e) for e in _entries(source)], indent=2)


def to_csv(source):
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_FIELDS)
    for e in _entries(source):
        rec = entry_record(e)
        writer.writerow(["" if rec[f] is None else rec[f] for f in EXPORT_FIELDS])
    return buf.getvalue()


def _md_cell(value):
    if value is None:
        return "-"
    return str(value).replace("|", "\\|")


def to_markdown(source):
    lines = [
        "| " + " | ".join(EXPORT_FIELDS) + " |",
        "|" + "|".join("---" for _ in EXPORT_FIELDS) + "|",
    ]
    for e in _entries(source):
        rec = entry_record(e)
        lines.append("| " + " | ".join(_md_cell(rec[f]) for f in EXPORT_FIELDS) + " |")
    return "\n".join(lines) + "\n"


_RENDERERS = {"json": to_json, "csv": to_csv, "md": to_markdown}


def render(source, fmt):
    """Render a Snapshot (or a list of entries) as json, csv or md."""
    fmt = fmt.lower()
    if fmt == "markdown":
        fmt = "md"
    if fmt not in _RENDERERS:
        raise ValueError(f"unknown export format: {fmt}")
    return _RENDERERS[fmt](source)


def export_filename(fmt, now=None):
    stamp = time.strftime("%Y%m%d_%H%M%S", time.localtime(now))
    return f"portr_export_{stamp}.{EXTENSIONS[fmt]}"


def write_export(source, fmt, directory=".", now=None):
    """Write the export next to the working directory and return its path."""
    path = os.path.join(directory, export_filename(fmt, now))
    with open(path, "w", encoding="utf-8") as f:
        f.write(render(source, fmt))
    return path
