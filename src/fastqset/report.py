from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Template

from .index import IndexResult

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>fastqset scan report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .small { color: #666; font-size: 0.9em; }
    .bad { color: #b00020; }
  </style>
</head>
<body>

<h1>fastqset scan report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Input</h2>
<table>
  <tr><th>Directory</th><td><code>{{ directory }}</code></td></tr>
  <tr><th>Mandatory read types</th><td>{{ mandatory | join(", ") }}</td></tr>
  <tr><th>Complete groups</th><td>{{ summary.groups | length }}</td></tr>
  <tr><th>Incomplete groups</th><td>{{ summary.incomplete | length }}</td></tr>
  <tr><th>Unmatched files</th><td>{{ summary.unmatched | length }}</td></tr>
</table>

<h2>Read groups</h2>
{% if summary.groups %}
<table>
  <tr><th>Sample</th><th>Lane</th><th>Chunk</th><th>Read types</th><th>Files</th></tr>
  {% for g in summary.groups %}
  <tr>
    <td>{{ g.sample }}</td><td>{{ g.lane }}</td><td>{{ g.chunk }}</td>
    <td>{{ g.read_types | join(", ") }}{% if g.r1_interleaved %} (R1/R2 interleaved){% endif %}</td>
    <td>{% for rt, p in g.files.items() %}<code>{{ p }}</code><br>{% endfor %}</td>
  </tr>
  {% endfor %}
</table>
{% else %}
<p>No complete read groups found.</p>
{% endif %}

{% if summary.incomplete %}
<h2 class="bad">Incomplete read groups</h2>
<table>
  <tr><th>Sample</th><th>Lane</th><th>Chunk</th><th>Present</th><th>Missing</th></tr>
  {% for g in summary.incomplete %}
  <tr>
    <td>{{ g.sample }}</td><td>{{ g.lane }}</td><td>{{ g.chunk }}</td>
    <td>{{ g.read_types | join(", ") }}</td><td class="bad">{{ g.missing | join(", ") }}</td>
  </tr>
  {% endfor %}
</table>
{% endif %}

{% if summary.file_issues %}
<h2 class="bad">File pre-check failures</h2>
<table>
  <tr><th>File</th><th>Problem</th></tr>
  {% for fi in summary.file_issues %}
  <tr><td><code>{{ fi.path }}</code></td><td>{{ fi.problem }}</td></tr>
  {% endfor %}
</table>
{% endif %}

{% if summary.unmatched %}
<h2>Unmatched files</h2>
<table>
  <tr><th>File</th><th>Reason</th></tr>
  {% for nm in summary.unmatched %}
  <tr><td><code>{{ nm.path }}</code></td><td>{{ nm.reason }}</td></tr>
  {% endfor %}
</table>
{% endif %}

<hr>
<p class="small">fastqset {{ version }}</p>
</body>
</html>"""
)


def render_scan_report(
    *,
    out_path: str | Path,
    version: str,
    directory: str,
    result: IndexResult,
    mandatory: Optional[list] = None,
) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    summary: Dict[str, Any] = result.summary()
    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        directory=directory,
        mandatory=mandatory or ["R1"],
        summary=summary,
    )

    out_path.write_text(html, encoding="utf-8")
    logger.info("Scan report written: %s", out_path)
    return out_path
