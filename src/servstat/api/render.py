"""HTML rendering of a StatusReport."""

from __future__ import annotations

import html
from functools import lru_cache
from pathlib import Path
from string import Template

from servstat.registry.models import ServiceOutcome, ServiceState, StatusReport

TEMPLATE_PATH = Path(__file__).resolve().parent.parent / "templates" / "status.html"


@lru_cache(maxsize=1)
def _load_template(path: Path = TEMPLATE_PATH) -> Template:
    return Template(path.read_text(encoding="utf-8"))


def _row(outcome: ServiceOutcome) -> str:
    state = outcome.state.value
    latency = f"{outcome.latency_ms:.0f}ms" if outcome.latency_ms else "—"
    return (
        "      <tr>"
        f"<td>{html.escape(outcome.identifier)}</td>"
        f'<td class="{state}">{state}</td>'
        f"<td>{html.escape(outcome.detail or '')}</td>"
        f"<td>{latency}</td>"
        "</tr>"
    )


def render_status_page(report: StatusReport, title: str = "Service status") -> str:
    """Render *report* as a full HTML page, one table row per outcome."""
    if len(report):
        summary = f"{report.count(ServiceState.UP)} of {len(report)} services up"
    else:
        summary = "No services configured"
    return _load_template().substitute(
        title=html.escape(title),
        summary=summary,
        rows="\n".join(_row(o) for o in report),
        generated_at=report.generated_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
    )
