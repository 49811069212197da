"""link_scout.report: file reports of batch responses, used by the CLI."""

from link_scout.report.json_report import render_json

__all__ = ["render_json"]
