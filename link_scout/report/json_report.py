# link_scout/report/json_report.py

"""
JSON report of a LinkScout batch.

Writes the wire form of a BatchResponse, fetched content included, to a file.
"""
import json
from pathlib import Path

from link_scout.orchestrator import BatchResponse


def render_json(response: BatchResponse, output_path: Path | str, pretty: bool = True) -> Path:
    """
    Save *response* as JSON at *output_path* and return the path.

    :param response: outcome of ``process_batch``
    :param output_path: target file; parent directories are created
    :param pretty: indent the output by two spaces

    Example:
    ```python
    from link_scout.report.json_report import render_json
    path = render_json(response, 'reports/batch.json')
    ```
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    data = response.to_dict(include_content=True)

    with output.open('w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=2 if pretty else None)

    return output
