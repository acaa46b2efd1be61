#!/usr/bin/env python3
"""
ABOUTME: Repository for claim charts with injectable backends
ABOUTME: InMemoryChartStore for tests, JsonChartStore for a durable JSON file
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, Optional

from claim_model import Chart, ClaimElement, ContextDoc

DEFAULT_STORE_PATH = "claim_charts.json"
STORE_FORMAT_VERSION = 1


class ChartNotFoundError(LookupError):
    pass


class ElementNotFoundError(LookupError):
    pass


class ChartStore(ABC):
    """
    Chart repository. Call open() before use and close() when done, or use
    the store as a context manager.
    """

    def __init__(self):
        self._charts: Dict[str, Chart] = {}
        self._is_open = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    @property
    def is_open(self) -> bool:
        return self._is_open

    def open(self) -> None:
        if self._is_open:
            return
        self._charts = {chart.id: chart for chart in self._load()}
        self._is_open = True

    def close(self) -> None:
        if not self._is_open:
            return
        self._flush()
        self._charts = {}
        self._is_open = False

    def _require_open(self):
        if not self._is_open:
            raise RuntimeError(f"{type(self).__name__} is not open")

    @abstractmethod
    def _load(self) -> List[Chart]:
        """Read all charts from the backend."""

    @abstractmethod
    def _flush(self) -> None:
        """Persist the in-memory charts to the backend."""

    # ------------------------------------------------------------
    # Chart operations
    # ------------------------------------------------------------

    def list_charts(self) -> List[Chart]:
        self._require_open()
        return sorted(self._charts.values(), key=lambda c: c.created_at, reverse=True)

    def get_chart(self, chart_id: str) -> Chart:
        self._require_open()
        chart = self._charts.get(chart_id)
        if chart is None:
            raise ChartNotFoundError(f"Chart not found: {chart_id}")
        return chart

    def save_chart(self, chart: Chart) -> Chart:
        self._require_open()
        self._charts[chart.id] = chart
        self._flush()
        return chart

    def delete_chart(self, chart_id: str) -> None:
        self._require_open()
        if chart_id not in self._charts:
            raise ChartNotFoundError(f"Chart not found: {chart_id}")
        del self._charts[chart_id]
        self._flush()

    def get_element(self, chart_id: str, element_id: str) -> ClaimElement:
        element = self.get_chart(chart_id).find_element(element_id)
        if element is None:
            raise ElementNotFoundError(f"Element {element_id} not found in chart {chart_id}")
        return element

    def update_element(
        self,
        chart_id: str,
        element_id: str,
        update_fn: Callable[[ClaimElement], ClaimElement],
    ) -> ClaimElement:
        """
        Replace one element with update_fn(element) and persist the chart.

        Returns:
            The replacement element
        """
        chart = self.get_chart(chart_id)
        current = self.get_element(chart_id, element_id)
        updated = update_fn(current)
        if updated is current:
            return current
        elements = tuple(updated if e.id == element_id else e for e in chart.elements)
        self.save_chart(replace(chart, elements=elements))
        return updated

    def upsert_context_doc(self, chart_id: str, doc: ContextDoc) -> Chart:
        """Add a reference document, replacing any existing one with the same name."""
        chart = self.get_chart(chart_id)
        docs = tuple(d for d in chart.context_docs if d.name != doc.name) + (doc,)
        return self.save_chart(replace(chart, context_docs=docs))

    def remove_context_doc(self, chart_id: str, name: str) -> bool:
        chart = self.get_chart(chart_id)
        docs = tuple(d for d in chart.context_docs if d.name != name)
        if len(docs) == len(chart.context_docs):
            return False
        self.save_chart(replace(chart, context_docs=docs))
        return True

    # ------------------------------------------------------------
    # State import/export
    # ------------------------------------------------------------

    def export_state(self, output_path: str) -> int:
        """Write every chart to a standalone JSON state file. Returns the chart count."""
        charts = self.list_charts()
        payload = [chart.to_dict() for chart in charts]
        Path(output_path).write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding='utf-8')
        return len(charts)

    def import_state(self, input_path: str) -> int:
        """
        Load charts from a JSON state file, replacing charts with the same id.

        Raises:
            ValueError: If the file does not contain a list of charts
        """
        self._require_open()
        with open(input_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if isinstance(data, dict) and 'charts' in data:
            data = data['charts']
        if not isinstance(data, list):
            raise ValueError(f"Unknown state format in {input_path}")
        charts = [Chart.from_dict(entry) for entry in data]
        for chart in charts:
            self._charts[chart.id] = chart
        self._flush()
        return len(charts)


class InMemoryChartStore(ChartStore):
    """Non-persistent store; optional seed charts are loaded on open()."""

    def __init__(self, charts: Optional[List[Chart]] = None):
        super().__init__()
        self._seed = list(charts or [])

    def _load(self) -> List[Chart]:
        return list(self._seed)

    def _flush(self) -> None:
        self._seed = list(self._charts.values())


class JsonChartStore(ChartStore):
    """
    Durable store backed by a single JSON file.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a crash never leaves a half-written store.
    """

    def __init__(self, path: Optional[str] = None):
        super().__init__()
        self.path = Path(path or os.getenv("CLAIM_REFINE_STORE", DEFAULT_STORE_PATH))

    def _load(self) -> List[Chart]:
        if not self.path.exists():
            return []
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if isinstance(data, list):
            entries = data
        elif isinstance(data, dict) and 'charts' in data:
            entries = data['charts']
        else:
            raise ValueError(f"Unknown chart store format in {self.path}")
        return [Chart.from_dict(entry) for entry in entries]

    def _flush(self) -> None:
        payload = {
            'format_version': STORE_FORMAT_VERSION,
            'charts': [chart.to_dict() for chart in self._charts.values()],
        }
        directory = self.path.parent if str(self.path.parent) else Path('.')
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=self.path.name, suffix='.tmp', dir=str(directory))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
