#!/usr/bin/env python3
"""
ABOUTME: Tests for the parse_chart.py and run_refine.py command-line entry points
ABOUTME: LLM access is patched out; charts live in a temporary JSON store
"""

import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path
from unittest.mock import AsyncMock, patch

# Add skills/claim-refine/scripts directory to path (must be before import)
_scripts_dir = Path(__file__).parent.parent / 'skills' / 'claim-refine' / 'scripts'
sys.path.insert(0, str(_scripts_dir))

import pytest  # noqa: E402

import parse_chart  # noqa: E402  # type: ignore[import-not-found]
import run_refine  # noqa: E402  # type: ignore[import-not-found]
from chart_store import JsonChartStore  # noqa: E402  # type: ignore[import-not-found]
from claim_model import Chart, ClaimElement, MessageStatus  # noqa: E402  # type: ignore[import-not-found]
from parse_chart import extract_elements_async, load_elements_json  # noqa: E402  # type: ignore[import-not-found]


CHART_TEXT = """Claim 1 chart
1.a A smart thermostat comprising | Evidence: Product Manual §1 | Reasoning: The product is a thermostat.
1.b a temperature sensor | [NO EVIDENCE MAPPED] | [NO REASONING]
"""

EXTRACTION_RESPONSE = """Here are the elements:
```json
[{"id":"1.a","element":"A smart thermostat comprising","evidence":"Product Manual §1","reasoning":"The product is a thermostat."},
 {"id":"1.b","element":"a temperature sensor","evidence":"","reasoning":""}]
```"""

REWRITE_RESPONSE = json.dumps({
    "refinedReasoning": "The product is a thermostat (Manual §1).",
    "refinedEvidence": "",
    "confidence": 88,
    "flags": [],
    "explanation": "Added a citation.",
    "proposedChange": True,
    "noChangeNeeded": False,
})


def seed_store(path):
    chart = Chart(
        id="chart_1",
        title="Thermostat",
        elements=(ClaimElement(id="1.a", element="A thermostat", evidence="Manual §1", reasoning="Shown."),),
    )
    with JsonChartStore(str(path)) as store:
        store.save_chart(chart)


def fake_llm(response_text):
    generator = AsyncMock(return_value=response_text)
    return (
        patch.object(run_refine, "resolve_llm", return_value=(False, "gpt-5.2", object(), "OpenAI")),
        patch.object(run_refine, "make_text_generator", return_value=generator),
    )


class TestParseChart:

    def test_extract_elements(self):
        generate = AsyncMock(return_value=EXTRACTION_RESPONSE)
        elements = asyncio.run(extract_elements_async(CHART_TEXT, generate))
        assert [e.id for e in elements] == ["1.a", "1.b"]
        assert elements[1].evidence == ""
        assert all(e.confidence == 100 for e in elements)

    def test_short_text_fails_without_call(self):
        generate = AsyncMock()
        assert asyncio.run(extract_elements_async("too short", generate)) is None
        generate.assert_not_called()

    def test_unparseable_response(self):
        generate = AsyncMock(return_value="I could not find any elements.")
        assert asyncio.run(extract_elements_async(CHART_TEXT, generate)) is None

    def test_load_elements_json(self, tmp_path):
        path = tmp_path / "elements.json"
        path.write_text(json.dumps({"elements": [{"element": "x"}, {"id": "1.b", "element": "y"}]}), encoding="utf-8")
        assert [e.id for e in load_elements_json(str(path))] == ["1", "1.b"]

    def test_repeated_ids_update_one_row(self, tmp_path, monkeypatch):
        elements_path = tmp_path / "dup.json"
        elements_path.write_text(json.dumps([
            {"id": "1.a", "element": "a housing", "evidence": "Manual §1"},
            {"id": "1.a", "element": "a display", "evidence": "Manual §5"},
        ]), encoding="utf-8")
        store_path = tmp_path / "charts.json"

        monkeypatch.setattr(sys, "argv", ["parse_chart.py", "-i", str(elements_path), "-s", str(store_path)])
        parse_chart.main()

        with JsonChartStore(str(store_path)) as store:
            chart_id = store.list_charts()[0].id
            store.update_element(chart_id, "1.a", lambda e: replace(e, evidence="Datasheet §2"))
            elements = store.get_chart(chart_id).elements
        assert [(e.id, e.element, e.evidence) for e in elements] == [
            ("1.a", "a housing", "Datasheet §2"),
            ("1.a-2", "a display", "Manual §5"),
        ]

    def test_main_with_json_input(self, tmp_path, monkeypatch):
        elements_path = tmp_path / "thermostat.json"
        elements_path.write_text(json.dumps([{"id": "1.a", "element": "x"}]), encoding="utf-8")
        store_path = tmp_path / "charts.json"

        monkeypatch.setattr(sys, "argv", ["parse_chart.py", "-i", str(elements_path), "-s", str(store_path)])
        parse_chart.main()

        with JsonChartStore(str(store_path)) as store:
            charts = store.list_charts()
        assert len(charts) == 1
        assert charts[0].title == "thermostat"
        assert charts[0].elements[0].id == "1.a"

    def test_main_with_text_input(self, tmp_path, monkeypatch):
        text_path = tmp_path / "chart.txt"
        text_path.write_text(CHART_TEXT, encoding="utf-8")
        store_path = tmp_path / "charts.json"

        monkeypatch.setattr(sys, "argv", ["parse_chart.py", "-i", str(text_path), "-s", str(store_path), "-t", "Demo"])
        with patch.object(parse_chart, "resolve_llm", return_value=(True, "gemini-2.5-flash", object(), "Gemini")), \
                patch.object(parse_chart, "make_text_generator",
                             return_value=AsyncMock(return_value=EXTRACTION_RESPONSE)):
            parse_chart.main()

        with JsonChartStore(str(store_path)) as store:
            chart = store.list_charts()[0]
        assert chart.title == "Demo"
        assert len(chart.elements) == 2

    def test_main_extraction_failure_exit_code(self, tmp_path, monkeypatch):
        text_path = tmp_path / "chart.txt"
        text_path.write_text(CHART_TEXT, encoding="utf-8")

        monkeypatch.setattr(sys, "argv", ["parse_chart.py", "-i", str(text_path), "-s", str(tmp_path / "c.json")])
        with patch.object(parse_chart, "resolve_llm", return_value=(True, "gemini-2.5-flash", object(), "Gemini")), \
                patch.object(parse_chart, "make_text_generator", return_value=AsyncMock(return_value="no json")):
            with pytest.raises(SystemExit) as exc:
                parse_chart.main()
        assert exc.value.code == 2

    def test_main_rejects_binary_input(self, tmp_path, monkeypatch):
        path = tmp_path / "chart.pdf"
        path.write_bytes(b"%PDF-1.4")
        monkeypatch.setattr(sys, "argv", ["parse_chart.py", "-i", str(path), "-s", str(tmp_path / "c.json")])
        with pytest.raises(SystemExit) as exc:
            parse_chart.main()
        assert exc.value.code == 1


class TestRunRefine:

    def test_list_and_show(self, tmp_path, capsys):
        store_path = tmp_path / "charts.json"
        seed_store(store_path)

        assert run_refine.main(["-s", str(store_path), "list"]) == 0
        assert "chart_1  Thermostat" in capsys.readouterr().out

        assert run_refine.main(["-s", str(store_path), "show", "-c", "chart_1"]) == 0
        assert "[1.a] A thermostat" in capsys.readouterr().out

    def test_unknown_chart(self, tmp_path, capsys):
        assert run_refine.main(["-s", str(tmp_path / "charts.json"), "show", "-c", "nope"]) == 1
        assert "Chart not found: nope" in capsys.readouterr().err

    def test_refine_accept_history(self, tmp_path, capsys):
        store_path = tmp_path / "charts.json"
        seed_store(store_path)

        resolve_patch, generator_patch = fake_llm(REWRITE_RESPONSE)
        with resolve_patch, generator_patch:
            code = run_refine.main(["-s", str(store_path), "refine", "-c", "chart_1", "-e", "1.a",
                                    "-q", "Add a citation"])
        assert code == 0
        out = capsys.readouterr().out
        assert "AI: Added a citation." in out
        assert "Proposal #1 [pending]" in out

        assert run_refine.main(["-s", str(store_path), "accept", "-c", "chart_1", "-e", "1.a", "-m", "1"]) == 0
        with JsonChartStore(str(store_path)) as store:
            element = store.get_element("chart_1", "1.a")
        assert element.reasoning == "The product is a thermostat (Manual §1)."
        assert element.evidence == "Manual §1"
        assert element.confidence == 88
        assert element.chat_history[1].status is MessageStatus.ACCEPTED

        capsys.readouterr()
        assert run_refine.main(["-s", str(store_path), "history", "-c", "chart_1", "-e", "1.a"]) == 0
        assert "v1 (" in capsys.readouterr().out

        # Repeated decision changes nothing
        assert run_refine.main(["-s", str(store_path), "reject", "-c", "chart_1", "-e", "1.a", "-m", "1"]) == 0
        assert "is not pending" in capsys.readouterr().err

    def test_reasoning_effort_flag(self, tmp_path, monkeypatch):
        """CLI flag overrides CLAIM_REFINE_REASONING_EFFORT"""
        store_path = tmp_path / "charts.json"
        seed_store(store_path)
        monkeypatch.setenv("CLAIM_REFINE_REASONING_EFFORT", "low")

        resolve_patch, generator_patch = fake_llm(REWRITE_RESPONSE)
        with resolve_patch, generator_patch as make_generator:
            assert run_refine.main(["-s", str(store_path), "refine", "-c", "chart_1", "-e", "1.a",
                                    "-q", "Add a citation", "--reasoning-effort", "high"]) == 0
            assert make_generator.call_args.kwargs["reasoning_effort"] == "high"

            assert run_refine.main(["-s", str(store_path), "refine", "-c", "chart_1", "-e", "1.a",
                                    "-q", "Again"]) == 0
            assert make_generator.call_args.kwargs["reasoning_effort"] == "low"

    def test_refine_dry_run_records_nothing(self, tmp_path, capsys):
        store_path = tmp_path / "charts.json"
        seed_store(store_path)

        assert run_refine.main(["-s", str(store_path), "refine", "-c", "chart_1", "-e", "1.a",
                                "-q", "Check this", "--dry-run"]) == 0
        assert "--- User Prompt ---" in capsys.readouterr().out
        with JsonChartStore(str(store_path)) as store:
            assert store.get_element("chart_1", "1.a").chat_history == ()

    def test_bad_message_index(self, tmp_path, capsys):
        store_path = tmp_path / "charts.json"
        seed_store(store_path)
        assert run_refine.main(["-s", str(store_path), "accept", "-c", "chart_1", "-e", "1.a", "-m", "3"]) == 1
        assert "out of range" in capsys.readouterr().err

    def test_references(self, tmp_path):
        store_path = tmp_path / "charts.json"
        seed_store(store_path)
        doc = tmp_path / "datasheet.txt"
        doc.write_text("§2 Zigbee radio", encoding="utf-8")

        assert run_refine.main(["-s", str(store_path), "add-reference", "-c", "chart_1", "-f", str(doc)]) == 0
        with JsonChartStore(str(store_path)) as store:
            assert [d.name for d in store.get_chart("chart_1").context_docs] == ["datasheet.txt"]

        assert run_refine.main(["-s", str(store_path), "remove-reference", "-c", "chart_1",
                                "--name", "datasheet.txt"]) == 0
        with JsonChartStore(str(store_path)) as store:
            assert store.get_chart("chart_1").context_docs == ()

    def test_state_export_import_delete(self, tmp_path):
        store_path = tmp_path / "charts.json"
        state_path = tmp_path / "state.json"
        seed_store(store_path)

        assert run_refine.main(["-s", str(store_path), "export-state", "-o", str(state_path)]) == 0
        assert run_refine.main(["-s", str(store_path), "delete", "-c", "chart_1"]) == 0
        with JsonChartStore(str(store_path)) as store:
            assert store.list_charts() == []

        assert run_refine.main(["-s", str(store_path), "import-state", "-i", str(state_path)]) == 0
        with JsonChartStore(str(store_path)) as store:
            assert store.get_chart("chart_1").title == "Thermostat"
