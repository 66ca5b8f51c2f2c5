import unittest
from unittest import mock

from tender_intel.models.schemas import AIResponse
from tender_intel.services.ai_classifier import (
    classify_processes_ai, analyze_tender_description, format_process_batch
)


def make_engine(*responses):
    engine = mock.Mock()
    engine.generate_json = mock.AsyncMock(side_effect=list(responses))
    return engine


def process(index, description="Mantenimiento vial"):
    return {"id": str(index), "title": f"Proceso {index}", "description": description}


class TestClassifyProcesses(unittest.IsolatedAsyncioTestCase):

    async def test_classifications_parsed(self):
        engine = make_engine(AIResponse(success=True, data=[
            {"id": 1, "isCorporate": True, "isActionable": False, "advice": "Consorcio necesario por capacidad K"},
        ]))

        result = await classify_processes_ai(engine, [process(1)])

        self.assertEqual(len(result), 1)
        self.assertEqual(result[0].id, "1")
        self.assertTrue(result[0].is_corporate)
        self.assertFalse(result[0].is_actionable)

    async def test_batches_of_ten(self):
        engine = make_engine(
            AIResponse(success=True, data=[{"id": str(i), "isCorporate": True, "isActionable": True} for i in range(10)]),
            AIResponse(success=True, data=[{"id": "10", "isCorporate": False, "isActionable": True}]),
        )

        result = await classify_processes_ai(engine, [process(i) for i in range(11)])

        self.assertEqual(engine.generate_json.await_count, 2)
        self.assertEqual(len(result), 11)

    async def test_failure_yields_empty_list(self):
        engine = make_engine(AIResponse(success=False, error="AI not configured"))
        self.assertEqual(await classify_processes_ai(engine, [process(1)]), [])

    async def test_non_list_payload_yields_empty_list(self):
        engine = make_engine(AIResponse(success=True, data={"id": "1"}))
        self.assertEqual(await classify_processes_ai(engine, [process(1)]), [])

    async def test_malformed_items_skipped(self):
        engine = make_engine(AIResponse(success=True, data=[
            {"isCorporate": True},
            {"id": "2", "isCorporate": False, "isActionable": False, "advice": "Enfocarse en precio"},
        ]))

        result = await classify_processes_ai(engine, [process(1), process(2)])

        self.assertEqual([item.id for item in result], ["2"])

    async def test_empty_input_makes_no_call(self):
        engine = make_engine()
        self.assertEqual(await classify_processes_ai(engine, []), [])
        engine.generate_json.assert_not_called()

    def test_description_truncated(self):
        text = format_process_batch([process(1, description="a" * 500), process(2)])

        self.assertIn("DESCRIPCIÓN: " + "a" * 300 + "...", text)
        self.assertNotIn("a" * 301, text)
        self.assertIn("\n---\n", text)


class TestAnalyzeTenderDescription(unittest.IsolatedAsyncioTestCase):

    async def test_analysis_parsed(self):
        engine = make_engine(AIResponse(success=True, data={
            "deliverables": ["Diseños"],
            "technicalRequirements": ["Ingeniero civil"],
            "timeline": ["6 meses"],
            "summary": "Diseño y construcción de puente vehicular"
        }))

        analysis = await analyze_tender_description(engine, "Construcción de puente", "LP-001")

        self.assertEqual(analysis.technical_requirements, ["Ingeniero civil"])
        self.assertEqual(analysis.summary, "Diseño y construcción de puente vehicular")
        prompt = engine.generate_json.call_args.args[0]
        self.assertIn("TÍTULO: LP-001", prompt)

    async def test_failure_returns_none(self):
        engine = make_engine(AIResponse(success=False, error="Failed to parse AI response as JSON"))
        self.assertIsNone(await analyze_tender_description(engine, "x", "y"))


if __name__ == "__main__":
    unittest.main()
