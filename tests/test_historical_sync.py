import unittest

from tender_intel.models.historical import HistoricalTender
from tender_intel.services.ai_engine import AIEngine
from tender_intel.tasks.historical_sync import embedding_backfill, setup_scheduler
from tests.mocks.mock_openai import make_openai_client


class TestScheduler(unittest.TestCase):

    def test_daily_job_never_overlaps(self):
        scheduler = setup_scheduler()
        job = scheduler.get_job("historical_tender_sync")

        self.assertIsNotNone(job)
        self.assertEqual(job.max_instances, 1)
        self.assertTrue(job.coalesce)


class TestEmbeddingBackfill(unittest.IsolatedAsyncioTestCase):

    async def test_fills_missing_embedding(self):
        engine = AIEngine(provider="openai", openai_client=make_openai_client(vector=[0.3, 0.4]))
        row = HistoricalTender(secop_id="CO1.REQ.1", description="Obra civil", entity_name="IDU")

        await embedding_backfill(engine)(row)

        self.assertEqual(row.embedding, [0.3, 0.4])

    async def test_existing_embedding_untouched(self):
        client = make_openai_client()
        engine = AIEngine(provider="openai", openai_client=client)
        row = HistoricalTender(secop_id="CO1.REQ.1", embedding=[1.0])

        await embedding_backfill(engine)(row)

        self.assertEqual(row.embedding, [1.0])
        client.embeddings.create.assert_not_called()

    async def test_failed_embedding_raises_to_keep_row_pending(self):
        client = make_openai_client()
        client.embeddings.create.side_effect = RuntimeError("rate limited")
        engine = AIEngine(provider="openai", openai_client=client)

        with self.assertRaises(RuntimeError):
            await embedding_backfill(engine)(HistoricalTender(secop_id="CO1.REQ.1", description="Obra civil"))

    async def test_row_without_text_is_left_without_embedding(self):
        client = make_openai_client()
        client.embeddings.create.side_effect = RuntimeError("input must not be empty")
        engine = AIEngine(provider="openai", openai_client=client)
        row = HistoricalTender(secop_id="CO1.REQ.1", title="Sin título")

        await embedding_backfill(engine)(row)

        self.assertIsNone(row.embedding)
        client.embeddings.create.assert_not_called()

    async def test_no_ai_is_a_no_op(self):
        row = HistoricalTender(secop_id="CO1.REQ.1")
        await embedding_backfill(AIEngine(provider=""))(row)
        self.assertIsNone(row.embedding)


if __name__ == "__main__":
    unittest.main()
