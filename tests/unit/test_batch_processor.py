"""
Unit tests for BatchProcessor: chunks → embedding records.

Run without Docker; uses a mocked EmbeddingService and patches time.sleep.
Validates batching, whole-batch retry with capped backoff, pacing between
batches, and positional mapping of vectors onto chunks.

Run: python -m pytest tests/unit/test_batch_processor.py -v

Note: The failure-path tests suppress batch_processor logging so "batch failed" messages
don't appear in the test output (the tests still pass; those logs are from the code under test).
"""
import logging
import sys
from pathlib import Path
from unittest import TestCase
from unittest.mock import MagicMock, call, patch

REPO_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(REPO_ROOT))

from repo_ingest.core.batch_processor import BatchProcessor, build_embedding_text, estimate_tokens
from repo_ingest.core.errors import EmbeddingFailure
from tests.conftest import make_chunk, make_embedding_service

# Logger used by BatchProcessor (we suppress it during failure-path tests so output is clean)
_BATCH_LOGGER = "repo_ingest.core.batch_processor"
_SLEEP = "repo_ingest.core.batch_processor.time.sleep"


class TestEmbeddingText(TestCase):

    def test_context_is_prefixed_with_blank_line(self):
        chunk = make_chunk("return 1;", context="function one")
        self.assertEqual(build_embedding_text(chunk), "function one\n\nreturn 1;")

    def test_no_context_uses_raw_content(self):
        chunk = make_chunk("plain text")
        self.assertEqual(build_embedding_text(chunk), "plain text")

    def test_estimate_tokens_rounds_up(self):
        chunks = [make_chunk("abcde"), make_chunk("xyz")]  # 8 chars
        self.assertEqual(estimate_tokens(chunks), 2)
        self.assertEqual(estimate_tokens([make_chunk("a" * 9)]), 3)
        self.assertEqual(estimate_tokens([]), 0)


class TestBatchProcessorSuccess(TestCase):
    """Vectors come back one per chunk, in input order."""

    def test_batches_are_bounded_and_records_keep_order(self):
        service = make_embedding_service()
        processor = BatchProcessor(embedding_service=service, batch_size=2, pacing_delay=0)
        chunks = [make_chunk(f"content {i}", index=i) for i in range(5)]

        records = processor.embed_chunks(chunks)

        self.assertEqual(service.generate_embeddings.call_count, 3)
        sizes = [len(c.args[0]) for c in service.generate_embeddings.call_args_list]
        self.assertEqual(sizes, [2, 2, 1])
        self.assertEqual([r.chunk_id for r in records], [c.id for c in chunks])
        # The mock tags each vector with its position inside the batch
        self.assertEqual([r.embedding[0] for r in records], [0.0, 1.0, 0.0, 1.0, 0.0])

    def test_record_payload_carries_chunk_fields(self):
        service = make_embedding_service()
        processor = BatchProcessor(embedding_service=service, batch_size=10, pacing_delay=0)
        chunk = make_chunk("fn main() {}", index=3, context="fn main")

        record = processor.embed_chunks([chunk])[0]
        payload = record.to_payload()

        self.assertEqual(record.id, chunk.id)
        self.assertEqual(payload['repo_id'], "acme/widgets")
        self.assertEqual(payload['content'], "fn main() {}")
        self.assertEqual(payload['chunk_index'], 3)
        self.assertEqual(payload['context'], "fn main")
        self.assertEqual(payload['language'], "typescript")

    def test_empty_input_makes_no_calls(self):
        service = make_embedding_service()
        processor = BatchProcessor(embedding_service=service)

        self.assertEqual(processor.embed_chunks([]), [])
        service.generate_embeddings.assert_not_called()

    def test_pacing_between_batches_but_not_after_last(self):
        service = make_embedding_service()
        processor = BatchProcessor(embedding_service=service, batch_size=1, pacing_delay=0.1)
        chunks = [make_chunk(f"c{i}", index=i) for i in range(3)]

        with patch(_SLEEP) as sleep:
            processor.embed_chunks(chunks)

        self.assertEqual(sleep.call_args_list, [call(0.1), call(0.1)])

    def test_rate_limit_is_held_around_each_call(self):
        service = make_embedding_service()
        processor = BatchProcessor(embedding_service=service, batch_size=1, pacing_delay=0)

        processor.embed_chunks([make_chunk("a"), make_chunk("b", index=1)])

        self.assertEqual(service.acquire_rate_limit.call_count, 2)


class TestBatchProcessorRetry(TestCase):
    """A failing batch is retried whole, with capped exponential backoff."""

    def setUp(self):
        self.log = logging.getLogger(_BATCH_LOGGER)
        self.old_level = self.log.level
        self.log.setLevel(logging.CRITICAL)

    def tearDown(self):
        self.log.setLevel(self.old_level)

    def test_backoff_doubles_and_caps(self):
        processor = BatchProcessor(embedding_service=MagicMock(), base_delay=1.0, max_delay=10.0)
        self.assertEqual(
            [processor.backoff_delay(a) for a in range(6)],
            [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]
        )

    def test_transient_failure_then_success(self):
        service = make_embedding_service()
        good = service.generate_embeddings.side_effect
        attempts = {'n': 0}

        def flaky(texts):
            attempts['n'] += 1
            if attempts['n'] == 1:
                raise RuntimeError("429 rate limited")
            return good(texts)

        service.generate_embeddings.side_effect = flaky
        processor = BatchProcessor(embedding_service=service, batch_size=10, pacing_delay=0)
        chunks = [make_chunk("a"), make_chunk("b", index=1)]

        with patch(_SLEEP) as sleep:
            records = processor.embed_chunks(chunks)

        self.assertEqual(len(records), 2)
        self.assertEqual(service.generate_embeddings.call_count, 2)
        # Second attempt resends the entire batch
        self.assertEqual(service.generate_embeddings.call_args_list[1].args[0], ["a", "b"])
        sleep.assert_called_once_with(1.0)

    def test_exhausted_retries_raise_embedding_failure(self):
        service = make_embedding_service()
        service.generate_embeddings.side_effect = RuntimeError("upstream down")
        processor = BatchProcessor(embedding_service=service, batch_size=10, max_retries=3)

        with patch(_SLEEP) as sleep:
            with self.assertRaises(EmbeddingFailure) as ctx:
                processor.embed_chunks([make_chunk("a")])

        self.assertEqual(service.generate_embeddings.call_count, 3)
        # No sleep after the final attempt
        self.assertEqual(sleep.call_args_list, [call(1.0), call(2.0)])
        self.assertIn("Embedding generation failed", str(ctx.exception))
        self.assertIn("upstream down", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)

    def test_length_mismatch_counts_as_failure(self):
        service = make_embedding_service()
        service.generate_embeddings.side_effect = lambda texts: [[0.1] * 4]  # 1 vector for 2 chunks
        processor = BatchProcessor(embedding_service=service, batch_size=10, max_retries=2)

        with patch(_SLEEP):
            with self.assertRaises(EmbeddingFailure):
                processor.embed_chunks([make_chunk("a"), make_chunk("b", index=1)])

        self.assertEqual(service.generate_embeddings.call_count, 2)

    def test_later_batch_failure_aborts_whole_run(self):
        service = make_embedding_service()
        good = service.generate_embeddings.side_effect

        def second_batch_fails(texts):
            if texts == ["b"]:
                raise RuntimeError("boom")
            return good(texts)

        service.generate_embeddings.side_effect = second_batch_fails
        processor = BatchProcessor(embedding_service=service, batch_size=1, max_retries=2)

        with patch(_SLEEP):
            with self.assertRaises(EmbeddingFailure) as ctx:
                processor.embed_chunks([make_chunk("a"), make_chunk("b", index=1)])

        self.assertIn("batch 2/2", str(ctx.exception))
