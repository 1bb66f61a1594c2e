import threading
import unittest

from barcodepack.progress import ProgressAggregator, effective_progress
from support import make_job


class ProgressAggregatorTest(unittest.TestCase):
    def test_concurrent_increments(self) -> None:
        aggregator = ProgressAggregator()
        aggregator.set_total("job-1", 800)

        def bump() -> None:
            for _ in range(100):
                aggregator.increment_done("job-1")

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(aggregator.read("job-1"), (800, 800))

    def test_unknown_job_reads_zero(self) -> None:
        aggregator = ProgressAggregator()
        self.assertEqual(aggregator.read("nope"), (0, 0))
        self.assertEqual(aggregator.increment_done("nope"), 1)
        aggregator.forget("nope")
        self.assertEqual(aggregator.read("nope"), (0, 0))

    def test_effective_progress_prefers_larger_done(self) -> None:
        job = make_job(total_chunks=3)
        job.completed_chunks = 2
        aggregator = ProgressAggregator()
        aggregator.set_total(job.job_id, 3)
        aggregator.increment_done(job.job_id)
        self.assertEqual(effective_progress(aggregator, job), (2, 3))
        aggregator.increment_done(job.job_id)
        aggregator.increment_done(job.job_id)
        self.assertEqual(effective_progress(aggregator, job), (3, 3))
        self.assertEqual(effective_progress(None, job), (2, 3))


if __name__ == "__main__":
    unittest.main()
