"""Integration tests for the complete master/worker protocol."""

import os
import shutil
import tempfile
import unittest

from polr_ps import POLRConfig, POLRMasterDriver, POLRTrainingRun, POLRWorkerDriver
from polr_ps.examples.synthetic_data import write_newsgroups_shard
from polr_ps.exceptions import ConfigurationError
from polr_ps.io import InputRecordsSplit, compute_splits
from polr_ps.storage import LocalCheckpointManager


class TestSynchronousHarness(unittest.TestCase):
    """
    The reference harness: 2 workers, 10000 features, 20 categories,
    batches of 200, 30 rounds, driven step by step.
    """

    @classmethod
    def setUpClass(cls):
        cls.tmp = tempfile.mkdtemp()
        cls.path = write_newsgroups_shard(os.path.join(cls.tmp, "shard.txt"), 3000, seed=1)

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(cls.tmp)

    def make_cluster(self, **overrides):
        values = dict(
            feature_vector_size=10000,
            num_categories=20,
            batch_size=200,
            record_factory="twenty_newsgroups",
            num_rounds=30,
            end_of_data_policy="wrap",
            learning_rate=0.5,
        )
        values.update(overrides)
        config = POLRConfig(**values)

        workers = []
        for i, split in enumerate(compute_splits(self.path, 2)):
            reader = InputRecordsSplit(split)
            self.addCleanup(reader.close)
            worker = POLRWorkerDriver(f"worker_{i}")
            worker.setup_input_split(reader)
            worker.setup(config)
            workers.append(worker)

        master = POLRMasterDriver()
        master.setup(config, num_workers=len(workers))
        return master, workers

    def run_round(self, master, workers):
        for worker in workers:
            worker.run_next_training_batch()
            master.add_incoming_gradient_message_to_queue(worker.generate_update_message())
        for _ in workers:
            master.recv_gradient_message()
        master.generate_global_update_vector()
        msg = None
        for worker in workers:
            msg = master.get_next_global_update_msg_from_queue()
            worker.process_incoming_parameter_vector_message(msg)
        return msg

    def test_thirty_rounds(self):
        master, workers = self.make_cluster()
        for round_id in range(30):
            msg = self.run_round(master, workers)
            self.assertEqual(msg.round_id, round_id)
            self.assertEqual(len(master.global_vector), 200000)
            for worker in workers:
                self.assertEqual(worker.vector, master.global_vector)

        self.assertTrue(msg.is_final)
        self.assertTrue(master.is_finished)
        self.assertEqual(workers[0].vector, workers[1].vector)
        self.assertFalse(master.global_vector.is_zero())

        stats = master.get_stats()
        self.assertEqual(stats["rounds_completed"], 30)
        self.assertEqual(stats["records_aggregated"], 30 * 2 * 200)

    def test_model_learns(self):
        master, workers = self.make_cluster(feature_vector_size=2000, num_rounds=15)
        while not master.is_finished:
            self.run_round(master, workers)
        with open(self.path) as f:
            sample = [next(f) for _ in range(500)]
        self.assertGreater(workers[0].evaluate(sample), 50.0)

    def test_stop_policy_ends_when_splits_exhausted(self):
        master, workers = self.make_cluster(
            feature_vector_size=500, end_of_data_policy="stop", num_rounds=0, batch_size=400
        )
        rounds = 0
        while not master.is_finished:
            self.run_round(master, workers)
            rounds += 1
        # About 1500 lines per split and 400 per batch
        self.assertEqual(rounds, 4)
        self.assertEqual(master.get_stats()["records_aggregated"], 3000)
        for worker in workers:
            self.assertEqual(worker.vector, master.global_vector)


class TestTrainingRun(unittest.TestCase):
    """Threaded runs through POLRTrainingRun."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.path = write_newsgroups_shard(os.path.join(self.tmp, "shard.txt"), 1200, seed=2)

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def config(self, **overrides):
        values = dict(
            feature_vector_size=1000,
            num_categories=20,
            batch_size=50,
            record_factory="twenty_newsgroups",
            num_rounds=10,
            end_of_data_policy="wrap",
            learning_rate=0.5,
            receive_timeout_seconds=30.0,
        )
        values.update(overrides)
        return POLRConfig(**values)

    def test_threaded_run(self):
        run = POLRTrainingRun.from_file(self.config(), self.path, 3)
        result = run.run()

        self.assertEqual(result.rounds_completed, 10)
        self.assertEqual(len(result.final_vector), 20000)
        self.assertEqual(set(result.worker_vectors), {"0", "1", "2"})
        for vector in result.worker_vectors.values():
            self.assertEqual(vector, result.final_vector)
        self.assertEqual(sum(s["records_trained"] for s in result.worker_stats), 10 * 3 * 50)
        self.assertIsNone(result.checkpoint_path)

    def test_checkpoint_and_resume(self):
        checkpoint_dir = os.path.join(self.tmp, "checkpoints")
        first = POLRTrainingRun.from_file(
            self.config(checkpoint_dir=checkpoint_dir), self.path, 2
        ).run()
        self.assertTrue(os.path.isdir(first.checkpoint_path))

        checkpoint = LocalCheckpointManager(checkpoint_dir).load()
        self.assertEqual(checkpoint["round_id"], 9)
        self.assertEqual(checkpoint["vector"], first.final_vector)
        self.assertEqual(checkpoint["metadata"]["num_workers"], 2)

        second = POLRTrainingRun.from_file(
            self.config(checkpoint_dir=checkpoint_dir, num_rounds=15), self.path, 2
        ).run(resume=True)
        self.assertEqual(second.rounds_completed, 5)
        self.assertEqual(second.master_stats["round_id"], 15)
        self.assertNotEqual(second.final_vector, first.final_vector)
        self.assertEqual(LocalCheckpointManager(checkpoint_dir).list_checkpoints()[0]["round_id"], 14)

    def test_resume_finished_run_trains_nothing(self):
        checkpoint_dir = os.path.join(self.tmp, "checkpoints")
        config = self.config(num_rounds=5, checkpoint_dir=checkpoint_dir)
        first = POLRTrainingRun.from_file(config, self.path, 2).run()
        self.assertEqual(first.rounds_completed, 5)

        second = POLRTrainingRun.from_file(config, self.path, 2).run(resume=True)
        self.assertEqual(second.rounds_completed, 0)
        self.assertEqual(second.final_vector, first.final_vector)
        self.assertEqual(second.checkpoint_path, first.checkpoint_path)
        self.assertEqual(len(LocalCheckpointManager(checkpoint_dir).list_checkpoints()), 1)

    def test_resume_continues_split_position(self):
        """A resumed stop-policy run reads only the records the first run left."""
        checkpoint_dir = os.path.join(self.tmp, "checkpoints")
        first = POLRTrainingRun.from_file(
            self.config(num_rounds=4, end_of_data_policy="stop", checkpoint_dir=checkpoint_dir),
            self.path, 2
        ).run()
        positions = LocalCheckpointManager(checkpoint_dir).load()["metadata"]["workers"]
        self.assertEqual(positions["0"]["records_read"], 200)
        self.assertFalse(positions["0"]["end_of_data"])

        second = POLRTrainingRun.from_file(
            self.config(num_rounds=0, end_of_data_policy="stop", checkpoint_dir=checkpoint_dir),
            self.path, 2
        ).run(resume=True)
        trained = sum(s["records_trained"] for s in first.worker_stats + second.worker_stats)
        self.assertEqual(trained, 1200)

        third = POLRTrainingRun.from_file(
            self.config(num_rounds=0, end_of_data_policy="stop", checkpoint_dir=checkpoint_dir),
            self.path, 2
        ).run(resume=True)
        self.assertEqual(third.rounds_completed, 0)
        self.assertEqual(third.final_vector, second.final_vector)

    def test_worker_failure_propagates(self):
        bad = os.path.join(self.tmp, "bad.txt")
        with open(bad, "w") as f:
            f.write("no.such.group hello\n" * 50)
        run = POLRTrainingRun.from_file(self.config(), bad, 2)
        with self.assertRaises(ConfigurationError):
            run.run()

    def test_invalid_worker_layout(self):
        with self.assertRaises(ConfigurationError):
            POLRTrainingRun(self.config(), [])
        tiny = os.path.join(self.tmp, "tiny.txt")
        with open(tiny, "w") as f:
            f.write("ab")
        with self.assertRaises(ConfigurationError):
            POLRTrainingRun.from_file(self.config(), tiny, 5)


if __name__ == "__main__":
    unittest.main()
