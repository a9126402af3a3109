"""Tests for the master driver."""

import unittest
import numpy as np

from polr_ps.communication import GradientUpdateMessage
from polr_ps.driver import POLRMasterDriver
from polr_ps.driver.master_driver import RoundState
from polr_ps.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    DuplicateGradientError,
    IncompleteRoundError,
    ProtocolError,
    QueueUnderflowError,
    StaleGradientError,
)
from polr_ps.model.parameter_vector import ParameterVector
from polr_ps.utils.config import POLRConfig


def make_config(**overrides):
    values = dict(feature_vector_size=2, num_categories=2, batch_size=10, num_rounds=5)
    values.update(overrides)
    return POLRConfig(**values)


def message(worker_id, values, batch, round_id=0, end_of_data=False):
    return GradientUpdateMessage(
        origin_worker_id=worker_id,
        delta=ParameterVector(values),
        observed_batch_size=batch,
        round_id=round_id,
        end_of_data=end_of_data,
    )


class TestMasterDriver(unittest.TestCase):
    """Tests for POLRMasterDriver."""

    def setUp(self):
        self.master = POLRMasterDriver()
        self.master.setup(make_config(), num_workers=2)

    def fold(self, *msgs):
        for msg in msgs:
            self.master.add_incoming_gradient_message_to_queue(msg)
        for _ in msgs:
            self.master.recv_gradient_message()

    def test_setup(self):
        self.assertEqual(len(self.master.global_vector), 4)
        self.assertTrue(self.master.global_vector.is_zero())
        self.assertEqual(self.master.state, RoundState.COLLECTING)
        with self.assertRaises(ConfigurationError):
            POLRMasterDriver().setup(make_config(), num_workers=0)
        with self.assertRaises(ConfigurationError):
            POLRMasterDriver().setup(make_config(num_categories=0), num_workers=1)

    def test_before_setup(self):
        with self.assertRaises(ProtocolError):
            POLRMasterDriver().recv_gradient_message()

    def test_weighted_mean_aggregation(self):
        """global += sum(n_i * delta_i) / sum(n_i)"""
        self.fold(
            message("a", [1.0, 1.0, 0.0, 4.0], batch=1),
            message("b", [3.0, -1.0, 0.0, 0.0], batch=3),
        )
        self.assertEqual(self.master.state, RoundState.AGGREGATING)
        vector = self.master.generate_global_update_vector()
        np.testing.assert_array_almost_equal(vector.values, [2.5, -0.5, 0.0, 1.0])
        self.assertEqual(self.master.global_vector, vector)
        self.assertEqual(self.master.round_id, 1)

    def test_order_independence(self):
        m0 = message("w0", [0.1, 0.7, -0.3, 1e-9], batch=200)
        m1 = message("w1", [1e9, -0.2, 0.3, 0.5], batch=170)

        other = POLRMasterDriver()
        other.setup(make_config(), num_workers=2)

        self.fold(m0, m1)
        for msg in (m1, m0):
            other.add_incoming_gradient_message_to_queue(msg)
            other.recv_gradient_message()

        self.assertEqual(
            self.master.generate_global_update_vector(),
            other.generate_global_update_vector(),
        )

    def test_incomplete_round(self):
        self.fold(message("a", [1.0, 1.0, 1.0, 1.0], batch=1))
        before = self.master.global_vector
        with self.assertRaises(IncompleteRoundError) as ctx:
            self.master.generate_global_update_vector()
        self.assertEqual(ctx.exception.received, 1)
        self.assertEqual(ctx.exception.expected, 2)
        self.assertEqual(self.master.global_vector, before)
        self.assertEqual(self.master.round_id, 0)
        self.assertEqual(self.master.pending_count, 1)

    def test_zero_records_leave_vector_unchanged(self):
        self.fold(
            message("a", [0.0, 0.0, 0.0, 0.0], batch=0),
            message("b", [0.0, 0.0, 0.0, 0.0], batch=0),
        )
        self.assertTrue(self.master.generate_global_update_vector().is_zero())
        self.assertEqual(self.master.round_id, 1)

    def test_wrong_length(self):
        self.master.add_incoming_gradient_message_to_queue(message("a", [1.0], batch=1))
        with self.assertRaises(DimensionMismatchError):
            self.master.recv_gradient_message()
        self.assertEqual(self.master.pending_count, 0)

    def test_stale_round(self):
        self.master.add_incoming_gradient_message_to_queue(
            message("a", [1.0, 1.0, 1.0, 1.0], batch=1, round_id=3)
        )
        with self.assertRaises(StaleGradientError):
            self.master.recv_gradient_message()

    def test_duplicate_worker(self):
        self.fold(message("a", [1.0, 1.0, 1.0, 1.0], batch=1))
        self.master.add_incoming_gradient_message_to_queue(message("a", [1.0, 1.0, 1.0, 1.0], batch=1))
        with self.assertRaises(DuplicateGradientError):
            self.master.recv_gradient_message()

    def test_round_full(self):
        self.fold(
            message("a", [1.0, 1.0, 1.0, 1.0], batch=1),
            message("b", [1.0, 1.0, 1.0, 1.0], batch=1),
        )
        self.master.add_incoming_gradient_message_to_queue(message("c", [1.0, 1.0, 1.0, 1.0], batch=1))
        with self.assertRaises(DuplicateGradientError):
            self.master.recv_gradient_message()

    def test_empty_queue(self):
        with self.assertRaises(QueueUnderflowError):
            self.master.recv_gradient_message()
        with self.assertRaises(QueueUnderflowError):
            self.master.recv_gradient_message(block=True, timeout=0.05)

    def test_broadcast_before_aggregation(self):
        with self.assertRaises(ProtocolError):
            self.master.get_next_global_update_msg_from_queue()

    def test_broadcast_messages(self):
        self.fold(
            message("a", [1.0, 0.0, 0.0, 0.0], batch=1),
            message("b", [1.0, 0.0, 0.0, 0.0], batch=1),
        )
        vector = self.master.generate_global_update_vector()
        self.assertEqual(self.master.state, RoundState.BROADCASTING)

        first = self.master.get_next_global_update_msg_from_queue()
        second = self.master.get_next_global_update_msg_from_queue()
        self.assertEqual(self.master.state, RoundState.COLLECTING)
        self.assertEqual(first.round_id, 0)
        self.assertFalse(first.is_final)
        self.assertEqual(first.vector, vector)
        self.assertIs(first.vector, second.vector)

    def test_final_after_num_rounds(self):
        master = POLRMasterDriver()
        master.setup(make_config(num_rounds=2), num_workers=1)
        for round_id in range(2):
            master.add_incoming_gradient_message_to_queue(
                message("a", [1.0, 1.0, 1.0, 1.0], batch=1, round_id=round_id)
            )
            master.recv_gradient_message()
            master.generate_global_update_vector()
            msg = master.get_next_global_update_msg_from_queue()
        self.assertTrue(msg.is_final)
        self.assertTrue(master.is_finished)
        np.testing.assert_array_almost_equal(master.global_vector.values, np.full(4, 2.0))

        master.add_incoming_gradient_message_to_queue(
            message("a", [1.0, 1.0, 1.0, 1.0], batch=1, round_id=2)
        )
        with self.assertRaises(ProtocolError):
            master.recv_gradient_message()

    def test_final_when_every_split_exhausted(self):
        self.fold(
            message("a", [1.0, 0.0, 0.0, 0.0], batch=3, end_of_data=True),
            message("b", [0.0, 0.0, 0.0, 0.0], batch=0),
        )
        self.master.generate_global_update_vector()
        self.assertFalse(self.master.get_next_global_update_msg_from_queue().is_final)

        self.fold(
            message("a", [0.0, 0.0, 0.0, 0.0], batch=0, round_id=1, end_of_data=True),
            message("b", [0.0, 1.0, 0.0, 0.0], batch=2, round_id=1, end_of_data=True),
        )
        self.master.generate_global_update_vector()
        self.assertTrue(self.master.get_next_global_update_msg_from_queue().is_final)
        self.assertTrue(self.master.is_finished)

    def test_restore(self):
        vector = ParameterVector([1.0, 2.0, 3.0, 4.0])
        self.master.restore(vector, 7)
        self.assertEqual(self.master.global_vector, vector)
        self.assertEqual(self.master.round_id, 7)
        with self.assertRaises(DimensionMismatchError):
            self.master.restore(ParameterVector([1.0]), 7)

    def test_restore_past_round_limit_is_finished(self):
        vector = ParameterVector([1.0, 2.0, 3.0, 4.0])
        self.master.restore(vector, 5)
        self.assertTrue(self.master.is_finished)
        self.assertEqual(self.master.state, RoundState.FINISHED)

    def test_restore_exhausted_is_finished(self):
        self.master.restore(ParameterVector.zeros(4), 2, finished=True)
        self.assertTrue(self.master.is_finished)
        self.master.restore(ParameterVector.zeros(4), 2)
        self.assertEqual(self.master.state, RoundState.COLLECTING)

    def test_stats(self):
        self.fold(
            message("a", [1.0, 0.0, 0.0, 0.0], batch=4),
            message("b", [1.0, 0.0, 0.0, 0.0], batch=6),
        )
        self.master.generate_global_update_vector()
        stats = self.master.get_stats()
        self.assertEqual(stats["rounds_completed"], 1)
        self.assertEqual(stats["messages_folded"], 2)
        self.assertEqual(stats["records_aggregated"], 10)
        self.assertEqual(stats["aggregate_seconds"]["count"], 1)


if __name__ == "__main__":
    unittest.main()
