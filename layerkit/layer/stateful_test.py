"""Test layers that keep state across calls: batch normalization and LSTM."""
from __future__ import annotations

import unittest

import torch

from layerkit.config.layer import BatchNormalizationLayerConfig, BiLSTMLayerConfig, LSTMLayerConfig
from layerkit.errors import NotFinalizedError
from layerkit.layer import Finalizable, Stateful


def _batchnorm(num_channels: int = 2):
    layer = BatchNormalizationLayerConfig(num_channels=num_channels).build()
    layer.initialize_learnable_parameters(torch.float64)
    return layer


class BatchNormalizationLayerTest(unittest.TestCase):
    """Test finalizing and merging trained statistics."""

    def setUp(self) -> None:
        torch.manual_seed(0)
        self.a = torch.randn(4, 2, 2, 2, dtype=torch.float64)
        self.b = torch.randn(6, 2, 2, 2, dtype=torch.float64) + 1.0

    def test_predict_before_finalize(self) -> None:
        """test prediction needs trained statistics"""
        layer = _batchnorm()
        self.assertIsInstance(layer, Finalizable)
        with self.assertRaises(NotFinalizedError):
            layer.predict(self.a)

    def test_finalize_accumulates_batches(self) -> None:
        """test finalizing two batches equals the statistics of both"""
        layer = _batchnorm()
        for X in (self.a, self.b):
            Z, memory = layer.forward(X)
            layer.finalize(X, Z, memory)
        union = torch.cat([self.a, self.b]).reshape(-1, 2)
        self.assertEqual(layer.num_observations, union.shape[0])
        torch.testing.assert_close(layer.trained_mean, union.mean(dim=0))
        torch.testing.assert_close(layer.trained_variance, union.var(dim=0, correction=0))

    def test_merge_finalized_is_order_independent(self) -> None:
        """test merging copies finalized on disjoint data in either order"""
        left, right = _batchnorm(), _batchnorm()
        for layer, X in ((left, self.a), (right, self.b)):
            Z, memory = layer.forward(X)
            layer.finalize(X, Z, memory)
        ab = _batchnorm().merge_finalized(left).merge_finalized(right)
        ba = _batchnorm().merge_finalized(right).merge_finalized(left)
        torch.testing.assert_close(ab.trained_mean, ba.trained_mean)
        torch.testing.assert_close(ab.trained_variance, ba.trained_variance)
        self.assertEqual(ab.num_observations, 40)

    def test_infers_channels(self) -> None:
        """test the channel count is inferred from the input size"""
        layer = BatchNormalizationLayerConfig().build()
        self.assertFalse(layer.has_size_determined)
        layer.infer_size((5, 5, 3))
        self.assertEqual(layer.to_config().num_channels, 3)


class LSTMLayerTest(unittest.TestCase):
    """Test recurrent layer sizes and state handling."""

    def test_sizes(self) -> None:
        """test LSTM and BiLSTM output sizes"""
        lstm = LSTMLayerConfig(hidden_size=4).build()
        bilstm = BiLSTMLayerConfig(hidden_size=4).build()
        self.assertEqual(lstm.forward_propagate_size((3,)), (4,))
        self.assertEqual(bilstm.forward_propagate_size((3,)), (8,))
        self.assertTrue(lstm.is_rnn)
        self.assertFalse(lstm.is_valid_input_size((3, 3, 1)))

    def test_forget_gate_bias(self) -> None:
        """test the forget gate bias starts at one"""
        layer = LSTMLayerConfig(hidden_size=2, input_size=3).build()
        layer.initialize_learnable_parameters()
        bias = layer.parameters["Bias"].value
        self.assertTrue(torch.equal(bias, torch.tensor([0.0, 0.0, 1.0, 1.0, 0.0, 0.0, 0.0, 0.0])))

    def test_remembered_state(self) -> None:
        """test only remembered states carry into the next batch"""
        layer = LSTMLayerConfig(hidden_size=2, input_size=3, remember_hidden_state=True).build()
        self.assertIsInstance(layer, Stateful)
        layer.initialize_learnable_parameters(torch.float64)
        X = torch.randn(2, 4, 3, dtype=torch.float64)
        Z, memory = layer.forward(X)
        layer.update_state(layer.compute_state(X, Z, memory, propagate_state=True))
        torch.testing.assert_close(layer.dynamic_parameters["HiddenState"].value, Z[:, -1])
        self.assertTrue(torch.equal(layer.dynamic_parameters["CellState"].value, torch.zeros(2, dtype=torch.float64)))
        layer.reset_state()
        self.assertTrue(torch.equal(layer.dynamic_parameters["HiddenState"].value, torch.zeros(2, dtype=torch.float64)))

    def test_last_output_mode(self) -> None:
        """test "last" mode returns one output per sequence"""
        layer = BiLSTMLayerConfig(hidden_size=2, input_size=3, output_mode="last").build()
        layer.initialize_learnable_parameters(torch.float64)
        Z, _ = layer.forward(torch.randn(5, 6, 3, dtype=torch.float64))
        self.assertEqual(tuple(Z.shape), (5, 4))


if __name__ == "__main__":
    unittest.main()
