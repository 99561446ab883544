"""Test size propagation and data flow of the built-in layers."""
from __future__ import annotations

import unittest

import pytest
import torch

from layerkit.config.layer import (
    AdditionLayerConfig,
    ClassificationOutputLayerConfig,
    ConcatenationLayerConfig,
    Crop2DLayerConfig,
    FullyConnectedLayerConfig,
    ImageInputLayerConfig,
    MaxPooling2DLayerConfig,
    MaxUnpooling2DLayerConfig,
    SoftmaxLayerConfig,
)
from layerkit.errors import LayerSizeError
from layerkit.layer.addition import AdditionLayer
from layerkit.layer.concatenation import ConcatenationLayer
from layerkit.layer.fully_connected import FullyConnectedLayer
from layerkit.strategy import Backend


class MultiInputLayerTest(unittest.TestCase):
    """Test layers with several inputs."""

    def test_addition_ports_and_size(self) -> None:
        """test addition exposes in1..inN and keeps the common size"""
        layer = AdditionLayerConfig(num_inputs=3).build()
        self.assertIsInstance(layer, AdditionLayer)
        self.assertEqual(tuple(layer.input_names), ("in1", "in2", "in3"))
        self.assertEqual(layer.forward_propagate_size([(4, 4, 2)] * 3), (4, 4, 2))
        with self.assertRaises(LayerSizeError):
            layer.forward_propagate_size([(4, 4, 2), (4, 4, 2), (4, 4, 3)])

    def test_addition_rejects_unknown_input(self) -> None:
        """test an unconnected input makes the size invalid"""
        layer = AdditionLayerConfig(num_inputs=2).build()
        self.assertFalse(layer.is_valid_input_size([None, (3,)]))

    def test_addition_gradient_is_shared(self) -> None:
        """test every input receives the upstream gradient"""
        layer = AdditionLayerConfig(num_inputs=2).build()
        X = [torch.ones(2, 3), torch.full((2, 3), 2.0)]
        Z, memory = layer.forward(X)
        self.assertTrue(torch.equal(Z, torch.full((2, 3), 3.0)))
        dZ = torch.randn(2, 3)
        dX, grads = layer.backward(X, Z, dZ, memory)
        self.assertEqual(len(dX), 2)
        self.assertTrue(all(torch.equal(d, dZ) for d in dX))
        self.assertEqual(grads, [])

    def test_concatenation_size(self) -> None:
        """test concatenation sums the concatenation axis"""
        layer = ConcatenationLayerConfig(axis=3, num_inputs=2).build()
        self.assertIsInstance(layer, ConcatenationLayer)
        self.assertEqual(layer.forward_propagate_size([(4, 4, 2), (4, 4, 5)]), (4, 4, 7))
        with self.assertRaises(LayerSizeError):
            layer.forward_propagate_size([(4, 4, 2), (4, 5, 5)])

    def test_concatenation_pads_short_sizes(self) -> None:
        """test vectors concatenate along a padded axis"""
        layer = ConcatenationLayerConfig(axis=2, num_inputs=2).build()
        self.assertEqual(layer.forward_propagate_size([(3,), (3,)]), (3, 2))

    def test_concatenation_backward_splits_gradient(self) -> None:
        """test backward returns each input's slice of the gradient"""
        layer = ConcatenationLayerConfig(axis=3, num_inputs=2).build()
        X = [torch.randn(2, 3, 3, 1), torch.randn(2, 3, 3, 4)]
        Z, memory = layer.forward(X)
        self.assertEqual(tuple(Z.shape), (2, 3, 3, 5))
        dX, _ = layer.backward(X, Z, Z, memory)
        for d, x in zip(dX, X):
            self.assertTrue(torch.equal(d, x))
        # recomputed without memory
        dX2, _ = layer.backward(X, Z, Z, None)
        self.assertTrue(torch.equal(dX2[1], X[1]))


class ImageLayerTest(unittest.TestCase):
    """Test image-specific layers."""

    def test_image_input_size(self) -> None:
        """test the input layer announces its configured size"""
        layer = ImageInputLayerConfig(input_size=(28, 28, 1)).build()
        self.assertTrue(layer.is_input_layer)
        self.assertEqual(layer.forward_propagate_size(), (28, 28, 1))
        self.assertEqual(layer.num_inputs, 0)

    def test_max_pooling_with_unpooling_outputs(self) -> None:
        """test unpooling outputs carry the pooled and the original sizes"""
        pool = MaxPooling2DLayerConfig(pool_size=2, stride=2, has_unpooling_outputs=True).build()
        self.assertEqual(tuple(pool.output_names), ("out", "indices", "size"))
        sizes = pool.forward_propagate_size((6, 4, 3))
        self.assertEqual(sizes, [(3, 2, 3), (3, 2, 3), (6, 4, 3)])
        unpool = MaxUnpooling2DLayerConfig().build()
        self.assertEqual(unpool.forward_propagate_size(sizes), (6, 4, 3))

    def test_pool_then_unpool(self) -> None:
        """test unpooling restores the maxima at their original positions"""
        pool = MaxPooling2DLayerConfig(pool_size=2, stride=2, has_unpooling_outputs=True).build()
        unpool = MaxUnpooling2DLayerConfig().build()
        X = torch.randn(2, 4, 4, 3)
        outputs, _ = pool.forward(X)
        U, _ = unpool.forward(outputs)
        self.assertEqual(U.shape, X.shape)
        kept = U != 0
        self.assertTrue(torch.equal(U[kept], X[kept]))

    def test_crop_center_and_location(self) -> None:
        """test crop windows at the centre and at an explicit offset"""
        center = Crop2DLayerConfig().build()
        self.assertEqual(center.forward_propagate_size([(8, 8, 3), (4, 4, 1)]), (4, 4, 3))
        corner = Crop2DLayerConfig(location=(4, 0)).build()
        X = torch.arange(64.0).reshape(1, 8, 8, 1)
        Z, memory = corner.forward([X, torch.zeros(1, 4, 4, 1)])
        self.assertEqual(memory, (0, 4))
        self.assertTrue(torch.equal(Z, X[:, 0:4, 4:8, :]))
        with self.assertRaises(LayerSizeError):
            Crop2DLayerConfig(location=(6, 0)).build().check_input_size([(8, 8, 3), (4, 4, 1)])


def test_fully_connected_infers_input_size() -> None:
    layer = FullyConnectedLayerConfig(output_size=10).build()
    assert isinstance(layer, FullyConnectedLayer)
    assert not layer.has_size_determined
    assert layer.forward_propagate_size((4, 4, 2)) == (1, 1, 10)
    layer.infer_size((4, 4, 2))
    assert layer.input_size == 32
    assert layer.to_config().input_size == 32
    with pytest.raises(LayerSizeError):
        layer.check_input_size((4, 4, 3))


def test_fully_connected_backends_agree() -> None:
    torch.manual_seed(0)
    layer = FullyConnectedLayerConfig(output_size=3, input_size=4).build()
    layer.initialize_learnable_parameters(torch.float64)
    X = torch.randn(5, 4, dtype=torch.float64)
    host, _ = layer.forward(X)
    layer.setup_for_accelerator_prediction("cpu")
    assert layer.placement.backend is Backend.ACCELERATOR
    accel, _ = layer.forward(X)
    torch.testing.assert_close(host, accel)


def test_propagation_is_deterministic() -> None:
    layer = FullyConnectedLayerConfig(output_size=7).build()
    first = layer.forward_propagate_size((3, 3, 2))
    assert all(layer.forward_propagate_size((3, 3, 2)) == first for _ in range(3))


def test_softmax_layer_switches_strategy() -> None:
    layer = SoftmaxLayerConfig(name="sm").build()
    X = torch.randn(2, 1, 1, 4, dtype=torch.float64)
    Zh = layer.predict(X)
    layer.setup_for_accelerator_prediction("cpu")
    torch.testing.assert_close(layer.predict(X), Zh)
    assert layer.name == "sm"


def test_classification_loss() -> None:
    layer = ClassificationOutputLayerConfig(classes=["a", "b"]).build()
    assert layer.num_classes == 2
    Y = torch.tensor([[0.25, 0.75], [0.5, 0.5]])
    T = torch.tensor([[0.0, 1.0], [1.0, 0.0]])
    loss = layer.forward_loss(Y, T)
    expected = -(torch.log(torch.tensor(0.75)) + torch.log(torch.tensor(0.5))) / 2
    torch.testing.assert_close(loss, expected)
    dY = layer.backward_loss(Y, T)
    torch.testing.assert_close(dY[0, 1], torch.tensor(-1 / 0.75 / 2))
    with pytest.raises(LayerSizeError):
        layer.check_input_size((1, 1, 3))
