import pytest
import torch

from mipnn.network import Layer, Network, UNBOUNDED


def test_default_bounds():
    layer = Layer(1, 3, torch.ones(3, 2), torch.zeros(3))
    assert torch.equal(layer.x_lb, torch.zeros(3, dtype=torch.float64))
    assert torch.equal(layer.s_lb, torch.zeros(3, dtype=torch.float64))
    assert (layer.x_ub == UNBOUNDED).all()
    assert (layer.s_ub == UNBOUNDED).all()


def test_input_domain_from_parameters(tiny_network):
    assert tiny_network.input_size == 2
    assert tiny_network.output_size == 2
    assert tiny_network.nb_layers == 2
    assert tiny_network.layers[0].x_lb.tolist() == [0., 0.]
    assert tiny_network.layers[0].x_ub.tolist() == [1., 1.]


def test_negative_lower_bound_only_on_input():
    inp = Layer(0, 2)
    inp.set_x_bounds(lb=-1.)
    assert inp.x_lb.tolist() == [-1., -1.]
    layer = Layer(1, 2, torch.eye(2), torch.zeros(2))
    with pytest.raises(ValueError):
        layer.set_x_bounds(lb=-1.)
    with pytest.raises(ValueError):
        layer.set_s_bounds(lb=[0., -0.5])


def test_layer_shape_validation():
    with pytest.raises(ValueError):
        Layer(1, 3, torch.ones(2, 2), torch.zeros(3))
    with pytest.raises(ValueError):
        Layer(1, 2, torch.ones(2, 2), torch.zeros(3))
    with pytest.raises(ValueError):
        Layer(1, 2)
    with pytest.raises(ValueError):
        Network([Layer(0, 3), Layer(1, 2, torch.ones(2, 2), torch.zeros(2))])


def test_clone_is_independent(tiny_network):
    layer = tiny_network.layers[1]
    copy = layer.clone()
    copy.weight[0, 0] = 42.
    copy.bias[1] = 42.
    copy.x_ub[0] = 0.5
    copy.s_ub[0] = 0.5
    copy.x_lb[2] = 0.1
    copy.s_lb[2] = 0.1
    assert layer.weight[0, 0].item() == 1.
    assert layer.bias[1].item() == 0.
    assert layer.x_ub[0].item() == UNBOUNDED
    assert layer.s_ub[0].item() == UNBOUNDED
    assert layer.x_lb[2].item() == 0.
    assert layer.s_lb[2].item() == 0.


def test_neuron_snapshot(tiny_network):
    tiny_network.layers[1].x_ub[:] = torch.tensor([1., 1., 2.], dtype=torch.float64)
    snapshot = tiny_network.neuron_snapshot(2, 1)
    assert snapshot.nb_layers == 2
    assert snapshot.output_size == 1
    assert snapshot.layers[2].weight.tolist() == [[0., 2., 0.]]
    assert snapshot.layers[1].x_ub.tolist() == [1., 1., 2.]
    assert snapshot.layers[2].x_ub.item() == UNBOUNDED

    # Mutating the snapshot leaves the master network untouched.
    snapshot.layers[1].x_ub[0] = 0.
    snapshot.layers[0].x_ub[0] = 0.
    snapshot.layers[2].weight[0, 1] = 0.
    assert tiny_network.layers[1].x_ub[0].item() == 1.
    assert tiny_network.layers[0].x_ub[0].item() == 1.
    assert tiny_network.layers[2].weight[1, 1].item() == 2.

    with pytest.raises(ValueError):
        tiny_network.neuron_snapshot(0, 0)
    with pytest.raises(ValueError):
        tiny_network.neuron_snapshot(1, 3)


def test_forward(tiny_network):
    xs, ss = tiny_network.forward([0.125, 0.5])
    assert xs[1].tolist() == pytest.approx([0., 0.375, 0.625])
    assert ss[1].tolist() == pytest.approx([0.375, 0., 0.])
    assert xs[2].tolist() == pytest.approx([0.625, 0.75])
    assert tiny_network.predict([0.125, 0.5]) == 1
    assert tiny_network.predict([0.5, 0.5]) == 0


def test_forward_with_transform(tiny_network):
    xs, _ = tiny_network.forward([0.5, 0.5], scale=[2., 1.], shift=[0., -0.5])
    # transformed input [1, 0]
    assert xs[0].tolist() == [0.5, 0.5]
    assert xs[1].tolist() == pytest.approx([1., 0., 1.])
    assert xs[2].tolist() == pytest.approx([2., 0.])


def test_interval_bounds(tiny_network):
    x_ubs, s_ubs = tiny_network.interval_bounds()
    assert x_ubs[0].tolist() == pytest.approx([1., 1., 2.])
    assert s_ubs[0].tolist() == pytest.approx([1., 1., 0.])
    assert x_ubs[1].tolist() == pytest.approx([3., 2.])
    assert s_ubs[1].tolist() == pytest.approx([0., 0.])


def test_set_input_bounds_resets_computed_bounds(tiny_network):
    tiny_network.layers[1].x_ub[:] = 1.
    tiny_network.layers[2].s_ub[:] = 0.
    tiny_network.set_input_bounds(ub=1.5)
    assert tiny_network.layers[0].x_ub.tolist() == [1.5, 1.5]
    assert tiny_network.layers[0].x_lb.tolist() == [0., 0.]
    assert (tiny_network.layers[1].x_ub == UNBOUNDED).all()
    assert (tiny_network.layers[2].s_ub == UNBOUNDED).all()
