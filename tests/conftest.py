import pytest
import torch

from mipnn.network import Network


def make_tiny_network():
    # 2 inputs, 3 hidden ReLUs, 2 outputs.
    # hidden = relu([x1 - x2, x2 - x1, x1 + x2]), output = [h1 + h3, 2 * h2]
    w1 = [[1., -1.], [-1., 1.], [1., 1.]]
    b1 = [0., 0., 0.]
    w2 = [[1., 0., 1.], [0., 2., 0.]]
    b2 = [0., 0.]
    return Network.from_parameters([w1, w2], [b1, b2])


@pytest.fixture
def tiny_network():
    return make_tiny_network()


@pytest.fixture
def random_network():
    gen = torch.Generator().manual_seed(0)
    weights = [torch.randn(4, 3, generator=gen, dtype=torch.float64),
               torch.randn(3, 4, generator=gen, dtype=torch.float64)]
    biases = [torch.randn(4, generator=gen, dtype=torch.float64),
              torch.randn(3, generator=gen, dtype=torch.float64)]
    return Network.from_parameters(weights, biases)


@pytest.fixture
def deep_network():
    # Large enough that a solve cannot finish within a few milliseconds.
    gen = torch.Generator().manual_seed(0)
    sizes = [30, 40, 40, 40, 10]
    weights = [torch.randn(n_out, n_in, generator=gen, dtype=torch.float64) for n_in, n_out in zip(sizes, sizes[1:])]
    biases = [torch.randn(n_out, generator=gen, dtype=torch.float64) for n_out in sizes[1:]]
    return Network.from_parameters(weights, biases)
