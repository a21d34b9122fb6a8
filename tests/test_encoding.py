import pytest
import torch

pytest.importorskip("gurobipy")

from mipnn.encoding import encode_network, transform_inputs
from mipnn.formulations import VisualizationMILP
from mipnn.solver import MIPSession, MAXIMIZE


@pytest.mark.parametrize("point", [[0.3, 0.8], [0.9, 0.1], [0.5, 0.5]])
def test_encoding_reproduces_forward_pass(random_network, point):
    # Pin the input domain to a single point: the only feasible assignment is the forward pass.
    random_network.layers[0].set_x_bounds(point + [0.2], point + [0.2])
    xs, ss = random_network.forward(point + [0.2])
    with VisualizationMILP(random_network, 0) as model:
        assert model.solve()
        for k in range(1, random_network.nb_layers + 1):
            assert model.get_layer_values(k, "x").tolist() == pytest.approx(xs[k].tolist(), abs=1e-5)
            assert model.get_layer_values(k, "s").tolist() == pytest.approx(ss[k].tolist(), abs=1e-5)
            z = model.get_layer_values(k, "z")
            # z = 1 exactly for the neurons that are off.
            for z_j, x_j, s_j in zip(z.tolist(), xs[k].tolist(), ss[k].tolist()):
                if x_j > 1e-4:
                    assert z_j == pytest.approx(0., abs=1e-6)
                if s_j > 1e-4:
                    assert z_j == pytest.approx(1., abs=1e-6)


def test_encoding_with_constant_input_and_transform(tiny_network):
    xs, ss = tiny_network.forward([0.5, 0.5], scale=[2., 1.], shift=[0., -0.5])
    with MIPSession() as session:
        encoded = encode_network(session, tiny_network, inputs=[0.5, 0.5], scale=[2., 1.], shift=[0., -0.5],
                                 prefix="h0_")
        assert encoded.inputs == [0.5, 0.5]
        session.set_objective(encoded.outputs[0], MAXIMIZE)
        session.solve()
        assert session.get_values(encoded.outputs) == pytest.approx(xs[2].tolist(), abs=1e-6)
        assert session.get_values(encoded.s_vars[1]) == pytest.approx(ss[1].tolist(), abs=1e-6)
        assert encoded.x_vars[1][0].VarName == "h0_x_1_0"


def test_encoding_bounds_come_from_layers(tiny_network):
    tiny_network.layers[1].set_x_bounds(ub=[1., 1., 2.])
    tiny_network.layers[1].set_s_bounds(ub=[1., 1., 0.])
    with MIPSession() as session:
        encoded = encode_network(session, tiny_network)
        assert [var.UB for var in encoded.x_vars[1]] == [1., 1., 2.]
        assert [var.UB for var in encoded.s_vars[1]] == [1., 1., 0.]
        assert [var.LB for var in encoded.inputs] == [0., 0.]
        assert [var.UB for var in encoded.inputs] == [1., 1.]
        assert len(encoded.z_vars[2]) == 2
        assert encoded.z_vars[0] == []


def test_transform_inputs_rejects_bilinear_terms():
    with MIPSession() as session:
        inp = session.add_continuous_variable(0., 1.)
        p = session.add_continuous_variable(0., 2.)
        with pytest.raises(ValueError):
            transform_inputs([inp], scale=[p])
        # A variable scale on a constant input is linear.
        assert len(transform_inputs([0.5], scale=[p], shift=[0.1])) == 1


def test_transform_inputs_size_mismatch():
    with pytest.raises(ValueError):
        transform_inputs([0.1, 0.2], scale=[1.])
    with pytest.raises(ValueError):
        transform_inputs([0.1, 0.2], shift=[1., 2., 3.])


def test_constant_input_size_mismatch(tiny_network):
    with MIPSession() as session:
        with pytest.raises(ValueError):
            encode_network(session, tiny_network, inputs=torch.zeros(3).tolist())
