import logging

import torch

from mipnn.encoding import encode_network
from mipnn.formulations.adversarial import DOMINANCE_MARGIN
from mipnn.formulations.base import Formulation
from mipnn.network import UNBOUNDED
from mipnn.solver import MAXIMIZE

logger = logging.getLogger(__name__)

PERTURBATION_TIME_LIMIT = 12 * 3600
# Minimum value of the per-example output bound y_h.
MIN_OUTPUT = 0.01
# Weight of the distance of (p, q) from the identity transform in the minimum-distance objective.
DISTANCE_WEIGHT = 0.001


class PerturbationMILP(Formulation):
    '''
    Find one affine input transform x -> p * x + q, shared by all the given examples, maximizing the number of
    indicators t_{h,c} set to 1.

    For every example h, with label l_h:
        y_h >= 1.2 * x_K[h, c]  for c != l_h,   y_h >= x_K[h, l_h],   y_h >= 0.01
        t_{h,c} = 1  =>  y_h <= x_K[h, c]
        t_{h,c} <= 1 if c == l_h else 0
    so t_{h,l_h} can only be 1 when the example is classified as l_h with margin after the transform.
    With min_dist, the objective also pulls p towards 1 and q towards 0.
    '''
    name = "perturbation"

    def __init__(self, network, inputs, classes, use_scale=True, use_shift=True, min_dist=False,
                 time_limit=PERTURBATION_TIME_LIMIT, gap_tolerance=None, threads=None):
        if not (use_scale or use_shift):
            raise ValueError("At least one of the scale and the shift must be optimized")
        self.inputs = torch.as_tensor(inputs, dtype=torch.float64)
        if self.inputs.dim() != 2 or self.inputs.shape[1] != network.input_size:
            raise ValueError(f"Expected a (H x {network.input_size}) batch of inputs, "
                             f"got shape {tuple(self.inputs.shape)}")
        self.classes = [int(c) for c in classes]
        if len(self.classes) != self.inputs.shape[0]:
            raise ValueError(f"Got {len(self.classes)} labels for {self.inputs.shape[0]} examples")
        for cls in self.classes:
            if not 0 <= cls < network.output_size:
                raise ValueError(f"Label {cls} out of range for {network.output_size} outputs")
        self.use_scale = use_scale
        self.use_shift = use_shift
        self.min_dist = min_dist
        self.p_vars = None
        self.q_vars = None
        self.y_vars = []
        self.t_vars = []
        self.copies = []
        super().__init__(network, time_limit=time_limit, gap_tolerance=gap_tolerance, threads=threads)

    def build(self):
        session = self.session
        n_inp = self.network.input_size
        if self.use_scale:
            self.p_vars = [session.add_continuous_variable(0., UNBOUNDED, name=f"p_{i}") for i in range(n_inp)]
        if self.use_shift:
            self.q_vars = [session.add_continuous_variable(-UNBOUNDED, UNBOUNDED, name=f"q_{i}")
                           for i in range(n_inp)]

        y_ub = self.network.layers[-1].x_ub.max().item()
        objective = session.linear_expression()
        for h, (inp, label) in enumerate(zip(self.inputs, self.classes)):
            prefix = f"h{h}_"
            encoded = encode_network(session, self.network, inputs=inp.tolist(), scale=self.p_vars,
                                     shift=self.q_vars, prefix=prefix)
            self.copies.append(encoded)

            y = session.add_continuous_variable(0., y_ub, name=f"{prefix}y")
            session.add_linear_inequality(y, ">=", MIN_OUTPUT, name=f"{prefix}y_floor")
            t_row = []
            for cls, out_var in enumerate(encoded.outputs):
                margin = 1. if cls == label else DOMINANCE_MARGIN
                session.add_linear_inequality(y, ">=", margin * out_var, name=f"{prefix}y_{cls}")
                t = session.add_binary_variable(name=f"{prefix}t_{cls}")
                session.add_linear_inequality(t, "<=", 1. if cls == label else 0., name=f"{prefix}t_ub_{cls}")
                session.add_indicator(t, 1, y - out_var, "<=", 0., name=f"{prefix}t_{cls}_on")
                t_row.append(t)
                objective += t
            self.y_vars.append(y)
            self.t_vars.append(t_row)

        if self.min_dist:
            distance = session.linear_expression()
            if self.use_scale:
                for i, p in enumerate(self.p_vars):
                    dist_p = session.add_continuous_variable(0., UNBOUNDED, name=f"dist_p_{i}")
                    session.add_linear_inequality(dist_p, ">=", 1 - p)
                    session.add_linear_inequality(dist_p, ">=", p - 1)
                    distance += dist_p
            if self.use_shift:
                for i, q in enumerate(self.q_vars):
                    dist_q = session.add_continuous_variable(0., UNBOUNDED, name=f"dist_q_{i}")
                    session.add_linear_inequality(dist_q, ">=", q)
                    session.add_linear_inequality(dist_q, ">=", -q)
                    distance += dist_q
            objective -= DISTANCE_WEIGHT * distance
        session.set_objective(objective, MAXIMIZE)

    def solve(self):
        solved = super().solve()
        if self.result.has_solution:
            logger.info(f"[{self.name}] sum|p|: {self.get_scale().abs().sum().item() if self.use_scale else None}, "
                        f"sum|q|: {self.get_shift().abs().sum().item() if self.use_shift else None}, "
                        f"sum t: {self.nb_correct()}")
        return solved

    def get_scale(self):
        if not self.use_scale:
            return None
        return torch.tensor(self.session.get_values(self.p_vars), dtype=torch.float64)

    def get_shift(self):
        if not self.use_shift:
            return None
        return torch.tensor(self.session.get_values(self.q_vars), dtype=torch.float64)

    def get_indicators(self):
        values = [self.session.get_values(t_row) for t_row in self.t_vars]
        return torch.tensor(values, dtype=torch.float64).round()

    def get_y(self):
        return torch.tensor(self.session.get_values(self.y_vars), dtype=torch.float64)

    def get_layer_values(self, k, part="x", h=0):
        return torch.tensor(self.session.get_values(self.copies[h].layer_vars(k, part)), dtype=torch.float64)

    def get_output(self):
        # One row per example.
        k = self.network.nb_layers
        return torch.stack([self.get_layer_values(k, h=h) for h in range(len(self.copies))])

    def nb_correct(self):
        return int(self.get_indicators().sum().item())
