import torch

from mipnn.encoding import encode_network
from mipnn.formulations.base import Formulation
from mipnn.network import UNBOUNDED
from mipnn.solver import MINIMIZE

# The target output must exceed every other output by this factor.
DOMINANCE_MARGIN = 1.2
ADVERSARIAL_TIME_LIMIT = 300


class AdversarialMILP(Formulation):
    '''
    Search for the input closest (in L1 norm) to `inp` that the network classifies as `target` with a margin.

    min  sum_i d_i
    s.t. d_i >= x0_i - inp_i,  -d_i <= x0_i - inp_i,  d_i <= max_deviation
         x_K[target] >= 1.2 * x_K[c]   for every c != target
         network encoding of x0
    If a scale and/or a shift are given, the network sees x0 * scale + shift instead of x0.
    '''
    name = "adversarial"

    def __init__(self, network, inp, target, max_deviation=1., gap_tolerance=None, scale=None, shift=None,
                 time_limit=ADVERSARIAL_TIME_LIMIT, threads=None):
        self.original = torch.as_tensor(inp, dtype=torch.float64).reshape(-1)
        if self.original.numel() != network.input_size:
            raise ValueError(f"Expected an input of size {network.input_size}, got {self.original.numel()}")
        if not 0 <= target < network.output_size:
            raise ValueError(f"Target class {target} out of range for {network.output_size} outputs")
        if max_deviation < 0:
            raise ValueError(f"The maximum deviation must be non-negative, got {max_deviation}")
        self.target = target
        self.max_deviation = max_deviation
        self.scale = None if scale is None else torch.as_tensor(scale, dtype=torch.float64).reshape(-1).tolist()
        self.shift = None if shift is None else torch.as_tensor(shift, dtype=torch.float64).reshape(-1).tolist()
        self.d_vars = []
        super().__init__(network, time_limit=time_limit, gap_tolerance=gap_tolerance, threads=threads)

    def build(self):
        session = self.session
        self.encoded = encode_network(session, self.network, scale=self.scale, shift=self.shift)

        objective = session.linear_expression()
        for dim, (inp_var, orig) in enumerate(zip(self.encoded.inputs, self.original.tolist())):
            d = session.add_continuous_variable(0., UNBOUNDED, name=f"d_{dim}")
            session.add_linear_inequality(d, ">=", inp_var - orig, name=f"dpos_{dim}")
            session.add_linear_inequality(-d, "<=", inp_var - orig, name=f"dneg_{dim}")
            session.add_linear_inequality(d, "<=", self.max_deviation, name=f"dmax_{dim}")
            self.d_vars.append(d)
            objective += d

        out_vars = self.encoded.outputs
        for cls, out_var in enumerate(out_vars):
            if cls != self.target:
                session.add_linear_inequality(out_vars[self.target], ">=", DOMINANCE_MARGIN * out_var,
                                              name=f"dominance_{cls}")
        session.set_objective(objective, MINIMIZE)

    def get_disturbances(self):
        return torch.tensor(self.session.get_values(self.d_vars), dtype=torch.float64)
