import logging

import torch

from mipnn.solver import MIPSession

logger = logging.getLogger(__name__)


class Formulation:
    '''
    A MILP built on top of the encoding of a network. Each formulation owns its solver session: release it with
    cleanup(), or use the formulation as a context manager.
    '''
    name = "formulation"

    def __init__(self, network, time_limit=None, gap_tolerance=None, threads=None):
        self.network = network
        self.time_limit = time_limit
        self.gap_tolerance = gap_tolerance
        self.encoded = None
        self.result = None
        self.session = MIPSession(name=self.name, threads=threads)
        try:
            self.build()
        except Exception:
            self.cleanup()
            raise

    def build(self):
        raise NotImplementedError

    def solve(self):
        '''
        Returns True if the problem was solved to (gap-tolerance) optimality.
        '''
        self.result = self.session.solve(time_limit=self.time_limit, gap_tolerance=self.gap_tolerance)
        logger.info(f"[{self.name}] status: {self.result.status.value}, objective: {self.result.objective}, "
                    f"gap: {self.result.gap}, nodes: {self.result.node_count}")
        return self.result.solved

    def get_objective(self):
        return self.session.get_objective_value()

    def get_gap(self):
        return self.session.get_relative_gap()

    def get_node_count(self):
        return self.session.get_node_count()

    def get_layer_values(self, k, part="x"):
        return torch.tensor(self.session.get_values(self.encoded.layer_vars(k, part)), dtype=torch.float64)

    def get_input(self):
        return self.get_layer_values(0)

    def get_output(self):
        return self.get_layer_values(self.network.nb_layers)

    def cleanup(self):
        self.session.dispose()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
        return False
