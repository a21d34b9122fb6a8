from mipnn.encoding import encode_network
from mipnn.formulations.base import Formulation
from mipnn.solver import MAXIMIZE


class VisualizationMILP(Formulation):
    '''
    Find the input of the domain maximizing the output of class `target`.
    '''
    name = "visualization"

    def __init__(self, network, target, time_limit=None, gap_tolerance=None, threads=None):
        if not 0 <= target < network.output_size:
            raise ValueError(f"Target class {target} out of range for {network.output_size} outputs")
        self.target = target
        super().__init__(network, time_limit=time_limit, gap_tolerance=gap_tolerance, threads=threads)

    def build(self):
        self.encoded = encode_network(self.session, self.network)
        self.session.set_objective(self.encoded.outputs[self.target], MAXIMIZE)
