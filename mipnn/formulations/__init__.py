from mipnn.formulations.adversarial import AdversarialMILP, DOMINANCE_MARGIN
from mipnn.formulations.perturbation import PerturbationMILP
from mipnn.formulations.visualization import VisualizationMILP
