import argparse
import logging
import os

from mipnn.bound_tightening import calculate_bounds
from mipnn.formulations import VisualizationMILP
from tools.experiment_utils import load_json_params, arch_string
from tools.io_utils import load_network, write_image

DEFAULTS = {
    "architecture": [8, 8, 8],
    "time_limit": None,
    "n_workers": 1,
}


def main():
    parser = argparse.ArgumentParser(description="Find, for every class, the input maximizing its output.")
    parser.add_argument('--data_dir', type=str, default='./input', help='directory holding weights/')
    parser.add_argument('--output_dir', type=str, default='./output/visualize', help='where to write the images')
    parser.add_argument('--json', type=str, help='json file overriding the experiment settings')
    args = parser.parse_args()

    params = load_json_params(args.json, DEFAULTS)
    arch = arch_string(params["architecture"])
    network = load_network(os.path.join(args.data_dir, "weights", arch, "weights.csv"))
    calculate_bounds(network, n_workers=params["n_workers"])

    out_dir = os.path.join(args.output_dir, arch)
    os.makedirs(out_dir, exist_ok=True)
    for digit in range(network.output_size):
        with VisualizationMILP(network, digit, time_limit=params["time_limit"]) as vis_model:
            vis_model.solve()
            if not vis_model.result.has_solution:
                print(f"{digit}: no solution ({vis_model.result.status.value})")
                continue
            print(f"{digit}: output {vis_model.get_objective()}")
            write_image(os.path.join(out_dir, f"{digit}.csv"), vis_model.get_input())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    main()
