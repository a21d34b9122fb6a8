import argparse
import logging
import os

import pandas as pd

from mipnn.bound_tightening import calculate_bounds
from mipnn.network import UNBOUNDED
from tools.experiment_utils import load_json_params, run_adversarial_queries, summarize_records, save_records
from tools.io_utils import load_network, read_images, read_classifications, read_perturbation

DEFAULTS = {
    # Weights retrained by each improvement approach; "IP" keeps the original weights and applies the perturbation.
    "weight_files": {"IP": "weightsIP.csv", "PR": "weightsPR.csv", "CR": "weightsCR.csv"},
    "perturbation": "./output/perturbation/8_8_8/perturbation1/perturbationMinDist.csv",
    "perturbed_input_ub": 1.5,
    # The disturbances are only limited by the input domain.
    "max_deviation": UNBOUNDED,
    "nb_images": 100,
    "n_workers": 1,
}


def main():
    parser = argparse.ArgumentParser(description="Adversarial example search on improved networks.")
    parser.add_argument('--data_dir', type=str, default='./input', help='directory holding weights/ and testdata/')
    parser.add_argument('--results_dir', type=str, default='./output/solveData', help='where to store the results')
    parser.add_argument('--json', type=str, help='json file overriding the experiment settings')
    args = parser.parse_args()

    params = load_json_params(args.json, DEFAULTS)
    os.makedirs(args.results_dir, exist_ok=True)
    testdata = os.path.join(args.data_dir, "testdata", "afterImpr")
    images = read_images(os.path.join(testdata, "images.csv"))
    labels = read_classifications(os.path.join(testdata, "classifications.csv"))
    scale, shift = read_perturbation(params["perturbation"])

    def evaluate(network, approach, perturb):
        records = run_adversarial_queries(network, images, labels, approach, max_deviation=params["max_deviation"],
                                          scale=scale if perturb else None, shift=shift if perturb else None,
                                          nb_images=params["nb_images"])
        save_records(records, os.path.join(args.results_dir, f"afterImpr_{approach}.csv"))
        summary = summarize_records(records, approach)
        print(summary)
        return summary

    summaries = []
    for approach, weight_file in params["weight_files"].items():
        network = load_network(os.path.join(args.data_dir, "weights", "afterImpr", weight_file))
        calculate_bounds(network, n_workers=params["n_workers"])
        if approach == "IP":
            # Same weights as the base network.
            summaries.append(evaluate(network, "base", False))
            # A perturbed input may exceed 1: widen the input domain and tighten again.
            network.set_input_bounds(ub=params["perturbed_input_ub"])
            calculate_bounds(network, n_workers=params["n_workers"])
            summaries.append(evaluate(network, approach, True))
        else:
            summaries.append(evaluate(network, approach, False))

    summary_df = pd.DataFrame(summaries)
    summary_df.to_csv(os.path.join(args.results_dir, "solveDataAfterImpr.csv"), index=False)
    print(summary_df)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    main()
