import argparse
import logging
import os

import pandas as pd

from mipnn.bound_tightening import calculate_bounds, FAST_TIME_LIMIT
from tools.experiment_utils import load_json_params, arch_string, run_adversarial_queries, summarize_records, \
    save_records
from tools.io_utils import load_network, read_images, read_classifications

DEFAULTS = {
    "architectures": [[8, 8, 8], [8, 8, 8, 8, 8], [20, 10, 8, 8], [20, 10, 8, 8, 8]],
    "max_deviation": 1.,
    "gap_tolerance": None,
    "nb_images": 100,
    "fast_time_limit": FAST_TIME_LIMIT,
    "n_workers": 1,
}


def compare_models(architecture, params, data_dir, results_dir):
    '''
    Adversarial example search on one network under the three bound settings: no tightening ("base"), tightening with
    a time limit on each solve ("weak") and tightening to optimality ("improved"). The tightenings are applied
    one after the other to the same network.
    '''
    arch = arch_string(architecture)
    network = load_network(os.path.join(data_dir, "weights", arch, "weights.csv"))
    testdata = os.path.join(data_dir, "testdata", arch)
    images = read_images(os.path.join(testdata, "images.csv"))
    labels = read_classifications(os.path.join(testdata, "classifications.csv"))

    summaries = []
    for model_name, time_limit in [("base", None), ("weak", params["fast_time_limit"]), ("improved", None)]:
        presolve_time = 0.
        if model_name != "base":
            presolve_time = calculate_bounds(network, time_limit=time_limit, n_workers=params["n_workers"])
        records = run_adversarial_queries(network, images, labels, f"{arch} ({model_name})",
                                          max_deviation=params["max_deviation"],
                                          gap_tolerance=params["gap_tolerance"], nb_images=params["nb_images"])
        save_records(records, os.path.join(results_dir, f"{arch}_{model_name}.csv"))
        summary = summarize_records(records, model_name, presolve_time)
        summary["Architecture"] = arch
        print(summary)
        summaries.append(summary)
    return summaries


def main():
    parser = argparse.ArgumentParser(description="Compare adversarial example search with and without bound "
                                                 "tightening.")
    parser.add_argument('--data_dir', type=str, default='./input', help='directory holding weights/ and testdata/')
    parser.add_argument('--results_dir', type=str, default='./output/solveData', help='where to store the results')
    parser.add_argument('--json', type=str, help='json file overriding the experiment settings')
    args = parser.parse_args()

    params = load_json_params(args.json, DEFAULTS)
    os.makedirs(args.results_dir, exist_ok=True)

    summaries = []
    for architecture in params["architectures"]:
        summaries.extend(compare_models(architecture, params, args.data_dir, args.results_dir))
    summary_df = pd.DataFrame(summaries)
    summary_df.to_csv(os.path.join(args.results_dir, "solveData.csv"), index=False)
    print(summary_df)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    main()
