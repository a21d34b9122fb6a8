import argparse
import logging
import os
import time

from mipnn.bound_tightening import calculate_bounds
from mipnn.formulations import PerturbationMILP
from tools.experiment_utils import load_json_params, arch_string, perturbation_training_set, \
    adversarial_only_training_set, target_training_set
from tools.io_utils import load_network, read_images, read_classifications, read_example_set, write_perturbation

DEFAULTS = {
    "architecture": [8, 8, 8],
    "variants": ["perturb1"],
    "min_dist": True,
    "input_lb": -1.,
    "time_limit": 12 * 3600,
    "n_workers": 1,
}


def solve_perturbation(network, train_set, train_labels, target_file, use_scale=True, use_shift=True,
                       min_dist=False, time_limit=None):
    with PerturbationMILP(network, train_set, train_labels, use_scale=use_scale, use_shift=use_shift,
                          min_dist=min_dist, time_limit=time_limit) as perturb_model:
        start = time.time()
        perturb_model.solve()
        print(f"time: {time.time() - start}")
        if not perturb_model.result.has_solution:
            print(f"No perturbation found ({perturb_model.result.status.value}), {target_file} not written")
            return None
        print(f"{perturb_model.nb_correct()}/{len(train_labels)} examples classified with margin")
        write_perturbation(target_file, perturb_model.get_scale(), perturb_model.get_shift())
        return perturb_model.nb_correct()


def main():
    parser = argparse.ArgumentParser(description="Create shared input perturbations.")
    parser.add_argument('--data_dir', type=str, default='./input', help='directory holding weights/ and testdata/')
    parser.add_argument('--adv_dir', type=str, default='./output/advExmpls', help='directory of the example sets')
    parser.add_argument('--output_dir', type=str, default='./output/perturbation', help='where to write them')
    parser.add_argument('--json', type=str, help='json file overriding the experiment settings')
    args = parser.parse_args()

    params = load_json_params(args.json, DEFAULTS)
    arch = arch_string(params["architecture"])
    network = load_network(os.path.join(args.data_dir, "weights", arch, "weights.csv"), input_lb=params["input_lb"])
    calculate_bounds(network, n_workers=params["n_workers"])

    testdata = os.path.join(args.data_dir, "testdata", arch)
    images = read_images(os.path.join(testdata, "imagesOrdered.csv"))
    labels = read_classifications(os.path.join(testdata, "classificationsOrdered.csv"))
    adv_examples, adv_labels = read_example_set(os.path.join(args.adv_dir, arch, "images.csv"),
                                                os.path.join(args.adv_dir, arch, "classifications.csv"))

    out_dir = os.path.join(args.output_dir, arch)
    os.makedirs(os.path.join(out_dir, "perturbation1"), exist_ok=True)
    os.makedirs(os.path.join(out_dir, "perturbation2"), exist_ok=True)
    time_limit = params["time_limit"]
    for variant in params["variants"]:
        print(variant)
        if variant == "perturb1":
            train_set, train_labels = perturbation_training_set(images, labels, adv_examples, adv_labels)
            name = "perturbationMinDist.csv" if params["min_dist"] else "perturbation.csv"
            solve_perturbation(network, train_set, train_labels, os.path.join(out_dir, "perturbation1", name),
                               min_dist=params["min_dist"], time_limit=time_limit)
        elif variant == "weights_only":
            train_set, train_labels = perturbation_training_set(images, labels, adv_examples, adv_labels)
            solve_perturbation(network, train_set, train_labels,
                               os.path.join(out_dir, "perturbation1", "perturbationWeights.csv"),
                               use_shift=False, time_limit=time_limit)
        elif variant == "disturbances_only":
            train_set, train_labels = adversarial_only_training_set(images, adv_examples, adv_labels)
            solve_perturbation(network, train_set, train_labels,
                               os.path.join(out_dir, "perturbation1", "perturbationDisturbances.csv"),
                               use_scale=False, time_limit=time_limit)
        elif variant == "perturb2":
            for target in range(network.output_size):
                print(target)
                train_set, train_labels = target_training_set(images, labels, adv_examples, adv_labels, target)
                solve_perturbation(network, train_set, train_labels,
                                   os.path.join(out_dir, "perturbation2", f"perturbation{target}.csv"),
                                   time_limit=time_limit)
        else:
            raise ValueError(f"Unknown perturbation variant {variant}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    main()
