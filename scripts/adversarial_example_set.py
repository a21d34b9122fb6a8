import argparse
import logging
import os

from mipnn.bound_tightening import calculate_bounds
from mipnn.formulations import AdversarialMILP
from tools.experiment_utils import load_json_params, arch_string
from tools.io_utils import load_network, read_images, read_classifications, append_example, write_image

DEFAULTS = {
    "architectures": [[8, 8, 8]],
    "max_deviation": 1.,
    # (input images, input labels, output examples, output labels)
    "sets": [
        ["imagesOrdered.csv", "classificationsOrdered.csv", "images.csv", "classifications.csv"],
        ["imagesOrdered2.csv", "classificationsOrdered2.csv", "imagesTest.csv", "classificationsTest.csv"],
    ],
    "n_workers": 1,
    # If set, every solved example is also written as a 28x28 image, next to its source image.
    "image_dir": None,
}


def write_adversarial_examples(network, images, labels, image_file, label_file, max_deviation, image_dir=None):
    '''
    For every image and every class other than its label, search an adversarial example. The ones solved to
    optimality are appended to the example set along with the label of their source image.
    '''
    nb_written = 0
    for idx, (image, label) in enumerate(zip(images, labels)):
        for target in range(network.output_size):
            if target == label:
                continue
            print(f"{idx + 1}/{len(images)}\t{label} to {target}")
            with AdversarialMILP(network, image, target, max_deviation=max_deviation) as adv_model:
                if adv_model.solve():
                    append_example(image_file, label_file, adv_model.get_input(), label)
                    if image_dir is not None:
                        write_image(os.path.join(image_dir, "adversarial", f"{label}to{target}_{idx}.csv"),
                                    adv_model.get_input())
                        write_image(os.path.join(image_dir, "original", f"{label}to{target}_{idx}.csv"), image)
                    nb_written += 1
    return nb_written


def main():
    parser = argparse.ArgumentParser(description="Build data sets of adversarial examples.")
    parser.add_argument('--data_dir', type=str, default='./input', help='directory holding weights/ and testdata/')
    parser.add_argument('--output_dir', type=str, default='./output/advExmpls', help='where to write the examples')
    parser.add_argument('--json', type=str, help='json file overriding the experiment settings')
    args = parser.parse_args()

    params = load_json_params(args.json, DEFAULTS)
    for architecture in params["architectures"]:
        arch = arch_string(architecture)
        network = load_network(os.path.join(args.data_dir, "weights", arch, "weights.csv"))
        calculate_bounds(network, n_workers=params["n_workers"])

        testdata = os.path.join(args.data_dir, "testdata", arch)
        out_dir = os.path.join(args.output_dir, arch)
        os.makedirs(out_dir, exist_ok=True)
        image_dir = None
        if params["image_dir"]:
            image_dir = os.path.join(params["image_dir"], arch)
            os.makedirs(os.path.join(image_dir, "adversarial"), exist_ok=True)
            os.makedirs(os.path.join(image_dir, "original"), exist_ok=True)
        for images_name, labels_name, out_images, out_labels in params["sets"]:
            images = read_images(os.path.join(testdata, images_name))
            labels = read_classifications(os.path.join(testdata, labels_name))
            with open(os.path.join(out_dir, out_images), "w") as image_file, \
                    open(os.path.join(out_dir, out_labels), "w") as label_file:
                nb_written = write_adversarial_examples(network, images, labels, image_file, label_file,
                                                        params["max_deviation"], image_dir)
            print(f"{arch}: wrote {nb_written} adversarial examples to {out_images}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    main()
