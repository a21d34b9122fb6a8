import json
import math
import os
import time

import pandas as pd
import torch

from mipnn.formulations import AdversarialMILP

RECORD_COLUMNS = ["Idx", "Label", "Target", "Solved", "Status", "Objective", "Gap", "Nodes", "Time"]


def load_json_params(json_path, defaults):
    '''
    Parameters of an experiment: `defaults`, overridden by the entries of the json file (if any).
    '''
    params = dict(defaults)
    if json_path:
        with open(json_path) as json_file:
            json_params = json.load(json_file)
        unknown = set(json_params) - set(defaults)
        if unknown:
            raise ValueError(f"Unknown parameters in {json_path}: {sorted(unknown)}")
        params.update(json_params)
    return params


def arch_string(architecture):
    return "_".join(str(n_k) for n_k in architecture)


def query_record(idx, label, target, formulation, solved, solve_time):
    '''
    One row of a result table, with the diagnostics of a solved (or not) adversarial formulation.
    '''
    result = formulation.result
    return {
        "Idx": idx,
        "Label": label,
        "Target": target,
        "Solved": solved,
        "Status": result.status.value,
        "Objective": result.objective,
        "Gap": result.gap,
        "Nodes": result.node_count,
        "Time": solve_time,
    }


def summarize_records(records, model_name, presolve_time=0.):
    '''
    Performance of a model over a set of queries: number of queries solved to optimality, sum of the optimality gaps,
    average number of nodes, time spent tightening the bounds, average solve time and average objective of the solved
    queries.
    '''
    df = pd.DataFrame(records, columns=RECORD_COLUMNS)
    nb_queries = len(df)
    solved = df[df["Solved"].astype(bool)]
    gaps = pd.to_numeric(df["Gap"], errors="coerce").fillna(0.)
    return {
        "Model": model_name,
        "Solved": len(solved),
        "TotalGap": gaps.sum(),
        "AveNodes": df["Nodes"].sum() / nb_queries if nb_queries else math.nan,
        "PresolveTime": presolve_time,
        "AveTime": df["Time"].sum() / nb_queries if nb_queries else math.nan,
        "AveObjective": solved["Objective"].astype(float).mean() if len(solved) else math.nan,
    }


def save_records(records, record_name):
    df = pd.DataFrame(records)
    directory = os.path.dirname(record_name)
    if directory:
        os.makedirs(directory, exist_ok=True)
    df.to_csv(record_name, index=False)
    return df


def perturbation_training_set(images, labels, adv_examples, adv_labels, nb_adversarial=2, stride=5,
                              per_source=9):
    '''
    Training set of the first perturbation: one original image out of every `stride`, then `nb_adversarial`
    adversarial examples generated from each of those images.
    The adversarial examples are expected in the order of generation: `per_source` examples for every source image.
    '''
    train_set, train_labels = [], []
    sources = [j for j in range(len(images)) if j % stride < 1]
    for j in sources:
        train_set.append(images[j])
        train_labels.append(labels[j])
    if nb_adversarial > 0:
        for j in sources:
            digit = adv_labels[per_source * j]
            for h in range(nb_adversarial):
                train_set.append(adv_examples[per_source * j + digit + h])
                train_labels.append(adv_labels[per_source * j + digit + h])
    return torch.stack([torch.as_tensor(x, dtype=torch.float64) for x in train_set]), train_labels


def adversarial_only_training_set(images, adv_examples, adv_labels, stride=5, per_source=9):
    '''
    One adversarial example for every `stride`-th source image.
    '''
    train_set, train_labels = [], []
    for j in range(len(images)):
        if j % stride < 1:
            digit = adv_labels[per_source * j]
            train_set.append(adv_examples[per_source * j + digit])
            train_labels.append(adv_labels[per_source * j + digit])
    return torch.stack([torch.as_tensor(x, dtype=torch.float64) for x in train_set]), train_labels


def target_training_set(images, labels, adv_examples, adv_labels, target, nb_originals=5, nb_sources=2,
                        per_source=9):
    '''
    Training set of the perturbation dedicated to `target`: the `nb_originals` images of that class (images are
    ordered by class, `nb_originals` per class), and the adversarial examples towards `target` generated from the
    first `nb_sources` images of every other class.
    '''
    train_set, train_labels = [], []
    for i in range(nb_originals):
        train_set.append(images[nb_originals * target + i])
        train_labels.append(labels[nb_originals * target + i])
    for j in range(len(images)):
        if j % nb_originals < nb_sources and labels[j] != target:
            # The examples of image j skip its own class.
            offset = target if labels[j] > target else target - 1
            train_set.append(adv_examples[per_source * j + offset])
            train_labels.append(adv_labels[per_source * j + offset])
    return torch.stack([torch.as_tensor(x, dtype=torch.float64) for x in train_set]), train_labels


def run_adversarial_queries(network, images, labels, model_name, max_deviation=1., gap_tolerance=None,
                            time_limit=None, scale=None, shift=None, threads=None, nb_images=None):
    '''
    For every image, search an adversarial example towards class (label + 5) % 10 and record the diagnostics.
    '''
    nb_images = len(images) if nb_images is None else min(nb_images, len(images))
    records = []
    for idx in range(nb_images):
        label = labels[idx]
        target = (label + 5) % network.output_size
        print(f"{model_name}: {idx + 1}/{nb_images}\t{label} to {target}")
        kwargs = {} if time_limit is None else {"time_limit": time_limit}
        with AdversarialMILP(network, images[idx], target, max_deviation=max_deviation, gap_tolerance=gap_tolerance,
                             scale=scale, shift=shift, threads=threads, **kwargs) as adv_model:
            start = time.time()
            solved = adv_model.solve()
            solve_time = time.time() - start
            records.append(query_record(idx, label, target, adv_model, solved, solve_time))
    return records
