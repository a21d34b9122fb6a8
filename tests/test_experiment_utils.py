import json
import math
from types import SimpleNamespace

import pandas as pd
import pytest
import torch

from mipnn.solver import SolveResult, SolveStatus
from tools.experiment_utils import load_json_params, arch_string, query_record, summarize_records, save_records, \
    perturbation_training_set, adversarial_only_training_set, target_training_set


def fake_formulation(status, objective=None, gap=None, nodes=0):
    return SimpleNamespace(result=SolveResult(status=status, objective=objective, gap=gap, node_count=nodes))


def test_json_params(tmp_path):
    defaults = {"time_limit": 300, "gap": None}
    assert load_json_params(None, defaults) == defaults
    json_path = tmp_path / "params.json"
    json_path.write_text(json.dumps({"gap": 0.01}))
    assert load_json_params(str(json_path), defaults) == {"time_limit": 300, "gap": 0.01}
    json_path.write_text(json.dumps({"time_limt": 10}))
    with pytest.raises(ValueError):
        load_json_params(str(json_path), defaults)


def test_arch_string():
    assert arch_string([784, 20, 10]) == "784_20_10"


def test_summarize_records():
    records = [
        query_record(0, 3, 8, fake_formulation(SolveStatus.OPTIMAL, 2., 0., 10), True, 1.),
        query_record(1, 4, 9, fake_formulation(SolveStatus.FEASIBLE, 6., 0.5, 30), False, 3.),
        query_record(2, 5, 0, fake_formulation(SolveStatus.TIMEOUT, nodes=20), False, 5.),
    ]
    summary = summarize_records(records, "base", presolve_time=7.)
    assert summary["Model"] == "base"
    assert summary["Solved"] == 1
    assert summary["TotalGap"] == pytest.approx(0.5)
    assert summary["AveNodes"] == pytest.approx(20.)
    assert summary["PresolveTime"] == 7.
    assert summary["AveTime"] == pytest.approx(3.)
    assert summary["AveObjective"] == pytest.approx(2.)


def test_summarize_nothing_solved():
    records = [query_record(0, 1, 6, fake_formulation(SolveStatus.INFEASIBLE), False, 0.5)]
    summary = summarize_records(records, "weak")
    assert summary["Solved"] == 0
    assert math.isnan(summary["AveObjective"])


def test_save_records(tmp_path):
    records = [query_record(0, 3, 8, fake_formulation(SolveStatus.OPTIMAL, 2., 0., 10), True, 1.)]
    path = str(tmp_path / "results" / "records.csv")
    save_records(records, path)
    df = pd.read_csv(path)
    assert df["Status"].tolist() == ["optimal"]
    assert df["Target"].tolist() == [8]


def make_adversarial_set(labels, nb_classes=10):
    # For every source image, one example towards each other class, in increasing class order.
    adv_examples, adv_labels = [], []
    for label in labels:
        for cls in range(nb_classes):
            if cls != label:
                adv_examples.append(torch.full((2,), float(len(adv_examples)), dtype=torch.float64))
                adv_labels.append(cls)
    return torch.stack(adv_examples), adv_labels


def test_perturbation_training_set():
    labels = [3, 1, 1, 1, 1, 0, 1, 1, 1, 1]
    images = torch.arange(20, dtype=torch.float64).reshape(10, 2)
    adv_examples, adv_labels = make_adversarial_set(labels)
    train_set, train_labels = perturbation_training_set(images, labels, adv_examples, adv_labels)
    # Images 0 and 5, then two examples of each of them starting at the class of their first example.
    assert train_set[:2].tolist() == [[0., 1.], [10., 11.]]
    assert train_set[2:, 0].tolist() == [0., 1., 46., 47.]
    assert train_labels == [3, 0, 0, 1, 2, 3]

    train_set, train_labels = perturbation_training_set(images, labels, adv_examples, adv_labels, nb_adversarial=0)
    assert train_set.shape == (2, 2)
    assert train_labels == [3, 0]


def test_adversarial_only_training_set():
    labels = [3, 1, 1, 1, 1, 0, 1, 1, 1, 1]
    images = torch.zeros(10, 2, dtype=torch.float64)
    adv_examples, adv_labels = make_adversarial_set(labels)
    train_set, train_labels = adversarial_only_training_set(images, adv_examples, adv_labels)
    assert train_set[:, 0].tolist() == [0., 46.]
    assert train_labels == [0, 2]


def test_target_training_set():
    labels = [0] * 5 + [1] * 5 + [2] * 5
    images = torch.arange(15, dtype=torch.float64).reshape(15, 1).repeat(1, 2)
    adv_examples, adv_labels = make_adversarial_set(labels)
    train_set, train_labels = target_training_set(images, labels, adv_examples, adv_labels, target=1)
    assert train_set[:5, 0].tolist() == [5., 6., 7., 8., 9.]
    assert train_labels[:5] == [1] * 5
    # Two source images of each other class, each contributing its example towards class 1.
    assert len(train_set) == 9
    assert train_labels[5:] == [1] * 4
    assert train_set[5:, 0].tolist() == [0., 9., 91., 100.]
