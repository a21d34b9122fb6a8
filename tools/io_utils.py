import numpy as np
import torch

from mipnn.network import Network

IMAGE_WIDTH = 28


class WeightFileError(ValueError):
    pass


def _read_lines(path):
    with open(path) as f:
        return [line.strip() for line in f if line.strip()]


def _parse_row(path, line_idx, line, ncols=None, parser=float):
    try:
        values = [parser(tok) for tok in line.split(",")]
    except ValueError:
        raise WeightFileError(f"{path}:{line_idx + 1}: non numeric value in {line!r}")
    if ncols is not None and len(values) != ncols:
        raise WeightFileError(f"{path}:{line_idx + 1}: expected {ncols} values, got {len(values)}")
    return values


def read_weights(path):
    '''
    Read a weight file. Format:
        [n0]                      optional line holding the input dimension
        rows,cols                 header of a weight block, stored input-major (rows = n_{k-1}, cols = n_k)
        <rows lines of cols values>
        rows,1                    header of the bias block of the same layer (rows = n_k)
        <rows lines of 1 value>
        ...
    Returns the input dimension, the list of (n_k x n_{k-1}) weight matrices and the list of biases.
    '''
    lines = _read_lines(path)
    if not lines:
        raise WeightFileError(f"{path}: empty weight file")
    pos = 0
    input_size = None
    if len(lines[0].split(",")) == 1:
        input_size = _parse_row(path, 0, lines[0], 1, int)[0]
        pos = 1

    blocks = []
    while pos < len(lines):
        rows, cols = _parse_row(path, pos, lines[pos], 2, int)
        if pos + 1 + rows > len(lines):
            raise WeightFileError(f"{path}:{pos + 1}: block announces {rows} rows, "
                                  f"only {len(lines) - pos - 1} lines left")
        values = [_parse_row(path, line_idx, lines[line_idx], cols) for line_idx in range(pos + 1, pos + 1 + rows)]
        blocks.append(torch.tensor(values, dtype=torch.float64).reshape(rows, cols))
        pos += 1 + rows
    if not blocks:
        raise WeightFileError(f"{path}: no layer found")
    if len(blocks) % 2:
        raise WeightFileError(f"{path}: weight block without bias block")

    weights, biases = [], []
    prev_size = input_size if input_size is not None else blocks[0].shape[0]
    for layer_idx in range(len(blocks) // 2):
        weight_block, bias_block = blocks[2 * layer_idx], blocks[2 * layer_idx + 1]
        if weight_block.shape[0] != prev_size:
            raise WeightFileError(f"{path}: layer {layer_idx + 1} has {weight_block.shape[0]} inputs, "
                                  f"the previous layer has {prev_size} neurons")
        if bias_block.shape != (weight_block.shape[1], 1):
            raise WeightFileError(f"{path}: bias block of layer {layer_idx + 1} has shape "
                                  f"{tuple(bias_block.shape)}, expected ({weight_block.shape[1]}, 1)")
        weights.append(weight_block.t().contiguous())
        biases.append(bias_block[:, 0].clone())
        prev_size = weight_block.shape[1]
    if input_size is None:
        input_size = weights[0].shape[1]
    return input_size, weights, biases


def load_network(path, input_lb=0., input_ub=1.):
    input_size, weights, biases = read_weights(path)
    return Network.from_parameters(weights, biases, input_size, input_lb, input_ub)


def _format_row(values):
    return ",".join(repr(float(v)) for v in values)


def write_weights(path, network):
    lines = [str(network.input_size)]
    for layer in network.layers[1:]:
        lines.append(f"{layer.in_features},{layer.n}")
        lines.extend(_format_row(row) for row in layer.weight.t().tolist())
        lines.append(f"{layer.n},1")
        lines.extend(repr(float(b)) for b in layer.bias.tolist())
    with open(path, "w") as f:
        f.write("\n".join(lines) + "\n")


def _read_counted(path, parser):
    lines = _read_lines(path)
    if not lines:
        raise ValueError(f"{path}: empty file")
    count = int(lines[0])
    if len(lines) - 1 < count:
        raise ValueError(f"{path}: announces {count} entries, holds {len(lines) - 1}")
    return [parser(line) for line in lines[1:count + 1]]


def read_images(path):
    '''
    Image file: the number of images on the first line, then one flattened image per line.
    '''
    images = _read_counted(path, lambda line: [float(v) for v in line.split(",")])
    return torch.tensor(images, dtype=torch.float64)


def read_classifications(path):
    return _read_counted(path, int)


def write_image(path, values, width=IMAGE_WIDTH):
    '''
    Write a flattened image as `width` comma separated values per line.
    '''
    values = torch.as_tensor(values, dtype=torch.float64).reshape(-1, width).numpy()
    # 17 significant digits read back to the same double.
    np.savetxt(path, values, fmt="%.17g", delimiter=",")


def append_example(image_file, label_file, example, label):
    '''
    Append an example to an (uncounted) example set, kept as two open text files.
    '''
    image_file.write(_format_row(torch.as_tensor(example, dtype=torch.float64).reshape(-1).tolist()) + "\n")
    label_file.write(f"{int(label)}\n")


def read_example_set(image_path, label_path):
    examples = [[float(v) for v in line.split(",")] for line in _read_lines(image_path)]
    labels = [int(line) for line in _read_lines(label_path)]
    if len(examples) != len(labels):
        raise ValueError(f"{image_path} holds {len(examples)} examples, {label_path} {len(labels)} labels")
    return torch.tensor(examples, dtype=torch.float64), labels


def write_perturbation(path, scale=None, shift=None):
    '''
    One line per input dimension: "p,q", or only p or only q when the other part is not used.
    '''
    if scale is None and shift is None:
        raise ValueError("Nothing to write")
    columns = [torch.as_tensor(part).reshape(-1).tolist() for part in (scale, shift) if part is not None]
    with open(path, "w") as f:
        for row in zip(*columns):
            f.write(_format_row(row) + "\n")


def read_perturbation(path, use_scale=True, use_shift=True):
    '''
    Inverse of write_perturbation. Returns (scale, shift), None for a part that is not in the file.
    '''
    if not (use_scale or use_shift):
        raise ValueError("At least one of the scale and the shift must be read")
    rows = torch.tensor([[float(v) for v in line.split(",")] for line in _read_lines(path)], dtype=torch.float64)
    expected = int(use_scale) + int(use_shift)
    if rows.dim() != 2 or rows.shape[1] != expected:
        raise ValueError(f"{path}: expected {expected} columns per line")
    scale = rows[:, 0].clone() if use_scale else None
    shift = rows[:, -1].clone() if use_shift else None
    return scale, shift

