import torch

# Upper bound given to every activation before any tightening took place.
UNBOUNDED = 2147483647.0


def _as_bound_tensor(value, size):
    if isinstance(value, (int, float)):
        return torch.full((size,), float(value), dtype=torch.float64)
    bound = torch.as_tensor(value, dtype=torch.float64).clone().reshape(-1)
    if bound.numel() != size:
        raise ValueError(f"Expected {size} bound values, got {bound.numel()}")
    return bound


class Layer:
    '''
    A layer of a ReLU network together with the bounds on its activations.

    Every neuron j of a computed layer is split into its activated part x[j] = max(0, pre_j) and its suppressed part
    s[j] = max(0, -pre_j). x_lb/x_ub and s_lb/s_ub bound those two parts. For the input layer (k=0) only the x bounds
    are meaningful: they define the input domain.
    '''

    def __init__(self, k, n, weight=None, bias=None):
        '''
        k: position of the layer in the network, 0 being the input layer
        n: number of neurons
        weight: (n x n_{k-1}) matrix, weight[j][i] connects neuron i of layer k-1 to neuron j of layer k
        bias: vector of length n
        '''
        if k > 0 and (weight is None or bias is None):
            raise ValueError(f"Layer {k} needs both a weight matrix and a bias")
        if k == 0 and (weight is not None or bias is not None):
            raise ValueError("The input layer carries no weights")
        self.k = k
        self.n = n
        self.weight = None
        self.bias = None
        if k > 0:
            self.weight = torch.as_tensor(weight, dtype=torch.float64).clone()
            self.bias = torch.as_tensor(bias, dtype=torch.float64).clone().reshape(-1)
            if self.weight.dim() != 2 or self.weight.shape[0] != n:
                raise ValueError(f"Weight matrix of layer {k} should have {n} rows, got shape {tuple(self.weight.shape)}")
            if self.bias.numel() != n:
                raise ValueError(f"Bias of layer {k} should have {n} entries, got {self.bias.numel()}")

        self.x_lb = torch.zeros(n, dtype=torch.float64)
        self.x_ub = torch.full((n,), UNBOUNDED, dtype=torch.float64)
        self.s_lb = torch.zeros(n, dtype=torch.float64)
        self.s_ub = torch.full((n,), UNBOUNDED, dtype=torch.float64)

    @property
    def in_features(self):
        return None if self.weight is None else self.weight.shape[1]

    def set_x_bounds(self, lb=None, ub=None):
        if lb is not None:
            lb = _as_bound_tensor(lb, self.n)
            if self.k > 0 and (lb < 0).any():
                raise ValueError(f"Lower bounds of the activations of layer {self.k} must be non-negative")
            self.x_lb = lb
        if ub is not None:
            self.x_ub = _as_bound_tensor(ub, self.n)

    def set_s_bounds(self, lb=None, ub=None):
        if lb is not None:
            lb = _as_bound_tensor(lb, self.n)
            if (lb < 0).any():
                raise ValueError(f"Lower bounds of the suppressed parts of layer {self.k} must be non-negative")
            self.s_lb = lb
        if ub is not None:
            self.s_ub = _as_bound_tensor(ub, self.n)

    def clone(self):
        new_layer = Layer.__new__(Layer)
        new_layer.k = self.k
        new_layer.n = self.n
        new_layer.weight = None if self.weight is None else self.weight.clone()
        new_layer.bias = None if self.bias is None else self.bias.clone()
        new_layer.x_lb = self.x_lb.clone()
        new_layer.x_ub = self.x_ub.clone()
        new_layer.s_lb = self.s_lb.clone()
        new_layer.s_ub = self.s_ub.clone()
        return new_layer

    def __repr__(self):
        return f"Layer(k={self.k}, n={self.n})"


class Network:
    '''
    Feed-forward ReLU network: layers[0] is the input layer, layers[1..K] are the computed layers.
    The network owns its layers, bound tightening mutates their bounds in place.
    '''

    def __init__(self, layers):
        if not layers:
            raise ValueError("A network needs at least an input layer")
        for k, layer in enumerate(layers):
            if layer.k != k:
                raise ValueError(f"Layer at position {k} reports index {layer.k}")
            if k > 0 and layer.in_features != layers[k - 1].n:
                raise ValueError(f"Layer {k} expects {layer.in_features} inputs but layer {k-1} has {layers[k-1].n} neurons")
        self.layers = list(layers)

    @classmethod
    def from_parameters(cls, weights, biases, input_size=None, input_lb=0., input_ub=1.):
        '''
        Build a network from a list of weight matrices (n_k x n_{k-1}) and biases.
        The input domain defaults to the unit box.
        '''
        if len(weights) != len(biases):
            raise ValueError(f"Got {len(weights)} weight matrices for {len(biases)} biases")
        weights = [torch.as_tensor(w, dtype=torch.float64) for w in weights]
        if input_size is None:
            input_size = weights[0].shape[1]
        input_layer = Layer(0, input_size)
        input_layer.set_x_bounds(input_lb, input_ub)
        layers = [input_layer]
        for k, (weight, bias) in enumerate(zip(weights, biases), start=1):
            layers.append(Layer(k, weight.shape[0], weight, bias))
        return cls(layers)

    @property
    def nb_layers(self):
        # Number of computed layers (K).
        return len(self.layers) - 1

    @property
    def input_size(self):
        return self.layers[0].n

    @property
    def output_size(self):
        return self.layers[-1].n

    def set_input_bounds(self, lb=None, ub=None):
        # Bounds of the computed layers were derived from the previous input domain: drop them.
        self.layers[0].set_x_bounds(lb, ub)
        self.reset_bounds()

    def reset_bounds(self):
        for layer in self.layers[1:]:
            layer.set_x_bounds(0., UNBOUNDED)
            layer.set_s_bounds(0., UNBOUNDED)

    def clone(self):
        return Network([layer.clone() for layer in self.layers])

    def neuron_snapshot(self, k, j):
        '''
        Independent copy of layers 0..k-1, followed by a single-neuron layer holding neuron j of layer k.
        The bounds of the copied layers are the ones currently stored, the isolated neuron is left unbounded.
        '''
        if not 1 <= k <= self.nb_layers:
            raise ValueError(f"No computed layer {k} in a network with {self.nb_layers} layers")
        layer = self.layers[k]
        if not 0 <= j < layer.n:
            raise ValueError(f"Layer {k} has no neuron {j}")
        prefix = [lay.clone() for lay in self.layers[:k]]
        isolated = Layer(k, 1, layer.weight[j:j + 1], layer.bias[j:j + 1])
        return Network(prefix + [isolated])

    def forward(self, inp, scale=None, shift=None):
        '''
        Plain evaluation of the network. If given, scale and shift transform the input (inp * scale + shift) before
        it enters the first computed layer.
        Returns the lists of activated parts and suppressed parts for every layer (index 0 holds the raw input and
        zeros respectively).
        '''
        inp = torch.as_tensor(inp, dtype=torch.float64).reshape(-1)
        if inp.numel() != self.input_size:
            raise ValueError(f"Expected an input of size {self.input_size}, got {inp.numel()}")
        xs = [inp]
        ss = [torch.zeros_like(inp)]
        act = inp
        if scale is not None:
            act = act * torch.as_tensor(scale, dtype=torch.float64)
        if shift is not None:
            act = act + torch.as_tensor(shift, dtype=torch.float64)
        for layer in self.layers[1:]:
            pre = layer.weight @ act + layer.bias
            act = torch.clamp(pre, min=0)
            xs.append(act)
            ss.append(torch.clamp(-pre, min=0))
        return xs, ss

    def predict(self, inp, scale=None, shift=None):
        xs, _ = self.forward(inp, scale, shift)
        return torch.argmax(xs[-1]).item()

    def interval_bounds(self):
        '''
        Naive interval propagation of the input domain through the network.
        Returns, for every computed layer, the upper bounds on the activated and on the suppressed parts.
        '''
        current_lb = self.layers[0].x_lb
        current_ub = self.layers[0].x_ub
        x_ubs = []
        s_ubs = []
        for layer in self.layers[1:]:
            center = torch.mv(layer.weight, current_ub + current_lb) / 2 + layer.bias
            offset = torch.mv(torch.abs(layer.weight), current_ub - current_lb) / 2
            pre_lb = center - offset
            pre_ub = center + offset
            x_ubs.append(torch.clamp(pre_ub, min=0))
            s_ubs.append(torch.clamp(-pre_lb, min=0))
            current_lb = torch.clamp(pre_lb, min=0)
            current_ub = torch.clamp(pre_ub, min=0)
        return x_ubs, s_ubs

    def __repr__(self):
        sizes = "-".join(str(layer.n) for layer in self.layers)
        return f"Network({sizes})"
