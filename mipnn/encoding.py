import numbers


class EncodedNetwork:
    '''
    Solver variables of an encoded network, indexed by layer position.
    x_vars[0] holds the network input (solver variables or constants), s_vars[0] and z_vars[0] are empty.
    '''

    def __init__(self, x_vars, s_vars, z_vars):
        self.x_vars = x_vars
        self.s_vars = s_vars
        self.z_vars = z_vars

    @property
    def inputs(self):
        return self.x_vars[0]

    @property
    def outputs(self):
        return self.x_vars[-1]

    def layer_vars(self, k, part="x"):
        if part == "x":
            return self.x_vars[k]
        elif part == "s":
            return self.s_vars[k]
        elif part == "z":
            return self.z_vars[k]
        raise ValueError(f"Unknown variable kind {part!r}")


def create_input_variables(session, input_layer, prefix=""):
    inp_vars = []
    for dim, (lb, ub) in enumerate(zip(input_layer.x_lb.tolist(), input_layer.x_ub.tolist())):
        inp_vars.append(session.add_continuous_variable(lb, ub, name=f"{prefix}inp_{dim}"))
    return inp_vars


def transform_inputs(inputs, scale=None, shift=None):
    '''
    Apply the affine input transform input_i * scale_i + shift_i. Inputs, scale and shift may each be constants or
    solver variables, but a variable scale cannot multiply a variable input as the result would not be linear.
    '''
    if scale is None and shift is None:
        return list(inputs)
    if scale is not None and len(scale) != len(inputs):
        raise ValueError(f"Scale has {len(scale)} entries for {len(inputs)} inputs")
    if shift is not None and len(shift) != len(inputs):
        raise ValueError(f"Shift has {len(shift)} entries for {len(inputs)} inputs")
    transformed = []
    for idx, inp in enumerate(inputs):
        act = inp
        if scale is not None:
            p = scale[idx]
            if not isinstance(p, numbers.Number) and not isinstance(inp, numbers.Number):
                raise ValueError("Cannot scale a variable input by a variable factor")
            act = p * act
        if shift is not None:
            act = act + shift[idx]
        transformed.append(act)
    return transformed


def encode_layer(session, layer, pre_vars, prefix=""):
    '''
    Add the variables and constraints of a computed layer.
    For each neuron j: x_j - s_j = b_j + sum_i w_ji * pre_i, with x_j, s_j within the bounds stored in the layer, and
    a binary z_j such that z_j = 1 forces x_j = 0 and z_j = 0 forces s_j = 0.
    '''
    k = layer.k
    x_lbs, x_ubs = layer.x_lb.tolist(), layer.x_ub.tolist()
    s_lbs, s_ubs = layer.s_lb.tolist(), layer.s_ub.tolist()
    biases = layer.bias.tolist()
    x_vars, s_vars, z_vars = [], [], []
    for neuron_idx, weight_row in enumerate(layer.weight.tolist()):
        x = session.add_continuous_variable(x_lbs[neuron_idx], x_ubs[neuron_idx], name=f"{prefix}x_{k}_{neuron_idx}")
        s = session.add_continuous_variable(s_lbs[neuron_idx], s_ubs[neuron_idx], name=f"{prefix}s_{k}_{neuron_idx}")
        z = session.add_binary_variable(name=f"{prefix}z_{k}_{neuron_idx}")

        lin_expr = session.linear_expression(biases[neuron_idx])
        for coeff, pre_var in zip(weight_row, pre_vars):
            if coeff != 0:
                lin_expr += coeff * pre_var
        session.add_linear_equality(x - s, lin_expr, name=f"{prefix}def_{k}_{neuron_idx}")
        session.add_indicator(z, 1, x, "==", 0., name=f"{prefix}off_{k}_{neuron_idx}")
        session.add_indicator(z, 0, s, "==", 0., name=f"{prefix}on_{k}_{neuron_idx}")

        x_vars.append(x)
        s_vars.append(s)
        z_vars.append(z)
    return x_vars, s_vars, z_vars


def encode_network(session, network, inputs=None, scale=None, shift=None, prefix=""):
    '''
    Encode the whole network in the session.

    inputs: (optional) constant input vector. If None, the input is a vector of variables within the input domain.
    scale, shift: (optional) affine transform applied to the input before the first computed layer.
    prefix: (optional) prepended to every variable name, to hold several copies of the network in one model.
    '''
    if inputs is None:
        inp_vars = create_input_variables(session, network.layers[0], prefix)
    else:
        inp_vars = [float(v) for v in inputs]
        if len(inp_vars) != network.input_size:
            raise ValueError(f"Expected {network.input_size} input values, got {len(inp_vars)}")

    x_vars, s_vars, z_vars = [inp_vars], [[]], [[]]
    pre_vars = transform_inputs(inp_vars, scale, shift)
    for layer in network.layers[1:]:
        x, s, z = encode_layer(session, layer, pre_vars, prefix)
        x_vars.append(x)
        s_vars.append(s)
        z_vars.append(z)
        pre_vars = x
    session.model.update()
    return EncodedNetwork(x_vars, s_vars, z_vars)
