import logging
import time

import torch.multiprocessing as mp

from mipnn.encoding import encode_network
from mipnn.network import UNBOUNDED
from mipnn.solver import MIPSession, SolveStatus, MAXIMIZE

logger = logging.getLogger(__name__)

# Per-solve time budget of the fast (weak) tightening.
FAST_TIME_LIMIT = 1.


def neuron_upper_bounds(snapshot, time_limit=None, n_threads=None):
    '''
    Maximize the activated and the suppressed part of the single neuron closing `snapshot`.
    Returns the two upper bounds as proven by the solver, None for a bound whose problem is infeasible.
    When the solve is truncated by the time limit, the best bound found so far is returned: it is still valid.
    A solve stopped before proving any bound gives UNBOUNDED, which leaves the stored bound unchanged.
    '''
    bounds = []
    with MIPSession(name="bounds", threads=n_threads) as session:
        encoded = encode_network(session, snapshot)
        for name, var in (("x", encoded.x_vars[-1][0]), ("s", encoded.s_vars[-1][0])):
            session.set_objective(var, MAXIMIZE)
            result = session.solve(time_limit=time_limit)
            if result.status is SolveStatus.INFEASIBLE:
                bounds.append(None)
            elif result.best_bound is not None:
                bounds.append(result.best_bound)
            else:
                # An incumbent is only a lower bound on the maximum.
                logger.warning(f"No bound proven for {name}[{snapshot.nb_layers}] (status: {result.status.value}), "
                               f"keeping the old bound")
                bounds.append(UNBOUNDED)
    return tuple(bounds)


def _neuron_job(args):
    # Entry point for the worker processes.
    neuron_idx, snapshot, time_limit, n_threads = args
    return (neuron_idx,) + neuron_upper_bounds(snapshot, time_limit, n_threads)


class BoundTightener:
    '''
    Tighten the upper bounds on x and s of every neuron, layer after layer, by solving for each neuron the MILP of the
    network prefix it depends on. Bounds of layer k only depend on the (already tightened) layers 0..k-1.
    '''

    def __init__(self, network, time_limit=None, n_threads=None, n_workers=1):
        '''
        time_limit: (optional) budget in seconds of each individual solve. None means solving to optimality.
        n_threads: number of threads to use in the solution of each Gurobi model
        n_workers: number of processes solving the neurons of a layer in parallel
        '''
        self.network = network
        self.time_limit = time_limit
        self.n_threads = n_threads
        self.n_workers = n_workers

    def _update_bounds(self, layer, neuron_idx, x_bound, s_bound):
        for bound, ubs, name in ((x_bound, layer.x_ub, "x"), (s_bound, layer.s_ub, "s")):
            if bound is None:
                logger.warning(f"Infeasible bound problem for {name}[{layer.k}, {neuron_idx}], keeping the old bound")
                continue
            ubs[neuron_idx] = min(ubs[neuron_idx].item(), max(0., bound))

    def tighten_layer(self, k, pool=None):
        layer = self.network.layers[k]
        jobs = [(j, self.network.neuron_snapshot(k, j), self.time_limit, self.n_threads) for j in range(layer.n)]
        if pool is not None:
            results = pool.map(_neuron_job, jobs)
        else:
            results = [_neuron_job(job) for job in jobs]
        for neuron_idx, x_bound, s_bound in results:
            self._update_bounds(layer, neuron_idx, x_bound, s_bound)

    def run(self):
        '''
        Tighten all the layers in increasing order. Returns the time spent.
        '''
        start = time.time()
        pool = None
        if self.n_workers > 1:
            pool = mp.get_context('spawn').Pool(self.n_workers)
        try:
            for k in range(1, self.network.nb_layers + 1):
                layer_start_time = time.time()
                self.tighten_layer(k, pool)
                time_used = time.time() - layer_start_time
                logger.info(f"[GRB] Used {time_used:.3f}s for the bounds of layer {k}")
        finally:
            if pool is not None:
                pool.close()
                pool.join()
        total_time = time.time() - start
        logger.info(f"[GRB] Bound tightening took {total_time:.3f}s")
        return total_time


def calculate_bounds(network, time_limit=None, n_threads=None, n_workers=1):
    return BoundTightener(network, time_limit, n_threads, n_workers).run()

