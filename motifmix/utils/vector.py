from motifmix.arithmetic import *
import numpy as np
import numba


@numba.njit('float64(int32[:], int64, int64, int64, int64, float64[:,:])')
def markov_log_score(x, start, end, order, num_symbols, log_p):
    rv = 0.0
    row_offset = 0
    level_rows = 1
    for p in range(start, end):
        d = p - start
        if d > order:
            d = order
        # first row of level d is sum_{j<d} num_symbols**j
        row_offset = 0
        level_rows = 1
        for j in range(d):
            row_offset += level_rows
            level_rows *= num_symbols
        ctx = 0
        for j in range(p - d, p):
            ctx = ctx * num_symbols + x[j]
        rv += log_p[row_offset + ctx, x[p]]
    return rv


@numba.njit('void(int32[:], int64, int64, int64, int64, float64, float64[:,:])')
def markov_counts(x, start, end, order, num_symbols, weight, out):
    for p in range(start, end):
        d = p - start
        if d > order:
            d = order
        row_offset = 0
        level_rows = 1
        for j in range(d):
            row_offset += level_rows
            level_rows *= num_symbols
        ctx = 0
        for j in range(p - d, p):
            ctx = ctx * num_symbols + x[j]
        out[row_offset + ctx, x[p]] += weight


@numba.njit('float64(int32[:], int64, float64[:,:])')
def pwm_log_score(x, start, log_p):
    rv = 0.0
    for j in range(log_p.shape[0]):
        rv += log_p[j, x[start + j]]
    return rv


def as_sequence(x):
    return np.asarray(x, dtype=np.int32)


def log_sum(x):

    max_val = np.max(x)

    if max_val == -np.inf:
        return -np.inf
    else:
        rv = x - max_val
        np.exp(rv, out=rv)
        return np.log(rv.sum()) + max_val


def row_log_sum(x):
    """Row-wise log-sum-exp of a 2-d array, -inf for rows that are entirely -inf."""
    max_val = np.max(x, axis=1, keepdims=True)
    safe_max = np.where(np.isfinite(max_val), max_val, 0.0)
    with np.errstate(divide='ignore'):
        rv = np.log(np.exp(x - safe_max).sum(axis=1)) + safe_max[:, 0]
    rv[max_val[:, 0] == -np.inf] = -np.inf
    return rv


def posterior(log_x, out=None, log_sum=False):

    if out is None:
        rv = np.zeros(len(log_x))
    else:
        rv = out

    max_val = log_x.max()
    rv_sum = 0.0

    if isinf(max_val) or isnan(max_val):
        rv.fill(1.0/float(len(log_x)))
        rv_sum = max_val

    else:
        np.subtract(log_x, max_val, out=rv)
        np.exp(rv, out=rv)
        rv_sum = rv.sum()
        rv /= rv_sum
        rv_sum = np.log(rv_sum) + max_val

    if log_sum:
        return rv, rv_sum
    else:
        return rv
