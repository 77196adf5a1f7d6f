"""Estimation of the oscillation period of a time series.

The period is the mean spacing of the strict local maxima of a signal.
If fewer than two maxima are found the period is undefined and
:const:`UNDEFINED_PERIOD` is returned instead of raising an error.

"""

import numpy as np

UNDEFINED_PERIOD = float('nan')
"""Marker for a period that cannot be estimated"""


def is_undefined(value):
    """Tells apart the undefined marker from real numbers"""
    try:
        return bool(np.isnan(value))
    except TypeError:
        return value is None


def find_local_maxima(signal):
    """Returns a boolean mask of the strict local maxima of a 1-D `signal`.

    A sample is a maximum if it is strictly greater than both of its
    immediate neighbours. The first and last sample are never maxima,
    neither are flat plateaus.

    """
    signal = np.asarray(signal, dtype=float)
    if signal.ndim != 1:
        raise ValueError('Need a 1-D signal, not an array of shape %s.' % str(signal.shape))
    mask = np.zeros(signal.shape, dtype=bool)
    if len(signal) > 2:
        mask[1:-1] = (signal[1:-1] > signal[:-2]) & (signal[1:-1] > signal[2:])
    return mask


def mean_period(t, signal):
    """Mean time between consecutive local maxima of `signal`.

    :param t: Time points, 1-D and of the same length as `signal`
    :param signal: Signal values

    :return: The mean period or :const:`UNDEFINED_PERIOD`

    """
    t = np.asarray(t, dtype=float)
    signal = np.asarray(signal, dtype=float)
    if t.shape != signal.shape:
        raise ValueError('Time points and signal differ in shape, '
                         '%s != %s.' % (str(t.shape), str(signal.shape)))
    peak_times = t[find_local_maxima(signal)]
    if len(peak_times) < 2:
        return UNDEFINED_PERIOD
    return float(np.mean(np.diff(peak_times)))
