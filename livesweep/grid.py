"""Module containing the parameter grid of a sweep.

A grid pairs every value of `mu` with every value of `nu`. Grid points are addressed
by a 1-based linear index running over the grid in row-major order, i.e. index ``1``
is the cell ``(0, 0)`` and index ``size`` is the cell ``(count_mu - 1, count_nu - 1)``.

"""

from collections import namedtuple

import numpy as np

import livesweep.sweepconstants as sweepconstants


class LinearRange(namedtuple('LinearRange', ['start', 'stop', 'count'])):
    """A linearly spaced range, `count` values from `start` to `stop` (both included)"""

    __slots__ = ()

    def values(self):
        """Returns the range as a 1-D array"""
        if int(self.count) != self.count or self.count < 1:
            raise ValueError('The number of values of a range must be a positive integer, '
                             'not `%s`.' % str(self.count))
        return np.linspace(self.start, self.stop, int(self.count))


def _as_range(range_or_tuple):
    if isinstance(range_or_tuple, LinearRange):
        return range_or_tuple
    return LinearRange(*range_or_tuple)


def make_grid(mu_range, nu_range):
    """Builds the Cartesian product of two linear ranges.

    :param mu_range: A :class:`LinearRange` or ``(start, stop, count)`` for `mu`
    :param nu_range: A :class:`LinearRange` or ``(start, stop, count)`` for `nu`

    :return:

        Tuple of two arrays ``(MU, NU)`` of shape ``(count_mu, count_nu)``
        with ``MU[i, j] == mu[i]`` and ``NU[i, j] == nu[j]``.

    """
    mu = _as_range(mu_range).values()
    nu = _as_range(nu_range).values()
    return np.meshgrid(mu, nu, indexing='ij')


class ParameterGrid(object):
    """The immutable grid of `(mu, nu)` combinations explored by a sweep.

    :param mu_range: A :class:`LinearRange` or ``(start, stop, count)`` for `mu`
    :param nu_range: A :class:`LinearRange` or ``(start, stop, count)`` for `nu`

    The arrays are write protected, workers only ever read from them.

    """
    def __init__(self, mu_range, nu_range):
        self.mu_range = _as_range(mu_range)
        self.nu_range = _as_range(nu_range)
        self.mu, self.nu = make_grid(self.mu_range, self.nu_range)
        self.mu.flags.writeable = False
        self.nu.flags.writeable = False

    @classmethod
    def from_size(cls, grid_size=sweepconstants.GRID_SIZE,
                  mu=sweepconstants.MU_RANGE, nu=sweepconstants.NU_RANGE):
        """Square grid with `grid_size` values per parameter"""
        return cls(LinearRange(mu[0], mu[1], grid_size),
                   LinearRange(nu[0], nu[1], grid_size))

    def __repr__(self):
        return '<%s mu=%s nu=%s>' % (self.__class__.__name__,
                                     tuple(self.mu_range), tuple(self.nu_range))

    def __len__(self):
        return self.size

    def __getstate__(self):
        # Write flags are not pickled, we simply rebuild the arrays
        return {'mu_range': tuple(self.mu_range), 'nu_range': tuple(self.nu_range)}

    def __setstate__(self, state):
        self.__init__(state['mu_range'], state['nu_range'])

    @property
    def shape(self):
        return self.mu.shape

    @property
    def size(self):
        return self.mu.size

    def _check_index(self, index):
        if not 1 <= index <= self.size:
            raise IndexError('Linear index `%s` is not within [1, %d].' % (str(index),
                                                                          self.size))

    def unravel(self, index):
        """Turns a 1-based linear `index` into a ``(row, column)`` tuple"""
        self._check_index(index)
        row, col = np.unravel_index(index - 1, self.shape)
        return int(row), int(col)

    def ravel(self, row, col):
        """Turns a ``(row, column)`` tuple into a 1-based linear index"""
        return int(np.ravel_multi_index((row, col), self.shape)) + 1

    def point(self, index):
        """Returns the ``(mu, nu)`` pair at the linear `index`"""
        cell = self.unravel(index)
        return float(self.mu[cell]), float(self.nu[cell])

    def iter_points(self):
        """Yields ``(index, mu, nu)`` for every grid point in linear order"""
        for idx, (mu, nu) in enumerate(zip(self.mu.ravel(), self.nu.ravel())):
            yield idx + 1, float(mu), float(nu)
