"""Single sweep results and the buffer collecting them.

Every grid point produces exactly one :class:`SweepResult`. The coordinator
records results into a :class:`ResultBuffer`, the array that is plotted.
Cells without a result stay at the sentinel value `nan`.

"""

from collections import namedtuple

import numpy as np

import livesweep.sweepconstants as sweepconstants
from livesweep.period import is_undefined


class SweepResult(namedtuple('SweepResult', ['index', 'value', 'status', 'error', 'worker'])):
    """Result of a single grid point.

    :param index: 1-based linear index of the grid point
    :param value: The scalar computed by the job, `nan` if undefined or failed
    :param status: One of the `STATUS_` constants of :mod:`livesweep.sweepconstants`
    :param error: Description of the error if the job failed
    :param worker: Name of the process or host that computed the result

    """

    __slots__ = ()

    def __new__(cls, index, value, status=sweepconstants.STATUS_OK, error=None, worker=None):
        return super(SweepResult, cls).__new__(cls, index, value, status, error, worker)

    @classmethod
    def from_value(cls, index, value, worker=None):
        """Classifies `value` as either a proper result or an undefined one"""
        if is_undefined(value):
            return cls(index, float('nan'), sweepconstants.STATUS_UNDEFINED, worker=worker)
        return cls(index, float(value), sweepconstants.STATUS_OK, worker=worker)

    @classmethod
    def failed(cls, index, error, worker=None):
        """Result of a grid point whose job raised `error`"""
        if isinstance(error, BaseException):
            error = '%s: %s' % (error.__class__.__name__, str(error))
        return cls(index, float('nan'), sweepconstants.STATUS_FAILED, error=error,
                   worker=worker)

    @property
    def ok(self):
        return self.status == sweepconstants.STATUS_OK


class ResultBuffer(object):
    """2-D buffer of sweep results, the data behind the live plot.

    :param shape: Shape of the parameter grid

    `values` starts out filled with `nan`, `status` with
    :const:`~livesweep.sweepconstants.STATUS_PENDING`.
    Every cell accepts exactly one result.

    """
    def __init__(self, shape):
        self.values = np.full(shape, np.nan)
        self.status = np.full(shape, sweepconstants.STATUS_PENDING, dtype=np.int8)
        self.errors = {}

    def __repr__(self):
        return '<%s %d/%d received>' % (self.__class__.__name__, self.n_received, self.size)

    @property
    def shape(self):
        return self.values.shape

    @property
    def size(self):
        return self.values.size

    def _cell(self, index):
        if not 1 <= index <= self.size:
            raise IndexError('Linear index `%s` is not within [1, %d].' % (str(index),
                                                                          self.size))
        return np.unravel_index(index - 1, self.shape)

    def record(self, result):
        """Writes a single `result` into its cell.

        :raises: `IndexError` if the index is not part of the grid,
                 `ValueError` if the cell already received a result

        """
        cell = self._cell(result.index)
        if self.status[cell] != sweepconstants.STATUS_PENDING:
            raise ValueError('Grid point %d already received a result.' % result.index)
        self.status[cell] = result.status
        if result.status == sweepconstants.STATUS_OK:
            self.values[cell] = result.value
        elif result.status == sweepconstants.STATUS_FAILED:
            self.errors[result.index] = result.error

    def get(self, index):
        """Value stored at the linear `index`"""
        return self.values[self._cell(index)]

    def _indices_with(self, status):
        return [int(idx) + 1 for idx in np.flatnonzero(self.status.ravel() == status)]

    def pending_indices(self):
        """Linear indices of cells that have not received a result"""
        return self._indices_with(sweepconstants.STATUS_PENDING)

    def failed_indices(self):
        """Linear indices of cells whose job failed"""
        return self._indices_with(sweepconstants.STATUS_FAILED)

    def undefined_indices(self):
        """Linear indices of cells with an undefined value"""
        return self._indices_with(sweepconstants.STATUS_UNDEFINED)

    @property
    def n_received(self):
        return int(np.count_nonzero(self.status != sweepconstants.STATUS_PENDING))

    @property
    def n_pending(self):
        return self.size - self.n_received

    def is_complete(self):
        """`True` if every grid point reported back"""
        return self.n_pending == 0

    def coverage(self):
        """Fraction of grid points that reported back"""
        return self.n_received / float(self.size)

    def summary(self):
        """Counts of the result states as a dictionary keyed by status name"""
        return dict((name, int(np.count_nonzero(self.status == status)))
                    for status, name in sweepconstants.STATUS_NAMES.items())
