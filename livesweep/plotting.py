"""Module containing the live plot of a sweep.

The coordinator hands every received result to :func:`update_buffer`, which
records it and tells a :class:`RenderSink` to redraw. Redraws are throttled so a
flood of results does not stall the coordinator, but :func:`RenderSink.flush`
always renders the final state.

"""

import logging
import time
from collections import namedtuple

import numpy as np

import livesweep.sweepconstants as sweepconstants


def _import_pyplot():
    """Lazy import with helpful error message."""
    try:
        import matplotlib.pyplot as plt
        return plt
    except ImportError:
        raise ImportError('matplotlib is required for live plotting. Install with:\n'
                          '  pip install matplotlib') from None


class SweepContext(namedtuple('SweepContext', ['grid', 'buffer', 'sink'])):
    """Context passed to the coordinator callback together with every result"""
    __slots__ = ()


def update_buffer(context, result):
    """The default coordinator callback.

    Writes `result` into the buffer of the `context` and asks its sink to redraw.

    """
    context.buffer.record(result)
    context.sink.update(context.buffer, result.index, result.value)


class Throttle(object):
    """Rate limiter, :func:`ready` is `True` at most once every `min_interval` seconds.

    A `min_interval` of 0 disables throttling.

    """
    def __init__(self, min_interval=sweepconstants.REDRAW_INTERVAL, clock=time.monotonic):
        if min_interval < 0:
            raise ValueError('The minimum interval must not be negative.')
        self.min_interval = min_interval
        self._clock = clock
        self._last = None

    def ready(self):
        now = self._clock()
        if self._last is None or now - self._last >= self.min_interval:
            self._last = now
            return True
        return False

    def reset(self):
        self._last = None


class RenderSink(object):
    """Abstract class definition of a live view on the result buffer.

    ABSTRACT: Needs to define :func:`_render` in subclass

    Subclasses render the whole buffer, :func:`update` decides if a
    redraw is due and :func:`flush` forces one.

    """
    def __init__(self, min_interval=sweepconstants.REDRAW_INTERVAL):
        self.throttle = Throttle(min_interval)
        self.dirty = False
        self.n_updates = 0
        self.n_draws = 0

    def initialize(self, grid, buffer):
        """Prepares the view before the first result arrives"""
        self.throttle.reset()
        self.dirty = False

    def update(self, buffer, index, value):
        """Called after the cell at the linear `index` received `value`"""
        self.n_updates += 1
        self.dirty = True
        if self.throttle.ready():
            self._draw(buffer)

    def flush(self, buffer):
        """Renders the current state of the `buffer` regardless of the throttle"""
        self._draw(buffer)

    def _draw(self, buffer):
        self._render(buffer)
        self.n_draws += 1
        self.dirty = False

    def _render(self, buffer):
        raise NotImplementedError('Implement this!')

    def close(self):
        pass


class NullSink(RenderSink):
    """Headless sink that only keeps a copy of the last rendered values"""

    def __init__(self, min_interval=0):
        super(NullSink, self).__init__(min_interval)
        self.rendered = None

    def _render(self, buffer):
        self.rendered = buffer.values.copy()


class SurfaceSink(RenderSink):
    """Draws the buffer as a 3-D surface over the `nu`-`mu` plane.

    :param min_interval: Minimum time in seconds between two redraws
    :param zlim: Limits of the z-axis, `None` scales the axis to the data
    :param view: Elevation and azimuth of the camera
    :param figsize: Size of the figure in inches

    Cells without a value are left out of the surface.

    """
    def __init__(self, min_interval=sweepconstants.REDRAW_INTERVAL,
                 zlim=sweepconstants.Z_LIMITS, view=sweepconstants.VIEW_ANGLES,
                 figsize=(8, 6)):
        super(SurfaceSink, self).__init__(min_interval)
        self.zlim = zlim
        self.view = view
        self.figsize = figsize
        self.figure = None
        self.axes = None
        self._grid = None
        self._surface = None
        self._logger = logging.getLogger('livesweep.plotting.SurfaceSink')

    def initialize(self, grid, buffer):
        super(SurfaceSink, self).initialize(grid, buffer)
        plt = _import_pyplot()
        self._grid = grid
        if self.figure is None:
            self.figure = plt.figure(figsize=self.figsize)
            self.axes = self.figure.add_subplot(projection='3d')
        self.axes.set_xlim(grid.nu_range.start, grid.nu_range.stop)
        self.axes.set_ylim(grid.mu_range.start, grid.mu_range.stop)
        if self.zlim is not None:
            self.axes.set_zlim(*self.zlim)
        self.axes.set_xlabel('$\\nu$ values')
        self.axes.set_ylabel('$\\mu$ values')
        self.axes.set_zlabel('Mean period of $y$')
        self.axes.view_init(*self.view)
        self._draw(buffer)

    def _render(self, buffer):
        if self._surface is not None:
            self._surface.remove()
            self._surface = None
        if np.any(np.isfinite(buffer.values)):
            if self.zlim is None:
                vmin, vmax = np.nanmin(buffer.values), np.nanmax(buffer.values)
            else:
                vmin, vmax = self.zlim
            self._surface = self.axes.plot_surface(self._grid.nu, self._grid.mu,
                                                   buffer.values, cmap='viridis',
                                                   vmin=vmin, vmax=vmax)
        if self.zlim is not None:
            self.axes.set_zlim(*self.zlim)
        canvas = self.figure.canvas
        canvas.draw_idle()
        canvas.flush_events()
        self._logger.debug('Redrew surface with %d/%d values' % (buffer.n_received,
                                                                 buffer.size))

    def savefig(self, filename, **kwargs):
        """Stores the current figure"""
        self.figure.savefig(filename, **kwargs)

    def close(self):
        if self.figure is not None:
            plt = _import_pyplot()
            plt.close(self.figure)
            self.figure = None
            self.axes = None
            self._surface = None
