try:
    from ._version import __version__
except ImportError:
    # We're running in a tree that doesn't
    # have a _version.py, so we don't know what our version is.
    __version__ = "unknown"


from livesweep.sweep import Sweep
from livesweep.grid import LinearRange, ParameterGrid, make_grid
from livesweep.vanderpol import solve_vdp, vdp_mean_period
from livesweep.period import find_local_maxima, mean_period, is_undefined, UNDEFINED_PERIOD
from livesweep.results import SweepResult, ResultBuffer
from livesweep.channel import ResultChannel, ResultDispatcher, make_channel
from livesweep.venues import make_venue
from livesweep.plotting import SurfaceSink, NullSink, RenderSink, Throttle, SweepContext, \
    update_buffer
from livesweep.sweepexceptions import IntegrationError, ChannelDeliveryError, \
    PoolAllocationError, NoSuchVenueError
from livesweep.sweeplogging import HasLogger, rename_log_file
from livesweep.utils.helpful_functions import progressbar, racedirs
from livesweep.utils.sweeptest import test


__all__ = [
    Sweep.__name__,
    LinearRange.__name__,
    ParameterGrid.__name__,
    make_grid.__name__,
    solve_vdp.__name__,
    vdp_mean_period.__name__,
    find_local_maxima.__name__,
    mean_period.__name__,
    is_undefined.__name__,
    'UNDEFINED_PERIOD',
    SweepResult.__name__,
    ResultBuffer.__name__,
    ResultChannel.__name__,
    ResultDispatcher.__name__,
    make_channel.__name__,
    make_venue.__name__,
    SurfaceSink.__name__,
    NullSink.__name__,
    RenderSink.__name__,
    Throttle.__name__,
    SweepContext.__name__,
    update_buffer.__name__,
    IntegrationError.__name__,
    ChannelDeliveryError.__name__,
    PoolAllocationError.__name__,
    NoSuchVenueError.__name__,
    HasLogger.__name__,
    rename_log_file.__name__,
    progressbar.__name__,
    racedirs.__name__,
    test.__name__
]
