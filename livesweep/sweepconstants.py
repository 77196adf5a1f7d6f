"""This module contains constants used across most livesweep modules.

It contains the names of execution venues and result channels, the status codes
of single sweep results, the message tags sent over a channel, and the defaults of
the Van der Pol demonstration sweep.

"""

import sys

from livesweep._version import __version__ as VERSION
import numpy
numpyversion = numpy.__version__
import scipy
scipyversion = scipy.__version__

try:
    import zmq
    zmqversion = zmq.__version__
except ImportError:
    zmqversion = 'N/A'

try:
    import dask
    daskversion = dask.__version__
except ImportError:
    daskversion = 'N/A'

python_version_string = '.'.join([str(x) for x in sys.version_info[0:3]])

VERSIONS = {'livesweep': VERSION, 'python': python_version_string,
            'numpy': numpyversion, 'scipy': scipyversion,
            'pyzmq': zmqversion, 'dask': daskversion}
"""Versions of the main packages a sweep depends on"""


############ Execution Venues ############

VENUE_SERIAL = 'SERIAL'
"""Every grid point is evaluated one after the other in the coordinating process"""
VENUE_THREAD = 'THREAD'
"""Grid points are evaluated by a pool of threads"""
VENUE_PROCESS = 'PROCESS'
"""Grid points are evaluated by a pool of local processes"""
VENUE_DASK = 'DASK'
"""Grid points are evaluated by the workers of a (remote) dask cluster"""

VENUES = (VENUE_SERIAL, VENUE_THREAD, VENUE_PROCESS, VENUE_DASK)


############ Result Channels ############

CHANNEL_LOCAL = 'LOCAL'
"""In-process queue, only usable if workers share the memory of the coordinator"""
CHANNEL_QUEUE = 'QUEUE'
"""Queue hosted by a multiprocessing manager, usable by local worker processes"""
CHANNEL_NETQUEUE = 'NETQUEUE'
"""Queue over a network, the coordinator listens on a zmq socket"""

CHANNELS = (CHANNEL_LOCAL, CHANNEL_QUEUE, CHANNEL_NETQUEUE)

DEFAULT_CHANNELS = {VENUE_SERIAL: CHANNEL_LOCAL,
                    VENUE_THREAD: CHANNEL_LOCAL,
                    VENUE_PROCESS: CHANNEL_QUEUE,
                    VENUE_DASK: CHANNEL_NETQUEUE}
"""Channel chosen if a venue is selected without specifying a channel"""

MSG_RESULT = 'RESULT'
"""Tag of a message carrying a single sweep result"""


############ Result Status ############

STATUS_PENDING = 0
"""No result has been reported for a grid point (yet)"""
STATUS_OK = 1
"""The job returned a real number"""
STATUS_UNDEFINED = 2
"""The job finished but its value is undefined, e.g. less than two maxima were found"""
STATUS_FAILED = 3
"""The job raised an error, e.g. the integration did not converge"""

STATUS_NAMES = {STATUS_PENDING: 'PENDING',
                STATUS_OK: 'OK',
                STATUS_UNDEFINED: 'UNDEFINED',
                STATUS_FAILED: 'FAILED'}


############ Van der Pol demo ############

GRID_SIZE = 6
"""Number of values per parameter in the demo sweep"""
MU_RANGE = (0.5, 2.0)
"""Range of the damping parameter mu"""
NU_RANGE = (100.0, 150.0)
"""Range of the time scale parameter nu"""
INITIAL_STATE = (2.0, 0.0)
"""Initial condition (x, y) of every integration"""
TIME_FACTOR = 20.0
"""The integration interval is [0, TIME_FACTOR * mu]"""
STIFF_METHOD = 'Radau'
"""Default stiff-capable integration method"""


############ Plotting ############

REDRAW_INTERVAL = 0.2
"""Minimum time in seconds between two redraws of a live plot"""
Z_LIMITS = (0.0, 500.0)
"""Default limits of the z-axis of the surface plot"""
VIEW_ANGLES = (30, 137)
"""Default elevation and azimuth of the surface plot"""


############ LOGGING ############

LOG_SWEEP = '$sweep'
"""Wildcard replaced by name of the sweep"""
LOG_PROC = '$proc'
"""Wildcard replaced by the name of the current process"""
LOG_HOST = '$host'
"""Wildcard replaced by the name of the current host"""

DEFAULT_LOGGING = 'DEFAULT'
"""Use the default logging configuration shipped with livesweep"""
