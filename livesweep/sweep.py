"""Module containing the sweep, the coordinator of a parallel parameter sweep.

A sweep enumerates the points of a :class:`~livesweep.grid.ParameterGrid`, hands
one task per point to an execution venue and consumes the result channel while
the workers are still busy. Every result is passed to a single callback in the
coordinator's thread; the default callback records the result in a
:class:`~livesweep.results.ResultBuffer` and redraws the live plot.

Example usage:

.. code-block:: python

    from livesweep import Sweep, ParameterGrid, SurfaceSink

    grid = ParameterGrid.from_size(6)
    with Sweep(grid, ncores=4) as sweep:
        buffer = sweep.run(sink=SurfaceSink())

"""

import logging
import multiprocessing as multip
import os
import signal
import socket
import sys
import threading
import time
import traceback

try:
    import psutil
except ImportError:
    psutil = None

import livesweep.sweepconstants as sweepconstants
from livesweep.channel import ResultDispatcher, make_channel
from livesweep.grid import ParameterGrid
from livesweep.plotting import NullSink, SweepContext, update_buffer
from livesweep.results import ResultBuffer, SweepResult
from livesweep.sweepexceptions import ChannelDeliveryError, NoSuchVenueError
from livesweep.sweeplogging import HasLogger, LoggingManager, simple_logging_config
from livesweep.utils.configparsing import parse_config
from livesweep.utils.helpful_functions import format_time
from livesweep.utils.siginthandling import sigint_handling
from livesweep.vanderpol import vdp_mean_period
from livesweep.venues import make_venue


def _worker_name():
    """Name of the current host, process and thread"""
    name = '%s/%s' % (socket.gethostname(), multip.current_process().name)
    thread = threading.current_thread()
    if thread is not threading.main_thread():
        name += '/' + thread.name
    return name


def _sweep_single_run(task):
    """Evaluates a single grid point and sends the result to the coordinator.

    Errors of the job are turned into a failed result, so they never
    leave the worker.

    :return: The sent result or `None` if it could not be delivered

    """
    index = task['index']
    mu = task['mu']
    nu = task['nu']
    total = task['total']
    sender = task['sender']
    worker = _worker_name()
    logger = logging.getLogger('livesweep')

    logger.info('\n=========================================\n '
                'Starting grid point #%d of %d (mu=%s, nu=%s)'
                '\n=========================================\n' %
                (index, total, str(mu), str(nu)))
    try:
        value = task['job'](mu, nu, **task['job_kwargs'])
        result = SweepResult.from_value(index, value, worker=worker)
    except Exception as exc:
        logger.exception('ERROR occurred during grid point #%d (mu=%s, nu=%s)' %
                         (index, str(mu), str(nu)))
        result = SweepResult.failed(index, exc, worker=worker)

    try:
        sender.send(result)
    except ChannelDeliveryError:
        logger.exception('Could not deliver the result of grid point #%d, '
                         'the cell stays empty' % index)
        return None

    logger.info('\n=========================================\n '
                'Finished grid point #%d of %d (%s)'
                '\n=========================================\n' %
                (index, total, sweepconstants.STATUS_NAMES[result.status]))
    return result


def _dask_single_run(task):
    """Configures a dask worker on its first task and evaluates a grid point"""
    if getattr(_dask_single_run, 'pid', None) != os.getpid():
        init_kwargs = task['init_kwargs']
        _configure_niceness(init_kwargs)
        _configure_logging(init_kwargs)
        _dask_single_run.pid = os.getpid()
    return _sweep_single_run(task)


def _configure_pool(kwargs):
    """Configures a freshly started worker process of the pool"""
    if kwargs['graceful_exit']:
        # Only the coordinator reacts on `SIGINT`
        signal.signal(signal.SIGINT, signal.SIG_IGN)
    _configure_niceness(kwargs)
    _configure_logging(kwargs)


def _configure_logging(kwargs):
    """Requests the logging manager to configure logging."""
    try:
        logging_manager = kwargs['logging_manager']
        logging_manager.make_logging_handlers_and_tools(multiproc=True)
    except Exception as exc:
        sys.stderr.write('Could not configure logging system because of: %s' % repr(exc))
        traceback.print_exc()


def _configure_niceness(kwargs):
    """Sets niceness of a process"""
    niceness = kwargs['niceness']
    if niceness is not None:
        try:
            try:
                current = os.nice(0)
                if niceness - current > 0:
                    # Under Linux you cannot decrement niceness if set elsewhere
                    os.nice(niceness - current)
            except AttributeError:
                # Fall back on psutil under Windows
                psutil.Process().nice(niceness)
        except Exception as exc:
            sys.stderr.write('Could not configure niceness because of: %s' % repr(exc))
            traceback.print_exc()


class Sweep(HasLogger):
    """ The sweep coordinates the evaluation of a job on every point of a grid.

    :param grid:

        The :class:`~livesweep.grid.ParameterGrid` to explore,
        defaults to the 6 by 6 Van der Pol demo grid.

    :param job:

        Function called as ``job(mu, nu, **job_kwargs)`` for every grid point,
        it must return a number. Needs to be picklable, i.e. defined at module level,
        if the venue uses other processes. `nan` marks an undefined value.
        Defaults to :func:`~livesweep.vanderpol.vdp_mean_period`.

    :param job_kwargs: Additional keyword arguments of the `job`

    :param name: Name of the sweep, defaults to ``'sweep_'`` plus the current time

    :param ncores: Number of workers, defaults to the number of CPUs

    :param venue:

        Where grid points are evaluated, one of ``'SERIAL'``, ``'THREAD'``,
        ``'PROCESS'`` (default), or ``'DASK'``.

    :param channel:

        How results travel back to the coordinator, one of ``'LOCAL'``,
        ``'QUEUE'``, or ``'NETQUEUE'``. Leave `None` to pick the channel
        that fits the venue.

    :param url:

        Address the coordinator listens on for a ``'NETQUEUE'`` channel,
        e.g. ``'tcp://10.0.0.1:22334'``. Leave `None` to choose a free port.

    :param maxsize: Maximum number of results waiting in a queue, 0 is unbounded

    :param scheduler: Address of the dask scheduler for the ``'DASK'`` venue

    :param dask_client: An already connected dask client, alternative to `scheduler`

    :param timeout:

        Seconds without any new result after which the sweep gives up
        on the outstanding grid points, e.g. because workers crashed.
        `None` waits for every task.

    :param niceness: Niceness of worker processes, `None` leaves it unchanged

    :param graceful_exit:

        If `True` hitting `CTRL+C` once tears down the workers and returns the
        results received so far. Hitting it twice exits immediately.

    :param sink:

        Default :class:`~livesweep.plotting.RenderSink` showing the results,
        can be overridden in :func:`run`.

    :param log_config:

        Can be path to a logging `.ini` file specifying the logging configuration,
        an already instantiated config parser, or a dictionary for `dictConfig`.
        Sections and keys prefixed with ``multiproc_`` configure the workers.
        Use ``'DEFAULT'`` for the configuration shipped with livesweep and
        `None` to leave logging alone.

        Instead of `log_config` you can pass `log_folder`, `logger_names`,
        `log_levels`, and `log_multiproc` for a simple configuration.

    :param log_stdout: If `stdout` should be redirected to a logger

    :param report_progress:

        If progress should be reported. Either a boolean, or a tuple
        ``(percentage_step, logger_name, log_level)``. Use ``'print'`` as
        logger name to print to the console.

    :param config:

        Path to an `.ini` file with sections ``[sweep]``, ``[grid]``, and
        ``[solver]``. Explicitly passed keyword arguments take precedence.

    """

    POLL_INTERVAL = 0.05
    """Seconds the coordinator waits for a result before it looks after the tasks"""

    @parse_config
    @simple_logging_config
    def __init__(self, grid=None,
                 job=vdp_mean_period,
                 job_kwargs=None,
                 name=None,
                 ncores=None,
                 venue=sweepconstants.VENUE_PROCESS,
                 channel=None,
                 url=None,
                 maxsize=0,
                 scheduler=None,
                 dask_client=None,
                 timeout=None,
                 niceness=None,
                 graceful_exit=False,
                 sink=None,
                 log_config=sweepconstants.DEFAULT_LOGGING,
                 log_stdout=False,
                 report_progress=(5, 'livesweep', logging.INFO)):

        if grid is None:
            grid = ParameterGrid.from_size()
        if venue not in sweepconstants.VENUES:
            raise NoSuchVenueError('Venue `%s` is not understood, choose one of %s.' %
                                   (str(venue), str(sweepconstants.VENUES)))
        if channel is None:
            channel = sweepconstants.DEFAULT_CHANNELS[venue]
        if channel not in sweepconstants.CHANNELS:
            raise NoSuchVenueError('Channel `%s` is not understood, choose one of %s.' %
                                   (str(channel), str(sweepconstants.CHANNELS)))
        if (venue in (sweepconstants.VENUE_PROCESS, sweepconstants.VENUE_DASK) and
                channel == sweepconstants.CHANNEL_LOCAL):
            raise ValueError('Workers of venue `%s` cannot reach a `%s` channel.' %
                             (venue, channel))
        if venue == sweepconstants.VENUE_DASK and channel != sweepconstants.CHANNEL_NETQUEUE:
            raise ValueError('A dask cluster can only report back via a `%s` channel.' %
                             sweepconstants.CHANNEL_NETQUEUE)
        if url is not None and channel != sweepconstants.CHANNEL_NETQUEUE:
            raise ValueError('You can only specify a `url` for a `%s` channel.' %
                             sweepconstants.CHANNEL_NETQUEUE)
        if timeout is not None and timeout <= 0:
            raise ValueError('The timeout must be positive, not `%s`.' % str(timeout))
        if ncores is None:
            ncores = multip.cpu_count()
        if ncores < 1:
            raise ValueError('Need at least one core, not `%s`.' % str(ncores))

        self._start_timestamp = time.time()
        if name is None:
            name = 'sweep_' + format_time(self._start_timestamp)
        self._name = name

        self._grid = grid
        self._job = job
        self._job_kwargs = job_kwargs if job_kwargs is not None else {}
        self._ncores = ncores
        self._venue = venue
        self._channel = channel
        self._url = url
        self._maxsize = maxsize
        self._scheduler = scheduler
        self._dask_client = dask_client
        self._timeout = timeout
        self._niceness = niceness
        self._graceful_exit = graceful_exit
        self._sink = sink

        self._callback = update_buffer
        self._callback_context = None
        self._stop_iteration = False  # Marker to cancel the sweep
        self.buffer = None

        self._logging_manager = LoggingManager(log_config=log_config,
                                               log_stdout=log_stdout,
                                               report_progress=report_progress)
        self._logging_manager.check_log_config()
        self._logging_manager.add_null_handler()
        self._set_logger()

        self._logging_manager.extract_replacements(self)
        self._logging_manager.remove_null_handler()
        self._logging_manager.make_logging_handlers_and_tools()

        self._logger.info('Sweep `%s` created: %s grid, venue `%s` with %d cores, '
                          'channel `%s`' % (self._name, str(self._grid.shape), self._venue,
                                            self._ncores, self._channel))
        self._logger.debug('Versions: %s' % str(sweepconstants.VERSIONS))

    def __repr__(self):
        return '<%s %s on %s>' % (self.__class__.__name__, self.name, repr(self._grid))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disable_logging()

    @property
    def name(self):
        """Name of the sweep"""
        return self._name

    @property
    def grid(self):
        """The explored parameter grid"""
        return self._grid

    @property
    def venue(self):
        return self._venue

    @property
    def channel(self):
        return self._channel

    @property
    def ncores(self):
        return self._ncores

    def disable_logging(self, remove_all_handlers=True):
        """Removes all logging handlers and stops logging to files and logging stdout.

        :param remove_all_handlers:

            If `True` all logging handlers are removed.
            If you want to keep the handlers set to `False`.

        """
        self._logging_manager.finalize(remove_all_handlers)

    def after_each(self, callback, context=None):
        """Registers the function called with every received result.

        The callback is called as ``callback(context, result)`` in the
        coordinator's thread, never concurrently. Registering a callback
        replaces the previous one, including the default
        :func:`~livesweep.plotting.update_buffer`.

        :param callback: Function taking a context and a :class:`~livesweep.results.SweepResult`

        :param context:

            Passed as first argument. If `None` a
            :class:`~livesweep.plotting.SweepContext` with the grid, the buffer,
            and the sink of the current run is passed.

        """
        self._callback = callback
        self._callback_context = context

    def abort(self):
        """Requests the teardown of a running sweep.

        Workers are stopped, results that did not arrive yet are dropped.
        Can be called from a callback or another thread.

        """
        self._logger.warning('Abort of sweep `%s` requested' % self._name)
        self._stop_iteration = True

    def _show_progress(self, n, total):
        """Displays a progressbar"""
        self._logging_manager.show_progress(n, total)

    def _make_init_kwargs(self):
        return dict(logging_manager=self._logging_manager,
                    niceness=self._niceness,
                    graceful_exit=self._graceful_exit)

    def _make_task(self, index, mu, nu, sender, init_kwargs):
        task = dict(index=index, mu=mu, nu=nu, total=self._grid.size,
                    job=self._job, job_kwargs=self._job_kwargs, sender=sender)
        if self._venue == sweepconstants.VENUE_DASK:
            task['init_kwargs'] = init_kwargs
        return task

    def _stop_requested(self):
        if sigint_handling.hit:
            self._stop_iteration = True
        return self._stop_iteration

    def _dispatch_available(self, dispatcher, n, total):
        """Dispatches all queued results without waiting"""
        while not self._stop_requested():
            if dispatcher.dispatch(timeout=0) is None:
                break
            self._show_progress(n, total)
            n += 1
        return n

    def _collect_finished(self, venue, handles):
        """Removes finished tasks and logs the ones that crashed"""
        for index in list(handles.keys()):
            handle = handles[index]
            if venue.done(handle):
                del handles[index]
                try:
                    venue.outcome(handle)
                except Exception as exc:
                    self._logger.error('The task of grid point #%d crashed: %s' %
                                       (index, repr(exc)))

    def _consume(self, dispatcher, venue, handles, n, total):
        """Consumes the channel until all tasks finished or the sweep timed out"""
        last_message = time.time()
        while not self._stop_requested():
            result = dispatcher.dispatch(timeout=self.POLL_INTERVAL)
            if result is not None:
                self._show_progress(n, total)
                n += 1
                last_message = time.time()
                continue

            self._collect_finished(venue, handles)
            if not handles:
                # Every task is done, only already queued results are left
                return self._dispatch_available(dispatcher, n, total)

            if self._timeout is not None and time.time() - last_message > self._timeout:
                self._logger.error('No result arrived for %s seconds, giving up on %d '
                                   'outstanding grid points.' % (str(self._timeout),
                                                                 len(handles)))
                return n
        self._logger.warning('Sweep `%s` was stopped, dropping outstanding results.' %
                             self._name)
        return n

    def _report_incomplete(self, buffer):
        for index in buffer.failed_indices():
            self._logger.warning('Grid point #%d failed: %s' % (index, buffer.errors[index]))
        incomplete = buffer.pending_indices()
        if len(incomplete) > 0:
            self._logger.error('Following grid points of sweep `%s` '
                               'did NOT complete: `%s`' %
                               (self._name, ', '.join(str(idx) for idx in incomplete)))
        else:
            self._logger.info('All grid points of sweep `%s` reported back.' % self._name)

    def run(self, sink=None):
        """Runs the sweep and returns the buffer with all received results.

        :param sink:

            :class:`~livesweep.plotting.RenderSink` showing the results live,
            defaults to the sink passed to the constructor or a
            :class:`~livesweep.plotting.NullSink`.

        :return:

            The :class:`~livesweep.results.ResultBuffer`. Grid points that did not
            report back or whose value is undefined hold `nan`.

        :raises: :class:`~livesweep.sweepexceptions.PoolAllocationError` if the
                 workers cannot be started

        """
        if sink is None:
            sink = self._sink if self._sink is not None else NullSink()
        grid = self._grid
        total = grid.size
        buffer = ResultBuffer(grid.shape)
        self.buffer = buffer
        self._stop_iteration = False
        context = self._callback_context
        if context is None:
            context = SweepContext(grid, buffer, sink)

        self._logger.info('\n************************************************************\n'
                          'STARTING sweep `%s` with %d grid points'
                          '\n************************************************************\n' %
                          (self._name, total))
        init_kwargs = self._make_init_kwargs()
        channel = make_channel(self._channel, url=self._url, maxsize=self._maxsize)
        if self._graceful_exit:
            sigint_handling.start()
        venue = None
        initialized = False
        handles = {}
        try:
            venue = make_venue(self._venue, self._ncores, initializer=_configure_pool,
                               initargs=(init_kwargs,), scheduler=self._scheduler,
                               client=self._dask_client)
            venue.start()
            if self._venue == sweepconstants.VENUE_DASK:
                target = _dask_single_run
            else:
                target = _sweep_single_run

            dispatcher = ResultDispatcher(channel.receiver)
            dispatcher.after_each(self._callback, context)
            sink.initialize(grid, buffer)
            initialized = True

            # Signal start of progress calculation
            self._show_progress(-1, total)
            n = 0
            for index, mu, nu in grid.iter_points():
                if self._stop_requested():
                    break
                task = self._make_task(index, mu, nu, channel.sender, init_kwargs)
                handles[index] = venue.submit(target, task)
                n = self._dispatch_available(dispatcher, n, total)

            self._consume(dispatcher, venue, handles, n, total)
            venue.shutdown(cancel=self._stop_iteration or len(handles) > 0)
        except BaseException:
            if venue is not None:
                venue.shutdown(cancel=True)
            raise
        finally:
            channel.finalize()
            if self._graceful_exit:
                sigint_handling.finalize()
            if initialized:
                sink.flush(buffer)

        self._logger.info('\n************************************************************\n'
                          'FINISHED sweep `%s`, received %d of %d results'
                          '\n************************************************************\n' %
                          (self._name, buffer.n_received, total))
        self._report_incomplete(buffer)
        return buffer
