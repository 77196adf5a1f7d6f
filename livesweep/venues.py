"""Module containing the venues that evaluate grid points in parallel.

Every venue offers the same small interface, so the sweep algorithm does not
depend on where the work happens:

* :func:`~Venue.submit` hands a single task to the venue and returns a handle,

* :func:`~Venue.done` tells if the task finished,

* :func:`~Venue.outcome` returns the value of a finished task or re-raises its error,

* :func:`~Venue.shutdown` stops the venue, optionally cancelling unfinished tasks.

"""

import multiprocessing as multip
from multiprocessing.pool import ThreadPool

try:
    from dask.distributed import Client
except ImportError:
    Client = None

import livesweep.sweepconstants as sweepconstants
from livesweep.sweeplogging import HasLogger
from livesweep.sweepexceptions import PoolAllocationError, NoSuchVenueError


class _FinishedTask(object):
    """Handle of a task that was evaluated right away"""

    def __init__(self, value=None, error=None):
        self.value = value
        self.error = error


class Venue(HasLogger):
    """Abstract class definition of an execution venue.

    ABSTRACT: Needs to be defined in subclass

    :param ncores: Number of workers
    :param initializer: Function called once in every new worker process
    :param initargs: Arguments passed to the `initializer`

    """
    name = None

    def __init__(self, ncores=1, initializer=None, initargs=()):
        self.ncores = ncores
        self.initializer = initializer
        self.initargs = initargs
        self._set_logger()

    def __repr__(self):
        return '<%s ncores=%s>' % (self.__class__.__name__, str(self.ncores))

    def start(self):
        """Allocates the workers

        :raises: :class:`~livesweep.sweepexceptions.PoolAllocationError`

        """
        pass

    def submit(self, func, arg):
        raise NotImplementedError('Implement this!')

    def done(self, handle):
        raise NotImplementedError('Implement this!')

    def outcome(self, handle):
        raise NotImplementedError('Implement this!')

    def shutdown(self, cancel=False):
        pass


class SerialVenue(Venue):
    """Evaluates every task immediately in the calling thread"""

    name = sweepconstants.VENUE_SERIAL

    def submit(self, func, arg):
        try:
            return _FinishedTask(value=func(arg))
        except Exception as exc:
            return _FinishedTask(error=exc)

    def done(self, handle):
        return True

    def outcome(self, handle):
        if handle.error is not None:
            raise handle.error
        return handle.value


class _PoolVenue(Venue):
    """Common base of venues built on the `multiprocessing` pool interface"""

    def __init__(self, ncores=1, initializer=None, initargs=()):
        super(_PoolVenue, self).__init__(ncores, initializer, initargs)
        self._pool = None

    def _create_pool(self):
        raise NotImplementedError('Implement this!')

    def start(self):
        try:
            self._pool = self._create_pool()
        except (OSError, ValueError) as exc:
            raise PoolAllocationError('Could not start a pool of %s workers: %s' %
                                      (str(self.ncores), repr(exc)))
        self._logger.info('Started %s pool with %d workers' % (self.name, self.ncores))

    def submit(self, func, arg):
        return self._pool.apply_async(func, (arg,))

    def done(self, handle):
        return handle.ready()

    def outcome(self, handle):
        return handle.get(0)

    def shutdown(self, cancel=False):
        if self._pool is not None:
            if cancel:
                self._logger.info('Terminating %s pool' % self.name)
                self._pool.terminate()
            else:
                self._pool.close()
            self._pool.join()
            self._pool = None


class ThreadVenue(_PoolVenue):
    """Evaluates tasks in a pool of threads of the coordinating process"""

    name = sweepconstants.VENUE_THREAD

    def _create_pool(self):
        return ThreadPool(self.ncores)


class ProcessVenue(_PoolVenue):
    """Evaluates tasks in a pool of local processes.

    The `initializer` runs once in every worker, e.g. to configure logging.

    """

    name = sweepconstants.VENUE_PROCESS

    def _create_pool(self):
        return multip.Pool(self.ncores, initializer=self.initializer,
                           initargs=self.initargs)


class DaskVenue(Venue):
    """Evaluates tasks on the workers of a dask cluster.

    :param scheduler:

        Address of the dask scheduler, e.g. ``'tcp://10.0.0.1:8786'``.
        If neither `scheduler` nor `client` are given a local cluster is started.

    :param client:

        An already connected :class:`dask.distributed.Client`,
        it is not closed on shutdown.

    Workers have to report back via a network channel.

    """

    name = sweepconstants.VENUE_DASK

    def __init__(self, ncores=None, scheduler=None, client=None):
        super(DaskVenue, self).__init__(ncores)
        self.scheduler = scheduler
        self._client = client
        self._own_client = client is None
        self._futures = []

    def start(self):
        if self._client is not None:
            return
        if Client is None:
            raise PoolAllocationError('You need `dask.distributed` to sweep on a dask cluster.')
        try:
            if self.scheduler is None:
                self._client = Client(n_workers=self.ncores)
            else:
                self._client = Client(self.scheduler)
        except (OSError, ValueError) as exc:
            raise PoolAllocationError('Could not connect to the dask scheduler `%s`: %s' %
                                      (str(self.scheduler), repr(exc)))
        self._logger.info('Connected to dask cluster: %s' % str(self._client))

    def submit(self, func, arg):
        future = self._client.submit(func, arg, pure=False)
        self._futures.append(future)
        return future

    def done(self, handle):
        return handle.done()

    def outcome(self, handle):
        return handle.result()

    def shutdown(self, cancel=False):
        if self._client is not None:
            if cancel and self._futures:
                self._logger.info('Cancelling %d dask tasks' % len(self._futures))
                self._client.cancel(self._futures, force=True)
            self._futures = []
            if self._own_client:
                self._client.close()
                self._client = None


def make_venue(venue=sweepconstants.VENUE_PROCESS, ncores=None, initializer=None,
               initargs=(), scheduler=None, client=None):
    """Creates a venue by its name.

    :param venue: One of the `VENUE_` constants of :mod:`livesweep.sweepconstants`
    :param ncores: Number of workers, defaults to the number of CPUs
    :param initializer: Worker initialisation function of a process pool
    :param initargs: Arguments of the `initializer`
    :param scheduler: Address of a dask scheduler
    :param client: Connected dask client

    :raises: :class:`~livesweep.sweepexceptions.NoSuchVenueError` for unknown names

    """
    if ncores is None:
        ncores = multip.cpu_count()
    if venue == sweepconstants.VENUE_SERIAL:
        return SerialVenue(1)
    elif venue == sweepconstants.VENUE_THREAD:
        return ThreadVenue(ncores)
    elif venue == sweepconstants.VENUE_PROCESS:
        return ProcessVenue(ncores, initializer=initializer, initargs=initargs)
    elif venue == sweepconstants.VENUE_DASK:
        return DaskVenue(ncores, scheduler=scheduler, client=client)
    else:
        raise NoSuchVenueError('Venue `%s` is not understood, choose one of %s.' %
                               (str(venue), str(sweepconstants.VENUES)))
