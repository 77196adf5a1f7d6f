"""Sweeps on a dask cluster, the workers send their results back over zmq.

Start a scheduler and some workers first, e.g.::

    dask-scheduler
    dask-worker tcp://127.0.0.1:8786 --nworkers 4

and pass the scheduler address to this script::

    python example_02_cluster_sweep.py tcp://127.0.0.1:8786

Without an address a local dask cluster is started.

"""

import sys

from livesweep import Sweep, ParameterGrid, SurfaceSink
from livesweep import sweepconstants


def main(scheduler=None, url=None):
    grid = ParameterGrid.from_size(25)

    with Sweep(grid, ncores=4,
               venue=sweepconstants.VENUE_DASK,
               channel=sweepconstants.CHANNEL_NETQUEUE,
               # The coordinator listens here, every worker must be able to reach it
               url=url,
               scheduler=scheduler,
               # Give up if a worker vanishes and nothing arrives for a minute
               timeout=60.0,
               job_kwargs={'rtol': 1e-4}) as sweep:
        sink = SurfaceSink(min_interval=1.0)
        buffer = sweep.run(sink=sink)
        sink.savefig('vdp_periods_%s.png' % sweep.name)

    missing = buffer.pending_indices()
    if missing:
        print('Grid points without a result: %s' % str(missing))


if __name__ == '__main__':
    main(sys.argv[1] if len(sys.argv) > 1 else None)
