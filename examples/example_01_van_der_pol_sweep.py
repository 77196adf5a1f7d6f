"""Sweeps the Van der Pol oscillator on the local machine and plots the periods live"""

import logging

import numpy as np
import matplotlib.pyplot as plt

from livesweep import Sweep, ParameterGrid, SurfaceSink


def main():
    """Main function to protect the *entry point* of the program.

    Worker processes may re-import this module, so the sweep must not
    be started at import time.

    """
    grid = ParameterGrid.from_size(8)

    # Let the z-axis follow the data instead of the fixed default limits
    sink = SurfaceSink(min_interval=0.5, zlim=None)

    plt.ion()
    with Sweep(grid, ncores=4, log_stdout=True,
               report_progress=(10, 'livesweep', logging.INFO)) as sweep:
        buffer = sweep.run(sink=sink)

    print('Received %d of %d periods' % (buffer.n_received, buffer.size))
    print('Longest period: %.2f' % np.nanmax(buffer.values))

    plt.ioff()
    plt.show()


if __name__ == '__main__':
    main()
