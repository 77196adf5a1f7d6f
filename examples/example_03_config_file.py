"""Configures a sweep and its logging with an `.ini` file"""

import os

from livesweep import Sweep


def main():
    config = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'sweep.ini')

    # Keyword arguments passed here take precedence over the config file
    with Sweep(config=config, name='Example_03_CONFIG') as sweep:
        buffer = sweep.run()

    print(buffer.values)
    for index in buffer.failed_indices():
        print('Grid point #%d failed: %s' % (index, buffer.errors[index]))


if __name__ == '__main__':
    main()
