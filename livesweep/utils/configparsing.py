"""Reads the settings of a sweep from an `.ini` file.

.. code-block:: ini

    [sweep]
    venue = 'PROCESS'
    ncores = 4

    [grid]
    grid_size = 6

    [solver]
    rtol = 1e-4

All values are Python literals. A file that also holds logging sections in the
format of :func:`logging.config.fileConfig` doubles as the `log_config`.

"""

import ast
import configparser as cp
import functools
import os

import livesweep.sweepconstants as sweepconstants
from livesweep.grid import LinearRange, ParameterGrid
from livesweep.sweeplogging import use_simple_logging


def parse_config(init_func):
    """Decorator letting ``__init__`` take a `config` file or parser"""
    @functools.wraps(init_func)
    def new_func(sweep, *args, **kwargs):
        new_kwargs = ConfigInterpreter(kwargs).interpret()
        init_func(sweep, *args, **new_kwargs)
    return new_func


def _load_parser(config):
    """Returns a parser for a filename or an already instantiated parser"""
    if isinstance(config, cp.RawConfigParser):
        return config
    if not isinstance(config, str):
        raise RuntimeError('Your config file/parser format `%s` '
                           'is not understood.' % str(config))
    if not os.path.isfile(config):
        raise ValueError('`%s` does not exist.' % config)
    # Logging sections contain `%` signs
    parser = cp.ConfigParser(interpolation=None)
    parser.read(config)
    return parser


class ConfigInterpreter(object):
    """ Merges the settings of a config file into the keyword arguments of a sweep.

    The ``config`` entry is removed from `kwargs`. ``[sweep]`` options become
    keyword arguments, ``[grid]`` becomes the `grid`, and ``[solver]`` the
    `job_kwargs`. Keyword arguments given explicitly take precedence.

    """

    GRID_KEYS = ('mu_start', 'mu_stop', 'mu_count', 'nu_start', 'nu_stop', 'nu_count',
                 'grid_size')

    def __init__(self, kwargs):
        self.kwargs = kwargs
        self.config_file = kwargs.pop('config', None)
        self.parser = _load_parser(self.config_file) if self.config_file else None

    def _read_section(self, section):
        if not self.parser.has_section(section):
            return {}
        return dict((option, ast.literal_eval(value))
                    for option, value in self.parser.items(section))

    def _make_grid(self, settings):
        unknown = set(settings) - set(self.GRID_KEYS)
        if unknown:
            raise ValueError('Grid options `%s` are not understood.' % str(sorted(unknown)))
        size = settings.get('grid_size', sweepconstants.GRID_SIZE)
        ranges = []
        for axis, defaults in (('mu', sweepconstants.MU_RANGE),
                               ('nu', sweepconstants.NU_RANGE)):
            ranges.append(LinearRange(settings.get(axis + '_start', defaults[0]),
                                      settings.get(axis + '_stop', defaults[1]),
                                      settings.get(axis + '_count', size)))
        return ParameterGrid(*ranges)

    def _collect_config(self):
        collected = self._read_section('sweep')
        grid_settings = self._read_section('grid')
        if grid_settings:
            collected['grid'] = self._make_grid(grid_settings)
        solver_settings = self._read_section('solver')
        if solver_settings:
            collected['job_kwargs'] = solver_settings
        return collected

    def interpret(self):
        """Returns the keyword arguments updated with the file's settings"""
        if self.parser is None:
            return self.kwargs
        for key, value in self._collect_config().items():
            self.kwargs.setdefault(key, value)
        if (self.parser.has_section('loggers') and 'log_config' not in self.kwargs
                and not use_simple_logging(self.kwargs)):
            self.kwargs['log_config'] = self.config_file
        return self.kwargs
