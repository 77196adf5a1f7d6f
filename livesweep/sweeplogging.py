"""Module containing the logging setup of the coordinator and its workers.

A sweep is configured with a single `log_config`, either the name of an `.ini`
file, an already parsed :class:`configparser.ConfigParser`, or a dictionary for
:func:`logging.config.dictConfig`. Sections (or keys) prefixed with ``multiproc_``
configure the worker processes, everything else configures the coordinator.

Filenames may contain the wildcards ``$sweep``, ``$proc``, and ``$host``, they
are replaced when the handlers are created and missing folders are made.

"""

import ast
import configparser as cp
import functools
import logging
import math
import multiprocessing as multip
import os
import socket
import sys
from io import StringIO
from logging.config import dictConfig, fileConfig

import livesweep.sweepconstants as sweepconstants
from livesweep.utils.helpful_functions import progressbar, racedirs


WORKER_PREFIX = 'multiproc_'
"""Prefix of the sections and keys that configure worker processes"""

SIMPLE_LOGGING_KWARGS = ('log_folder', 'logger_names', 'log_levels', 'log_level',
                         'log_multiproc')
"""Keyword arguments of the simple logging configuration"""

FILENAME_MARKERS = (sweepconstants.LOG_SWEEP, sweepconstants.LOG_PROC,
                    sweepconstants.LOG_HOST, '.log', '.txt')
"""A string argument of a handler containing one of these is treated as a filename"""

FILE_FORMAT = '%(asctime)s %(name)s %(levelname)-8s %(message)s'
STREAM_FORMAT = '%(processName)-10s %(name)s %(levelname)-8s %(message)s'


def _file_handler(filename, level=None):
    handler = {'class': 'logging.FileHandler',
               'formatter': 'file',
               'filename': filename}
    if level is not None:
        handler['level'] = level
    return handler


def make_simple_log_config(log_folder='logs', logger_names='', log_levels=logging.INFO,
                           log_multiproc=True):
    """Builds a dictionary config from the simple logging settings.

    Every logger in `logger_names` gets a stream handler and a main and an error
    log file in ``log_folder/$sweep/``. If `log_multiproc` is `True` every
    worker process writes its own pair of files.

    """
    if not isinstance(logger_names, (tuple, list)):
        logger_names = [logger_names]
    if not isinstance(log_levels, (tuple, list)):
        log_levels = [log_levels]
    if len(log_levels) == 1:
        log_levels = list(log_levels) * len(logger_names)
    if len(log_levels) != len(logger_names):
        raise ValueError('Need one log level per logger or a single level for all.')

    sweep_folder = os.path.join(log_folder, sweepconstants.LOG_SWEEP)
    worker_prefix = '%s_%s_' % (sweepconstants.LOG_HOST, sweepconstants.LOG_PROC)

    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {'file': {'format': FILE_FORMAT},
                       'stream': {'format': STREAM_FORMAT}},
        'handlers': {
            'stream': {'class': 'logging.StreamHandler', 'formatter': 'stream'},
            'file_main': _file_handler(os.path.join(sweep_folder, 'LOG.txt')),
            'file_error': _file_handler(os.path.join(sweep_folder, 'ERROR.txt'), 'ERROR'),
        },
    }
    if log_multiproc:
        config[WORKER_PREFIX + 'formatters'] = {'file': {'format': FILE_FORMAT}}
        config[WORKER_PREFIX + 'handlers'] = {
            'file_main': _file_handler(os.path.join(sweep_folder,
                                                    worker_prefix + 'LOG.txt')),
            'file_error': _file_handler(os.path.join(sweep_folder,
                                                     worker_prefix + 'ERROR.txt'), 'ERROR'),
        }

    prefixes = ('', WORKER_PREFIX) if log_multiproc else ('',)
    for prefix in prefixes:
        handler_names = list(config[prefix + 'handlers'].keys())
        config[prefix + 'loggers'] = dict(
            (name, {'level': level, 'handlers': handler_names})
            for name, level in zip(logger_names, log_levels))
    return config


def use_simple_logging(kwargs):
    """Checks if simple logging is requested"""
    return any(key in kwargs for key in SIMPLE_LOGGING_KWARGS)


def simple_logging_config(func):
    """Decorator turning the simple logging kwargs into a `log_config`.

    The simple settings are `log_folder`, `logger_names`, `log_levels`
    (or `log_level`), and `log_multiproc`. They cannot be combined with
    an explicit `log_config`.

    """
    @functools.wraps(func)
    def new_func(self, *args, **kwargs):
        if use_simple_logging(kwargs):
            if 'log_config' in kwargs:
                raise ValueError('Please do not specify `log_config` '
                                 'if you want to use the simple '
                                 'way of providing logging configuration '
                                 '(i.e using `log_folder`, `logger_names` and/or `log_levels`).')
            settings = {}
            for key in SIMPLE_LOGGING_KWARGS:
                if key in kwargs:
                    settings[key] = kwargs.pop(key)
            if 'log_level' in settings:
                settings['log_levels'] = settings.pop('log_level')
            kwargs['log_config'] = make_simple_log_config(**settings)
        return func(self, *args, **kwargs)

    return new_func


def try_make_dirs(filename):
    """Creates the folder of a log file, problems are only reported to stderr"""
    try:
        racedirs(os.path.dirname(os.path.normpath(filename)))
    except Exception as exc:
        sys.stderr.write('ERROR during log config file handling, could not create dirs for '
                         'filename `%s` because of: %s' % (filename, repr(exc)))


def get_strings(args):
    """Returns all string literals of a python expression like ``"('a.txt', 'w')"``"""
    return [node.value for node in ast.walk(ast.parse(args))
            if isinstance(node, ast.Constant) and isinstance(node.value, str)]


def _is_filename(string):
    return any(marker in string for marker in FILENAME_MARKERS)


def rename_log_file(filename, sweep_name=None, process_name=None, host_name=None):
    """ Replaces the wildcards of a log `filename`.

    * ``$sweep`` by the `sweep_name`, `'sweep'` if `None`

    * ``$proc`` by the `process_name`, defaults to the name and pid of the
      current process

    * ``$host`` by the `host_name`, defaults to the fully qualified domain name
      with dots turned into dashes

    """
    if sweepconstants.LOG_SWEEP in filename:
        filename = filename.replace(sweepconstants.LOG_SWEEP,
                                    sweep_name if sweep_name is not None else 'sweep')
    if sweepconstants.LOG_PROC in filename:
        if process_name is None:
            process_name = '%s-%d' % (multip.current_process().name, os.getpid())
        filename = filename.replace(sweepconstants.LOG_PROC, process_name)
    if sweepconstants.LOG_HOST in filename:
        if host_name is None:
            host_name = socket.getfqdn().replace('.', '-')
        filename = filename.replace(sweepconstants.LOG_HOST, host_name)
    return filename


def rename_parser_files(parser, rename_func, make_dirs=True):
    """Renames all filenames found in the `args` options of a parser in place.

    :param parser: A config parser in the format of :func:`logging.config.fileConfig`
    :param rename_func: Function mapping an old filename to a new one
    :param make_dirs: If the folders of the new filenames should be created

    """
    for section in parser.sections():
        if not parser.has_option(section, 'args'):
            continue
        args = parser.get(section, 'args', raw=True)
        new_args = args
        for string in get_strings(args):
            if _is_filename(string):
                new_string = rename_func(string)
                if make_dirs:
                    try_make_dirs(new_string)
                # Backslashes of windows paths are escaped within the literal
                new_args = new_args.replace(string.replace('\\', '\\\\'),
                                            new_string.replace('\\', '\\\\'))
        if new_args != args:
            parser.set(section, 'args', new_args)


def _parser_to_stream(parser):
    stream = StringIO()
    parser.write(stream)
    stream.seek(0)
    return stream


def _worker_parser(parser):
    """Copies the ``multiproc_`` sections into a new parser without the prefix"""
    worker_sections = [section for section in parser.sections()
                       if section.startswith(WORKER_PREFIX)]
    if not worker_sections:
        return None
    worker_parser = NoInterpolationParser()
    for section in worker_sections:
        new_section = section[len(WORKER_PREFIX):]
        worker_parser.add_section(new_section)
        for option in parser.options(section):
            worker_parser.set(new_section, option, parser.get(section, option, raw=True))
    return worker_parser


def _worker_dict(dictionary):
    """Copies the ``multiproc_`` keys into a new dictionary without the prefix"""
    worker_keys = [key for key in dictionary if key.startswith(WORKER_PREFIX)]
    if not worker_keys:
        return None
    worker_dict = dict((key[len(WORKER_PREFIX):], dictionary[key]) for key in worker_keys)
    for key in ('version', 'disable_existing_loggers'):
        if key in dictionary:
            worker_dict[key] = dictionary[key]
    return worker_dict


def _normalise_progress(report_progress):
    """Turns the short forms of `report_progress` into `(percentage, logger, level)`"""
    if not report_progress:
        return False
    if report_progress is True:
        return (5, 'livesweep', logging.INFO)
    if isinstance(report_progress, (int, float)):
        return (report_progress, 'livesweep', logging.INFO)
    if isinstance(report_progress, str):
        return (5, report_progress, logging.INFO)
    if len(report_progress) == 2:
        return (report_progress[0], report_progress[1], logging.INFO)
    return tuple(report_progress)


def _normalise_stdout(log_stdout):
    """Turns the short forms of `log_stdout` into `(logger_name, level)`"""
    if not log_stdout:
        return False
    if log_stdout is True:
        return ('STDOUT', logging.INFO)
    if isinstance(log_stdout, str):
        return (log_stdout, logging.INFO)
    if isinstance(log_stdout, int):
        return ('STDOUT', log_stdout)
    return tuple(log_stdout)


class HasLogger(object):
    """Mixin giving a class a `_logger` that survives pickling.

    Call ``self._set_logger()`` in ``__init__``, the logger is named after the
    module and the class unless a `name` is given. Pickles carry only the
    logger's name.

    """

    def __getstate__(self):
        state_dict = self.__dict__.copy()
        if '_logger' in state_dict:
            state_dict['_logger'] = self._logger.name
        return state_dict

    def __setstate__(self, statedict):
        self.__dict__.update(statedict)
        if '_logger' in statedict:
            self._set_logger(statedict['_logger'])

    def _set_logger(self, name=None):
        if name is None:
            cls = self.__class__
            name = '%s.%s' % (cls.__module__, cls.__name__)
        self._logger = logging.getLogger(name)


class LoggingManager(object):
    """ Configures logging of the coordinator and, after pickling, of its workers.

    :param log_config:

        Name of an `.ini` file, a config parser, a dictionary for `dictConfig`,
        :const:`~livesweep.sweepconstants.DEFAULT_LOGGING` for the bundled
        configuration, or `None` to leave logging alone.

    :param log_stdout:

        Redirect `stdout` to a logger, either `True`, a logger name,
        a level, or a tuple of both.

    :param report_progress:

        How to report progress, `True`, a percentage step, a logger name,
        or a tuple `(percentage, logger_name, log_level)`. Use ``'print'`` as
        logger name to print instead of logging.

    """
    def __init__(self, log_config=None, log_stdout=False,
                 report_progress=False):
        self.log_config = log_config
        self.log_stdout = log_stdout
        self.report_progress = report_progress
        self.sweep_name = None
        self._main_config = None
        self._worker_config = None
        self._tools = []
        self._null_handler = logging.NullHandler()
        self._format_string = 'PROGRESS: Received %d/%d results '

    def __getstate__(self):
        state_dict = self.__dict__.copy()
        # Parsers may not pickle, their content lives on in the config streams
        if isinstance(state_dict['log_config'], cp.RawConfigParser):
            state_dict['log_config'] = True
        state_dict['_tools'] = []
        return state_dict

    def extract_replacements(self, sweep):
        """Takes the name that replaces the ``$sweep`` wildcard"""
        self.sweep_name = sweep.name

    def add_null_handler(self):
        """Silences warnings about unconfigured loggers until handlers exist"""
        logging.getLogger().addHandler(self._null_handler)

    def remove_null_handler(self):
        logging.getLogger().removeHandler(self._null_handler)

    @staticmethod
    def tabula_rasa():
        """Removes all loggers and logging handlers. """
        dictConfig({'disable_existing_loggers': False, 'version': 1})

    def _load_parser(self):
        if self.log_config == sweepconstants.DEFAULT_LOGGING:
            self.log_config = os.path.join(os.path.abspath(os.path.dirname(__file__)),
                                           'logging', 'default.ini')
        if isinstance(self.log_config, str):
            if not os.path.isfile(self.log_config):
                raise ValueError('Could not find the logger init file '
                                 '`%s`.' % self.log_config)
            parser = NoInterpolationParser()
            parser.read(self.log_config)
            return parser
        if isinstance(self.log_config, cp.RawConfigParser):
            return self.log_config
        return None

    def check_log_config(self):
        """ Normalises all settings and splits the config into coordinator and worker part.

        :raises: ValueError if the `log_config` file does not exist

        """
        self.report_progress = _normalise_progress(self.report_progress)
        self.log_stdout = _normalise_stdout(self.log_stdout)

        if not self.log_config:
            return
        parser = self._load_parser()
        if parser is not None:
            self._main_config = _parser_to_stream(parser)
            worker_parser = _worker_parser(parser)
            if worker_parser is not None:
                self._worker_config = _parser_to_stream(worker_parser)
        elif isinstance(self.log_config, dict):
            self._main_config = self.log_config
            self._worker_config = _worker_dict(self.log_config)

    def show_progress(self, n, total):
        """Displays a progressbar, `n=-1` signals the start of a sweep"""
        if not self.report_progress:
            return
        percentage, logger_name, log_level = self.report_progress
        logger = 'print' if logger_name == 'print' else logging.getLogger(logger_name)

        if n == -1:
            # Pad the counter to the number of digits of `total`
            digits = int(math.log10(total + 0.1)) + 1
            self._format_string = 'PROGRESS: Received %' + '%d' % digits + 'd/%d results '

        fmt_string = self._format_string % (n + 1, total) + '%s'
        progressbar(n, total, percentage_step=percentage,
                    logger=logger, log_level=log_level,
                    fmt_string=fmt_string, reprint=log_level == 0)

    def _rename(self, filename):
        return rename_log_file(filename, sweep_name=self.sweep_name)

    def _rename_dict_files(self, config):
        """Copies a dict config and renames (and makes folders for) every `filename`"""
        new_config = {}
        for key, value in config.items():
            if key == 'filename':
                value = self._rename(value)
                try_make_dirs(value)
            elif isinstance(value, dict):
                value = self._rename_dict_files(value)
            new_config[key] = value
        return new_config

    def _apply(self, config):
        if isinstance(config, dict):
            dictConfig(self._rename_dict_files(config))
        else:
            config.seek(0)
            parser = NoInterpolationParser()
            parser.read_file(config)
            rename_parser_files(parser, self._rename)
            fileConfig(_parser_to_stream(parser), disable_existing_loggers=False)

    def make_logging_handlers_and_tools(self, multiproc=False):
        """Creates the logging handlers and redirects `stdout` if requested.

        :param multiproc: If the worker part of the configuration should be used

        """
        config = self._worker_config if multiproc else self._main_config
        if self.log_config and config:
            self._apply(config)

        if self.log_stdout and not isinstance(sys.stdout, StdoutToLogger):
            std_name, std_level = self.log_stdout
            redirection = StdoutToLogger(std_name, log_level=std_level)
            redirection.start()
            self._tools.append(redirection)

    def finalize(self, remove_all_handlers=True):
        """Stops redirections, closes config streams, and optionally removes all handlers"""
        for tool in self._tools:
            tool.finalize()
        self._tools = []
        for config in (self._main_config, self._worker_config):
            if hasattr(config, 'close'):
                config.close()
        self._main_config = None
        self._worker_config = None
        if remove_all_handlers:
            self.tabula_rasa()


class NoInterpolationParser(cp.ConfigParser):
    """Config parser that leaves `%` in logging format strings alone"""
    def __init__(self):
        super(NoInterpolationParser, self).__init__(interpolation=None)


class DisableAllLogging(object):
    """Context Manager that disables logging"""

    def __enter__(self):
        logging.disable(logging.CRITICAL)

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.disable(logging.NOTSET)


class StdoutToLogger(HasLogger):
    """File-like object that forwards every line written to `stdout` to a logger"""
    def __init__(self, logger_name, log_level=logging.INFO):
        self._log_level = log_level
        self._original_stream = None
        self._writing = False
        self._set_logger(name=logger_name)

    def __getstate__(self):
        state_dict = super(StdoutToLogger, self).__getstate__()
        state_dict['_original_stream'] = None
        return state_dict

    @property
    def redirecting(self):
        return self._original_stream is not None

    def start(self):
        """Starts redirection of `stdout`"""
        if sys.stdout is self:
            return
        self._original_stream = sys.stdout
        sys.stdout = self
        print('Established redirection of `stdout`.')

    def write(self, buf):
        if self._writing:
            # A handler writing to `stdout` would call us again
            sys.__stderr__.write('ERROR: Recursion in Stream redirection!')
            return
        self._writing = True
        try:
            for line in buf.rstrip().splitlines():
                self._logger.log(self._log_level, line.rstrip())
        finally:
            self._writing = False

    def flush(self):
        pass

    def finalize(self):
        """Disables redirection"""
        if self.redirecting:
            sys.stdout = self._original_stream
            self._original_stream = None
            print('Disabled redirection of `stdout`.')
