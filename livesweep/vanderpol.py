"""The Van der Pol oscillator, the default system explored by a sweep.

.. math::

    \\dot{x} = \\nu y

    \\dot{y} = \\mu (1 - x^2) y - x

For large `nu` the system is stiff, so an implicit integration scheme is used.

"""

import logging

import numpy as np
from scipy.integrate import solve_ivp

import livesweep.sweepconstants as sweepconstants
from livesweep.sweepexceptions import IntegrationError
from livesweep.period import mean_period


IMPLICIT_METHODS = ('Radau', 'BDF', 'LSODA')
"""Integration methods that make use of the Jacobian"""


def vdp_field(t, state, mu, nu):
    """Right hand side of the Van der Pol system"""
    x, y = state
    return [nu * y, mu * (1.0 - x ** 2) * y - x]


def vdp_jacobian(t, state, mu, nu):
    """Jacobian of :func:`vdp_field` with respect to the state"""
    x, y = state
    return [[0.0, nu],
            [-2.0 * mu * x * y - 1.0, mu * (1.0 - x ** 2)]]


def solve_vdp(mu, nu, method=sweepconstants.STIFF_METHOD, rtol=1e-3, atol=1e-6,
              initial_state=sweepconstants.INITIAL_STATE):
    """Integrates the Van der Pol system over ``[0, 20 * mu]``.

    :param mu: Damping parameter, must be positive
    :param nu: Time scale parameter, must be positive
    :param method:

        Any method understood by :func:`scipy.integrate.solve_ivp`,
        choose a stiff one like ``'Radau'``, ``'BDF'`` or ``'LSODA'``.

    :param rtol: Relative tolerance
    :param atol: Absolute tolerance
    :param initial_state: State `(x, y)` at time zero

    :return:

        Tuple ``(t, y)`` of the time points of shape ``(n,)`` and the
        states of shape ``(n, 2)``

    :raises: :class:`~livesweep.sweepexceptions.IntegrationError` if the solver fails

    """
    if mu <= 0 or nu <= 0:
        raise ValueError('Both parameters must be positive, '
                         'got mu=%s and nu=%s.' % (str(mu), str(nu)))

    t_span = (0.0, sweepconstants.TIME_FACTOR * mu)
    options = {}
    if method in IMPLICIT_METHODS:
        options['jac'] = vdp_jacobian
    try:
        solution = solve_ivp(vdp_field, t_span, list(initial_state), method=method,
                             args=(mu, nu), rtol=rtol, atol=atol, **options)
    except (ArithmeticError, np.linalg.LinAlgError) as exc:
        raise IntegrationError('Integration crashed for mu=%s, nu=%s: %s' %
                               (str(mu), str(nu), repr(exc)), mu=mu, nu=nu)

    if not solution.success:
        raise IntegrationError('Integration failed for mu=%s, nu=%s: %s' %
                               (str(mu), str(nu), solution.message), mu=mu, nu=nu)
    if not np.all(np.isfinite(solution.y)):
        raise IntegrationError('Integration diverged for mu=%s, nu=%s.' %
                               (str(mu), str(nu)), mu=mu, nu=nu)

    logging.getLogger('livesweep.vanderpol').debug(
        'Integrated mu=%s, nu=%s with %d steps.' % (str(mu), str(nu), len(solution.t)))
    return solution.t, solution.y.T


def vdp_mean_period(mu, nu, **solver_kwargs):
    """The default sweep job, the mean period of `y` for a given `mu` and `nu`"""
    t, y = solve_vdp(mu, nu, **solver_kwargs)
    return mean_period(t, y[:, 1])
