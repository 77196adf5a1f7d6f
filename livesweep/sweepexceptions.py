"""Module containing all exceptions"""


class IntegrationError(RuntimeError):
    """Exception raised if the ODE solver does not converge for a parameter pair.

    The offending parameters are kept as attributes `mu` and `nu`.

    """
    def __init__(self, msg, mu=None, nu=None):
        super(IntegrationError, self).__init__(msg)
        self.mu = mu
        self.nu = nu

    def __reduce__(self):
        # Keeps `mu` and `nu` when the error travels between processes
        return self.__class__, (self.args[0], self.mu, self.nu)


class ChannelDeliveryError(IOError):
    """Exception raised if a worker cannot hand a result over to the coordinator."""
    pass


class PoolAllocationError(RuntimeError):
    """Exception raised if the pool of workers cannot be created.

    This is the only error that aborts a whole sweep.

    """
    pass


class NoSuchVenueError(TypeError):
    """Exception raised if an execution venue or a result channel is not known."""
    pass
