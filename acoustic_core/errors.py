class ConfigurationError(ValueError):
    """Invalid scene or simulation settings, detected before the simulation starts."""
