"""Provider-set checking and injector solving for compile-time dependency injection."""

__version__ = "0.1.0"