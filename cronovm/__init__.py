"""Software binary64 arithmetic, a free-list heap allocator model and the cvm-cc build driver."""

__version__ = "0.4.0"