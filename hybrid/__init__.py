"""hybrid: C++ to Rust and Go transpiler core."""

__version__ = "0.1.0"
