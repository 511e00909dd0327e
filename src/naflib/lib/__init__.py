"""Internal helpers shared across naflib: optional dependencies and JIT compilation."""
