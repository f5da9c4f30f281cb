"""
Benchmark suite for dson JSON parsing and encoding performance.

Compares dson against standard JSON libraries including:
- Python standard library json
- orjson (C-optimized)
- ujson (ultra-fast JSON)

Measures parsing speed, encoding speed and memory usage across different
data types.
"""
