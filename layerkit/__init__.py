"""Layerkit: layer execution and static network analysis.

Layerkit provides the numerical core of a layer-graph deep-learning
framework. Every layer kind carries interchangeable host and accelerator
execution strategies for its forward and backward passes, and a static
analyzer checks a layer graph before any data flows through it.

Core workflows:
- Execution: predict/forward/backward per layer, on host or accelerator
- Analysis: build a layer graph, propagate sizes, run constraint rules
- Custom layers: wrap user-authored layers and verify their contracts
- Reporting: issue tables and warnings through the rich console logger
"""
