"""
pointforest

Randomized decision forests for classifying 3D point samples from their
multi-scale geometric features. Trees are grown on per-tree bootstrap samples
with axis-aligned, linear, or quadratic split proposals, combined by averaging
leaf class distributions, and persisted in a fixed binary model layout.
"""
