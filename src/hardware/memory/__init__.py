"""Memory modules for the Perceptron Branch Predictor."""

from .weight_store import (
    WeightStore, WEIGHT_BITS, TABLE_DEPTH, READ_LATENCY, WRITE_LATENCY,
)
