"""Input synchronizers for the Perceptron Branch Predictor."""

from .serial_rx import SerialReceiver
from .strobe_sync import StrobeSynchronizer
