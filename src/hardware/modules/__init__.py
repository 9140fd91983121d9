"""Processing modules for the Perceptron Branch Predictor."""

from .config import PredictorConfig, ConfigError
from .history_register import HistoryRegister
from .sample_fifo import SampleFIFO
from .perceptron_engine import PerceptronEngine
from .branch_predictor import PerceptronPredictor
