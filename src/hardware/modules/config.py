"""
Predictor configuration and derived table geometry.

One PredictorConfig describes one predictor instance.  Invalid geometry is
rejected here, before any gateware is elaborated.
"""

from dataclasses import dataclass

from memory.weight_store import WEIGHT_BITS, READ_LATENCY, WRITE_LATENCY


ADDR_BITS = 16
HISTORY_LENGTH = 7
TABLE_BYTES = 64

# Weights must pack evenly into bytes
VALID_WEIGHT_BITS = (2, 4, 8)


class ConfigError(ValueError):
    """Raised for a predictor configuration that cannot be built."""


@dataclass(frozen=True)
class PredictorConfig:
    addr_bits: int = ADDR_BITS
    history_length: int = HISTORY_LENGTH
    weight_bits: int = WEIGHT_BITS
    table_bytes: int = TABLE_BYTES
    read_latency: int = READ_LATENCY
    write_latency: int = WRITE_LATENCY

    def __post_init__(self):
        if self.addr_bits < 3:
            raise ConfigError(
                f"addr_bits must be at least 3, got {self.addr_bits}")
        if self.history_length < 1:
            raise ConfigError(
                f"history_length must be at least 1, got {self.history_length}")
        if self.weight_bits not in VALID_WEIGHT_BITS:
            raise ConfigError(
                f"weight_bits must be one of {VALID_WEIGHT_BITS}, got {self.weight_bits}")
        if self.read_latency < 1 or self.write_latency < 1:
            raise ConfigError(
                f"latencies must be at least 1 cycle, got read={self.read_latency} "
                f"write={self.write_latency}")
        if (self.table_bytes * 8) % self.perceptron_size != 0:
            raise ConfigError(
                f"{self.table_bytes} bytes do not hold a whole number of "
                f"{self.perceptron_size}-bit perceptrons")
        if self.num_perceptrons == 0:
            raise ConfigError(
                f"{self.table_bytes} bytes cannot hold a single "
                f"{self.perceptron_size}-bit perceptron")

    @property
    def perceptron_size(self):
        """Bits per perceptron: H history weights plus one bias weight."""
        return (self.history_length + 1) * self.weight_bits

    @property
    def num_perceptrons(self):
        return (self.table_bytes * 8) // self.perceptron_size

    @property
    def words_per_perceptron(self):
        return self.history_length + 1

    @property
    def table_depth(self):
        return self.num_perceptrons * self.words_per_perceptron

    @property
    def weight_min(self):
        return -(1 << (self.weight_bits - 1))

    @property
    def weight_max(self):
        return (1 << (self.weight_bits - 1)) - 1

    @property
    def sum_width(self):
        # ceil(log2(H + 1)) + W
        return self.history_length.bit_length() + self.weight_bits

    @property
    def address_mask(self):
        return (1 << self.addr_bits) - 1

    def perceptron_index(self, address):
        # Low two bits are instruction alignment
        return ((address & self.address_mask) >> 2) % self.num_perceptrons

    def base_address(self, index):
        return index * self.words_per_perceptron
