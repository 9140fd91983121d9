"""
Perceptron Branch Predictor -- Top-Level Module.

Integrates the full prediction pipeline:

    host link ──► input synchronizer ──► SampleFIFO ──► PerceptronEngine
                  (serial or strobe)                      │       │
                                                 HistoryRegister  WeightStore
                                                                  ▲
    host port ────────────────────────────────────────────────────┘
                                                   (only while engine idle)

The synchronizer delivers one pulse per external transaction; samples wait
in the FIFO while the engine is busy and are dropped (with `overrun`
latched) once the FIFO is full.  The host port gives direct word access to
the Weight Store for preloading and inspecting weights whenever the engine
is not busy; it is ignored otherwise.
"""

from amaranth import *

from communication.serial_rx import SerialReceiver
from communication.strobe_sync import StrobeSynchronizer
from memory.weight_store import WeightStore

from .config import PredictorConfig
from .history_register import HistoryRegister
from .perceptron_engine import PerceptronEngine
from .sample_fifo import SampleFIFO, DEFAULT_FIFO_DEPTH


INTERFACES = ("serial", "strobe")


class PerceptronPredictor(Elaboratable):
    """
    Perceptron Branch Predictor -- Top Level.

    Parameters
    ----------
    config : PredictorConfig
        Table geometry and latencies (defaults if omitted).
    interface : str
        "serial" for the chip-select framed shift link, "strobe" for the
        parallel strobe link.  The synchronizer is exposed as `source`.
    queue_depth : int
        Samples that may wait while the engine is busy.

    Ports -- control / status
    -------------------------
    clear   : Signal(), in   -- flush the queue, re-zero weights and history
                              (after the sample in flight, if any)
    busy    : Signal(), out
    overrun : Signal(), out  -- sticky: a sample was dropped

    Ports -- results (from the engine)
    ----------------------------------
    perceptron_index, base_address, store_addr, prediction_ready,
    prediction, sum, training_complete, history

    Ports -- host port (to the Weight Store)
    ----------------------------------------
    host_addr     : Signal(range(table_depth)), in
    host_rd_en    : Signal(), in
    host_rd_data  : Signal(signed(weight_bits)), out
    host_rd_valid : Signal(), out
    host_wr_data  : Signal(signed(weight_bits)), in
    host_wr_en    : Signal(), in
    """

    def __init__(self, config=None, interface="serial",
                 queue_depth=DEFAULT_FIFO_DEPTH):
        if config is None:
            config = PredictorConfig()
        if interface not in INTERFACES:
            raise ValueError(
                f"interface must be one of {INTERFACES}, got {interface!r}")
        self.config = config
        self.interface = interface
        c = config

        # --- Control / status ---
        self.clear = Signal()
        self.busy = Signal()
        self.overrun = Signal()

        # --- Results ---
        self.perceptron_index = Signal(range(c.num_perceptrons))
        self.base_address = Signal(range(c.table_depth))
        self.store_addr = Signal(range(c.table_depth))
        self.prediction_ready = Signal()
        self.prediction = Signal()
        self.sum = Signal(signed(c.sum_width))
        self.training_complete = Signal()
        self.history = Signal(c.history_length)

        # --- Host port ---
        self.host_addr = Signal(range(c.table_depth))
        self.host_rd_en = Signal()
        self.host_rd_data = Signal(signed(c.weight_bits))
        self.host_rd_valid = Signal()
        self.host_wr_data = Signal(signed(c.weight_bits))
        self.host_wr_en = Signal()

        # --- Sub-modules (created here for external / test access) ---
        if interface == "serial":
            self.source = SerialReceiver(addr_bits=c.addr_bits)
        else:
            self.source = StrobeSynchronizer(addr_bits=c.addr_bits)
        self.queue = SampleFIFO(addr_bits=c.addr_bits, fifo_depth=queue_depth)
        self.engine = PerceptronEngine(config=c)
        self.history_reg = HistoryRegister(history_length=c.history_length)
        self.store = WeightStore(depth=c.table_depth, weight_bits=c.weight_bits,
                                 read_latency=c.read_latency)

    def elaborate(self, platform):
        m = Module()

        source = self.source
        queue = self.queue
        engine = self.engine
        history_reg = self.history_reg
        store = self.store

        m.submodules.source = source
        m.submodules.queue = queue
        m.submodules.engine = engine
        m.submodules.history_reg = history_reg
        m.submodules.store = store

        # ── Synchronizer → FIFO ─────────────────────────────────────────
        m.d.comb += [
            queue.push_valid.eq(source.input_complete),
            queue.push_address.eq(source.address),
            queue.push_outcome.eq(source.outcome),
            queue.clear.eq(self.clear),
        ]

        # ── FIFO → Engine ───────────────────────────────────────────────
        m.d.comb += [
            engine.sample_valid.eq(queue.pop_valid),
            engine.sample_address.eq(queue.pop_address),
            engine.sample_outcome.eq(queue.pop_outcome),
            queue.pop_ready.eq(engine.sample_ready),
            engine.clear.eq(self.clear),
        ]

        # ── Engine ↔ History Register ───────────────────────────────────
        m.d.comb += [
            engine.history.eq(history_reg.oldest_first),
            history_reg.commit.eq(engine.history_commit),
            history_reg.outcome.eq(engine.history_outcome),
            history_reg.clear.eq(engine.history_clear),
        ]

        # ── Weight Store: engine while busy, host port otherwise ────────
        with m.If(engine.busy):
            m.d.comb += [
                store.addr.eq(engine.store_addr),
                store.rd_en.eq(engine.store_rd_en),
                store.wr_data.eq(engine.store_wr_data),
                store.wr_en.eq(engine.store_wr_en),
            ]
        with m.Else():
            m.d.comb += [
                store.addr.eq(self.host_addr),
                store.rd_en.eq(self.host_rd_en),
                store.wr_data.eq(self.host_wr_data),
                store.wr_en.eq(self.host_wr_en),
            ]
        m.d.comb += [
            engine.store_rd_data.eq(store.rd_data),
            self.host_rd_data.eq(store.rd_data),
            self.host_rd_valid.eq(store.rd_valid),
        ]

        # ── Outputs ─────────────────────────────────────────────────────
        m.d.comb += [
            self.busy.eq(engine.busy),
            self.overrun.eq(queue.overrun),
            self.perceptron_index.eq(engine.perceptron_index),
            self.base_address.eq(engine.base_address),
            self.store_addr.eq(store.addr),
            self.prediction_ready.eq(engine.prediction_ready),
            self.prediction.eq(engine.prediction),
            self.sum.eq(engine.sum),
            self.training_complete.eq(engine.training_complete),
            self.history.eq(history_reg.value),
        ]

        return m
