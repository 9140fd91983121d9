"""
Perceptron Table Engine for the Perceptron Branch Predictor.

For each branch sample: hashes the address to a perceptron, streams that
perceptron's H + 1 weights out of the Weight Store, accumulates the dot
product against the global history, publishes the prediction, then applies
the perceptron learning rule and writes each weight back.  Training always
runs, whether or not the prediction was correct.

FSM: CLEAR -> IDLE -> INDEX -> FETCH -> [FETCH_WAIT] -> ACCUMULATE
     (x H+1) -> PREDICT -> TRAIN -> [TRAIN_WAIT] (x H+1) -> DONE -> IDLE

The engine comes out of reset in CLEAR and sweeps every weight to zero
before accepting samples.  The history commit happens in DONE, after the
last write, so training always sees the history that existed before this
sample's outcome.

Weight Store accesses are strictly sequential (one outstanding access);
FETCH_WAIT and TRAIN_WAIT cover the store's read latency and write
turnaround and are omitted when the respective latency is one cycle.
"""

from amaranth import *

from .config import PredictorConfig


class PerceptronEngine(Elaboratable):
    """
    Perceptron Table Engine.

    Ports -- sample input (from the sample FIFO)
    --------------------------------------------
    sample_valid   : Signal(), in
    sample_address : Signal(addr_bits), in
    sample_outcome : Signal(), in
    sample_ready   : Signal(), out  -- high in IDLE; sample consumed when valid

    Ports -- control / status
    -------------------------
    clear : Signal(), in   -- re-zero all weights and history; a request made
                             while busy is held until the sample finishes
    busy  : Signal(), out  -- high whenever the engine is not IDLE

    Ports -- results
    ----------------
    perceptron_index  : Signal(range(num_perceptrons)), out  -- valid after INDEX
    base_address      : Signal(range(table_depth)), out      -- valid after INDEX
    prediction_ready  : Signal(), out  -- pulsed for one cycle in PREDICT
    prediction        : Signal(), out  -- sum >= 0, held until the next sample
    sum               : Signal(signed(sum_width)), out
    training_complete : Signal(), out  -- pulsed after the last write-back

    Ports -- Weight Store interface
    -------------------------------
    store_addr    : Signal(range(table_depth)), out
    store_rd_en   : Signal(), out
    store_rd_data : Signal(signed(weight_bits)), in
    store_wr_data : Signal(signed(weight_bits)), out
    store_wr_en   : Signal(), out

    Ports -- History Register interface
    -----------------------------------
    history         : Signal(H), in   -- bit i = i-th oldest outcome
    history_commit  : Signal(), out
    history_outcome : Signal(), out
    history_clear   : Signal(), out
    """

    def __init__(self, config=None):
        if config is None:
            config = PredictorConfig()
        self.config = config
        c = config

        # Sample input
        self.sample_valid = Signal()
        self.sample_address = Signal(c.addr_bits)
        self.sample_outcome = Signal()
        self.sample_ready = Signal()

        # Control / status
        self.clear = Signal()
        self.busy = Signal()

        # Results
        self.perceptron_index = Signal(range(c.num_perceptrons))
        self.base_address = Signal(range(c.table_depth))
        self.prediction_ready = Signal()
        self.prediction = Signal()
        self.sum = Signal(signed(c.sum_width))
        self.training_complete = Signal()

        # Weight Store interface
        self.store_addr = Signal(range(c.table_depth))
        self.store_rd_en = Signal()
        self.store_rd_data = Signal(signed(c.weight_bits))
        self.store_wr_data = Signal(signed(c.weight_bits))
        self.store_wr_en = Signal()

        # History Register interface
        self.history = Signal(c.history_length)
        self.history_commit = Signal()
        self.history_outcome = Signal()
        self.history_clear = Signal()

    def elaborate(self, platform):
        m = Module()

        c = self.config
        h = c.history_length
        depth = c.table_depth
        read_latency = c.read_latency
        write_latency = c.write_latency

        # --- Latched sample ---
        address = Signal(c.addr_bits)
        outcome = Signal()

        # --- Sequencing ---
        word_idx = Signal(range(h + 1))       # 0..H-1 history weights, H = bias
        clear_addr = Signal(range(depth))
        # clear requested while a sample was in flight; swept on return to IDLE
        clear_pending = Signal()
        wait = Signal(range(max(read_latency, write_latency)))

        # Weights fetched during ACCUMULATE, updated in place during TRAIN
        weights = Array(Signal(signed(c.weight_bits), name=f"weight{i}")
                        for i in range(h + 1))

        is_bias = Signal()
        history_bit = Signal()
        m.d.comb += [
            is_bias.eq(word_idx == h),
            history_bit.eq(self.history.bit_select(word_idx, 1)),
        ]

        # --- Dot-product term: +w, -w or bias ---
        term = Signal(signed(c.weight_bits + 1))
        with m.If(is_bias | history_bit):
            m.d.comb += term.eq(self.store_rd_data)
        with m.Else():
            m.d.comb += term.eq(-self.store_rd_data)

        # --- Learning rule: saturating +/-1 ---
        current = weights[word_idx]
        increment = Signal()
        updated = Signal(signed(c.weight_bits))
        m.d.comb += increment.eq(is_bias | (history_bit == outcome))
        with m.If(increment):
            with m.If(current == c.weight_max):
                m.d.comb += updated.eq(current)
            with m.Else():
                m.d.comb += updated.eq(current + 1)
        with m.Else():
            with m.If(current == c.weight_min):
                m.d.comb += updated.eq(current)
            with m.Else():
                m.d.comb += updated.eq(current - 1)

        # --- Default outputs ---
        m.d.comb += [
            self.store_addr.eq(self.base_address + word_idx),
            self.prediction.eq(self.sum >= 0),
            self.history_outcome.eq(outcome),
        ]

        def next_clear_word():
            with m.If(clear_addr == depth - 1):
                m.d.sync += clear_addr.eq(0)
                m.next = "IDLE"
            with m.Else():
                m.d.sync += clear_addr.eq(clear_addr + 1)
                m.next = "CLEAR"

        def next_train_word():
            with m.If(is_bias):
                m.next = "DONE"
            with m.Else():
                m.d.sync += word_idx.eq(word_idx + 1)
                m.next = "TRAIN"

        with m.FSM(init="CLEAR") as fsm:
            # -----------------------------------------------------------
            # CLEAR: zero every weight and the history, one word per
            # write turnaround
            # -----------------------------------------------------------
            with m.State("CLEAR"):
                m.d.comb += [
                    self.store_addr.eq(clear_addr),
                    self.store_wr_data.eq(0),
                    self.store_wr_en.eq(1),
                    self.history_clear.eq(1),
                ]
                if write_latency > 1:
                    m.d.sync += wait.eq(write_latency - 2)
                    m.next = "CLEAR_WAIT"
                else:
                    next_clear_word()

            with m.State("CLEAR_WAIT"):
                m.d.comb += self.store_addr.eq(clear_addr)
                with m.If(wait == 0):
                    next_clear_word()
                with m.Else():
                    m.d.sync += wait.eq(wait - 1)

            # -----------------------------------------------------------
            # IDLE: wait for a sample (or a clear request)
            # -----------------------------------------------------------
            with m.State("IDLE"):
                m.d.comb += self.sample_ready.eq(~self.clear & ~clear_pending)
                with m.If(self.clear | clear_pending):
                    m.d.sync += [
                        clear_addr.eq(0),
                        clear_pending.eq(0),
                    ]
                    m.next = "CLEAR"
                with m.Elif(self.sample_valid):
                    m.d.sync += [
                        address.eq(self.sample_address),
                        outcome.eq(self.sample_outcome),
                    ]
                    m.next = "INDEX"

            # -----------------------------------------------------------
            # INDEX: hash the address, locate the perceptron
            # -----------------------------------------------------------
            with m.State("INDEX"):
                index = (address >> 2) % c.num_perceptrons
                m.d.sync += [
                    self.perceptron_index.eq(index),
                    self.base_address.eq(index * c.words_per_perceptron),
                    word_idx.eq(0),
                    self.sum.eq(0),
                ]
                m.next = "FETCH"

            # -----------------------------------------------------------
            # FETCH: issue the read of w[word_idx]
            # -----------------------------------------------------------
            with m.State("FETCH"):
                m.d.comb += self.store_rd_en.eq(1)
                if read_latency > 1:
                    m.d.sync += wait.eq(read_latency - 2)
                    m.next = "FETCH_WAIT"
                else:
                    m.next = "ACCUMULATE"

            with m.State("FETCH_WAIT"):
                with m.If(wait == 0):
                    m.next = "ACCUMULATE"
                with m.Else():
                    m.d.sync += wait.eq(wait - 1)

            # -----------------------------------------------------------
            # ACCUMULATE: read data has arrived
            # -----------------------------------------------------------
            with m.State("ACCUMULATE"):
                m.d.sync += [
                    self.sum.eq(self.sum + term),
                    weights[word_idx].eq(self.store_rd_data),
                ]
                with m.If(is_bias):
                    m.next = "PREDICT"
                with m.Else():
                    m.d.sync += word_idx.eq(word_idx + 1)
                    m.next = "FETCH"

            # -----------------------------------------------------------
            # PREDICT: publish the forecast
            # -----------------------------------------------------------
            with m.State("PREDICT"):
                m.d.comb += self.prediction_ready.eq(1)
                m.d.sync += word_idx.eq(0)
                m.next = "TRAIN"

            # -----------------------------------------------------------
            # TRAIN: write back w'[word_idx]
            # -----------------------------------------------------------
            with m.State("TRAIN"):
                m.d.comb += [
                    self.store_wr_data.eq(updated),
                    self.store_wr_en.eq(1),
                ]
                m.d.sync += weights[word_idx].eq(updated)
                if write_latency > 1:
                    m.d.sync += wait.eq(write_latency - 2)
                    m.next = "TRAIN_WAIT"
                else:
                    next_train_word()

            with m.State("TRAIN_WAIT"):
                with m.If(wait == 0):
                    next_train_word()
                with m.Else():
                    m.d.sync += wait.eq(wait - 1)

            # -----------------------------------------------------------
            # DONE: all writes committed; shift the outcome into history
            # -----------------------------------------------------------
            with m.State("DONE"):
                m.d.comb += [
                    self.training_complete.eq(1),
                    self.history_commit.eq(1),
                ]
                m.next = "IDLE"

        clearing = fsm.ongoing("CLEAR") | fsm.ongoing("CLEAR_WAIT")
        with m.If(self.clear & ~fsm.ongoing("IDLE") & ~clearing):
            m.d.sync += clear_pending.eq(1)

        m.d.comb += self.busy.eq(~fsm.ongoing("IDLE") | clear_pending)

        return m
